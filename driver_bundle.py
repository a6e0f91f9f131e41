"""
Access to the bundled game-driver files.

The driver ships either as a plain directory or as an archive
(.zip/.7z/.rar) with the same layout::

    ff7_opengl.fgd
    ff7_opengl.cfg
    plugins/...
    shaders/...
    shaders/nolight/...

``open_driver_bundle`` yields a readable directory in both cases; archives
are extracted into a temporary directory that is removed afterwards.
"""

from __future__ import annotations

import logging
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import py7zr
import rarfile

_log = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".zip", ".7z", ".rar"}


class DriverBundleError(Exception):
    """The driver bundle is missing or cannot be read."""


def _extract_all(filepath: Path, dest: Path):
    ext = filepath.suffix.lower()
    if ext == ".zip":
        with zipfile.ZipFile(filepath, "r") as zf:
            zf.extractall(dest)
    elif ext == ".7z":
        with py7zr.SevenZipFile(filepath, "r") as sz:
            sz.extractall(dest)
    elif ext == ".rar":
        with rarfile.RarFile(filepath, "r") as rf:
            rf.extractall(dest)
    else:
        raise DriverBundleError(f"Unsupported driver bundle format: {ext}")


def _bundle_root(extracted: Path) -> Path:
    # Archives built by zipping the folder itself have a single top-level dir.
    children = list(extracted.iterdir())
    if len(children) == 1 and children[0].is_dir():
        return children[0]
    return extracted


@contextmanager
def open_driver_bundle(path: str | Path) -> Iterator[Path]:
    bundle = Path(path)
    if bundle.is_dir():
        yield bundle
        return
    if not bundle.is_file():
        raise DriverBundleError(f"Driver bundle not found: {bundle}")

    with tempfile.TemporaryDirectory(prefix="ff7driver_") as tmpdir:
        tmppath = Path(tmpdir)
        _log.info("Extracting driver bundle %s", bundle.name)
        try:
            _extract_all(bundle, tmppath)
        except DriverBundleError:
            raise
        except (OSError, zipfile.BadZipFile, py7zr.Bad7zFile, rarfile.Error) as e:
            raise DriverBundleError(f"Could not extract driver bundle {bundle}: {e}") from e
        yield _bundle_root(tmppath)

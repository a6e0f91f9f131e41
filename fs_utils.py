"""
Filesystem helpers shared by the backup, conversion and verification code.
"""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
import shutil
from pathlib import Path

_log = logging.getLogger(__name__)

_CHUNK = 1024 * 1024


def copy_tree(src: Path, dst: Path) -> int:
    """Copy ``src`` into ``dst`` recursively, merging and overwriting.

    Returns the number of files copied.
    """
    src, dst = Path(src), Path(dst)
    copied = 0
    dst.mkdir(parents=True, exist_ok=True)
    for dirpath, _dirnames, filenames in os.walk(src):
        rel = Path(dirpath).relative_to(src)
        target_dir = dst / rel
        target_dir.mkdir(parents=True, exist_ok=True)
        for name in filenames:
            shutil.copy2(Path(dirpath) / name, target_dir / name)
            copied += 1
    return copied


def move_tree(src: Path, dst: Path):
    """Move a directory to ``dst``, merging into it if it already exists."""
    src, dst = Path(src), Path(dst)
    if not dst.exists():
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
        return
    for child in list(src.iterdir()):
        target = dst / child.name
        if child.is_dir():
            move_tree(child, target)
        else:
            if target.exists():
                target.unlink()
            shutil.move(str(child), str(target))
    src.rmdir()


def move_file(src: Path, dst: Path):
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(src), str(dst))


def matching_files(folder: Path, pattern: str) -> list[Path]:
    """Files directly inside ``folder`` whose name matches ``pattern``.

    Matching is case-insensitive, as it is on the game's home platform.
    """
    folder = Path(folder)
    if not folder.is_dir():
        return []
    lowered = pattern.lower()
    return sorted(
        p for p in folder.iterdir()
        if p.is_file() and fnmatch.fnmatchcase(p.name.lower(), lowered)
    )


def files_with_prefix(folder: Path, prefix: str) -> list[Path]:
    folder = Path(folder)
    if not folder.is_dir():
        return []
    lowered = prefix.lower()
    return sorted(p for p in folder.iterdir() if p.is_file() and p.name.lower().startswith(lowered))


def file_digest(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def files_equal(a: Path, b: Path) -> bool:
    """True if both files exist and have identical content."""
    a, b = Path(a), Path(b)
    if not a.is_file() or not b.is_file():
        return False
    if a.stat().st_size != b.stat().st_size:
        return False
    return file_digest(a) == file_digest(b)


def remove_path(path: Path):
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()

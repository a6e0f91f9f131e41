"""
Protected-location policy: installs under system or per-user folders
cause permission and virtualization problems for mods.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path, PurePath
from typing import Iterable

_log = logging.getLogger(__name__)

POSIX_PROTECTED_FOLDERS = ("/usr", "/etc", "/bin", "/sbin", "/opt")


def default_protected_folders() -> list[Path]:
    """Program Files (both), the user profile and the Windows directory;
    their nearest equivalents off Windows."""
    if sys.platform == "win32":
        candidates = [
            os.environ.get("ProgramFiles"),
            os.environ.get("ProgramFiles(x86)"),
            os.environ.get("USERPROFILE"),
            os.environ.get("SystemRoot") or os.environ.get("WINDIR"),
        ]
    else:
        candidates = list(POSIX_PROTECTED_FOLDERS) + [str(Path.home())]
    return [Path(c) for c in candidates if c]


def _normalize(path: str | Path) -> PurePath:
    return PurePath(os.path.normcase(os.path.abspath(str(path))))


class LocationPolicy:
    def __init__(self, protected_folders: Iterable[str | Path] | None = None):
        if protected_folders is None:
            protected_folders = default_protected_folders()
        self.protected_folders = [Path(p) for p in protected_folders]

    def protecting_folder(self, root: str | Path) -> Path | None:
        """The protected folder containing ``root``, if any."""
        candidate = _normalize(root)
        for folder in self.protected_folders:
            prefix = _normalize(folder)
            if candidate == prefix or prefix in candidate.parents:
                return folder
        return None

    def is_protected(self, root: str | Path) -> bool:
        if not Path(root).exists():
            return False
        folder = self.protecting_folder(root)
        if folder is not None:
            _log.warning("Install path %s is inside protected folder %s", root, folder)
            return True
        return False

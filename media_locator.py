"""
Resolution of removable-media volume labels (``ff7disc1`` ...) to the
filesystem root the volume is mounted at.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Mapping, Optional, Protocol

import psutil

_log = logging.getLogger(__name__)


class MediaLocator(Protocol):
    def resolve_volume_label(self, label: str) -> Optional[Path]: ...


class StaticMediaLocator:
    """Fixed label -> mount root table, e.g. from the command line."""

    def __init__(self, mounts: Mapping[str, str | Path] | None = None):
        self._mounts = {k.lower(): Path(v) for k, v in (mounts or {}).items()}

    def resolve_volume_label(self, label: str) -> Optional[Path]:
        return self._mounts.get(label.lower())


def _windows_volume_label(mountpoint: str) -> Optional[str]:
    import ctypes

    buf = ctypes.create_unicode_buffer(261)
    ok = ctypes.windll.kernel32.GetVolumeInformationW(
        ctypes.c_wchar_p(mountpoint), buf, ctypes.sizeof(buf), None, None, None, None, 0
    )
    return buf.value if ok else None


class SystemMediaLocator:
    """Looks the label up among the currently mounted volumes.

    On Windows the label comes from the volume itself; elsewhere removable
    media is mounted under a directory named after its label
    (``/media/<user>/<label>``, ``/run/media/<user>/<label>``).
    Nothing is cached, so discs can be swapped between lookups.
    """

    def _label_for(self, mountpoint: str) -> Optional[str]:
        if sys.platform == "win32":
            try:
                return _windows_volume_label(mountpoint)
            except OSError as e:
                _log.debug("No volume information for %s: %s", mountpoint, e)
                return None
        return Path(mountpoint).name or None

    def resolve_volume_label(self, label: str) -> Optional[Path]:
        wanted = label.lower()
        for part in psutil.disk_partitions(all=False):
            found = self._label_for(part.mountpoint)
            if found and found.lower() == wanted:
                _log.info("Found volume %s at %s", label, part.mountpoint)
                return Path(part.mountpoint)
        return None

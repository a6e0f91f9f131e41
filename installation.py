"""
Detection of the installed game release from the configuration store.
"""

from __future__ import annotations

import enum
import logging
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from config_store import (
    APP_PATH_VALUE,
    FF7_APP_KEY_PATH,
    INSTALL_LOCATION_VALUE,
    RERELEASE_KEY_PATH,
    STEAM_KEY_PATH_32,
    STEAM_KEY_PATH_64,
    ConfigStore,
)

_log = logging.getLogger(__name__)


class GameVersion(enum.Enum):
    UNKNOWN = "unknown"
    ORIGINAL = "original"  # 1998 PC release
    RERELEASED = "rereleased"
    DIGITAL_DISTRIBUTION = "steam"


@dataclass(frozen=True)
class InstallationRecord:
    root_path: Path | None
    detected_version: GameVersion

    @property
    def found(self) -> bool:
        return self.detected_version is not GameVersion.UNKNOWN


def is_64bit_os() -> bool:
    return platform.machine().lower() in ("amd64", "x86_64", "arm64", "aarch64")


def _first_value(store: ConfigStore, candidates: list[tuple[str, str]]) -> Optional[str]:
    for key_path, value_name in candidates:
        value = store.get(key_path, value_name)
        if isinstance(value, str) and value.strip():
            return value
    return None


def steam_key_candidates(is_64bit: bool) -> list[str]:
    # On a 64-bit OS the Steam uninstall key can sit in either registry view.
    if is_64bit:
        return [STEAM_KEY_PATH_64, STEAM_KEY_PATH_32]
    return [STEAM_KEY_PATH_32]


def detect_installation(store: ConfigStore, is_64bit: bool | None = None) -> InstallationRecord:
    """Read the install location and release kind recorded in ``store``.

    The digital-distribution release wins over the re-release, which wins
    over the original 1998 release. Nothing is cached; call again for a
    fresh read.
    """
    if is_64bit is None:
        is_64bit = is_64bit_os()

    lookups = [
        (GameVersion.DIGITAL_DISTRIBUTION,
         [(k, INSTALL_LOCATION_VALUE) for k in steam_key_candidates(is_64bit)]),
        (GameVersion.RERELEASED, [(RERELEASE_KEY_PATH, INSTALL_LOCATION_VALUE)]),
        (GameVersion.ORIGINAL, [(FF7_APP_KEY_PATH, APP_PATH_VALUE)]),
    ]
    for version, candidates in lookups:
        location = _first_value(store, candidates)
        if location:
            _log.info("Detected %s install at %s", version.value, location)
            return InstallationRecord(root_path=Path(location), detected_version=version)

    _log.info("No installation recorded in the configuration store")
    return InstallationRecord(root_path=None, detected_version=GameVersion.UNKNOWN)

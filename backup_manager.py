"""
Backups taken before any destructive change to an installation.

A backup is a fresh ``Backup_<timestamp>`` directory under the install's
backup folder. Configuration-store keys are exported into it and legacy
files are *moved* (not copied) into it, keeping their relative paths.
Nothing is ever read back from a backup by this code; restoring is manual.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from config_store import (
    FF7_APP_KEY_PATH,
    INSTALL_LOCATION_VALUE,
    OLD_CONVERTER_KEY_PATH,
    RERELEASE_KEY_PATH,
    STEAM_KEY_PATH_32,
    STEAM_KEY_PATH_64,
    ConfigStore,
    ConfigStoreError,
)
from fs_utils import files_with_prefix, move_file, move_tree
from installation import is_64bit_os
from manifests import (
    BACKUP_MANIFESTS,
    HELPER_LIBRARY_PREFIX,
    BackupManifest,
    resolve,
)

_log = logging.getLogger(__name__)

BACKUP_FOLDER_NAME = "BackupGC2020"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


class BackupError(Exception):
    """A backup could not be completed. The partial backup is left in place."""


class BackupManager:
    def __init__(
        self,
        store: ConfigStore,
        backup_folder_name: str = BACKUP_FOLDER_NAME,
        clock: Callable[[], datetime] = datetime.now,
        is_64bit: bool | None = None,
    ):
        self.store = store
        self.backup_folder_name = backup_folder_name
        self._clock = clock
        self._is_64bit = is_64bit_os() if is_64bit is None else is_64bit

    # ── Backup directory ──────────────────────────────────────────────

    def new_backup_dir(self, install_root: Path) -> Path:
        """Create and return a backup directory no earlier backup has used.

        Two backups within the same second get ``_2``, ``_3``... suffixes.
        """
        base = Path(install_root) / self.backup_folder_name
        stamp = f"Backup_{self._clock().strftime(TIMESTAMP_FORMAT)}"
        base.mkdir(parents=True, exist_ok=True)
        attempt = 1
        while True:
            name = stamp if attempt == 1 else f"{stamp}_{attempt}"
            candidate = base / name
            try:
                candidate.mkdir()
                _log.info("Created backup directory %s", candidate)
                return candidate
            except FileExistsError:
                _log.debug("Backup directory %s already taken", candidate)
                attempt += 1

    # ── Configuration store ───────────────────────────────────────────

    def _store_exports(self) -> list[tuple[str, str]]:
        exports = []
        if self._is_64bit:
            # Steam's key may be in either registry view; export whichever holds the install.
            if self.store.get(STEAM_KEY_PATH_64, INSTALL_LOCATION_VALUE) is not None:
                exports.append((STEAM_KEY_PATH_64, "FF7-01.reg"))
            else:
                exports.append((STEAM_KEY_PATH_32, "FF7-01.reg"))
        else:
            exports.append((STEAM_KEY_PATH_32, "FF7-01.reg"))
        exports += [
            (RERELEASE_KEY_PATH, "FF7-02.reg"),
            (FF7_APP_KEY_PATH, "FF7-03.reg"),
            (OLD_CONVERTER_KEY_PATH, "FF7-OldGC.reg"),
        ]
        return exports

    def backup_configuration(self, destination: Path) -> list[Path]:
        """Export the known keys into ``destination``; absent keys are skipped.

        Raises ``ConfigStoreError`` if an existing key cannot be exported.
        """
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        written = []
        for key_path, filename in self._store_exports():
            dest_file = destination / filename
            if self.store.export_key(key_path, dest_file):
                _log.info("Exported %s -> %s", key_path, dest_file.name)
                written.append(dest_file)
            else:
                _log.debug("Key not present, nothing to export: %s", key_path)
        return written

    # ── File relocation ───────────────────────────────────────────────

    def relocate_manifest(
        self, manifest: BackupManifest, install_root: Path, destination: Path
    ) -> list[str]:
        """Move every existing manifest entry from ``install_root`` into
        ``destination`` under the same relative path, plus any helper
        library files at the root. Returns the relative paths moved.

        Missing entries are skipped. ``OSError`` propagates.
        """
        install_root, destination = Path(install_root), Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        moved: list[str] = []

        for rel in manifest.folders:
            src = resolve(install_root, rel)
            if src.is_dir():
                move_tree(src, resolve(destination, rel))
                moved.append(rel)

        for rel in manifest.files:
            src = resolve(install_root, rel)
            if src.is_file():
                move_file(src, resolve(destination, rel))
                moved.append(rel)

        for helper in files_with_prefix(install_root, HELPER_LIBRARY_PREFIX):
            move_file(helper, destination / helper.name)
            moved.append(helper.name)

        if moved:
            _log.info("Moved %d %s item(s) to %s", len(moved), manifest.name, destination)
        return moved

    def relocate_folder(self, install_root: Path, relative_path: str, destination: Path) -> bool:
        src = resolve(install_root, relative_path)
        if not src.is_dir():
            return False
        move_tree(src, resolve(destination, relative_path))
        _log.info("Moved folder %s to %s", relative_path, destination)
        return True

    # ── Full backup ───────────────────────────────────────────────────

    def backup_installation(
        self,
        install_root: Path,
        include_config: bool = True,
        extra_folders: tuple[str, ...] = (),
        manifests: tuple[BackupManifest, ...] = BACKUP_MANIFESTS,
    ) -> Path:
        """Create a backup directory and move the artifacts of ``manifests``
        into it.

        Any failure raises ``BackupError``; what was already moved stays in
        the backup directory.
        """
        try:
            backup_dir = self.new_backup_dir(install_root)
            if include_config:
                self.backup_configuration(backup_dir)
            for manifest in manifests:
                self.relocate_manifest(manifest, install_root, backup_dir)
            for folder in extra_folders:
                self.relocate_folder(install_root, folder, backup_dir)
        except (OSError, ConfigStoreError) as e:
            raise BackupError(f"Backup of {install_root} failed: {e}") from e
        return backup_dir

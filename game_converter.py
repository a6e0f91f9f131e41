"""
Conversion of an existing game installation to the mod-loader layout.

The conversion is a linear state machine. Every stage returns a
``StageResult``; a FATAL result moves the machine to FAILED and nothing
after it runs. There is no automatic rollback: once the BACKUP stage has
run, the backup directory it created is the recovery path.

    START -> VALIDATE_PATH -> PIRACY_CHECK -> LOCATION_CHECK -> RELOCATE
          -> BACKUP -> CACHE_CLEANUP -> LEGACY_FILE_DELETE
          -> MUSIC_PATH_MIGRATION -> COMPAT_FLAG_CLEANUP -> EXE_REPLACE
          -> DRIVER_INSTALL -> DONE

Usage::

    converter = GameConverter(settings, store, provided_exe_dir=..., driver_bundle=...)
    outcome = converter.convert()
    if not outcome.success:
        print(converter.failed_stage, outcome.message)
"""

from __future__ import annotations

import enum
import logging
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from backup_manager import BackupError, BackupManager
from config_store import COMPAT_FLAGS_KEY_PATH, OLD_CONVERTER_KEY_PATH, ConfigStore, ConfigStoreError
from driver_bundle import DriverBundleError, open_driver_bundle
from fs_utils import copy_tree, files_equal, files_with_prefix, matching_files, move_tree, remove_path
from installation import GameVersion
from location_policy import LocationPolicy
from manifests import (
    BACKUP_MANIFESTS,
    CACHE_FILE_PATTERNS,
    COMPAT_FLAG_TARGETS,
    DRIVER_DESCRIPTOR,
    DRIVER_FILE_PREFIX,
    DRIVER_SUBFOLDERS,
    DRIVER_UPDATE_MANIFESTS,
    EXPECTED_FOLDERS,
    HELPER_LIBRARY_PREFIX,
    LAUNCHER_EXECUTABLES,
    LEGACY_PATCH_FOLDER,
    MUSIC_SOURCE_DIR,
    MUSIC_TARGET_DIR,
    resolve,
)
from piracy_detector import PiracyDetector
from progress import LoggingProgressSink, ProgressSink, percent_of

_log = logging.getLogger(__name__)

if sys.platform == "win32":
    DEFAULT_RELOCATION_TARGET = Path(r"C:\Games\Final Fantasy VII")
else:
    DEFAULT_RELOCATION_TARGET = Path("/var/games/Final Fantasy VII")


class ConversionStage(enum.Enum):
    START = "start"
    VALIDATE_PATH = "validate_path"
    PIRACY_CHECK = "piracy_check"
    LOCATION_CHECK = "location_check"
    RELOCATE = "relocate"
    BACKUP = "backup"
    CACHE_CLEANUP = "cache_cleanup"
    LEGACY_FILE_DELETE = "legacy_file_delete"
    MUSIC_PATH_MIGRATION = "music_path_migration"
    COMPAT_FLAG_CLEANUP = "compat_flag_cleanup"
    EXE_REPLACE = "exe_replace"
    DRIVER_INSTALL = "driver_install"
    DONE = "done"
    FAILED = "failed"


# Successor of each stage when it does not fail. Any FATAL result goes to FAILED.
TRANSITIONS: dict[ConversionStage, ConversionStage] = {
    ConversionStage.START: ConversionStage.VALIDATE_PATH,
    ConversionStage.VALIDATE_PATH: ConversionStage.PIRACY_CHECK,
    ConversionStage.PIRACY_CHECK: ConversionStage.LOCATION_CHECK,
    ConversionStage.LOCATION_CHECK: ConversionStage.RELOCATE,
    ConversionStage.RELOCATE: ConversionStage.BACKUP,
    ConversionStage.BACKUP: ConversionStage.CACHE_CLEANUP,
    ConversionStage.CACHE_CLEANUP: ConversionStage.LEGACY_FILE_DELETE,
    ConversionStage.LEGACY_FILE_DELETE: ConversionStage.MUSIC_PATH_MIGRATION,
    ConversionStage.MUSIC_PATH_MIGRATION: ConversionStage.COMPAT_FLAG_CLEANUP,
    ConversionStage.COMPAT_FLAG_CLEANUP: ConversionStage.EXE_REPLACE,
    ConversionStage.EXE_REPLACE: ConversionStage.DRIVER_INSTALL,
    ConversionStage.DRIVER_INSTALL: ConversionStage.DONE,
}

TERMINAL_STAGES = (ConversionStage.DONE, ConversionStage.FAILED)

# Stages that change files or the configuration store.
DESTRUCTIVE_STAGES = frozenset({
    ConversionStage.CACHE_CLEANUP,
    ConversionStage.LEGACY_FILE_DELETE,
    ConversionStage.MUSIC_PATH_MIGRATION,
    ConversionStage.COMPAT_FLAG_CLEANUP,
    ConversionStage.EXE_REPLACE,
    ConversionStage.DRIVER_INSTALL,
})

STAGE_LABELS = {
    ConversionStage.VALIDATE_PATH: "Checking install path",
    ConversionStage.PIRACY_CHECK: "Checking game files",
    ConversionStage.LOCATION_CHECK: "Checking install location",
    ConversionStage.RELOCATE: "Copying game to a new location",
    ConversionStage.BACKUP: "Backing up files and registry",
    ConversionStage.CACHE_CLEANUP: "Deleting cache files",
    ConversionStage.LEGACY_FILE_DELETE: "Removing old converter files",
    ConversionStage.MUSIC_PATH_MIGRATION: "Moving music files",
    ConversionStage.COMPAT_FLAG_CLEANUP: "Removing compatibility flags",
    ConversionStage.EXE_REPLACE: "Copying game executables",
    ConversionStage.DRIVER_INSTALL: "Installing game driver",
}

STEP_STAGES = list(TRANSITIONS)[1:]


class StageStatus(enum.Enum):
    PASSED = "passed"
    SKIPPED = "skipped"
    FATAL = "fatal"


@dataclass(frozen=True)
class StageResult:
    stage: ConversionStage
    status: StageStatus
    message: str = ""

    @classmethod
    def passed(cls, stage: ConversionStage, message: str = "") -> StageResult:
        return cls(stage, StageStatus.PASSED, message)

    @classmethod
    def skipped(cls, stage: ConversionStage, message: str = "") -> StageResult:
        return cls(stage, StageStatus.SKIPPED, message)

    @classmethod
    def fatal(cls, stage: ConversionStage, message: str) -> StageResult:
        return cls(stage, StageStatus.FATAL, message)

    @property
    def is_fatal(self) -> bool:
        return self.status is StageStatus.FATAL


@dataclass(frozen=True)
class ConversionOutcome:
    success: bool
    message: str = ""


@dataclass(frozen=True)
class ConversionSettings:
    target_version: GameVersion
    root_path: Path
    perform_backup: bool = True  # backup is unconditional; kept for callers
    remove_legacy_if_found: bool = False
    relocate_if_protected: bool = False
    relocation_target_path: Optional[Path] = None
    use_alternate_keyboard_profile: bool = False


# ── Configuration-store cleanup ───────────────────────────────────────


def delete_compatibility_flags(store: ConfigStore) -> list[str]:
    """Delete compatibility-layer values the old converter set on the game
    executables. Returns the value names removed."""
    removed = []
    for value_name in list(store.list_value_names(COMPAT_FLAGS_KEY_PATH)):
        lowered = value_name.lower()
        if any(target in lowered for target in COMPAT_FLAG_TARGETS):
            store.delete_value(COMPAT_FLAGS_KEY_PATH, value_name)
            removed.append(value_name)
            _log.info("Removed compatibility flag for %s", value_name)
    return removed


class GameConverter:
    """
    Converts one installation. One instance per run.

    Workflow:
        1. convert() for the full conversion state machine
        2. install_latest_driver(), create_missing_folders() and friends as
           standalone maintenance operations on an existing root
    """

    def __init__(
        self,
        settings: ConversionSettings,
        store: ConfigStore,
        *,
        provided_exe_dir: str | Path,
        driver_bundle: str | Path,
        detector: PiracyDetector | None = None,
        location_policy: LocationPolicy | None = None,
        backup_manager: BackupManager | None = None,
        progress: ProgressSink | None = None,
    ):
        self.settings = settings
        self.store = store
        self.install_path = Path(settings.root_path)
        self.provided_exe_dir = Path(provided_exe_dir)
        self.driver_bundle = Path(driver_bundle)
        self.detector = detector or PiracyDetector()
        self.location_policy = location_policy or LocationPolicy()
        self.backup_manager = backup_manager or BackupManager(store)
        self._progress = progress or LoggingProgressSink()

        # Run state
        self.state = ConversionStage.START
        self.history: list[StageResult] = []
        self.failed_stage: ConversionStage | None = None
        self.backup_dir: Path | None = None
        self._relocation_required = False

        self._handlers: dict[ConversionStage, Callable[[], StageResult]] = {
            ConversionStage.VALIDATE_PATH: self._validate_path,
            ConversionStage.PIRACY_CHECK: self._piracy_check,
            ConversionStage.LOCATION_CHECK: self._location_check,
            ConversionStage.RELOCATE: self._relocate,
            ConversionStage.BACKUP: self._backup,
            ConversionStage.CACHE_CLEANUP: self._cache_cleanup,
            ConversionStage.LEGACY_FILE_DELETE: self._legacy_file_delete,
            ConversionStage.MUSIC_PATH_MIGRATION: self._music_path_migration,
            ConversionStage.COMPAT_FLAG_CLEANUP: self._compat_flag_cleanup,
            ConversionStage.EXE_REPLACE: self._exe_replace,
            ConversionStage.DRIVER_INSTALL: self._driver_install,
        }

    def send_message(self, msg: str):
        self._progress.on_message(msg)

    # ── State machine ─────────────────────────────────────────────────

    def run_stage(self, stage: ConversionStage) -> StageResult:
        result = self._handlers[stage]()
        self.history.append(result)
        if result.is_fatal:
            _log.warning("Stage %s failed: %s", stage.value, result.message)
        elif result.message:
            _log.info("Stage %s %s: %s", stage.value, result.status.value, result.message)
        return result

    def convert(self) -> ConversionOutcome:
        if self.state is not ConversionStage.START:
            raise RuntimeError("GameConverter instances run once; create a new one")

        self.state = TRANSITIONS[ConversionStage.START]
        while self.state not in TERMINAL_STAGES:
            stage = self.state
            index = STEP_STAGES.index(stage)
            self._progress.on_progress(STAGE_LABELS[stage], percent_of(index, len(STEP_STAGES)))

            result = self.run_stage(stage)
            if result.is_fatal:
                self.failed_stage = stage
                self.state = ConversionStage.FAILED
                return ConversionOutcome(False, result.message)
            self.state = TRANSITIONS[stage]

        self._progress.on_progress("Conversion complete", 100.0)
        return ConversionOutcome(True, f"Game converted at {self.install_path}")

    @property
    def destructive_change_made(self) -> bool:
        return any(r.stage in DESTRUCTIVE_STAGES for r in self.history)

    # ── Stages ────────────────────────────────────────────────────────

    def _validate_path(self) -> StageResult:
        stage = ConversionStage.VALIDATE_PATH
        if not self.install_path.is_dir():
            return StageResult.fatal(stage, f"Path to Install does not exist: {self.install_path}")
        return StageResult.passed(stage)

    def _piracy_check(self) -> StageResult:
        stage = ConversionStage.PIRACY_CHECK
        try:
            pirated = self.detector.is_pirated(self.install_path)
        except OSError:
            _log.exception("Could not scan %s", self.install_path)
            return StageResult.fatal(stage, f"Could not read the game files at {self.install_path}")
        if pirated:
            return StageResult.fatal(
                stage,
                "Cannot patch the game, the copy of the game does not seem legitimate. "
                "The offending file has been logged for troubleshooting.",
            )
        return StageResult.passed(stage)

    def _location_check(self) -> StageResult:
        stage = ConversionStage.LOCATION_CHECK
        if not self.location_policy.is_protected(self.install_path):
            return StageResult.passed(stage)
        if self.settings.relocate_if_protected:
            self._relocation_required = True
            return StageResult.passed(stage, "install is in a system folder; relocation requested")
        return StageResult.fatal(
            stage,
            "Cannot patch the game as it is installed in a system folder which can "
            "potentially cause some modding errors. Install the game in a location "
            f"such as {DEFAULT_RELOCATION_TARGET}",
        )

    def _relocate(self) -> StageResult:
        stage = ConversionStage.RELOCATE
        if not self._relocation_required:
            return StageResult.skipped(stage)

        target = Path(self.settings.relocation_target_path or DEFAULT_RELOCATION_TARGET)
        failure = f"Failed to copy the game to {target} ... Cannot continue patching."
        self.send_message(f"Copying game from {self.install_path} to {target} ...")
        if not self.copy_game(target):
            return StageResult.fatal(stage, failure)

        self.install_path = target
        return StageResult.passed(stage, f"working root is now {target}")

    def _backup(self) -> StageResult:
        stage = ConversionStage.BACKUP
        extra = (LEGACY_PATCH_FOLDER,) if self.settings.remove_legacy_if_found else ()
        try:
            self.backup_dir = self.backup_manager.backup_installation(
                self.install_path, extra_folders=extra
            )
        except BackupError:
            _log.exception("Backup failed")
            return StageResult.fatal(stage, "Failed to backup files and/or registry")
        self.send_message(f"Backup created at {self.backup_dir}")
        return StageResult.passed(stage, str(self.backup_dir))

    def _cache_cleanup(self) -> StageResult:
        stage = ConversionStage.CACHE_CLEANUP
        try:
            self.delete_cache_files()
        except OSError:
            _log.exception("Cache cleanup failed")
            return StageResult.fatal(stage, "Failed to delete cache files from install path")
        return StageResult.passed(stage)

    def _legacy_file_delete(self) -> StageResult:
        stage = ConversionStage.LEGACY_FILE_DELETE
        try:
            self.delete_legacy_files()
            self.store.delete_key(OLD_CONVERTER_KEY_PATH)
        except (OSError, ConfigStoreError):
            _log.exception("Legacy file removal failed")
            return StageResult.fatal(stage, "Failed to delete old game converter and app files")
        return StageResult.passed(stage)

    def _music_path_migration(self) -> StageResult:
        stage = ConversionStage.MUSIC_PATH_MIGRATION
        if self.settings.target_version is GameVersion.ORIGINAL:
            return StageResult.skipped(stage, "original release keeps its music layout")

        src = resolve(self.install_path, MUSIC_SOURCE_DIR)
        if not src.is_dir():
            return StageResult.skipped(stage, f"no {MUSIC_SOURCE_DIR} folder")
        try:
            move_tree(src, resolve(self.install_path, MUSIC_TARGET_DIR))
        except OSError:
            _log.exception("Music migration failed")
            return StageResult.fatal(stage, "Failed to move music_ogg to music/vgmstream")
        return StageResult.passed(stage)

    def _compat_flag_cleanup(self) -> StageResult:
        stage = ConversionStage.COMPAT_FLAG_CLEANUP
        try:
            delete_compatibility_flags(self.store)
        except ConfigStoreError:
            _log.exception("Compatibility flag cleanup failed")
            return StageResult.fatal(
                stage, "Failed to delete compatibility flags set by old game converter"
            )
        return StageResult.passed(stage)

    def _exe_replace(self) -> StageResult:
        stage = ConversionStage.EXE_REPLACE
        try:
            self.copy_launchers()
        except OSError:
            _log.exception("Copying launchers failed")
            return StageResult.fatal(stage, "Failed to copy ff7.exe to install path")
        return StageResult.passed(stage)

    def _driver_install(self) -> StageResult:
        stage = ConversionStage.DRIVER_INSTALL
        try:
            with open_driver_bundle(self.driver_bundle) as bundle_dir:
                self.install_driver_files(bundle_dir)
        except (OSError, DriverBundleError):
            _log.exception("Driver install failed")
            return StageResult.fatal(stage, "Failed to copy open gl drivers to install path")
        return StageResult.passed(stage)

    # ── Operations used by the stages ─────────────────────────────────

    def copy_game(self, target: Path) -> bool:
        source = self.install_path
        if not source.is_dir():
            return False
        target = Path(target)
        if target.resolve() == source.resolve() or source.resolve() in target.resolve().parents:
            _log.error("Relocation target %s is inside the install %s", target, source)
            return False
        try:
            copy_tree(source, target)
        except OSError:
            _log.exception("Copying game to %s failed", target)
            return False
        return True

    def delete_cache_files(self) -> list[Path]:
        removed = []
        for pattern in CACHE_FILE_PATTERNS:
            for path in matching_files(self.install_path, pattern):
                path.unlink()
                removed.append(path)
        if removed:
            _log.info("Deleted %d cache file(s)", len(removed))
        return removed

    def delete_legacy_files(self, manifests=BACKUP_MANIFESTS) -> list[str]:
        """Remove whatever entries of ``manifests`` are still present."""
        removed = []
        for manifest in manifests:
            for rel in manifest.files + manifest.folders:
                path = resolve(self.install_path, rel)
                if path.exists():
                    remove_path(path)
                    removed.append(rel)
        for helper in files_with_prefix(self.install_path, HELPER_LIBRARY_PREFIX):
            helper.unlink()
            removed.append(helper.name)
        return removed

    def copy_launchers(self):
        for name in LAUNCHER_EXECUTABLES:
            src = self.provided_exe_dir / name
            self.send_message(f"\tcopying {name} to {self.install_path}")
            shutil.copy2(src, self.install_path / name)

    def install_driver_files(self, bundle_dir: Path):
        for sub in DRIVER_SUBFOLDERS:
            src = bundle_dir / sub
            if not src.is_dir():
                raise DriverBundleError(f"Driver bundle has no {sub}/ folder: {bundle_dir}")
            self.send_message(f"\tcopying driver {sub} to {self.install_path / sub}")
            copy_tree(src, self.install_path / sub)

        driver_files = files_with_prefix(bundle_dir, DRIVER_FILE_PREFIX)
        if not driver_files:
            raise DriverBundleError(f"Driver bundle has no {DRIVER_FILE_PREFIX}* files: {bundle_dir}")
        for file in driver_files:
            shutil.copy2(file, self.install_path / file.name)

    # ── Maintenance operations ────────────────────────────────────────

    def install_latest_driver(self) -> ConversionOutcome:
        """Replace the installed driver if it differs from the bundled one.

        Takes its own backup first; a backup made earlier in the same run is
        never reused. Only driver files and legacy converter leftovers are
        moved, so the launchers stay where they are.
        """
        if not self.install_path.is_dir():
            return ConversionOutcome(False, f"Path to Install does not exist: {self.install_path}")

        try:
            with open_driver_bundle(self.driver_bundle) as bundle_dir:
                if files_equal(self.install_path / DRIVER_DESCRIPTOR, bundle_dir / DRIVER_DESCRIPTOR):
                    self.send_message(f"\t{DRIVER_DESCRIPTOR} file is up to date.")
                    return ConversionOutcome(True, "Game driver is up to date")

                self.send_message("\tattempting backup of driver files ...")
                self.backup_dir = self.backup_manager.backup_installation(
                    self.install_path, include_config=False, manifests=DRIVER_UPDATE_MANIFESTS
                )
                self.delete_cache_files()
                self.delete_legacy_files(DRIVER_UPDATE_MANIFESTS)
                self.send_message(f"\tcopying game driver to {self.install_path} ...")
                self.install_driver_files(bundle_dir)
        except (OSError, BackupError, DriverBundleError):
            _log.exception("Game driver update failed")
            return ConversionOutcome(False, "Failed to update the game driver")

        return ConversionOutcome(True, f"Game driver updated (backup at {self.backup_dir})")

    def copy_missing_plugins_and_shaders(self) -> list[str]:
        """Restore driver subfolders that have gone missing. Returns what was restored."""
        restored = []
        with open_driver_bundle(self.driver_bundle) as bundle_dir:
            for rel in ("plugins", "shaders", "shaders/nolight"):
                target = resolve(self.install_path, rel)
                if target.is_dir():
                    continue
                self.send_message(f"\tmissing {rel} folder. Copying from game driver ...")
                copy_tree(resolve(bundle_dir, rel), target)
                restored.append(rel)
        return restored

    def is_exe_different(self) -> bool:
        return any(
            not files_equal(self.provided_exe_dir / name, self.install_path / name)
            for name in LAUNCHER_EXECUTABLES
        )

    def create_missing_folders(self) -> list[Path]:
        """Create the expected folder tree. Never fails; returns what was created."""
        created = []
        for rel in EXPECTED_FOLDERS:
            path = resolve(self.install_path, rel)
            if path.is_dir():
                continue
            try:
                self.send_message(f"\tcreating missing directory {path}")
                path.mkdir(parents=True, exist_ok=True)
                created.append(path)
            except OSError as e:
                _log.warning("Could not create %s: %s", path, e)
        return created


def convert_installation(
    settings: ConversionSettings, store: ConfigStore, **kwargs
) -> ConversionOutcome:
    """One-shot conversion; ``kwargs`` are passed to ``GameConverter``."""
    return GameConverter(settings, store, **kwargs).convert()

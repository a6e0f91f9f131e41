"""
Shared fixtures and helpers for the FF7 Install Converter test suite.
"""

from datetime import datetime
from pathlib import Path

import pytest

from backup_manager import BackupManager
from config_store import (
    COMPAT_FLAGS_KEY_PATH,
    FF7_APP_KEY_PATH,
    INSTALL_LOCATION_VALUE,
    OLD_CONVERTER_KEY_PATH,
    STEAM_KEY_PATH_64,
    JsonConfigStore,
)
from game_converter import ConversionSettings, GameConverter
from installation import GameVersion
from location_policy import LocationPolicy

FIXED_NOW = datetime(2020, 5, 1, 12, 30, 45)


def write(path: Path, data: str | bytes = "x") -> Path:
    """Create ``path`` (and parents) with the given content."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, bytes):
        path.write_bytes(data)
    else:
        path.write_text(data, encoding="utf-8")
    return path


def populate(root: Path, relative_paths, data: str = "x"):
    for rel in relative_paths:
        write(root.joinpath(*rel.split("/")), data)


class RecordingProgress:
    """Progress sink that remembers everything it was told."""

    def __init__(self):
        self.messages: list[str] = []
        self.progress: list[tuple[str, float]] = []

    def on_message(self, text: str) -> None:
        self.messages.append(text)

    def on_progress(self, text: str, percent: float) -> None:
        self.progress.append((text, percent))


@pytest.fixture
def progress():
    return RecordingProgress()


@pytest.fixture
def install_root(tmp_path):
    """A legacy install: old converter leftovers, cache files, old-style music."""
    root = tmp_path / "Games" / "FF7"
    write(root / "ff7.exe", "old ff7")
    write(root / "ff7config.exe", "old config")
    write(root / "ff7_opengl.fgd", "old driver")
    write(root / "ff7_opengl.cfg", "old cfg")
    write(root / "multi.dll", "multi")
    write(root / "Hext.dll", "hext")
    write(root / "EasyHook32.dll", "hook")
    write(root / "EasyHook.dll", "hook")
    write(root / "plugins" / "ff7music.fgp", "music plugin")
    write(root / "DLL_in" / "readme.txt", "dll in")
    write(root / "Hext_in" / "sub" / "patch.txt", "hext in")
    write(root / "S1D.P", "cache")
    write(root / "T12D.P", "cache")
    write(root / "data" / "music_ogg" / "aseri.ogg", "ogg")
    write(root / "data" / "field" / "flevel.lgp", "field")
    return root


@pytest.fixture
def exe_dir(tmp_path):
    d = tmp_path / "provided"
    write(d / "ff7.exe", "new ff7")
    write(d / "FF7Config.exe", "new config")
    return d


@pytest.fixture
def driver_dir(tmp_path):
    d = tmp_path / "driver"
    write(d / "ff7_opengl.fgd", "new driver")
    write(d / "ff7_opengl.cfg", "new cfg")
    write(d / "plugins" / "ffmpeg_movies.fgp", "movies plugin")
    write(d / "shaders" / "main.frag", "frag")
    write(d / "shaders" / "nolight" / "main.frag", "nolight frag")
    return d


@pytest.fixture
def store(install_root):
    return JsonConfigStore(initial={
        STEAM_KEY_PATH_64: {INSTALL_LOCATION_VALUE: str(install_root)},
        FF7_APP_KEY_PATH: {"Path": str(install_root), "DataDrive": "D:\\"},
        OLD_CONVERTER_KEY_PATH: {"Converted": 1},
        COMPAT_FLAGS_KEY_PATH: {
            str(install_root / "ff7.exe"): "~ WINXPSP3",
            str(install_root / "FF7Config.exe"): "~ RUNASADMIN",
            r"C:\Other\game.exe": "~ HIGHDPIAWARE",
        },
    })


@pytest.fixture
def backup_manager(store):
    return BackupManager(store, clock=lambda: FIXED_NOW, is_64bit=True)


@pytest.fixture
def make_converter(store, exe_dir, driver_dir, backup_manager, progress):
    """Factory for a converter wired to the test fixtures; keyword
    arguments override settings fields or converter collaborators."""

    def _make(root: Path, **overrides) -> GameConverter:
        collaborators = {
            key: overrides.pop(key)
            for key in ("detector", "location_policy", "backup_manager", "driver_bundle")
            if key in overrides
        }
        settings = ConversionSettings(
            target_version=overrides.pop("target_version", GameVersion.DIGITAL_DISTRIBUTION),
            root_path=root,
            **overrides,
        )
        return GameConverter(
            settings,
            store,
            provided_exe_dir=exe_dir,
            driver_bundle=collaborators.pop("driver_bundle", driver_dir),
            location_policy=collaborators.pop("location_policy", LocationPolicy([])),
            backup_manager=collaborators.pop("backup_manager", backup_manager),
            progress=progress,
            **collaborators,
        )

    return _make

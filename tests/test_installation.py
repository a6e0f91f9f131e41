from pathlib import Path

from config_store import (
    FF7_APP_KEY_PATH,
    INSTALL_LOCATION_VALUE,
    RERELEASE_KEY_PATH,
    STEAM_KEY_PATH_32,
    STEAM_KEY_PATH_64,
    JsonConfigStore,
)
from installation import GameVersion, detect_installation, steam_key_candidates


def test_nothing_recorded():
    record = detect_installation(JsonConfigStore(), is_64bit=True)
    assert record.detected_version is GameVersion.UNKNOWN
    assert record.root_path is None
    assert record.found is False


def test_steam_release_wins():
    store = JsonConfigStore(initial={
        STEAM_KEY_PATH_64: {INSTALL_LOCATION_VALUE: r"D:\Steam\FF7"},
        RERELEASE_KEY_PATH: {INSTALL_LOCATION_VALUE: r"C:\Square Enix\FF7"},
        FF7_APP_KEY_PATH: {"Path": r"C:\Games\FF7"},
    })
    record = detect_installation(store, is_64bit=True)
    assert record.detected_version is GameVersion.DIGITAL_DISTRIBUTION
    assert record.root_path == Path(r"D:\Steam\FF7")


def test_steam_32bit_view_on_64bit_os():
    store = JsonConfigStore(initial={STEAM_KEY_PATH_32: {INSTALL_LOCATION_VALUE: r"D:\FF7"}})
    assert detect_installation(store, is_64bit=True).detected_version is GameVersion.DIGITAL_DISTRIBUTION


def test_64bit_view_ignored_on_32bit_os():
    store = JsonConfigStore(initial={STEAM_KEY_PATH_64: {INSTALL_LOCATION_VALUE: r"D:\FF7"}})
    assert detect_installation(store, is_64bit=False).detected_version is GameVersion.UNKNOWN


def test_rerelease():
    store = JsonConfigStore(initial={
        RERELEASE_KEY_PATH: {INSTALL_LOCATION_VALUE: r"C:\Square Enix\FF7"},
        FF7_APP_KEY_PATH: {"Path": r"C:\Games\FF7"},
    })
    assert detect_installation(store, is_64bit=True).detected_version is GameVersion.RERELEASED


def test_original_release():
    store = JsonConfigStore(initial={FF7_APP_KEY_PATH: {"Path": r"C:\Games\FF7"}})
    record = detect_installation(store, is_64bit=True)
    assert record.detected_version is GameVersion.ORIGINAL
    assert record.found is True


def test_blank_location_is_ignored():
    store = JsonConfigStore(initial={
        STEAM_KEY_PATH_64: {INSTALL_LOCATION_VALUE: "  "},
        FF7_APP_KEY_PATH: {"Path": r"C:\Games\FF7"},
    })
    assert detect_installation(store, is_64bit=True).detected_version is GameVersion.ORIGINAL


def test_steam_key_candidates():
    assert steam_key_candidates(True) == [STEAM_KEY_PATH_64, STEAM_KEY_PATH_32]
    assert steam_key_candidates(False) == [STEAM_KEY_PATH_32]

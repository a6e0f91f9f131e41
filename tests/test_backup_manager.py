import json

import pytest

from backup_manager import BackupError, BackupManager
from config_store import (
    FF7_APP_KEY_PATH,
    INSTALL_LOCATION_VALUE,
    STEAM_KEY_PATH_32,
    STEAM_KEY_PATH_64,
    ConfigStoreError,
    JsonConfigStore,
)
from manifests import LEGACY_CONVERTER_MANIFEST
from tests.conftest import FIXED_NOW, write


def test_backup_dir_is_timestamped(tmp_path, backup_manager):
    d = backup_manager.new_backup_dir(tmp_path)
    assert d == tmp_path / "BackupGC2020" / "Backup_20200501123045"
    assert d.is_dir()


def test_backup_dirs_never_collide(tmp_path, backup_manager):
    dirs = [backup_manager.new_backup_dir(tmp_path) for _ in range(3)]
    assert [d.name for d in dirs] == [
        "Backup_20200501123045",
        "Backup_20200501123045_2",
        "Backup_20200501123045_3",
    ]


def test_custom_backup_folder_name(tmp_path, store):
    manager = BackupManager(store, backup_folder_name="Saved", clock=lambda: FIXED_NOW)
    assert manager.new_backup_dir(tmp_path).parent == tmp_path / "Saved"


def test_configuration_exports_present_keys(tmp_path, backup_manager):
    written = backup_manager.backup_configuration(tmp_path / "out")
    assert [p.name for p in written] == ["FF7-01.reg", "FF7-03.reg", "FF7-OldGC.reg"]

    exported = json.loads((tmp_path / "out" / "FF7-03.reg").read_text(encoding="utf-8"))
    # the application key export includes its subkeys
    assert set(exported) == {FF7_APP_KEY_PATH, FF7_APP_KEY_PATH + r"\GameConverterkeys"}


def test_steam_export_falls_back_to_32bit_view(tmp_path):
    store = JsonConfigStore(initial={STEAM_KEY_PATH_32: {INSTALL_LOCATION_VALUE: r"D:\FF7"}})
    manager = BackupManager(store, clock=lambda: FIXED_NOW, is_64bit=True)
    written = manager.backup_configuration(tmp_path)
    assert [p.name for p in written] == ["FF7-01.reg"]
    assert STEAM_KEY_PATH_32 in json.loads(written[0].read_text(encoding="utf-8"))


def test_steam_export_prefers_64bit_view(tmp_path):
    store = JsonConfigStore(initial={
        STEAM_KEY_PATH_64: {INSTALL_LOCATION_VALUE: r"D:\FF7"},
        STEAM_KEY_PATH_32: {INSTALL_LOCATION_VALUE: r"E:\FF7"},
    })
    manager = BackupManager(store, clock=lambda: FIXED_NOW, is_64bit=True)
    written = manager.backup_configuration(tmp_path)
    assert STEAM_KEY_PATH_64 in json.loads(written[0].read_text(encoding="utf-8"))


def test_empty_store_exports_nothing(tmp_path):
    manager = BackupManager(JsonConfigStore(), clock=lambda: FIXED_NOW, is_64bit=False)
    assert manager.backup_configuration(tmp_path) == []


def test_relocate_manifest_keeps_relative_paths(tmp_path, install_root, backup_manager):
    dest = tmp_path / "backup"
    moved = backup_manager.relocate_manifest(LEGACY_CONVERTER_MANIFEST, install_root, dest)

    assert set(moved) == {
        "DLL_in", "Hext_in", "multi.dll", "Hext.dll", "EasyHook.dll", "EasyHook32.dll"
    }
    assert (dest / "Hext_in" / "sub" / "patch.txt").read_text() == "hext in"
    assert not (install_root / "Hext_in").exists()
    assert not (install_root / "EasyHook.dll").exists()


def test_relocate_manifest_skips_missing_entries(tmp_path, backup_manager):
    root = tmp_path / "empty"
    root.mkdir()
    assert backup_manager.relocate_manifest(LEGACY_CONVERTER_MANIFEST, root, tmp_path / "b") == []


def test_relocate_folder(tmp_path, install_root, backup_manager):
    write(install_root / "The_Reunion" / "a" / "b.txt")
    assert backup_manager.relocate_folder(install_root, "The_Reunion", tmp_path / "b") is True
    assert (tmp_path / "b" / "The_Reunion" / "a" / "b.txt").is_file()
    assert backup_manager.relocate_folder(install_root, "The_Reunion", tmp_path / "b") is False


def test_backup_installation(install_root, backup_manager):
    backup = backup_manager.backup_installation(install_root)
    assert (backup / "FF7-01.reg").is_file()
    assert (backup / "ff7.exe").read_text() == "old ff7"
    assert (backup / "DLL_in" / "readme.txt").is_file()
    # cache files and data are not part of any manifest
    assert (install_root / "S1D.P").is_file()
    assert (install_root / "data" / "field" / "flevel.lgp").is_file()


def test_backup_installation_without_config(install_root, backup_manager):
    backup = backup_manager.backup_installation(install_root, include_config=False)
    assert not list(backup.glob("*.reg"))


class BrokenStore(JsonConfigStore):
    def export_key(self, key_path, dest_file):
        raise ConfigStoreError("access denied")


def test_store_failure_becomes_backup_error(install_root):
    manager = BackupManager(
        BrokenStore(initial={FF7_APP_KEY_PATH: {"Path": "x"}}),
        clock=lambda: FIXED_NOW,
        is_64bit=False,
    )
    with pytest.raises(BackupError):
        manager.backup_installation(install_root)
    # the partial backup stays where it is
    assert (install_root / "BackupGC2020" / "Backup_20200501123045").is_dir()
    assert (install_root / "ff7.exe").is_file()

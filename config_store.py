"""
Configuration Store Adapter.

The converter persists nothing itself; it reads and clears records kept by
the platform (the Windows registry on Windows). Everything the core needs
goes through the small ``ConfigStore`` interface below so the conversion
logic can run against a JSON file or an in-memory dict in tests.

Key paths are full registry-style paths, e.g.
``HKEY_LOCAL_MACHINE\\SOFTWARE\\Square Soft, Inc.\\Final Fantasy VII``.
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

_log = logging.getLogger(__name__)

# ── Known key paths ───────────────────────────────────────────────────

STEAM_KEY_PATH_64 = (
    r"HKEY_LOCAL_MACHINE\SOFTWARE\WOW6432Node\Microsoft\Windows"
    r"\CurrentVersion\Uninstall\Steam App 39140"
)
STEAM_KEY_PATH_32 = (
    r"HKEY_LOCAL_MACHINE\SOFTWARE\Microsoft\Windows"
    r"\CurrentVersion\Uninstall\Steam App 39140"
)
RERELEASE_KEY_PATH = (
    r"HKEY_LOCAL_MACHINE\SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion"
    r"\Uninstall\{141B8BA9-BFFD-4635-AF64-078E31010EC3}_is1"
)
SQUARESOFT_KEY_PATH = r"HKEY_LOCAL_MACHINE\SOFTWARE\WOW6432Node\Square Soft, Inc."
FF7_APP_KEY_PATH = SQUARESOFT_KEY_PATH + r"\Final Fantasy VII"
OLD_CONVERTER_KEY_PATH = FF7_APP_KEY_PATH + r"\GameConverterkeys"
COMPAT_FLAGS_KEY_PATH = (
    r"HKEY_CURRENT_USER\Software\Microsoft\Windows NT"
    r"\CurrentVersion\AppCompatFlags\Layers"
)

INSTALL_LOCATION_VALUE = "InstallLocation"
APP_PATH_VALUE = "Path"


class ConfigStoreError(Exception):
    """A store operation failed for a reason other than the key being absent."""


class ConfigStore(Protocol):
    def get(self, key_path: str, value_name: str) -> Optional[Any]: ...

    def export_key(self, key_path: str, dest_file: Path) -> bool:
        """Write the key to ``dest_file``. Returns False if the key is absent."""
        ...

    def delete_key(self, key_path: str) -> None: ...

    def delete_value(self, key_path: str, value_name: str) -> None: ...

    def list_value_names(self, key_path: str) -> Sequence[str]: ...


def _norm_key(key_path: str) -> str:
    return key_path.strip("\\").lower()


# ── JSON / in-memory store ────────────────────────────────────────────


class JsonConfigStore:
    """Registry-shaped key/value store backed by a JSON file.

    With ``path=None`` the store lives purely in memory. Key paths are
    case-insensitive (as registry paths are); value names keep their case
    but are looked up case-insensitively.

    File format::

        {"HKEY_...\\Key": {"ValueName": "value", ...}, ...}
    """

    def __init__(self, path: str | Path | None = None, initial: dict[str, dict[str, Any]] | None = None):
        self.path = Path(path) if path is not None else None
        self._keys: dict[str, tuple[str, dict[str, Any]]] = {}
        if self.path is not None and self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise ConfigStoreError(f"Could not read config store {self.path}: {e}") from e
            for key, values in data.items():
                self._keys[_norm_key(key)] = (key, dict(values))
        for key, values in (initial or {}).items():
            self.set_values(key, values, save=False)

    # ── persistence ──

    def _save(self):
        if self.path is None:
            return
        data = {orig: values for orig, values in self._keys.values()}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            raise ConfigStoreError(f"Could not write config store {self.path}: {e}") from e

    def set_values(self, key_path: str, values: dict[str, Any], save: bool = True):
        norm = _norm_key(key_path)
        orig, current = self._keys.get(norm, (key_path.strip("\\"), {}))
        current.update(values)
        self._keys[norm] = (orig, current)
        if save:
            self._save()

    def has_key(self, key_path: str) -> bool:
        return _norm_key(key_path) in self._keys

    # ── ConfigStore ──

    def _find_value_name(self, values: dict[str, Any], value_name: str) -> Optional[str]:
        lowered = value_name.lower()
        for name in values:
            if name.lower() == lowered:
                return name
        return None

    def get(self, key_path: str, value_name: str) -> Optional[Any]:
        entry = self._keys.get(_norm_key(key_path))
        if entry is None:
            return None
        name = self._find_value_name(entry[1], value_name)
        return entry[1][name] if name is not None else None

    def export_key(self, key_path: str, dest_file: Path) -> bool:
        norm = _norm_key(key_path)
        exported = {
            orig: values
            for key, (orig, values) in self._keys.items()
            if key == norm or key.startswith(norm + "\\")
        }
        if not exported:
            return False
        try:
            Path(dest_file).write_text(
                json.dumps(exported, indent=2, ensure_ascii=False), encoding="utf-8"
            )
        except OSError as e:
            raise ConfigStoreError(f"Could not export {key_path} to {dest_file}: {e}") from e
        return True

    def delete_key(self, key_path: str) -> None:
        norm = _norm_key(key_path)
        doomed = [k for k in self._keys if k == norm or k.startswith(norm + "\\")]
        for key in doomed:
            del self._keys[key]
        if doomed:
            self._save()

    def delete_value(self, key_path: str, value_name: str) -> None:
        entry = self._keys.get(_norm_key(key_path))
        if entry is None:
            return
        name = self._find_value_name(entry[1], value_name)
        if name is not None:
            del entry[1][name]
            self._save()

    def list_value_names(self, key_path: str) -> Sequence[str]:
        entry = self._keys.get(_norm_key(key_path))
        return list(entry[1]) if entry else []


# ── Windows registry store ────────────────────────────────────────────


class WindowsRegistryStore:
    """ConfigStore over the live Windows registry.

    Reads and value deletes go through ``winreg``; exports and recursive key
    deletes shell out to ``reg.exe``, which handles subkeys for us.
    """

    def __init__(self, reg_exe: str = "reg"):
        self.reg_exe = reg_exe

    @staticmethod
    def _split(key_path: str):
        import winreg

        hives = {
            "HKEY_LOCAL_MACHINE": winreg.HKEY_LOCAL_MACHINE,
            "HKEY_CURRENT_USER": winreg.HKEY_CURRENT_USER,
            "HKEY_CLASSES_ROOT": winreg.HKEY_CLASSES_ROOT,
            "HKEY_USERS": winreg.HKEY_USERS,
        }
        hive_name, _, sub_key = key_path.strip("\\").partition("\\")
        try:
            return hives[hive_name.upper()], sub_key
        except KeyError:
            raise ConfigStoreError(f"Unknown registry hive in {key_path!r}") from None

    def get(self, key_path: str, value_name: str) -> Optional[Any]:
        import winreg

        hive, sub_key = self._split(key_path)
        try:
            with winreg.OpenKey(hive, sub_key) as key:
                return winreg.QueryValueEx(key, value_name)[0]
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ConfigStoreError(f"Could not read {key_path}\\{value_name}: {e}") from e

    def _run_reg(self, args: list[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            [self.reg_exe, *args], capture_output=True, text=True, timeout=60
        )

    def _key_exists(self, key_path: str) -> bool:
        import winreg

        hive, sub_key = self._split(key_path)
        try:
            with winreg.OpenKey(hive, sub_key):
                return True
        except FileNotFoundError:
            return False

    def export_key(self, key_path: str, dest_file: Path) -> bool:
        if not self._key_exists(key_path):
            _log.info("Registry key not present, skipping export: %s", key_path)
            return False
        proc = self._run_reg(["export", key_path, str(dest_file), "/y"])
        if proc.returncode != 0:
            raise ConfigStoreError(
                f"reg export {key_path} failed ({proc.returncode}): {proc.stdout}{proc.stderr}"
            )
        return True

    def delete_key(self, key_path: str) -> None:
        if not self._key_exists(key_path):
            return
        proc = self._run_reg(["delete", key_path, "/f"])
        if proc.returncode != 0:
            raise ConfigStoreError(
                f"reg delete {key_path} failed ({proc.returncode}): {proc.stdout}{proc.stderr}"
            )

    def delete_value(self, key_path: str, value_name: str) -> None:
        import winreg

        hive, sub_key = self._split(key_path)
        try:
            with winreg.OpenKey(hive, sub_key, 0, winreg.KEY_SET_VALUE) as key:
                winreg.DeleteValue(key, value_name)
        except FileNotFoundError:
            return
        except OSError as e:
            raise ConfigStoreError(f"Could not delete {key_path}\\{value_name}: {e}") from e

    def list_value_names(self, key_path: str) -> Sequence[str]:
        import winreg

        hive, sub_key = self._split(key_path)
        names = []
        try:
            with winreg.OpenKey(hive, sub_key) as key:
                count = winreg.QueryInfoKey(key)[1]
                for i in range(count):
                    names.append(winreg.EnumValue(key, i)[0])
        except FileNotFoundError:
            return []
        except OSError as e:
            raise ConfigStoreError(f"Could not enumerate {key_path}: {e}") from e
        return names


def open_default_store(json_path: str | Path | None = None) -> ConfigStore:
    """The registry on Windows, a JSON file (or memory) everywhere else."""
    if sys.platform == "win32":
        return WindowsRegistryStore()
    return JsonConfigStore(json_path)

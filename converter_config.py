"""Application settings.

Values come from keyword arguments (the command line), then environment
variables prefixed ``FF7CONV_``, then the defaults below.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from backup_manager import BACKUP_FOLDER_NAME
from game_converter import DEFAULT_RELOCATION_TARGET

APP_DIR_NAME = "FF7InstallConverter"


def _app_data_dir() -> Path:
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA", Path.home())) / APP_DIR_NAME
    return Path.home() / ".local" / "share" / APP_DIR_NAME


def _resources_dir() -> Path:
    # frozen builds carry their resources next to the executable
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent / "Resources"
    return Path(__file__).parent / "Resources"


class ConverterConfig(BaseSettings):
    provided_exe_dir: Path = _resources_dir() / "FF7_1.02_Eng_Patch"
    driver_bundle: Path = _resources_dir() / "Game Driver"
    backup_folder_name: str = BACKUP_FOLDER_NAME
    relocation_target: Path = DEFAULT_RELOCATION_TARGET
    piracy_rules_file: Optional[Path] = None
    protected_folders: Optional[list[Path]] = None
    config_store_file: Path = _app_data_dir() / "config_store.json"
    log_dir: Path = _app_data_dir()

    model_config = SettingsConfigDict(env_prefix="FF7CONV_")

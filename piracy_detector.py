"""
Heuristic detection of unauthorized copies of the game.

Rule tables live in ``PiracyRules`` so they can be tuned from a JSON file
without touching the classifier. Example rules file:

{
    "skipped_folders": ["The_Reunion", "mods", "direct"],
    "allowed_files": ["00422 [F - Crackling fire, looped].ogg"],
    "allowed_substring_combinations": [["torrent", "reunion"]],
    "exact_filenames": ["ali213.ini", "rld.dll", "gameservices.dll"],
    "extensions": [".nfo"],
    "keywords": ["crack", "warez", "torrent", "skidrow", "goodies"]
}

Keyword and allowed-combination checks run against the full path of each
entry, including the folders above the install root.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_log = logging.getLogger(__name__)


def _lowered(values: list[str]) -> list[str]:
    return [v.lower() for v in values if v]


class PiracyRules(BaseModel):
    """Ordered lookup tables for the piracy classifier. All matching is
    case-insensitive; values are stored lowercased."""

    model_config = ConfigDict(validate_default=True)

    skipped_folders: list[str] = Field(
        default_factory=lambda: ["The_Reunion", "mods", "direct"]
    )
    allowed_files: list[str] = Field(
        default_factory=lambda: ["00422 [F - Crackling fire, looped].ogg"]
    )
    allowed_substring_combinations: list[list[str]] = Field(
        default_factory=lambda: [["torrent", "reunion"]]
    )
    exact_filenames: list[str] = Field(
        default_factory=lambda: ["ali213.ini", "rld.dll", "gameservices.dll"]
    )
    extensions: list[str] = Field(default_factory=lambda: [".nfo"])
    keywords: list[str] = Field(
        default_factory=lambda: ["crack", "warez", "torrent", "skidrow", "goodies"]
    )

    @field_validator("skipped_folders", "allowed_files", "exact_filenames", "keywords")
    @classmethod
    def _lower(cls, v: list[str]) -> list[str]:
        return _lowered(v)

    @field_validator("extensions")
    @classmethod
    def _normalize_ext(cls, v: list[str]) -> list[str]:
        return [e if e.startswith(".") else "." + e for e in _lowered(v)]

    @field_validator("allowed_substring_combinations")
    @classmethod
    def _lower_combos(cls, v: list[list[str]]) -> list[list[str]]:
        combos = [_lowered(c) for c in v]
        if any(not c for c in combos):
            raise ValueError("allowed_substring_combinations entries must not be empty")
        return combos


def load_piracy_rules(path: str | Path) -> PiracyRules:
    """Parse a JSON rules file.

    Raises ``pydantic.ValidationError`` on bad content and
    ``json.JSONDecodeError`` if the file is not JSON.
    """
    return PiracyRules.model_validate(json.loads(Path(path).read_text(encoding="utf-8")))


class PiracyDetector:
    """Pure, read-only classifier over the names found in an install root."""

    def __init__(self, rules: PiracyRules | None = None):
        self.rules = rules or PiracyRules()

    # ── per-entry classification ──

    def is_entry_pirated(self, name: str, full_path: str) -> bool:
        lname = name.lower()
        if lname in self.rules.exact_filenames:
            return True
        if os.path.splitext(lname)[1] in self.rules.extensions:
            return True
        lpath = full_path.lower()
        return any(k in lpath for k in self.rules.keywords)

    def _is_allowed(self, name: str, full_path: str) -> bool:
        if name.lower() in self.rules.allowed_files:
            return True
        lpath = full_path.lower()
        return any(
            all(part in lpath for part in combo)
            for combo in self.rules.allowed_substring_combinations
        )

    # ── tree walk ──

    @staticmethod
    def _walk_error(exc: OSError):
        _log.warning("Could not read %s during piracy scan: %s", exc.filename, exc)
        raise exc

    @classmethod
    def _walk_entries(cls, folder: Path) -> Iterator[Path]:
        # an unreadable folder must not pass as clean
        for dirpath, dirnames, filenames in os.walk(folder, onerror=cls._walk_error):
            for name in dirnames + filenames:
                yield Path(dirpath) / name

    def find_pirated_entry(self, root: str | Path) -> Optional[Path]:
        """Return the first entry that looks pirated, or None.

        Raises ``OSError`` if part of the tree cannot be read.
        """
        root = Path(root)
        entries = sorted(root.iterdir())

        for folder in (e for e in entries if e.is_dir()):
            if folder.name.lower() in self.rules.skipped_folders:
                continue
            for entry in self._walk_entries(folder):
                if self._is_allowed(entry.name, str(entry)):
                    continue
                if self.is_entry_pirated(entry.name, str(entry)):
                    return entry

        for file in (e for e in entries if not e.is_dir()):
            if self.is_entry_pirated(file.name, str(file)):
                return file

        return None

    def is_pirated(self, root: str | Path) -> bool:
        hit = self.find_pirated_entry(root)
        if hit is not None:
            _log.warning("Install looks illegitimate, matched entry: %s", hit)
            return True
        return False

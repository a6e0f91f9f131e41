"""
Verification that an installation contains the data files the mod loader
needs, recovering missing ones from the install discs where possible.

Verification is diagnostic: apart from the supplementary check (which has
no second source to fall back on) every check visits every file and
reports the full list of what could not be found or copied.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from manifests import (
    CORE_INSTALL_FILES,
    INSTALL_MEDIA_LABELS,
    MEDIA_GAME_FOLDER,
    MOVIE_ALTERNATE_DIR,
    MOVIE_DIR,
    MOVIE_FILES,
    MOVIES_WITH_ALTERNATE,
    MUSIC_FILES,
    MUSIC_SOURCE_DIR,
    MUSIC_TARGET_DIR,
    SUPPLEMENTARY_FALLBACK_DIR,
    SUPPLEMENTARY_FILES,
    resolve,
)
from media_locator import MediaLocator, SystemMediaLocator
from progress import LoggingProgressSink, ProgressSink, percent_of

_log = logging.getLogger(__name__)


@dataclass
class VerificationReport:
    success: bool
    missing: list[str] = field(default_factory=list)
    copied: list[str] = field(default_factory=list)

    def merge(self, other: VerificationReport) -> VerificationReport:
        return VerificationReport(
            success=self.success and other.success,
            missing=self.missing + other.missing,
            copied=self.copied + other.copied,
        )


class AssetVerifier:
    def __init__(
        self,
        media_locator: MediaLocator | None = None,
        progress: ProgressSink | None = None,
    ):
        self.media_locator = media_locator or SystemMediaLocator()
        self._progress = progress or LoggingProgressSink()

    def send_message(self, msg: str):
        self._progress.on_message(msg)

    # ── Helpers ───────────────────────────────────────────────────────

    def _copy(self, src: Path, dst: Path) -> bool:
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
            return True
        except OSError as e:
            _log.error("Failed to copy %s to %s: %s", src, dst, e)
            self.send_message(f"... \tfailed to copy {src}: {e}")
            return False

    def _copy_from_media(
        self, labels: Iterable[str], relative_path: str, target: Path
    ) -> Optional[str]:
        """Copy ``<mount>/FF7/<relative_path>`` from the first labelled
        volume that has it. Returns the label used, or None."""
        for label in labels:
            mount = self.media_locator.resolve_volume_label(label)
            if mount is None:
                continue
            source = resolve(Path(mount) / MEDIA_GAME_FOLDER, relative_path)
            if not source.is_file():
                continue
            self.send_message(f"... \tfound file on {label} at {mount}. Copying file ...")
            if self._copy(source, target):
                return label
        return None

    # ── Core install set ──────────────────────────────────────────────

    def verify_core_assets(self, root: str | Path) -> VerificationReport:
        """Every full-install file must be present; missing ones are copied
        from the install discs. All files are attempted before reporting."""
        root = Path(root)
        report = VerificationReport(success=True)
        total = len(CORE_INSTALL_FILES)

        for i, rel in enumerate(CORE_INSTALL_FILES):
            target = resolve(root, rel)
            self._progress.on_progress(f"... checking if file exists: {target}", percent_of(i, total))
            if target.is_file():
                continue

            self.send_message("... \t file not found. Scanning discs for files ...")
            if self._copy_from_media(INSTALL_MEDIA_LABELS, rel, target):
                report.copied.append(rel)
                continue

            self.send_message(f"... \t failed to find {rel} on any disc ...")
            report.missing.append(rel)
            report.success = False

        return report

    # ── Supplementary per-category files ──────────────────────────────

    def verify_supplementary_assets(self, root: str | Path) -> VerificationReport:
        """Missing ``data/<file>`` entries are copied from ``data/lang-en``.
        Stops at the first file that cannot be restored."""
        root = Path(root)
        report = VerificationReport(success=True)
        total = len(SUPPLEMENTARY_FILES)

        for i, rel in enumerate(SUPPLEMENTARY_FILES):
            target = resolve(root / "data", rel)
            self._progress.on_progress(f"... checking if file exists: {target}", percent_of(i, total))
            if target.is_file():
                continue

            self.send_message("... \tfile not found")
            source = resolve(root / SUPPLEMENTARY_FALLBACK_DIR, rel)
            if not source.is_file():
                self.send_message(f"... \tcannot copy source file because it is missing at {source}")
                report.missing.append(rel)
                report.success = False
                return report

            self.send_message(f"... \tcopying file from {source}")
            if not self._copy(source, target):
                report.missing.append(rel)
                report.success = False
                return report
            report.copied.append(rel)

        return report

    # ── Movies ────────────────────────────────────────────────────────

    def _alternate_movie(self, root: Path, name: str) -> Optional[Path]:
        if name not in MOVIES_WITH_ALTERNATE:
            return None
        alt = resolve(root, MOVIE_ALTERNATE_DIR) / name
        return alt if alt.is_file() else None

    def verify_movie_assets(self, root: str | Path) -> VerificationReport:
        """Read-only check that every movie is present (in the movie folder
        or, for the special-cased two, at their alternate location)."""
        root = Path(root)
        movie_dir = resolve(root, MOVIE_DIR)
        report = VerificationReport(success=True)
        for name in MOVIE_FILES:
            if (movie_dir / name).is_file() or self._alternate_movie(root, name):
                continue
            report.missing.append(name)
        report.success = not report.missing
        return report

    def copy_movie_assets(self, root: str | Path) -> VerificationReport:
        """Copy every missing movie into the movie folder, trying the alternate
        location first (where defined) and then each listed disc in order."""
        root = Path(root)
        movie_dir = resolve(root, MOVIE_DIR)
        report = VerificationReport(success=True)
        unresolved: list[str] = []
        total = len(MOVIE_FILES)

        for i, (name, labels) in enumerate(MOVIE_FILES.items()):
            target = movie_dir / name
            if target.is_file():
                continue

            alt = self._alternate_movie(root, name)
            if alt is not None:
                self._progress.on_progress(f"\tcopying {alt} to {target}", percent_of(i, total))
                if self._copy(alt, target):
                    report.copied.append(name)
                    continue

            self._progress.on_progress(f"\tsearching discs for {name}", percent_of(i, total))
            if self._copy_from_media(labels, f"movies/{name}", target):
                report.copied.append(name)
                continue

            report.missing.append(name)
            unresolved.append(f"\t - {name} on {','.join(labels)}")

        if unresolved:
            report.success = False
            self.send_message("\tThe following movie files are missing and can not be copied:")
            self.send_message("\n".join(unresolved))
        return report

    # ── Music ─────────────────────────────────────────────────────────

    def verify_music_assets(self, root: str | Path) -> VerificationReport:
        target_dir = resolve(Path(root), MUSIC_TARGET_DIR)
        target_dir.mkdir(parents=True, exist_ok=True)
        report = VerificationReport(success=True)
        for name in MUSIC_FILES:
            if not (target_dir / name).is_file():
                self.send_message(f"\tmissing music file at {target_dir / name}")
                report.missing.append(name)
        report.success = not report.missing
        return report

    def copy_music_assets(self, root: str | Path) -> list[str]:
        """Best effort: copy whatever music is available from the old music
        folder. Individual failures are logged and skipped."""
        root = Path(root)
        target_dir = resolve(root, MUSIC_TARGET_DIR)
        source_dir = resolve(root, MUSIC_SOURCE_DIR)
        target_dir.mkdir(parents=True, exist_ok=True)
        copied = []

        for name in MUSIC_FILES:
            target = target_dir / name
            source = source_dir / name
            if target.is_file() or not source.is_file():
                continue
            self.send_message(f"\tcopying music file {source} to {target}")
            try:
                shutil.copy2(source, target)
                copied.append(name)
            except OSError as e:
                _log.warning("Could not copy %s: %s", source, e)
        return copied

    # ── Everything ────────────────────────────────────────────────────

    def verify_installation(self, root: str | Path) -> VerificationReport:
        """Run every check, restoring what can be restored."""
        report = self.verify_core_assets(root)
        report = report.merge(self.verify_supplementary_assets(root))
        report = report.merge(self.copy_movie_assets(root))
        self.copy_music_assets(root)
        return report.merge(self.verify_music_assets(root))

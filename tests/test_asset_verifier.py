import pytest

from asset_verifier import AssetVerifier, VerificationReport
from manifests import (
    CORE_INSTALL_FILES,
    MOVIE_FILES,
    MUSIC_FILES,
    SUPPLEMENTARY_FILES,
    resolve,
)
from media_locator import StaticMediaLocator
from tests.conftest import populate, write


class RecordingLocator(StaticMediaLocator):
    """Static locator that remembers which labels were asked for."""

    def __init__(self, mounts=None):
        super().__init__(mounts)
        self.calls: list[str] = []

    def resolve_volume_label(self, label):
        self.calls.append(label)
        return super().resolve_volume_label(label)


@pytest.fixture
def root(tmp_path):
    return tmp_path / "FF7"


@pytest.fixture
def discs(tmp_path):
    return {label: tmp_path / "media" / label for label in
            ("ff7install", "ff7disc1", "ff7disc2", "ff7disc3")}


def on_disc(mount, relative_path, data="disc"):
    return write(resolve(mount / "FF7", relative_path), data)


def verifier(mounts, progress):
    return AssetVerifier(RecordingLocator(mounts), progress)


# ── Core install files ────────────────────────────────────────────────


def test_core_assets_all_present(root, progress):
    populate(root, CORE_INSTALL_FILES)
    report = verifier({}, progress).verify_core_assets(root)
    assert report == VerificationReport(success=True)


def test_core_assets_restored_from_disc(root, discs, progress):
    for rel in CORE_INSTALL_FILES:
        on_disc(discs["ff7disc1"], rel)
    report = verifier({"ff7disc1": discs["ff7disc1"]}, progress).verify_core_assets(root)

    assert report.success is True
    assert report.copied == list(CORE_INSTALL_FILES)
    assert all(resolve(root, rel).read_text() == "disc" for rel in CORE_INSTALL_FILES)


def test_core_assets_attempts_every_file(root, discs, progress):
    # first entry is nowhere, the rest are on the install disc
    missing = CORE_INSTALL_FILES[0]
    for rel in CORE_INSTALL_FILES[1:]:
        on_disc(discs["ff7install"], rel)
    report = verifier({"ff7install": discs["ff7install"]}, progress).verify_core_assets(root)

    assert report.success is False
    assert report.missing == [missing]
    assert report.copied == list(CORE_INSTALL_FILES[1:])


def test_core_assets_prefers_install_disc(root, discs, progress):
    rel = CORE_INSTALL_FILES[0]
    populate(root, CORE_INSTALL_FILES[1:])
    on_disc(discs["ff7install"], rel, "from install")
    on_disc(discs["ff7disc1"], rel, "from disc1")
    v = verifier(discs, progress)
    assert v.verify_core_assets(root).success
    assert resolve(root, rel).read_text() == "from install"
    assert v.media_locator.calls == ["ff7install"]


def test_repeated_verification_gives_the_same_answer(root, progress):
    populate(root, CORE_INSTALL_FILES[::2])
    populate(root / "data" / "movies", list(MOVIE_FILES)[::3])
    v = verifier({}, progress)

    first = (v.verify_core_assets(root), v.verify_movie_assets(root))
    second = (v.verify_core_assets(root), v.verify_movie_assets(root))
    assert first == second
    assert first[0].success is False


def test_core_progress_is_monotonic(root, progress):
    verifier({}, progress).verify_core_assets(root)
    percents = [pct for _text, pct in progress.progress]
    assert len(percents) == len(CORE_INSTALL_FILES)
    assert percents == sorted(percents)


# ── Supplementary files ───────────────────────────────────────────────


def test_supplementary_restored_from_fallback(root, progress):
    populate(root / "data" / "lang-en", SUPPLEMENTARY_FILES, "english")
    report = verifier({}, progress).verify_supplementary_assets(root)

    assert report.success is True
    assert report.copied == list(SUPPLEMENTARY_FILES)
    assert (root / "data" / "kernel" / "KERNEL.BIN").read_text() == "english"


def test_supplementary_stops_at_first_unrecoverable(root, progress):
    populate(root / "data" / "lang-en", SUPPLEMENTARY_FILES[1:])
    report = verifier({}, progress).verify_supplementary_assets(root)

    assert report.success is False
    assert report.missing == [SUPPLEMENTARY_FILES[0]]
    assert report.copied == []
    assert not resolve(root / "data", SUPPLEMENTARY_FILES[1]).exists()


# ── Movies ────────────────────────────────────────────────────────────


def test_verify_movies_is_read_only(root, progress):
    report = verifier({}, progress).verify_movie_assets(root)
    assert report.success is False
    assert len(report.missing) == len(MOVIE_FILES) == 106
    assert not root.exists()


def test_verify_movies_accepts_alternate_location(root, progress):
    movie_dir = root / "data" / "movies"
    populate(movie_dir, [n for n in MOVIE_FILES if n != "ending2.avi"])
    write(root / "data" / "lang-en" / "movies" / "ending2.avi")
    assert verifier({}, progress).verify_movie_assets(root).success is True


def test_copy_movies_from_alternate_and_discs(root, discs, progress):
    movie_dir = root / "data" / "movies"
    absent = {"biglight.avi", "ending2.avi", "monitor.avi"}
    populate(movie_dir, [n for n in MOVIE_FILES if n not in absent])
    write(root / "data" / "lang-en" / "movies" / "ending2.avi", "alternate")
    on_disc(discs["ff7disc2"], "movies/biglight.avi", "disc2")
    on_disc(discs["ff7disc1"], "movies/monitor.avi", "disc1")
    on_disc(discs["ff7disc2"], "movies/monitor.avi", "disc2")

    v = verifier(discs, progress)
    report = v.copy_movie_assets(root)

    assert report.success is True
    assert sorted(report.copied) == sorted(absent)
    assert (movie_dir / "ending2.avi").read_text() == "alternate"
    assert (movie_dir / "biglight.avi").read_text() == "disc2"
    # monitor.avi is on discs 1 and 2; the first listed disc wins
    assert (movie_dir / "monitor.avi").read_text() == "disc1"
    assert v.media_locator.calls == ["ff7disc2", "ff7disc1"]


def test_copy_movies_reports_unresolved(root, progress):
    movie_dir = root / "data" / "movies"
    populate(movie_dir, [n for n in MOVIE_FILES if n != "opening.avi"])
    report = verifier({}, progress).copy_movie_assets(root)

    assert report.success is False
    assert report.missing == ["opening.avi"]
    assert "\tThe following movie files are missing and can not be copied:" in progress.messages
    assert "\t - opening.avi on ff7disc1" in progress.messages


# ── Music ─────────────────────────────────────────────────────────────


def test_verify_music_lists_missing_files(root, progress):
    populate(root / "music" / "vgmstream", MUSIC_FILES[2:])
    report = verifier({}, progress).verify_music_assets(root)
    assert report.success is False
    assert report.missing == list(MUSIC_FILES[:2])


def test_verify_music_creates_target_folder(root, progress):
    report = verifier({}, progress).verify_music_assets(root)
    assert (root / "music" / "vgmstream").is_dir()
    assert len(report.missing) == len(MUSIC_FILES) == 94


def test_copy_music_is_best_effort(root, progress, monkeypatch):
    import asset_verifier

    populate(root / "data" / "music_ogg", ["aseri.ogg", "bat.ogg", "boo.ogg"])
    write(root / "music" / "vgmstream" / "boo.ogg", "already there")
    real_copy = asset_verifier.shutil.copy2

    def flaky_copy(src, dst):
        if src.name == "aseri.ogg":
            raise PermissionError("locked")
        return real_copy(src, dst)

    monkeypatch.setattr(asset_verifier.shutil, "copy2", flaky_copy)
    copied = verifier({}, progress).copy_music_assets(root)

    assert copied == ["bat.ogg"]
    assert (root / "music" / "vgmstream" / "boo.ogg").read_text() == "already there"


# ── Whole installation ────────────────────────────────────────────────


def test_verify_installation_complete(root, progress):
    populate(root, CORE_INSTALL_FILES)
    populate(root / "data", SUPPLEMENTARY_FILES)
    populate(root / "data" / "movies", MOVIE_FILES)
    populate(root / "data" / "music_ogg", MUSIC_FILES)

    report = verifier({}, progress).verify_installation(root)

    assert report.success is True
    assert report.missing == []
    # music is copied over from the old location before it is checked
    assert (root / "music" / "vgmstream" / MUSIC_FILES[-1]).is_file()


def test_verify_installation_collects_all_failures(root, progress):
    populate(root, CORE_INSTALL_FILES[1:])
    populate(root / "data", SUPPLEMENTARY_FILES)
    populate(root / "data" / "movies", [n for n in MOVIE_FILES if n != "bike.avi"])
    populate(root / "music" / "vgmstream", MUSIC_FILES[1:])

    report = verifier({}, progress).verify_installation(root)

    assert report.success is False
    assert report.missing == [CORE_INSTALL_FILES[0], "bike.avi", MUSIC_FILES[0]]

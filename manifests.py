"""
Fixed file tables used by the converter.

Backup manifests name the legacy artifacts that are moved out of the way
before a conversion; asset manifests name the data files a complete
installation must contain and where a missing one can be recovered from.
All of it is constant data.

Relative paths always use forward slashes; join them with ``resolve()``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path


class EntryKind(enum.Enum):
    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True)
class ManifestEntry:
    kind: EntryKind
    relative_path: str


@dataclass(frozen=True)
class BackupManifest:
    name: str
    version: int
    entries: tuple[ManifestEntry, ...]

    @property
    def files(self) -> list[str]:
        return [e.relative_path for e in self.entries if e.kind is EntryKind.FILE]

    @property
    def folders(self) -> list[str]:
        return [e.relative_path for e in self.entries if e.kind is EntryKind.FOLDER]


def resolve(root: Path, relative_path: str) -> Path:
    return Path(root).joinpath(*relative_path.split("/"))


def _files(*names: str) -> tuple[ManifestEntry, ...]:
    return tuple(ManifestEntry(EntryKind.FILE, n) for n in names)


def _folders(*names: str) -> tuple[ManifestEntry, ...]:
    return tuple(ManifestEntry(EntryKind.FOLDER, n) for n in names)


# ── Backup manifests ──────────────────────────────────────────────────

# Left behind by the old game converter and the loaders it installed.
LEGACY_CONVERTER_MANIFEST = BackupManifest(
    name="legacy-converter",
    version=1,
    entries=_folders("DLL_in", "Hext_in", "LOADR", "Multi_DLL", "FF7anyCDv2", "BackupGC")
    + _files(
        "RunFFVIIConfig.bat",
        "RunFFVIIConfig.exe",
        "ff7_mo.exe",
        "ff7_nt.exe",
        "ff7_ss.exe",
        "ff7_ss_safer.exe",
        "ff7_bc.exe",
        "Multi_Readme.txt",
        "cfg.log",
        "Hext.log",
        "FF7_GC.log",
        "eax.dll",
        "Hext.dll",
        "multi.dll",
    ),
)

# Previous-version files of the launcher and game driver this tool installs.
CURRENT_APP_MANIFEST = BackupManifest(
    name="current-app",
    version=1,
    entries=_files(
        "app.log",
        "ff7.exe",
        "ff7config.exe",
        "ff7input.cfg",
        "ff7_opengl.cfg",
        "ff7_opengl.fgd",
        "plugins/ff7music.fgp",
        "plugins/ffmpeg_movies.fgp",
        "plugins/vgmstream_music.fgp",
    ),
)

BACKUP_MANIFESTS = (LEGACY_CONVERTER_MANIFEST, CURRENT_APP_MANIFEST)

# Driver-only slice of CURRENT_APP_MANIFEST, used when just the driver is
# replaced. Not one of BACKUP_MANIFESTS; the launchers stay in place.
DRIVER_MANIFEST = BackupManifest(
    name="current-app-driver",
    version=1,
    entries=tuple(
        e for e in CURRENT_APP_MANIFEST.entries
        if e.relative_path.startswith(("ff7_opengl.", "plugins/"))
    ),
)
DRIVER_UPDATE_MANIFESTS = (LEGACY_CONVERTER_MANIFEST, DRIVER_MANIFEST)

# Code-injection helper library; any root file starting with this goes too.
HELPER_LIBRARY_PREFIX = "EasyHook"

# Community patch folder relocated when the caller asks for its removal.
LEGACY_PATCH_FOLDER = "The_Reunion"

# Engine cache files at the install root.
CACHE_FILE_PATTERNS = ("S*D.P", "T*D.P")


def overlapping_paths(*manifests: BackupManifest) -> set[str]:
    """Relative paths claimed by more than one manifest (case-insensitive)."""
    seen: dict[str, str] = {}
    overlap: set[str] = set()
    for manifest in manifests:
        for entry in manifest.entries:
            key = entry.relative_path.lower()
            owner = seen.setdefault(key, manifest.name)
            if owner != manifest.name:
                overlap.add(entry.relative_path)
    return overlap


# ── Launcher and driver files ─────────────────────────────────────────

LAUNCHER_EXECUTABLES = ("ff7.exe", "FF7Config.exe")
DRIVER_DESCRIPTOR = "ff7_opengl.fgd"
DRIVER_FILE_PREFIX = "ff7_opengl."
DRIVER_SUBFOLDERS = ("plugins", "shaders")

# Compatibility-layer values set by the old converter on these executables.
COMPAT_FLAG_TARGETS = ("ff7.exe", "ff7config.exe", "ff7music.exe")

# ── Music migration ───────────────────────────────────────────────────

MUSIC_SOURCE_DIR = "data/music_ogg"
MUSIC_TARGET_DIR = "music/vgmstream"

# ── Expected folder tree ──────────────────────────────────────────────

EXPECTED_FOLDERS = ("mods", "mods/7th Heaven", "mods/Textures") + tuple(
    f"direct/{sub}"
    for sub in (
        "battle", "char", "chocobo", "coaster", "condor", "cr", "disc", "flevel",
        "high", "magic", "menu", "midi", "moviecam", "snowboard", "sub", "world",
    )
)

# ── Asset manifests ───────────────────────────────────────────────────

INSTALL_MEDIA_LABELS = ("ff7install", "ff7disc1", "ff7disc2", "ff7disc3")
MEDIA_GAME_FOLDER = "FF7"

# Files only present on a full ("maximum") install. Recoverable from any
# install disc, checked in INSTALL_MEDIA_LABELS order.
CORE_INSTALL_FILES = (
    "data/wm/world_us.lgp",
    "data/field/char.lgp",
    "data/field/flevel.lgp",
    "data/minigame/chocobo.lgp",
    "data/minigame/coaster.lgp",
    "data/minigame/condor.lgp",
    "data/minigame/high-us.lgp",
    "data/minigame/snowboard-us.lgp",
    "data/minigame/sub.lgp",
)

# Relative to <root>/data; fallback copy lives under <root>/data/lang-en.
SUPPLEMENTARY_FILES = (
    "battle/camdat0.bin",
    "battle/camdat1.bin",
    "battle/camdat2.bin",
    "battle/co.bin",
    "battle/scene.bin",
    "kernel/KERNEL.BIN",
    "kernel/kernel2.bin",
    "kernel/WINDOW.BIN",
    "movies/ending2.avi",
    "movies/jenova_e.avi",
)
SUPPLEMENTARY_FALLBACK_DIR = "data/lang-en"

MOVIE_DIR = "data/movies"
MOVIE_ALTERNATE_DIR = "data/lang-en/movies"
MOVIES_WITH_ALTERNATE = ("ending2.avi", "jenova_e.avi")

DISC1 = ("ff7disc1",)
DISC2 = ("ff7disc2",)
DISC3 = ("ff7disc3",)
DISC1_2 = ("ff7disc1", "ff7disc2")
DISC2_3 = ("ff7disc2", "ff7disc3")
ALL_DISCS = ("ff7disc1", "ff7disc2", "ff7disc3")

MOVIE_FILES: dict[str, tuple[str, ...]] = {
    "biglight.avi": DISC2,
    "bike.avi": DISC1,
    "biskdead.avi": DISC1,
    "boogdemo.avi": DISC1,
    "boogdown.avi": ALL_DISCS,
    "boogstar.avi": DISC1,
    "boogup.avi": ALL_DISCS,
    "brgnvl.avi": DISC1,
    "c_scene1.avi": DISC2,
    "c_scene2.avi": DISC2,
    "c_scene3.avi": DISC2,
    "canon.avi": DISC2,
    "canonh1p.avi": DISC2,
    "canonh3f.avi": DISC2,
    "canonht0.avi": DISC2,
    "canonht1.avi": DISC2,
    "canonht2.avi": DISC2,
    "canonon.avi": DISC2,
    "car_1209.avi": DISC1,
    "d_ropego.avi": ALL_DISCS,
    "d_ropein.avi": ALL_DISCS,
    "dumcrush.avi": DISC2,
    "earithdd.avi": DISC1,
    "eidoslogo.avi": ALL_DISCS,
    "ending1.avi": DISC3,
    "ending2.avi": DISC3,
    "ending3.avi": DISC3,
    "Explode.avi": ALL_DISCS,
    "fallpl.avi": DISC1,
    "fcar.avi": DISC3,
    "feelwin0.avi": DISC2,
    "feelwin1.avi": DISC2,
    "fship2.avi": ALL_DISCS,
    "funeral.avi": DISC1,
    "gelnica.avi": DISC2,
    "gold1.avi": DISC1,
    "gold2.avi": ALL_DISCS,
    "gold3.avi": ALL_DISCS,
    "gold4.avi": ALL_DISCS,
    "gold5.avi": ALL_DISCS,
    "gold6.avi": ALL_DISCS,
    "gold7.avi": DISC1,
    "gold7_2.avi": DISC1,
    "greatpit.avi": DISC2,
    "hiwind0.avi": DISC1,
    "hwindfly.avi": DISC2,
    "hwindjet.avi": DISC2,
    "jairofal.avi": DISC1,
    "jairofly.avi": DISC1,
    "jenova_e.avi": DISC1,
    "junair_d.avi": ALL_DISCS,
    "junair_u.avi": ALL_DISCS,
    "junelego.avi": ALL_DISCS,
    "junelein.avi": ALL_DISCS,
    "junin_go.avi": ALL_DISCS,
    "junin_in.avi": ALL_DISCS,
    "junon.avi": DISC1,
    "junsea.avi": DISC2,
    "last4_2.avi": DISC3,
    "last4_3.avi": DISC3,
    "last4_4.avi": DISC3,
    "lastflor.avi": DISC3,
    "lastmap.avi": DISC3,
    "loslake1.avi": DISC2,
    "lslmv.avi": DISC2,
    "mainplr.avi": DISC1,
    "meteofix.avi": DISC2,
    "meteosky.avi": DISC2,
    "mk8.avi": DISC1,
    "mkup.avi": DISC1,
    "monitor.avi": DISC1_2,
    "moviecam.lgp": ALL_DISCS,
    "mtcrl.avi": DISC1,
    "mtnvl.avi": DISC1,
    "mtnvl2.avi": DISC1,
    "nivlsfs.avi": DISC1,
    "northmk.avi": DISC1,
    "nrcrl.avi": DISC2,
    "nrcrl_b.avi": DISC2,
    "nvlmk.avi": DISC1,
    "ontrain.avi": DISC1,
    "opening.avi": DISC1,
    "parashot.avi": DISC2,
    "phoenix.avi": DISC2,
    "plrexp.avi": DISC1,
    "rckethit0.avi": DISC2,
    "rckethit1.avi": DISC2,
    "rcketoff.avi": DISC2,
    "rcktfail.avi": DISC1,
    "setogake.avi": DISC1,
    "smk.avi": DISC1,
    "southmk.avi": DISC1,
    "sqlogo.avi": ALL_DISCS,
    "u_ropego.avi": ALL_DISCS,
    "u_ropein.avi": ALL_DISCS,
    "weapon0.avi": DISC2,
    "weapon1.avi": DISC2,
    "weapon2.avi": DISC2,
    "weapon3.avi": DISC2,
    "weapon4.avi": DISC2,
    "weapon5.avi": DISC2,
    "wh2e2.avi": DISC2,
    "white2.avi": DISC2_3,
    "zmind01.avi": DISC2,
    "zmind02.avi": DISC2,
    "zmind03.avi": DISC2,
}

MUSIC_FILES = (
    "aseri.ogg", "aseri2.ogg", "ayasi.ogg", "barret.ogg", "bat.ogg", "bee.ogg",
    "bokujo.ogg", "boo.ogg", "cannon.ogg", "canyon.ogg", "cephiros.ogg",
    "chase.ogg", "chu.ogg", "chu2.ogg", "cinco.ogg", "cintro.ogg", "comical.ogg",
    "condor.ogg", "corel.ogg", "corneo.ogg", "costa.ogg", "crlost.ogg",
    "crwin.ogg", "date.ogg", "dokubo.ogg", "dun2.ogg", "earis.ogg",
    "earislo.ogg", "elec.ogg", "fan2.ogg", "fanfare.ogg", "fiddle.ogg",
    "fin.ogg", "geki.ogg", "gold1.ogg", "guitar2.ogg", "gun.ogg", "hen.ogg",
    "hiku.ogg", "horror.ogg", "iseki.ogg", "jukai.ogg", "junon.ogg", "jyro.ogg",
    "ketc.ogg", "kita.ogg", "kurai.ogg", "lb1.ogg", "lb2.ogg", "ld.ogg",
    "makoro.ogg", "mati.ogg", "mekyu.ogg", "mogu.ogg", "mura1.ogg",
    "nointro.ogg", "oa.ogg", "ob.ogg", "odds.ogg", "over2.ogg", "parade.ogg",
    "pj.ogg", "pre.ogg", "red.ogg", "rhythm.ogg", "riku.ogg", "ro.ogg",
    "rocket.ogg", "roll.ogg", "rukei.ogg", "sadbar.ogg", "sadsid.ogg", "sea.ogg",
    "seto.ogg", "si.ogg", "sid2.ogg", "sido.ogg", "siera.ogg", "sinra.ogg",
    "sinraslo.ogg", "snow.ogg", "ta.ogg", "tb.ogg", "tender.ogg", "tifa.ogg",
    "tm.ogg", "utai.ogg", "vincent.ogg", "walz.ogg", "weapon.ogg", "yado.ogg",
    "yufi.ogg", "yufi2.ogg", "yume.ogg",
)

#!/usr/bin/env python3
"""FF7 Install Converter: entry point"""

import argparse
import faulthandler
import logging
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

from asset_verifier import AssetVerifier
from backup_manager import BackupManager
from config_store import open_default_store
from converter_config import ConverterConfig
from game_converter import ConversionSettings, GameConverter
from installation import GameVersion, detect_installation
from location_policy import LocationPolicy
from media_locator import StaticMediaLocator, SystemMediaLocator
from piracy_detector import PiracyDetector, load_piracy_rules
from progress import CallbackProgressSink

VERSION_CHOICES = {v.value: v for v in GameVersion if v is not GameVersion.UNKNOWN}


def setup_logging(log_dir: Path) -> tuple[logging.Logger, Path]:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "converter.log"

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))

    # module loggers are named after their modules, so attach at the root
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    return logger, log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    # faulthandler can't use logging after a C-level crash, so it gets its own file
    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FF7 Install Converter")
    parser.add_argument("--store-file", type=Path, help="JSON config store (non-Windows)")
    parser.add_argument("--driver-bundle", type=Path)
    parser.add_argument("--exe-dir", type=Path, help="folder with ff7.exe and FF7Config.exe")
    parser.add_argument("--log-dir", type=Path)
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("detect", help="show the installation recorded in the config store")

    convert = sub.add_parser("convert", help="convert an installation")
    convert.add_argument("--root", type=Path)
    convert.add_argument("--target-version", choices=sorted(VERSION_CHOICES))
    convert.add_argument("--relocate", action="store_true",
                         help="copy the game out of a protected folder first")
    convert.add_argument("--relocate-to", type=Path)
    convert.add_argument("--remove-legacy", action="store_true")
    convert.add_argument("--alt-keyboard", action="store_true")
    convert.add_argument("--piracy-rules", type=Path)

    verify = sub.add_parser("verify", help="verify and restore game data files")
    verify.add_argument("--root", type=Path)
    verify.add_argument("--mount", action="append", default=[], metavar="LABEL=PATH",
                        help="use PATH for the disc labelled LABEL instead of searching drives")

    for name, help_text in (("update-driver", "install the bundled game driver if newer"),
                            ("create-folders", "create missing mod folders")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--root", type=Path)

    return parser


def load_config(args: argparse.Namespace) -> ConverterConfig:
    overrides = {
        "config_store_file": args.store_file,
        "driver_bundle": args.driver_bundle,
        "provided_exe_dir": args.exe_dir,
        "log_dir": args.log_dir,
        "piracy_rules_file": getattr(args, "piracy_rules", None),
        "relocation_target": getattr(args, "relocate_to", None),
    }
    return ConverterConfig(**{k: v for k, v in overrides.items() if v is not None})


def parse_mounts(values: list[str]) -> dict[str, Path]:
    mounts = {}
    for value in values:
        label, sep, path = value.partition("=")
        if not sep or not label or not path:
            raise SystemExit(f"--mount expects LABEL=PATH, got {value!r}")
        mounts[label] = Path(path)
    return mounts


def run(args: argparse.Namespace, out=print, config: ConverterConfig | None = None) -> int:
    config = config or load_config(args)
    store = open_default_store(config.config_store_file)
    record = detect_installation(store)
    progress = CallbackProgressSink(out, lambda text, pct: out(f"[{pct:5.1f}%] {text}"))

    if args.command == "detect":
        out(f"{record.detected_version.value}: {record.root_path or '(not found)'}")
        return 0 if record.found else 1

    root = args.root or record.root_path
    if root is None:
        out("No install path given and none recorded; pass --root")
        return 2

    if args.command == "verify":
        locator = StaticMediaLocator(parse_mounts(args.mount)) if args.mount else SystemMediaLocator()
        report = AssetVerifier(locator, progress).verify_installation(root)
        for name in report.missing:
            out(f"missing: {name}")
        out("Verification passed" if report.success else "Verification failed")
        return 0 if report.success else 1

    if args.command == "convert":
        target = VERSION_CHOICES.get(args.target_version) if args.target_version else record.detected_version
        settings = ConversionSettings(
            target_version=target,
            root_path=root,
            remove_legacy_if_found=args.remove_legacy,
            relocate_if_protected=args.relocate,
            relocation_target_path=config.relocation_target,
            use_alternate_keyboard_profile=args.alt_keyboard,
        )
    else:
        settings = ConversionSettings(target_version=record.detected_version, root_path=root)

    rules = load_piracy_rules(config.piracy_rules_file) if config.piracy_rules_file else None
    converter = GameConverter(
        settings,
        store,
        provided_exe_dir=config.provided_exe_dir,
        driver_bundle=config.driver_bundle,
        detector=PiracyDetector(rules),
        location_policy=LocationPolicy(config.protected_folders),
        backup_manager=BackupManager(store, backup_folder_name=config.backup_folder_name),
        progress=progress,
    )

    if args.command == "create-folders":
        created = converter.create_missing_folders()
        out(f"Created {len(created)} folder(s)")
        return 0

    if args.command == "update-driver":
        outcome = converter.install_latest_driver()
    else:
        outcome = converter.convert()
    out(outcome.message)
    return 0 if outcome.success else 1


def cli():
    args = build_parser().parse_args()
    config = load_config(args)
    logger, log_dir = setup_logging(config.log_dir)
    install_crash_handler(logger, log_dir)
    logger.info("Starting FF7 Install Converter: %s", args.command)
    sys.exit(run(args, config=config))


if __name__ == "__main__":
    cli()

"""
Command-line interface for the darktable lens fixer.
"""

import argparse
import datetime
from typing import List, Optional

from .config import AppConfig, load_config
from .logging_setup import setup_logging, get_logger
from .catalog_db import DarktableLibrary, ImageRecord
from .events import init_registry, shutdown_registry
from .lens_fixer import LensFixer, ApplyOptions
from .lens_tables import LensTables, NO_CHOICE

logger = get_logger(__name__)

DEFAULT_CONFIG = "~/.config/darktable-lens-fix.json"


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Correct lens metadata of darktable images"
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help=f"Path to configuration JSON file (default: {DEFAULT_CONFIG})"
    )
    parser.add_argument(
        "--library",
        help="Path to darktable library.db (overrides config)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode regardless of config setting"
    )
    parser.add_argument(
        "--log-file",
        help="Path to log file"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("presets", help="List lens presets, cameras and films")

    lookup = subparsers.add_parser("lookup", help="Show the substitution for an EXIF lens name")
    lookup.add_argument("lens_name", help="Lens name as reported in EXIF")
    lookup.add_argument("--camera", help="Camera model, to check the crop factor fix")

    apply = subparsers.add_parser(
        "apply",
        help="Set lens metadata on images",
        description="Set lens metadata on images in the darktable library and in the image files.",
        epilog="Exit status is 1 if exiftool failed on any image. The library updates "
               "for those images are still applied."
    )
    apply.add_argument("--preset", required=True, help="Lens preset (see 'presets')")
    _add_image_source(apply, selected=True)
    apply.add_argument(
        "--overwrite-time",
        action="store_true",
        help="Write the current date/time to DateTimeOriginal/CreateDate/ModifyDate"
    )
    apply.add_argument("--camera", default=NO_CHOICE, help="Film camera to tag the images with")
    apply.add_argument("--film", default=NO_CHOICE, help="Film stock to tag the images with")
    apply.add_argument("--no-exif", action="store_true", help="Only update the darktable library")
    apply.add_argument("--dry-run", action="store_true", help="Show changes without writing anything")
    apply.add_argument("--no-progress", action="store_true", help="Hide the progress bar")

    import_fix = subparsers.add_parser("import-fix", help="Run the import lens fix on images")
    source = _add_image_source(import_fix, selected=False)
    source.add_argument(
        "--since",
        type=parse_since,
        metavar="TIME",
        help="Images imported at or after this time (Unix seconds or ISO date/time)"
    )

    return parser.parse_args(argv)


def parse_since(value: str) -> datetime.datetime:
    """Parse an import time given as Unix seconds or an ISO 8601 date/time."""
    try:
        return datetime.datetime.fromtimestamp(float(value), tz=datetime.timezone.utc)
    except ValueError:
        pass
    except (OverflowError, OSError):
        raise argparse.ArgumentTypeError(f"timestamp out of range: {value!r}")
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected Unix seconds or an ISO date/time, got {value!r}")


def _add_image_source(parser: argparse.ArgumentParser, selected: bool):
    group = parser.add_mutually_exclusive_group(required=not selected)
    if selected:
        group.add_argument(
            "--selected",
            action="store_true",
            help="Images selected in darktable (default)"
        )
    group.add_argument("--images", type=int, nargs="+", metavar="ID", help="Image ids")
    group.add_argument("--film-roll", metavar="FOLDER", help="All images of a film roll")
    return group


def process_arguments(args: argparse.Namespace, config: AppConfig) -> AppConfig:
    """
    Process command-line arguments and override config values.

    Args:
        args: Parsed arguments
        config: Loaded configuration

    Returns:
        Updated configuration
    """
    if args.debug:
        config.debug_mode = True
        config.log_level = "DEBUG"
    if args.library:
        config.library_path = args.library
    if args.log_file:
        config.log_file = args.log_file
    return config


def _select_images(args: argparse.Namespace, library: DarktableLibrary) -> List[ImageRecord]:
    if args.images:
        return library.get_images(args.images)
    if args.film_roll:
        return library.get_images_in_film_roll(args.film_roll)
    if getattr(args, 'since', None):
        return library.get_images_imported_since(args.since)
    return library.get_selected_images()


def cmd_presets(tables: LensTables) -> int:
    print("Lens presets:")
    for preset in tables.presets:
        details = []
        if preset.substitution:
            details.append("substitution")
        if preset.focal_length:
            details.append(f"{preset.focal_length}mm")
        if preset.aperture:
            details.append(f"f/{preset.aperture}")
        suffix = f" ({', '.join(details)})" if details else ""
        print(f"  {preset.model}{suffix}")
    print("Cameras:")
    for camera in tables.cameras:
        print(f"  {camera}")
    print("Films:")
    for film in tables.films:
        print(f"  {film}")
    return 0


def cmd_lookup(args: argparse.Namespace, tables: LensTables) -> int:
    corrected = tables.substitute(args.lens_name)
    if corrected is None:
        print(f"No substitution for '{args.lens_name}'")
        return 1
    print(f"'{args.lens_name}' -> '{corrected}'")
    if args.camera:
        fix = tables.needs_crop_fix(corrected, args.camera)
        print(f"Crop factor fix with {args.camera}: {'yes' if fix else 'no'}")
    return 0


def cmd_apply(args: argparse.Namespace, config: AppConfig, tables: LensTables) -> int:
    library = DarktableLibrary(config.library_path, config)
    fixer = LensFixer(library, tables, config)

    options = ApplyOptions(
        preset=args.preset,
        overwrite_capture_time=args.overwrite_time,
        camera=args.camera,
        film=args.film,
        write_exif=not args.no_exif,
        dry_run=args.dry_run,
    )
    fixer.validate_options(options)

    images = _select_images(args, library)
    if not images:
        logger.error("No images selected")
        return 1

    stats = fixer.apply(images, options, show_progress=not args.no_progress)
    return 0 if stats.exif_failures == 0 else 1


def cmd_import_fix(args: argparse.Namespace, config: AppConfig, tables: LensTables) -> int:
    library = DarktableLibrary(config.library_path, config)
    fixer = LensFixer(library, tables, config)

    images = _select_images(args, library)
    if not images:
        logger.info("No images to fix")
        return 0

    registry = init_registry()
    fixer.register_import_hook(registry)
    try:
        results = fixer.fix_imported(images, registry)
    finally:
        fixer.unregister_import_hook(registry)
        shutdown_registry()

    return 1 if any(r.failed for r in results) else 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    """
    Run the command-line interface.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    config = None
    try:
        args = parse_arguments(argv)

        config = load_config(args.config)
        config = process_arguments(args, config)

        setup_logging(config, log_prefix="darktable_lens_fix")

        tables = LensTables.from_config(config)

        if args.command == "presets":
            return cmd_presets(tables)
        if args.command == "lookup":
            return cmd_lookup(args, tables)
        if args.command == "apply":
            return cmd_apply(args, config, tables)
        if args.command == "import-fix":
            return cmd_import_fix(args, config, tables)

        logger.error(f"Unknown command: {args.command}")
        return 1

    except Exception as e:
        logger.error(f"Script execution failed: {str(e)}")
        if config is not None and config.debug_mode:
            import traceback
            logger.error(f"Traceback: {traceback.format_exc()}")
        return 1

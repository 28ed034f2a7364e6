"""
Manual lens assignment for selected images and automatic fixes on import.
"""

import datetime
import time
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from tqdm import tqdm

from .config import AppConfig
from .catalog_db import DarktableLibrary, ImageRecord
from .directives import Directive, build_directives
from .events import EventRegistry, POST_IMPORT_IMAGE
from .exif_writer import ExifWriter, ExifWriteError
from .lens_tables import LensTables, FILM_TAG, NO_CHOICE
from .resolver import ResolvedLens, resolve_preset, parse_number
from .logging_setup import get_logger

logger = get_logger(__name__)

IMPORT_HOOK_NAME = "lens_auto_fix"
FULL_FRAME_CROP = 1.0


@dataclass
class ApplyOptions:
    """Choices made in the lens panel, captured before an apply run."""
    preset: str
    overwrite_capture_time: bool = False
    camera: Optional[str] = None
    film: Optional[str] = None
    write_exif: bool = True
    dry_run: bool = False

    @property
    def camera_tag(self) -> Optional[str]:
        return None if self.camera in (None, "", NO_CHOICE) else self.camera

    @property
    def film_tag(self) -> Optional[str]:
        return None if self.film in (None, "", NO_CHOICE) else self.film


@dataclass
class StepOutcome:
    step: str
    success: bool = True
    error: Optional[str] = None


@dataclass
class ImageResult:
    """What happened to one image during an apply run."""
    image_id: int
    filename: str
    lens: Optional[ResolvedLens] = None
    directives: List[Directive] = field(default_factory=list)
    crop_fix: bool = False
    steps: List[StepOutcome] = field(default_factory=list)

    @property
    def lens_missing(self) -> bool:
        return self.lens is None

    @property
    def failed_steps(self) -> List[StepOutcome]:
        return [s for s in self.steps if not s.success]

    @property
    def success(self) -> bool:
        return not self.failed_steps

    def record(self, step: str, error: Optional[str] = None) -> None:
        self.steps.append(StepOutcome(step, error is None, error))

    def step(self, name: str) -> Optional[StepOutcome]:
        for outcome in self.steps:
            if outcome.step == name:
                return outcome
        return None


@dataclass
class ImportResult:
    """Outcome of the import hook for one image."""
    image_id: int
    filename: str
    old_lens: str = ""
    new_lens: Optional[str] = None
    crop_fix: bool = False
    error: Optional[str] = None
    crop_error: Optional[str] = None

    @property
    def changed(self) -> bool:
        """True once the corrected lens name is stored, even if the crop write failed."""
        return self.new_lens is not None

    @property
    def failed(self) -> bool:
        return self.error is not None or self.crop_error is not None


@dataclass
class ApplyStats:
    """Class to track apply run statistics."""
    total_images: int = 0
    processed_images: int = 0
    successful_images: int = 0
    failed_images: int = 0
    lens_missing: int = 0
    crop_fixes: int = 0
    exif_writes: int = 0
    exif_failures: int = 0
    tag_failures: int = 0
    start_time: float = 0
    total_time: float = 0
    results: List[ImageResult] = field(default_factory=list)

    def add(self, result: ImageResult) -> None:
        self.results.append(result)
        self.processed_images += 1
        if result.success:
            self.successful_images += 1
        else:
            self.failed_images += 1
        if result.lens_missing:
            self.lens_missing += 1
        if result.crop_fix:
            self.crop_fixes += 1
        exif = result.step("exif")
        if exif is not None:
            if exif.success:
                self.exif_writes += 1
            else:
                self.exif_failures += 1
        self.tag_failures += sum(1 for s in result.failed_steps if s.step.startswith("tag:"))

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary (without per-image results)."""
        result = {k: v for k, v in self.__dict__.items() if k != 'results'}
        if self.total_images > 0:
            result['success_rate'] = self.successful_images / self.total_images
        return result


class LensFixer:
    """Applies lens presets and import-time lens name fixes to darktable images."""

    def __init__(self, library: DarktableLibrary, tables: LensTables, config: AppConfig,
                 writer: Optional[ExifWriter] = None):
        """
        Args:
            library: darktable library access
            tables: Lens rules
            config: Application configuration
            writer: exiftool writer; created from the config when omitted
        """
        self.library = library
        self.tables = tables
        self.config = config
        self.writer = writer if writer is not None else ExifWriter(config)

    def validate_options(self, options: ApplyOptions) -> None:
        """
        Raises:
            ValueError: For an unknown preset, camera or film
        """
        if self.tables.find_preset(options.preset) is None:
            raise ValueError(f"Unknown lens preset: {options.preset}")
        if options.camera_tag and options.camera_tag not in self.tables.cameras:
            raise ValueError(f"Unknown camera: {options.camera_tag}")
        if options.film_tag and options.film_tag not in self.tables.films:
            raise ValueError(f"Unknown film: {options.film_tag}")

    def process_image(self, image: ImageRecord, options: ApplyOptions,
                      now: Optional[datetime.datetime] = None) -> ImageResult:
        """
        Resolve the preset for one image and apply every selected change.

        Each step is recorded in the result; a failing step never stops the
        following ones and no exception leaves this method.
        """
        result = ImageResult(image_id=image.id, filename=image.filename)

        try:
            resolved = resolve_preset(self.tables, options.preset, image.lens)
            result.lens = resolved
            if resolved is None:
                message = f"No substitution found for lens '{image.lens}'"
                logger.warning(f"[{image.filename}] {message} - applying selected options only")
                result.record("resolve", message)
            else:
                result.record("resolve")

            plan = build_directives(
                resolved,
                image.camera_model,
                image.focal_length,
                self.tables,
                overwrite_time=options.overwrite_capture_time,
                now=now,
            )
            result.directives = list(plan.directives)
            result.crop_fix = plan.crop_fix

            if options.dry_run:
                logger.info(
                    f"[{image.filename}] dry run: "
                    f"{' '.join(d.as_arg() for d in plan.directives) or 'no EXIF changes'}"
                )
                return result

            if plan.crop_fix:
                self._run_step(result, "db_crop", self.library.set_crop, image.id, FULL_FRAME_CROP)
                image.crop = FULL_FRAME_CROP
                logger.info(
                    f"[{image.filename}] Crop factor fix: "
                    f"FocalLengthIn35mmFormat={plan.crop_focal_length}, crop=1.0"
                )

            if resolved is not None:
                self._write_lens_fields(result, image, resolved)

            self._attach_tags(result, image, options)

            if plan and options.write_exif:
                try:
                    self.writer.write(image.path, plan.directives)
                    result.record("exif")
                    if resolved is not None:
                        logger.info(f"[{image.filename}] {resolved.name}")
                    else:
                        logger.info(f"[{image.filename}] EXIF changes applied (no lens)")
                except ExifWriteError as e:
                    logger.error(f"Error executing command for {image.path}: {str(e)}")
                    result.record("exif", str(e))

        except Exception as e:
            logger.error(f"Error processing {image.filename} (ID: {image.id}): {str(e)}")
            if self.config.debug_mode:
                import traceback
                logger.error(f"Traceback: {traceback.format_exc()}")
            result.record("exception", str(e))

        return result

    def _run_step(self, result: ImageResult, step: str, func, *args) -> bool:
        try:
            func(*args)
        except Exception as e:
            logger.error(f"[{result.filename}] {step} failed: {str(e)}")
            result.record(step, str(e))
            return False
        result.record(step)
        return True

    def _write_lens_fields(self, result: ImageResult, image: ImageRecord, resolved: ResolvedLens) -> None:
        if self._run_step(result, "db_lens", self.library.set_lens, image.id, resolved.name):
            image.lens = resolved.name

        focal_length = parse_number(resolved.focal_length)
        if focal_length is not None:
            if self._run_step(result, "db_focal_length", self.library.set_focal_length, image.id, focal_length):
                image.focal_length = focal_length

        aperture = parse_number(resolved.aperture)
        if aperture is not None:
            if self._run_step(result, "db_aperture", self.library.set_aperture, image.id, aperture):
                image.aperture = aperture

    def _attach_tags(self, result: ImageResult, image: ImageRecord, options: ApplyOptions) -> None:
        tag_names = []
        if options.camera_tag:
            tag_names.extend([FILM_TAG, options.camera_tag])
        if options.film_tag:
            tag_names.append(options.film_tag)

        for name in tag_names:
            try:
                tag_id = self.library.ensure_tag(name)
                self.library.attach_tag(tag_id, image.id)
                result.record(f"tag:{name}")
            except Exception as e:
                logger.warning(f"[{image.filename}] Could not attach tag '{name}': {str(e)}")
                result.record(f"tag:{name}", str(e))

    def apply(self, images: List[ImageRecord], options: ApplyOptions,
              show_progress: bool = True) -> ApplyStats:
        """
        Apply the chosen preset and options to a batch of images.

        Args:
            images: Images to update
            options: Preset, capture time, camera and film choices
            show_progress: Whether to display a progress bar

        Returns:
            ApplyStats with one ImageResult per image

        Raises:
            ValueError: For an unknown preset, camera or film
        """
        self.validate_options(options)

        stats = ApplyStats(total_images=len(images))
        stats.start_time = time.time()

        if not images:
            logger.error("No images selected")
            return stats

        # One capture time for the whole batch
        now = datetime.datetime.now()

        try:
            for image in tqdm(images, desc="Updating lenses", unit="image", disable=not show_progress):
                stats.add(self.process_image(image, options, now=now))
        finally:
            self.writer.close()

        stats.total_time = time.time() - stats.start_time
        logger.info(f"Processed {stats.processed_images} images")
        self._log_stats(stats)
        return stats

    def _log_stats(self, stats: ApplyStats) -> None:
        logger.info("=== Apply Statistics ===")
        logger.info(f"Total images: {stats.total_images}")
        logger.info(f"Successful: {stats.successful_images}")
        logger.info(f"Failed: {stats.failed_images}")
        logger.info(f"Without lens substitution: {stats.lens_missing}")
        logger.info(f"Crop factor fixes: {stats.crop_fixes}")
        logger.info(f"EXIF writes: {stats.exif_writes} ({stats.exif_failures} failed)")
        logger.info(f"Tag failures: {stats.tag_failures}")
        logger.info(f"Total time: {stats.total_time:.1f}s")

    def auto_fix_on_import(self, event: str, image: ImageRecord) -> ImportResult:
        """
        Import hook: correct the lens name (and crop factor) in the library only.

        Image files are left untouched.
        """
        result = ImportResult(image_id=image.id, filename=image.filename, old_lens=image.lens or "")
        logger.info(f"[{event}] {image.filename} lens: {result.old_lens}")

        new_lens = self.tables.substitute(image.lens)
        if new_lens is None:
            return result

        try:
            self.library.set_lens(image.id, new_lens)
        except Exception as e:
            logger.error(f"[auto-import] {image.filename}: failed to update lens: {str(e)}")
            result.error = str(e)
            return result
        image.lens = new_lens
        result.new_lens = new_lens

        if self.tables.needs_crop_fix(new_lens, image.camera_model):
            try:
                self.library.set_crop(image.id, FULL_FRAME_CROP)
                image.crop = FULL_FRAME_CROP
                result.crop_fix = True
            except Exception as e:
                # The lens name stays corrected
                logger.error(f"[auto-import] {image.filename}: lens set to {new_lens}, "
                             f"failed to reset crop: {str(e)}")
                result.crop_error = str(e)
                return result

        message = f"[auto-import] {image.filename}: {new_lens}"
        if result.crop_fix:
            message += " (crop=1.0)"
        logger.info(message)
        return result

    def register_import_hook(self, registry: EventRegistry) -> None:
        registry.register(IMPORT_HOOK_NAME, POST_IMPORT_IMAGE, self.auto_fix_on_import)
        logger.info(f"{POST_IMPORT_IMAGE} event registered")

    def unregister_import_hook(self, registry: EventRegistry) -> None:
        registry.unregister(IMPORT_HOOK_NAME, POST_IMPORT_IMAGE)

    def fix_imported(self, images: List[ImageRecord], registry: EventRegistry) -> List[ImportResult]:
        """
        Emit the import event for each image through the registry.

        Returns:
            The lens fixer's result for every image
        """
        results = []
        for image in images:
            for event_result in registry.emit(POST_IMPORT_IMAGE, image):
                if event_result.name != IMPORT_HOOK_NAME:
                    continue
                if event_result.success:
                    results.append(event_result.value)
                else:
                    results.append(ImportResult(image.id, image.filename, image.lens or "",
                                                error=event_result.error))

        changed = sum(1 for r in results if r.changed)
        crop_fixed = sum(1 for r in results if r.crop_fix)
        failed = sum(1 for r in results if r.failed)
        logger.info(f"Import fix: {changed}/{len(images)} lens names corrected, {crop_fixed} crop fixes, "
                    f"{failed} failed")
        return results

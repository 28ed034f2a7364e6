"""
Metadata edit directives sent to exiftool for one image.
"""

import datetime
from dataclasses import dataclass, field
from typing import List, Dict, Optional

from .lens_tables import LensTables
from .resolver import ResolvedLens, crop_fix_focal_length

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

LENS_TAGS = ("LensModel", "LensType")
APERTURE_TAGS = ("ApertureValue", "MaxApertureValue", "FNumber")
DATETIME_TAGS = ("DateTimeOriginal", "CreateDate", "ModifyDate")
FOCAL_LENGTH_TAG = "FocalLength"
FOCAL_LENGTH_35MM_TAG = "FocalLengthIn35mmFormat"


@dataclass(frozen=True)
class Directive:
    """A single exiftool tag assignment."""
    tag: str
    value: str

    def as_arg(self) -> str:
        return f"-{self.tag}={self.value}"


@dataclass
class DirectivePlan:
    """Directives for one image plus the crop fix decision."""
    directives: List[Directive] = field(default_factory=list)
    crop_fix: bool = False
    crop_focal_length: Optional[int] = None

    def __bool__(self) -> bool:
        return bool(self.directives)

    def tags(self) -> List[str]:
        return [d.tag for d in self.directives]


def build_directives(resolved: Optional[ResolvedLens], camera_model: Optional[str],
                     focal_length: Optional[float], tables: LensTables,
                     overwrite_time: bool = False,
                     now: Optional[datetime.datetime] = None) -> DirectivePlan:
    """
    Build the exiftool directives for one image.

    Args:
        resolved: Resolved lens, or None when resolution failed
        camera_model: The image's camera model
        focal_length: The image's current focal length (used by the crop fix)
        tables: Lens rules
        overwrite_time: Whether to stamp the capture time with ``now``
        now: Timestamp to write (defaults to the current local time)

    Returns:
        DirectivePlan with directives in exiftool argument order
    """
    plan = DirectivePlan()

    if resolved is not None:
        for tag in LENS_TAGS:
            plan.directives.append(Directive(tag, resolved.name))

        if resolved.focal_length:
            plan.directives.append(Directive(FOCAL_LENGTH_TAG, resolved.focal_length))

        if resolved.aperture:
            for tag in APERTURE_TAGS:
                plan.directives.append(Directive(tag, resolved.aperture))

        # Only substitution entries are checked against the crop exceptions
        if resolved.substitution and tables.needs_crop_fix(resolved.name, camera_model):
            fl_35mm = crop_fix_focal_length(focal_length)
            if fl_35mm is not None:
                plan.directives.append(Directive(FOCAL_LENGTH_35MM_TAG, str(fl_35mm)))
                plan.crop_fix = True
                plan.crop_focal_length = fl_35mm

    if overwrite_time:
        timestamp = (now or datetime.datetime.now()).strftime(EXIF_DATETIME_FORMAT)
        for tag in DATETIME_TAGS:
            plan.directives.append(Directive(tag, timestamp))

    return plan


def directives_to_tags(directives: List[Directive]) -> Dict[str, str]:
    """Tag mapping in the form ExifToolHelper.set_tags expects."""
    return {d.tag: d.value for d in directives}

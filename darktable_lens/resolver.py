"""
Resolution of a selected lens preset against an image's EXIF lens name.
"""

import math
from dataclasses import dataclass
from typing import Optional

from .lens_tables import LensTables
from .logging_setup import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResolvedLens:
    """Lens parameters to write for one image."""
    name: str
    focal_length: str = ""
    aperture: str = ""
    substitution: bool = False


def resolve_preset(tables: LensTables, preset_id: str,
                   exif_lens: Optional[str]) -> Optional[ResolvedLens]:
    """
    Resolve a preset for an image.

    Plain presets resolve to themselves. A substitution preset takes its name
    from the substitution table using the image's current EXIF lens name and
    keeps its own focal length and aperture.

    Args:
        tables: Lens rules
        preset_id: Model name of the selected preset
        exif_lens: The image's current EXIF lens name

    Returns:
        The resolved lens, or None when the preset is unknown or no
        substitution exists for the EXIF lens name
    """
    preset = tables.find_preset(preset_id)
    if preset is None:
        logger.debug(f"Unknown lens preset: {preset_id}")
        return None

    if not preset.substitution:
        return ResolvedLens(
            name=preset.model,
            focal_length=preset.focal_length,
            aperture=preset.aperture,
            substitution=False,
        )

    substituted = tables.substitute(exif_lens)
    if substituted is None:
        return None

    return ResolvedLens(
        name=substituted,
        focal_length=preset.focal_length,
        aperture=preset.aperture,
        substitution=True,
    )


def crop_fix_focal_length(focal_length: Optional[float]) -> Optional[int]:
    """
    35mm equivalent focal length for a full frame body (crop 1.0).

    Rounds half up. Returns None when the image has no usable focal length.
    """
    if focal_length is None or focal_length <= 0:
        return None
    return int(math.floor(focal_length + 0.5))


def parse_number(value: str) -> Optional[float]:
    """Numeric value of a preset field; empty string means unset."""
    if value is None or value == "":
        return None
    return float(value)

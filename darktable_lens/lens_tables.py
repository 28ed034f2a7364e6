"""
Static lens rules: name substitutions, crop factor exceptions and manual presets.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Iterable, Any

from .config import AppConfig


# Maps EXIF lens names to the names lensfun expects
LENS_NAMES: Dict[str, str] = {
    "EF70-200mm f/4L IS USM": "Canon EF 70-200mm f/4L IS USM",
    "EF35mm f/2 IS USM": "Canon EF 35mm f/2 IS USM",
    "EF16-35mm f/4L IS USM": "Canon EF 16-35mm f/4L IS USM",
    "28 - 70mm F2.8 DG DN | Contemporary 021": "28-70mm F2.8 DG DN | Contemporary 021",
    "Sigma 50mm f/1.4 DG HSM | A": "Sigma 50mm f/1.4 DG HSM | A",
    "COMMLITE+Canon EF 35mm f/2 IS USM": "Canon EF 35mm f/2 IS USM",
    "COMMLITE+Canon EF 135mm f/2 L USM": "Canon EF 135mm f/2 L USM",
    "35mm F2 DG DN | Contemporary 020": "Sigma 35mm F2 DG DN | Contemporary 020",
    "TAMRON SP 24-70mm F/2.8 Di VC USD G2 A032": "Tamron SP 24-70mm f/2.8 Di VC USD G2",
    "Tamron SP 24-70mm f/2.8 Di VC USD G2": "Tamron SP 24-70mm f/2.8 Di VC USD G2",
}

# Lens+camera combinations that report a wrong FocalLengthIn35mmFormat.
# Keys are "<corrected lens name>|<camera model>".
CROP_FACTOR_FIX: Set[str] = {
    "Tamron SP 24-70mm f/2.8 Di VC USD G2|Canon EOS 6D Mark II",
}

CROP_KEY_SEPARATOR = "|"

FILM_TAG = "Film"
NO_CHOICE = "---"

CAMERAS: List[str] = [
    "Nikon FE",
    "Praktika L2",
    "Zenit TTL",
    "Zenit 12cd",
]

FILMS: List[str] = [
    "Ilford Pan 400",
    "Kodak ColorPlus 200",
    "Kodak UltraMax 400 Color",
    "Lucky 400",
    "Shanghai GP3 400",
    "Shanghai GP3 100",
]


@dataclass(frozen=True)
class LensPreset:
    """
    A lens available for manual selection.

    A substitution preset has no usable model name of its own: its effective
    name comes from LENS_NAMES using the image's current EXIF lens name.
    """
    model: str
    focal_length: str = ""
    aperture: str = ""
    substitution: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LensPreset':
        """Build a preset from a config entry (``fl``/``ap`` accepted as aliases)."""
        return cls(
            model=data['model'],
            focal_length=str(data.get('focal_length', data.get('fl', '')) or ''),
            aperture=str(data.get('aperture', data.get('ap', '')) or ''),
            substitution=bool(data.get('substitution', False)),
        )


SUBSTITUTION_PRESET = "*Sigma|Canon|Tamron on S5|6Dm2"

LENS_PRESETS: List[LensPreset] = [
    LensPreset(SUBSTITUTION_PRESET, substitution=True),
    LensPreset("Jupiter-37AM MC 3.5/135", "85", "2.0"),
    LensPreset("Jupiter-9 2/85", "85", "2.0"),
    LensPreset("Jupiter-21A 4/200", "200", "4.0"),
    LensPreset("Carl Zeiss Planar T* 1,4/50 ZF", "50", "1.4"),
    LensPreset("Carl Zeiss Jena Pancolar 50mm f/1.8", "50", "1.8"),
    LensPreset("Carl Zeiss Jena Sonnar 135mm f/3.5", "135", "3.5"),
    LensPreset("Carl Zeiss Jena Flektogon 35mm f/2.8", "35", "2.8"),
    LensPreset("Helios-44 58mm 1:2", "58", "2.0"),
    LensPreset("Helios-44M 58mm f/2", "58", "2.0"),
    LensPreset("Mir-1 37mm f/2.8", "37", "2.8"),
    LensPreset("Mir-24M MC 35mm f/2", "35", "2.0"),
    LensPreset("Zenitar-M 1.7/50", "50", "1.7"),
    LensPreset("7Artisans 28mm f/1.4", "28", "1.4"),
    LensPreset("Konica Hexanon AR 50/1.7", "50", "1.7"),
    LensPreset("Volna-9 2.8/50 MC", "50", "2.8"),
    LensPreset("Samyang 85mm f/1.4 IF UMC Aspherical", "85", "1.4"),
]


def crop_fix_key(lens_name: str, camera_model: Optional[str]) -> str:
    """Composite key used by the crop factor exception set."""
    return f"{lens_name}{CROP_KEY_SEPARATOR}{camera_model or ''}"


class LensTables:
    """Read-only view over the lens rules used by both apply and import flows."""

    def __init__(self, lens_names: Dict[str, str], crop_fixes: Iterable[str],
                 presets: Iterable[LensPreset], cameras: Iterable[str] = (),
                 films: Iterable[str] = ()):
        self.lens_names = dict(lens_names)
        self.crop_fixes = frozenset(crop_fixes)
        self.cameras = list(dict.fromkeys(cameras))
        self.films = list(dict.fromkeys(films))

        self._presets: Dict[str, LensPreset] = {}
        for preset in presets:
            if preset.model in self._presets:
                raise ValueError(f"Duplicate lens preset: {preset.model}")
            self._presets[preset.model] = preset

    @classmethod
    def default(cls) -> 'LensTables':
        return cls(LENS_NAMES, CROP_FACTOR_FIX, LENS_PRESETS, CAMERAS, FILMS)

    @classmethod
    def from_config(cls, config: AppConfig) -> 'LensTables':
        """
        Built-in tables with the extra rules from the configuration merged in.

        Config lens names override built-in entries with the same key; a config
        preset replaces the built-in preset of the same model.

        Raises:
            ValueError: If the config lists the same preset model twice
        """
        lens_names = dict(LENS_NAMES)
        lens_names.update(config.lens_names)

        extra_presets = [LensPreset.from_dict(p) for p in config.lens_presets]
        seen = set()
        for preset in extra_presets:
            if preset.model in seen:
                raise ValueError(f"Duplicate lens preset in configuration: {preset.model}")
            seen.add(preset.model)
        presets = [p for p in LENS_PRESETS if p.model not in seen] + extra_presets

        return cls(
            lens_names,
            set(CROP_FACTOR_FIX) | set(config.crop_factor_fix),
            presets,
            CAMERAS + list(config.cameras),
            FILMS + list(config.films),
        )

    def substitute(self, exif_lens: Optional[str]) -> Optional[str]:
        """Corrected lens name for a raw EXIF lens name, or None."""
        if not exif_lens:
            return None
        return self.lens_names.get(exif_lens)

    def needs_crop_fix(self, lens_name: str, camera_model: Optional[str]) -> bool:
        return crop_fix_key(lens_name, camera_model) in self.crop_fixes

    def find_preset(self, model: str) -> Optional[LensPreset]:
        return self._presets.get(model)

    def preset_names(self) -> List[str]:
        """Preset models in the order the selection list shows them."""
        return sorted(self._presets)

    @property
    def presets(self) -> List[LensPreset]:
        return [self._presets[name] for name in self.preset_names()]

"""
darktable Lens Metadata Fixer

This package assigns lens metadata to images in a darktable library: manual
lens presets for adapted and vintage lenses, lensfun-compatible lens name
substitution, crop factor fixes for known lens/camera combinations, and film
camera/film stock tagging. Image files are updated through exiftool.
"""

__version__ = "1.0.0"

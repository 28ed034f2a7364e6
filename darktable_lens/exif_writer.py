"""
Writing metadata into image files through exiftool.
"""

import os
from typing import List, Optional

import exiftool
from exiftool.exceptions import ExifToolException, ExifToolExecuteError

from .config import AppConfig
from .directives import Directive, directives_to_tags
from .logging_setup import get_logger

logger = get_logger(__name__)


class ExifWriteError(Exception):
    """Raised when exiftool could not update a file."""


class ExifWriter:
    """
    Thin wrapper around a pyexiftool helper.

    One exiftool process is kept for the lifetime of the writer (or of the
    ``with`` block) and each image is written with a single call carrying all
    of its directives.
    """

    def __init__(self, config: AppConfig):
        self.config = config
        self.executable = config.exiftool_path
        self.params = ["-overwrite_original"] if config.overwrite_original else []
        self._helper: Optional[exiftool.ExifToolHelper] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _ensure_helper(self) -> exiftool.ExifToolHelper:
        if self._helper is None:
            kwargs = {}
            if self.executable:
                kwargs['executable'] = self.executable
            self._helper = exiftool.ExifToolHelper(**kwargs)
        return self._helper

    def close(self) -> None:
        if self._helper is not None:
            try:
                if self._helper.running:
                    self._helper.terminate()
            except ExifToolException as e:
                logger.debug(f"Error stopping exiftool: {str(e)}")
            self._helper = None

    def write(self, path: str, directives: List[Directive]) -> None:
        """
        Apply all directives to one file.

        Raises:
            ExifWriteError: If the file is missing or exiftool fails
        """
        if not directives:
            return
        if not os.path.exists(path):
            raise ExifWriteError(f"File not found: {path}")

        tags = directives_to_tags(directives)
        logger.debug(f"exiftool {' '.join(self.params)} {' '.join(d.as_arg() for d in directives)} {path}")

        try:
            self._ensure_helper().set_tags([path], tags, params=self.params)
        except ExifToolExecuteError as e:
            raise ExifWriteError(f"exiftool failed for {path}: {str(e)}") from e
        except (ExifToolException, OSError, ValueError, TypeError) as e:
            # The process may be unusable; start a fresh one for the next file
            self.close()
            raise ExifWriteError(f"Error executing exiftool for {path}: {str(e)}") from e

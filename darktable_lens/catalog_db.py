"""
Database interaction with the darktable library.
"""

import os
import sqlite3
import time
import datetime
from contextlib import contextmanager
from dataclasses import dataclass
from typing import List, Optional, Iterable

from .config import AppConfig
from .logging_setup import get_logger

logger = get_logger(__name__)

# darktable stores timestamps as microseconds since 0001-01-01 (GTimeSpan)
GTIMESPAN_UNIX_OFFSET = 62135596800

IMAGE_QUERY = """
    SELECT
        i.id,
        i.filename,
        f.folder,
        l.name AS lens,
        m.name AS camera_model,
        i.focal_length,
        i.aperture,
        i.crop
    FROM images i
    LEFT JOIN film_rolls f ON i.film_id = f.id
    LEFT JOIN lens l ON i.lens_id = l.id
    LEFT JOIN models m ON i.model_id = m.id
"""


@dataclass
class ImageRecord:
    """Snapshot of the image fields the lens fixer reads and writes."""
    id: int
    filename: str
    folder: str = ""
    lens: str = ""
    camera_model: str = ""
    focal_length: Optional[float] = None
    aperture: Optional[float] = None
    crop: Optional[float] = None

    @property
    def path(self) -> str:
        return os.path.join(self.folder, self.filename)

    @classmethod
    def from_row(cls, row) -> 'ImageRecord':
        return cls(
            id=row[0],
            filename=row[1],
            folder=row[2] or "",
            lens=row[3] or "",
            camera_model=row[4] or "",
            focal_length=row[5],
            aperture=row[6],
            crop=row[7],
        )


def to_gtimespan(moment: datetime.datetime) -> int:
    """Convert a datetime to darktable's timestamp representation."""
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return int((moment.timestamp() + GTIMESPAN_UNIX_OFFSET) * 1_000_000)


class DarktableLibrary:
    """Class to handle interactions with the darktable library database."""

    def __init__(self, library_path: str, config: AppConfig):
        """
        Initialize the library access.

        Args:
            library_path: Path to darktable's library.db
            config: Application configuration

        Raises:
            FileNotFoundError: If the library file doesn't exist
        """
        library_path = os.path.abspath(os.path.expanduser(library_path))
        if not os.path.exists(library_path):
            raise FileNotFoundError(f"darktable library not found: {library_path}")

        self.library_path = library_path
        self.config = config

        data_path = config.data_path or os.path.join(os.path.dirname(library_path), "data.db")
        self.data_path = os.path.abspath(os.path.expanduser(data_path))
        self.has_data_db = os.path.exists(self.data_path)
        if not self.has_data_db:
            logger.warning(f"darktable data.db not found at {self.data_path}; tagging disabled")

        self.db_busy_timeout = getattr(config, 'db_busy_timeout', 5000)
        self.max_retries = getattr(config, 'max_retries', 3)

        if os.path.exists(f"{library_path}.lock"):
            logger.warning(
                "darktable appears to be running (lock file present); "
                "changes may be overwritten when it exits"
            )

    def _connect(self):
        """
        Establish a connection to the library with data.db attached as 'data'.
        """
        try:
            conn = sqlite3.connect(self.library_path, isolation_level=None)
            conn.execute(f"PRAGMA busy_timeout={self.db_busy_timeout}")
            if self.has_data_db:
                conn.execute("ATTACH DATABASE ? AS data", (self.data_path,))
            return conn
        except sqlite3.OperationalError:
            raise
        except sqlite3.Error as e:
            logger.error(f"Failed to connect to darktable library: {str(e)}")
            raise RuntimeError(f"Failed to connect to darktable library: {str(e)}")

    @contextmanager
    def cursor(self, retries=None):
        """
        Get a cursor as a context manager, ensuring proper cleanup.
        Each call opens a new connection; commits or rolls back, then closes.

        Args:
            retries: Number of retries if the database is locked when connecting
        """
        if retries is None:
            retries = self.max_retries

        retry_count = 0
        while True:
            conn = None
            try:
                conn = self._connect()
                conn.execute("BEGIN DEFERRED")
                break
            except sqlite3.OperationalError as e:
                if conn is not None:
                    conn.close()
                if "database is locked" in str(e) and retry_count < retries:
                    retry_count += 1
                    wait_time = 0.5 * (2 ** retry_count)  # Exponential backoff
                    logger.warning(f"Database locked, retrying in {wait_time:.2f}s (attempt {retry_count}/{retries})")
                    time.sleep(wait_time)
                else:
                    logger.error(f"Failed to open darktable library: {str(e)}")
                    raise RuntimeError(f"Failed to open darktable library: {str(e)}")

        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def _fetch_images(self, where: str = "", params: Iterable = ()) -> List[ImageRecord]:
        try:
            with self.cursor() as cursor:
                cursor.execute(f"{IMAGE_QUERY} {where} ORDER BY i.id", tuple(params))
                return [ImageRecord.from_row(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to retrieve images from library: {str(e)}")

    def get_image(self, image_id: int) -> Optional[ImageRecord]:
        images = self._fetch_images("WHERE i.id = ?", (image_id,))
        return images[0] if images else None

    def get_images(self, image_ids: Iterable[int]) -> List[ImageRecord]:
        """
        Fetch images by id, in id order. Unknown ids are logged and skipped.
        """
        image_ids = sorted(set(image_ids))
        if not image_ids:
            return []
        placeholders = ", ".join("?" for _ in image_ids)
        images = self._fetch_images(f"WHERE i.id IN ({placeholders})", image_ids)

        missing = set(image_ids) - {img.id for img in images}
        if missing:
            logger.warning(f"Images not found in library: {', '.join(str(i) for i in sorted(missing))}")
        return images

    def get_selected_images(self) -> List[ImageRecord]:
        """Images currently selected in darktable's lighttable."""
        images = self._fetch_images("WHERE i.id IN (SELECT imgid FROM selected_images)")
        logger.info(f"Retrieved {len(images)} selected images from library")
        return images

    def get_images_in_film_roll(self, folder: str) -> List[ImageRecord]:
        folder = os.path.abspath(os.path.expanduser(folder))
        images = self._fetch_images("WHERE f.folder = ?", (folder,))
        logger.info(f"Retrieved {len(images)} images from film roll {folder}")
        return images

    def get_images_imported_since(self, since: datetime.datetime) -> List[ImageRecord]:
        images = self._fetch_images("WHERE i.import_timestamp >= ?", (to_gtimespan(since),))
        logger.info(f"Retrieved {len(images)} images imported since {since.isoformat()}")
        return images

    def _update_image(self, image_id: int, column: str, value) -> None:
        with self.cursor() as cursor:
            cursor.execute(f"UPDATE images SET {column} = ? WHERE id = ?", (value, image_id))
            if cursor.rowcount == 0:
                raise RuntimeError(f"Image {image_id} not found in library")

    def set_lens(self, image_id: int, lens_name: str) -> None:
        """Point the image at the lens name row, inserting the name if new."""
        with self.cursor() as cursor:
            cursor.execute("SELECT id FROM lens WHERE name = ?", (lens_name,))
            row = cursor.fetchone()
            if row is None:
                cursor.execute("INSERT INTO lens (name) VALUES (?)", (lens_name,))
                lens_id = cursor.lastrowid
                logger.debug(f"Inserted new lens name '{lens_name}' with id {lens_id}")
            else:
                lens_id = row[0]

            cursor.execute("UPDATE images SET lens_id = ? WHERE id = ?", (lens_id, image_id))
            if cursor.rowcount == 0:
                raise RuntimeError(f"Image {image_id} not found in library")

    def set_focal_length(self, image_id: int, focal_length: float) -> None:
        self._update_image(image_id, "focal_length", focal_length)

    def set_aperture(self, image_id: int, aperture: float) -> None:
        self._update_image(image_id, "aperture", aperture)

    def set_crop(self, image_id: int, crop: float) -> None:
        self._update_image(image_id, "crop", crop)

    def _require_data_db(self):
        if not self.has_data_db:
            raise RuntimeError(f"darktable data.db not available: {self.data_path}")

    def find_tag(self, name: str) -> Optional[int]:
        self._require_data_db()
        with self.cursor() as cursor:
            cursor.execute("SELECT id FROM data.tags WHERE name = ?", (name,))
            row = cursor.fetchone()
            return row[0] if row else None

    def create_tag(self, name: str) -> int:
        self._require_data_db()
        with self.cursor() as cursor:
            cursor.execute("INSERT INTO data.tags (name) VALUES (?)", (name,))
            tag_id = cursor.lastrowid
        logger.debug(f"Created tag '{name}' with id {tag_id}")
        return tag_id

    def ensure_tag(self, name: str) -> int:
        """Return the tag id, creating the tag if needed."""
        tag_id = self.find_tag(name)
        if tag_id is None:
            tag_id = self.create_tag(name)
        return tag_id

    def attach_tag(self, tag_id: int, image_id: int) -> bool:
        """
        Link a tag to an image.

        Returns:
            True if a new link was created, False if it already existed
        """
        with self.cursor() as cursor:
            cursor.execute(
                "SELECT 1 FROM tagged_images WHERE imgid = ? AND tagid = ?",
                (image_id, tag_id)
            )
            if cursor.fetchone() is not None:
                return False

            # darktable keeps the tag order in the upper 32 bits of position
            cursor.execute("SELECT IFNULL(MAX(position), 0) FROM tagged_images")
            position = (cursor.fetchone()[0] & 0xFFFFFFFF00000000) + (1 << 32)
            cursor.execute(
                "INSERT INTO tagged_images (imgid, tagid, position) VALUES (?, ?, ?)",
                (image_id, tag_id, position)
            )
            return True

    def get_image_tags(self, image_id: int) -> List[str]:
        self._require_data_db()
        with self.cursor() as cursor:
            cursor.execute("""
                SELECT t.name FROM tagged_images ti
                JOIN data.tags t ON ti.tagid = t.id
                WHERE ti.imgid = ?
                ORDER BY ti.position
            """, (image_id,))
            return [row[0] for row in cursor.fetchall()]

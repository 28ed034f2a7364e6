"""
Tests for darktable library access.
"""
import datetime
import os
import shutil
import tempfile
import unittest

from darktable_lens.catalog_db import DarktableLibrary, ImageRecord, to_gtimespan
from darktable_lens.config import AppConfig

from library_fixture import create_library, add_image, query


class TestDarktableLibrary(unittest.TestCase):
    """Test cases for the DarktableLibrary class."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.library_path = create_library(self.temp_dir)
        self.folder = os.path.join(self.temp_dir, "2024-05-17")
        self.config = AppConfig(library_path=self.library_path, max_retries=0)

        self.img1 = add_image(self.library_path, "IMG_0001.CR2", self.folder,
                              lens="EF35mm f/2 IS USM", camera_model="Canon EOS 6D Mark II",
                              focal_length=35.0, aperture=2.0, crop=1.6,
                              import_timestamp=to_gtimespan(datetime.datetime(2024, 5, 17, 12, 0)),
                              selected=True)
        self.img2 = add_image(self.library_path, "IMG_0002.CR2", self.folder,
                              camera_model="Canon EOS 6D Mark II")
        self.img3 = add_image(self.library_path, "scan_01.tif", os.path.join(self.temp_dir, "film"))

        self.library = DarktableLibrary(self.library_path, self.config)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_missing_library(self):
        with self.assertRaises(FileNotFoundError):
            DarktableLibrary(os.path.join(self.temp_dir, "nope.db"), self.config)

    def test_get_image(self):
        image = self.library.get_image(self.img1)
        self.assertEqual(image, ImageRecord(
            id=self.img1, filename="IMG_0001.CR2", folder=self.folder,
            lens="EF35mm f/2 IS USM", camera_model="Canon EOS 6D Mark II",
            focal_length=35.0, aperture=2.0, crop=1.6,
        ))
        self.assertEqual(image.path, os.path.join(self.folder, "IMG_0001.CR2"))

        # Missing lens and model come back as empty strings
        image2 = self.library.get_image(self.img2)
        self.assertEqual(image2.lens, "")
        self.assertIsNone(self.library.get_image(999))

    def test_get_images_skips_unknown(self):
        images = self.library.get_images([self.img2, 999, self.img1])
        self.assertEqual([img.id for img in images], [self.img1, self.img2])
        self.assertEqual(self.library.get_images([]), [])

    def test_selection_and_film_roll(self):
        self.assertEqual([img.id for img in self.library.get_selected_images()], [self.img1])
        self.assertEqual([img.id for img in self.library.get_images_in_film_roll(self.folder)],
                         [self.img1, self.img2])

    def test_imported_since(self):
        images = self.library.get_images_imported_since(datetime.datetime(2024, 5, 17, 11, 0))
        self.assertEqual([img.id for img in images], [self.img1])
        self.assertEqual(self.library.get_images_imported_since(datetime.datetime(2024, 5, 18)), [])

    def test_set_lens_reuses_and_inserts_names(self):
        self.library.set_lens(self.img2, "EF35mm f/2 IS USM")
        self.library.set_lens(self.img1, "Canon EF 35mm f/2 IS USM")

        self.assertEqual(self.library.get_image(self.img2).lens, "EF35mm f/2 IS USM")
        self.assertEqual(self.library.get_image(self.img1).lens, "Canon EF 35mm f/2 IS USM")
        self.assertEqual(len(query(self.library_path, "SELECT id FROM lens")), 2)

    def test_set_lens_unknown_image(self):
        with self.assertRaises(RuntimeError):
            self.library.set_lens(999, "X")

    def test_set_numeric_fields(self):
        self.library.set_focal_length(self.img1, 50.0)
        self.library.set_aperture(self.img1, 1.4)
        self.library.set_crop(self.img1, 1.0)
        image = self.library.get_image(self.img1)
        self.assertEqual((image.focal_length, image.aperture, image.crop), (50.0, 1.4, 1.0))

        with self.assertRaises(RuntimeError):
            self.library.set_crop(999, 1.0)

    def test_tags(self):
        self.assertIsNone(self.library.find_tag("Film"))
        tag_id = self.library.ensure_tag("Film")
        self.assertEqual(self.library.ensure_tag("Film"), tag_id)

        self.assertTrue(self.library.attach_tag(tag_id, self.img1))
        self.assertFalse(self.library.attach_tag(tag_id, self.img1))

        camera_tag = self.library.ensure_tag("Zenit TTL")
        self.library.attach_tag(camera_tag, self.img1)
        self.assertEqual(self.library.get_image_tags(self.img1), ["Film", "Zenit TTL"])

        positions = [row[0] for row in query(
            self.library_path, "SELECT position FROM tagged_images ORDER BY position")]
        self.assertEqual(positions, [1 << 32, 2 << 32])

    def test_tags_without_data_db(self):
        os.remove(os.path.join(self.temp_dir, "data.db"))
        library = DarktableLibrary(self.library_path, self.config)
        self.assertFalse(library.has_data_db)
        with self.assertRaises(RuntimeError):
            library.ensure_tag("Film")


if __name__ == '__main__':
    unittest.main()

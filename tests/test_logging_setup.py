"""
Tests for logging configuration.
"""
import logging
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import patch

from darktable_lens.config import AppConfig
from darktable_lens.logging_setup import log_file_path, build_handlers, setup_logging


class TestLoggingSetup(unittest.TestCase):
    """Test cases for handler selection."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.handlers = []

    def tearDown(self):
        for handler in self.handlers:
            handler.close()
        shutil.rmtree(self.temp_dir)

    def test_log_file_path(self):
        self.assertIsNone(log_file_path(AppConfig(), "darktable_lens_fix"))
        self.assertEqual(log_file_path(AppConfig(log_file="/tmp/run.log"), "x"), "/tmp/run.log")

        path = log_file_path(AppConfig(debug_mode=True), "darktable_lens_fix")
        self.assertTrue(path.startswith("darktable_lens_fix_"))
        self.assertTrue(path.endswith(".log"))
        self.assertIsNone(log_file_path(AppConfig(debug_mode=True)))

    def test_console_only(self):
        self.handlers = build_handlers(AppConfig(), None)
        self.assertEqual(len(self.handlers), 1)
        self.assertIs(type(self.handlers[0]), logging.StreamHandler)
        self.assertIs(self.handlers[0].stream, sys.stderr)

    def test_file_creates_directory(self):
        log_file = os.path.join(self.temp_dir, "logs", "run.log")
        self.handlers = build_handlers(AppConfig(), log_file)
        self.assertEqual(len(self.handlers), 1)
        self.assertIsInstance(self.handlers[0], logging.FileHandler)
        self.assertTrue(os.path.isdir(os.path.join(self.temp_dir, "logs")))

    def test_file_mirrored_in_debug_mode(self):
        log_file = os.path.join(self.temp_dir, "run.log")
        self.handlers = build_handlers(AppConfig(debug_mode=True), log_file)
        self.assertEqual(len(self.handlers), 2)
        self.assertIsInstance(self.handlers[0], logging.FileHandler)
        self.assertIs(self.handlers[1].stream, sys.stdout)

    def test_setup_logging_passes_handlers(self):
        log_file = os.path.join(self.temp_dir, "run.log")
        config = AppConfig(log_file=log_file, log_level="WARNING")
        with patch('darktable_lens.logging_setup.logging.basicConfig') as basic_config:
            setup_logging(config, "darktable_lens_fix")

        kwargs = basic_config.call_args[1]
        self.handlers = kwargs['handlers']
        self.assertEqual(kwargs['level'], logging.WARNING)
        self.assertEqual(os.path.abspath(self.handlers[0].baseFilename), os.path.abspath(log_file))


if __name__ == '__main__':
    unittest.main()

"""
Tests for the event registry.
"""
import unittest
from unittest.mock import MagicMock

from darktable_lens import events
from darktable_lens.events import EventRegistry, POST_IMPORT_IMAGE


class TestEventRegistry(unittest.TestCase):
    """Test cases for EventRegistry."""

    def setUp(self):
        self.registry = EventRegistry()

    def test_emit_calls_handlers_in_order(self):
        calls = []
        self.registry.register("first", POST_IMPORT_IMAGE, lambda event, img: calls.append(("first", img)) or 1)
        self.registry.register("second", POST_IMPORT_IMAGE, lambda event, img: calls.append(("second", img)) or 2)

        results = self.registry.emit(POST_IMPORT_IMAGE, "img")

        self.assertEqual(calls, [("first", "img"), ("second", "img")])
        self.assertEqual([(r.name, r.value) for r in results], [("first", 1), ("second", 2)])

    def test_callback_receives_event_type(self):
        callback = MagicMock(return_value=None)
        self.registry.register("hook", POST_IMPORT_IMAGE, callback)
        self.registry.emit(POST_IMPORT_IMAGE, 42)
        callback.assert_called_once_with(POST_IMPORT_IMAGE, 42)

    def test_duplicate_name_rejected(self):
        self.registry.register("hook", POST_IMPORT_IMAGE, MagicMock())
        with self.assertRaises(ValueError):
            self.registry.register("hook", POST_IMPORT_IMAGE, MagicMock())
        # Same name for another event is fine
        self.registry.register("hook", "shortcut", MagicMock())

    def test_failing_handler_does_not_stop_others(self):
        failing = MagicMock(side_effect=RuntimeError("boom"))
        working = MagicMock(return_value="ok")
        self.registry.register("failing", POST_IMPORT_IMAGE, failing)
        self.registry.register("working", POST_IMPORT_IMAGE, working)

        results = self.registry.emit(POST_IMPORT_IMAGE, "img")

        self.assertFalse(results[0].success)
        self.assertEqual(results[0].error, "boom")
        self.assertTrue(results[1].success)
        working.assert_called_once()

    def test_unregister(self):
        self.registry.register("hook", POST_IMPORT_IMAGE, MagicMock())
        self.assertTrue(self.registry.unregister("hook", POST_IMPORT_IMAGE))
        self.assertFalse(self.registry.unregister("hook", POST_IMPORT_IMAGE))
        self.assertEqual(self.registry.emit(POST_IMPORT_IMAGE, "img"), [])

    def test_emit_without_handlers(self):
        self.assertEqual(self.registry.emit("unknown-event"), [])


class TestProcessRegistry(unittest.TestCase):
    """Test cases for the process-wide registry."""

    def tearDown(self):
        events.shutdown_registry()

    def test_lifecycle(self):
        with self.assertRaises(RuntimeError):
            events.get_registry()

        registry = events.init_registry()
        self.assertIs(events.init_registry(), registry)
        self.assertIs(events.get_registry(), registry)

        registry.register("hook", POST_IMPORT_IMAGE, MagicMock())
        events.shutdown_registry()

        self.assertEqual(registry.handlers(POST_IMPORT_IMAGE), [])
        with self.assertRaises(RuntimeError):
            events.get_registry()


if __name__ == '__main__':
    unittest.main()

"""Tests for navforge.log."""

import logging
import unittest

from navforge import log


class LogCallbackTest(unittest.TestCase):

    def setUp(self):
        self.records = []
        log.set_level("DEBUG")
        log.set_callback(lambda level, message: self.records.append((level, message)))

    def tearDown(self):
        log.set_callback(None)
        log.set_level(logging.WARNING)

    def test_message(self):
        log.info("hello")
        self.assertEqual(self.records, [("INFO", "hello")])

    def test_exception_with_context(self):
        try:
            raise ValueError("bad value")
        except ValueError as e:
            log.error(e, "[Test] failed")
        level, message = self.records[0]
        self.assertEqual(level, "ERROR")
        self.assertTrue(message.startswith("[Test] failed: ValueError: bad value"))
        self.assertIn("Traceback", message)

    def test_level_filters(self):
        log.set_level(logging.ERROR)
        log.warn("ignored")
        log.error("kept")
        self.assertEqual(self.records, [("ERROR", "kept")])

    def test_callback_removed(self):
        log.set_callback(None)
        log.error("nobody listens")
        self.assertEqual(self.records, [])


if __name__ == "__main__":
    unittest.main()

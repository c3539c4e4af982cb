"""Tests for the store module."""

import os
import shutil
import tempfile
import unittest

from prayerwidget.store import JsonStore


class TestJsonStore(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self._tmpdir, "nested", "region.json")
        self.store = JsonStore(self.path)

    def tearDown(self):
        shutil.rmtree(self._tmpdir, ignore_errors=True)

    def test_missing_file_reads_empty(self):
        self.assertEqual(self.store.read(), {})

    def test_write_then_read(self):
        self.store.write({"retry_until": 1714571400.0})
        self.assertEqual(self.store.read(), {"retry_until": 1714571400.0})

    def test_write_leaves_no_temp_files(self):
        self.store.write({"a": 1})
        self.store.write({"a": 2})
        self.assertEqual(os.listdir(os.path.dirname(self.path)), ["region.json"])

    def test_non_object_reads_empty(self):
        self.store.write({"a": 1})
        with open(self.path, "w") as f:
            f.write("[1, 2]")
        self.assertEqual(self.store.read(), {})

    def test_clear(self):
        self.store.write({"a": 1})
        self.store.clear()
        self.assertFalse(os.path.exists(self.path))
        self.store.clear()


if __name__ == "__main__":
    unittest.main()

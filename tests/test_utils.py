"""
Unit tests for mthds.utils module
"""
import unittest
import tempfile
import os
import shutil
from pathlib import Path
from unittest.mock import patch

from mthds.utils import write_text_atomic


class TestWriteTextAtomic(unittest.TestCase):
    """Test the write_text_atomic helper"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_creates_parents(self):
        """Test writing into a directory that does not exist yet"""
        target = Path(self.temp_dir) / 'a' / 'b' / 'methods.lock'

        result = write_text_atomic(target, 'content\n')

        self.assertEqual(result, target)
        self.assertEqual(target.read_text(), 'content\n')

    def test_replaces_existing(self):
        """Test overwriting leaves no temp files behind"""
        target = Path(self.temp_dir) / 'METHODS.toml'
        target.write_text('old')

        write_text_atomic(str(target), 'new')

        self.assertEqual(target.read_text(), 'new')
        self.assertEqual(os.listdir(self.temp_dir), ['METHODS.toml'])

    def test_failed_rename_cleans_up(self):
        """Test that the temp file is removed when the rename fails"""
        target = Path(self.temp_dir) / 'methods.lock'
        target.write_text('original')

        with patch('mthds.utils.os.replace', side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                write_text_atomic(target, 'new')

        self.assertEqual(target.read_text(), 'original')
        self.assertEqual(os.listdir(self.temp_dir), ['methods.lock'])


if __name__ == '__main__':
    unittest.main()

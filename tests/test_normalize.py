#!/usr/bin/env python3
"""
Tests for file normalization in lfstream.cli.
"""

import io
import logging
import os
import shutil
import stat
import sys
import tempfile
import unittest
from pathlib import Path

# Add parent directory to path to import lfstream package
sys.path.insert(0, str(Path(__file__).parent.parent))
from lfstream import cli  # pylint: disable=wrong-import-position

# Disable logging for tests
cli.logger.setLevel(logging.CRITICAL)


class TestNormalizer(unittest.TestCase):
    def setUp(self) -> None:
        # Create a temporary directory
        self.test_dir = tempfile.mkdtemp()

        self.crlf_file = os.path.join(self.test_dir, "crlf_file.txt")
        self.lf_file = os.path.join(self.test_dir, "lf_file.txt")
        self.mixed_file = os.path.join(self.test_dir, "mixed_file.txt")
        self.no_eol_file = os.path.join(self.test_dir, "no_eol_file.txt")
        self.latin1_file = os.path.join(self.test_dir, "latin1_file.txt")

        with open(self.crlf_file, "wb") as f:
            f.write(b"Line 1\r\nLine 2\r\nLine 3\r\n")

        with open(self.lf_file, "wb") as f:
            f.write(b"Line 1\nLine 2\nLine 3\n")

        with open(self.mixed_file, "wb") as f:
            f.write(b"Line 1\r\nLine 2\nLine 3\rLine 4\r\n")

        with open(self.no_eol_file, "wb") as f:
            f.write(b"Line 1\r\nLine 2")

        # Bytes pass through regardless of encoding
        with open(self.latin1_file, "wb") as f:
            f.write(b"Special chars: \xa3\xb0\xc5\xd8\xe5\xf8\r\n")

        # Create directories to test ignore functionality
        self.ignored_dir = os.path.join(self.test_dir, ".git")
        os.makedirs(self.ignored_dir)
        self.ignored_file = os.path.join(self.ignored_dir, "config.txt")
        with open(self.ignored_file, "wb") as f:
            f.write(b"This is in .git and should be ignored\r\n")

    def tearDown(self) -> None:
        # Clean up the temporary directory
        shutil.rmtree(self.test_dir)

    def read(self, path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def test_crlf_file(self) -> None:
        """Test conversion of a CRLF file to LF."""
        self.assertTrue(cli.normalize_file(self.crlf_file))
        self.assertEqual(self.read(self.crlf_file), b"Line 1\nLine 2\nLine 3\n")

    def test_lf_file_unchanged(self) -> None:
        """Test that an already normalized file is left alone."""
        before = os.stat(self.lf_file).st_mtime_ns
        self.assertFalse(cli.normalize_file(self.lf_file, ensure_trailing_lf=True))
        self.assertEqual(self.read(self.lf_file), b"Line 1\nLine 2\nLine 3\n")
        self.assertEqual(os.stat(self.lf_file).st_mtime_ns, before)

    def test_mixed_line_endings(self) -> None:
        """Test normalization of mixed line endings."""
        self.assertTrue(cli.normalize_file(self.mixed_file))
        content = self.read(self.mixed_file)
        self.assertEqual(content.count(b"\r"), 0)
        self.assertEqual(content, b"Line 1\nLine 2\nLine 3\nLine 4\n")

    def test_trailing_lf(self) -> None:
        """Test that the trailing line feed is only added on request."""
        self.assertTrue(cli.normalize_file(self.no_eol_file))
        self.assertEqual(self.read(self.no_eol_file), b"Line 1\nLine 2")

        self.assertTrue(cli.normalize_file(self.no_eol_file, ensure_trailing_lf=True))
        self.assertEqual(self.read(self.no_eol_file), b"Line 1\nLine 2\n")

    def test_empty_file(self) -> None:
        """An empty file only changes when a trailing LF is requested."""
        empty_file = os.path.join(self.test_dir, "empty.txt")
        open(empty_file, "wb").close()  # pylint: disable=consider-using-with

        self.assertFalse(cli.normalize_file(empty_file))
        self.assertEqual(self.read(empty_file), b"")

        self.assertTrue(cli.normalize_file(empty_file, ensure_trailing_lf=True))
        self.assertEqual(self.read(empty_file), b"\n")

    def test_non_utf8_bytes_preserved(self) -> None:
        self.assertTrue(cli.normalize_file(self.latin1_file))
        self.assertEqual(
            self.read(self.latin1_file), b"Special chars: \xa3\xb0\xc5\xd8\xe5\xf8\n"
        )

    def test_backup(self) -> None:
        """Test that a backup keeps the original bytes."""
        self.assertTrue(cli.normalize_file(self.crlf_file, backup=True))
        self.assertEqual(
            self.read(self.crlf_file + ".bak"), b"Line 1\r\nLine 2\r\nLine 3\r\n"
        )

    def test_no_backup_by_default(self) -> None:
        cli.normalize_file(self.crlf_file)
        self.assertFalse(os.path.exists(self.crlf_file + ".bak"))

    def test_no_temporary_files_left(self) -> None:
        cli.normalize_file(self.crlf_file)
        cli.normalize_file(self.lf_file)
        leftovers = [n for n in os.listdir(self.test_dir) if n.endswith(".tmp")]
        self.assertEqual(leftovers, [])

    @unittest.skipIf(sys.platform == "win32", "POSIX permissions only")
    def test_permissions_preserved(self) -> None:
        os.chmod(self.crlf_file, 0o640)
        self.assertTrue(cli.normalize_file(self.crlf_file))
        self.assertEqual(stat.S_IMODE(os.stat(self.crlf_file).st_mode), 0o640)

    @unittest.skipIf(sys.platform == "win32", "symlinks need privileges on Windows")
    def test_symlink_target_rewritten(self) -> None:
        """Test that a symlink survives and its target is normalized."""
        link = os.path.join(self.test_dir, "link.txt")
        os.symlink(self.crlf_file, link)

        self.assertTrue(cli.normalize_file(link))
        self.assertTrue(os.path.islink(link))
        self.assertEqual(os.readlink(link), self.crlf_file)
        self.assertEqual(self.read(self.crlf_file), b"Line 1\nLine 2\nLine 3\n")

    @unittest.skipIf(sys.platform == "win32", "POSIX hard links only")
    def test_hard_link_shares_normalized_content(self) -> None:
        """Test that every hard link sees the normalized content."""
        sibling = os.path.join(self.test_dir, "sibling.txt")
        os.link(self.crlf_file, sibling)
        inode = os.stat(self.crlf_file).st_ino

        self.assertTrue(cli.normalize_file(self.crlf_file))
        self.assertEqual(self.read(sibling), b"Line 1\nLine 2\nLine 3\n")
        self.assertEqual(os.stat(self.crlf_file).st_ino, inode)
        self.assertEqual(os.stat(sibling).st_nlink, 2)

    def test_normalize_stream(self) -> None:
        source = io.BytesIO(b"a\r\nb\rc")
        target = io.BytesIO()
        written = cli.normalize_stream(source, target, ensure_trailing_lf=True)
        self.assertEqual(target.getvalue(), b"a\nb\nc\n")
        self.assertEqual(written, 6)
        self.assertTrue(source.closed)

    def test_normalize_stream_small_chunks(self) -> None:
        data = b"x\r\n" * 1000 + b"\r"
        target = io.BytesIO()
        cli.normalize_stream(io.BytesIO(data), target, chunk_size=7)
        self.assertEqual(target.getvalue(), b"x\n" * 1000 + b"\n")

    def test_find_files(self) -> None:
        """Test finding files with patterns."""
        files = cli.find_files(self.test_dir, [".txt"])
        self.assertEqual(len(files), 5)
        self.assertNotIn(self.ignored_file, files)

    def test_find_files_custom_ignore(self) -> None:
        files = cli.find_files(self.test_dir, [".txt"], ignore_dirs=[])
        self.assertIn(self.ignored_file, files)

    def test_find_files_no_duplicates(self) -> None:
        files = cli.find_files(self.test_dir, [".txt", "*.txt", "crlf*"])
        self.assertEqual(len(files), len(set(files)))
        self.assertEqual(len(files), 5)

    def test_process_files_parallel(self) -> None:
        files = [self.crlf_file, self.lf_file, self.mixed_file, self.no_eol_file]
        processed = cli.process_files_parallel(files, show_progress=False)
        self.assertEqual(processed, 3)
        for path in files:
            self.assertNotIn(b"\r", self.read(path))

    def test_process_files_parallel_empty(self) -> None:
        self.assertEqual(cli.process_files_parallel([], show_progress=False), 0)


if __name__ == "__main__":
    unittest.main()

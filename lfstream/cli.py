#!/usr/bin/env python3
"""
LFStream command line tool.

Normalizes line endings of files, directory trees or stdin to LF by streaming
them through LineEndingNormalizer.
"""

import argparse
import concurrent.futures
import filecmp
import logging
import os
import shutil
import sys
import tempfile
import threading
import time
from pathlib import Path
from typing import BinaryIO, List, Optional, Set

from tqdm import tqdm

from lfstream import __version__
from lfstream.stream import ByteSource, LineEndingNormalizer

DEFAULT_CHUNK_SIZE: int = 65536
DEFAULT_PATTERNS: List[str] = [".txt"]
DEFAULT_IGNORE_DIRS: List[str] = [
    ".git",
    ".github",
    "__pycache__",
    "node_modules",
    "venv",
    ".venv",
]
LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("LFStream")
# Worker threads share the logger
log_lock = threading.Lock()

BINARY_EXTENSIONS: Set[str] = {
    ".bin",
    ".exe",
    ".dll",
    ".so",
    ".dylib",
    ".obj",
    ".o",
    ".a",
    ".lib",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".bmp",
    ".ico",
    ".tif",
    ".tiff",
    ".zip",
    ".tar",
    ".gz",
    ".bz2",
    ".xz",
    ".7z",
    ".rar",
    ".pdf",
    ".doc",
    ".docx",
    ".xls",
    ".xlsx",
    ".ppt",
    ".pptx",
    ".class",
    ".pyc",
    ".pyo",
    ".pyd",
    ".mp3",
    ".mp4",
    ".avi",
    ".mov",
}
BINARY_SIGNATURES = (
    b"\x89PNG",
    b"GIF8",
    b"BM",
    b"\xff\xd8\xff",
    b"%PDF",
    b"PK\x03\x04",
)
TEXT_CHARACTERS: bytes = bytes(
    bytearray({7, 8, 9, 10, 12, 13, 27} | set(range(0x20, 0x100)) - {0x7F})
)


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Attach console (and optionally file) handlers to the LFStream logger."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def is_binary_file(file_path: str) -> bool:
    """
    Check if a file is binary by examining its name and content.
    Uses multiple heuristics; errors count as binary.
    """
    try:
        # Empty files are not binary
        if os.path.getsize(file_path) == 0:
            return False

        # Check extension first for common binary formats
        if os.path.splitext(file_path)[1].lower() in BINARY_EXTENSIONS:
            return True

        # Read the first chunk of the file
        with open(file_path, "rb") as f:
            chunk: bytes = f.read(8192)

        if not chunk:
            return False
        # Check for NULL bytes and known magic numbers
        if b"\x00" in chunk:
            return True
        if chunk.startswith(BINARY_SIGNATURES):
            return True

        # Check the ratio of non-text bytes
        non_text: bytes = chunk.translate(None, TEXT_CHARACTERS)
        return float(len(non_text)) / len(chunk) > 0.2
    except OSError as e:
        with log_lock:
            logger.error("Error checking if file is binary %s: %s", file_path, str(e))
        return True


def normalize_stream(
    source: ByteSource,
    target: BinaryIO,
    ensure_trailing_lf: bool = False,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """
    Copy ``source`` into ``target`` with line endings normalized to LF.

    The source is closed when done. Returns the number of bytes written.
    """
    written = 0
    buffer = bytearray(chunk_size)
    with LineEndingNormalizer(source, ensure_trailing_lf) as stream:
        while True:
            count = stream.readinto(buffer)
            if not count:
                break
            target.write(memoryview(buffer)[:count])
            written += count
    target.flush()
    return written


def normalize_file(  # pylint: disable=too-many-return-statements
    file_path: str,
    ensure_trailing_lf: bool = False,
    backup: bool = False,
    force: bool = False,
) -> bool:
    """
    Normalize a file in place. Returns True if the file was rewritten.

    Output goes to a temporary file next to the real file, which is only
    written back when the content changed. Symlinks and hard links keep
    pointing at the normalized content.
    """
    # Check if the file exists
    if not os.path.isfile(file_path):
        with log_lock:
            logger.error("File not found: %s", file_path)
        return False

    # Check if the file is readable
    if not os.access(file_path, os.R_OK):
        with log_lock:
            logger.error("File is not readable: %s", file_path)
        return False

    # Check if the file is writable
    if not os.access(file_path, os.W_OK):
        with log_lock:
            logger.error("File is not writable: %s", file_path)
        return False

    # Check if the file is a binary file
    if not force and is_binary_file(file_path):
        with log_lock:
            logger.debug("Skipping binary file: %s", file_path)
        return False

    # Work on the link target, not the link
    real_path = os.path.realpath(file_path)
    temp_path: Optional[str] = None
    try:
        fd, temp_path = tempfile.mkstemp(
            prefix=".lfstream-", suffix=".tmp", dir=os.path.dirname(real_path)
        )
        with os.fdopen(fd, "wb") as target, open(real_path, "rb") as source:
            normalize_stream(source, target, ensure_trailing_lf)

        # Only write back if content has changed
        if filecmp.cmp(real_path, temp_path, shallow=False):
            with log_lock:
                logger.debug("No changes needed for file: %s", file_path)
            return False

        if backup:
            shutil.copy2(real_path, file_path + ".bak")

        if os.stat(real_path).st_nlink > 1:
            # Rewrite the shared inode so every hard link sees the change
            shutil.copyfile(temp_path, real_path)
        else:
            shutil.copymode(real_path, temp_path)
            os.replace(temp_path, real_path)
            temp_path = None

        with log_lock:
            logger.debug("Updated file: %s", file_path)
        return True
    except PermissionError as e:
        with log_lock:
            logger.error("Permission denied accessing %s: %s", file_path, str(e))
        return False
    except OSError as e:
        with log_lock:
            logger.error("Error processing %s: %s", file_path, str(e))
        return False
    finally:
        # Remove the temporary file on every path that did not consume it
        if temp_path is not None and os.path.exists(temp_path):
            os.remove(temp_path)


def find_files(
    root_dir: str,
    file_patterns: Optional[List[str]],
    ignore_dirs: Optional[List[str]] = None,
) -> List[str]:
    """Find all files under root_dir matching any of the patterns."""
    ignore_dirs_set: Set[str] = set(
        DEFAULT_IGNORE_DIRS if ignore_dirs is None else ignore_dirs
    )

    # Turn patterns into globs
    globs: List[str] = []
    for pattern in file_patterns or DEFAULT_PATTERNS:
        pattern = pattern.strip()
        if not pattern:
            continue
        # A bare extension such as ".txt"
        if pattern.startswith(".") and "/" not in pattern and "\\" not in pattern:
            globs.append(f"*{pattern}")
        else:
            globs.append(pattern)

    # Walk the directory tree, pruning ignored directories
    all_files: List[str] = []
    for root, dirs, files in os.walk(root_dir):
        dirs[:] = sorted(d for d in dirs if d not in ignore_dirs_set)
        for filename in sorted(files):
            name = Path(filename)
            if any(name.match(glob) for glob in globs):
                all_files.append(os.path.join(root, filename))

    return all_files


def process_files_parallel(  # pylint: disable=too-many-arguments,too-many-locals
    files: List[str],
    ensure_trailing_lf: bool = False,
    backup: bool = False,
    force: bool = False,
    max_workers: Optional[int] = None,
    show_progress: bool = True,
) -> int:
    """Normalize files on a thread pool. Returns the number rewritten."""
    processed_count: int = 0
    error_count: int = 0
    skipped_count: int = 0

    if not files:
        return 0

    # Calculate the number of workers, capped by the file count
    if max_workers is None:
        cpu_count: Optional[int] = os.cpu_count()
        max_workers = min((cpu_count or 2) * 2, 32, len(files))
    else:
        max_workers = max(1, min(max_workers, 32, len(files)))

    with log_lock:
        logger.debug(
            "Using %d worker threads for processing %d files", max_workers, len(files)
        )

    # Batches bound the number of pending futures
    batch_size = 1000
    for i in range(0, len(files), batch_size):
        batch_files = files[i : i + batch_size]

        with tqdm(
            total=len(batch_files),
            desc=f"Normalizing files (batch {i // batch_size + 1})",
            unit="file",
            disable=not show_progress,
        ) as pbar:
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=max_workers
            ) as executor:
                # Submit all file normalization tasks
                future_to_file = {
                    executor.submit(
                        normalize_file, file_path, ensure_trailing_lf, backup, force
                    ): file_path
                    for file_path in batch_files
                }

                # Tally results as they complete
                for future in concurrent.futures.as_completed(future_to_file):
                    file_path = future_to_file[future]
                    try:
                        if future.result():
                            processed_count += 1
                        else:
                            skipped_count += 1
                    except Exception as e:  # pylint: disable=broad-exception-caught
                        error_count += 1
                        with log_lock:
                            logger.error(
                                "Unhandled error processing %s: %s", file_path, str(e)
                            )
                    finally:
                        pbar.update(1)

    with log_lock:
        if error_count > 0:
            logger.warning("Encountered errors while processing %d files", error_count)
        logger.info(
            "Processed: %d, Skipped: %d, Errors: %d",
            processed_count,
            skipped_count,
            error_count,
        )

    return processed_count


def format_duration(seconds: float) -> str:
    """Render an elapsed time for the summary line."""
    if seconds < 60:
        return f"{seconds:.2f} seconds"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    rest = seconds % 60
    parts: List[str] = []
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    parts.append(f"{minutes} minute{'s' if minutes != 1 else ''}")
    parts.append(f"{rest:.2f} seconds")
    return " ".join(parts)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lfstream",
        description="Normalize line endings (CR, CRLF, LF) to LF",
    )
    parser.add_argument(
        "paths",
        nargs="*",
        default=None,
        help="Files or directories to process, '-' for stdin to stdout "
        "(default: current directory)",
    )
    parser.add_argument(
        "-p",
        "--patterns",
        nargs="+",
        default=None,
        help="File patterns to match inside directories (default: .txt)",
    )
    parser.add_argument(
        "--ensure-trailing-lf",
        action="store_true",
        help="Make sure every output ends with a line feed",
    )
    parser.add_argument(
        "--ignore-dirs",
        nargs="+",
        default=None,
        help="Directories to ignore during processing "
        "(default: .git, .github, __pycache__, node_modules, venv, .venv)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker threads (default: auto-detect based on CPU count)",
    )
    parser.add_argument(
        "-b", "--backup", action="store_true", help="Keep a .bak copy of changed files"
    )
    parser.add_argument(
        "-f", "--force", action="store_true", help="Also process binary-looking files"
    )
    parser.add_argument(
        "--no-progress", action="store_true", help="Disable the progress bar"
    )
    parser.add_argument("--log-file", default=None, help="Also append log to this file")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--version",
        action="version",
        version=f"LFStream v{__version__}",
        help="Show program version and exit",
    )
    return parser


def main(  # pylint: disable=too-many-return-statements,too-many-branches
    argv: Optional[List[str]] = None,
) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    try:
        # Default to the current directory
        paths: List[str] = args.paths or [os.getcwd()]

        # Filter stdin to stdout
        if "-" in paths:
            if len(paths) > 1:
                logger.error("'-' cannot be combined with other paths.")
                return 1
            normalize_stream(
                sys.stdin.buffer, sys.stdout.buffer, args.ensure_trailing_lf
            )
            return 0

        logger.info("LFStream v%s - Line Ending Normalizer", __version__)

        # Validate workers count
        if args.workers is not None and args.workers <= 0:
            logger.warning(
                "Invalid worker count (%d), using auto-detection instead", args.workers
            )
            args.workers = None

        patterns: List[str] = args.patterns or DEFAULT_PATTERNS
        ignore_dirs: List[str] = args.ignore_dirs or DEFAULT_IGNORE_DIRS

        # Collect explicit files and search directories
        files: List[str] = []
        for path in paths:
            if os.path.isfile(path):
                files.append(os.path.abspath(path))
            elif os.path.isdir(path):
                root_dir = os.path.abspath(path)
                logger.info(
                    "Searching for files in %s matching patterns: %s",
                    root_dir,
                    " ".join(patterns),
                )
                files.extend(find_files(root_dir, patterns, ignore_dirs))
            else:
                logger.error("Error: '%s' is not a valid file or directory.", path)
                return 1

        logger.info("Ignoring directories: %s", ", ".join(ignore_dirs))
        logger.info(
            "Ensure trailing LF: %s", "Yes" if args.ensure_trailing_lf else "No"
        )

        if not files:
            logger.warning("No matching files found.")
            return 0

        # Measure execution time
        logger.info("Found %d files to process.", len(files))
        start_time: float = time.time()

        processed_count: int = process_files_parallel(
            files,
            args.ensure_trailing_lf,
            backup=args.backup,
            force=args.force,
            max_workers=args.workers,
            show_progress=not args.no_progress,
        )

        logger.info(
            "Done! Processed %d of %d files in %s.",
            processed_count,
            len(files),
            format_duration(time.time() - start_time),
        )
        return 0
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 130
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("An unexpected error occurred: %s", str(e))
        logger.debug("Traceback:", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())

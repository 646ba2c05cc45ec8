#!/usr/bin/env python3
"""
Common utilities for citadel-dev.

This module contains the colored logging setup and the helper used to run
git and Vagrant commands with their output captured to files.
"""

import logging
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    WHITE = '\033[37m'

    BRIGHT_RED = '\033[91m'
    BRIGHT_GREEN = '\033[92m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_BLUE = '\033[94m'
    BRIGHT_MAGENTA = '\033[95m'
    BRIGHT_CYAN = '\033[96m'


class ColorFormatter(logging.Formatter):
    """Colors the level name, and whole lines that carry a status marker."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.DIM + Colors.WHITE,
        logging.INFO: Colors.BRIGHT_BLUE,
        logging.WARNING: Colors.BRIGHT_YELLOW,
        logging.ERROR: Colors.BRIGHT_RED,
        logging.CRITICAL: Colors.BOLD + Colors.BRIGHT_RED,
    }

    # Markers used by DevEnvironment messages
    STATUS_COLORS = {
        "✅": Colors.BRIGHT_GREEN,
        "❌": Colors.BRIGHT_RED,
        "🔧": Colors.BRIGHT_CYAN,
        "🚀": Colors.BRIGHT_MAGENTA,
        "⛏️": Colors.BRIGHT_YELLOW,
    }

    def format(self, record):
        formatted = super().format(record)

        if not (hasattr(sys.stdout, 'isatty') and sys.stdout.isatty()):
            return formatted

        level_color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        formatted = formatted.replace(record.levelname, level_color + record.levelname + Colors.RESET, 1)

        message = record.getMessage()
        for marker, color in self.STATUS_COLORS.items():
            if message.startswith(marker):
                return color + formatted + Colors.RESET
        return formatted


def setup_logging(verbose: bool = False) -> logging.Logger:
    """
    Send all log output to stdout through ColorFormatter.

    Args:
        verbose: Enable debug logging if True

    Returns:
        The configured root logger
    """
    root = logging.getLogger()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter(
        fmt="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    ))

    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers = [handler]
    root.propagate = False

    return root


def last_lines(text: str, num_lines: int = 20) -> List[str]:
    """Return the last num_lines lines of text."""
    return text.splitlines()[-num_lines:]


def _log_tail(stream: str, text: str, num_lines: int = 20) -> None:
    lines = last_lines(text, num_lines)
    if lines:
        logger.error(f"Last {num_lines} lines of {stream}:")
        for line in lines:
            logger.error(f"{stream}: {line}")


def run_subprocess(cmd: List[str], log_dir: Optional[Path] = None, debug: bool = False,
                   check: bool = True, **kwargs) -> subprocess.CompletedProcess:
    """
    Run a command with stdout/stderr captured to files.

    Args:
        cmd: Command to run as list of strings
        log_dir: Directory for the captured output (default: system temp dir)
        debug: Keep the output files after the command finishes
        check: Raise CalledProcessError on a non-zero exit
        **kwargs: Additional keyword arguments for subprocess.run

    Returns:
        CompletedProcess with the captured stdout/stderr

    On failure the last 20 lines of each stream are logged.
    """
    directory = Path(log_dir) if log_dir else Path(tempfile.gettempdir())
    directory.mkdir(parents=True, exist_ok=True)

    stdout_file = tempfile.NamedTemporaryFile(mode='w+', prefix='citadel_dev_stdout_', suffix='.log',
                                              delete=False, dir=directory)
    stderr_file = tempfile.NamedTemporaryFile(mode='w+', prefix='citadel_dev_stderr_', suffix='.log',
                                              delete=False, dir=directory)
    paths = [Path(stdout_file.name), Path(stderr_file.name)]

    logger.debug(f"Running command: {' '.join(cmd)}")
    if debug:
        logger.debug(f"Output captured in: {', '.join(str(p) for p in paths)}")

    try:
        with stdout_file, stderr_file:
            result = subprocess.run(cmd, stdout=stdout_file, stderr=stderr_file, text=True, **kwargs)
            stdout_file.seek(0)
            stdout = stdout_file.read()
            stderr_file.seek(0)
            stderr = stderr_file.read()
    finally:
        if not debug:
            for path in paths:
                path.unlink(missing_ok=True)

    if result.returncode != 0:
        logger.error(f"Command failed with exit code {result.returncode}: {' '.join(cmd)}")
        if debug:
            logger.error(f"Full output kept in: {', '.join(str(p) for p in paths)}")
        _log_tail("stdout", stdout)
        _log_tail("stderr", stderr)

        if check:
            raise subprocess.CalledProcessError(result.returncode, cmd, output=stdout, stderr=stderr)

    return subprocess.CompletedProcess(args=cmd, returncode=result.returncode, stdout=stdout, stderr=stderr)

"""Ignore matcher for the ``.mmmignore`` file.

Patterns are globs relative to the config directory, one per line.
A ``**`` segment matches any number of path segments (including none);
other segments use shell-style matching on a single segment.  Disabled
mods (``*.disabled``) are always ignored.
"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path

from minecraft_mod_manager.file_handler import read_text_with_encoding

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".mmmignore"
DISABLED_PATTERN = "**/*.disabled"


def list_patterns(root_dir: Path) -> list[str]:
    """Load ignore patterns for *root_dir*.

    The implicit disabled-file pattern is always first.  A missing
    ignore file yields only that pattern.
    """
    patterns = [DISABLED_PATTERN]
    ignore_file = Path(root_dir) / IGNORE_FILE_NAME
    if not ignore_file.is_file():
        return patterns

    content, encoding = read_text_with_encoding(ignore_file)
    logger.debug("Read %s (%s)", ignore_file, encoding)
    for line in content.splitlines():
        line = line.strip()
        if line:
            patterns.append(line)
    return patterns


def is_ignored(
    root_dir: Path, absolute_path: Path, patterns: list[str]
) -> bool:
    """Return ``True`` if *absolute_path* matches any pattern.

    Paths outside *root_dir* are never ignored.
    """
    root = Path(root_dir).resolve()
    path = Path(absolute_path).resolve()
    try:
        rel = path.relative_to(root).as_posix()
    except ValueError:
        return False

    for pattern in patterns:
        pattern = pattern.strip().replace("\\", "/")
        if pattern and glob_match(pattern, rel):
            return True
    return False


def glob_match(pattern: str, target: str) -> bool:
    """Match a slash-separated *target* against a segment glob."""
    pattern_parts = _strip_dot_slash(pattern).split("/")
    target_parts = _strip_dot_slash(target).split("/")

    def match(pi: int, ti: int) -> bool:
        if pi == len(pattern_parts):
            return ti == len(target_parts)

        part = pattern_parts[pi]
        if part == "**":
            return any(
                match(pi + 1, skip)
                for skip in range(ti, len(target_parts) + 1)
            )

        if ti >= len(target_parts):
            return False
        if not fnmatch.fnmatchcase(target_parts[ti], part):
            return False
        return match(pi + 1, ti + 1)

    return match(0, 0)


def _strip_dot_slash(value: str) -> str:
    return value[2:] if value.startswith("./") else value

"""Game version fallback and release timestamp helpers."""

from __future__ import annotations

import re
from datetime import datetime, timezone

from minecraft_mod_manager.errors import InvalidTimestampError

# Catalogs send anywhere from one to nine fractional digits.
_FRACTION = re.compile(r"(?<=:\d{2})\.(\d+)")


def _parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def _split_version(version: str) -> tuple[int, int, int]:
    segments = version.split(".")
    major = _parse_int(segments[0]) if len(segments) > 0 else 0
    minor = _parse_int(segments[1]) if len(segments) > 1 else 0
    patch = _parse_int(segments[2]) if len(segments) > 2 else 0
    return major, minor, patch


def _format_version(major: int, minor: int, patch: int) -> str:
    if patch == 0:
        return f"{major}.{minor}"
    return f"{major}.{minor}.{patch}"


def next_version_down(version: str) -> tuple[str, bool]:
    """Step the patch component of a game version down by one.

    Returns:
        ``(next_version, True)`` while the patch is above 1, otherwise
        ``(version, False)`` to signal that fallback is exhausted.

    Example:
        ``"1.20.4"`` -> ``("1.20.3", True)``; ``"1.20.1"`` ->
        ``("1.20.1", False)``.
    """
    major, minor, patch = _split_version(version)
    if patch > 1:
        return _format_version(major, minor, patch - 1), True
    return _format_version(major, minor, patch), False


def parse_release_date(value: str) -> datetime:
    """Parse an RFC 3339 / ISO-8601 timestamp into an aware datetime.

    Timestamps without an offset are taken as UTC.

    Raises:
        InvalidTimestampError: If *value* cannot be parsed.
    """
    text = (value or "").strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(_six_digit_fraction, text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidTimestampError(value) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _six_digit_fraction(match: re.Match) -> str:
    digits = match.group(1)[:6]
    return "." + digits.ljust(6, "0")


def format_release_date(value: str) -> str:
    """Normalise a catalog timestamp to RFC 3339 UTC (``...Z``)."""
    parsed = parse_release_date(value).astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%dT%H:%M:%SZ")

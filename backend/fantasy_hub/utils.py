"""Shared utility functions for the Fantasy Hub backend."""

import re
import unicodedata
from datetime import date
from typing import Any, Dict, List, Optional


def normalize_name(name: str) -> str:
    """
    Normalize a player name for matching across different data sources.

    - Removes accents (é → e, ñ → n)
    - Converts to lowercase
    - Replaces punctuation (periods, hyphens, apostrophes) with spaces
    - Collapses whitespace

    Args:
        name: The player name to normalize

    Returns:
        Normalized name string for comparison
    """
    if not name:
        return ""
    # Remove accents
    normalized = unicodedata.normalize('NFD', name)
    without_accents = ''.join(c for c in normalized if unicodedata.category(c) != 'Mn')
    result = without_accents.casefold()
    # "Alexander-Arnold" == "Alexander Arnold", "J. Doe" -> "j doe"
    result = re.sub(r'[^a-z0-9\s]', ' ', result)
    return re.sub(r'\s+', ' ', result).strip()


def normalize_team(team: Optional[str]) -> str:
    """Upper-case, whitespace-stripped team code ("" when absent)."""
    if not team:
        return ""
    return str(team).strip().upper()


def normalize_identifier(value: Any) -> Optional[str]:
    """Return a stripped string identifier, or None for empty values."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def sanitize_error_message(error: Exception) -> str:
    """
    Sanitize an error message for safe display to clients.

    Removes sensitive information like file paths and credentials embedded in
    upstream URLs.

    Args:
        error: The exception to sanitize

    Returns:
        A safe error message string
    """
    error_str = str(error)
    # Remove file paths
    error_str = re.sub(r'/[^\s]+\.py', '[file]', error_str)
    # Remove line numbers
    error_str = re.sub(r'line \d+', 'line [num]', error_str)
    # Remove query strings, which may carry tokens
    error_str = re.sub(r'\?[^\s\'"]+', '?[query]', error_str)
    # Truncate long messages
    if len(error_str) > 200:
        error_str = error_str[:200] + '...'
    return error_str


def clean_numeric_string(value: Any) -> Optional[float]:
    """
    Clean a numeric value from an upstream payload and convert it to float.

    Args:
        value: A number, a numeric string (e.g., '1,001.50'), or None

    Returns:
        Float representation, or None for empty input

    Raises:
        ValueError: If the string cannot be converted to float
    """
    if value is None:
        return None

    if isinstance(value, bool):
        raise ValueError(f"Not a numeric value: {value!r}")

    if isinstance(value, (int, float)):
        return float(value)

    # Remove commas and any whitespace
    cleaned = str(value).replace(',', '').strip()

    # Handle empty strings
    if not cleaned:
        return None

    return float(cleaned)


def round_points(value: Optional[float]) -> Optional[float]:
    """Round a points value to two decimals at the point of exposure."""
    if value is None:
        return None
    return round(value, 2)


def current_season(today: Optional[date] = None) -> int:
    """Starting year of the football season in progress on ``today``.

    Seasons run August to May; July counts as preseason of the coming season.
    """
    today = today or date.today()
    return today.year if today.month >= 7 else today.year - 1


def unwrap_collection(data: Any, id_field: str = "id") -> List[Dict[str, Any]]:
    """
    Normalize the transport shape of an upstream collection into a list.

    Accepts a bare list, an object wrapping the list under ``results``,
    ``data`` or ``players``, or an object keyed by record id (the id is
    copied into ``id_field`` when the record lacks it).
    """
    if data is None:
        return []
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if isinstance(data, dict):
        for wrapper in ("results", "data", "players"):
            if isinstance(data.get(wrapper), list):
                return [item for item in data[wrapper] if isinstance(item, dict)]
        records = []
        for key, value in data.items():
            if isinstance(value, dict):
                record = dict(value)
                record.setdefault(id_field, key)
                records.append(record)
        return records
    raise ValueError(f"Unexpected collection payload: {type(data).__name__}")

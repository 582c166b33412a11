"""
Utilities for handling item paths, item references and best-effort file removal.
"""

import re
import shutil
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlparse

from workshop_emu.exceptions import CleanupError

MAX_ITEM_ID = 2**64 - 1

_ITEM_DIR_PATTERN = re.compile(r"[0-9]+")


def parse_item_reference(reference: str) -> Optional[int]:
    """
    Parses an item ID from either a bare number or a workshop page URL.

    Handles `123456` as well as URLs such as
    `https://steamcommunity.com/sharedfiles/filedetails/?id=123456`.
    Returns None for anything that does not resolve to an unsigned 64-bit ID.
    """
    reference = reference.strip()
    if not reference:
        return None

    if _ITEM_DIR_PATTERN.fullmatch(reference):
        candidate = reference
    else:
        query = parse_qs(urlparse(reference).query)
        values = query.get("id")
        if not values or not _ITEM_DIR_PATTERN.fullmatch(values[0]):
            return None
        candidate = values[0]

    item_id = int(candidate)
    if item_id == 0 or item_id > MAX_ITEM_ID:
        return None
    return item_id


def is_item_dir_name(name: str) -> bool:
    """True for directory names made only of ASCII decimal digits."""
    return bool(_ITEM_DIR_PATTERN.fullmatch(name)) and int(name) <= MAX_ITEM_ID


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def remove_file(path: Path) -> bool:
    """
    Deletes a file, treating a missing file as already removed.

    Returns True if a file was deleted. Raises CleanupError for any other
    failure.
    """
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        raise CleanupError(f"Could not delete '{path}': {e}") from e


def remove_tree(path: Path) -> bool:
    """Recursively deletes a directory with the same semantics as `remove_file`."""
    try:
        shutil.rmtree(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        raise CleanupError(f"Could not delete directory '{path}': {e}") from e

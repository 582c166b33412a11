"""
Unpacks downloaded item archives into their install directories.
"""

import asyncio
import logging
import os
import zipfile
import zlib
from pathlib import Path

from workshop_emu.exceptions import CleanupError, ExtractionError
from workshop_emu.utils.path import remove_file, remove_tree

log = logging.getLogger(__name__)

STAGING_SUFFIX = ".partial"

_ARCHIVE_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    RuntimeError,
    ValueError,
    OSError,
)


def staging_path(destination: Path) -> Path:
    """Where an archive is unpacked before being moved into place."""
    return destination.with_name(destination.name + STAGING_SUFFIX)


class ArchiveExtractor:
    """
    Extracts zip archives into a staging directory first and only then moves
    the result to the destination, so a failed extraction never leaves a
    half-populated install directory behind.
    """

    async def extract(self, archive: Path, destination: Path) -> Path:
        """Extracts `archive` into `destination` without blocking the event loop."""
        return await asyncio.to_thread(self._extract_sync, archive, destination)

    def _extract_sync(self, archive: Path, destination: Path) -> Path:
        staging = staging_path(destination)
        self._discard(staging)

        try:
            with zipfile.ZipFile(archive) as zf:
                bad_member = zf.testzip()
                if bad_member is not None:
                    raise ExtractionError(
                        f"Archive '{archive.name}' has a corrupt member: {bad_member}"
                    )
                zf.extractall(staging)

            remove_tree(destination)
            os.replace(staging, destination)
        except ExtractionError:
            self._discard(staging)
            raise
        except _ARCHIVE_ERRORS + (CleanupError,) as e:
            self._discard(staging)
            raise ExtractionError(
                f"Could not extract '{archive.name}' to '{destination}': {e}"
            ) from e

        log.debug(f"Extracted '{archive.name}' to '{destination}'.")
        return destination

    def discard_archive(self, archive: Path) -> None:
        """Deletes a transient archive. Failures are logged, never raised."""
        self._discard(archive, is_dir=False)

    def _discard(self, path: Path, is_dir: bool = True) -> None:
        try:
            if is_dir:
                remove_tree(path)
            else:
                remove_file(path)
        except CleanupError as e:
            log.warning(f"[yellow]{e}[/yellow]")

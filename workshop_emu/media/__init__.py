"""
Media Processing Layer.

This package is responsible for all archive file operations: streaming the
prepared archive to disk and unpacking it into the install directory.
"""

from .downloader import ArtifactDownloader
from .extractor import ArchiveExtractor

__all__ = ["ArtifactDownloader", "ArchiveExtractor"]

"""Exceptions raised by the novelbind pipeline.

Every error defined here is fatal for the volume being built: the
launcher logs it and the worker process exits with a non-zero status.
Content-shape anomalies (no content container, no chapter markers) are
not errors; the extractor degrades to a placeholder fragment instead.
"""

from __future__ import annotations

from typing import Optional


class NovelbindError(Exception):
    """Base exception for volume building errors."""
    pass


class ConfigurationError(NovelbindError):
    """Raised when a volume configuration or its cover image is unusable."""
    pass


class FetchError(NovelbindError):
    """Raised when a chapter page cannot be retrieved."""

    def __init__(self, url: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url
        self.status = status


class StyleCompileError(NovelbindError):
    """Raised when the SCSS style sheet fails to compile."""
    pass


class PackagingError(NovelbindError):
    """Raised when the EPUB or the HTML preview cannot be written."""
    pass

"""SCSS compilation for chapter documents.

The style sheet is compiled once per run with ``libsass`` and the
resulting CSS is inlined in every chapter document and in the preview.
"""

from __future__ import annotations

import logging
from pathlib import Path

import sass

from .errors import StyleCompileError

logger = logging.getLogger(__name__)


def compile_stylesheet(path: Path) -> str:
    """Compile the SCSS file at ``path`` and return the CSS text."""
    path = Path(path)
    if not path.is_file():
        raise StyleCompileError(f"style sheet not found: {path}")
    try:
        css = sass.compile(filename=str(path), output_style="expanded")
    except sass.CompileError as exc:
        raise StyleCompileError(f"cannot compile {path}: {exc}") from exc
    logger.debug("Compiled %s (%d bytes of CSS)", path, len(css))
    return css

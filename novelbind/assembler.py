"""Volume assembly: from a volume configuration to an EPUB on disk.

:func:`assemble` checks the cover image and compiles the style sheet
before any request is issued, then extracts every chapter strictly in
order, downloads the images they show, wraps each fragment in a
standalone HTML document, and packages the result with its images.
The EPUB is staged in a temporary directory that is removed whatever
happens, and only moved to ``dist/`` once it has been written
completely.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set
from urllib.parse import urljoin

import httpx

from .config import TOC_TITLE, Settings, VolumeConfig
from .errors import ConfigurationError
from .extractor import ExtractOptions, FragmentCache, extract_chapter, fetch_binary
from .packaging import (
    EmbeddedImage,
    ExtractedChapter,
    embedded_image,
    image_sources,
    move_into_place,
    package_epub,
    render_chapter_document,
    write_preview,
)
from .styles import compile_stylesheet

logger = logging.getLogger(__name__)


@dataclass
class AssemblyResult:
    epub_path: Path
    preview_path: Optional[Path] = None
    chapter_count: int = 0


async def _extract_all(
    config: VolumeConfig,
    options: ExtractOptions,
    client: httpx.AsyncClient,
    cache: Optional[FragmentCache],
) -> List[ExtractedChapter]:
    """Extract every chapter fragment, one request at a time."""
    fragments: List[ExtractedChapter] = []
    total = len(config.chapters)
    for idx, chapter in enumerate(config.chapters, start=1):
        logger.info("[%s] chapter %d/%d: %s", config.name, idx, total, chapter.title)
        fragment = await extract_chapter(chapter.url, options, client=client, cache=cache)
        fragments.append(ExtractedChapter(title=chapter.title, data=fragment))
    return fragments


async def _download_images(
    config: VolumeConfig,
    fragments: List[ExtractedChapter],
    client: httpx.AsyncClient,
) -> Dict[str, EmbeddedImage]:
    """Download each image the chapters show, once per ``src``.

    Relative sources are resolved against their chapter's URL. A failed
    download raises :class:`~novelbind.errors.FetchError`; an image of
    an unsupported type keeps its remote link.
    """
    images: Dict[str, EmbeddedImage] = {}
    seen: Set[str] = set()
    for chapter, fragment in zip(config.chapters, fragments):
        for src in image_sources(fragment.data):
            if src in seen:
                continue
            seen.add(src)
            url = urljoin(chapter.url, src)
            data, content_type = await fetch_binary(url, client)
            image = embedded_image(len(images) + 1, url, data, content_type)
            if image is None:
                logger.warning("[%s] unsupported image type, keeping remote link: %s", config.name, url)
                continue
            logger.debug("[%s] image %s stored as %s", config.name, url, image.name)
            images[src] = image
    return images


async def assemble(
    config: VolumeConfig,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> AssemblyResult:
    """Build the EPUB (and the optional preview) for one volume.

    ``client`` lets callers share or stub the HTTP client; when omitted
    one is created for the duration of the run.
    """
    settings = settings or Settings()
    cover_path = settings.cover_path(config)
    if not cover_path.is_file():
        raise ConfigurationError(f"cover image not found: {cover_path}")
    css = compile_stylesheet(settings.style_path)

    if client is None:
        async with httpx.AsyncClient(timeout=settings.timeout, follow_redirects=True) as own_client:
            return await _assemble(config, settings, cover_path, css, own_client)
    return await _assemble(config, settings, cover_path, css, client)


async def _assemble(
    config: VolumeConfig,
    settings: Settings,
    cover_path: Path,
    css: str,
    client: httpx.AsyncClient,
) -> AssemblyResult:
    options = ExtractOptions(
        show_soundcloud=config.show_soundcloud,
        show_figcaption=config.show_figcaption,
    )
    cache = FragmentCache() if settings.cache_fragments else None

    with tempfile.TemporaryDirectory(prefix="novelbind-") as tmp:
        work_dir = Path(tmp)

        fragments = await _extract_all(config, options, client, cache)
        images = await _download_images(config, fragments, client)
        chapters = [
            ExtractedChapter(title=f.title, data=render_chapter_document(f.data, css))
            for f in fragments
        ]

        staged = package_epub(
            config.title,
            config.author,
            cover_path,
            chapters,
            work_dir / f"{config.name}.epub",
            toc_title=TOC_TITLE,
            append_chapter_titles=False,
            images=images,
        )
        epub_path = move_into_place(staged, settings.epub_path(config))
        logger.info("EPUB written: %s", epub_path)

        result = AssemblyResult(epub_path=epub_path, chapter_count=len(chapters))
        if config.preview:
            sections = await _extract_all(config, options, client, cache)
            result.preview_path = write_preview(
                settings.preview_path(config), config.title, css, sections
            )
            logger.info("HTML preview written: %s", result.preview_path)
    return result

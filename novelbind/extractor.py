"""Chapter page fetching and extraction.

This module downloads a chapter page and reduces it to an HTML
fragment holding exactly one chapter. It uses ``httpx`` for HTTP
requests and ``BeautifulSoup`` (with the ``lxml`` parser) for DOM
queries.

Extraction works on the direct children of the page's content
container. A single pass over those children tags each node as the
chapter title, the lead image, a body node, the end marker, or
something to skip (:func:`classify_nodes`); :func:`render_fragment`
then serializes the tagged nodes. Both steps are pure and can be
exercised without any network access through
:func:`extract_chapter_html`.

Fetching is deliberately strict: a network error or a non-success
status raises :class:`~novelbind.errors.FetchError` immediately,
without retrying. Pages whose shape is unexpected (no content
container, no chapter markers) are not errors and degrade to the
:data:`NO_CONTENT_HTML` placeholder or to the whole container.
"""

from __future__ import annotations

import enum
import html
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import httpx
from bs4 import BeautifulSoup, Tag

from .errors import FetchError

logger = logging.getLogger(__name__)

# Default user agent for HTTP requests. Some sites require a user agent to
# return full content instead of a 403 or truncated response.
DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/90.0.4430.212 Safari/537.36"
    )
}
DEFAULT_TIMEOUT = 30.0

# WordPress content containers, most specific theme markup first.
CONTENT_SELECTORS = (".entry-content", ".post-content", ".wp-block-post-content")

NO_CONTENT_HTML = "<p>Pas de contenu trouvé</p>"

SEPARATOR_TEXT = "※ ※ ※ ※ ※ ※ ※ ※ ※ ※ ※ ※ ※"
SEPARATOR_HTML = f'<p style="text-align:center">{SEPARATOR_TEXT}</p>'
_SEPARATOR_COMPACT = "".join(SEPARATOR_TEXT.split())

CHAPTER_START_RE = re.compile(r"(?:CHAPITRE|CHAPTER)\s+\d+\s+[–-]\s+«.*»", re.IGNORECASE)
CHAPTER_END_RE = re.compile(r"=(?:Fin du Chapitre|End of Chapter)", re.IGNORECASE)

AUDIO_EMBED_DOMAIN = "soundcloud.com"


@dataclass(frozen=True)
class ExtractOptions:
    """Switches controlling which optional media survive extraction."""

    show_soundcloud: bool = False
    show_figcaption: bool = False


class NodeKind(enum.Enum):
    TITLE = "title"
    LEAD_IMAGE = "lead_image"
    BODY = "body"
    END_MARKER = "end_marker"
    SKIP = "skip"


@dataclass
class ClassifiedNode:
    kind: NodeKind
    node: Tag


class FragmentCache:
    """Extracted fragments of one run, keyed by URL and options."""

    def __init__(self) -> None:
        self._fragments: Dict[Tuple[str, ExtractOptions], str] = {}

    def get(self, url: str, options: ExtractOptions) -> Optional[str]:
        return self._fragments.get((url, options))

    def put(self, url: str, options: ExtractOptions, fragment: str) -> None:
        self._fragments[(url, options)] = fragment

    def __len__(self) -> int:
        return len(self._fragments)


async def _get(url: str, client: Optional[httpx.AsyncClient]) -> httpx.Response:
    if client is None:
        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, follow_redirects=True) as own_client:
            return await _get(url, own_client)
    logger.debug("GET %s", url)
    try:
        response = await client.get(url, headers=DEFAULT_HEADERS)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        raise FetchError(url, f"HTTP {status}", status=status) from exc
    except httpx.HTTPError as exc:
        raise FetchError(url, str(exc) or exc.__class__.__name__) from exc
    return response


async def fetch_html(url: str, client: Optional[httpx.AsyncClient] = None) -> str:
    """Fetch the HTML content from ``url``.

    Any transport error or non-2xx status raises :class:`FetchError`.
    When ``client`` is omitted a short-lived client is created for the
    single request.
    """
    response = await _get(url, client)
    return response.text


async def fetch_binary(url: str, client: Optional[httpx.AsyncClient] = None) -> Tuple[bytes, str]:
    """Fetch ``url`` as raw bytes, with its ``Content-Type`` (may be empty).

    Fails exactly like :func:`fetch_html`.
    """
    response = await _get(url, client)
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    return response.content, content_type


def find_content_container(soup: BeautifulSoup) -> Optional[Tag]:
    """Return the first element matching :data:`CONTENT_SELECTORS`, in order."""
    for selector in CONTENT_SELECTORS:
        container = soup.select_one(selector)
        if container is not None:
            return container
    return None


def _node_text(node: Tag) -> str:
    return node.get_text().strip()


def _first_image(node: Tag) -> Optional[Tag]:
    if node.name == "img":
        return node
    return node.find("img")


def _is_separator(node: Tag) -> bool:
    if _first_image(node) is not None:
        return False
    return "".join(node.get_text().split()) == _SEPARATOR_COMPACT


def _points_to_audio_embed(tag: Tag) -> bool:
    if tag.name == "a":
        return AUDIO_EMBED_DOMAIN in (tag.get("href") or "")
    if tag.name == "iframe":
        return AUDIO_EMBED_DOMAIN in (tag.get("src") or "")
    return False


def references_audio_embed(node: Tag) -> bool:
    """True if ``node`` is, or contains, a link or frame to the audio host."""
    return _points_to_audio_embed(node) or node.find(_points_to_audio_embed) is not None


def _find_start(nodes: List[Tag]) -> int:
    for idx, node in enumerate(nodes):
        if CHAPTER_START_RE.search(_node_text(node)):
            return idx
    return -1


def classify_nodes(nodes: List[Tag], options: ExtractOptions) -> List[ClassifiedNode]:
    """Tag every node of the content container in one pass.

    Nodes before the chapter start are skipped, except the first one
    holding an image, which becomes the lead image. Without a start
    marker the chapter begins at the first node and has no title.
    Everything after the first end marker is skipped; without one the
    chapter runs to the last node.
    """
    start = _find_start(nodes)
    first_chapter_node = max(start, 0)
    classified: List[ClassifiedNode] = []
    lead_found = False
    ended = False
    for idx, node in enumerate(nodes):
        if idx < first_chapter_node:
            if not lead_found and _first_image(node) is not None:
                kind = NodeKind.LEAD_IMAGE
                lead_found = True
            else:
                kind = NodeKind.SKIP
        elif idx == start:
            kind = NodeKind.TITLE
        elif ended:
            kind = NodeKind.SKIP
        elif CHAPTER_END_RE.search(_node_text(node)):
            kind = NodeKind.END_MARKER
            ended = True
        elif _is_separator(node):
            kind = NodeKind.SKIP
        elif not options.show_soundcloud and references_audio_embed(node):
            kind = NodeKind.SKIP
        elif not options.show_figcaption and node.name == "figcaption":
            kind = NodeKind.SKIP
        else:
            kind = NodeKind.BODY
        classified.append(ClassifiedNode(kind, node))
    return classified


def _strip_captions(node: Tag) -> None:
    for caption in node.find_all("figcaption"):
        caption.decompose()


def _strip_separators(node: Tag) -> None:
    # The separator is emitted once, ahead of the body.
    for paragraph in node.find_all("p"):
        if _is_separator(paragraph):
            paragraph.decompose()


def _enclosing_figure(img: Tag, boundary: Tag) -> Optional[Tag]:
    current: Optional[Tag] = img
    while current is not None:
        if current.name == "figure":
            return current
        if current is boundary:
            return None
        current = current.parent
    return None


def _lead_image_html(node: Tag, options: ExtractOptions) -> str:
    img = _first_image(node)
    if img is None:
        return ""
    figure = _enclosing_figure(img, node)
    if figure is None:
        return str(img)
    if not options.show_figcaption:
        _strip_captions(figure)
    return str(figure)


def render_fragment(classified: List[ClassifiedNode], options: ExtractOptions) -> str:
    """Serialize classified nodes as ``title + lead image + separator + body``."""
    title_html = ""
    lead_html = ""
    body: List[str] = []
    for item in classified:
        if item.kind is NodeKind.TITLE:
            title_html = f"<h1>{html.escape(_node_text(item.node), quote=False)}</h1>"
        elif item.kind is NodeKind.LEAD_IMAGE:
            lead_html = _lead_image_html(item.node, options)
        elif item.kind is NodeKind.BODY:
            if not options.show_figcaption:
                _strip_captions(item.node)
            _strip_separators(item.node)
            body.append(str(item.node))
    if not (title_html or lead_html or body):
        return NO_CONTENT_HTML
    return title_html + lead_html + SEPARATOR_HTML + "\n".join(body)


def extract_chapter_html(page_html: str, options: Optional[ExtractOptions] = None) -> str:
    """Extract the chapter fragment from a full page of HTML."""
    options = options or ExtractOptions()
    soup = BeautifulSoup(page_html, "lxml")
    container = find_content_container(soup)
    if container is None:
        logger.debug("No content container found")
        return NO_CONTENT_HTML
    nodes = [child for child in container.children if isinstance(child, Tag)]
    classified = classify_nodes(nodes, options)
    kinds = {item.kind for item in classified}
    if NodeKind.TITLE not in kinds:
        logger.debug("No chapter start marker, keeping the container from its first node")
    if NodeKind.END_MARKER not in kinds:
        logger.debug("No chapter end marker, keeping the container up to its last node")
    return render_fragment(classified, options)


async def extract_chapter(
    url: str,
    options: Optional[ExtractOptions] = None,
    client: Optional[httpx.AsyncClient] = None,
    cache: Optional[FragmentCache] = None,
) -> str:
    """Fetch ``url`` and return its chapter fragment.

    When ``cache`` is given, a fragment already extracted for the same
    URL and options is returned without issuing a request.
    """
    options = options or ExtractOptions()
    if cache is not None:
        cached = cache.get(url, options)
        if cached is not None:
            logger.debug("Cache hit for %s", url)
            return cached
    page_html = await fetch_html(url, client)
    fragment = extract_chapter_html(page_html, options)
    if fragment == NO_CONTENT_HTML:
        logger.warning("No chapter content found at %s", url)
    if cache is not None:
        cache.put(url, options, fragment)
    return fragment

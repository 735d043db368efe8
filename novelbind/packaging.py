"""EPUB and HTML preview writers.

``package_epub`` creates an EPUB 2 archive using Python's ``zipfile``
module. It writes a ``mimetype`` file, ``META-INF/container.xml``, a
package document (``content.opf``), a table of contents (``toc.ncx``),
a cover page, a visible table of contents page, and one XHTML file per
chapter, in the order the chapters are given.

Chapter documents and the single-page preview are rendered with Jinja2
templates stored in ``templates/`` next to this module.
"""

from __future__ import annotations

import html
import logging
import shutil
import uuid
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from jinja2 import Environment, FileSystemLoader, select_autoescape

from .errors import PackagingError

logger = logging.getLogger(__name__)

templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)

_IMAGE_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
}
_IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
}


@dataclass(frozen=True)
class ExtractedChapter:
    title: str
    data: str


@dataclass(frozen=True)
class EmbeddedImage:
    """An image stored inside the EPUB under ``name``."""

    name: str
    media_type: str
    data: bytes


def image_sources(document: str) -> List[str]:
    """Return the distinct ``src`` values of the document's images, in order.

    Inline ``data:`` images need no download and are left out.
    """
    soup = BeautifulSoup(document, "lxml")
    sources: List[str] = []
    for img in soup.find_all("img"):
        src = (img.get("src") or "").strip()
        if src and not src.startswith("data:") and src not in sources:
            sources.append(src)
    return sources


def embedded_image(index: int, url: str, data: bytes, content_type: str = "") -> Optional[EmbeddedImage]:
    """Name a downloaded image for the archive, or None if its type is unsupported.

    The served ``Content-Type`` wins over the URL extension.
    """
    media_type = content_type if content_type in _IMAGE_EXTENSIONS else None
    if media_type is None:
        media_type = _IMAGE_MEDIA_TYPES.get(Path(urlsplit(url).path).suffix.lower())
    if media_type is None:
        return None
    return EmbeddedImage(f"Images/img{index}{_IMAGE_EXTENSIONS[media_type]}", media_type, data)


def render_chapter_document(fragment: str, css: str) -> str:
    """Wrap a chapter fragment in a minimal standalone HTML document."""
    return templates.get_template("chapter.html").render(css=css, fragment=fragment)


def render_preview(title: str, css: str, sections: Sequence[ExtractedChapter]) -> str:
    """Render every chapter fragment on one page, one ``<section>`` each."""
    return templates.get_template("preview.html").render(title=title, css=css, sections=sections)


def write_preview(path: Path, title: str, css: str, sections: Sequence[ExtractedChapter]) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(render_preview(title, css, sections))
    except OSError as exc:
        raise PackagingError(f"cannot write preview {path}: {exc}") from exc
    return path


def _xhtml_page(title: str, body: str, head_extra: str = "") -> str:
    return (
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<!DOCTYPE html PUBLIC '-//W3C//DTD XHTML 1.1//EN' "
        "'http://www.w3.org/TR/xhtml11/DTD/xhtml11.dtd'>\n"
        "<html xmlns='http://www.w3.org/1999/xhtml'>\n"
        f"<head><title>{title}</title>{head_extra}</head>\n"
        "<body>\n"
        f"{body}\n"
        "</body>\n"
        "</html>\n"
    )


def _chapter_xhtml(
    title: str,
    document: str,
    append_title: bool,
    images: Mapping[str, EmbeddedImage],
) -> str:
    """Convert a standalone chapter document into an XHTML content file.

    Images found in ``images`` are pointed at their copy in the archive.
    """
    soup = BeautifulSoup(document, "lxml")
    for img in soup.find_all("img"):
        image = images.get((img.get("src") or "").strip())
        if image is not None:
            img["src"] = f"../{image.name}"
            # Responsive variants would still point at the web.
            for attr in ("srcset", "sizes"):
                if attr in img.attrs:
                    del img[attr]
    styles = "".join(str(style) for style in soup.find_all("style"))
    body = soup.body.decode_contents() if soup.body is not None else ""
    if append_title:
        body = f"<h1>{title}</h1>\n{body}"
    return _xhtml_page(title, body, head_extra=styles)


def _epub_template(
    title: str,
    author: str,
    cover_name: str,
    cover_media_type: str,
    chapters: Sequence[ExtractedChapter],
    toc_title: str,
    append_chapter_titles: bool,
    language: str,
    images: Mapping[str, EmbeddedImage],
) -> Dict[str, str]:
    """Generate the text files of the EPUB archive.

    Returns a dict mapping internal file names (inside the EPUB) to
    their contents. The caller writes the ``mimetype`` entry, the
    cover and the other images itself.
    """
    esc_title = html.escape(title)
    esc_author = html.escape(author)
    esc_toc_title = html.escape(toc_title)
    uid = f"urn:uuid:{uuid.uuid4()}"

    files: Dict[str, str] = {}
    manifest_items: List[str] = [
        "<item id='ncx' href='toc.ncx' media-type='application/x-dtbncx+xml'/>",
        f"<item id='cover-image' href='{cover_name}' media-type='{cover_media_type}'/>",
        "<item id='cover' href='Text/cover.xhtml' media-type='application/xhtml+xml'/>",
        "<item id='toc' href='Text/toc.xhtml' media-type='application/xhtml+xml'/>",
    ]
    for idx, image in enumerate(images.values(), start=1):
        manifest_items.append(f"<item id='img{idx}' href='{image.name}' media-type='{image.media_type}'/>")
    spine_items: List[str] = ["<itemref idref='cover' linear='no'/>", "<itemref idref='toc'/>"]
    ncx_navpoints: List[str] = [
        "<navPoint id='navPoint-0' playOrder='1'>"
        f"<navLabel><text>{esc_toc_title}</text></navLabel>"
        "<content src='Text/toc.xhtml'/>"
        "</navPoint>"
    ]
    toc_links: List[str] = []

    files["Text/cover.xhtml"] = _xhtml_page(
        esc_title,
        f"<div style='text-align:center'><img src='../{cover_name}' alt='{esc_title}'/></div>",
    )
    for idx, chapter in enumerate(chapters, start=1):
        chap_title = html.escape(chapter.title)
        file_name = f"Text/chapter{idx}.xhtml"
        files[file_name] = _chapter_xhtml(chap_title, chapter.data, append_chapter_titles, images)
        manifest_items.append(f"<item id='chap{idx}' href='{file_name}' media-type='application/xhtml+xml'/>")
        spine_items.append(f"<itemref idref='chap{idx}'/>")
        ncx_navpoints.append(
            (
                f"<navPoint id='navPoint-{idx}' playOrder='{idx + 1}'>"
                f"<navLabel><text>{chap_title}</text></navLabel>"
                f"<content src='{file_name}'/>"
                f"</navPoint>"
            )
        )
        toc_links.append(f"<li><a href='chapter{idx}.xhtml'>{chap_title}</a></li>")
    files["Text/toc.xhtml"] = _xhtml_page(
        esc_toc_title,
        f"<h1>{esc_toc_title}</h1>\n<ol>\n" + "\n".join(toc_links) + "\n</ol>",
    )

    files["content.opf"] = (
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<package xmlns='http://www.idpf.org/2007/opf' unique-identifier='BookId' version='2.0'>\n"
        "  <metadata xmlns:dc='http://purl.org/dc/elements/1.1/' xmlns:opf='http://www.idpf.org/2007/opf'>\n"
        f"    <dc:title>{esc_title}</dc:title>\n"
        f"    <dc:creator opf:role='aut'>{esc_author}</dc:creator>\n"
        f"    <dc:identifier id='BookId'>{uid}</dc:identifier>\n"
        f"    <dc:language>{language}</dc:language>\n"
        "    <meta name='cover' content='cover-image'/>\n"
        "  </metadata>\n"
        "  <manifest>\n"
        "    " + "\n    ".join(manifest_items) + "\n"
        "  </manifest>\n"
        "  <spine toc='ncx'>\n"
        "    " + "\n    ".join(spine_items) + "\n"
        "  </spine>\n"
        "  <guide>\n"
        "    <reference type='cover' title='Cover' href='Text/cover.xhtml'/>\n"
        f"    <reference type='toc' title='{esc_toc_title}' href='Text/toc.xhtml'/>\n"
        "  </guide>\n"
        "</package>"
    )
    files["toc.ncx"] = (
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<ncx xmlns='http://www.daisy.org/z3986/2005/ncx/' version='2005-1'>\n"
        "  <head>\n"
        f"    <meta name='dtb:uid' content='{uid}'/>\n"
        "    <meta name='dtb:depth' content='1'/>\n"
        "    <meta name='dtb:totalPageCount' content='0'/>\n"
        "    <meta name='dtb:maxPageNumber' content='0'/>\n"
        "  </head>\n"
        f"  <docTitle><text>{esc_title}</text></docTitle>\n"
        f"  <docAuthor><text>{esc_author}</text></docAuthor>\n"
        "  <navMap>\n"
        "    " + "\n    ".join(ncx_navpoints) + "\n"
        "  </navMap>\n"
        "</ncx>"
    )
    files["META-INF/container.xml"] = (
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<container version='1.0' xmlns='urn:oasis:names:tc:opendocument:xmlns:container'>\n"
        "  <rootfiles>\n"
        "    <rootfile full-path='content.opf' media-type='application/oebps-package+xml'/>\n"
        "  </rootfiles>\n"
        "</container>"
    )
    return files


def package_epub(
    title: str,
    author: str,
    cover_path: Path,
    chapters: Iterable[ExtractedChapter],
    dest: Path,
    *,
    toc_title: str,
    append_chapter_titles: bool = False,
    language: str = "fr",
    images: Optional[Mapping[str, EmbeddedImage]] = None,
) -> Path:
    """Create an EPUB archive at ``dest`` and return its path.

    Chapters keep the order in which they are given; an empty chapter
    list produces a book holding only the cover and the table of
    contents. ``images`` maps the ``src`` of chapter images to their
    downloaded copy; those images are stored in the archive and the
    chapters refer to them instead of the web. Any failure while
    reading the cover or writing the archive raises
    :class:`PackagingError`.
    """
    cover_path = Path(cover_path)
    dest = Path(dest)
    media_type = _IMAGE_MEDIA_TYPES.get(cover_path.suffix.lower())
    if media_type is None:
        raise PackagingError(f"unsupported cover image type: {cover_path.name}")
    cover_name = f"Images/cover{cover_path.suffix.lower()}"
    images = dict(images or {})
    template = _epub_template(
        title,
        author,
        cover_name,
        media_type,
        list(chapters),
        toc_title,
        append_chapter_titles,
        language,
        images,
    )
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(dest, "w", zipfile.ZIP_DEFLATED) as zf:
            # The mimetype must be the first entry and must not be compressed.
            zf.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
            zf.write(cover_path, cover_name)
            for image in images.values():
                zf.writestr(image.name, image.data)
            for internal_name, content in template.items():
                zf.writestr(internal_name, content)
    except (OSError, zipfile.BadZipFile) as exc:
        raise PackagingError(f"cannot write EPUB {dest}: {exc}") from exc
    return dest


def move_into_place(source: Path, dest: Path) -> Path:
    """Move a finished artifact from the working directory to ``dest``."""
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(dest))
    except OSError as exc:
        raise PackagingError(f"cannot move {source} to {dest}: {exc}") from exc
    logger.debug("Moved %s to %s", source, dest)
    return dest

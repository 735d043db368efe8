"""Shared fixtures: fake chapter pages, a stubbed HTTP client, a volume layout."""

import json
from typing import Callable, Dict, List, Tuple

import httpx
import pytest

from novelbind.config import ChapterDescriptor, Settings, VolumeConfig

STYLE_SCSS = """
$accent: #7a4b2a;
body {
  h1 { color: $accent; }
}
"""


def _page(container_html: str, container_class: str = "entry-content") -> str:
    return (
        "<html><head><title>Blog</title></head><body>"
        "<header><nav>menu</nav></header>"
        f'<div class="{container_class}">{container_html}</div>'
        "<footer>footer</footer>"
        "</body></html>"
    )


@pytest.fixture
def make_page() -> Callable[..., str]:
    """Wrap markup in a WordPress-like page around a content container."""
    return _page


class FakeSite:
    """Serves canned pages and files through ``httpx.MockTransport`` and records requests."""

    def __init__(self) -> None:
        self.pages: Dict[str, str] = {}
        self.files: Dict[str, Tuple[bytes, str]] = {}
        self.statuses: Dict[str, int] = {}
        self.requests: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url in self.statuses:
            return httpx.Response(self.statuses[url], text="error")
        if url in self.files:
            content, content_type = self.files[url]
            return httpx.Response(200, content=content, headers={"content-type": content_type})
        if url not in self.pages:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=self.pages[url])

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def layout(tmp_path):
    """Create the assets/style/dist layout and return matching settings."""
    assets = tmp_path / "assets" / "images"
    assets.mkdir(parents=True)
    styles = tmp_path / "styles"
    styles.mkdir()
    (styles / "style.scss").write_text(STYLE_SCSS, encoding="utf-8")
    volumes = tmp_path / "volumes"
    volumes.mkdir()
    return Settings(
        config_dir=volumes,
        assets_dir=assets,
        style_path=styles / "style.scss",
        dist_dir=tmp_path / "dist",
        jobs=2,
    )


@pytest.fixture
def add_cover(layout):
    def _add(name: str) -> None:
        (layout.assets_dir / f"{name}-cover.jpg").write_bytes(b"\xff\xd8\xff\xe0fakejpeg")
    return _add


@pytest.fixture
def write_volume(layout):
    """Write a volume configuration JSON file and return its path."""
    def _write(name: str, chapters=(), **extra):
        data = {
            "name": name,
            "title": f"Tome {name}",
            "author": "Auteur",
            "chapitres": [{"titre": t, "url": u} for t, u in chapters],
        }
        data.update(extra)
        path = layout.config_dir / f"{name}.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path
    return _write


def chapter_page(number: int, body: str) -> str:
    return _page(
        f"<h1>CHAPITRE {number} – «Titre {number}»</h1>"
        f"<p>{body}</p>"
        "<p>=Fin du Chapitre</p>"
    )


@pytest.fixture
def volume_on_site(site):
    """Publish ``count`` chapters on the fake site and return their config."""
    def _build(name: str = "21", count: int = 3, **options) -> VolumeConfig:
        chapters = []
        for number in range(1, count + 1):
            url = f"https://novel.example/{name}/chapitre-{number}/"
            site.pages[url] = chapter_page(number, f"corps du chapitre {number}")
            chapters.append(ChapterDescriptor(title=f"Chapitre {number}", url=url))
        return VolumeConfig(
            name=name,
            title=f"Tome {name}",
            author="Auteur",
            chapters=tuple(chapters),
            **options,
        )
    return _build

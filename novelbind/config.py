"""Volume configuration and process-wide settings.

A *volume* is described by one JSON file in the configuration
directory (``volumes/`` by default)::

    {
        "name": "21",
        "title": "Tome 21",
        "author": "...",
        "preview": true,
        "showSoundcloud": false,
        "showFigcaption": false,
        "chapitres": [{"titre": "Chapitre 1", "url": "https://..."}]
    }

The file is read once per run into an immutable :class:`VolumeConfig`.
Paths and limits shared by every run live in :class:`Settings`, whose
defaults can be overridden through ``NOVELBIND_*`` environment
variables (a ``.env`` file is honoured by the launcher).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ConfigurationError

COVER_SUFFIX = "-cover.jpg"
TOC_TITLE = "Sommaire"


@dataclass(frozen=True)
class ChapterDescriptor:
    title: str
    url: str


@dataclass(frozen=True)
class VolumeConfig:
    name: str
    title: str
    author: str
    chapters: Tuple[ChapterDescriptor, ...] = ()
    preview: bool = False
    show_soundcloud: bool = False
    show_figcaption: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VolumeConfig":
        """Build a configuration from the decoded JSON document.

        Only a literal JSON ``true`` enables one of the boolean options;
        anything else (missing, ``"yes"``, ``1``) leaves it disabled.
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("configuration must be a JSON object")
        for key in ("name", "title", "author"):
            value = data.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"missing or empty field '{key}'")
        raw_chapters = data.get("chapitres")
        if not isinstance(raw_chapters, list):
            raise ConfigurationError("field 'chapitres' must be a list")
        chapters: List[ChapterDescriptor] = []
        for idx, item in enumerate(raw_chapters):
            if not isinstance(item, Mapping):
                raise ConfigurationError(f"chapitres[{idx}] must be an object")
            title = item.get("titre")
            url = item.get("url")
            if not isinstance(title, str) or not isinstance(url, str) or not url:
                raise ConfigurationError(f"chapitres[{idx}] needs string 'titre' and 'url'")
            chapters.append(ChapterDescriptor(title=title, url=url))
        return cls(
            name=data["name"],
            title=data["title"],
            author=data["author"],
            chapters=tuple(chapters),
            preview=data.get("preview") is True,
            show_soundcloud=data.get("showSoundcloud") is True,
            show_figcaption=data.get("showFigcaption") is True,
        )


def load_volume_config(path: Path) -> VolumeConfig:
    """Read and validate the volume configuration stored at ``path``."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"configuration file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"invalid JSON in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"cannot read {path}: {exc}") from exc
    return VolumeConfig.from_dict(data)


def volume_from_environment(environ: Mapping[str, str]) -> Tuple[str, VolumeConfig]:
    """Load the volume described by the legacy ``CHAPTER_*`` variables.

    ``CHAPTER_FILE`` points to the configuration; ``CHAPTER_TITLE`` and
    ``CHAPTER_AUTHOR`` override its title and author when set, and
    ``CHAPTER_ENV`` names the volume in diagnostics. Returns the volume
    name together with the configuration.
    """
    chapter_file = environ.get("CHAPTER_FILE")
    volume = environ.get("CHAPTER_ENV") or ""
    if not chapter_file:
        raise ConfigurationError(f"CHAPTER_FILE is not set for '{volume}'")
    config = load_volume_config(Path(chapter_file))
    overrides: Dict[str, str] = {}
    if environ.get("CHAPTER_TITLE"):
        overrides["title"] = environ["CHAPTER_TITLE"]
    if environ.get("CHAPTER_AUTHOR"):
        overrides["author"] = environ["CHAPTER_AUTHOR"]
    if overrides:
        config = replace(config, **overrides)
    return volume or Path(chapter_file).stem, config


def list_volumes(config_dir: Path) -> List[str]:
    """Return the sorted volume names available in ``config_dir``."""
    return sorted(p.stem for p in Path(config_dir).glob("*.json"))


def _env_flag(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


@dataclass
class Settings:
    """Paths and limits shared by every volume run."""

    config_dir: Path = field(default_factory=lambda: Path("volumes"))
    assets_dir: Path = field(default_factory=lambda: Path("assets/images"))
    style_path: Path = field(default_factory=lambda: Path("styles/style.scss"))
    dist_dir: Path = field(default_factory=lambda: Path("dist"))
    jobs: int = 4
    cache_fragments: bool = True
    timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        try:
            jobs = int(env.get("NOVELBIND_JOBS", defaults.jobs))
            timeout = float(env.get("NOVELBIND_TIMEOUT", defaults.timeout))
        except ValueError as exc:
            raise ConfigurationError(f"invalid numeric setting: {exc}") from exc
        if jobs < 1:
            raise ConfigurationError("NOVELBIND_JOBS must be at least 1")
        if timeout <= 0:
            raise ConfigurationError("NOVELBIND_TIMEOUT must be positive")
        return cls(
            config_dir=Path(env.get("NOVELBIND_CONFIG_DIR", defaults.config_dir)),
            assets_dir=Path(env.get("NOVELBIND_ASSETS_DIR", defaults.assets_dir)),
            style_path=Path(env.get("NOVELBIND_STYLE", defaults.style_path)),
            dist_dir=Path(env.get("NOVELBIND_DIST_DIR", defaults.dist_dir)),
            jobs=jobs,
            cache_fragments=_env_flag(env.get("NOVELBIND_CACHE"), defaults.cache_fragments),
            timeout=timeout,
        )

    def cover_path(self, config: VolumeConfig) -> Path:
        return self.assets_dir / f"{config.name}{COVER_SUFFIX}"

    def epub_path(self, config: VolumeConfig) -> Path:
        return self.dist_dir / f"{config.name}.epub"

    def preview_path(self, config: VolumeConfig) -> Path:
        return self.dist_dir / f"{config.name}-preview.html"

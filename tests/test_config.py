"""
Volume configuration and settings tests.
"""

import json
from pathlib import Path

import pytest

from novelbind.config import (
    ChapterDescriptor,
    Settings,
    VolumeConfig,
    list_volumes,
    load_volume_config,
    volume_from_environment,
)
from novelbind.errors import ConfigurationError


def _document(**overrides):
    data = {
        "name": "21",
        "title": "Tome 21",
        "author": "Auteur",
        "preview": True,
        "showSoundcloud": False,
        "showFigcaption": True,
        "chapitres": [
            {"titre": "Chapitre 1", "url": "https://novel.example/1/"},
            {"titre": "Chapitre 2", "url": "https://novel.example/2/"},
        ],
    }
    data.update(overrides)
    return data


def test_from_dict_reads_every_field():
    config = VolumeConfig.from_dict(_document())

    assert config.name == "21"
    assert config.title == "Tome 21"
    assert config.author == "Auteur"
    assert config.preview is True
    assert config.show_soundcloud is False
    assert config.show_figcaption is True
    assert config.chapters == (
        ChapterDescriptor("Chapitre 1", "https://novel.example/1/"),
        ChapterDescriptor("Chapitre 2", "https://novel.example/2/"),
    )


def test_options_only_enabled_by_literal_true():
    config = VolumeConfig.from_dict(_document(preview="true", showSoundcloud=1, showFigcaption=None))

    assert config.preview is False
    assert config.show_soundcloud is False
    assert config.show_figcaption is False


def test_options_default_to_false():
    data = _document()
    for key in ("preview", "showSoundcloud", "showFigcaption"):
        del data[key]

    config = VolumeConfig.from_dict(data)

    assert not (config.preview or config.show_soundcloud or config.show_figcaption)


def test_config_is_immutable():
    config = VolumeConfig.from_dict(_document())

    with pytest.raises(AttributeError):
        config.title = "autre"


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": ""},
        {"title": None},
        {"chapitres": "nope"},
        {"chapitres": [{"titre": "sans url"}]},
        {"chapitres": ["https://novel.example/1/"]},
    ],
)
def test_invalid_documents_are_rejected(overrides):
    with pytest.raises(ConfigurationError):
        VolumeConfig.from_dict(_document(**overrides))


def test_load_volume_config(tmp_path):
    path = tmp_path / "21.json"
    path.write_text(json.dumps(_document()), encoding="utf-8")

    config = load_volume_config(path)

    assert config.name == "21"
    assert len(config.chapters) == 2


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_volume_config(tmp_path / "absent.json")


def test_load_malformed_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{ not json", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="invalid JSON"):
        load_volume_config(path)


def test_volume_from_environment_applies_overrides(tmp_path):
    path = tmp_path / "21.json"
    path.write_text(json.dumps(_document()), encoding="utf-8")
    environ = {
        "CHAPTER_FILE": str(path),
        "CHAPTER_TITLE": "Titre forcé",
        "CHAPTER_AUTHOR": "",
        "CHAPTER_ENV": "vol21",
    }

    volume, config = volume_from_environment(environ)

    assert volume == "vol21"
    assert config.title == "Titre forcé"
    assert config.author == "Auteur"


def test_volume_from_environment_requires_chapter_file():
    with pytest.raises(ConfigurationError):
        volume_from_environment({"CHAPTER_ENV": "21"})


def test_list_volumes(tmp_path):
    for name in ("b", "a", "10"):
        (tmp_path / f"{name}.json").write_text("{}", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("", encoding="utf-8")

    assert list_volumes(tmp_path) == ["10", "a", "b"]


def test_settings_from_env():
    settings = Settings.from_env({
        "NOVELBIND_CONFIG_DIR": "/srv/volumes",
        "NOVELBIND_JOBS": "8",
        "NOVELBIND_CACHE": "0",
        "NOVELBIND_TIMEOUT": "12.5",
    })

    assert settings.config_dir == Path("/srv/volumes")
    assert settings.assets_dir == Path("assets/images")
    assert settings.jobs == 8
    assert settings.cache_fragments is False
    assert settings.timeout == 12.5


@pytest.mark.parametrize("value", ["zero", "0"])
def test_settings_rejects_bad_jobs(value):
    with pytest.raises(ConfigurationError):
        Settings.from_env({"NOVELBIND_JOBS": value})


@pytest.mark.parametrize("value", ["0", "-5", "soon"])
def test_settings_rejects_non_positive_timeout(value):
    with pytest.raises(ConfigurationError):
        Settings.from_env({"NOVELBIND_TIMEOUT": value})


def test_output_paths_follow_volume_name():
    settings = Settings(dist_dir=Path("out"), assets_dir=Path("covers"))
    config = VolumeConfig.from_dict(_document())

    assert settings.epub_path(config) == Path("out/21.epub")
    assert settings.preview_path(config) == Path("out/21-preview.html")
    assert settings.cover_path(config) == Path("covers/21-cover.jpg")

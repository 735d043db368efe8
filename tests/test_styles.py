"""
Style sheet compilation tests.
"""

import pytest

from novelbind.errors import StyleCompileError
from novelbind.styles import compile_stylesheet


def test_compiles_scss(tmp_path):
    path = tmp_path / "style.scss"
    path.write_text("$accent: #123456;\nbody { h1 { color: $accent; } }\n", encoding="utf-8")

    css = compile_stylesheet(path)

    assert "body h1" in css
    assert "#123456" in css
    assert "$accent" not in css


def test_compile_error(tmp_path):
    path = tmp_path / "style.scss"
    path.write_text("body { color: $undefined; }\n", encoding="utf-8")

    with pytest.raises(StyleCompileError):
        compile_stylesheet(path)


def test_missing_style_sheet(tmp_path):
    with pytest.raises(StyleCompileError, match="not found"):
        compile_stylesheet(tmp_path / "absent.scss")

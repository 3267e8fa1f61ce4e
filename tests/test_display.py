"""Tests for output pin rendering helpers."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.display import render_text, to_image, to_rows


def blank():
    return [False] * 2048


class TestRows:
    def test_shape(self):
        rows = to_rows(blank())
        assert len(rows) == 32
        assert all(len(row) == 64 for row in rows)

    def test_row_major(self):
        pixels = blank()
        pixels[64 * 3 + 5] = True
        rows = to_rows(pixels)
        assert rows[3][5] is True
        assert sum(sum(row) for row in rows) == 1

    def test_wrong_size(self):
        with pytest.raises(ValueError):
            to_rows([False] * 100)


class TestRenderText:
    def test_render(self):
        pixels = blank()
        pixels[0] = True
        lines = render_text(pixels).split("\n")
        assert len(lines) == 32
        assert lines[0] == "#" + "." * 63
        assert lines[1] == "." * 64

    def test_custom_characters(self):
        text = render_text(blank(), on="X", off=" ")
        assert set(text) == {" ", "\n"}


class TestToImage:
    def test_scaled_image(self):
        pytest.importorskip("numpy")
        pixels = blank()
        pixels[64 + 1] = True
        image = to_image(pixels, scale=2)
        assert image.shape == (64, 128, 3)
        assert image[2, 2, 0] == 255
        assert image[3, 3, 2] == 255
        assert image[0, 0, 0] == 0

    def test_invalid_scale(self):
        pytest.importorskip("numpy")
        with pytest.raises(ValueError):
            to_image(blank(), scale=0)

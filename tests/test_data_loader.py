import cv2
import numpy as np
import pytest

from moonphase.data_loader import encode_png
from moonphase.data_loader import load_moon_texture
from moonphase.data_loader import load_shadow_material
from moonphase.data_loader import make_shadow_material
from moonphase.data_loader import premultiply_alpha
from moonphase.data_loader import save_render_result
from moonphase.data_loader import unpremultiply_alpha
from moonphase.types import RenderResult


def test_bgr_texture_is_loaded_as_opaque_rgba(tmp_path):
    path = str(tmp_path / "moon.png")
    bgr = np.zeros((8, 12, 3), dtype=np.uint8)
    bgr[...] = (10, 20, 30)
    assert cv2.imwrite(path, bgr)

    texture = load_moon_texture(path)

    assert texture.shape == (8, 12, 4)
    assert texture.dtype == np.uint8
    assert tuple(texture[0, 0]) == (30, 20, 10, 255)


def test_transparent_texture_is_premultiplied(tmp_path):
    path = str(tmp_path / "moon.png")
    bgra = np.zeros((4, 4, 4), dtype=np.uint8)
    bgra[...] = (0, 0, 200, 0)
    bgra[0, 0] = (0, 0, 200, 102)
    assert cv2.imwrite(path, bgra)

    texture = load_moon_texture(path)

    assert tuple(texture[0, 0]) == (80, 0, 0, 102)
    assert tuple(texture[1, 1]) == (0, 0, 0, 0)


def test_grayscale_texture_is_expanded(tmp_path):
    path = str(tmp_path / "moon.png")
    assert cv2.imwrite(path, np.full((5, 5), 77, dtype=np.uint8))

    texture = load_moon_texture(path)

    assert tuple(texture[2, 2]) == (77, 77, 77, 255)


def test_missing_texture_raises(tmp_path):
    with pytest.raises(ValueError):
        load_moon_texture(str(tmp_path / "absent.png"))


def test_missing_shadow_material_is_optional(tmp_path):
    assert load_shadow_material(str(tmp_path / "absent.png")) is None


def test_shadow_material_is_loaded(tmp_path):
    path = str(tmp_path / "shadow.png")
    assert cv2.imwrite(path, np.full((6, 6, 4), (0, 0, 0, 255), dtype=np.uint8))

    shadow = load_shadow_material(path)

    assert shadow.shape == (6, 6, 4)
    assert (shadow[..., 3] == 255).all()


def test_synthesized_shadow_is_a_black_disc():
    shadow = make_shadow_material(100, 80, opacity=1.0)

    assert shadow.shape == (80, 100, 4)
    assert (shadow[..., :3] == 0).all()
    assert shadow[40, 50, 3] == 255
    assert shadow[0, 0, 3] == 0
    assert shadow[79, 99, 3] == 0


@pytest.mark.parametrize("width, height", [(0, 10), (10, 0), (-1, 5)])
def test_synthesized_shadow_rejects_empty_size(width, height):
    with pytest.raises(ValueError):
        make_shadow_material(width, height)


def test_premultiply_and_back():
    straight = np.array([[[200, 100, 50, 128]]], dtype=np.uint8)

    premultiplied = premultiply_alpha(straight)

    assert tuple(premultiplied[0, 0]) == (100, 50, 25, 128)
    assert np.abs(unpremultiply_alpha(premultiplied).astype(int) - straight).max() <= 1
    assert tuple(unpremultiply_alpha(np.zeros((1, 1, 4), dtype=np.uint8))[0, 0]) == (0, 0, 0, 0)


def test_encode_png_produces_png_bytes():
    data = encode_png(np.full((3, 3, 4), 255, dtype=np.uint8))

    assert data.startswith(b"\x89PNG\r\n\x1a\n")


def test_save_render_result_writes_straight_alpha(tmp_path):
    path = str(tmp_path / "out.png")
    pixels = np.zeros((2, 2, 4), dtype=np.uint8)
    pixels[...] = (100, 50, 25, 128)

    save_render_result(RenderResult(pixels=pixels, width=2, height=2), path)

    written = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    assert written.shape == (2, 2, 4)
    assert tuple(written[0, 0]) == (50, 100, 199, 128)


def test_save_unavailable_result_raises(tmp_path):
    with pytest.raises(ValueError):
        save_render_result(RenderResult.unavailable("invalid_input"), str(tmp_path / "out.png"))


def test_default_shadow_lets_some_light_through():
    alpha = make_shadow_material(40, 40)[20, 20, 3]

    assert 200 < alpha < 255

import logging
import os
from typing import Optional

import cv2
import numpy as np

from moonphase.types import RenderResult

DEFAULT_SHADOW_OPACITY = 0.9  # faint earthshine shows through the dark limb

logger = logging.getLogger(__name__)

def premultiply_alpha(rgba: np.ndarray) -> np.ndarray:
    out = rgba.astype(np.float32)
    out[..., :3] *= out[..., 3:4] * (1.0 / 255)
    return np.rint(out).astype(np.uint8)

def unpremultiply_alpha(rgba: np.ndarray) -> np.ndarray:
    out = rgba.astype(np.float32)
    alpha = out[..., 3:4]
    np.divide(out[..., :3] * 255, alpha, out=out[..., :3], where=alpha > 0)
    np.clip(out, 0, 255, out=out)
    return np.rint(out).astype(np.uint8)

def _to_rgba(image: np.ndarray, filepath: str) -> np.ndarray:
    """Convert an OpenCV image of any channel layout to premultiplied RGBA uint8."""
    if image.dtype == np.uint16:
        image = np.rint(image / 257.0).astype(np.uint8)
    elif image.dtype != np.uint8:
        raise ValueError(f"Unsupported pixel type {image.dtype} in {filepath}")

    if image.ndim == 2:
        rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    elif image.shape[2] == 3:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
    elif image.shape[2] == 4:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    else:
        raise ValueError(f"Unsupported channel count {image.shape[2]} in {filepath}")

    return premultiply_alpha(rgba)

def load_moon_texture(filepath: str) -> np.ndarray:
    """
    Load the fully lit Moon disc texture.

    Parameters
    ----------
    filepath : str
        Path to an image file, preferably a PNG with transparency around the disc

    Returns
    -------
    np.ndarray
        RGBA premultiplied uint8 bitmap of shape (height, width, 4)
    """
    logger.info("Loading moon texture from %s", filepath)
    texture_src = cv2.imread(filepath, cv2.IMREAD_UNCHANGED)

    if texture_src is None:
        raise ValueError(f"Failed to read moon texture file: {filepath}")

    texture = _to_rgba(texture_src, filepath)
    logger.info("  Dimensions: %dx%d", texture.shape[1], texture.shape[0])

    return texture

def load_shadow_material(filepath: str) -> Optional[np.ndarray]:
    """
    Load the pre-rendered shadow disc.

    Parameters
    ----------
    filepath : str
        Path to the shadow image file

    Returns
    -------
    np.ndarray or None
        RGBA premultiplied uint8 bitmap, or None if file not found
    """
    if not os.path.isfile(filepath):
        logger.warning("Shadow material not found: %s", filepath)
        return None

    logger.info("Loading shadow material from %s", filepath)
    shadow_src = cv2.imread(filepath, cv2.IMREAD_UNCHANGED)

    if shadow_src is None:
        logger.warning("Failed to read shadow material: %s", filepath)
        return None

    return _to_rgba(shadow_src, filepath)

def make_shadow_material(width: int, height: int, opacity: float = DEFAULT_SHADOW_OPACITY) -> np.ndarray:
    """
    Draw a black anti-aliased disc filling a width x height canvas.

    Returns
    -------
    np.ndarray
        RGBA premultiplied uint8 bitmap, transparent outside the disc
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Shadow size must be positive, got {width}x{height}")

    shadow = np.zeros((height, width, 4), dtype=np.uint8)
    shift = 4
    scale = 1 << shift
    # Pixel centers sit at +0.5, so the disc center is half a pixel up-left of width/2
    center = (int(round((width / 2 - 0.5) * scale)), int(round((height / 2 - 0.5) * scale)))
    axes = (int(round(width / 2 * scale)), int(round(height / 2 * scale)))
    alpha = int(round(max(0.0, min(1.0, opacity)) * 255))
    cv2.ellipse(shadow, center, axes, 0, 0, 360, (0, 0, 0, alpha),
                thickness=-1, lineType=cv2.LINE_AA, shift=shift)
    return shadow

def encode_png(pixels: np.ndarray) -> bytes:
    """Encode a premultiplied RGBA bitmap as straight-alpha PNG bytes."""
    bgra = cv2.cvtColor(unpremultiply_alpha(pixels), cv2.COLOR_RGBA2BGRA)
    ok, buffer = cv2.imencode(".png", bgra)
    if not ok:
        raise ValueError("Failed to encode PNG")
    return buffer.tobytes()

def save_render_result(result: RenderResult, filepath: str):
    if not result.ok:
        raise ValueError(f"Cannot save unavailable render ({result.failure})")

    bgra = cv2.cvtColor(unpremultiply_alpha(result.pixels), cv2.COLOR_RGBA2BGRA)
    if not cv2.imwrite(filepath, bgra):
        raise ValueError(f"Failed to write image file: {filepath}")
    logger.info("Saved: %s", filepath)

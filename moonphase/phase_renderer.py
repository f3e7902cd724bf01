import logging
import math
from typing import Callable, Optional

import cv2
import numpy as np

from moonphase.data_loader import make_shadow_material
from moonphase.errors import ExtractionFailure
from moonphase.errors import InvalidInput
from moonphase.errors import RenderCancelled
from moonphase.errors import RenderFailure
from moonphase.errors import SurfaceAllocationFailure
from moonphase.types import PhaseGeometry
from moonphase.types import PhaseInput
from moonphase.types import RenderResult

HALF_SYNODIC_MONTH_DAYS = 14.77  # half of 29.53, waxing below this age
SHADOW_SKIP_MARGIN = 0.02        # fractions this close to 0 or 1 render the plain texture

logger = logging.getLogger(__name__)

def classify_orientation(moon_age_days: float, observer_latitude: float) -> tuple:
    """
    Decide which limb of the disc is lit.

    Only the age relative to the half synodic month and the sign of the
    latitude matter. Ages outside one lunation are classified as they are.

    Returns
    -------
    tuple
        (is_waxing, is_southern, is_right_lit)
    """
    is_waxing = moon_age_days < HALF_SYNODIC_MONTH_DAYS
    is_southern = observer_latitude < 0
    is_right_lit = (is_waxing and not is_southern) or (not is_waxing and is_southern)
    return is_waxing, is_southern, is_right_lit

def calculate_phase_geometry(width: int,
                             illuminated_fraction: float,
                             moon_age_days: float,
                             observer_latitude: float) -> PhaseGeometry:
    """
    Calculate the shadow placement for a canvas of the given width.

    Parameters
    ----------
    width : int
        Canvas width in pixels
    illuminated_fraction : float
        Lit portion of the disc, clamped to [0, 1]
    moon_age_days : float
        Days since new moon, decides the shadow side
    observer_latitude : float
        Observer latitude in degrees, only the sign is used

    Returns
    -------
    PhaseGeometry
    """
    clamped_fraction = max(0.0, min(1.0, float(illuminated_fraction)))
    is_waxing, is_southern, is_right_lit = classify_orientation(moon_age_days, observer_latitude)
    shadow_width = min(width, max(0, int(round(width * (1.0 - clamped_fraction)))))
    skip_shadow = (clamped_fraction <= SHADOW_SKIP_MARGIN
                   or clamped_fraction >= 1.0 - SHADOW_SKIP_MARGIN
                   or shadow_width == 0)
    return PhaseGeometry(
        clamped_fraction=clamped_fraction,
        is_waxing=is_waxing,
        is_southern=is_southern,
        is_right_lit=is_right_lit,
        shadow_width=shadow_width,
        skip_shadow=skip_shadow
    )

def _check_bitmap(bitmap, name: str):
    if not isinstance(bitmap, np.ndarray):
        raise InvalidInput(f"{name} must be a numpy array, got {type(bitmap).__name__}")
    if bitmap.ndim != 3 or bitmap.shape[2] != 4:
        raise InvalidInput(f"{name} must have shape (height, width, 4), got {bitmap.shape}")
    if bitmap.dtype != np.uint8:
        raise InvalidInput(f"{name} must be uint8, got {bitmap.dtype}")
    if bitmap.shape[0] == 0 or bitmap.shape[1] == 0:
        raise InvalidInput(f"{name} has zero area ({bitmap.shape[1]}x{bitmap.shape[0]})")

def _prepare_shadow(shadow_material: Optional[np.ndarray], width: int, height: int) -> np.ndarray:
    try:
        if shadow_material is None:
            return make_shadow_material(width, height)
        if shadow_material.shape[:2] != (height, width):
            return cv2.resize(shadow_material, (width, height), interpolation=cv2.INTER_AREA)
        return shadow_material
    except (MemoryError, cv2.error) as e:
        raise SurfaceAllocationFailure(f"Could not prepare {width}x{height} shadow surface: {e}") from e

def composite_over(surface: np.ndarray, src: np.ndarray):
    """Source-over blend of premultiplied RGBA uint8 `src` onto a float32 `surface`, in place."""
    src_f = src.astype(np.float32)
    surface *= 1.0 - src_f[..., 3:4] * (1.0 / 255)
    surface += src_f

def _to_uint8(surface: np.ndarray) -> np.ndarray:
    out = np.rint(surface)
    np.clip(out, 0, 255, out=out)
    return out.astype(np.uint8)

def extract_bitmap(surface: np.ndarray, shape: tuple) -> np.ndarray:
    """
    Materialize a float32 drawing surface as an RGBA uint8 bitmap.

    Raises
    ------
    ExtractionFailure
        If the bitmap cannot be allocated or does not have `shape`
    """
    try:
        bitmap = _to_uint8(surface)
    except MemoryError as e:
        raise ExtractionFailure(f"Could not materialize {shape[1]}x{shape[0]} bitmap") from e
    if bitmap.shape != tuple(shape):
        raise ExtractionFailure(f"Composited bitmap has shape {bitmap.shape}, expected {tuple(shape)}")
    return bitmap

def compose_phase(lit_texture: np.ndarray,
                  illuminated_fraction: float,
                  moon_age_days: float,
                  observer_latitude: float,
                  shadow_material: Optional[np.ndarray] = None,
                  log: Optional[logging.Logger] = None,
                  should_cancel: Optional[Callable[[], bool]] = None) -> np.ndarray:
    """
    Composite the phase shadow onto a copy of the lit texture.

    A strip as wide as the dark part of the disc is cropped from the left edge
    of the shadow material and laid flush against the dark limb. On the right
    limb the strip is mirrored so its cut line faces the terminator.

    Parameters
    ----------
    lit_texture : np.ndarray
        Fully lit disc, RGBA premultiplied uint8, shape (height, width, 4). Never modified.
    illuminated_fraction : float
        Lit portion of the disc (0 = new, 1 = full), sets the shadow size
    moon_age_days : float
        Days since new moon, sets the shadow side
    observer_latitude : float
        Observer latitude in degrees, mirrors the phase in the southern hemisphere
    shadow_material : np.ndarray, optional
        Pre-rendered shadow disc in the texture layout. Synthesized when omitted.
    log : logging.Logger, optional
        Diagnostic sink, module logger by default
    should_cancel : callable, optional
        Polled once before the shadow is composited

    Returns
    -------
    np.ndarray
        New RGBA premultiplied bitmap with the texture's dimensions

    Raises
    ------
    RenderFailure
        InvalidInput, SurfaceAllocationFailure, ExtractionFailure or RenderCancelled
    """
    log = log or logger

    _check_bitmap(lit_texture, "lit texture")
    if shadow_material is not None:
        _check_bitmap(shadow_material, "shadow material")
    try:
        illuminated_fraction = float(illuminated_fraction)
        moon_age_days = float(moon_age_days)
        observer_latitude = float(observer_latitude)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidInput(f"Phase inputs must be numbers: {e}") from e
    if any(math.isnan(v) for v in (illuminated_fraction, moon_age_days, observer_latitude)):
        raise InvalidInput("Phase inputs must not be NaN")

    height, width = lit_texture.shape[:2]
    log.debug("Latitude: %s", observer_latitude)
    log.debug("Phase fraction: %.4f", illuminated_fraction)
    log.debug("Moon age: %.2f", moon_age_days)
    log.debug("Texture size: %dx%d", width, height)

    try:
        surface = lit_texture.astype(np.float32)
    except MemoryError as e:
        raise SurfaceAllocationFailure(f"Could not allocate {width}x{height} drawing surface") from e

    geometry = calculate_phase_geometry(width, illuminated_fraction, moon_age_days, observer_latitude)
    log.debug("Clamped fraction: %.4f", geometry.clamped_fraction)
    log.debug("Shadow width: %d", geometry.shadow_width)
    log.debug("Right limb lit: %s", geometry.is_right_lit)

    if geometry.skip_shadow:
        log.debug("Phase is effectively new or full; skipping shadow overlay")
    else:
        if should_cancel is not None and should_cancel():
            raise RenderCancelled("Render superseded before shadow overlay")

        shadow = _prepare_shadow(shadow_material, width, height)
        strip = shadow[:, :geometry.shadow_width]
        if geometry.is_right_lit:
            # Dark limb on the left, cut line already faces right
            x0 = 0
        else:
            strip = strip[:, ::-1]
            x0 = width - geometry.shadow_width
        try:
            composite_over(surface[:, x0:x0 + geometry.shadow_width], strip)
        except MemoryError as e:
            raise SurfaceAllocationFailure(f"Could not composite {geometry.shadow_width} px shadow strip") from e
        log.debug("Applied %d px shadow strip at x=%d", geometry.shadow_width, x0)

    return extract_bitmap(surface, lit_texture.shape)

def render_moon_phase(lit_texture: np.ndarray,
                      illuminated_fraction: float,
                      moon_age_days: float,
                      observer_latitude: float,
                      shadow_material: Optional[np.ndarray] = None,
                      log: Optional[logging.Logger] = None,
                      should_cancel: Optional[Callable[[], bool]] = None) -> RenderResult:
    """
    Render the moon disc for the given phase, never raising.

    Same parameters as `compose_phase`. Any render failure is logged and
    returned as an unavailable result carrying the placeholder glyph name.
    """
    log = log or logger
    try:
        pixels = compose_phase(lit_texture, illuminated_fraction, moon_age_days, observer_latitude,
                               shadow_material=shadow_material, log=log, should_cancel=should_cancel)
    except RenderFailure as e:
        log.debug("Moon phase render failed (%s): %s", e.kind, e)
        if isinstance(lit_texture, np.ndarray) and lit_texture.ndim >= 2:
            height, width = lit_texture.shape[:2]
        else:
            height, width = 0, 0
        return RenderResult.unavailable(e.kind, width=width, height=height)
    return RenderResult(pixels=pixels, width=pixels.shape[1], height=pixels.shape[0])

def render_phase(lit_texture: np.ndarray, phase: PhaseInput, **kwargs) -> RenderResult:
    """`render_moon_phase` for a `PhaseInput`. Keyword arguments are passed through."""
    return render_moon_phase(lit_texture,
                             phase.illuminated_fraction,
                             phase.moon_age_days,
                             phase.observer_latitude,
                             **kwargs)

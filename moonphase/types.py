from datetime import datetime
from typing import NamedTuple, Optional
from numpy.typing import NDArray

PLACEHOLDER_GLYPH = "moon.circle.fill"

class PhaseInput(NamedTuple):
    illuminated_fraction: float
    moon_age_days: float
    observer_latitude: float

class PhaseGeometry(NamedTuple):
    clamped_fraction: float
    is_waxing: bool
    is_southern: bool
    is_right_lit: bool
    shadow_width: int
    skip_shadow: bool

class RenderResult(NamedTuple):
    pixels: Optional[NDArray]
    width: int
    height: int
    failure: Optional[str] = None
    placeholder: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.pixels is not None

    @classmethod
    def unavailable(cls, failure: str, width: int = 0, height: int = 0) -> "RenderResult":
        return cls(pixels=None, width=width, height=height, failure=failure, placeholder=PLACEHOLDER_GLYPH)

class MoonPhaseState(NamedTuple):
    illuminated_fraction: float
    moon_age_days: float
    phase_angle: float
    phase_name: str
    next_new_moon: datetime
    next_full_moon: datetime

import logging
import math
import threading
from datetime import date
from datetime import timedelta
from typing import Callable, Optional

import numpy as np

from moonphase.errors import RenderCancelled
from moonphase.phase_renderer import render_phase
from moonphase.types import PhaseInput
from moonphase.types import RenderResult

SYNODIC_MONTH_DAYS = 29.53
SLIDER_STEP_DAYS = 1

logger = logging.getLogger(__name__)

def simulated_phase_fraction(moon_age_days: float) -> float:
    """Illuminated fraction of an idealized lunation at the given age."""
    return 0.5 * (1 - math.cos((moon_age_days / SYNODIC_MONTH_DAYS) * 2 * math.pi))

def _round_half_away_from_zero(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))

def simulated_date(today: date, initial_age: float, simulated_age: float) -> date:
    """Date on which the Moon would be `simulated_age` days old, counted from `today`."""
    return today + timedelta(days=_round_half_away_from_zero(simulated_age - initial_age))

class PhaseScrubber:
    """
    Renders the Moon for a moon age chosen interactively, e.g. from a slider.

    Only the newest submitted age is rendered. A render overtaken by a newer
    request is cancelled before its shadow is composited, and a frame that
    finishes after a newer request arrived is dropped instead of delivered.
    Frames are delivered to `on_frame(age, result)` on the worker thread.
    """

    def __init__(self,
                 lit_texture: np.ndarray,
                 observer_latitude: float,
                 on_frame: Callable[[float, RenderResult], None],
                 shadow_material: Optional[np.ndarray] = None,
                 log: Optional[logging.Logger] = None):

        self.lit_texture = lit_texture
        self.observer_latitude = observer_latitude
        self.shadow_material = shadow_material
        self.on_frame = on_frame
        self.log = log or logger

        self._cond = threading.Condition()
        self._pending_age = None
        self._generation = 0
        self._busy = False
        self._closed = False

        self._thread = threading.Thread(target=self._run, name="phase-scrubber", daemon=True)
        self._thread.start()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def phase_input(self, moon_age_days: float) -> PhaseInput:
        return PhaseInput(illuminated_fraction=simulated_phase_fraction(moon_age_days),
                          moon_age_days=moon_age_days,
                          observer_latitude=self.observer_latitude)

    def render_now(self, moon_age_days: float) -> RenderResult:
        return render_phase(self.lit_texture,
                            self.phase_input(moon_age_days),
                            shadow_material=self.shadow_material,
                            log=self.log)

    def submit(self, moon_age_days: float):
        with self._cond:
            if self._closed:
                raise RuntimeError("PhaseScrubber is closed")
            self._generation += 1
            self._pending_age = moon_age_days
            self._cond.notify_all()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no request is pending or rendering. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending_age is None and not self._busy, timeout)

    def close(self, timeout: Optional[float] = 5.0):
        with self._cond:
            self._closed = True
            self._pending_age = None
            self._cond.notify_all()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _is_stale(self, generation: int) -> bool:
        with self._cond:
            return self._closed or generation != self._generation

    def _run(self):
        while True:
            with self._cond:
                while self._pending_age is None and not self._closed:
                    self._cond.wait()
                if self._closed:
                    return
                age = self._pending_age
                generation = self._generation
                self._pending_age = None
                self._busy = True

            try:
                result = render_phase(self.lit_texture,
                                      self.phase_input(age),
                                      shadow_material=self.shadow_material,
                                      log=self.log,
                                      should_cancel=lambda: self._is_stale(generation))
                if result.failure == RenderCancelled.kind or self._is_stale(generation):
                    self.log.debug("Dropped stale frame for moon age %.2f", age)
                else:
                    self.on_frame(age, result)
            except Exception:
                self.log.exception("Frame callback failed for moon age %.2f", age)
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()

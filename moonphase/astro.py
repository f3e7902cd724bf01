import math
from datetime import datetime
from datetime import timedelta
from datetime import timezone

from pymeeus.Epoch import Epoch
from pymeeus.Moon import Moon

from moonphase.types import MoonPhaseState

MEAN_SYNODIC_MONTH_DAYS = 29.530588853

PHASE_NAMES = [
    "New Moon",
    "Waxing Crescent",
    "First Quarter",
    "Waxing Gibbous",
    "Full Moon",
    "Waning Gibbous",
    "Last Quarter",
    "Waning Crescent",
]

def phase_name(moon_age_days: float) -> str:
    """Name of the phase whose age octant contains `moon_age_days`."""
    octant = int(math.floor(moon_age_days / MEAN_SYNODIC_MONTH_DAYS * 8 + 0.5)) % 8
    return PHASE_NAMES[octant]

def epoch_to_datetime(epoch: Epoch) -> datetime:
    y, m, d, h, mi, s = epoch.get_full_date(utc=True)
    return datetime(y, m, d, h, mi, tzinfo=timezone.utc) + timedelta(seconds=s)

def calculate_moon_phase_state(dt_utc: datetime) -> MoonPhaseState:
    """
    Calculate the Moon phase quantities the renderer consumes

    Parameters
    ----------
    dt_utc : datetime
        UTC time

    Returns
    -------
    MoonPhaseState class
        Containing:
        - illuminated_fraction: 0 = new, 1 = full
        - moon_age_days: days since the most recent new moon
        - phase_angle: 0 = full, 180 = new
        - phase_name
        - next_new_moon, next_full_moon: UTC datetimes
    """

    epoch = Epoch(dt_utc, utc=True)

    illum_frac = Moon.illuminated_fraction_disk(epoch)
    # k = (1 + cos(i)) / 2, so i = arccos(2k - 1)
    phase_angle = math.degrees(math.acos(max(-1.0, min(1.0, 2 * illum_frac - 1))))

    # moon_phase() can return the new moon that follows the given instant
    new_moon = Moon.moon_phase(epoch, target="new")
    while new_moon > epoch:
        new_moon = Moon.moon_phase(new_moon - MEAN_SYNODIC_MONTH_DAYS, target="new")
    moon_age = epoch - new_moon

    next_new_moon = Moon.moon_phase(new_moon + MEAN_SYNODIC_MONTH_DAYS, target="new")
    next_full_moon = Moon.moon_phase(new_moon, target="full")
    if next_full_moon - epoch <= 0:
        next_full_moon = Moon.moon_phase(new_moon + MEAN_SYNODIC_MONTH_DAYS, target="full")

    return MoonPhaseState(
        illuminated_fraction=float(illum_frac),
        moon_age_days=float(moon_age),
        phase_angle=phase_angle,
        phase_name=phase_name(moon_age),
        next_new_moon=epoch_to_datetime(next_new_moon),
        next_full_moon=epoch_to_datetime(next_full_moon)
    )

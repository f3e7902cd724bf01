import argparse
import logging
import sys
from datetime import datetime
from datetime import timezone

from moonphase.astro import calculate_moon_phase_state
from moonphase.astro import phase_name
from moonphase.data_loader import load_moon_texture
from moonphase.data_loader import load_shadow_material
from moonphase.data_loader import save_render_result
from moonphase.phase_renderer import render_phase
from moonphase.scrubber import simulated_phase_fraction
from moonphase.types import PhaseInput

APP_NAME = "MoonPhase"
DEFAULT_OUTPUT_FILE = "moon_phase.png"

def parse_args(argv=None):

    parser = argparse.ArgumentParser(
        description=f"{APP_NAME} - render the Moon disc for the current or a simulated phase",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("--texture", type=str, required=True,
                        help="Path to the fully lit Moon texture (PNG with transparency recommended)")
    parser.add_argument("--shadow", type=str, default=None,
                        help="Path to a pre-rendered shadow disc. A black disc is drawn when omitted.")
    parser.add_argument("--lat", type=float, required=True,
                        help="Observer latitude in degrees. Only the hemisphere matters. "
                             "Examples: 50.0614 (Cracow, Poland), -34.6131 (Buenos Aires, Argentina).")
    parser.add_argument("--time", type=str, default="now",
                        help="Time in ISO format with timezone information. Examples: 2024-01-01T12:00:00Z, 2025-12-26T16:30:00+01:00")
    parser.add_argument("--age", type=float, default=None,
                        help="Simulated moon age in days since new moon. Overrides the age computed for --time.")
    parser.add_argument("--fraction", type=float, default=None,
                        help="Illuminated fraction 0..1. Overrides the fraction computed for --time or derived from --age.")
    parser.add_argument("--output", type=str, default=DEFAULT_OUTPUT_FILE,
                        help="Output PNG file")
    parser.add_argument("--verbose", action="store_true",
                        help="Print renderer diagnostics")
    return parser.parse_args(argv)

def get_date_time_local(time_iso: str):
    if time_iso.endswith("Z"):
        time_iso = time_iso[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(time_iso)
    except ValueError as e:
        return None, e
    if dt.tzinfo is None:
        return None, ValueError("Time without timezone information.")
    return dt, None

def resolve_phase(time_iso: str, age, fraction, lat: float):
    """
    Work out the phase to render from the command line choices.

    Returns
    -------
    tuple
        (PhaseInput, error). PhaseInput is None when error is set.
    """
    if age is None or fraction is None:
        if age is not None:
            fraction = simulated_phase_fraction(age)
        else:
            if time_iso == "now":
                time_iso = datetime.now().astimezone().isoformat(timespec="seconds")
            dt_local, error = get_date_time_local(time_iso)
            if error is not None:
                return None, error
            state = calculate_moon_phase_state(dt_local.astimezone(timezone.utc))
            age = state.moon_age_days
            if fraction is None:
                fraction = state.illuminated_fraction

    return PhaseInput(illuminated_fraction=fraction, moon_age_days=age, observer_latitude=lat), None

def main(argv=None):

    args = parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    if not (args.lat >= -90.0 and args.lat <= 90.0):
        print("Invalid latitude. Must be between -90 and 90 degrees.")
        sys.exit(1)

    phase, error = resolve_phase(args.time, args.age, args.fraction, args.lat)
    if error is not None:
        print(f"Incorrect time: {error}")
        sys.exit(1)

    try:
        texture = load_moon_texture(args.texture)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    shadow = load_shadow_material(args.shadow) if args.shadow else None

    result = render_phase(texture, phase, shadow_material=shadow)
    if not result.ok:
        print(f"Moon phase unavailable ({result.failure}), showing {result.placeholder}")
        sys.exit(2)

    try:
        save_render_result(result, args.output)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    hemisphere = "S" if args.lat < 0 else "N"
    print(f"{phase_name(phase.moon_age_days)}: age {phase.moon_age_days:.2f} d, illuminated {phase.illuminated_fraction * 100:.1f}%, "
          f"hemisphere {hemisphere} -> {args.output} ({result.width}x{result.height})")

if __name__ == "__main__":
    main()

"""Simple profiling harness for the availability and booking endpoints."""
import cProfile
import pstats
import sys
from datetime import date, timedelta
from pathlib import Path

import requests

ROOMS_URL = "http://localhost:8002"
BOOKINGS_URL = "http://localhost:8003"


def exercise_reservations(room_id: int) -> None:
    day = date.today() + timedelta(days=1)
    for offset in range(14):
        response = requests.get(
            f"{ROOMS_URL}/rooms/{room_id}/availability",
            params={"date": (day + timedelta(days=offset)).isoformat()},
            timeout=5,
        )
        response.raise_for_status()

    response = requests.post(
        f"{BOOKINGS_URL}/rooms/{room_id}/bookings",
        json={
            "booking_date": day.isoformat(),
            "start_time": "09:00",
            "end_time": "09:30",
            "purpose": "Profiling run",
            "contact": {"name": "Profiler", "email": "profiler@example.com", "mobile": "0000000000"},
        },
        timeout=5,
    )
    # 409 just means an earlier run already holds the slot
    if response.status_code not in (201, 409):
        response.raise_for_status()


def main() -> None:
    room_id = int(sys.argv[1]) if len(sys.argv) > 1 else 1
    profile_path = Path(__file__).with_name("reservations_profile.prof")
    with cProfile.Profile() as profiler:
        exercise_reservations(room_id)
    profiler.dump_stats(profile_path)
    stats = pstats.Stats(profile_path)
    stats.sort_stats(pstats.SortKey.TIME).print_stats(10)


if __name__ == "__main__":
    main()

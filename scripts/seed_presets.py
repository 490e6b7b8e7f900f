"""
Seed script for Supabase.
Creates the default target-window presets and, optionally, locations.

Run db/schema.sql in the Supabase SQL editor first.

    python scripts/seed_presets.py
    python scripts/seed_presets.py --location kapolei="Kapolei Center"
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from db import get_db_client
from models.preset import DateHorizonPreset, TimeBlockPreset, WeekdayRulePreset
from models.selection import Location
from utils.exceptions import DatabaseError
from utils.logging_config import setup_logging

logger = setup_logging(name="seed_presets", log_level="INFO")

DEFAULT_PRESETS = [
    DateHorizonPreset(key="next_7_days", label="Next 7 days", sort_order=1, rules_json={"days_ahead": 7}),
    DateHorizonPreset(key="next_14_days", label="Next 14 days", sort_order=2, rules_json={"days_ahead": 14}),
    DateHorizonPreset(key="next_30_days", label="Next 30 days", sort_order=3, rules_json={"days_ahead": 30}),
    TimeBlockPreset(key="early", label="Early (7-9 AM)", sort_order=1, rules_json={"start": "07:00", "end": "09:00"}),
    TimeBlockPreset(key="morning", label="Morning (9-11 AM)", sort_order=2, rules_json={"start": "09:00", "end": "11:00"}),
    TimeBlockPreset(key="midday", label="Midday (11 AM-1 PM)", sort_order=3, rules_json={"start": "11:00", "end": "13:00"}),
    TimeBlockPreset(key="afternoon", label="Afternoon (1-4 PM)", sort_order=4, rules_json={"start": "13:00", "end": "16:00"}),
    WeekdayRulePreset(key="any_weekday", label="Any weekday", sort_order=1, rules_json={"mode": "any"}),
    WeekdayRulePreset(key="custom_weekdays", label="Specific weekdays", sort_order=2, rules_json={"mode": "custom"}),
]


def _parse_location(value: str) -> Location:
    location_id, sep, name = value.partition("=")
    if not sep or not location_id or not name:
        raise argparse.ArgumentTypeError(f"expected id=name, got {value!r}")
    return Location(id=location_id, name=name)


async def seed(locations) -> None:
    db = get_db_client()

    for preset in DEFAULT_PRESETS:
        await db.upsert_preset(preset)
        logger.info(f"Upserted preset {preset.preset_type}/{preset.key}")

    for location in locations:
        await db.upsert_location(location)
        logger.info(f"Upserted location {location.id} ({location.name})")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed default presets")
    parser.add_argument(
        "--location",
        action="append",
        type=_parse_location,
        default=[],
        help="location to create, as id=name (repeatable)",
    )
    args = parser.parse_args()

    try:
        asyncio.run(seed(args.location))
    except DatabaseError as e:
        logger.error(f"Seeding failed: {e}")
        sys.exit(1)

    logger.info("Seeding complete")


if __name__ == "__main__":
    main()

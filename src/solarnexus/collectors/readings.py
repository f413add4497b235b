"""Daily site energy readings importer.

Imports per-site daily totals from CSV files.
CSV format: site_id, date, generation_kwh, consumption_kwh[, feed_in_kwh]
"""

import csv
import sqlite3
from datetime import date
from pathlib import Path

from ..db import get_connection
from ..models import DailyReading

SOURCE_NAME = "csv"


def parse_csv(csv_path: Path) -> list[DailyReading]:
    """Parse a daily readings CSV file."""
    readings = []
    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            readings.append(
                DailyReading(
                    site_id=row["site_id"],
                    date=date.fromisoformat(row["date"]),
                    generation_kwh=float(row["generation_kwh"]),
                    consumption_kwh=float(row.get("consumption_kwh") or 0),
                    feed_in_kwh=float(row.get("feed_in_kwh") or 0),
                    source=SOURCE_NAME,
                )
            )
    return readings


def import_from_csv(csv_path: Path, db_path: Path | None = None) -> dict:
    """Import daily readings from a CSV file.

    Returns dict with 'imported' and 'skipped' counts.
    """
    return save_readings(parse_csv(csv_path), db_path)


def save_readings(readings: list[DailyReading], db_path: Path | None = None) -> dict:
    """Save daily readings to the database, skipping days already stored.

    Returns dict with 'imported' and 'skipped' counts.
    """
    imported = 0
    skipped = 0

    with get_connection(db_path) as conn:
        for reading in readings:
            try:
                conn.execute(
                    """INSERT INTO site_energy_readings
                       (site_id, date, generation_kwh, consumption_kwh, feed_in_kwh, source)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        reading.site_id,
                        reading.date.isoformat(),
                        reading.generation_kwh,
                        reading.consumption_kwh,
                        reading.feed_in_kwh,
                        reading.source,
                    ),
                )
                imported += 1
            except sqlite3.IntegrityError:
                # Duplicate (UNIQUE constraint on site_id, date)
                skipped += 1

        conn.commit()

    return {"imported": imported, "skipped": skipped}

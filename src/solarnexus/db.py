"""Database connection, schema management and the SQLite data store."""

import asyncio
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterator

from . import config
from .models import Organization, Site, SiteEnergy

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "solarnexus" / "solarnexus.db"

SCHEMA = """
-- Tenants
CREATE TABLE IF NOT EXISTS organizations (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Solar installations, with optional SolaX Cloud credentials
CREATE TABLE IF NOT EXISTS sites (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    name TEXT NOT NULL,
    capacity_kw REAL NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    address TEXT,
    municipality TEXT,
    solax_client_id TEXT,
    solax_client_secret TEXT,
    solax_plant_id TEXT,
    FOREIGN KEY (organization_id) REFERENCES organizations(id)
);

-- Daily energy totals per site (from CSV import or SolaX history)
CREATE TABLE IF NOT EXISTS site_energy_readings (
    id INTEGER PRIMARY KEY,
    site_id TEXT NOT NULL,
    date TEXT NOT NULL,
    generation_kwh REAL NOT NULL DEFAULT 0,
    consumption_kwh REAL NOT NULL DEFAULT 0,
    feed_in_kwh REAL NOT NULL DEFAULT 0,
    source TEXT,
    UNIQUE(site_id, date),
    FOREIGN KEY (site_id) REFERENCES sites(id)
);

CREATE INDEX IF NOT EXISTS idx_sites_org ON sites(organization_id);
CREATE INDEX IF NOT EXISTS idx_readings_site_date ON site_energy_readings(site_id, date);
"""


def get_db_path() -> Path:
    """Get the database path, creating parent directories if needed."""
    db_path = config.get_db_path() or Path(DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Get a database connection with row factory enabled."""
    path = db_path or get_db_path()
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA)
        conn.commit()


def add_organization(
    organization_id: str, name: str, is_active: bool = True, db_path: Path | None = None
) -> None:
    with get_connection(db_path) as conn:
        conn.execute(
            "INSERT OR REPLACE INTO organizations (id, name, is_active) VALUES (?, ?, ?)",
            (organization_id, name, int(is_active)),
        )
        conn.commit()


def add_site(site: Site, db_path: Path | None = None) -> None:
    """Insert or replace a site. The site must carry an organization_id."""
    if not site.organization_id:
        raise ValueError(f"Site {site.id} has no organization_id")

    with get_connection(db_path) as conn:
        conn.execute(
            """INSERT OR REPLACE INTO sites
               (id, organization_id, name, capacity_kw, is_active, address, municipality,
                solax_client_id, solax_client_secret, solax_plant_id)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                site.id,
                site.organization_id,
                site.name,
                site.capacity,
                int(site.is_active),
                site.address,
                site.municipality,
                site.solax_client_id,
                site.solax_client_secret,
                site.solax_plant_id,
            ),
        )
        conn.commit()


def _row_to_site(row: sqlite3.Row) -> Site:
    return Site(
        id=row["id"],
        name=row["name"],
        capacity=row["capacity_kw"],
        organization_id=row["organization_id"],
        is_active=bool(row["is_active"]),
        address=row["address"],
        municipality=row["municipality"],
        solax_client_id=row["solax_client_id"],
        solax_client_secret=row["solax_client_secret"],
        solax_plant_id=row["solax_plant_id"],
    )


def get_site(site_id: str, db_path: Path | None = None) -> Site | None:
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT * FROM sites WHERE id = ?", (site_id,)).fetchone()
        return _row_to_site(row) if row else None


def list_sites(
    organization_id: str, active_only: bool = True, db_path: Path | None = None
) -> list[Site]:
    query = "SELECT * FROM sites WHERE organization_id = ?"
    if active_only:
        query += " AND is_active = 1"
    with get_connection(db_path) as conn:
        rows = conn.execute(query + " ORDER BY id", (organization_id,)).fetchall()
        return [_row_to_site(row) for row in rows]


def get_organization(organization_id: str, db_path: Path | None = None) -> Organization | None:
    """Load an organization with its active sites."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT id, name, is_active FROM organizations WHERE id = ?", (organization_id,)
        ).fetchone()

    if not row:
        return None

    return Organization(
        id=row["id"],
        name=row["name"],
        is_active=bool(row["is_active"]),
        sites=list_sites(organization_id, active_only=True, db_path=db_path),
    )


def get_energy_totals(
    site_id: str, start: date | datetime, end: date | datetime, db_path: Path | None = None
) -> SiteEnergy:
    """Sum a site's daily readings with start <= date < end."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            """SELECT
                   SUM(generation_kwh) as generation,
                   SUM(consumption_kwh) as consumption
               FROM site_energy_readings
               WHERE site_id = ? AND date >= ? AND date < ?""",
            (site_id, _as_date(start).isoformat(), _as_date(end).isoformat()),
        ).fetchone()

    return SiteEnergy(
        total_generation=row["generation"] or 0.0,
        total_consumption=row["consumption"] or 0.0,
    )


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def get_stats(db_path: Path | None = None) -> dict:
    """Get database statistics."""
    with get_connection(db_path) as conn:
        stats = {}

        row = conn.execute(
            "SELECT COUNT(*) as count, SUM(is_active) as active FROM organizations"
        ).fetchone()
        stats["organizations"] = {"count": row["count"], "active": row["active"] or 0}

        row = conn.execute(
            """SELECT COUNT(*) as count, SUM(is_active) as active, SUM(capacity_kw) as capacity,
                      SUM(CASE WHEN solax_client_id IS NOT NULL AND solax_client_secret IS NOT NULL
                               AND solax_plant_id IS NOT NULL THEN 1 ELSE 0 END) as integrated
               FROM sites"""
        ).fetchone()
        stats["sites"] = {
            "count": row["count"],
            "active": row["active"] or 0,
            "capacity_kw": row["capacity"] or 0.0,
            "integrated": row["integrated"] or 0,
        }

        row = conn.execute(
            "SELECT COUNT(*) as count, MIN(date) as earliest, MAX(date) as latest FROM site_energy_readings"
        ).fetchone()
        stats["site_energy_readings"] = {
            "count": row["count"],
            "earliest": row["earliest"],
            "latest": row["latest"],
        }

        return stats


class SQLiteStore:
    """Organization lookup backed by the local database."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path

    async def get_organization(self, organization_id: str) -> Organization | None:
        return await asyncio.to_thread(get_organization, organization_id, self.db_path)


class SQLiteEnergySource:
    """Site energy totals from imported daily readings."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path

    async def get_energy_data(self, site: Site, start: datetime, end: datetime) -> SiteEnergy:
        return await asyncio.to_thread(get_energy_totals, site.id, start, end, self.db_path)

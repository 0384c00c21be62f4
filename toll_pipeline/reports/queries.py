"""
Grouping queries behind the three report kinds.

Each method runs one aggregate query and returns frozen group rows. Ordering
and shaping (ranking, roll-ups, percentages) happen in the aggregator so they
can observe cancellation between stages.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from psycopg import Connection
from psycopg.rows import class_row


@dataclass(frozen=True)
class HourlyGroup:
    city: str
    state: str
    hour: datetime
    total_amount: Decimal
    usage_count: int


@dataclass(frozen=True)
class PlazaTotal:
    plaza_id: int
    plaza_name: str
    city: str
    state: str
    total_amount: Decimal
    usage_count: int
    first_seen: int


@dataclass(frozen=True)
class MixGroup:
    plaza_id: int
    plaza_name: str
    city: str
    state: str
    vehicle_class: int
    usage_count: int
    total_amount: Decimal


HOURLY_SQL = """
SELECT u.city,
       u.state,
       date_trunc('hour', u.used_at, 'UTC') AS hour,
       SUM(u.amount_paid) AS total_amount,
       COUNT(*) AS usage_count
FROM public.toll_usages u
WHERE u.used_at >= %(start)s AND u.used_at <= %(end)s
{city_filter}
GROUP BY u.city, u.state, date_trunc('hour', u.used_at, 'UTC');
"""

# first_seen: lowest usage id per plaza, the tie-break for equal totals.
PLAZA_TOTALS_SQL = """
SELECT p.id AS plaza_id,
       p.name AS plaza_name,
       p.city,
       p.state,
       SUM(u.amount_paid) AS total_amount,
       COUNT(*) AS usage_count,
       MIN(u.id) AS first_seen
FROM public.toll_usages u
JOIN public.plazas p ON p.id = u.plaza_id
WHERE u.used_at >= %(start)s AND u.used_at < %(end)s
GROUP BY p.id, p.name, p.city, p.state
ORDER BY first_seen;
"""

VEHICLE_MIX_SQL = """
SELECT p.id AS plaza_id,
       p.name AS plaza_name,
       p.city,
       p.state,
       u.vehicle_class,
       COUNT(*) AS usage_count,
       SUM(u.amount_paid) AS total_amount
FROM public.toll_usages u
JOIN public.plazas p ON p.id = u.plaza_id
WHERE u.used_at >= %(start)s AND u.used_at <= %(end)s
{plaza_filter}
GROUP BY p.id, p.name, p.city, p.state, u.vehicle_class;
"""


class UsageQueries:
    def hourly_groups(
        self, conn: Connection, start: datetime, end: datetime, city: Optional[str] = None
    ) -> List[HourlyGroup]:
        params: dict[str, Any] = {"start": start, "end": end}
        city_filter = ""
        if city and city.strip():
            city_filter = "AND strpos(lower(u.city), lower(%(city)s)) > 0"
            params["city"] = city.strip()
        with conn.cursor(row_factory=class_row(HourlyGroup)) as cur:
            cur.execute(HOURLY_SQL.format(city_filter=city_filter), params)
            return cur.fetchall()

    def plaza_totals(self, conn: Connection, start: datetime, end: datetime) -> List[PlazaTotal]:
        """Totals per plaza over the half-open window [start, end)."""
        with conn.cursor(row_factory=class_row(PlazaTotal)) as cur:
            cur.execute(PLAZA_TOTALS_SQL, {"start": start, "end": end})
            return cur.fetchall()

    def vehicle_mix_groups(
        self, conn: Connection, start: datetime, end: datetime, plaza_id: Optional[int] = None
    ) -> List[MixGroup]:
        params: dict[str, Any] = {"start": start, "end": end}
        plaza_filter = ""
        if plaza_id is not None:
            plaza_filter = "AND u.plaza_id = %(plaza_id)s"
            params["plaza_id"] = plaza_id
        with conn.cursor(row_factory=class_row(MixGroup)) as cur:
            cur.execute(VEHICLE_MIX_SQL.format(plaza_filter=plaza_filter), params)
            return cur.fetchall()


__all__ = ["HourlyGroup", "MixGroup", "PlazaTotal", "UsageQueries"]

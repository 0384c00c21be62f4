"""Daily usage statistics (today vs. yesterday, breakdowns for today)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Dict, Optional

from psycopg import Connection

from toll_pipeline.domain.models import VehicleClass
from toll_pipeline.utils.clock import as_utc, utcnow


@dataclass(frozen=True)
class UsageStatistics:
    day: datetime
    usages_today: int
    usages_yesterday: int
    average_amount_today: Decimal
    by_vehicle_class: Dict[str, int] = field(default_factory=dict)
    by_state: Dict[str, int] = field(default_factory=dict)


def _day_bounds(now: datetime) -> tuple[datetime, datetime, datetime]:
    today = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    return today - timedelta(days=1), today, today + timedelta(days=1)


def collect_statistics(conn: Connection, now: Optional[datetime] = None) -> UsageStatistics:
    now = as_utc(now) if now is not None else utcnow()
    yesterday, today, tomorrow = _day_bounds(now)

    with conn.cursor() as cur:
        cur.execute(
            """
            SELECT COUNT(*) FILTER (WHERE used_at >= %(today)s),
                   COUNT(*) FILTER (WHERE used_at < %(today)s),
                   COALESCE(AVG(amount_paid) FILTER (WHERE used_at >= %(today)s), 0)
            FROM public.toll_usages
            WHERE used_at >= %(yesterday)s AND used_at < %(tomorrow)s;
            """,
            {"yesterday": yesterday, "today": today, "tomorrow": tomorrow},
        )
        usages_today, usages_yesterday, average = cur.fetchone()

        cur.execute(
            """
            SELECT vehicle_class, COUNT(*) FROM public.toll_usages
            WHERE used_at >= %s AND used_at < %s
            GROUP BY vehicle_class ORDER BY vehicle_class;
            """,
            (today, tomorrow),
        )
        by_class = {VehicleClass(vc).description: count for vc, count in cur.fetchall()}

        cur.execute(
            """
            SELECT state, COUNT(*) FROM public.toll_usages
            WHERE used_at >= %s AND used_at < %s
            GROUP BY state ORDER BY COUNT(*) DESC, state;
            """,
            (today, tomorrow),
        )
        by_state = {state: count for state, count in cur.fetchall()}

    return UsageStatistics(
        day=today,
        usages_today=usages_today,
        usages_yesterday=usages_yesterday,
        average_amount_today=Decimal(average).quantize(Decimal("0.01")),
        by_vehicle_class=by_class,
        by_state=by_state,
    )


__all__ = ["UsageStatistics", "collect_statistics"]

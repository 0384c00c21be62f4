"""
Plaza registry lookups and maintenance.

Read paths answer "which of these plaza ids are registered and active"; the
write paths (`add`, `set_active`) exist for seeding and operations tooling.
"""

from __future__ import annotations

from typing import Iterable, List, Set

from psycopg import Connection
from psycopg.rows import class_row

from toll_pipeline.domain.errors import DomainError
from toll_pipeline.domain.models import Plaza
from toll_pipeline.utils.logging import get_logger

log = get_logger(__name__)


def plaza_unavailable_message(plaza_id: int) -> str:
    return f"Plaza id {plaza_id} not found or inactive"


class PlazaRegistry:
    """Thin data-access object over `public.plazas`."""

    def active_ids(self, conn: Connection, plaza_ids: Iterable[int]) -> Set[int]:
        """Return the subset of `plaza_ids` that are registered and active."""
        wanted = sorted(set(plaza_ids))
        if not wanted:
            return set()
        with conn.cursor() as cur:
            cur.execute(
                "SELECT id FROM public.plazas WHERE active AND id = ANY(%s);",
                (wanted,),
            )
            return {row[0] for row in cur.fetchall()}

    def require_active(self, conn: Connection, plaza_id: int) -> None:
        """
        Raises
        ------
        DomainError
            If the plaza is unknown or inactive.
        """
        if plaza_id not in self.active_ids(conn, [plaza_id]):
            raise DomainError(plaza_unavailable_message(plaza_id))

    def add(self, conn: Connection, name: str, city: str, state: str, active: bool = True) -> Plaza:
        with conn.transaction():
            with conn.cursor(row_factory=class_row(Plaza)) as cur:
                cur.execute(
                    """
                    INSERT INTO public.plazas (name, city, state, active)
                    VALUES (%s, %s, %s, %s)
                    RETURNING id, name, city, state, active;
                    """,
                    (name.strip(), city.strip().upper(), state.strip().upper(), active),
                )
                plaza = cur.fetchone()
        log.info("Plaza registered", extra={"plaza_id": plaza.id, "plaza_name": plaza.name})
        return plaza

    def set_active(self, conn: Connection, plaza_id: int, active: bool) -> None:
        with conn.transaction():
            cur = conn.execute(
                "UPDATE public.plazas SET active = %s WHERE id = %s;", (active, plaza_id)
            )
            if cur.rowcount == 0:
                raise DomainError(f"Plaza id {plaza_id} not found")
        log.info("Plaza active flag updated", extra={"plaza_id": plaza_id, "active": active})

    def list_plazas(self, conn: Connection, only_active: bool = False) -> List[Plaza]:
        query = "SELECT id, name, city, state, active FROM public.plazas"
        if only_active:
            query += " WHERE active"
        with conn.cursor(row_factory=class_row(Plaza)) as cur:
            cur.execute(query + " ORDER BY id;")
            return cur.fetchall()


__all__ = ["PlazaRegistry", "plaza_unavailable_message"]

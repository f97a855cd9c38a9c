"""Per-form version number allocation.

Uses the ``version_counters`` table so numbers are never reused, even if
a version row were ever removed.

The caller owns the transaction — pass a ``Connection`` obtained from
``engine.begin()`` so the counter increment participates in the same
atomic transaction as the version insert.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import insert, select, update

from formctl.infrastructure.database.schema import version_counters

if TYPE_CHECKING:
    from sqlalchemy import Connection


def next_version_number(conn: Connection, form_id: str) -> int:
    """Claim the next version number for *form_id*, starting at 1.

    Args:
        conn: Active SQLAlchemy connection (caller owns the transaction).
        form_id: The form whose counter to advance.

    Raises:
        ValueError: If *form_id* is empty.
    """
    if not form_id:
        msg = "form_id must not be empty"
        raise ValueError(msg)

    row = conn.execute(
        select(version_counters.c.next_value).where(version_counters.c.form_id == form_id)
    ).first()

    if row is None:
        conn.execute(insert(version_counters).values(form_id=form_id, next_value=2))
        return 1

    current_value: int = row.next_value
    conn.execute(
        update(version_counters)
        .where(version_counters.c.form_id == form_id)
        .values(next_value=current_value + 1)
    )
    return current_value

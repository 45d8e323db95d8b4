"""Idempotent bulk writes for dataset tables."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

BATCH_SIZE = 5000


def bulk_upsert(
    db: Session,
    model: Any,
    rows: List[Dict[str, Any]],
    conflict_keys: Sequence[str],
    update_cols: Optional[Sequence[str]] = None,
) -> int:
    """Upsert ``rows`` into ``model``'s table and return the number of rows written.

    Columns not part of ``conflict_keys`` are overwritten on conflict unless
    ``update_cols`` narrows them. The caller owns the transaction.
    """
    if not rows:
        return 0
    if not conflict_keys:
        raise ValueError("upsert: no conflict keys specified")

    if update_cols is None:
        update_cols = [c for c in rows[0].keys() if c not in conflict_keys]

    written = 0
    for offset in range(0, len(rows), BATCH_SIZE):
        batch = rows[offset : offset + BATCH_SIZE]
        stmt = insert(model).values(batch)
        if update_cols:
            stmt = stmt.on_conflict_do_update(
                index_elements=list(conflict_keys),
                set_={col: stmt.excluded[col] for col in update_cols},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_keys))
        db.execute(stmt)
        written += len(batch)
    return written

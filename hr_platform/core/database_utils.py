# hr_platform/core/database_utils.py

from typing import Iterator, List, Sequence, TypeVar

from sqlalchemy.orm import Session

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def bulk_insert_chunked(db: Session, model, rows: Sequence[dict], chunk_size: int) -> int:
    """
    Insert plain dict rows for ``model`` in chunks without loading ORM objects.

    The caller owns the transaction; nothing is committed here.

    Returns:
        Number of rows inserted
    """
    inserted = 0
    for batch in chunked(rows, chunk_size):
        db.bulk_insert_mappings(model, batch)
        inserted += len(batch)
    return inserted

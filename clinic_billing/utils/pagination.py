# FILE: clinic_billing/utils/pagination.py
from __future__ import annotations

from math import ceil
from typing import Any, Iterator, List, Sequence, Tuple

from sqlalchemy.orm import Query

from clinic_billing.schemas.common import PageMeta


def page_meta(total: int, page: int, limit: int) -> PageMeta:
    page = max(int(page or 1), 1)
    limit = max(int(limit or 10), 1)
    total_pages = ceil(total / limit) if total else 0
    return PageMeta(
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


def paginate_query(q: Query, page: int, limit: int) -> Tuple[List[Any], PageMeta]:
    """`q` must already carry its ORDER BY."""
    total = q.order_by(None).count()
    meta = page_meta(total, page, limit)
    rows = q.offset((meta.page - 1) * meta.limit).limit(meta.limit).all()
    return rows, meta


def paginate_list(items: Sequence[Any], page: int,
                  limit: int) -> Tuple[List[Any], PageMeta]:
    meta = page_meta(len(items), page, limit)
    start = (meta.page - 1) * meta.limit
    return list(items[start:start + meta.limit]), meta


def iter_batches(q: Query, batch_size: int) -> Iterator[List[Any]]:
    """
    Yield `q` in offset/limit slices of `batch_size` rows until exhausted.
    `q` must be deterministically ordered (tie-broken by primary key).
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    offset = 0
    while True:
        rows = q.offset(offset).limit(batch_size).all()
        if not rows:
            return
        yield rows
        if len(rows) < batch_size:
            return
        offset += batch_size

"""Paginated list envelope shared by list endpoints"""

import math
from typing import Any, Callable, Optional

from sqlalchemy.orm import Query


def clamp_per_page(per_page: Optional[int], default: int = 15, minimum: int = 1, maximum: int = 100) -> int:
    if not per_page:
        return default
    return max(minimum, min(maximum, int(per_page)))


def paginate(
    query: Query,
    page: int = 1,
    per_page: int = 15,
    serializer: Optional[Callable[[Any], Any]] = None,
) -> dict:
    """
    Run a query page and wrap it in the list envelope:
    {data, current_page, last_page, per_page, total, from, to}
    """
    page = max(1, int(page or 1))
    total = query.order_by(None).count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    data = [serializer(item) for item in items] if serializer else items
    first = (page - 1) * per_page + 1 if items else None

    return {
        "data": data,
        "current_page": page,
        "last_page": max(1, math.ceil(total / per_page)),
        "per_page": per_page,
        "total": total,
        "from": first,
        "to": first + len(items) - 1 if items else None,
    }

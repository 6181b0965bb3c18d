"""Page envelope helpers shared by the list endpoints."""

import math
from typing import Any, Dict, Sequence


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def page(items: Sequence[Any], total: int, page_number: int, limit: int) -> Dict[str, Any]:
    return {
        "items": list(items),
        "total": total,
        "page": page_number,
        "limit": limit,
        "pages": page_count(total, limit),
    }

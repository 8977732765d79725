"""
Cursor pagination over append-only streams.

All list endpoints (messages, notifications, posts, comments) share one
convention:

- items are ordered by (-created_at, -id), newest first;
- the cursor (``lastId``) is the id of the last item of the previous page,
  and the next page holds the items strictly after that item's position;
- ``hasMore`` is true whenever the page came back full. It can be a false
  positive when the next page turns out empty;
- a missing cursor, an unknown id, or an id from another stream restarts
  from the newest item instead of failing.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db.models import Q, QuerySet

from .exceptions import InvalidInput


@dataclass
class CursorPage:
    items: List[Any] = field(default_factory=list)
    last_id: Optional[str] = None
    has_more: bool = False

    def as_dict(self, key: str, serialize: Callable[[Any], Any] = None) -> dict:
        serialize = serialize or (lambda item: item.to_dict())
        return {
            key: [serialize(item) for item in self.items],
            "lastId": self.last_id,
            "hasMore": self.has_more,
        }


def parse_page_size(raw, default: Optional[int] = None) -> int:
    """Validate a ``limit`` query value and clamp it to the configured maximum."""
    if default is None:
        default = settings.PAGINATION_DEFAULT_PAGE_SIZE
    if raw is None or raw == "":
        return default
    try:
        size = int(raw)
    except (TypeError, ValueError):
        raise InvalidInput("limit must be a positive integer")
    if size < 1:
        raise InvalidInput("limit must be a positive integer")
    return min(size, settings.PAGINATION_MAX_PAGE_SIZE)


def _cursor_position(queryset: QuerySet, cursor, time_field: str):
    try:
        return queryset.filter(pk=cursor).values(time_field, "pk").first()
    except (ValueError, TypeError, ValidationError):
        # Not even a well-formed id for this stream.
        return None


def paginate(queryset: QuerySet, page_size: int, cursor=None,
             time_field: str = "created_at") -> CursorPage:
    """
    Return one page of ``queryset`` in descending creation order.

    The cursor is resolved inside ``queryset`` itself, so an id belonging to
    another chat or another user's notifications is treated as absent.
    """
    if page_size < 1:
        raise InvalidInput("limit must be a positive integer")

    ordered = queryset.order_by(f"-{time_field}", "-pk")

    if cursor:
        position = _cursor_position(queryset, cursor, time_field)
        if position is not None:
            anchor_time = position[time_field]
            anchor_pk = position["pk"]
            ordered = ordered.filter(
                Q(**{f"{time_field}__lt": anchor_time})
                | Q(**{time_field: anchor_time, "pk__lt": anchor_pk})
            )

    items = list(ordered[:page_size])
    return CursorPage(
        items=items,
        last_id=str(items[-1].pk) if items else None,
        has_more=len(items) == page_size,
    )

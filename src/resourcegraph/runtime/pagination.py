"""
Relay cursor pagination.

Cursors encode an item's position under the current filters and ordering,
together with a fingerprint of those filters and ordering. A cursor taken
from one query is rejected by any query that filters or orders differently.

Forward window (first N after C):
    fetch N+1 items starting right after C; an extra item means hasNextPage.
Backward window (last N before C):
    fetch N+1 items ending right before C; an extra item means hasPreviousPage.
Edges are always returned in ascending position order.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
from typing import Any, Mapping, Optional, Sequence

from ..core.errors import PaginationError, ValidationError
from ..core.filters import PAGINATION_ARGUMENTS
from ..core.query_types import (
    Connection,
    CursorWindowRequest,
    Edge,
    NormalizedFilter,
    NormalizedOrder,
    PageInfo,
    WindowSpec,
)
from .persistence import Backend
from .tasks import gather_or_cancel


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 30


def fingerprint(
    resource: str,
    filters: Sequence[NormalizedFilter],
    ordering: Sequence[NormalizedOrder],
) -> str:
    """Stable digest of a resource, its filter spec and its ordering."""
    canonical_filters = sorted(
        json.dumps(f.model_dump(mode="json"), sort_keys=True, default=str) for f in filters
    )
    payload = {
        "resource": resource,
        "filters": canonical_filters,
        "order": [[o.field, o.dir] for o in ordering],
    }
    encoded = json.dumps(payload, sort_keys=True, default=str).encode()
    return hashlib.sha256(encoded).hexdigest()[:16]


def encode_cursor(digest: str, position: int) -> str:
    return base64.urlsafe_b64encode(f"{digest}:{position}".encode()).decode()


def decode_cursor(cursor: str, digest: str, argument: str) -> int:
    """
    Decode a cursor to a position.

    Raises:
        PaginationError: If the cursor is malformed or from another query
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
        cursor_digest, position_text = raw.split(":")
        position = int(position_text)
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise PaginationError(f"Invalid cursor for '{argument}'", argument=argument) from e

    if position < 0:
        raise PaginationError(f"Invalid cursor for '{argument}'", argument=argument)
    if cursor_digest != digest:
        logger.warning(f"Stale cursor for '{argument}': query filters or ordering changed")
        raise PaginationError(
            f"Cursor for '{argument}' does not match the current filters and ordering",
            argument=argument,
        )
    return position


def split_pagination_args(args: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split arguments into (pagination, filter) arguments."""
    pagination = {k: v for k, v in args.items() if k in PAGINATION_ARGUMENTS}
    rest = {k: v for k, v in args.items() if k not in PAGINATION_ARGUMENTS}
    return pagination, rest


class PaginationEngine:
    """
    Converts window requests to fetches and results to connections.

    Usage:
        engine = PaginationEngine(default_page_size=30)
        request = engine.window_request({"first": 10, "after": cursor})
        connection = await engine.paginate(backend, "Offer", filters, ordering, request)
    """

    def __init__(self, default_page_size: int = DEFAULT_PAGE_SIZE, max_page_size: Optional[int] = None):
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def window_request(self, args: Mapping[str, Any]) -> CursorWindowRequest:
        """
        Validate pagination arguments.

        Raises:
            ValidationError: Bad types, negative sizes or both directions set
        """
        for name in ("first", "last"):
            value = args.get(name)
            if value is None:
                continue
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValidationError(f"Argument '{name}' expects int", argument=name)
            if value < 0:
                raise ValidationError(f"Argument '{name}' must not be negative", argument=name)
        for name in ("after", "before"):
            value = args.get(name)
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"Argument '{name}' expects a cursor string", argument=name)

        request = CursorWindowRequest(
            first=args.get("first"),
            after=args.get("after"),
            last=args.get("last"),
            before=args.get("before"),
        )
        if request.is_forward and request.is_backward:
            conflicting = "last" if request.last is not None else "before"
            raise ValidationError(
                "Cannot combine forward (first/after) and backward (last/before) pagination",
                argument=conflicting,
            )
        return request

    def page_size(self, requested: Optional[int]) -> int:
        size = self.default_page_size if requested is None else requested
        if self.max_page_size is not None:
            size = min(size, self.max_page_size)
        return size

    async def paginate(
        self,
        backend: Backend,
        resource: str,
        filters: Sequence[NormalizedFilter],
        ordering: Sequence[NormalizedOrder],
        request: CursorWindowRequest,
    ) -> Connection:
        """Fetch one window and its total count, and build the connection."""
        digest = fingerprint(resource, filters, ordering)
        filters = list(filters)
        ordering = list(ordering)

        if request.is_backward:
            return await self._paginate_backward(backend, resource, filters, ordering, request, digest)
        return await self._paginate_forward(backend, resource, filters, ordering, request, digest)

    async def _paginate_forward(self, backend, resource, filters, ordering, request, digest) -> Connection:
        size = self.page_size(request.first)
        start = 0
        if request.after is not None:
            start = decode_cursor(request.after, digest, "after") + 1

        window = WindowSpec(offset=start, limit=size + 1)
        logger.debug(f"Forward window on {resource}: offset={window.offset} limit={window.limit}")
        total, items = await gather_or_cancel(
            backend.count(resource, filters),
            backend.fetch_window(resource, filters, ordering, window),
        )

        has_next = len(items) > size
        items = items[:size]
        return self.build_connection(
            items,
            first_position=start,
            total=total,
            digest=digest,
            has_next=has_next,
            has_previous=start > 0,
        )

    async def _paginate_backward(self, backend, resource, filters, ordering, request, digest) -> Connection:
        size = self.page_size(request.last)

        if request.before is not None:
            end = decode_cursor(request.before, digest, "before")
            start = max(0, end - (size + 1))
            window = WindowSpec(offset=start, limit=end - start)
            total, items = await gather_or_cancel(
                backend.count(resource, filters),
                self._fetch(backend, resource, filters, ordering, window),
            )
        else:
            # Without a cursor the window ends at the last item, so count first.
            total = await backend.count(resource, filters)
            end = total
            start = max(0, end - (size + 1))
            window = WindowSpec(offset=start, limit=end - start)
            items = await self._fetch(backend, resource, filters, ordering, window)

        logger.debug(f"Backward window on {resource}: offset={window.offset} limit={window.limit}")

        has_previous = len(items) > size
        trimmed = items[len(items) - size:] if has_previous else items
        first_position = start + (len(items) - len(trimmed))
        return self.build_connection(
            trimmed,
            first_position=first_position,
            total=total,
            digest=digest,
            has_next=first_position + len(trimmed) < total,
            has_previous=has_previous,
        )

    async def _fetch(self, backend, resource, filters, ordering, window: WindowSpec) -> list[dict[str, Any]]:
        if window.limit <= 0:
            return []
        return await backend.fetch_window(resource, filters, ordering, window)

    def build_connection(
        self,
        items: Sequence[Any],
        *,
        first_position: int,
        total: int,
        digest: str,
        has_next: bool,
        has_previous: bool,
    ) -> Connection:
        """Build the connection, computing each edge cursor from its position."""
        edges = [
            Edge(cursor=encode_cursor(digest, first_position + index), node=item)
            for index, item in enumerate(items)
        ]
        return Connection(
            total_count=total,
            page_info=PageInfo(
                start_cursor=edges[0].cursor if edges else None,
                end_cursor=edges[-1].cursor if edges else None,
                has_next_page=has_next,
                has_previous_page=has_previous,
            ),
            edges=edges,
        )

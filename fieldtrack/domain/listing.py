"""
In-memory list query engine for products and tasks.

Collections arrive already scoped by role (admins see everything, users see
their own records). Search and filters are combined with AND, sorting runs on
the filtered set, and pagination slices the sorted result.
"""

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional, Union

from ..errors import ValidationError
from ..shared.timeofday import TimeOfDay

logger = logging.getLogger(__name__)

PAGE_SIZE = 10

PRODUCT_SORT_KEYS = ("newest", "oldest", "name-asc", "name-desc")
TASK_SORT_KEYS = ("newest", "oldest", "title-asc", "title-desc", "time")


@dataclass(frozen=True)
class OwnerInfo:
    """Display details of a record owner, searched only by admins"""

    name: str = ""
    email: str = ""


@dataclass(frozen=True)
class ProductFilters:
    warranty_types: tuple[str, ...] = ()
    has_images: Optional[bool] = None
    has_serial_number: Optional[bool] = None
    has_purchase_date: Optional[bool] = None
    users: tuple[int, ...] = ()


@dataclass(frozen=True)
class TaskFilters:
    status: tuple[str, ...] = ()
    has_images: Optional[bool] = None
    users: tuple[int, ...] = ()


Filters = Union[ProductFilters, TaskFilters]


@dataclass
class ListPage:
    items: list
    total_count: int
    total_pages: int
    page: int
    page_size: int = PAGE_SIZE


def active_filter_count(filters: Filters) -> int:
    """Number of filter groups currently narrowing the list."""
    count = 0
    for name, value in vars(filters).items():
        if isinstance(value, tuple):
            count += 1 if value else 0
        elif value is not None:
            count += 1
    return count


def paginate(items: list, page: int, page_size: int = PAGE_SIZE) -> ListPage:
    if page_size < 1:
        raise ValidationError("Page size must be positive")
    page = max(1, page)
    total = len(items)
    start = (page - 1) * page_size
    return ListPage(
        items=items[start : start + page_size],
        total_count=total,
        total_pages=math.ceil(total / page_size),
        page=page,
        page_size=page_size,
    )


def _contains(value: Optional[str], needle: str) -> bool:
    return bool(value) and needle in value.lower()


def _tri_state(flag: Optional[bool], present: bool) -> bool:
    return flag is None or flag == present


def _created(record) -> datetime:
    return record.created_at or datetime.min


def _owner_matches(record, needle: str, owners: dict[int, OwnerInfo]) -> bool:
    owner = owners.get(record.user_id)
    return (
        _contains(record.uploader_email, needle)
        or (owner is not None and (_contains(owner.name, needle) or _contains(owner.email, needle)))
    )


def _first_start(task) -> Optional[TimeOfDay]:
    slots = task.time_slots or []
    if not slots:
        return None
    first = slots[0]
    start = first.get("startTime") if isinstance(first, dict) else first.startTime
    return TimeOfDay.parse_optional(start)


def _sort(records: list, sort: str, title: Callable[[Any], str]) -> list:
    if sort == "newest":
        return sorted(records, key=_created, reverse=True)
    if sort == "oldest":
        return sorted(records, key=_created)
    if sort.endswith("-asc"):
        return sorted(records, key=lambda r: title(r).casefold())
    if sort.endswith("-desc"):
        return sorted(records, key=lambda r: title(r).casefold(), reverse=True)
    if sort == "time":
        # Tasks without a first start time go last
        def key(task):
            start = _first_start(task)
            return (1, 0) if start is None else (0, start.minutes)

        return sorted(records, key=key)
    return list(records)


def query_products(
    products: Iterable,
    *,
    search: str = "",
    sort: str = "newest",
    filters: Optional[ProductFilters] = None,
    page: int = 1,
    page_size: int = PAGE_SIZE,
    viewer_is_admin: bool = False,
    owners: Optional[dict[int, OwnerInfo]] = None,
) -> ListPage:
    if sort not in PRODUCT_SORT_KEYS:
        raise ValidationError(f"Unknown sort option: {sort}")
    filters = filters or ProductFilters()
    owners = owners or {}
    needle = (search or "").strip().lower()

    def keep(product) -> bool:
        if needle and not (
            _contains(product.name, needle)
            or _contains(product.description, needle)
            or _contains(product.serial_number, needle)
            or (viewer_is_admin and _owner_matches(product, needle, owners))
        ):
            return False
        if filters.users and product.user_id not in filters.users:
            return False
        warranty_type = (product.warranty or {}).get("type", "basic")
        if filters.warranty_types and warranty_type not in filters.warranty_types:
            return False
        return (
            _tri_state(filters.has_images, bool(product.images))
            and _tri_state(filters.has_serial_number, bool(product.serial_number))
            and _tri_state(filters.has_purchase_date, product.purchase_date is not None)
        )

    result = _sort([p for p in products if keep(p)], sort, lambda p: p.name or "")
    return paginate(result, page, page_size)


def query_tasks(
    tasks: Iterable,
    *,
    search: str = "",
    sort: str = "newest",
    filters: Optional[TaskFilters] = None,
    page: int = 1,
    page_size: int = PAGE_SIZE,
    viewer_is_admin: bool = False,
    owners: Optional[dict[int, OwnerInfo]] = None,
) -> ListPage:
    if sort not in TASK_SORT_KEYS:
        raise ValidationError(f"Unknown sort option: {sort}")
    filters = filters or TaskFilters()
    owners = owners or {}
    needle = (search or "").strip().lower()

    def keep(task) -> bool:
        if needle and not (
            _contains(task.title, needle)
            or _contains(task.description, needle)
            or (viewer_is_admin and _owner_matches(task, needle, owners))
        ):
            return False
        if filters.users and task.user_id not in filters.users:
            return False
        if filters.status and task.status not in filters.status:
            return False
        return _tri_state(filters.has_images, bool(task.images))

    result = _sort([t for t in tasks if keep(t)], sort, lambda t: t.title or "")
    return paginate(result, page, page_size)


@dataclass
class ListView:
    """
    View state for one list screen.

    The snapshot feed calls `ingest` / `ingest_error`; the page is recomputed
    from scratch on every render. Changing the search text or any filter
    returns to page 1; sorting, paging and the grid/list toggle keep it.
    """

    kind: str  # "products" or "tasks"
    viewer_is_admin: bool = False
    owners: dict[int, OwnerInfo] = field(default_factory=dict)
    search: str = ""
    sort: str = "newest"
    filters: Optional[Filters] = None
    page: int = 1
    grid_view: bool = False
    items: list = field(default_factory=list)
    last_error: Optional[Exception] = None

    def __post_init__(self):
        if self.kind not in ("products", "tasks"):
            raise ValueError(f"Unknown list kind: {self.kind}")
        if self.filters is None:
            self.filters = ProductFilters() if self.kind == "products" else TaskFilters()

    def ingest(self, snapshot: list) -> ListPage:
        self.items = list(snapshot)
        self.last_error = None
        return self.render()

    def ingest_error(self, error: Exception) -> None:
        # Keep showing the last good snapshot
        logger.warning(f"⚠️ {self.kind} feed error, keeping last snapshot: {error}")
        self.last_error = error

    def set_search(self, text: str) -> None:
        self.search = text
        self.page = 1

    def set_filters(self, filters: Filters) -> None:
        self.filters = filters
        self.page = 1

    def update_filters(self, **changes) -> None:
        self.set_filters(replace(self.filters, **changes))

    def reset_filters(self) -> None:
        self.set_filters(ProductFilters() if self.kind == "products" else TaskFilters())

    def set_sort(self, sort: str) -> None:
        allowed = PRODUCT_SORT_KEYS if self.kind == "products" else TASK_SORT_KEYS
        if sort not in allowed:
            raise ValidationError(f"Unknown sort option: {sort}")
        self.sort = sort

    def set_page(self, page: int) -> None:
        self.page = max(1, page)

    def toggle_view(self) -> None:
        self.grid_view = not self.grid_view

    def render(self) -> ListPage:
        query = query_products if self.kind == "products" else query_tasks
        return query(
            self.items,
            search=self.search,
            sort=self.sort,
            filters=self.filters,
            page=self.page,
            viewer_is_admin=self.viewer_is_admin,
            owners=self.owners,
        )

"""
Pagination and in-memory filtering helpers shared by every list page.

`paginate` accepts either a SQLAlchemy Query (counted and sliced in SQL) or an
already-fetched sequence (sliced in memory). Out-of-range pages are clamped.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from flask import current_app, request, url_for


@dataclass(frozen=True)
class Page:
    items: list[Any]
    page: int
    per_page: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def start_index(self) -> int:
        """1-based index of the first item on this page (0 when empty)."""
        if not self.items:
            return 0
        return (self.page - 1) * self.per_page + 1

    @property
    def end_index(self) -> int:
        if not self.items:
            return 0
        return self.start_index + len(self.items) - 1


def clamp_page(page: int, total: int, per_page: int) -> int:
    total_pages = (total + per_page - 1) // per_page
    if page < 1 or total_pages == 0:
        return 1
    return min(page, total_pages)


def paginate(source: Any, page: int = 1, per_page: int = 10) -> Page:
    if per_page < 1:
        raise ValueError("per_page must be >= 1")
    if isinstance(source, Sequence):
        total = len(source)
        page = clamp_page(page, total, per_page)
        start = (page - 1) * per_page
        items = list(source[start : start + per_page])
    else:
        total = source.order_by(None).count()
        page = clamp_page(page, total, per_page)
        items = source.offset((page - 1) * per_page).limit(per_page).all()
    return Page(items=items, page=page, per_page=per_page, total=total)


def _attr(row: Any, name: str) -> Any:
    # dotted paths walk relationships ("user.profile.full_name")
    value = row
    for part in name.split("."):
        if value is None:
            return None
        value = value.get(part) if isinstance(value, dict) else getattr(value, part, None)
    return value


def search_filter(rows: Iterable[Any], term: str | None, *fields: str) -> list[Any]:
    """Case-insensitive substring match of `term` against any of `fields`."""
    needle = (term or "").strip().lower()
    rows = list(rows)
    if not needle:
        return rows
    out = []
    for row in rows:
        for field in fields:
            value = _attr(row, field)
            if value is not None and needle in str(value).lower():
                out.append(row)
                break
    return out


def parse_page_arg(name: str = "page") -> int:
    page = request.args.get(name, 1, type=int)
    return page if page and page > 0 else 1


def page_size() -> int:
    return int(current_app.config.get("PAGE_SIZE") or 10)


def page_url_builder(endpoint: str, **view_args: Any):
    """Returns build_url(p) keeping the current query string (filters) intact."""

    def build_url(p: int) -> str:
        args = {k: v for k, v in request.args.items() if k != "page"}
        args.update(view_args)
        args["page"] = p
        return url_for(endpoint, **args)

    return build_url

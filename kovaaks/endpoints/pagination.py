"""
Pagination normalization.

The API is inconsistent: some endpoints are 0-indexed, some 1-indexed, some
report ``total`` as a string and some omit ``page``/``max`` entirely.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class Page(BaseModel):
    """Normalized paginated response."""

    page: int
    max: int
    total: int = 0
    data: list[Any] = Field(default_factory=list)

    @field_validator("total", mode="before")
    @classmethod
    def _coerce_total(cls, value: Any) -> int:
        if value in (None, ""):
            return 0
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    @property
    def has_more(self) -> bool:
        return len(self.data) >= self.max and self.total > len(self.data)


def normalize_page(raw: Any, page: int, max_items: int) -> Page:
    """
    Build a Page from any of the response shapes the API returns.

    Args:
        raw: Response body: a dict with ``data``, a bare list, or None
        page: Page number that was requested
        max_items: Page size that was requested
    """
    if raw is None:
        return Page(page=page, max=max_items)

    if isinstance(raw, list):
        return Page(page=page, max=max_items, total=len(raw), data=raw)

    if isinstance(raw, dict):
        data = raw.get("data") or []
        return Page(
            page=raw.get("page", page),
            max=raw.get("max", max_items),
            total=raw.get("total", len(data)),
            data=data,
        )

    return Page(page=page, max=max_items)

# backend/fortifymis/schemas.py
"""
Shared response envelope and pagination helpers used by every router.
"""

from __future__ import annotations

import math
import os
from typing import Any, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel
from sqlalchemy.orm import Query

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = int(os.getenv("API_MAX_PAGE_SIZE", "100"))


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T
    message: Optional[str] = None


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class Page(BaseModel, Generic[T]):
    items: List[T]
    pagination: Pagination


def ok(data: Any, message: Optional[str] = None) -> dict:
    return {"success": True, "data": data, "message": message}


def normalize_pagination(page: int, page_size: int) -> Tuple[int, int]:
    """
    Clamp pagination parameters to safe bounds.
    """
    if page < 1:
        page = 1
    if page_size <= 0:
        page_size = DEFAULT_PAGE_SIZE
    if page_size > MAX_PAGE_SIZE:
        page_size = MAX_PAGE_SIZE
    return page, page_size


def paginate(query: Query, page: int, page_size: int, **extra: Any) -> dict:
    page, page_size = normalize_pagination(page, page_size)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    result = {
        "items": items,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size) if total else 0,
        },
    }
    result.update(extra)
    return result

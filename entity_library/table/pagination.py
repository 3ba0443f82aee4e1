"""
Page-count and page-button window helpers.

All functions here are pure: the same inputs always produce the same output.
"""

from __future__ import annotations

import math
from typing import Union

ELLIPSIS_START = "ellipsis-start"
ELLIPSIS_END = "ellipsis-end"

PageButton = Union[int, str]


def page_count(total_items: int, page_size: int) -> int:
    """Number of pages for ``total_items`` rows; never less than 1."""
    size = max(int(page_size), 1)
    return max(1, math.ceil(max(int(total_items), 0) / size))


def item_range(page: int, page_size: int, total_items: int) -> tuple[int, int]:
    """1-based inclusive ``(first, last)`` row numbers shown on ``page``."""
    if total_items <= 0:
        return (0, 0)
    size = max(int(page_size), 1)
    page = min(max(int(page), 1), page_count(total_items, size))
    start = (page - 1) * size + 1
    return (start, min(page * size, total_items))


def get_page_numbers(page: int, max_page: int, max_buttons: int = 5) -> list[PageButton]:
    """
    Compute the page buttons for a pagination control.

    Returns every page when they all fit. Otherwise returns a window of
    ``max_buttons`` pages centred on ``page``, with the first and last page
    always present exactly once and ``ELLIPSIS_START`` / ``ELLIPSIS_END``
    marking gaps.

    Examples:
        >>> get_page_numbers(1, 1)
        [1]
        >>> get_page_numbers(10, 20)
        [1, 'ellipsis-start', 8, 9, 10, 11, 12, 'ellipsis-end', 20]
    """
    max_page = max(int(max_page), 1)
    max_buttons = max(int(max_buttons), 1)
    page = min(max(int(page), 1), max_page)

    if max_page <= max_buttons:
        return list(range(1, max_page + 1))

    half_window = max_buttons // 2
    start = max(1, page - half_window)
    end = min(max_page, start + max_buttons - 1)
    if end - start + 1 < max_buttons:
        start = max(1, end - max_buttons + 1)

    pages: list[PageButton] = []
    if start > 1:
        pages.append(1)
        if start > 2:
            pages.append(ELLIPSIS_START)

    pages.extend(range(start, end + 1))

    if end < max_page:
        if end < max_page - 1:
            pages.append(ELLIPSIS_END)
        pages.append(max_page)

    return pages

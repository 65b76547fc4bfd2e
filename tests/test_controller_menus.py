from __future__ import annotations

import pytest

pytest.importorskip("telethon")

from controller import PAGE_SIZE, paginate  # noqa: E402


def _rows(count: int) -> list:
    return [[f"row {index}"] for index in range(count)]


def test_single_page_has_no_navigation() -> None:
    rows = _rows(PAGE_SIZE)

    assert paginate(rows, 0, lambda page: f"groups:{page}") == rows


def test_middle_page_links_both_directions() -> None:
    page = paginate(_rows(PAGE_SIZE * 3), 1, lambda page: f"groups:{page}")

    *entries, nav = page
    assert entries == _rows(PAGE_SIZE * 3)[PAGE_SIZE : PAGE_SIZE * 2]
    assert [button.data for button in nav] == [b"groups:0", b"groups:2"]


def test_last_page_only_links_back() -> None:
    page = paginate(_rows(PAGE_SIZE + 1), 1, lambda page: f"class:0:{page}")

    assert page[0] == ["row 10"]
    assert [button.data for button in page[-1]] == [b"class:0:0"]

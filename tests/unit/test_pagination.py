from __future__ import annotations

import pytest

from toll_pipeline.reports.pagination import PagedResult, paginate

ROWS = list(range(1, 26))
PAGE_SIZE = 10


def test_first_page_of_25_rows():
    page = paginate(ROWS, page=1, page_size=PAGE_SIZE)

    assert page.items == list(range(1, 11))
    assert page.total_records == 25
    assert page.total_pages == 3
    assert page.has_next_page is True
    assert page.has_previous_page is False


def test_last_page_is_partial():
    page = paginate(ROWS, page=3, page_size=PAGE_SIZE)

    assert page.items == [21, 22, 23, 24, 25]
    assert page.has_next_page is False
    assert page.has_previous_page is True


def test_page_past_the_end_is_empty_but_keeps_totals():
    page = paginate(ROWS, page=4, page_size=PAGE_SIZE)
    assert page.items == []
    assert page.total_records == 25
    assert page.has_next_page is False


def test_empty_sequence_has_zero_pages():
    page = paginate([], page=1, page_size=PAGE_SIZE)
    assert page.total_pages == 0
    assert page.has_next_page is False
    assert page.has_previous_page is False


def test_create_uses_supplied_total():
    page = PagedResult.create(["a", "b"], page=2, page_size=2, total=7)
    assert page.total_pages == 4
    assert page.has_next_page is True


@pytest.mark.parametrize(("page", "page_size"), [(0, 10), (1, 0)])
def test_invalid_paging_is_rejected(page, page_size):
    with pytest.raises(ValueError):
        paginate(ROWS, page=page, page_size=page_size)

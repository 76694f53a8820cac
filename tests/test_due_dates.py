from datetime import date

import pytest

from pm_scheduler.services.due_dates import (
    NO_DUE_DATE,
    compute_next_due,
    format_months,
    normalize_months,
    parse_months,
)
from pm_scheduler.services.exceptions import ValidationError


def test_later_month_in_same_year_after_the_fifteenth():
    assert compute_next_due({2, 8}, False, date(2024, 3, 20)) == date(2024, 9, 15)


def test_current_month_counts_before_the_fifteenth():
    assert compute_next_due({2, 8}, False, date(2024, 3, 10)) == date(2024, 3, 15)


def test_current_month_is_past_on_the_fifteenth():
    assert compute_next_due({2, 8}, False, date(2024, 3, 15)) == date(2024, 9, 15)


def test_wraps_to_first_month_of_next_year():
    assert compute_next_due({5}, False, date(2025, 11, 1)) == date(2026, 6, 15)


def test_december_after_due_day_wraps_to_january():
    assert compute_next_due({0, 11}, False, date(2024, 12, 20)) == date(2025, 1, 15)


def test_unsorted_input_is_handled():
    assert compute_next_due([8, 2, 5], False, date(2024, 4, 1)) == date(2024, 6, 15)


@pytest.mark.parametrize("months, inactive", [
    ({2, 8}, True),
    (set(), False),
    (None, False),
])
def test_no_due_date_sentinel(months, inactive):
    assert compute_next_due(months, inactive, date(2024, 3, 10)) == NO_DUE_DATE


def test_normalize_months_sorts_and_dedupes():
    assert normalize_months([8, 2, 8]) == [2, 8]


@pytest.mark.parametrize("bad", [12, -1, "3", True])
def test_normalize_months_rejects_out_of_range(bad):
    with pytest.raises(ValidationError):
        normalize_months([bad])


def test_format_and_parse_months():
    assert format_months([8, 2]) == "Mar, Sep"
    assert parse_months("Mar, Sep") == {2, 8}


def test_parse_months_drops_unknown_names():
    assert parse_months("Mar, March, sep, Dec") == {2, 11}
    assert parse_months("") == set()

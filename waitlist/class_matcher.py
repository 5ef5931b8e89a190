"""Age arithmetic and class eligibility."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

from database.models import SchoolClass


def months_between(birth_date: date, today: date) -> int:
    """Whole calendar months from ``birth_date`` to ``today``.

    A month only counts once its day-of-month has been reached, so
    2024-01-31 -> 2024-02-28 is 0 months and 2024-01-15 -> 2024-03-15 is 2.
    Negative when ``today`` precedes ``birth_date``.
    """
    months = (today.year - birth_date.year) * 12 + (today.month - birth_date.month)
    if months > 0 and today.day < birth_date.day:
        months -= 1
    elif months < 0 and today.day > birth_date.day:
        months += 1
    return months


def format_age(age_months: Optional[int]) -> str:
    if age_months is None or age_months < 0:
        return ""
    years, months = divmod(age_months, 12)
    return f"{years}y {months}m"


def find_eligible_class(
    birth_date: Optional[date],
    classes: Iterable[SchoolClass],
    today: date,
) -> Optional[SchoolClass]:
    """First class, in the given order, whose age band holds the child and has a free seat.

    None means "cannot admit now" and is not an error. A child without a
    birth date never matches.
    """
    if birth_date is None:
        return None

    age_months = months_between(birth_date, today)
    if age_months < 0:
        return None

    for school_class in classes:
        if school_class.accepts_age(age_months) and school_class.has_capacity:
            return school_class
    return None

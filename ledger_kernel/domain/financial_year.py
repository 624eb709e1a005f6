"""
Indian financial-year calendar (April to March).

    >>> financial_year(date(2024, 3, 31))
    '2023-24'
    >>> financial_year(date(2024, 4, 1))
    '2024-25'
    >>> period_month(date(2025, 1, 10))
    10
"""

from datetime import date


def financial_year(d: date) -> str:
    start = d.year if d.month >= 4 else d.year - 1
    return f"{start}-{(start + 1) % 100:02d}"


def period_month(d: date) -> int:
    """Month number within the financial year: April = 1 ... March = 12."""
    return d.month - 3 if d.month >= 4 else d.month + 9


def financial_year_bounds(label: str) -> tuple[date, date]:
    """Inclusive (start, end) dates of a label such as '2024-25'."""
    start = int(label.split("-", 1)[0])
    return date(start, 4, 1), date(start + 1, 3, 31)

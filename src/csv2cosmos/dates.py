# src/csv2cosmos/dates.py

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum


class DateFormatError(ValueError):
    pass


class DateInputFormat(str, Enum):
    DASHED = "yyyy-MM-dd"
    COMPACT = "yyyyMMdd"
    SLASHED = "yyyy/MM/dd"


class DateOutputMode(str, Enum):
    FULL = "full"
    FULL_WITH_WEEK = "full_with_week"
    YEAR = "year"
    MONTH = "month"
    DAY = "day"
    WEEK = "week"
    YEAR_MONTH = "year_month"
    YEAR_DAY = "year_day"
    YEAR_WEEK = "year_week"
    MONTH_DAY = "month_day"
    MONTH_WEEK = "month_week"
    DAY_WEEK = "day_week"


# (shape, strptime format); the shape keeps strptime from accepting "2020-1-5"
_INPUT_PATTERNS: dict[DateInputFormat, tuple[re.Pattern[str], str]] = {
    DateInputFormat.DASHED: (re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}"), "%Y-%m-%d"),
    DateInputFormat.COMPACT: (re.compile(r"[0-9]{8}"), "%Y%m%d"),
    DateInputFormat.SLASHED: (re.compile(r"[0-9]{4}/[0-9]{2}/[0-9]{2}"), "%Y/%m/%d"),
}


def parse_date(value: str, input_format: DateInputFormat) -> date:
    shape, fmt = _INPUT_PATTERNS[input_format]
    if shape.fullmatch(value):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            pass
    raise DateFormatError(
        f"Invalid date format: {value}. Date not in expected format: {input_format.value}"
    )


def iso_week(d: date) -> int:
    return d.isocalendar()[1]


def format_date(value: str, input_format: DateInputFormat, mode: DateOutputMode) -> str:
    """Parse ``value`` strictly and render it in the requested output mode.

    Week numbers are ISO-8601 and unpadded; year always means the calendar
    year of the date, even where the ISO week belongs to the neighbouring year.
    """
    d = parse_date(value, input_format)
    ww = str(iso_week(d))

    if mode is DateOutputMode.FULL:
        return d.strftime("%Y-%m-%d")
    if mode is DateOutputMode.FULL_WITH_WEEK:
        return f"{d:%m-%d}-{ww}"
    if mode is DateOutputMode.YEAR:
        return d.strftime("%Y")
    if mode is DateOutputMode.MONTH:
        return d.strftime("%m")
    if mode is DateOutputMode.DAY:
        return d.strftime("%d")
    if mode is DateOutputMode.WEEK:
        return ww
    if mode is DateOutputMode.YEAR_MONTH:
        return d.strftime("%Y-%m")
    if mode is DateOutputMode.YEAR_DAY:
        return d.strftime("%Y-%d")
    if mode is DateOutputMode.YEAR_WEEK:
        return f"{d:%Y}{ww}"
    if mode is DateOutputMode.MONTH_DAY:
        return d.strftime("%m-%d")
    if mode is DateOutputMode.MONTH_WEEK:
        return f"{d:%m}{ww}"
    if mode is DateOutputMode.DAY_WEEK:
        return f"{d:%d}{ww}"
    raise ValueError(f"unknown date output mode: {mode!r}")

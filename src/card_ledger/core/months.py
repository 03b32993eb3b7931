from __future__ import annotations

import calendar
import re
from datetime import date
from typing import NamedTuple


class YearMonth(NamedTuple):
    year: int
    month: int

    @classmethod
    def of(cls, value: date) -> YearMonth:
        return cls(value.year, value.month)

    @classmethod
    def parse(cls, value: str) -> YearMonth:
        m = re.fullmatch(r"\s*(\d{4})-(\d{1,2})\s*", value or "")
        if not m:
            raise ValueError(f"Invalid year-month: {value!r}")
        return cls.create(int(m.group(1)), int(m.group(2)))

    @classmethod
    def create(cls, year: int, month: int) -> YearMonth:
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month: {month}")
        return cls(year, month)

    def next(self) -> YearMonth:
        if self.month == 12:
            return YearMonth(self.year + 1, 1)
        return YearMonth(self.year, self.month + 1)

    def prev(self) -> YearMonth:
        if self.month == 1:
            return YearMonth(self.year - 1, 12)
        return YearMonth(self.year, self.month - 1)

    def shift(self, months: int) -> YearMonth:
        index = self.year * 12 + (self.month - 1) + months
        return YearMonth(index // 12, index % 12 + 1)

    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

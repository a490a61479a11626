"""Metrics Worker: Untyped Table Cells.

Log Analytics returns rows of dynamically typed cells. A `Cell` wraps one
value and exposes a coercion per target type. Every coercion returns None
when the value is missing or cannot be converted; none of them raise.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

_FRACTION = re.compile(r"\.(\d+)")


class Cell:
    """One dynamically typed value from a query result row."""

    __slots__ = ("raw",)

    def __init__(self, raw: Any = None):
        self.raw = raw

    def as_str(self) -> Optional[str]:
        if self.raw is None:
            return None
        if isinstance(self.raw, str):
            return self.raw
        try:
            return str(self.raw)
        except Exception:
            return None

    def as_float(self) -> Optional[float]:
        if self.raw is None or isinstance(self.raw, bool):
            return None
        try:
            value = float(self.raw)
        except (TypeError, ValueError, OverflowError):
            return None
        return value if math.isfinite(value) else None

    def as_int(self) -> Optional[int]:
        if self.raw is None or isinstance(self.raw, bool):
            return None
        if isinstance(self.raw, int):
            return self.raw
        try:
            if isinstance(self.raw, str) and self.raw.strip().lstrip("-").isdigit():
                return int(self.raw.strip())
            # Log Analytics serialises long columns from summarize as doubles.
            return int(float(self.raw))
        except (TypeError, ValueError, OverflowError):
            return None

    def as_datetime(self) -> Optional[datetime]:
        """Parse ISO-8601 text or pass through datetimes; naive values are UTC."""
        value = self.raw
        if value is None:
            return None
        if not isinstance(value, datetime):
            if not isinstance(value, str) or not value.strip():
                return None
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            # Log Analytics emits 7 fractional digits; fromisoformat accepts at most 6.
            text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
            try:
                value = datetime.fromisoformat(text)
            except ValueError:
                return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def __repr__(self) -> str:
        return f"Cell({self.raw!r})"


class TableRow:
    """A result row addressable by column name."""

    def __init__(self, columns: Dict[str, int], values: Sequence[Any]):
        self._columns = columns
        self._values = values

    def cell(self, name: str) -> Cell:
        """Return the named cell, or an empty cell for unknown columns."""
        index = self._columns.get(name)
        if index is None or index >= len(self._values):
            return Cell(None)
        return Cell(self._values[index])

    # Shorthands mirroring the coercions
    def get_str(self, name: str) -> Optional[str]:
        return self.cell(name).as_str()

    def get_float(self, name: str) -> Optional[float]:
        return self.cell(name).as_float()

    def get_int(self, name: str) -> Optional[int]:
        return self.cell(name).as_int()

    def get_datetime(self, name: str) -> Optional[datetime]:
        return self.cell(name).as_datetime()


class QueryTable:
    """Primary result table of a Log Analytics query."""

    def __init__(self, columns: List[str], rows: List[Sequence[Any]]):
        self._index = {name: i for i, name in enumerate(columns)}
        self.rows = [TableRow(self._index, row) for row in rows]

    @classmethod
    def from_response(cls, payload: Dict[str, Any]) -> "QueryTable":
        """Build from a `/query` response body (first table only)."""
        tables = payload.get("tables") or []
        if not tables:
            return cls([], [])
        first = tables[0]
        columns = [c.get("name", "") for c in first.get("columns") or []]
        return cls(columns, first.get("rows") or [])

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

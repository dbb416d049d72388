"""Integrity probe result model."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ProbeResult:
    """
    Outcome of probing one database file.

    ``row_counts`` only holds tables that answered ``SELECT COUNT(*)``;
    a critical table missing from it was not queryable (older schema,
    dropped table) and is listed in ``missing_tables`` instead.
    """

    path: str
    table_count: int
    row_counts: dict[str, int] = field(default_factory=dict)
    missing_tables: list[str] = field(default_factory=list)
    foreign_key_violations: int = 0

    @property
    def total_rows(self) -> int:
        return sum(self.row_counts.values())

    def count(self, table: str) -> int | None:
        return self.row_counts.get(table)

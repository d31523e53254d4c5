from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from opsboard.models import LogEntry, LogLevel


@dataclass(frozen=True)
class LogFilter:
    """
    Conjunction of three predicates; an empty set (or empty search) means "no constraint".
    Within a set, membership is OR.
    """

    levels: frozenset[LogLevel] = field(default_factory=frozenset)
    services: frozenset[str] = field(default_factory=frozenset)
    search: str = ""

    @classmethod
    def build(
        cls,
        *,
        levels: Optional[Iterable[LogLevel | str]] = None,
        services: Optional[Iterable[str]] = None,
        search: Optional[str] = None,
    ) -> "LogFilter":
        return cls(
            levels=frozenset(LogLevel(lvl) for lvl in (levels or [])),
            services=frozenset(services or []),
            search=search or "",
        )

    @property
    def is_empty(self) -> bool:
        return not self.levels and not self.services and not self.search

    def matches(self, entry: LogEntry) -> bool:
        if self.levels and entry.level not in self.levels:
            return False
        if self.services and entry.service not in self.services:
            return False
        if self.search and self.search.lower() not in entry.message.lower():
            return False
        return True


def filter_logs(logs: Iterable[LogEntry], flt: LogFilter) -> List[LogEntry]:
    if flt.is_empty:
        return list(logs)
    return [e for e in logs if flt.matches(e)]


def is_near_end(scroll_top: float, client_height: float, scroll_height: float, *, threshold: float = 50) -> bool:
    return scroll_top + client_height >= scroll_height - threshold


@dataclass
class DisplayWindow:
    """
    How many filtered rows the consumer renders. Grows in fixed steps while scrolling,
    never past the filtered total, back to `initial` on any filter change.
    """

    initial: int = 100
    increment: int = 50
    limit: int = -1

    def __post_init__(self) -> None:
        if self.initial < 1 or self.increment < 1:
            raise ValueError("display window sizes must be positive")
        if self.limit < 0:
            self.limit = self.initial

    def size(self, total: int) -> int:
        return max(0, min(self.limit, total))

    def grow(self, total: int) -> bool:
        """
        Returns True if the window actually grew.
        """
        if self.limit >= total:
            return False
        self.limit = min(self.limit + self.increment, total)
        return True

    def reset(self) -> None:
        self.limit = self.initial

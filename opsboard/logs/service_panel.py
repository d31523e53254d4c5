from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Literal, Optional

from opsboard.models import ServiceCategory, ServiceInfo


SortKey = Literal["name", "activity", "count"]
SortDirection = Literal["asc", "desc"]


@dataclass(frozen=True)
class CategoryMeta:
    label: str
    priority: int


CATEGORY_META: Dict[ServiceCategory, CategoryMeta] = {
    ServiceCategory.terminal: CategoryMeta(label="Terminal", priority=1),
    ServiceCategory.dev_server: CategoryMeta(label="Development", priority=2),
    ServiceCategory.api_service: CategoryMeta(label="API Services", priority=3),
    ServiceCategory.build_tool: CategoryMeta(label="Build Tools", priority=4),
    ServiceCategory.test_runner: CategoryMeta(label="Testing", priority=5),
    ServiceCategory.unknown: CategoryMeta(label="Other", priority=6),
}


def _priority(category: ServiceCategory) -> int:
    return CATEGORY_META[category].priority


@dataclass(frozen=True)
class ServicePanelState:
    """
    View state of the service picker next to the log viewer.
    Immutable: every handler returns a new state.
    """

    search: str = ""
    categories: frozenset[ServiceCategory] = field(default_factory=frozenset)
    sort_by: SortKey = "name"
    sort_direction: SortDirection = "asc"
    group_by_category: bool = True
    show_inactive: bool = True

    def with_search(self, text: str) -> "ServicePanelState":
        return replace(self, search=text or "")

    def toggle_category(self, category: ServiceCategory) -> "ServicePanelState":
        cats = set(self.categories)
        if category in cats:
            cats.remove(category)
        else:
            cats.add(category)
        return replace(self, categories=frozenset(cats))

    def sort(self, key: SortKey) -> "ServicePanelState":
        # Re-selecting the active key flips asc -> desc; anything else starts at asc.
        direction: SortDirection = "desc" if (self.sort_by == key and self.sort_direction == "asc") else "asc"
        return replace(self, sort_by=key, sort_direction=direction)

    def clear(self) -> "ServicePanelState":
        return replace(self, search="", categories=frozenset())

    @property
    def has_active_filters(self) -> bool:
        return bool(self.search) or bool(self.categories)


def _sort_value(svc: ServiceInfo, key: SortKey) -> tuple:
    if key == "name":
        return (svc.display_name.lower(),)
    if key == "activity":
        # Most recent first in the natural ("asc") order.
        return (-svc.last_activity.timestamp(),)
    return (-svc.log_count,)


def visible_services(services: Iterable[ServiceInfo], state: ServicePanelState) -> List[ServiceInfo]:
    out = list(services)
    if state.search:
        needle = state.search.lower()
        out = [s for s in out if needle in s.display_name.lower() or needle in s.service_name.lower()]
    if state.categories:
        out = [s for s in out if s.category in state.categories]
    if not state.show_inactive:
        out = [s for s in out if s.is_active]
    out.sort(key=lambda s: _sort_value(s, state.sort_by), reverse=state.sort_direction == "desc")
    return out


def group_services(services: Iterable[ServiceInfo], state: ServicePanelState) -> Dict[str, List[ServiceInfo]]:
    """
    Category value -> services, categories in display priority order.
    Ungrouped panels return everything under "all".
    """
    items = visible_services(services, state)
    if not state.group_by_category:
        return {"all": items}
    grouped: Dict[ServiceCategory, List[ServiceInfo]] = {}
    for svc in items:
        grouped.setdefault(svc.category, []).append(svc)
    return {cat.value: grouped[cat] for cat in sorted(grouped, key=_priority)}


@dataclass(frozen=True)
class CategoryStats:
    category: ServiceCategory
    label: str
    count: int
    log_count: int
    active_count: int


@dataclass(frozen=True)
class PanelStats:
    total: int
    filtered: int
    selected: int
    active: int
    total_log_count: int
    categories: List[CategoryStats]


def panel_stats(
    services: Iterable[ServiceInfo],
    state: ServicePanelState,
    *,
    selected: Optional[Iterable[str]] = None,
) -> PanelStats:
    all_services = list(services)
    present = sorted({s.category for s in all_services}, key=_priority)
    per_category: List[CategoryStats] = []
    for cat in present:
        in_cat = [s for s in all_services if s.category == cat]
        per_category.append(
            CategoryStats(
                category=cat,
                label=CATEGORY_META[cat].label,
                count=len(in_cat),
                log_count=sum(s.log_count for s in in_cat),
                active_count=sum(1 for s in in_cat if s.is_active),
            )
        )
    return PanelStats(
        total=len(all_services),
        filtered=len(visible_services(all_services, state)),
        selected=len(set(selected or [])),
        active=sum(1 for s in all_services if s.is_active),
        total_log_count=sum(s.log_count for s in all_services),
        categories=per_category,
    )

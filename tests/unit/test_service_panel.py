from __future__ import annotations

from datetime import datetime, timedelta, timezone

from opsboard.logs.service_panel import ServicePanelState, group_services, panel_stats, visible_services
from opsboard.logs.services import categorize_service, display_name_for
from opsboard.models import ServiceCategory, ServiceInfo


NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _svc(name: str, count: int, minutes_ago: float, active: bool) -> ServiceInfo:
    return ServiceInfo(
        service_name=name,
        display_name=display_name_for(name),
        category=categorize_service(name),
        log_count=count,
        is_active=active,
        last_activity=NOW - timedelta(minutes=minutes_ago),
    )


SERVICES = [
    _svc("vite-dev-server", 40, 1, True),
    _svc("jest-runner", 5, 50, False),
    _svc("bash", 12, 3, True),
    _svc("foobar", 1, 90, False),
]


def test_default_sort_is_by_display_name() -> None:
    names = [s.display_name for s in visible_services(SERVICES, ServicePanelState())]
    assert names == ["Bash", "Foobar", "Jest Runner", "Vite Dev Server"]


def test_sort_toggles_direction_on_same_key() -> None:
    state = ServicePanelState().sort("count")
    assert (state.sort_by, state.sort_direction) == ("count", "asc")
    assert [s.service_name for s in visible_services(SERVICES, state)][0] == "vite-dev-server"
    state = state.sort("count")
    assert state.sort_direction == "desc"
    assert [s.service_name for s in visible_services(SERVICES, state)][0] == "foobar"
    state = state.sort("activity")
    assert (state.sort_by, state.sort_direction) == ("activity", "asc")
    assert [s.service_name for s in visible_services(SERVICES, state)][0] == "vite-dev-server"


def test_search_category_and_inactive_filters() -> None:
    state = ServicePanelState().with_search("RUNNER")
    assert [s.service_name for s in visible_services(SERVICES, state)] == ["jest-runner"]
    state = ServicePanelState().toggle_category(ServiceCategory.terminal).toggle_category(ServiceCategory.unknown)
    assert {s.service_name for s in visible_services(SERVICES, state)} == {"bash", "foobar"}
    assert state.has_active_filters
    assert not state.clear().has_active_filters
    hidden = ServicePanelState(show_inactive=False)
    assert {s.service_name for s in visible_services(SERVICES, hidden)} == {"vite-dev-server", "bash"}


def test_grouping_follows_category_priority() -> None:
    groups = group_services(SERVICES, ServicePanelState())
    assert list(groups) == ["terminal", "dev-server", "test-runner", "unknown"]
    flat = group_services(SERVICES, ServicePanelState(group_by_category=False))
    assert list(flat) == ["all"] and len(flat["all"]) == 4


def test_panel_stats() -> None:
    stats = panel_stats(SERVICES, ServicePanelState().with_search("e"), selected=["bash", "bash", "foobar"])
    assert stats.total == 4
    assert stats.active == 2
    assert stats.selected == 2
    assert stats.total_log_count == 58
    # "Vite Dev Server" and "Jest Runner" contain an "e"; "Bash" and "Foobar" don't.
    assert stats.filtered == 2
    assert [c.label for c in stats.categories] == ["Terminal", "Development", "Testing", "Other"]

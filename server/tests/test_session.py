import anyio

from codeviz.config import ACTIVITY_FALLBACK_VALUE, DEFAULT_IGNORE_LIST, ROOT_KEY
from codeviz.models import RawNode, ViewConfig
from codeviz.services.reconcile import Reconciler
from codeviz.services.session import ALL_CLEAN_MESSAGE, AppState


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _raw(status: str = "modified") -> RawNode:
    return RawNode.model_validate(
        {
            "name": "root",
            "type": "folder",
            "children": [
                {"name": "src", "type": "folder", "children": [{"name": "app.py", "value": 10, "git_status": status}]},
                {"name": "docs", "type": "folder", "children": [{"name": "a.md", "value": 10}]},
                {"name": "tests", "type": "folder", "children": [{"name": "t.py", "value": 10}]},
            ],
        }
    )


def _state() -> tuple[AppState, FakeClock]:
    clock = FakeClock()
    return AppState(reconciler=Reconciler(clock=clock)), clock


def test_render_without_data_reports_it() -> None:
    state, _ = _state()
    result = anyio.run(state.render, ViewConfig(), 800, 600)

    assert result.message == "No data loaded"
    assert result.plan.enter == []


def test_first_render_enters_every_node() -> None:
    state, _ = _state()
    state.set_raw_data(_raw())

    result = anyio.run(state.render, ViewConfig(), 800, 600)

    assert result.plan.keys("enter") == {ROOT_KEY, "src", "src/app.py", "docs", "docs/a.md", "tests", "tests/t.py"}
    assert result.root_value == 5 + 1 + 1


def test_collapsing_a_folder_exits_its_children() -> None:
    state, clock = _state()
    state.set_raw_data(_raw())
    anyio.run(state.render, ViewConfig(), 800, 600)

    state.toggle("docs")
    clock.now = 5.0
    result = anyio.run(state.render, ViewConfig(), 800, 600)

    assert result.plan.keys("exit") == {"docs/a.md"}
    assert "docs" in result.plan.keys("update")
    assert result.collapsed == ["docs"]


def test_hiding_clean_on_a_clean_tree_clears_the_screen() -> None:
    state, clock = _state()
    state.set_raw_data(_raw(status="clean"))
    anyio.run(state.render, ViewConfig(), 800, 600)
    clock.now = 5.0

    result = anyio.run(state.render, ViewConfig(hide_clean=True), 800, 600)

    assert result.message == ALL_CLEAN_MESSAGE
    assert result.plan.enter == []
    assert ROOT_KEY in result.plan.keys("exit")


def test_focus_uses_the_last_rendered_tree() -> None:
    state, _ = _state()
    state.set_raw_data(_raw())
    assert state.focus("src") is False

    anyio.run(state.render, ViewConfig(), 800, 600)

    assert state.focus("src") is True
    assert list(state.collapsed) == ["docs", "tests"]
    assert state.focus("missing") is False


def test_activity_colour_mode_sizes_by_cached_activity() -> None:
    state, _ = _state()
    state.set_raw_data(_raw())
    calls: list[int] = []

    async def fetch(days: int) -> dict[str, int]:
        calls.append(days)
        return {"src/app.py": 9}

    config = ViewConfig(color_mode="activity", activity_days=14)
    result = anyio.run(lambda: state.render(config, 800, 600, fetch_activity=fetch))
    anyio.run(lambda: state.render(config, 800, 600, fetch_activity=fetch))

    assert calls == [14]
    assert result.root_value == 9 + 2 * ACTIVITY_FALLBACK_VALUE


def test_new_scan_drops_cached_activity() -> None:
    state, _ = _state()
    calls: list[int] = []

    async def fetch(days: int) -> dict[str, int]:
        calls.append(days)
        return {}

    anyio.run(state.activity_for, 7, fetch)
    state.set_raw_data(_raw())
    anyio.run(state.activity_for, 7, fetch)

    assert calls == [7, 7]


def test_ignore_list_management() -> None:
    state, _ = _state()

    assert state.add_ignore("  build ") is True
    assert state.add_ignore("build") is False
    assert state.add_ignore("   ") is False
    assert state.ignore_list[-1] == "build"

    assert state.remove_ignore("build") is True
    assert state.remove_ignore("build") is False

    state.add_ignore("tmp")
    state.reset_ignore()
    assert state.ignore_list == DEFAULT_IGNORE_LIST


def test_select_records_the_view_mode() -> None:
    state, _ = _state()

    state.select(commit="abc", base="none")
    assert (state.view_mode, state.effective_target, state.effective_base) == ("single", "abc", "none")

    state.select(base="v1.0")
    assert (state.view_mode, state.effective_target, state.effective_base) == ("diff", "latest", "v1.0")

    state.select(commit="abc", base="v1.0", start_date="2024-01-01", end_date="2024-01-31")
    assert (state.view_mode, state.effective_target, state.effective_base) == (
        "range",
        "dateRange:2024-01-01:2024-01-31",
        "none",
    )


def test_select_author_and_describe() -> None:
    state, _ = _state()

    assert state.select_author("Ada") == "Ada"
    assert state.select_author("all") is None
    assert state.select_author(None) is None

    state.select_author("Grace")
    state.set_raw_data(_raw())
    state.toggle("docs")
    info = state.describe()

    assert info.selected_author == "Grace"
    assert info.has_data
    assert info.collapsed_folders == ["docs"]
    assert info.ignore_list == list(DEFAULT_IGNORE_LIST)

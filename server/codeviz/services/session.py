import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Literal, Optional

from codeviz.config import DEFAULT_IGNORE_LIST
from codeviz.models import DisplayNode, RawNode, RenderPlan, RenderResult, SessionInfo, ViewConfig
from codeviz.services.collapse import CollapseSet, find_with_parent
from codeviz.services.colors import FillContext
from codeviz.services.layout import partition
from codeviz.services.reconcile import Reconciler, to_render_items
from codeviz.services.transform import filter_node

logger = logging.getLogger(__name__)

ALL_CLEAN_MESSAGE = "All files are clean! (Great job)"

ActivityFetcher = Callable[[int], Awaitable[Dict[str, int]]]


class AppState:
    """
    Everything a viewing session remembers between requests.

    There is one instance per app and every change goes through the methods
    below. Nothing is written to disk.
    """

    def __init__(self, reconciler: Optional[Reconciler] = None) -> None:
        self.collapsed = CollapseSet()
        self.reconciler = reconciler or Reconciler()
        self.raw_data: Optional[RawNode] = None
        self.display_tree: Optional[DisplayNode] = None
        self.ignore_list: List[str] = list(DEFAULT_IGNORE_LIST)
        self.view_mode: Literal["single", "diff", "range"] = "single"
        self.effective_target: str = "latest"
        self.effective_base: str = "none"
        self.selected_author: str = "all"
        self._activity: Dict[int, Dict[str, int]] = {}

    # --- Scan data ---

    def select(
        self,
        commit: Optional[str] = None,
        base: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> None:
        """Record which slice of history the next scan shows."""
        if start_date and end_date:
            self.view_mode = "range"
            self.effective_target = f"dateRange:{start_date}:{end_date}"
            self.effective_base = "none"
        else:
            self.view_mode = "diff" if base and base != "none" else "single"
            self.effective_target = commit or "latest"
            self.effective_base = base or "none"

    def select_author(self, author: Optional[str]) -> Optional[str]:
        """Remember the author filter; returns the author to filter by, or None for all."""
        self.selected_author = author or "all"
        return None if self.selected_author == "all" else self.selected_author

    def describe(self) -> SessionInfo:
        return SessionInfo(
            view_mode=self.view_mode,
            effective_target=self.effective_target,
            effective_base=self.effective_base,
            selected_author=self.selected_author,
            has_data=self.raw_data is not None,
            collapsed_folders=list(self.collapsed),
            ignore_list=list(self.ignore_list),
        )

    def set_raw_data(self, tree: RawNode) -> None:
        self.raw_data = tree
        # Activity counts are relative to "now"; a fresh scan means fresh counts.
        self._activity.clear()

    async def activity_for(self, days: int, fetch: ActivityFetcher) -> Dict[str, int]:
        if days not in self._activity:
            self._activity[days] = await fetch(days)
        return self._activity[days]

    # --- Ignore list ---

    def add_ignore(self, item: str) -> bool:
        item = item.strip()
        if not item or item in self.ignore_list:
            return False
        self.ignore_list.append(item)
        return True

    def remove_ignore(self, item: str) -> bool:
        if item not in self.ignore_list:
            return False
        self.ignore_list.remove(item)
        return True

    def reset_ignore(self) -> None:
        self.ignore_list = list(DEFAULT_IGNORE_LIST)

    # --- Collapse / focus ---

    def toggle(self, path: str) -> bool:
        return self.collapsed.toggle(path)

    def focus(self, path: str) -> bool:
        """
        Focus the folder at ``path`` in the tree that was last rendered.
        Returns False if nothing is rendered at that path.
        """
        if self.display_tree is None:
            return False
        node, parent = find_with_parent(self.display_tree, path)
        if node is None:
            return False
        self.collapsed.focus(node, parent)
        return True

    def clear_collapsed(self) -> None:
        self.collapsed.clear()

    # --- Rendering ---

    async def render(
        self,
        config: ViewConfig,
        width: float,
        height: float,
        fetch_activity: Optional[ActivityFetcher] = None,
        now: Optional[datetime] = None,
    ) -> RenderResult:
        """
        Transform the cached scan with ``config``, lay it out and diff it
        against the previous frame.

        In activity colour mode the files are sized by activity too, so the
        activity map for ``config.activity_days`` is fetched (once per window
        length) before transforming.
        """
        if self.raw_data is None:
            return RenderResult(plan=RenderPlan(), message="No data loaded")

        activity_map: Optional[Dict[str, int]] = config.activity_map
        if config.color_mode == "activity":
            if fetch_activity is not None:
                activity_map = await self.activity_for(config.activity_days, fetch_activity)
            config = config.model_copy(update={"mode": "activity", "activity_map": activity_map or {}})

        tree = filter_node(self.raw_data, None, config, self.collapsed.snapshot())
        self.display_tree = tree

        message = tree.message
        if tree.value == 0 and config.hide_clean:
            # Nothing left to draw: everything on screen fades out.
            message = ALL_CLEAN_MESSAGE
            plan = self.reconciler.reconcile([])
        else:
            ctx = FillContext(
                color_mode=config.color_mode,
                now=now or datetime.now(timezone.utc),
                age_threshold_days=config.age_threshold_days,
                activity_map=activity_map,
            )
            plan = self.reconciler.reconcile(to_render_items(partition(tree, width, height), ctx))

        logger.debug(
            "render: %d enter / %d update / %d exit",
            len(plan.enter),
            len(plan.update),
            len(plan.exit),
        )
        return RenderResult(
            plan=plan,
            message=message,
            root_value=tree.value,
            collapsed=list(self.collapsed),
        )

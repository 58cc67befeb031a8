from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class GitStatus(str, Enum):
    CLEAN = "clean"
    MODIFIED = "modified"
    CREATED = "created"
    DELETED = "deleted"
    UNTRACKED = "untracked"


class NodeType(str, Enum):
    FILE = "file"
    FOLDER = "folder"


def _coerce_status(value: Any) -> GitStatus:
    """Anything the scanners did not label (or labelled oddly) counts as clean."""
    if isinstance(value, GitStatus):
        return value
    try:
        return GitStatus(value)
    except ValueError:
        return GitStatus.CLEAN


class RawNode(BaseModel):
    """
    A node exactly as a scanner produced it.

    Scanners (local git, GitHub) are loose about which fields they fill in, so
    the validators below normalise the shape instead of rejecting it:
    - missing or unknown ``git_status`` -> ``clean``
    - missing ``value`` -> ``1``
    - missing ``type`` -> ``folder`` when the node has children, else ``file``
    - files never carry children
    """

    name: str
    type: NodeType = NodeType.FOLDER
    value: int = 1
    git_status: GitStatus = GitStatus.CLEAN
    git_code: Optional[str] = None
    last_modified: Optional[datetime] = None
    # Only set on the degenerate error tree.
    message: Optional[str] = None
    # Use default_factory to avoid sharing the same list across instances
    children: List["RawNode"] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _infer_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("type") is None:
            data = dict(data)
            data["type"] = NodeType.FOLDER if "children" in data else NodeType.FILE
        return data

    @field_validator("git_status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> GitStatus:
        return _coerce_status(value)

    @field_validator("value", mode="before")
    @classmethod
    def _default_value(cls, value: Any) -> Any:
        if value is None:
            return 1
        if isinstance(value, float):
            return int(value)
        return value

    @model_validator(mode="after")
    def _files_have_no_children(self) -> "RawNode":
        if self.type == NodeType.FILE and self.children:
            self.children = []
        return self


class DisplayNode(BaseModel):
    """A node after the view transform. Built fresh on every render, never mutated."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    type: NodeType
    value: int
    git_status: GitStatus = GitStatus.CLEAN
    git_code: Optional[str] = None
    last_modified: Optional[datetime] = None
    message: Optional[str] = None
    path: str
    aggregate_status: GitStatus = Field(default=GitStatus.CLEAN, alias="aggregateStatus")
    collapsed_status: Optional[GitStatus] = Field(default=None, alias="collapsedStatus")
    children: List["DisplayNode"] = Field(default_factory=list)

    @property
    def is_folder(self) -> bool:
        return self.type == NodeType.FOLDER

    @property
    def is_collapsed(self) -> bool:
        return self.collapsed_status is not None


class ViewConfig(BaseModel):
    """Per-render view options. Nothing here is persisted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mode: str = "count"
    hide_clean: bool = False
    show_unstaged: bool = True
    collapse_clean: bool = False
    sort_mode: Literal["alpha", "size"] = "alpha"
    folders_first: bool = True
    activity_map: Optional[Dict[str, int]] = None
    # Colouring only; the transform ignores these.
    color_mode: Literal["git", "age", "activity"] = "git"
    age_threshold_days: int = Field(default=30, ge=1)
    activity_days: int = Field(default=30, ge=1)


class RenderRequest(ViewConfig):
    width: float = Field(default=1200, gt=0)
    height: float = Field(default=800, gt=0)


class PathBody(BaseModel):
    path: str


class IgnoreListBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ignore_list: Optional[List[str]] = Field(default=None, alias="ignoreList")


class IgnoreItemBody(BaseModel):
    item: str


class Commit(BaseModel):
    hash: str
    msg: str
    author: str
    date: str


class FileStat(BaseModel):
    file: str
    added: int = 0
    removed: int = 0
    status: Optional[str] = None


class SessionInfo(BaseModel):
    """What the session is currently showing, for a client that reconnects."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    view_mode: Literal["single", "diff", "range"]
    effective_target: str
    effective_base: str
    selected_author: str
    has_data: bool
    collapsed_folders: List[str] = Field(default_factory=list)
    ignore_list: List[str] = Field(default_factory=list)


class RenderItem(BaseModel):
    """Visual attributes of one rectangle at rest."""

    key: str
    path: str
    name: str
    type: NodeType
    x0: float
    y0: float
    x1: float
    y1: float
    fill: str
    opacity: float = 1.0
    label_visible: bool = False
    label_rotated: bool = False

    @property
    def width(self) -> float:
        return max(0.0, self.x1 - self.x0)

    @property
    def height(self) -> float:
        return max(0.0, self.y1 - self.y0)


class RenderOp(BaseModel):
    kind: Literal["enter", "update", "exit"]
    key: str
    start: RenderItem
    end: RenderItem
    duration_ms: int
    ease: str
    # True when this op replaced a transition that was still running.
    interrupted: bool = False


class RenderPlan(BaseModel):
    enter: List[RenderOp] = Field(default_factory=list)
    update: List[RenderOp] = Field(default_factory=list)
    exit: List[RenderOp] = Field(default_factory=list)

    def keys(self, kind: str) -> set[str]:
        return {op.key for op in getattr(self, kind)}


class RenderResult(BaseModel):
    plan: RenderPlan
    message: Optional[str] = None
    root_value: int = 0
    collapsed: List[str] = Field(default_factory=list)


def error_tree(message: str) -> RawNode:
    """The renderable stand-in returned whenever a scan fails."""
    return RawNode(name="error", type=NodeType.FOLDER, value=0, children=[], message=message)

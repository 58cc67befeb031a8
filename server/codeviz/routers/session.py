import logging
from functools import partial
from typing import Dict, List

import anyio
from fastapi import APIRouter, Depends, HTTPException

from codeviz.dependencies import get_provider, get_session
from codeviz.models import IgnoreItemBody, PathBody, RenderRequest, RenderResult, SessionInfo, ViewConfig
from codeviz.services.git_scan import LocalGitProvider, ScanError
from codeviz.services.session import AppState
from codeviz.services.sizing import UnknownSizingModeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])


def _collapse_state(session: AppState) -> Dict[str, List[str]]:
    return {"collapsedFolders": list(session.collapsed)}


@router.get("", response_model=SessionInfo)
async def get_session_info(session: AppState = Depends(get_session)):
    """The current selection (view mode, target, base, author), collapse state and ignore list."""
    return session.describe()


@router.post("/render", response_model=RenderResult)
async def render(
    request: RenderRequest,
    provider: LocalGitProvider = Depends(get_provider),
    session: AppState = Depends(get_session),
):
    """
    Transform the last scan with the given view options and return the
    enter/update/exit operations needed to move the treemap to the new frame.
    """

    async def fetch_activity(days: int) -> Dict[str, int]:
        try:
            return await anyio.to_thread.run_sync(partial(provider.activity, days))
        except ScanError as exc:
            logger.warning("Activity unavailable, sizing every file at the fallback: %s", exc)
            return {}

    config = ViewConfig.model_validate(request.model_dump(exclude={"width", "height"}))
    try:
        return await session.render(config, request.width, request.height, fetch_activity=fetch_activity)
    except UnknownSizingModeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/collapsed")
async def get_collapsed(session: AppState = Depends(get_session)):
    return _collapse_state(session)


@router.post("/collapse/toggle")
async def toggle_collapse(body: PathBody, session: AppState = Depends(get_session)):
    collapsed = session.toggle(body.path)
    return {"path": body.path, "collapsed": collapsed, **_collapse_state(session)}


@router.post("/collapse/focus")
async def focus_folder(body: PathBody, session: AppState = Depends(get_session)):
    """Collapse the sibling folders of ``path`` and expand it."""
    if not session.focus(body.path):
        raise HTTPException(status_code=404, detail="Path is not in the rendered tree")
    return _collapse_state(session)


@router.post("/collapse/clear")
async def clear_collapsed(session: AppState = Depends(get_session)):
    session.clear_collapsed()
    return _collapse_state(session)


@router.get("/ignore", response_model=List[str])
async def get_ignore_list(session: AppState = Depends(get_session)):
    return session.ignore_list


@router.post("/ignore", response_model=List[str])
async def add_ignore(body: IgnoreItemBody, session: AppState = Depends(get_session)):
    if not session.add_ignore(body.item):
        raise HTTPException(status_code=400, detail="Item is empty or already ignored")
    return session.ignore_list


@router.delete("/ignore/{item}", response_model=List[str])
async def remove_ignore(item: str, session: AppState = Depends(get_session)):
    if not session.remove_ignore(item):
        raise HTTPException(status_code=404, detail="Item is not in the ignore list")
    return session.ignore_list


@router.post("/ignore/reset", response_model=List[str])
async def reset_ignore(session: AppState = Depends(get_session)):
    session.reset_ignore()
    return session.ignore_list

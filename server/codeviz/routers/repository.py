import logging
from functools import partial
from typing import Dict, List, Optional

import anyio
from fastapi import APIRouter, Depends, Query

from codeviz.dependencies import check_date_range, get_provider, get_session
from codeviz.models import Commit, FileStat, IgnoreListBody, RawNode, error_tree
from codeviz.services.git_scan import LocalGitProvider, ScanError
from codeviz.services.session import AppState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["repository"])

# Git runs in a worker thread; session state is only touched back on the event loop.


@router.get("/commits", response_model=List[Commit])
async def get_commits(
    author: Optional[str] = None,
    provider: LocalGitProvider = Depends(get_provider),
    session: AppState = Depends(get_session),
):
    """The most recent commits, optionally limited to one author."""
    author_filter = session.select_author(author)
    try:
        return await anyio.to_thread.run_sync(partial(provider.commits, author=author_filter))
    except ScanError as exc:
        logger.warning("Failed to list commits: %s", exc)
        return []


@router.get("/authors", response_model=List[str])
async def get_authors(provider: LocalGitProvider = Depends(get_provider)):
    try:
        return await anyio.to_thread.run_sync(provider.authors)
    except ScanError as exc:
        logger.warning("Failed to list authors: %s", exc)
        return []


@router.post("/data", response_model=RawNode, response_model_exclude_none=True)
async def get_data(
    body: Optional[IgnoreListBody] = None,
    commit: Optional[str] = None,
    base: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    provider: LocalGitProvider = Depends(get_provider),
    session: AppState = Depends(get_session),
):
    """
    Scan the repository: the live working tree, one commit, a diff against
    ``base``, or everything touched between two dates.

    Scan failures come back as a renderable ``error`` tree, not an HTTP error.
    """
    check_date_range(start_date, end_date)
    ignore = body.ignore_list if body and body.ignore_list is not None else list(session.ignore_list)
    session.select(commit, base, start_date, end_date)

    scan = partial(
        provider.scan,
        commit=commit,
        base=base,
        start_date=start_date,
        end_date=end_date,
        ignore=ignore,
    )
    try:
        tree = await anyio.to_thread.run_sync(scan)
    except ScanError as exc:
        logger.error("Error scanning repository: %s", exc)
        tree = error_tree(str(exc))

    session.set_raw_data(tree)
    return tree


@router.get("/activity", response_model=Dict[str, int])
async def get_activity(
    days: int = Query(30, ge=1),
    provider: LocalGitProvider = Depends(get_provider),
):
    """Commits per file over the trailing ``days`` days."""
    try:
        return await anyio.to_thread.run_sync(provider.activity, days)
    except ScanError as exc:
        logger.warning("Failed to compute activity: %s", exc)
        return {}


@router.get("/file-stats", response_model=List[FileStat], response_model_exclude_none=True)
async def get_file_stats(
    commit: Optional[str] = None,
    base: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    provider: LocalGitProvider = Depends(get_provider),
):
    check_date_range(start_date, end_date)
    stats = partial(provider.file_stats, commit=commit, base=base, start_date=start_date, end_date=end_date)
    try:
        return await anyio.to_thread.run_sync(stats)
    except ScanError as exc:
        logger.warning("Failed to compute file stats: %s", exc)
        return []

import logging
from dataclasses import replace
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from codeviz.dependencies import check_date_range, get_session
from codeviz.models import Commit, FileStat, IgnoreListBody, RawNode, error_tree
from codeviz.services.github import GitHubClient, GitHubError, GitHubProvider, parse_repo_url
from codeviz.services.session import AppState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/github", tags=["github"])


def get_github_client(request: Request) -> GitHubClient:
    # One client per app so its response cache survives between requests.
    client = getattr(request.app.state, "github_client", None)
    if client is None:
        client = GitHubClient()
        request.app.state.github_client = client
    return client


def get_github_provider(
    repo: str = Query(..., description="owner/repo or a github.com URL"),
    branch: Optional[str] = None,
    client: GitHubClient = Depends(get_github_client),
) -> GitHubProvider:
    try:
        ref = parse_repo_url(repo)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if branch:
        ref = replace(ref, branch=branch)
    return GitHubProvider(client, ref)


@router.get("/branches", response_model=List[str])
async def get_branches(provider: GitHubProvider = Depends(get_github_provider)):
    try:
        return await provider.branches()
    except GitHubError as exc:
        logger.warning("Failed to list branches: %s", exc)
        return []


@router.get("/commits", response_model=List[Commit])
async def get_commits(
    author: Optional[str] = None,
    provider: GitHubProvider = Depends(get_github_provider),
    session: AppState = Depends(get_session),
):
    try:
        return await provider.commits(author=session.select_author(author))
    except GitHubError as exc:
        logger.warning("Failed to list commits: %s", exc)
        return []


@router.post("/data", response_model=RawNode, response_model_exclude_none=True)
async def get_data(
    body: Optional[IgnoreListBody] = None,
    commit: Optional[str] = None,
    base: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    provider: GitHubProvider = Depends(get_github_provider),
    session: AppState = Depends(get_session),
):
    """Same contract as ``POST /api/data``, backed by the GitHub API."""
    check_date_range(start_date, end_date)
    ignore = body.ignore_list if body and body.ignore_list is not None else list(session.ignore_list)
    session.select(commit, base, start_date, end_date)
    try:
        tree = await provider.scan(
            commit=commit,
            base=base,
            start_date=start_date,
            end_date=end_date,
            ignore=ignore,
        )
    except GitHubError as exc:
        logger.error("Error fetching GitHub data: %s", exc)
        tree = error_tree(str(exc))

    session.set_raw_data(tree)
    return tree


@router.get("/file-stats", response_model=List[FileStat], response_model_exclude_none=True)
async def get_file_stats(
    commit: Optional[str] = None,
    base: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    provider: GitHubProvider = Depends(get_github_provider),
):
    check_date_range(start_date, end_date)
    try:
        return await provider.file_stats(commit=commit, base=base, start_date=start_date, end_date=end_date)
    except GitHubError as exc:
        logger.warning("Failed to fetch GitHub file stats: %s", exc)
        return []

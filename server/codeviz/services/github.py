import logging
import re
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from codeviz.config import COMMIT_HISTORY_LIMIT, DEFAULT_IGNORE_LIST, GITHUB_API_URL, GITHUB_TOKEN
from codeviz.models import Commit, FileStat, GitStatus, RawNode, error_tree
from codeviz.services.git_scan import ScanError, build_tree, merge_status

logger = logging.getLogger(__name__)

GITHUB_CODE = "GH"

_URL_PATTERNS = (
    re.compile(r"github\.com/([^/]+)/([^/]+)/tree/([^/]+)"),
    re.compile(r"github\.com/([^/]+)/([^/]+?)(?:\.git)?/?$"),
)
_SHORT_PATTERN = re.compile(r"^([^/\s]+)/([^/\s]+)$")


class GitHubError(ScanError):
    pass


# What a response missing or mistyping the fields we read raises.
_SHAPE_ERRORS = (AttributeError, KeyError, TypeError, ValidationError)


def _unexpected_shape(exc: Exception) -> GitHubError:
    return GitHubError(f"Unexpected GitHub API response: {type(exc).__name__} {exc}")


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str
    branch: Optional[str] = None


def parse_repo_url(url: str) -> RepoRef:
    """
    Accept ``https://github.com/owner/repo(.git)``, ``.../tree/<branch>`` or
    plain ``owner/repo``.
    """
    url = url.strip()
    for pattern in _URL_PATTERNS:
        match = pattern.search(url)
        if match:
            groups = match.groups()
            branch = groups[2] if len(groups) > 2 else None
            return RepoRef(owner=groups[0], repo=groups[1].removesuffix(".git"), branch=branch)

    match = _SHORT_PATTERN.match(url)
    if match:
        return RepoRef(owner=match.group(1), repo=match.group(2).removesuffix(".git"))

    raise ValueError(f"Invalid GitHub repository URL: {url}")


def github_file_status(status: str) -> GitStatus:
    if status in ("modified", "renamed", "changed"):
        return GitStatus.MODIFIED
    if status in ("added", "copied"):
        return GitStatus.CREATED
    if status == "removed":
        return GitStatus.DELETED
    return GitStatus.CLEAN


def build_tree_from_github(
    tree: Dict[str, Any],
    statuses: Optional[Dict[str, GitStatus]] = None,
    ignore: Iterable[str] = (),
) -> RawNode:
    """Turn a recursive ``git/trees`` response into a scan tree."""
    blobs = sorted(
        (item for item in tree.get("tree", []) if item.get("type") == "blob"),
        key=lambda item: item["path"],
    )
    entries = [(item["path"], item.get("size") or 1) for item in blobs]
    return build_tree(entries, statuses or {}, GITHUB_CODE, ignore)


class GitHubClient:
    """Thin async wrapper over the REST API with a per-instance response cache."""

    def __init__(
        self,
        token: Optional[str] = GITHUB_TOKEN,
        base_url: str = GITHUB_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if token:
            headers["Authorization"] = f"token {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=30.0,
            transport=transport,
        )
        self._cache: Dict[str, Any] = {}

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_json(self, path: str, params: Optional[Dict[str, str]] = None, cache_key: Optional[str] = None) -> Any:
        if cache_key and cache_key in self._cache:
            return self._cache[cache_key]

        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise GitHubError(f"GitHub API request failed: {exc}") from exc

        if response.is_error:
            try:
                message = response.json().get("message", response.reason_phrase)
            except ValueError:
                message = response.reason_phrase
            raise GitHubError(f"GitHub API Error: {message}")

        try:
            data = response.json()
        except ValueError as exc:
            raise GitHubError(f"GitHub API returned invalid JSON for {path}") from exc
        if cache_key:
            self._cache[cache_key] = data
        return data

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self.get_json(f"/repos/{owner}/{repo}", cache_key=f"repo:{owner}/{repo}")

    async def get_branches(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        return await self.get_json(f"/repos/{owner}/{repo}/branches")

    async def get_default_branch(self, owner: str, repo: str) -> str:
        return (await self.get_repository(owner, repo))["default_branch"]

    async def get_tree(self, owner: str, repo: str, ref: Optional[str] = None) -> Dict[str, Any]:
        ref = ref or await self.get_default_branch(owner, repo)
        return await self.get_json(
            f"/repos/{owner}/{repo}/git/trees/{ref}",
            params={"recursive": "1"},
            cache_key=f"tree:{owner}/{repo}:{ref}",
        )

    async def get_commits(
        self,
        owner: str,
        repo: str,
        branch: Optional[str] = None,
        limit: int = COMMIT_HISTORY_LIMIT,
        since: Optional[str] = None,
        until: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = {"per_page": str(limit)}
        if branch:
            params["sha"] = branch
        if since:
            params["since"] = since
        if until:
            params["until"] = until
        return await self.get_json(f"/repos/{owner}/{repo}/commits", params=params)

    async def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return await self.get_json(f"/repos/{owner}/{repo}/commits/{sha}", cache_key=f"commit:{owner}/{repo}:{sha}")

    async def compare_commits(self, owner: str, repo: str, base: str, head: str) -> Dict[str, Any]:
        return await self.get_json(f"/repos/{owner}/{repo}/compare/{base}...{head}")

    async def get_commits_between_dates(
        self, owner: str, repo: str, start_date: str, end_date: str, branch: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        start = datetime.combine(datetime.strptime(start_date, "%Y-%m-%d").date(), time.min, tzinfo=timezone.utc)
        end = datetime.combine(datetime.strptime(end_date, "%Y-%m-%d").date(), time.max, tzinfo=timezone.utc)
        return await self.get_commits(
            owner,
            repo,
            branch,
            limit=100,
            since=start.isoformat(),
            until=end.isoformat(),
        )

    async def commit_changes(self, owner: str, repo: str, sha: str) -> Dict[str, GitStatus]:
        commit = await self.get_commit(owner, repo, sha)
        return {f["filename"]: github_file_status(f.get("status", "")) for f in commit.get("files", [])}

    async def commit_stats(self, owner: str, repo: str, sha: str) -> List[FileStat]:
        commit = await self.get_commit(owner, repo, sha)
        return [
            FileStat(
                file=f["filename"],
                added=f.get("additions", 0),
                removed=f.get("deletions", 0),
                status=f.get("status"),
            )
            for f in commit.get("files", [])
        ]


class GitHubProvider:
    """The same queries as the local provider, answered by a hosted repository."""

    def __init__(self, client: GitHubClient, ref: RepoRef) -> None:
        self.client = client
        self.ref = ref

    async def _tree_for_commit(self, sha: str) -> Dict[str, Any]:
        commit = await self.client.get_commit(self.ref.owner, self.ref.repo, sha)
        return await self.client.get_tree(self.ref.owner, self.ref.repo, commit["commit"]["tree"]["sha"])

    async def scan(
        self,
        commit: Optional[str] = None,
        base: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        ignore: Iterable[str] = DEFAULT_IGNORE_LIST,
    ) -> RawNode:
        """
        Build the tree for a selection: a date range, a comparison against
        ``base``, one commit, or the head of the branch.

        Raises ``GitHubError`` for failed requests and for responses missing
        the fields the tree is built from.
        """
        try:
            return await self._scan(commit, base, start_date, end_date, ignore)
        except _SHAPE_ERRORS as exc:
            raise _unexpected_shape(exc) from exc

    async def _scan(
        self,
        commit: Optional[str],
        base: Optional[str],
        start_date: Optional[str],
        end_date: Optional[str],
        ignore: Iterable[str],
    ) -> RawNode:
        owner, repo = self.ref.owner, self.ref.repo
        ignore = list(ignore)

        if start_date and end_date:
            commits = await self.client.get_commits_between_dates(owner, repo, start_date, end_date, self.ref.branch)
            if not commits:
                return error_tree(f"No commits found between {start_date} and {end_date}")
            statuses: Dict[str, GitStatus] = {}
            for item in commits:
                for path, status in (await self.client.commit_changes(owner, repo, item["sha"])).items():
                    statuses[path] = merge_status(statuses.get(path), status)
            tree = await self._tree_for_commit(commits[0]["sha"])
            return build_tree_from_github(tree, statuses, ignore)

        head = commit if commit and commit != "latest" else None
        if base and base != "none":
            head = head or self.ref.branch or await self.client.get_default_branch(owner, repo)
            comparison = await self.client.compare_commits(owner, repo, base, head)
            statuses = {f["filename"]: github_file_status(f.get("status", "")) for f in comparison.get("files", [])}
            return build_tree_from_github(await self._tree_for_commit(head), statuses, ignore)

        if head:
            statuses = await self.client.commit_changes(owner, repo, head)
            return build_tree_from_github(await self._tree_for_commit(head), statuses, ignore)

        tree = await self.client.get_tree(owner, repo, self.ref.branch)
        return build_tree_from_github(tree, {}, ignore)

    async def commits(self, limit: int = COMMIT_HISTORY_LIMIT, author: Optional[str] = None) -> List[Commit]:
        try:
            return await self._commits(limit, author)
        except _SHAPE_ERRORS as exc:
            raise _unexpected_shape(exc) from exc

    async def _commits(self, limit: int, author: Optional[str]) -> List[Commit]:
        raw = await self.client.get_commits(self.ref.owner, self.ref.repo, self.ref.branch, limit)
        commits = [
            Commit(
                hash=item["sha"][:7],
                msg=item["commit"]["message"].split("\n")[0],
                author=item["commit"]["author"]["name"],
                date=item["commit"]["author"]["date"],
            )
            for item in raw
        ]
        if author:
            commits = [c for c in commits if c.author == author]
        return commits

    async def branches(self) -> List[str]:
        try:
            return [b["name"] for b in await self.client.get_branches(self.ref.owner, self.ref.repo)]
        except _SHAPE_ERRORS as exc:
            raise _unexpected_shape(exc) from exc

    async def file_stats(
        self,
        commit: Optional[str] = None,
        base: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[FileStat]:
        try:
            return await self._file_stats(commit, base, start_date, end_date)
        except _SHAPE_ERRORS as exc:
            raise _unexpected_shape(exc) from exc

    async def _file_stats(
        self,
        commit: Optional[str],
        base: Optional[str],
        start_date: Optional[str],
        end_date: Optional[str],
    ) -> List[FileStat]:
        owner, repo = self.ref.owner, self.ref.repo

        if start_date and end_date:
            merged: Dict[str, FileStat] = {}
            commits = await self.client.get_commits_between_dates(owner, repo, start_date, end_date, self.ref.branch)
            for item in commits:
                for stat in await self.client.commit_stats(owner, repo, item["sha"]):
                    if stat.file in merged:
                        merged[stat.file].added += stat.added
                        merged[stat.file].removed += stat.removed
                    else:
                        merged[stat.file] = stat
            return list(merged.values())

        if base and base != "none":
            head = commit if commit and commit != "latest" else (
                self.ref.branch or await self.client.get_default_branch(owner, repo)
            )
            comparison = await self.client.compare_commits(owner, repo, base, head)
            return [
                FileStat(file=f["filename"], added=f.get("additions", 0), removed=f.get("deletions", 0), status=f.get("status"))
                for f in comparison.get("files", [])
            ]

        if not commit or commit == "latest":
            latest = await self.client.get_commits(owner, repo, self.ref.branch, limit=1)
            if not latest:
                return []
            commit = latest[0]["sha"]
        return await self.client.commit_stats(owner, repo, commit)

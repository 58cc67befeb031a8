import logging
import os
import subprocess
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from pathspec import PathSpec

from codeviz.config import COMMIT_HISTORY_LIMIT, DEFAULT_IGNORE_LIST
from codeviz.models import Commit, FileStat, GitStatus, NodeType, RawNode, error_tree

logger = logging.getLogger(__name__)

# Synthetic status code for files whose status came from history, not the index.
COMMITTED_CODE = "C "
CLEAN_CODE = "  "

# When several commits in a range touch a file, the strongest status wins.
STATUS_PRIORITY: Dict[GitStatus, int] = {
    GitStatus.CLEAN: 0,
    GitStatus.MODIFIED: 1,
    GitStatus.CREATED: 2,
    GitStatus.DELETED: 3,
}

_FIELD_SEP = "\x1f"

StatusMap = Dict[str, Tuple[GitStatus, str]]


class ScanError(Exception):
    """A data source could not produce a tree (git failure, network, bad repo)."""


class GitCommandError(ScanError):
    pass


def find_repo_root(start_path: Path) -> Path:
    current = start_path.resolve()
    for parent in [current, *current.parents]:
        if (parent / ".git").exists():
            return parent
    return current


def run_git(repo: Path, args: List[str]) -> str:
    # quotePath=false keeps non-ASCII paths readable instead of octal-escaped.
    cmd = ["git", "-c", "core.quotePath=false", *args]
    try:
        result = subprocess.run(
            cmd,
            cwd=repo,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=True,
        )
    except FileNotFoundError as exc:
        raise GitCommandError("git executable not found") from exc
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or f"exit code {exc.returncode}"
        raise GitCommandError(f"git {' '.join(args)} failed: {detail}") from exc
    return result.stdout


# --- Status parsing ---------------------------------------------------------

def classify_porcelain_code(code: str) -> GitStatus:
    if code == "??":
        return GitStatus.UNTRACKED
    if "M" in code or "R" in code:
        return GitStatus.MODIFIED
    if "A" in code:
        return GitStatus.CREATED
    if "D" in code:
        return GitStatus.DELETED
    return GitStatus.CLEAN


def _unquote(path: str) -> str:
    if len(path) >= 2 and path[0] == path[-1] == '"':
        return path[1:-1]
    return path


def parse_status_porcelain(output: str) -> StatusMap:
    """
    Parse ``git status --porcelain`` into ``{path: (status, two-char code)}``.

    Renames are recorded under their new path.
    """
    status_map: StatusMap = {}
    for line in output.splitlines():
        if len(line) < 4:
            continue
        code = line[:2]
        path = line[3:].strip()
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        status_map[_unquote(path)] = (classify_porcelain_code(code), code)
    return status_map


def classify_name_status(letter: str) -> GitStatus:
    if letter in ("M", "R", "T"):
        return GitStatus.MODIFIED
    if letter in ("A", "C"):
        return GitStatus.CREATED
    if letter == "D":
        return GitStatus.DELETED
    return GitStatus.CLEAN


def merge_status(current: Optional[GitStatus], incoming: GitStatus) -> GitStatus:
    if current is None or STATUS_PRIORITY.get(incoming, 0) > STATUS_PRIORITY.get(current, 0):
        return incoming
    return current


def parse_name_status(output: str) -> Dict[str, GitStatus]:
    """
    Parse ``--name-status`` output (from show, diff or log) into ``{path: status}``.

    Paths listed more than once, as happens across a log range, keep the
    highest-priority status: deleted > created > modified > clean.
    """
    statuses: Dict[str, GitStatus] = {}
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 2 or not parts[0]:
            continue
        status = classify_name_status(parts[0][0])
        path = _unquote(parts[-1])
        statuses[path] = merge_status(statuses.get(path), status)
    return statuses


def parse_numstat(output: str) -> List[FileStat]:
    """Parse ``--numstat`` lines, summing repeated files in first-seen order."""
    stats: Dict[str, FileStat] = {}
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        added, removed, path = parts[0], parts[1], _unquote(parts[2])
        # Binary files report "-" for both counts.
        added_n = int(added) if added.isdigit() else 0
        removed_n = int(removed) if removed.isdigit() else 0
        if path in stats:
            stats[path].added += added_n
            stats[path].removed += removed_n
        else:
            stats[path] = FileStat(file=path, added=added_n, removed=removed_n)
    return list(stats.values())


def git_status_map(repo: Path) -> StatusMap:
    try:
        return parse_status_porcelain(run_git(repo, ["status", "--porcelain", "-uall"]))
    except GitCommandError as exc:
        logger.warning("git status unavailable for %s: %s", repo, exc)
        return {}


# --- .gitignore -------------------------------------------------------------

def _translate_gitignore_pattern(raw_line: str, base_rel: str) -> str | None:
    """
    Rewrite one line of a nested .gitignore into a repo-root-relative pattern.

    Negations (``!``) and anchoring (leading ``/``) are kept; patterns without
    a slash apply anywhere below the .gitignore's directory.
    """
    line = raw_line.rstrip("\n")
    if not line or line.lstrip().startswith("#"):
        return None

    negated = line.startswith("!")
    body = line[1:] if negated else line
    body = body.lstrip("/")
    prefix = f"{base_rel}/" if base_rel else ""

    if "/" in body.rstrip("/"):
        pattern = prefix + body
    elif base_rel:
        pattern = f"{base_rel}/**/{body}"
    else:
        pattern = f"**/{body}"

    return f"!{pattern}" if negated else pattern


def load_gitignore_spec(repo_root: Path, ignore: Iterable[str] = ()) -> PathSpec | None:
    ignore_names = set(ignore) | {".git"}
    patterns: list[str] = []

    for dirpath, dirnames, filenames in os.walk(repo_root):
        dirnames[:] = [d for d in dirnames if d not in ignore_names]
        if ".gitignore" not in filenames:
            continue

        base = Path(dirpath)
        base_rel = base.relative_to(repo_root).as_posix() if base != repo_root else ""
        try:
            with open(base / ".gitignore", "r", encoding="utf-8", errors="replace") as f:
                for raw in f:
                    translated = _translate_gitignore_pattern(raw, base_rel)
                    if translated is not None:
                        patterns.append(translated)
        except OSError as exc:
            logger.warning("Could not read %s/.gitignore: %s", base, exc)

    if not patterns:
        return None
    return PathSpec.from_lines("gitwildmatch", patterns)


# --- Tree building ----------------------------------------------------------

def build_tree(
    entries: Iterable[Tuple[str, int]],
    statuses: Dict[str, GitStatus],
    git_code: str,
    ignore: Iterable[str] = (),
) -> RawNode:
    """
    Assemble a folder tree from flat ``(path, size)`` entries.

    Used for every history-backed scan (a commit, a diff, a date range, a
    GitHub listing). Entries with an ignored path segment are skipped, and a
    zero-byte file still weighs 1 so it can be drawn.
    """
    ignore_names = set(ignore)
    root: Dict = {"name": "root", "type": NodeType.FOLDER, "children": [], "_index": {}}

    for path, size in entries:
        parts = path.split("/")
        if any(part in ignore_names for part in parts):
            continue

        current = root
        for folder_name in parts[:-1]:
            folder = current["_index"].get(folder_name)
            if folder is None:
                folder = {"name": folder_name, "type": NodeType.FOLDER, "children": [], "_index": {}}
                current["_index"][folder_name] = folder
                current["children"].append(folder)
            current = folder

        current["children"].append(
            {
                "name": parts[-1],
                "type": NodeType.FILE,
                "value": size or 1,
                "git_status": statuses.get(path, GitStatus.CLEAN),
                "git_code": git_code,
            }
        )

    def finish(node: Dict) -> RawNode:
        if node["type"] == NodeType.FILE:
            return RawNode(**node)
        children = [finish(child) for child in node["children"]]
        return RawNode(
            name=node["name"],
            type=NodeType.FOLDER,
            value=sum(child.value for child in children),
            children=children,
        )

    return finish(root)


def _scan_dir(
    directory: Path,
    name: str,
    repo_root: Path,
    ignore_names: set[str],
    spec: PathSpec | None,
    status_map: StatusMap,
    default_code: str,
) -> RawNode:
    children: List[RawNode] = []

    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name)
    except OSError:
        return RawNode(name=name, type=NodeType.FOLDER, value=0, children=[])

    for entry in entries:
        if entry.name in ignore_names:
            continue
        path = Path(entry.path)
        rel = path.relative_to(repo_root).as_posix()
        try:
            if entry.is_dir(follow_symlinks=False):
                if spec is not None and spec.match_file(rel + "/"):
                    continue
                child = _scan_dir(path, entry.name, repo_root, ignore_names, spec, status_map, default_code)
                # Empty (or fully ignored) folders are left out.
                if child.value > 0:
                    children.append(child)
            elif entry.is_file():
                if spec is not None and spec.match_file(rel) and rel not in status_map:
                    continue
                stat = entry.stat()
                status, code = status_map.get(rel, (GitStatus.CLEAN, default_code))
                children.append(
                    RawNode(
                        name=entry.name,
                        type=NodeType.FILE,
                        value=stat.st_size or 1,
                        git_status=status,
                        git_code=code,
                        last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    )
                )
        except OSError:
            # Permission errors and files vanishing mid-scan are skipped.
            continue

    return RawNode(
        name=name,
        type=NodeType.FOLDER,
        value=sum(child.value for child in children),
        children=children,
    )


def scan_working_tree(
    root: Path,
    ignore: Iterable[str] = DEFAULT_IGNORE_LIST,
    status_map: Optional[StatusMap] = None,
    default_code: str = CLEAN_CODE,
) -> RawNode:
    """
    Walk the live working tree. File values are byte sizes and statuses come
    from ``git status`` unless a ``status_map`` is supplied.
    """
    root = root.resolve()
    repo_root = find_repo_root(root)
    print(f"🔍 Scanning working tree: {root}", flush=True)

    if status_map is None:
        status_map = git_status_map(repo_root)
    ignore_names = set(ignore)
    spec = load_gitignore_spec(repo_root, ignore_names)

    tree = _scan_dir(root, "root", repo_root, ignore_names, spec, status_map, default_code)
    print(f"📂 Working tree scanned ({tree.value} bytes)", flush=True)
    return tree


def ls_tree(repo: Path, revision: str) -> List[Tuple[str, int]]:
    """``(path, size)`` for every blob in ``revision``."""
    output = run_git(repo, ["ls-tree", "-r", "-l", "-z", "--full-tree", revision])
    entries: List[Tuple[str, int]] = []
    for record in output.split("\0"):
        if not record or "\t" not in record:
            continue
        meta, path = record.split("\t", 1)
        meta_parts = meta.split()
        if len(meta_parts) < 4 or meta_parts[1] != "blob":
            continue
        size = int(meta_parts[3]) if meta_parts[3].isdigit() else 0
        entries.append((path, size))
    return entries


def scan_commit(repo: Path, commit: str, ignore: Iterable[str] = DEFAULT_IGNORE_LIST) -> RawNode:
    """The tree at ``commit``, with statuses for what that commit itself changed."""
    print(f"🕰️  Scanning commit {commit}...", flush=True)
    statuses = parse_name_status(run_git(repo, ["show", "--name-status", "--format=", commit]))
    return build_tree(ls_tree(repo, commit), statuses, COMMITTED_CODE, ignore)


def scan_diff(
    repo: Path,
    target: Optional[str],
    base: str,
    ignore: Iterable[str] = DEFAULT_IGNORE_LIST,
) -> RawNode:
    """The tree at ``target`` (working tree for ``latest``), coloured by its diff against ``base``."""
    print(f"🔀 Diffing {base}..{target or 'latest'}", flush=True)
    if not target or target == "latest":
        statuses = parse_name_status(run_git(repo, ["diff", "--name-status", base]))
        status_map = {path: (status, COMMITTED_CODE) for path, status in statuses.items()}
        return scan_working_tree(repo, ignore, status_map=status_map, default_code=COMMITTED_CODE)

    statuses = parse_name_status(run_git(repo, ["diff", "--name-status", base, target]))
    return build_tree(ls_tree(repo, target), statuses, COMMITTED_CODE, ignore)


def validate_date_range(start_date: str, end_date: str) -> None:
    """Raise ``ValueError`` unless both dates are ``YYYY-MM-DD``."""
    for value in (start_date, end_date):
        datetime.strptime(value, "%Y-%m-%d")


def _range_args(start_date: str, end_date: str) -> List[str]:
    # Validate early so a typo is a clear error rather than git silently matching nothing.
    validate_date_range(start_date, end_date)
    return [f"--since={start_date} 00:00:00", f"--until={end_date} 23:59:59"]


def scan_date_range(
    repo: Path,
    start_date: str,
    end_date: str,
    ignore: Iterable[str] = DEFAULT_IGNORE_LIST,
) -> RawNode:
    """
    The tree at the newest commit inside ``[start_date, end_date]`` with every
    file any commit in the range touched marked (deleted > created > modified).

    Raises ``ValueError`` for dates not in ``YYYY-MM-DD`` form.
    """
    window = _range_args(start_date, end_date)
    commits = run_git(repo, ["log", *window, "--format=%H"]).split()
    if not commits:
        return error_tree(f"No commits found between {start_date} and {end_date}")

    print(f"📅 Scanning {len(commits)} commits between {start_date} and {end_date}", flush=True)
    statuses = parse_name_status(run_git(repo, ["log", *window, "--name-status", "--format="]))
    return build_tree(ls_tree(repo, commits[0]), statuses, COMMITTED_CODE, ignore)


def list_commits(repo: Path, limit: int = COMMIT_HISTORY_LIMIT, author: Optional[str] = None) -> List[Commit]:
    fmt = _FIELD_SEP.join(["%h", "%s", "%an", "%ad"])
    args = ["log", "-n", str(limit), f"--pretty=format:{fmt}", "--date=iso"]
    if author:
        args.append(f"--author={author}")

    commits: List[Commit] = []
    for line in run_git(repo, args).splitlines():
        fields = line.split(_FIELD_SEP)
        if len(fields) != 4:
            continue
        hash_, msg, author_name, date = fields
        commits.append(Commit(hash=hash_, msg=msg, author=author_name, date=date))
    return commits


def list_authors(repo: Path) -> List[str]:
    output = run_git(repo, ["log", "--format=%an"])
    return sorted({line.strip() for line in output.splitlines() if line.strip()})

def activity(repo: Path, days: int) -> Dict[str, int]:
    """How many commits touched each file in the last ``days`` days."""
    output = run_git(repo, ["log", f"--since={days} days ago", "--name-only", "--format="])
    counts = Counter(line.strip() for line in output.splitlines() if line.strip())
    return dict(counts)


def file_stats(
    repo: Path,
    commit: Optional[str] = None,
    base: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> List[FileStat]:
    """Lines added/removed per file for the same selections ``/api/data`` supports."""
    if start_date and end_date:
        args = ["log", *_range_args(start_date, end_date), "--numstat", "--format="]
    elif base and base != "none":
        args = ["diff", "--numstat", base]
        if commit and commit != "latest":
            args.append(commit)
    elif commit and commit != "latest":
        args = ["show", "--numstat", "--format=", commit]
    else:
        args = ["diff", "--numstat", "HEAD"]
    return parse_numstat(run_git(repo, args))


class LocalGitProvider:
    """Repository data for the checkout the server was started in."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def repo_root(self) -> Path:
        return find_repo_root(self.root)

    def scan(
        self,
        commit: Optional[str] = None,
        base: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        ignore: Iterable[str] = DEFAULT_IGNORE_LIST,
    ) -> RawNode:
        ignore = list(ignore)
        if start_date and end_date:
            return scan_date_range(self.repo_root, start_date, end_date, ignore)
        if base and base != "none":
            return scan_diff(self.repo_root, commit, base, ignore)
        if commit and commit != "latest":
            return scan_commit(self.repo_root, commit, ignore)
        return scan_working_tree(self.root, ignore)

    def commits(self, limit: int = COMMIT_HISTORY_LIMIT, author: Optional[str] = None) -> List[Commit]:
        return list_commits(self.repo_root, limit, author)

    def authors(self) -> List[str]:
        return list_authors(self.repo_root)

    def activity(self, days: int) -> Dict[str, int]:
        return activity(self.repo_root, days)

    def file_stats(self, **selection: Optional[str]) -> List[FileStat]:
        return file_stats(self.repo_root, **selection)

import os
import shutil
import subprocess
from pathlib import Path

import pytest

from codeviz.models import GitStatus, NodeType
from codeviz.services import git_scan
from codeviz.services.git_scan import (
    COMMITTED_CODE,
    GitCommandError,
    LocalGitProvider,
    build_tree,
    parse_name_status,
    parse_numstat,
    parse_status_porcelain,
    scan_date_range,
    scan_working_tree,
)


def _child(node, name):
    return next(child for child in node.children if child.name == name)


def test_parse_status_porcelain_codes() -> None:
    output = "\n".join(
        [
            " M src/unstaged.py",
            "M  src/staged.py",
            "MM src/both.py",
            "A  src/new.py",
            " D src/gone.py",
            "?? notes.txt",
            "R  old.py -> src/renamed.py",
            '?? "with space.txt"',
        ]
    )
    status = parse_status_porcelain(output)

    assert status["src/unstaged.py"] == (GitStatus.MODIFIED, " M")
    assert status["src/staged.py"] == (GitStatus.MODIFIED, "M ")
    assert status["src/both.py"] == (GitStatus.MODIFIED, "MM")
    assert status["src/new.py"][0] == GitStatus.CREATED
    assert status["src/gone.py"][0] == GitStatus.DELETED
    assert status["notes.txt"][0] == GitStatus.UNTRACKED
    assert status["src/renamed.py"][0] == GitStatus.MODIFIED
    assert "old.py" not in status
    assert status["with space.txt"][0] == GitStatus.UNTRACKED


def test_parse_name_status_keeps_strongest_status() -> None:
    output = "M\ta.py\nA\ta.py\nD\tb.py\nM\tb.py\nR100\told.py\tnew.py\nM\tc.py\n"
    statuses = parse_name_status(output)

    assert statuses == {
        "a.py": GitStatus.CREATED,
        "b.py": GitStatus.DELETED,
        "new.py": GitStatus.MODIFIED,
        "c.py": GitStatus.MODIFIED,
    }


def test_parse_numstat_handles_binary_and_repeats() -> None:
    output = "3\t1\ta.py\n-\t-\tlogo.png\n2\t5\ta.py\n"
    stats = parse_numstat(output)

    assert [(s.file, s.added, s.removed) for s in stats] == [("a.py", 5, 6), ("logo.png", 0, 0)]


def test_build_tree_nests_paths_and_skips_ignored() -> None:
    entries = [("src/app.py", 120), ("src/util/io.py", 0), ("node_modules/x/index.js", 50), ("README.md", 10)]
    tree = build_tree(entries, {"src/app.py": GitStatus.MODIFIED}, COMMITTED_CODE, ["node_modules"])

    assert [child.name for child in tree.children] == ["src", "README.md"]
    src = _child(tree, "src")
    app = _child(src, "app.py")
    assert app.git_status == GitStatus.MODIFIED
    assert app.git_code == COMMITTED_CODE
    # Empty files still weigh something.
    assert _child(_child(src, "util"), "io.py").value == 1
    assert tree.value == 120 + 1 + 10


def test_scan_working_tree_respects_gitignore_and_ignore_list(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("build/\n*.log\n")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.py").write_text("print('hi')\n")
    (tmp_path / "src" / "debug.log").write_text("noise")
    (tmp_path / "src" / "empty.py").write_text("")
    (tmp_path / "build").mkdir()
    (tmp_path / "build" / "out.js").write_text("x")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.js").write_text("x")
    (tmp_path / "hollow").mkdir()

    tree = scan_working_tree(tmp_path, ["node_modules"], status_map={"src/main.py": (GitStatus.MODIFIED, " M")})

    names = {child.name for child in tree.children}
    assert names == {".gitignore", "src"}
    src = _child(tree, "src")
    assert {child.name for child in src.children} == {"main.py", "empty.py"}
    main = _child(src, "main.py")
    assert main.git_status == GitStatus.MODIFIED
    assert main.git_code == " M"
    assert main.last_modified is not None
    assert _child(src, "empty.py").value == 1
    assert _child(src, "empty.py").git_status == GitStatus.CLEAN


def test_date_range_without_commits_is_an_error_tree(monkeypatch) -> None:
    monkeypatch.setattr(git_scan, "run_git", lambda repo, args: "")

    tree = scan_date_range(Path("."), "2024-01-01", "2024-01-31")

    assert tree.name == "error"
    assert tree.type == NodeType.FOLDER
    assert tree.value == 0
    assert tree.message == "No commits found between 2024-01-01 and 2024-01-31"


def test_date_range_rejects_malformed_dates() -> None:
    with pytest.raises(ValueError):
        scan_date_range(Path("."), "01/02/2024", "2024-01-31")


def test_provider_dispatches_on_selection(monkeypatch, tmp_path: Path) -> None:
    calls = []
    monkeypatch.setattr(git_scan, "scan_date_range", lambda repo, s, e, ignore: calls.append(("range", s, e)))
    monkeypatch.setattr(git_scan, "scan_diff", lambda repo, t, b, ignore: calls.append(("diff", t, b)))
    monkeypatch.setattr(git_scan, "scan_commit", lambda repo, c, ignore: calls.append(("commit", c)))
    monkeypatch.setattr(git_scan, "scan_working_tree", lambda root, ignore: calls.append(("worktree",)))

    provider = LocalGitProvider(tmp_path)
    provider.scan(start_date="2024-01-01", end_date="2024-02-01", commit="abc", base="def")
    provider.scan(commit="abc", base="def")
    provider.scan(commit="abc", base="none")
    provider.scan(commit="latest")
    provider.scan()

    assert calls == [
        ("range", "2024-01-01", "2024-02-01"),
        ("diff", "abc", "def"),
        ("commit", "abc"),
        ("worktree",),
        ("worktree",),
    ]


def test_list_commits_parses_log_and_filters_author(monkeypatch) -> None:
    seen = []

    def fake_git(repo, args):
        seen.append(args)
        return "abc1234\x1fFix bug\x1fAda\x1f2024-05-01 10:00:00 +0000\nbroken line\n"

    monkeypatch.setattr(git_scan, "run_git", fake_git)
    commits = LocalGitProvider(Path(".")).commits(limit=5, author="Ada")

    assert [c.hash for c in commits] == ["abc1234"]
    assert commits[0].author == "Ada"
    assert "--author=Ada" in seen[0]
    assert "5" in seen[0]


def test_list_authors_is_sorted_and_unique(monkeypatch) -> None:
    monkeypatch.setattr(git_scan, "run_git", lambda repo, args: "Grace\nAda\nGrace\n")
    assert git_scan.list_authors(Path(".")) == ["Ada", "Grace"]


def test_activity_counts_touches_per_file(monkeypatch) -> None:
    monkeypatch.setattr(git_scan, "run_git", lambda repo, args: "a.py\nb.py\n\na.py\n")
    assert git_scan.activity(Path("."), 30) == {"a.py": 2, "b.py": 1}


def test_run_git_failure_raises(tmp_path: Path) -> None:
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    with pytest.raises(GitCommandError):
        git_scan.run_git(tmp_path, ["rev-parse", "--verify", "no-such-ref"])


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_real_repository_round_trip(tmp_path: Path) -> None:
    def git(*args: str) -> None:
        subprocess.run(
            ["git", "-c", "user.name=T", "-c", "user.email=t@example.com", *args],
            cwd=tmp_path,
            check=True,
            capture_output=True,
        )

    git("init", "-q")
    (tmp_path / "keep.py").write_text("a = 1\n")
    (tmp_path / "edit.py").write_text("b = 1\n")
    git("add", ".")
    git("commit", "-q", "-m", "initial")

    (tmp_path / "edit.py").write_text("b = 2\n")
    (tmp_path / "fresh.py").write_text("c = 1\n")

    provider = LocalGitProvider(tmp_path)
    tree = provider.scan()
    statuses = {child.name: child.git_status for child in tree.children}
    assert statuses["keep.py"] == GitStatus.CLEAN
    assert statuses["edit.py"] == GitStatus.MODIFIED
    assert statuses["fresh.py"] == GitStatus.UNTRACKED

    commits = provider.commits()
    assert [c.msg for c in commits] == ["initial"]

    at_commit = provider.scan(commit=commits[0].hash)
    assert {child.name for child in at_commit.children} == {"keep.py", "edit.py"}
    assert all(child.git_status == GitStatus.CREATED for child in at_commit.children)

    assert provider.activity(30) == {"keep.py": 1, "edit.py": 1}


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_real_repository_ranges_and_diffs(tmp_path: Path) -> None:
    def commit(when: str, message: str) -> None:
        env = {**os.environ, "GIT_AUTHOR_DATE": when, "GIT_COMMITTER_DATE": when}
        for args in (["add", "."], ["commit", "-q", "-m", message]):
            subprocess.run(
                ["git", "-c", "user.name=T", "-c", "user.email=t@example.com", *args],
                cwd=tmp_path,
                env=env,
                check=True,
                capture_output=True,
            )

    subprocess.run(["git", "init", "-q"], cwd=tmp_path, check=True, capture_output=True)
    (tmp_path / "a.py").write_text("x = 1\n")
    commit("2024-01-10T12:00:00", "add a")
    (tmp_path / "a.py").write_text("x = 2\ny = 3\n")
    (tmp_path / "b.py").write_text("b = 1\n")
    commit("2024-01-20T12:00:00", "edit a, add b")
    (tmp_path / "c.py").write_text("c = 1\n")
    commit("2024-02-05T12:00:00", "add c")

    provider = LocalGitProvider(tmp_path)

    january = provider.scan(start_date="2024-01-01", end_date="2024-01-31")
    # Created in the range and modified later in it: created wins.
    assert {child.name: child.git_status for child in january.children} == {
        "a.py": GitStatus.CREATED,
        "b.py": GitStatus.CREATED,
    }

    late_january = provider.scan(start_date="2024-01-15", end_date="2024-01-31")
    # The tree is the one at the last commit in the range, so c.py is absent.
    assert {child.name: child.git_status for child in late_january.children} == {
        "a.py": GitStatus.MODIFIED,
        "b.py": GitStatus.CREATED,
    }

    stats = provider.file_stats(start_date="2024-01-01", end_date="2024-01-31")
    assert [(s.file, s.added, s.removed) for s in stats] == [("a.py", 3, 1), ("b.py", 1, 0)]

    first = provider.commits()[-1].hash
    diffed = provider.scan(base=first)
    assert {child.name: (child.git_status, child.git_code) for child in diffed.children} == {
        "a.py": (GitStatus.MODIFIED, COMMITTED_CODE),
        "b.py": (GitStatus.CREATED, COMMITTED_CODE),
        "c.py": (GitStatus.CREATED, COMMITTED_CODE),
    }

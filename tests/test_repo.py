import os
import tempfile
from pathlib import Path

import pytest

from tokctl.repo import (
    RepoIdentity,
    Resolver,
    parse_origin_url,
    project_basename,
    resolve_path,
)


@pytest.fixture
def plain_tmp():
    """A temporary directory whose own name carries no hyphen."""
    with tempfile.TemporaryDirectory(prefix="tok") as d:
        yield Path(d)


def make_repo(directory: Path) -> None:
    (directory / ".git").mkdir(parents=True, exist_ok=True)


def canon(p: Path) -> str:
    return os.path.realpath(p)


def test_subdir_resolves_up_to_root(tmp_path):
    root = tmp_path / "myrepo"
    sub = root / "src" / "deep"
    sub.mkdir(parents=True)
    make_repo(root)

    identity = resolve_path(str(sub))
    assert identity.key == canon(root)
    assert identity.display_name == "myrepo"


def test_repo_root_resolves_to_itself(tmp_path):
    root = tmp_path / "r"
    root.mkdir()
    make_repo(root)
    assert resolve_path(str(root)).key == canon(root)


def test_no_git_returns_no_key(tmp_path):
    p = tmp_path / "loose"
    p.mkdir()
    identity = resolve_path(str(p))
    assert identity.key is None
    assert identity.display_name == "loose"


def test_unresolvable_claude_path_is_opaque_bucket():
    identity = resolve_path("-definitely-not-a-real-path-xyzzy")
    assert identity.key is None
    assert identity.display_name == "-definitely-not-a-real-path-xyzzy"
    assert identity.origin_url is None


def test_resolver_memoizes(tmp_path):
    root = tmp_path / "memo"
    (root / "a").mkdir(parents=True)
    make_repo(root)

    resolver = Resolver()
    path = str(root / "a")
    first = resolver.resolve(path)
    second = resolver.resolve(path)
    assert first == second
    repos = list(resolver.resolved_repos())
    assert repos == [(canon(root), first)]


def test_resolved_repos_excludes_unresolved(tmp_path):
    root = tmp_path / "r"
    root.mkdir()
    make_repo(root)
    loose = tmp_path / "loose"
    loose.mkdir()

    resolver = Resolver()
    resolver.resolve(str(root))
    resolver.resolve(str(loose))
    keys = [key for key, _ in resolver.resolved_repos()]
    assert keys == [canon(root)]


def test_origin_url_parsed_when_present():
    config = """
[core]
    repositoryformatversion = 0
[remote "origin"]
    url = git@example.com:me/tokctl.git
    fetch = +refs/heads/*:refs/remotes/origin/*
[branch "main"]
    remote = origin
"""
    assert parse_origin_url(config) == "git@example.com:me/tokctl.git"


def test_origin_url_missing_returns_none():
    assert parse_origin_url("[core]\nbare = false\n") is None


def test_origin_url_from_other_remote_is_ignored():
    config = '[remote "upstream"]\n    url = https://example.com/u.git\n'
    assert parse_origin_url(config) is None


def test_absolute_path_with_split_hyphen_falls_back(tmp_path):
    root = tmp_path / "dev" / "some-repo"
    root.mkdir(parents=True)
    make_repo(root)

    bad = tmp_path / "dev" / "some" / "repo"
    identity = resolve_path(str(bad))
    assert identity.key == canon(root)
    assert identity.display_name == "some-repo"


def test_worktree_pointer_resolves_to_main_repo(tmp_path):
    main = tmp_path / "my-project"
    wt_gitdir = main / ".git" / "worktrees" / "wt1"
    wt_gitdir.mkdir(parents=True)
    assert (main / ".git").is_dir()

    wt = tmp_path / "worktrees" / "abc" / "my-project"
    wt.mkdir(parents=True)
    (wt / ".git").write_text(f"gitdir: {wt_gitdir}\n")

    identity = resolve_path(str(wt))
    assert identity.key == canon(main)
    assert identity.display_name == "my-project"


def test_resolver_reads_origin_from_real_config(tmp_path):
    root = tmp_path / "r"
    (root / ".git").mkdir(parents=True)
    (root / ".git" / "config").write_text(
        '[remote "origin"]\n    url = https://example.com/r.git\n'
    )
    assert resolve_path(str(root)).origin_url == "https://example.com/r.git"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("/a/b/c", "c"),
        ("/a/b/", "b"),
        ("-Users-me-dev-tokctl", "tokctl"),
        ("plain", "plain"),
        ("/", "/"),
    ],
)
def test_project_basename(raw, expected):
    assert project_basename(raw) == expected


def test_no_repo_display_sentinel():
    identity = RepoIdentity(key=None, display_name=RepoIdentity.NO_REPO_DISPLAY)
    assert identity.display_name == "(no-repo)"
    assert identity.origin_url is None
"""Repository identity resolution for project paths.

Given a project path observed during ingest, compute a stable repo key (the
canonical path of the nearest ``.git`` ancestor), a display name (the
basename of the repo root) and, best effort, the ``origin`` remote URL read
from the repository's config. Everything is offline and memoized per run.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import ClassVar


@dataclass(frozen=True)
class RepoIdentity:
    """Resolved repository for one project path.

    ``key`` is None when no ``.git`` ancestor was found; such events belong
    to the no-repo bucket.
    """

    NO_REPO_DISPLAY: ClassVar[str] = "(no-repo)"

    key: str | None
    display_name: str
    origin_url: str | None = None


@dataclass
class Resolver:
    """Memoizing wrapper around :func:`resolve_path`, built once per run."""

    _cache: dict[str, RepoIdentity] = field(default_factory=dict)

    def resolve(self, project_path: str) -> RepoIdentity:
        """Resolve a project path, hitting the filesystem only once per input."""
        hit = self._cache.get(project_path)
        if hit is None:
            hit = resolve_path(project_path)
            self._cache[project_path] = hit
        return hit

    def resolved_repos(self) -> Iterator[tuple[str, RepoIdentity]]:
        """Yield ``(key, identity)`` for every resolution that found a repo."""
        for identity in self._cache.values():
            if identity.key is not None:
                yield identity.key, identity


def project_basename(s: str) -> str:
    """Best-effort basename of a raw path or a dash-encoded folder name."""
    if s.startswith("/"):
        sep = "/"
    elif s.startswith("-"):
        sep = "-"
    else:
        return s
    return next((part for part in reversed(s.split(sep)) if part), s)


def resolve_path(project_path: str) -> RepoIdentity:
    """Resolve a project path without memoization."""
    for candidate in _decode_candidates(project_path):
        root = _nearest_git_root(candidate)
        if root is not None:
            return _identity_for_root(root)
    return RepoIdentity(key=None, display_name=_fallback_display(project_path))


def _fallback_display(project_path: str) -> str:
    name = PurePosixPath(project_path).name if project_path else ""
    if not name or name == "..":
        return project_path
    return name


def _decode_candidates(project_path: str) -> list[str]:
    """Ordered candidate paths to test against the filesystem.

    Dash-encoded folder names (and absolute paths that do not exist, which
    may have been decoded too greedily upstream) expand into variants that
    glue trailing segments back together with hyphens, so repositories with
    literal hyphens in their name still resolve.
    """
    if not project_path:
        return [project_path]
    if project_path.startswith("/"):
        if os.path.exists(project_path):
            return [project_path]
        parts = project_path[1:].split("/")
    elif project_path.startswith("-"):
        parts = project_path[1:].split("-")
    else:
        return [project_path]
    return [_decode_with_tail_glue(parts, n) for n in range(len(parts))]


def _decode_with_tail_glue(parts: list[str], join_last_n: int) -> str:
    """Rebuild an absolute path, gluing the last ``join_last_n + 1`` parts with '-'."""
    if not parts:
        return "/"
    split_at = max(0, len(parts) - (join_last_n + 1))
    head, tail = parts[:split_at], parts[split_at:]
    path = "/" + "/".join(head)
    if tail:
        if head:
            path += "/"
        path += "-".join(tail)
    return path


def _nearest_git_root(start: str) -> str | None:
    """Canonical path of the nearest ancestor holding a ``.git`` entry.

    Linked worktrees are followed back to the main checkout.
    """
    if not start:
        return None
    current = os.path.realpath(start)
    if not os.path.exists(current):
        return None
    while True:
        git = os.path.join(current, ".git")
        if os.path.exists(git):
            if os.path.isfile(git):
                main = _main_repo_from_worktree_pointer(git)
                if main is not None:
                    return main
            return os.path.realpath(current)
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


def _read_text(path: str | Path) -> str | None:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def _gitdir_line(contents: str) -> str | None:
    for line in contents.split("\n"):
        line = line.rstrip("\r")
        if line.startswith("gitdir:"):
            return line[len("gitdir:"):].strip()
    return None


def _main_repo_from_worktree_pointer(git_file: str) -> str | None:
    contents = _read_text(git_file)
    if contents is None:
        return None
    gitdir = _gitdir_line(contents)
    if gitdir is None:
        return None
    # A linked worktree's gitdir is `<main>/.git/worktrees/<name>`.
    parents = Path(gitdir).parents if gitdir else ()
    if len(parents) < 3:
        return None
    main = parents[2]
    if (main / ".git").is_dir():
        return os.path.realpath(main)
    return None


def _identity_for_root(root: str) -> RepoIdentity:
    return RepoIdentity(
        key=root,
        display_name=os.path.basename(root) or root,
        origin_url=_read_origin_url(root),
    )


def _read_origin_url(root: str) -> str | None:
    git_path = Path(root) / ".git"
    if git_path.is_file():
        contents = _read_text(git_path)
        if contents is None:
            return None
        line = _gitdir_line(contents)
        if line is None:
            return None
        gitdir = Path(line) if os.path.isabs(line) else Path(root) / line
        config_path = gitdir / "config"
    else:
        config_path = git_path / "config"
    text = _read_text(config_path)
    return None if text is None else parse_origin_url(text)


def parse_origin_url(config: str) -> str | None:
    """Extract the ``url`` of the ``[remote "origin"]`` section of a git config."""
    in_origin = False
    for raw in config.splitlines():
        line = raw.strip()
        if line.startswith("[") and line.endswith("]"):
            in_origin = line in ('[remote "origin"]', "[remote 'origin']")
            continue
        if in_origin and line.startswith("url"):
            rest = line[3:].lstrip()
            if rest.startswith("="):
                url = rest[1:].strip()
                if url:
                    return url
    return None
"""Read-only access to a source repository at a given revision."""

from __future__ import annotations

import fnmatch
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

from changescope.config import RAGConfig
from changescope.diff_parser import parse_diff
from changescope.exceptions import RepositoryError
from changescope.models import ChangedFile, SourceFile

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 30


@dataclass
class TreeEntry:
    path: str
    kind: str  # 'file' or 'dir'
    size: int | None = None
    sha: str | None = None


class SourceRepository(Protocol):
    def get_file_content(self, path: str, ref: str) -> str | None:
        """Return the text of `path` at `ref`, or None when it does not exist."""
        ...

    def get_tree(self, ref: str) -> list[TreeEntry]:
        """Return every file and directory reachable at `ref`."""
        ...


class GitRepository:
    """A local git checkout, read through the `git` command line."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _git(self, *args: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.root,
                capture_output=True,
                timeout=GIT_TIMEOUT,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            raise RepositoryError(f"git {args[0]} failed: {e}") from e

    def _checked(self, *args: str) -> str:
        result = self._git(*args)
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise RepositoryError(f"git {' '.join(args)} failed: {stderr}")
        return result.stdout.decode("utf-8", errors="replace")

    def resolve(self, ref: str) -> str:
        return self._checked("rev-parse", "--verify", f"{ref}^{{commit}}").strip()

    def get_file_content(self, path: str, ref: str) -> str | None:
        result = self._git("show", f"{ref}:{path}")
        if result.returncode != 0:
            return None
        data = result.stdout
        if b"\x00" in data[:8000]:
            return None  # Binary
        return data.decode("utf-8", errors="replace")

    def get_tree(self, ref: str) -> list[TreeEntry]:
        output = self._checked("ls-tree", "-r", "-t", "-l", ref)
        entries = []
        for line in output.splitlines():
            # <mode> <type> <object> <size>\t<path>
            meta, _, path = line.partition("\t")
            parts = meta.split()
            if len(parts) < 4 or not path:
                continue
            _, kind, sha, size = parts[:4]
            if kind == "tree":
                entries.append(TreeEntry(path=path, kind="dir", sha=sha))
            elif kind == "blob":
                entries.append(
                    TreeEntry(
                        path=path,
                        kind="file",
                        size=int(size) if size.isdigit() else None,
                        sha=sha,
                    )
                )
        return entries

    def diff(self, base: str, head: str) -> str:
        return self._checked("diff", "--no-color", "--no-ext-diff", f"{base}...{head}")


def collect_changed_files(repo: GitRepository, base: str, head: str = "HEAD") -> list[ChangedFile]:
    """Files changed between `base` and `head`, with full contents attached.

    Removed files carry their last content from `base`.
    """
    changed = parse_diff(repo.diff(base, head))
    for file in changed:
        ref = base if file.status == "removed" else head
        file.full_content = repo.get_file_content(file.path, ref)
    logger.info("Collected %d changed file(s) between %s and %s", len(changed), base, head)
    return changed


def is_indexable(entry: TreeEntry, config: RAGConfig) -> bool:
    if entry.kind != "file":
        return False
    if config.include_extensions:
        if PurePosixPath(entry.path).suffix.lower() not in config.include_extensions:
            return False
    if entry.size is not None and entry.size > config.max_file_size_kb * 1024:
        return False
    for pattern in config.exclude_patterns:
        if fnmatch.fnmatch(entry.path, pattern) or any(
            fnmatch.fnmatch(part, pattern) for part in PurePosixPath(entry.path).parts
        ):
            return False
    return True


def collect_corpus(repo: SourceRepository, ref: str, rag_config: RAGConfig) -> list[SourceFile]:
    """Read every indexable file at `ref` as a corpus for the semantic index."""
    files = []
    skipped = 0
    for entry in repo.get_tree(ref):
        if not is_indexable(entry, rag_config):
            if entry.kind == "file":
                skipped += 1
            continue
        content = repo.get_file_content(entry.path, ref)
        if not content:
            continue
        files.append(SourceFile(path=entry.path, content=content))
    logger.info("Corpus at %s: %d file(s), %d skipped", ref, len(files), skipped)
    return files

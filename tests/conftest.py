"""Shared test fixtures for ChangeScope."""

from __future__ import annotations

import asyncio
import re
import shutil
import subprocess
from pathlib import Path

import pytest

from changescope.embeddings.backend import EmbeddingBackend
from changescope.embeddings.hashing import content_digest
from changescope.embeddings.pool import EmbeddingClientPool
from changescope.exceptions import ReasoningBackendError
from changescope.llm.base import LLMProvider, LLMResponse, Message, ToolCall
from changescope.repository import TreeEntry

# Words the fake embedder can "see". Each text becomes the vector of
# per-word counts plus a small constant, so similarity is predictable.
VOCABULARY = [
    "findmany", "repository", "user", "order", "payment", "logger",
    "query", "filter", "invoice", "session",
]


def keyword_vector(text: str) -> list[float]:
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCABULARY] + [0.01]


class FakeEmbeddingBackend(EmbeddingBackend):
    """In-process embedding server with scriptable failures and latency."""

    def __init__(
        self,
        endpoint: str,
        model: str = "test-embed",
        healthy: bool = True,
        delay: float = 0.0,
        delays: list[float] | None = None,
        fail_after: int | None = None,
    ) -> None:
        super().__init__(endpoint, model)
        self.healthy = healthy
        self.delay = delay
        self.delays = list(delays or [])
        self.fail_after = fail_after
        self.calls: list[list[str]] = []

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        delay = self.delays.pop(0) if self.delays else self.delay
        if delay:
            await asyncio.sleep(delay)
        if not self.healthy:
            raise ConnectionError(f"{self.endpoint} is down")
        if self.fail_after is not None and len(self.calls) > self.fail_after:
            raise ConnectionError(f"{self.endpoint} went down")
        return [keyword_vector(t) for t in texts]


class ScriptedLLM(LLMProvider):
    """Reasoning backend that replays a fixed list of responses.

    Items may be `LLMResponse` objects or exceptions to raise. Once the
    script runs out, `default` is returned forever.
    """

    def __init__(self, script: list | None = None, default: LLMResponse | None = None) -> None:
        super().__init__("scripted", base_url="http://scripted")
        self.script = list(script or [])
        self.default = default or LLMResponse(content="")
        self.requests: list[list[Message]] = []
        self.tool_names: list[list[str]] = []

    async def complete(self, messages, tools=None, temperature=0.0, max_tokens=4096):
        self.requests.append(list(messages))
        self.tool_names.append([t.name for t in tools or []])
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, Exception):
            raise item
        return item


class FailingLLM(LLMProvider):
    def __init__(self, endpoint: str = "http://down") -> None:
        super().__init__("failing", base_url=endpoint)
        self.calls = 0

    async def complete(self, messages, tools=None, temperature=0.0, max_tokens=4096):
        self.calls += 1
        raise ReasoningBackendError(f"{self.endpoint} unreachable")


class InMemoryRepository:
    """A repository snapshot held in a dict of path -> content."""

    def __init__(self, files: dict[str, str]) -> None:
        self.files = dict(files)
        self.content_reads: list[str] = []
        self.tree_reads = 0

    def get_file_content(self, path: str, ref: str) -> str | None:
        self.content_reads.append(path)
        return self.files.get(path)

    def get_tree(self, ref: str) -> list[TreeEntry]:
        self.tree_reads += 1
        dirs: set[str] = set()
        for path in self.files:
            parts = path.split("/")[:-1]
            for i in range(1, len(parts) + 1):
                dirs.add("/".join(parts[:i]))
        entries = [TreeEntry(path=d, kind="dir") for d in sorted(dirs)]
        for path, content in sorted(self.files.items()):
            entries.append(
                TreeEntry(
                    path=path,
                    kind="file",
                    size=len(content.encode("utf-8")),
                    sha=content_digest(content)[:40],
                )
            )
        return entries


def tool_call(name: str, call_id: str = "call_1", **arguments) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=arguments)


@pytest.fixture
def make_pool():
    """Factory for pools of fake embedding servers."""

    def factory(*health: bool, **kwargs) -> tuple[EmbeddingClientPool, list[FakeEmbeddingBackend]]:
        backends = [
            FakeEmbeddingBackend(f"http://embed-{chr(ord('a') + i)}", healthy=ok, **kwargs)
            for i, ok in enumerate(health)
        ]
        return EmbeddingClientPool(backends), backends

    return factory


@pytest.fixture
def sample_sources() -> dict[str, str]:
    """A small TypeScript code base around a shared repository method."""
    return {
        "src/base-repository.ts": (
            "export class BaseRepository {\n"
            "  function findMany(filter) {\n"
            "    return this.db.query(filter);\n"
            "  }\n"
            "}\n"
        ),
        "src/user-service.ts": (
            "import { BaseRepository } from './base-repository';\n\n"
            "export class UserService {\n"
            "  listUsers(filter) {\n"
            "    return this.repo.findMany(filter);\n"
            "  }\n"
            "}\n"
        ),
        "src/logger.ts": (
            "export function logger(message) {\n"
            "  console.log(message);\n"
            "}\n"
        ),
        "README.md": "# Sample\n\nA sample project.\n",
    }


@pytest.fixture
def memory_repo(sample_sources: dict[str, str]) -> InMemoryRepository:
    return InMemoryRepository(sample_sources)


def _git(root: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=root, capture_output=True, text=True, check=True
    )
    return result.stdout


@pytest.fixture
def git_repo(tmp_path: Path, sample_sources: dict[str, str]) -> Path:
    """A git repository with a base commit and one change on top, tagged base/head."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    root = tmp_path / "repo"
    root.mkdir()
    _git(root, "init", "-q")
    _git(root, "config", "user.email", "dev@example.com")
    _git(root, "config", "user.name", "Dev")
    _git(root, "config", "commit.gpgsign", "false")

    for path, content in sample_sources.items():
        target = root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    _git(root, "add", "-A")
    _git(root, "commit", "-q", "-m", "base")
    _git(root, "tag", "base")

    base_repo = root / "src" / "base-repository.ts"
    base_repo.write_text(
        re.sub(r"findMany\(filter\)", "findMany(filter, limit)", base_repo.read_text())
    )
    (root / "src" / "order-service.ts").write_text(
        "export class OrderService {\n  listOrders() {\n    return [];\n  }\n}\n"
    )
    (root / "src" / "logger.ts").unlink()
    _git(root, "add", "-A")
    _git(root, "commit", "-q", "-m", "change")
    _git(root, "tag", "head")
    return root

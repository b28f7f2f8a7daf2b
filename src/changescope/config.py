"""Configuration management for ChangeScope."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from changescope.exceptions import ConfigError

CHANGESCOPE_DIR = ".changescope"
CONFIG_FILE = "config.json"

DEFAULT_OLLAMA_URL = "http://localhost:11434/v1"


class LLMConfig(BaseModel):
    """Reasoning backend configuration."""

    provider: str = "ollama"
    model: str = "llama3.1:latest"
    api_key_env: str = ""
    max_tokens: int = 4096
    temperature: float = 0.0
    base_url: str | None = None
    # More than one URL enables round-robin failover across reasoning servers
    server_urls: list[str] = Field(default_factory=list)

    @property
    def api_key(self) -> str | None:
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        env_map = {
            "openai": "OPENAI_API_KEY",
            "anthropic": "ANTHROPIC_API_KEY",
        }
        env_var = env_map.get(self.provider, "")
        return os.environ.get(env_var) if env_var else None


class EmbeddingConfig(BaseModel):
    """Embedding backend configuration."""

    model: str = "nomic-embed-text"
    server_urls: list[str] = Field(default_factory=lambda: [DEFAULT_OLLAMA_URL])
    api_key_env: str = ""
    batch_size: int = 20
    dispatch_delay: float = 1.0
    timeout: float = 60.0

    @property
    def api_key(self) -> str | None:
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


class RAGConfig(BaseModel):
    """Chunking, caching and corpus selection for semantic search."""

    enabled: bool = True
    chunk_size: int = 1000
    chunk_overlap: int = 200
    top_k: int = 5
    cache_dir: str = ".cache/embeddings"
    include_extensions: list[str] = Field(
        default_factory=lambda: [
            ".py", ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs",
            ".go", ".rs", ".java", ".kt", ".scala", ".rb", ".php",
            ".c", ".h", ".cc", ".cpp", ".hpp", ".cs", ".swift",
            ".vue", ".svelte",
        ]
    )
    max_file_size_kb: int = 500
    exclude_patterns: list[str] = Field(
        default_factory=lambda: [
            "node_modules",
            "__pycache__",
            ".git",
            ".changescope",
            ".cache",
            "dist",
            "build",
            ".venv",
            "venv",
            "*.min.js",
            "*.map",
            "*.lock",
            "package-lock.json",
            "yarn.lock",
        ]
    )


class AgentConfig(BaseModel):
    """Agent behavior configuration."""

    max_iterations: int = 40


class ProjectConfig(BaseModel):
    """Full project configuration."""

    name: str = ""
    root_path: str = "."
    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    rag: RAGConfig = Field(default_factory=RAGConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from `start` looking for a .changescope directory."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / CHANGESCOPE_DIR).is_dir():
            return current
        current = current.parent
    if (current / CHANGESCOPE_DIR).is_dir():
        return current
    return None


def get_changescope_dir(root: Path) -> Path:
    """Get the .changescope directory for a project root."""
    return root / CHANGESCOPE_DIR


def load_config(root: Path) -> ProjectConfig:
    """Load configuration from .changescope/config.json."""
    config_path = get_changescope_dir(root) / CONFIG_FILE
    if not config_path.exists():
        return ProjectConfig(name=root.name, root_path=str(root))
    try:
        data = json.loads(config_path.read_text())
        return ProjectConfig(**data)
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e


def save_config(root: Path, config: ProjectConfig) -> None:
    """Save configuration to .changescope/config.json."""
    cs_dir = get_changescope_dir(root)
    cs_dir.mkdir(parents=True, exist_ok=True)
    config_path = cs_dir / CONFIG_FILE
    config_path.write_text(json.dumps(config.model_dump(), indent=2))


def set_config_value(config: ProjectConfig, key: str, value: Any) -> ProjectConfig:
    """Set a nested config value using dot notation (e.g., 'llm.provider')."""
    parts = key.split(".")
    data = config.model_dump()
    target = data
    for part in parts[:-1]:
        if part not in target or not isinstance(target[part], dict):
            raise KeyError(f"Invalid config key: {key}")
        target = target[part]
    if parts[-1] not in target:
        raise KeyError(f"Invalid config key: {key}")
    target[parts[-1]] = value
    try:
        return ProjectConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value for {key}: {e}") from e


def _split_urls(raw: str) -> list[str]:
    return [url.strip() for url in raw.split(",") if url.strip()]


def apply_env_overrides(
    config: ProjectConfig, environ: Mapping[str, str] | None = None
) -> ProjectConfig:
    """Overlay CHANGESCOPE_* environment variables on top of a loaded config."""
    env = os.environ if environ is None else environ
    data = config.model_dump()

    if env.get("CHANGESCOPE_LLM_PROVIDER"):
        data["llm"]["provider"] = env["CHANGESCOPE_LLM_PROVIDER"]
    if env.get("CHANGESCOPE_LLM_MODEL"):
        data["llm"]["model"] = env["CHANGESCOPE_LLM_MODEL"]
    if env.get("CHANGESCOPE_LLM_SERVERS"):
        data["llm"]["server_urls"] = _split_urls(env["CHANGESCOPE_LLM_SERVERS"])
    if env.get("CHANGESCOPE_EMBEDDING_MODEL"):
        data["embedding"]["model"] = env["CHANGESCOPE_EMBEDDING_MODEL"]
    if env.get("CHANGESCOPE_EMBEDDING_SERVERS"):
        data["embedding"]["server_urls"] = _split_urls(env["CHANGESCOPE_EMBEDDING_SERVERS"])
    if "CHANGESCOPE_ENABLE_RAG" in env:
        data["rag"]["enabled"] = env["CHANGESCOPE_ENABLE_RAG"].strip().lower() != "false"

    return ProjectConfig(**data)

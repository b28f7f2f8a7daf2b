"""Command-line interface for ChangeScope."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.logging import RichHandler

from changescope import __version__
from changescope.config import (
    ProjectConfig,
    apply_env_overrides,
    find_project_root,
    get_changescope_dir,
    load_config,
    save_config,
    set_config_value,
)
from changescope.exceptions import ChangeScopeError, ConfigError, RepositoryError
from changescope.ui.console import Console

console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console.console, rich_tracebacks=verbose, show_path=False)],
        force=True,
    )
    # SDK request logs drown out our own at DEBUG
    for noisy in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _get_project_root(path: str | None = None) -> Path:
    """Find the project root or error."""
    if path:
        root = Path(path).resolve()
        if not root.exists():
            console.error(f"Path does not exist: {path}")
            sys.exit(1)
        return root

    root = find_project_root()
    if root is None:
        console.error(
            "No ChangeScope project found. Run 'changescope init' first, "
            "or specify a path with --path."
        )
        sys.exit(1)
    return root


def _load_config(root: Path) -> ProjectConfig:
    try:
        return apply_env_overrides(load_config(root))
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="changescope")
def main():
    """ChangeScope - find the code a change is likely to affect."""
    pass


@main.command()
@click.option("--path", "-p", default=None, help="Path to the repository root.")
@click.option("--provider", default=None, help="LLM provider (ollama, openai, anthropic, local).")
@click.option("--model", default=None, help="LLM model name.")
@click.option("--embedding-model", default=None, help="Embedding model name.")
def init(path: str | None, provider: str | None, model: str | None, embedding_model: str | None):
    """Initialize ChangeScope for a repository."""
    root = Path(path or ".").resolve()
    if not root.exists():
        console.error(f"Path does not exist: {root}")
        sys.exit(1)

    console.banner()
    console.info(f"Initializing ChangeScope for: {root}")

    try:
        config = load_config(root)
    except ConfigError as e:
        console.warning(f"{e}; starting from defaults")
        config = ProjectConfig()
    config.name = root.name
    config.root_path = str(root)

    if provider:
        config.llm.provider = provider
    if model:
        config.llm.model = model
    if embedding_model:
        config.embedding.model = embedding_model

    save_config(root, config)
    console.success(f"Configuration saved to {get_changescope_dir(root)}")
    console.info(
        f"Reasoning: {config.llm.provider}/{config.llm.model}, "
        f"embeddings: {config.embedding.model} on {len(config.embedding.server_urls)} server(s)"
    )


@main.command()
@click.option("--base", "-b", required=True, help="Base revision to diff against.")
@click.option("--head", default="HEAD", show_default=True, help="Revision under analysis.")
@click.option("--path", "-p", default=None, help="Path to the repository root.")
@click.option("--no-rag", is_flag=True, help="Skip semantic indexing and candidate search.")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
              help="Write the markdown report to a file instead of stdout.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs and agent steps.")
def impact(
    base: str, head: str, path: str | None, no_rag: bool, output: str | None, verbose: bool
):
    """Analyze which files a change between two revisions may affect.

    Usage:

        changescope impact --base main

        changescope impact --base v1.2.0 --head v1.3.0 -o impact.md
    """
    _setup_logging(verbose)
    root = _get_project_root(path)
    config = _load_config(root)

    from changescope.impact import run_impact_analysis
    from changescope.llm.factory import create_provider
    from changescope.repository import GitRepository, collect_changed_files, collect_corpus

    repo = GitRepository(root)
    try:
        changed = collect_changed_files(repo, base, head)
    except RepositoryError as e:
        console.error(str(e))
        sys.exit(1)

    if not changed:
        console.info(f"No changes between {base} and {head}")
    else:
        console.info(f"{len(changed)} file(s) changed between {base} and {head}")

    indexer = None
    corpus = None
    if config.rag.enabled and not no_rag and changed:
        indexer = _build_indexer(root, config)
        try:
            with console.status(f"Reading repository at {head}..."):
                corpus = collect_corpus(repo, head, config.rag)
        except RepositoryError as e:
            console.error(str(e))
            sys.exit(1)

    try:
        llm = create_provider(config.llm)
    except (ValueError, ChangeScopeError) as e:
        console.error(str(e))
        sys.exit(1)

    on_step = console.show_agent_step if verbose else None
    with console.status("Analyzing impact..."):
        report = asyncio.run(
            run_impact_analysis(
                changed,
                repo=repo,
                ref=head,
                llm=llm,
                indexer=indexer,
                corpus=corpus,
                max_iterations=config.agent.max_iterations,
                project_name=config.name,
                on_step=on_step,
            )
        )

    if report.index_stats is not None:
        console.show_index_stats(report.index_stats)
    console.show_candidates(report.candidates)
    if report.agent_result is not None:
        console.info(
            f"Agent finished in {report.agent_result.total_iterations} step(s), "
            f"~{report.agent_result.total_tokens:,} tokens used"
        )
        if not report.agent_result.success:
            console.warning("Agent hit the iteration limit; the analysis may be incomplete")

    markdown = report.render(title=f"{base}...{head}")
    if output:
        Path(output).write_text(markdown, encoding="utf-8")
        console.success(f"Report written to {output}")
    else:
        click.echo(markdown)


def _build_indexer(root: Path, config: ProjectConfig):
    from changescope.embeddings import (
        BatchEmbeddingPipeline,
        EmbeddingCache,
        EmbeddingClientPool,
        TextChunker,
    )
    from changescope.rag.indexer import SemanticIndexer

    try:
        pool = EmbeddingClientPool.from_urls(
            config.embedding.server_urls,
            model=config.embedding.model,
            api_key=config.embedding.api_key,
            timeout=config.embedding.timeout,
        )
        chunker = TextChunker(config.rag.chunk_size, config.rag.chunk_overlap)
    except (ValueError, ConfigError) as e:
        console.error(str(e))
        sys.exit(1)

    return SemanticIndexer(
        pool,
        EmbeddingCache(root / config.rag.cache_dir),
        chunker=chunker,
        pipeline=BatchEmbeddingPipeline(
            pool,
            batch_size=config.embedding.batch_size,
            dispatch_delay=config.embedding.dispatch_delay,
        ),
        top_k=config.rag.top_k,
    )


# =========================================================================
# Cache Management
# =========================================================================

@main.group()
def cache():
    """Manage the embedding cache."""
    pass


@cache.command("clear")
@click.option("--path", "-p", default=None, help="Path to the repository root.")
def cache_clear(path: str | None):
    """Delete every cached embedding record."""
    from changescope.embeddings.cache import EmbeddingCache

    root = _get_project_root(path)
    config = _load_config(root)
    removed = EmbeddingCache(root / config.rag.cache_dir).clear()
    console.success(f"Removed {removed} cache record(s)")


# =========================================================================
# Config Management
# =========================================================================

@main.command("config")
@click.argument("action", type=click.Choice(["set", "get", "show"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=None, help="Path to the repository root.")
def config_cmd(action: str, key: str | None, value: str | None, path: str | None):
    """Manage ChangeScope configuration."""
    root = _get_project_root(path)
    try:
        config = load_config(root)
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)

    if action == "show":
        click.echo(json.dumps(config.model_dump(), indent=2))
    elif action == "get":
        if not key:
            console.error("Usage: changescope config get <key>")
            sys.exit(1)
        data = config.model_dump()
        for part in key.split("."):
            if isinstance(data, dict) and part in data:
                data = data[part]
            else:
                console.error(f"Unknown key: {key}")
                sys.exit(1)
        click.echo(f"{key} = {json.dumps(data)}")
    elif action == "set":
        if not key or value is None:
            console.error("Usage: changescope config set <key> <value>")
            sys.exit(1)
        try:
            # Try to parse as JSON for non-string values
            try:
                parsed_value = json.loads(value)
            except json.JSONDecodeError:
                parsed_value = value

            config = set_config_value(config, key, parsed_value)
            save_config(root, config)
            console.success(f"Set {key} = {parsed_value}")
        except KeyError:
            console.error(f"Unknown config key: {key}")
            sys.exit(1)
        except ConfigError as e:
            console.error(str(e))
            sys.exit(1)


if __name__ == "__main__":
    main()

"""Rich-powered console output for ChangeScope."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from changescope import __version__
from changescope.agent.loop import AgentStep
from changescope.models import Candidate
from changescope.rag.indexer import IndexStats


class Console:
    """Terminal output for ChangeScope using Rich."""

    def __init__(self, stderr: bool = False) -> None:
        self.console = RichConsole(stderr=stderr)

    def banner(self) -> None:
        self.console.print(
            Panel(
                f"[bold cyan]ChangeScope[/bold cyan] [dim]v{__version__}[/dim]\n"
                "[dim]Semantic change-impact analysis[/dim]",
                border_style="cyan",
                padding=(1, 2),
            )
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def markdown(self, text: str) -> None:
        """Render markdown text."""
        self.console.print(Markdown(text))

    def status(self, message: str):
        """Spinner shown while a long step runs."""
        return self.console.status(message, spinner="dots")

    def show_index_stats(self, stats: IndexStats) -> None:
        table = Table(title="Semantic Index", border_style="cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Count", justify="right", style="cyan")

        table.add_row("Files", str(stats.files))
        table.add_row("Chunks", str(stats.chunks))
        table.add_row("Cache hits", str(stats.cache_hits))
        table.add_row("Cache misses", str(stats.cache_misses))
        table.add_row("Hit rate", f"{stats.hit_rate:.0%}")

        self.console.print(table)

    def show_candidates(self, candidates: list[Candidate]) -> None:
        if not candidates:
            self.info("No candidate files found")
            return
        table = Table(title="Candidate Affected Files", border_style="yellow")
        table.add_column("File", style="cyan")
        table.add_column("Identifier", style="bold")
        table.add_column("Similarity", justify="right")
        for c in candidates:
            table.add_row(
                c.path,
                c.triggering_identifier,
                f"{c.score:.2f}" if c.score is not None else "-",
            )
        self.console.print(table)

    def show_agent_step(self, step: AgentStep) -> None:
        """Display an agent step with tool calls and results."""
        if step.thought:
            self.console.print(
                Panel(
                    Markdown(step.thought),
                    title=f"[bold]Step {step.iteration}[/bold] - Thinking",
                    border_style="blue",
                )
            )

        for tc in step.tool_calls:
            args_str = escape(", ".join(f"{k}={v!r}" for k, v in tc.arguments.items()))
            self.console.print(f"  [yellow]→[/yellow] [bold]{tc.name}[/bold]({args_str})")

        for tr in step.tool_results:
            content = tr.content
            if len(content) > 500:
                content = content[:500] + "\n... (truncated)"
            style = "red" if tr.is_error else "dim"
            self.console.print(f"  {content}", style=style, markup=False, highlight=False)

        if not step.tool_calls and not step.response:
            self.console.print(f"  [dim]Step {step.iteration}: empty reply[/dim]")

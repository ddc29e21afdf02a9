"""
Build Renderer - terminal output for a live build

Turns server events into rich console lines: agent chatter, file
operations, phase banners, review comments, bug reports and the final
summary.
"""

from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table

from cli.config import CLIConfig


AGENT_STYLES = {
    "architect": ("Kuba", "bold cyan"),
    "frontend-dev": ("Maja", "bold magenta"),
    "stylist": ("Leo", "bold yellow"),
    "reviewer": ("Nova", "bold blue"),
    "qa-tester": ("Rex", "bold green"),
}

SEVERITY_STYLES = {"high": "bold red", "medium": "yellow", "low": "dim"}


def agent_label(agent_id: Optional[str]) -> str:
    name, style = AGENT_STYLES.get(agent_id or "", (agent_id or "system", "bold white"))
    return f"[{style}]{name}[/{style}]"


class BuildRenderer:
    """Renders build events in the terminal"""

    def __init__(self, console: Console, config: CLIConfig):
        self.console = console
        self.config = config
        self.last_progress = 0

    def render_event(self, message: Dict[str, Any]) -> None:
        handler = getattr(self, f"_render_{message.get('type')}", None)
        if handler is not None:
            handler(message)
        elif self.config.verbose:
            self.console.print(f"[dim]{escape(str(message))}[/dim]")

    def _render_agent_thinking(self, message: Dict[str, Any]) -> None:
        if self.config.show_thinking:
            self.console.print(f"{agent_label(message.get('agentId'))} [dim italic]{escape(message.get('thought', ''))}[/dim italic]")

    def _render_agent_message(self, message: Dict[str, Any]) -> None:
        target = message.get("targetAgent")
        arrow = f" → {agent_label(target)}" if target else ""
        self.console.print(f"{agent_label(message.get('agentId'))}{arrow}: {escape(message.get('message', ''))}")

    def _render_file_created(self, message: Dict[str, Any]) -> None:
        lines = len((message.get("content") or "").splitlines())
        self.console.print(f"  [green]+ {escape(str(message.get('path')))}[/green] [dim]({lines} lines, {agent_label(message.get('agentId'))})[/dim]")

    def _render_file_modified(self, message: Dict[str, Any]) -> None:
        diff = message.get('diff') or {}
        self.console.print(
            f"  [yellow]~ {escape(str(message.get('path')))}[/yellow] "
            f"[green]+{diff.get('added', 0)}[/green] [red]-{diff.get('removed', 0)}[/red]"
        )

    def _render_file_deleted(self, message: Dict[str, Any]) -> None:
        self.console.print(f"  [red]- {escape(str(message.get('path')))}[/red]")

    def _render_phase_change(self, message: Dict[str, Any]) -> None:
        self.console.print(Rule(f"[bold]{message.get('to')}[/bold]"))

    def _render_phase_skipped(self, message: Dict[str, Any]) -> None:
        self.console.print(f"[yellow]⚠️  {message.get('phase')} skipped: {escape(str(message.get('reason')))}[/yellow]")

    def _render_build_progress(self, message: Dict[str, Any]) -> None:
        percent = int(message.get("percent") or 0)
        self.last_progress = percent
        filled = percent // 5
        bar = "█" * filled + "░" * (20 - filled)
        self.console.print(f"[dim]{bar} {percent:3d}%  {message.get('milestone', '')}[/dim]")

    def _render_review_comment(self, message: Dict[str, Any]) -> None:
        line = message.get("line")
        location = f"{message.get('file')}:{line}" if line is not None else message.get('file')
        self.console.print(f"  [blue]💬 {escape(str(location))}[/blue] {escape(message.get('comment', ''))}")

    def _render_bug_report(self, message: Dict[str, Any]) -> None:
        severity = message.get("severity", "medium")
        style = SEVERITY_STYLES.get(severity, "yellow")
        self.console.print(f"  [{style}]🐞 {severity.upper()}[/{style}] {escape(message.get('description', ''))}")

    def _render_agent_error(self, message: Dict[str, Any]) -> None:
        self.console.print(f"[red]✗ {agent_label(message.get('agentId'))}: {escape(str(message.get('message')))}[/red]")

    def _render_build_error(self, message: Dict[str, Any]) -> None:
        code = message.get("code")
        self.console.print(Panel(
            f"[red]{escape(str(message.get('message')))}[/red]" + (f"\n[dim]{code}[/dim]" if code else ""),
            title="Build failed",
            border_style="red",
        ))

    def _render_build_complete(self, message: Dict[str, Any]) -> None:
        self.render_summary(message.get("files") or [], message.get("summary", ""), message.get("tokenUsage"))

    def render_summary(self, files: List[Dict[str, Any]], summary: str, token_usage: Optional[Dict[str, Any]]) -> None:
        table = Table(title="Files", show_lines=False)
        table.add_column("Path", style="cyan")
        table.add_column("Lines", justify="right")
        table.add_column("Bytes", justify="right")
        table.add_column("Author")
        for entry in files:
            table.add_row(
                escape(entry.get("path", "")),
                str(entry.get("lineCount", "")),
                str(entry.get("byteSize", "")),
                agent_label(entry.get("agentId")),
            )
        self.console.print(table)

        body = escape(summary or "")
        if token_usage:
            body += (
                f"\n\n[dim]Tokens: {token_usage.get('input_tokens', 0)} in / "
                f"{token_usage.get('output_tokens', 0)} out over {token_usage.get('calls', 0)} calls[/dim]"
            )
        self.console.print(Panel(body, title="✓ Build complete", border_style="green"))

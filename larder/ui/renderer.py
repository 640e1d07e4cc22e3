"""Rich-based terminal UI rendering."""

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.status import Status
from rich.table import Table
from rich.text import Text

from larder.agent.messages import AgentMessage, AgentPhase, MessageStatus, Role


console = Console()

_PHASE_LABELS = {
    AgentPhase.THINKING: "Thinking...",
    AgentPhase.FETCHING: "Updating pantry...",
    AgentPhase.RESPONDING: "Answering...",
}


def show_welcome(backend: str, locale: str):
    """Display welcome banner."""
    console.print()
    console.print(
        Panel(
            f"[bold cyan]Larder[/bold cyan] - Pantry Assistant\n"
            f"Backend: [green]{backend}[/green]  |  Locale: [dim]{locale}[/dim]\n"
            f"Type [bold]/help[/bold] for commands, [bold]Ctrl+C[/bold] to cancel, [bold]Ctrl+D[/bold] to exit",
            border_style="cyan",
            padding=(1, 2),
        )
    )
    console.print()


def show_help():
    """Display help table."""
    table = Table(title="Commands", border_style="dim")
    table.add_column("Command", style="bold cyan", no_wrap=True)
    table.add_column("Description")
    table.add_row("/help", "Show this help message")
    table.add_row("/retry", "Retry the last request after an error")
    table.add_row("/reset", "Start a new conversation")
    table.add_row("/exit", "Exit Larder")
    table.add_row("", "")
    table.add_row("[bold]Shortcuts[/bold]", "")
    table.add_row("Ctrl+C", "Cancel the current request")
    table.add_row("Ctrl+D", "Exit")
    table.add_row("Up/Down", "Navigate input history")
    console.print(table)
    console.print()


class PhaseSpinner:
    """Spinner that follows the conversation phase. Use as a store listener."""

    def __init__(self):
        self._status: Status | None = None

    def __call__(self, store) -> None:
        label = _PHASE_LABELS.get(store.phase)
        if label is None:
            self.stop()
            return
        if self._status is None:
            self._status = Status(f"[dim]{label}[/dim]", spinner="dots", console=console)
            self._status.start()
        else:
            self._status.update(f"[dim]{label}[/dim]")

    def stop(self):
        if self._status is not None:
            self._status.stop()
            self._status = None


def show_tool_result(message: AgentMessage):
    """Display a tool result panel."""
    summary = message.data.get("summary") or message.content
    details = message.data.get("details") or []
    body = Text(summary, style="red" if message.status == MessageStatus.ERROR else "")
    for line in details:
        body.append(f"\n  {line}", style="dim")
    console.print(
        Panel(
            body,
            title=f"[dim]{message.tool_name or 'tool'}[/dim]",
            border_style="red" if message.status == MessageStatus.ERROR else "dim",
            padding=(0, 1),
        )
    )


def render_message(message: AgentMessage):
    """Render one history entry the user is meant to see."""
    if message.role == Role.TOOL:
        show_tool_result(message)
    elif message.status == MessageStatus.ERROR:
        show_error(message.content)
        show_info("Type /retry to try again.")
    elif message.content.strip():
        console.print(Markdown(message.content.strip()))


def show_error(message: str):
    """Display an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def show_info(message: str):
    """Display an info message."""
    console.print(f"[dim]{message}[/dim]")

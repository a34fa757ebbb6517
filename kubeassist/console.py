from typing import List, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from kubeassist.tools import tool_display_name

_console: Optional[Console] = None


def get_console() -> Console:
    global _console
    if _console is None:
        _console = Console()
    return _console


class ConsoleListener:
    """Renders one prompt turn on the terminal.

    Streamed deltas are printed as they arrive. The final text reported by
    response_complete is authoritative: it is kept in ``final_text`` and
    rendered as Markdown whenever the streamed text differs from it, which
    covers turns without streaming and turns whose deltas were dropped.
    """

    def __init__(self, console: Optional[Console] = None, title: str = "AI", show_reasoning: bool = False):
        self.console = console or get_console()
        self.title = title
        self.show_reasoning = show_reasoning
        self.final_text = ""
        self.error: Optional[Exception] = None
        self._streamed: List[str] = []

    def response_start(self) -> None:
        self._streamed = []
        self.final_text = ""
        self.error = None
        self.console.print(f"\n[bold cyan]🤖 {self.title}[/bold cyan]")
        self.console.print("[cyan]" + "─" * 80 + "[/cyan]")

    def response_delta(self, text: str) -> None:
        self._streamed.append(text)
        self.console.print(text, end="", markup=False, highlight=False)

    def response_complete(self, text: str) -> None:
        self.final_text = text
        if self._streamed:
            self.console.print()
        if text and "".join(self._streamed) != text:
            if self._streamed:
                self.console.print("[dim]Full response:[/dim]")
            self.console.print(Markdown(text))

    def response_failed(self, error: Exception) -> None:
        self.error = error
        if self._streamed:
            self.console.print()
        self.console.print(Panel(str(error), title="Error", border_style="red"))

    def reasoning_delta(self, text: str) -> None:
        if self.show_reasoning:
            self.console.print(text, end="", style="dim italic", markup=False, highlight=False)

    def reasoning_complete(self, text: str) -> None:
        if self.show_reasoning:
            self.console.print()

    def tool_start(self, tool_name: str) -> None:
        self.console.print(f"[dim]⚙ {tool_display_name(tool_name)}[/dim]")

    def tool_complete(self, tool_name: str) -> None:
        self.console.print(f"[dim]✓ {tool_name}[/dim]")

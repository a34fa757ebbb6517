"""
Command-line interface for kubeassist.

A thin host around AIOrchestrator: it wires the kubectl-backed tools into
the orchestrator, renders turns with ConsoleListener and never lets an AI
failure crash the process.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.prompt import Prompt
from rich.table import Table

from kubeassist import __version__
from kubeassist.cluster import KubectlClient
from kubeassist.config import Config, load_config
from kubeassist.console import ConsoleListener, get_console
from kubeassist.errors import AIError, RuntimeUnavailableError
from kubeassist.orchestrator import AIOrchestrator
from kubeassist.prompts import GLOBAL_SCOPE, chat_scope, contextual_prompt, diagnose_prompt, explain_prompt
from kubeassist.runtime import COPILOT_VERSION, download_cli, resolve_cli_path
from kubeassist.tools import ToolFactory
from kubeassist.utils import configure_logging, enable_trace_logging, set_verbose_commands

app = typer.Typer(
    name="kubeassist",
    help="AI assistant for diagnosing Kubernetes clusters",
    add_completion=False,
)

console = get_console()

EXIT_WORDS = ("exit", "quit")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs and all kubectl commands"),
    trace_dir: Optional[str] = typer.Option(
        None, "--trace-dir", help="Write a trace log of every external command to this directory"
    ),
) -> None:
    """AI assistant for diagnosing Kubernetes clusters."""
    configure_logging(logging.DEBUG if verbose else logging.WARNING)
    set_verbose_commands(verbose)
    if trace_dir:
        trace_file = enable_trace_logging(Path(trace_dir))
        console.print(f"[dim]Trace log: {trace_file}[/dim]")


def build_orchestrator(config: Config) -> AIOrchestrator:
    """Create an orchestrator with the kubectl-backed tool set installed."""
    cluster = KubectlClient(context=config.kubernetes_context, timeout=config.kubectl_timeout_seconds)
    factory = ToolFactory(cluster, max_tail_lines=config.ai_max_context_lines)
    orchestrator = AIOrchestrator(config)
    orchestrator.set_tools(factory.build_tools())
    return orchestrator


async def _run_prompt(orchestrator: AIOrchestrator, prompt: str) -> bool:
    listener = ConsoleListener(title=f"kubeassist ({orchestrator.active_model()})")
    try:
        await orchestrator.send(prompt, listener)
    except AIError as e:
        # The listener already rendered failures that happened mid-turn.
        if listener.error is None:
            console.print(f"[red]Error: {e}[/red]")
        return False
    return True


async def _one_shot(config: Config, prompt: str) -> bool:
    orchestrator = build_orchestrator(config)
    try:
        return await _run_prompt(orchestrator, prompt)
    finally:
        await orchestrator.stop()


def _print_help() -> None:
    console.print(
        "[dim]Commands: /skill NAME (empty to clear), /skills, /model NAME, /models, "
        "/reset, /help, exit[/dim]"
    )


async def _handle_command(orchestrator: AIOrchestrator, command: str) -> None:
    name, _, argument = command.partition(" ")
    argument = argument.strip()
    if name == "skill":
        await orchestrator.set_skill(argument)
        console.print(f"[green]Skill: {orchestrator.active_skill() or '(none)'}[/green]")
    elif name == "skills":
        _print_skills(orchestrator)
    elif name == "model":
        if not argument:
            console.print(f"[cyan]Model: {orchestrator.active_model()}[/cyan]")
            return
        await orchestrator.set_model(argument)
        console.print(f"[green]Model: {argument}[/green]")
    elif name == "models":
        try:
            models = await orchestrator.list_models()
        except AIError as e:
            console.print(f"[red]Error: {e}[/red]")
            return
        _print_models(models, orchestrator.active_model())
    elif name == "reset":
        await orchestrator.reset_session()
        console.print("[green]Conversation reset[/green]")
    else:
        _print_help()


async def _chat(config: Config, kind: str, name: str, namespace: str, skill: str, model: str) -> None:
    orchestrator = build_orchestrator(config)
    if skill:
        await orchestrator.set_skill(skill)
    if model:
        await orchestrator.set_model(model)

    scope = chat_scope(kind, name, namespace)
    try:
        if scope == GLOBAL_SCOPE:
            console.print("[i cyan]Ask anything about your cluster. Type 'exit' to quit, '/help' for help.[/i cyan]")
        else:
            console.print(f"[i cyan]Ask about {kind}/{name}. Type 'exit' to quit, '/help' for help.[/i cyan]")
            if config.ai_auto_diagnose:
                prompt = diagnose_prompt(kind, name, namespace)
                console.print(f"\n[bold green]👤 YOU[/bold green] {prompt}")
                await _run_prompt(orchestrator, prompt)

        while True:
            user_input = await asyncio.to_thread(Prompt.ask, f"\n[[bold yellow]{scope}[/bold yellow]] [bold green]👤 YOU[/bold green]")
            text = user_input.strip()
            if not text:
                continue
            if text.lower() in EXIT_WORDS:
                break
            if text.startswith("/"):
                await _handle_command(orchestrator, text[1:])
                continue
            await _run_prompt(orchestrator, contextual_prompt(text, kind, name, namespace))
    except (KeyboardInterrupt, EOFError, asyncio.CancelledError):
        console.print("\n[yellow]Chat interrupted.[/yellow]")
    finally:
        await orchestrator.stop()


def _print_skills(orchestrator: AIOrchestrator) -> None:
    active = orchestrator.active_skill()
    table = Table(title="Skills")
    table.add_column("Name", style="magenta")
    table.add_column("Description", style="green")
    table.add_column("Tools", style="cyan")
    for skill_name in orchestrator.skills().list():
        skill = orchestrator.skills().get(skill_name)
        marker = " *" if skill_name == active else ""
        table.add_row(skill_name + marker, skill.description, ", ".join(skill.tool_names))
    console.print(table)


def _print_models(models, active: str) -> None:
    table = Table(title="Models")
    table.add_column("ID", style="magenta")
    table.add_column("Name", style="green")
    for model in models:
        marker = " *" if model.id == active else ""
        table.add_row(model.id + marker, model.name)
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"kubeassist version {__version__} (copilot CLI {COPILOT_VERSION})")


@app.command()
def chat(
    kind: str = typer.Option("", "--kind", "-k", help="Resource kind to focus on, e.g. Deployment"),
    name: str = typer.Option("", "--name", "-n", help="Resource name to focus on"),
    namespace: Optional[str] = typer.Option(None, "--namespace", help="Namespace of the focused resource"),
    skill: str = typer.Option("", "--skill", "-s", help="Skill to activate"),
    model: str = typer.Option("", "--model", "-m", help="Model to use"),
) -> None:
    """Start an interactive chat with the cluster assistant."""
    config = load_config()
    if not config.is_ai_enabled():
        typer.echo("Error: AI features are disabled. Enable in config: ai_enabled=true", err=True)
        raise typer.Exit(1)
    if namespace is None:
        namespace = config.kubernetes_namespace if kind and name else ""
    try:
        asyncio.run(_chat(config, kind, name, namespace, skill, model))
    except KeyboardInterrupt:
        console.print("\n[yellow]Chat interrupted.[/yellow]")


@app.command()
def diagnose(
    kind: str = typer.Argument(..., help="Resource kind, e.g. Pod"),
    name: str = typer.Argument(..., help="Resource name"),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Resource namespace"),
) -> None:
    """Diagnose one resource and suggest fixes."""
    config = load_config()
    prompt = diagnose_prompt(kind, name, namespace or config.kubernetes_namespace)
    if not asyncio.run(_one_shot(config, prompt)):
        raise typer.Exit(1)


@app.command()
def explain(
    kind: str = typer.Argument(..., help="Resource kind, e.g. Deployment"),
    name: str = typer.Argument(..., help="Resource name"),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Resource namespace"),
) -> None:
    """Explain the state and configuration of one resource."""
    config = load_config()
    prompt = explain_prompt(kind, name, namespace or config.kubernetes_namespace)
    if not asyncio.run(_one_shot(config, prompt)):
        raise typer.Exit(1)


@app.command()
def models() -> None:
    """List the models available to the current account."""
    config = load_config()

    async def _list():
        orchestrator = AIOrchestrator(config)
        try:
            return await orchestrator.list_models(), orchestrator.active_model()
        finally:
            await orchestrator.stop()

    if not config.is_ai_enabled():
        typer.echo("Error: AI features are disabled. Enable in config: ai_enabled=true", err=True)
        raise typer.Exit(1)
    try:
        available, active = asyncio.run(_list())
    except AIError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    _print_models(available, active)


@app.command()
def skills() -> None:
    """List the available skills."""
    config = load_config()
    _print_skills(AIOrchestrator(config))


@app.command("install-runtime")
def install_runtime(
    force: bool = typer.Option(False, "--force", help="Download even if a CLI is already available"),
) -> None:
    """Locate the Copilot CLI, downloading the pinned version if needed."""
    try:
        path = str(download_cli()) if force else resolve_cli_path()
    except RuntimeUnavailableError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    if not path:
        typer.echo("Error: copilot CLI unavailable. Install manually: npm install -g @github/copilot", err=True)
        raise typer.Exit(1)
    console.print(f"[green]Copilot CLI: {path}[/green]")


if __name__ == "__main__":
    app()

"""Command execution utilities with verbose logging support.

kubectl is the only external command the tools run; every call goes through
``run_command`` so it can be echoed (-v) and traced.
"""

import subprocess
import time
from typing import Dict, List, Optional

from rich.console import Console

from kubeassist.utils.logging import (
    is_trace_enabled,
    log_command,
    log_command_result,
)


# Global flag for verbose command output
_VERBOSE_COMMANDS = False
_console = Console(stderr=True)

# Lines of stdout/stderr echoed in verbose mode before truncating.
_ECHO_LINES = 20


def set_verbose_commands(enabled: bool) -> None:
    """Enable or disable verbose command output.

    Args:
        enabled: True to echo every external command and its result
    """
    global _VERBOSE_COMMANDS
    _VERBOSE_COMMANDS = enabled


def is_verbose_commands() -> bool:
    """Check if verbose command output is enabled."""
    return _VERBOSE_COMMANDS


def _echo(label: str, style: str, output: str) -> None:
    lines = output.rstrip("\n").split("\n")
    _console.print(f"[bold {style}]  {label}:[/bold {style}]")
    for line in lines[:_ECHO_LINES]:
        _console.print(f"    {line}", markup=False)
    if len(lines) > _ECHO_LINES:
        _console.print(f"    [dim]... ({len(lines) - _ECHO_LINES} more lines)[/dim]")


def run_command(
    cmd: List[str],
    capture_output: bool = True,
    text: bool = True,
    check: bool = True,
    timeout: Optional[float] = None,
    env: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    """Run an external command with optional verbose output.

    This is a wrapper around subprocess.run that logs command execution
    when verbose or trace mode is enabled.

    Args:
        cmd: Command and arguments as list
        capture_output: Whether to capture stdout/stderr
        text: Whether to return output as text (vs bytes)
        check: Whether to raise exception on non-zero exit
        timeout: Command timeout in seconds
        env: Environment variables

    Returns:
        CompletedProcess instance with command results

    Raises:
        subprocess.CalledProcessError: If command fails and check=True
        subprocess.TimeoutExpired: If command times out
        FileNotFoundError: If the executable does not exist
    """
    cmd_str = " ".join(cmd)
    if is_trace_enabled():
        log_command(cmd_str)

    if _VERBOSE_COMMANDS:
        _console.print("\n[bold cyan]→ Executing command:[/bold cyan]")
        _console.print(f"  [dim]{cmd_str}[/dim]", markup=True)

    start_time = time.time()
    result = subprocess.run(
        cmd,
        capture_output=capture_output,
        text=text,
        check=False,  # We'll handle check ourselves
        timeout=timeout,
        env=env,
    )
    duration = time.time() - start_time

    if _VERBOSE_COMMANDS:
        _console.print(f"  [dim]Exit code: {result.returncode} ({duration:.2f}s)[/dim]")
        if result.stdout and text:
            _echo("stdout", "green", result.stdout)
        if result.stderr and text:
            _echo("stderr", "red", result.stderr)

    if is_trace_enabled():
        log_command_result(
            cmd_str,
            result.returncode,
            stdout=result.stdout if text else None,
            stderr=result.stderr if text else None,
            duration_seconds=duration
        )

    if check and result.returncode != 0:
        raise subprocess.CalledProcessError(
            result.returncode,
            cmd,
            output=result.stdout,
            stderr=result.stderr
        )

    return result

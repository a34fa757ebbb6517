"""Logging setup for kubeassist.

Two layers:
- structlog for the application log (``configure_logging``); modules use
  ``structlog.get_logger(__name__)`` with keyword event fields.
- An optional trace file (``enable_trace_logging``) recording every external
  command with its output, for debugging tool calls made by the agent.

Trace logs are written to: <directory>/kubeassist_trace.log
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog


# Global state for trace logging
_TRACE_ENABLED = False
_TRACE_LOGGER: Optional[logging.Logger] = None
_TRACE_FILE_PATH: Optional[Path] = None


def configure_logging(level: int = logging.WARNING) -> None:
    """Configure structlog for the application.

    At DEBUG level every session event and tool call is logged.
    At WARNING level and above only failures are reported.

    Args:
        level: Standard logging level (e.g., logging.DEBUG, logging.INFO).
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def enable_trace_logging(directory: Path) -> Path:
    """Enable trace logging to file.

    Args:
        directory: Directory for the trace log file (created if missing)

    Returns:
        Path of the trace log file
    """
    global _TRACE_ENABLED, _TRACE_LOGGER, _TRACE_FILE_PATH

    directory.mkdir(parents=True, exist_ok=True)
    _TRACE_ENABLED = True
    _TRACE_FILE_PATH = directory / "kubeassist_trace.log"

    _TRACE_LOGGER = logging.getLogger("kubeassist.trace")
    _TRACE_LOGGER.setLevel(logging.DEBUG)
    _TRACE_LOGGER.propagate = False
    _TRACE_LOGGER.handlers.clear()

    file_handler = logging.FileHandler(_TRACE_FILE_PATH, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)

    # Format: timestamp | level | message
    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(formatter)
    _TRACE_LOGGER.addHandler(file_handler)

    _TRACE_LOGGER.info("=" * 80)
    _TRACE_LOGGER.info("Trace logging initialized")
    _TRACE_LOGGER.info("=" * 80)
    return _TRACE_FILE_PATH


def disable_trace_logging() -> None:
    """Disable trace logging."""
    global _TRACE_ENABLED, _TRACE_LOGGER, _TRACE_FILE_PATH

    if _TRACE_LOGGER:
        _TRACE_LOGGER.info("Trace logging disabled")
        for handler in _TRACE_LOGGER.handlers:
            handler.close()
        _TRACE_LOGGER.handlers.clear()

    _TRACE_ENABLED = False
    _TRACE_LOGGER = None
    _TRACE_FILE_PATH = None


def is_trace_enabled() -> bool:
    """Check if trace logging is enabled."""
    return _TRACE_ENABLED


def get_trace_file_path() -> Optional[Path]:
    """Get the trace log file path, or None if not enabled."""
    return _TRACE_FILE_PATH


def log_command(command: str, cwd: Optional[str] = None) -> None:
    """Log command execution start.

    Args:
        command: Command string
        cwd: Working directory
    """
    if not _TRACE_ENABLED or not _TRACE_LOGGER:
        return

    _TRACE_LOGGER.info("-" * 80)
    _TRACE_LOGGER.info(f"COMMAND START | Timestamp: {datetime.now().isoformat()}")
    _TRACE_LOGGER.info(f"Command: {command}")
    if cwd:
        _TRACE_LOGGER.info(f"Working directory: {cwd}")


def log_command_result(
    command: str,
    exit_code: int,
    stdout: Optional[str] = None,
    stderr: Optional[str] = None,
    duration_seconds: Optional[float] = None
) -> None:
    """Log command execution result.

    Args:
        command: Command string
        exit_code: Command exit code
        stdout: Standard output
        stderr: Standard error
        duration_seconds: Execution duration
    """
    if not _TRACE_ENABLED or not _TRACE_LOGGER:
        return

    _TRACE_LOGGER.info(f"COMMAND END | {command} | exit code {exit_code}")
    if duration_seconds is not None:
        _TRACE_LOGGER.info(f"Duration: {duration_seconds:.3f}s")
    if stdout:
        _TRACE_LOGGER.info("STDOUT:")
        _TRACE_LOGGER.info(stdout)
    if stderr:
        _TRACE_LOGGER.info("STDERR:")
        _TRACE_LOGGER.info(stderr)
    _TRACE_LOGGER.info("-" * 80)

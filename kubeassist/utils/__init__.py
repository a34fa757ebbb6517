"""
Utility functions and helpers.

Common utilities for retry logic, command execution and logging.
"""

from kubeassist.utils.command import set_verbose_commands, is_verbose_commands, run_command
from kubeassist.utils.logging import (
    configure_logging,
    enable_trace_logging,
    disable_trace_logging,
    is_trace_enabled,
    get_trace_file_path,
)

__all__ = [
    "set_verbose_commands",
    "is_verbose_commands",
    "run_command",
    "configure_logging",
    "enable_trace_logging",
    "disable_trace_logging",
    "is_trace_enabled",
    "get_trace_file_path",
]

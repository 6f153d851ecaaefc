# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Output and Logging Utilities - Centralized logging control for upgrade runs

Key Features:
    - One timestamped log directory per run, shared by every module
    - File logging per module, with optional Rich console output
    - Thread-local ERROR collection so stage records carry their error text
    - Rich table summary of the run stages

Usage:
    >>> logger = setup_logging("upgrade_orchestrator", console_output=True)
    >>> start_collecting_errors()
    >>> logger.error("something failed")
    >>> stop_collecting_errors()
    ['something failed']
"""

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

# Keep urllib3 connection-pool chatter out of the run logs
logging.getLogger("urllib3").setLevel(logging.WARNING)


# ==============================================================================
# LOGGING UTILITIES - File-based logging with thread-safe error collection
# ==============================================================================


class _LoggingState:
    """Internal class to encapsulate logging state without global variables."""

    def __init__(self):
        self.current_log_dir = None
        self.custom_log_dir = None
        self.lock = threading.Lock()


# Module-level instance to store logging state
_logging_state = _LoggingState()

# Thread-local storage for error messages
_thread_local = threading.local()


def _get_thread_errors():
    """Get the error list for the current thread."""
    if not hasattr(_thread_local, "error_messages"):
        _thread_local.error_messages = []
    return _thread_local.error_messages


def _get_thread_collecting():
    """Check if the current thread is collecting errors."""
    return getattr(_thread_local, "collecting_errors", False)


def _set_thread_collecting(collecting):
    _thread_local.collecting_errors = collecting


class AutoErrorCollectorHandler(logging.Handler):
    """Handler that automatically collects ERROR messages when thread-local collection is enabled."""

    def __init__(self):
        super().__init__(level=logging.ERROR)
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record):
        """Capture ERROR level log messages if collection is enabled for this thread."""
        if record.levelno >= logging.ERROR and _get_thread_collecting():
            _get_thread_errors().append(record.getMessage())


def start_collecting_errors():
    """Start collecting ERROR messages for the current thread."""
    _set_thread_collecting(True)
    _get_thread_errors().clear()


def stop_collecting_errors():
    """Stop collecting ERROR messages for the current thread and return collected errors."""
    _set_thread_collecting(False)
    return _get_thread_errors().copy()


def get_collected_errors():
    """Get currently collected error messages for the current thread."""
    return _get_thread_errors().copy()


def set_log_directory(log_dir_path: str) -> None:
    """
    Set a custom log directory path.
    This function should be called before any logging operations begin.

    Args:
        log_dir_path (str): Path to the custom log directory
    """
    with _logging_state.lock:
        _logging_state.custom_log_dir = Path(log_dir_path)
        # Reset current log dir to force recreation with new base
        _logging_state.current_log_dir = None


def get_log_directory() -> Path:
    """
    Get or create the log directory for the current run.
    All modules will use the same log directory for a given run.

    Returns:
        Path: Path to the current log directory
    """
    with _logging_state.lock:
        if _logging_state.current_log_dir is None:
            if _logging_state.custom_log_dir is not None:
                base_log_dir = _logging_state.custom_log_dir
            else:
                base_log_dir = Path("logs")

            base_log_dir.mkdir(parents=True, exist_ok=True)

            if _logging_state.custom_log_dir is None:
                # Create timestamped directory for this run
                timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
                _logging_state.current_log_dir = base_log_dir / f"logs_{timestamp}"
            else:
                _logging_state.current_log_dir = base_log_dir
            _logging_state.current_log_dir.mkdir(exist_ok=True)

    return _logging_state.current_log_dir


def setup_logging(module_name: str, console_output: bool = False) -> logging.Logger:
    """
    Set up file-based logging for a specific module, optionally with console output.

    Handlers are only attached the first time a module name is seen, so
    repeated calls return the same configured logger.

    Args:
        module_name (str): Name of the module (e.g., 'upgrade_orchestrator', 'image_stager')
        console_output (bool): If True, add a Rich console handler

    Returns:
        logging.Logger: Configured logger instance
    """
    log_dir = get_log_directory()
    logger = logging.getLogger(module_name)

    with _logging_state.lock:
        if not logger.handlers:
            logger.setLevel(logging.INFO)

            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

            log_file = log_dir / f"{module_name}.log"
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

            if console_output:
                log_console = Console(width=200)
                console_handler = RichHandler(
                    console=log_console,
                    rich_tracebacks=True,
                    markup=False,
                    show_time=True,
                    show_level=True,
                    show_path=False,
                    omit_repeated_times=False,
                    log_time_format="[%X]",
                )
                console_handler.setLevel(logging.INFO)
                console_handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
                logger.addHandler(console_handler)

            logger.addHandler(AutoErrorCollectorHandler())

            # Prevent propagation to root logger to avoid duplicate output
            logger.propagate = False

    return logger


# ==============================================================================
# RUN SUMMARY - Rich table printed when a run ends
# ==============================================================================


def build_summary_table(stages: List[Dict[str, Any]], title: str = "Fabric Upgrade Summary") -> Table:
    """
    Build a Rich table from stage summary dictionaries.

    Args:
        stages (List[Dict[str, Any]]): Items with name, status, duration and error_messages
        title (str): Table title

    Returns:
        Table: Renderable summary table
    """
    status_styles = {"completed": "green", "skipped": "yellow", "failed": "bold red", "running": "cyan"}
    table = Table(title=title)
    table.add_column("Stage", style="bold")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Details")

    for stage in stages:
        status = stage.get("status", "")
        style = status_styles.get(status, "white")
        details = "; ".join(stage.get("error_messages") or []) or stage.get("note") or ""
        table.add_row(
            stage.get("name", ""),
            f"[{style}]{status}[/{style}]",
            f"{stage.get('duration', 0.0):.0f}s",
            details,
        )
    return table


def print_run_summary(stages: List[Dict[str, Any]], console: Optional[Console] = None) -> None:
    """Print the stage summary table to the console."""
    console = console or Console()
    console.print(build_summary_table(stages))

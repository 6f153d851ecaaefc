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
Error handlers for the fabric upgrade flow.
This module implements the failure handlers the orchestrator runs, in
registration order, after any stage fails.
"""

from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from FabricMode.output_manager import setup_logging

from .exceptions import FabricUpgradeError

# Error Handler Registry
_ERROR_HANDLER_REGISTRY: Dict[str, Dict[str, Any]] = {}

FAULT_SEVERITIES = ("critical", "major")


def register_error_handler(name: Optional[str] = None):
    """
    Decorator to register an error handler with metadata.

    Args:
        name (Optional[str]): Handler name (defaults to function name)

    Usage:
        @register_error_handler()
        def my_error_handler(stage_name, error, context):
            ...
    """

    def decorator(func: Callable) -> Callable:
        handler_name = name or func.__name__
        _ERROR_HANDLER_REGISTRY[handler_name] = {
            "function": func,
            "name": handler_name,
        }

        @wraps(func)
        def wrapper(*args, **kwargs):
            return func(*args, **kwargs)

        return wrapper

    return decorator


def get_registered_handlers() -> Dict[str, Dict[str, Any]]:
    """
    Get all registered error handlers.

    Returns:
        Dict[str, Dict[str, Any]]: Dictionary mapping handler names to metadata
    """
    return _ERROR_HANDLER_REGISTRY.copy()


def get_handler_names() -> List[str]:
    """
    Get list of all registered error handler names.

    Returns:
        List[str]: List of handler names
    """
    return sorted(_ERROR_HANDLER_REGISTRY.keys())


def run_error_handlers(stage_name: str, error: Exception, context: Dict[str, Any]) -> List[str]:
    """
    Run every registered handler in registration order.

    A handler that raises is logged and does not stop the others.

    Returns:
        List[str]: Names of the handlers that completed
    """
    orchestrator = context.get("orchestrator")
    logger = orchestrator.logger if orchestrator else setup_logging("error_handlers")

    completed = []
    for handler_name, handler_info in _ERROR_HANDLER_REGISTRY.items():
        try:
            handler_info["function"](stage_name, error, context)
            completed.append(handler_name)
        except Exception as e:
            logger.error(f"Error handler '{handler_name}' failed: {str(e)}")
    return completed


@register_error_handler()
def error_handler_log_active_faults(stage_name: str, error: Exception, context: Dict[str, Any]) -> None:
    """
    Log the critical and major faults UCSM currently reports.

    Args:
        stage_name (str): The stage that failed
        error (Exception): The error that occurred
        context (Dict[str, Any]): Holds the orchestrator and the run context
    """
    orchestrator = context.get("orchestrator")
    logger = orchestrator.logger if orchestrator else setup_logging("error_handlers")
    logger.error(f"Stage {stage_name} failed: {error}")

    run_context = context.get("run_context")
    session = run_context.session if run_context else None
    if session is None:
        logger.info("No active UCSM session, skipping fault summary")
        return

    try:
        faults = session.read_class("faultInst")
    except FabricUpgradeError as e:
        logger.warning(f"Could not read active faults: {str(e)}")
        return

    relevant = [fault for fault in faults if (fault.get("severity") or "").lower() in FAULT_SEVERITIES]
    if not relevant:
        logger.info("No critical or major faults reported by UCSM")
        return

    logger.error(f"UCSM reports {len(relevant)} critical/major fault(s):")
    for fault in relevant:
        logger.error(
            f"  [{fault.get('severity')}] {fault.get('code')} {fault.get('dn')}: {fault.get('descr')}"
        )


@register_error_handler()
def error_handler_teardown_session(stage_name: str, error: Exception, context: Dict[str, Any]) -> None:
    """
    Log out of UCSM so a failed run does not leave a session behind.

    Args:
        stage_name (str): The stage that failed
        error (Exception): The error that occurred
        context (Dict[str, Any]): Holds the orchestrator and the run context
    """
    orchestrator = context.get("orchestrator")
    run_context = context.get("run_context")
    if orchestrator is None or run_context is None or run_context.session is None:
        return

    orchestrator.logger.info(f"Closing UCSM session after failure in {stage_name}")
    orchestrator.session_manager.disconnect(run_context.session)
    run_context.session = None

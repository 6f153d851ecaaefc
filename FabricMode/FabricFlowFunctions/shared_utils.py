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
Shared utilities module for common functionality across FabricFlowFunctions.

This module provides the fixed-interval polling loop used by the image
stager and the pending-activity wait, plus small helpers shared by the
upgrade steps.
"""

import logging
import time
from typing import Any, Callable, Tuple

from .exceptions import UpgradeTimeoutError


def rounds_for_timeout(timeout: int, check_interval: int) -> int:
    """
    Convert a total timeout into a number of polling rounds.

    The first check is immediate, so the last one lands at the full timeout.

    Args:
        timeout (int): Total wait budget in seconds
        check_interval (int): Seconds between polls

    Returns:
        int: Number of checks, at least 1
    """
    if check_interval <= 0:
        return 1
    return max(1, timeout // check_interval + 1)


def poll_until(
    *,
    description: str,
    probe: Callable[[], Tuple[bool, Any]],
    check_interval: int,
    max_rounds: int,
    logger: logging.Logger,
) -> Any:
    """
    Call probe every check_interval seconds until it reports completion.

    The probe raises for terminal failures; it returns (False, detail) while
    the remote operation is still pending and (True, result) when done.

    Args:
        description (str): What is being waited for, for log messages
        probe (Callable[[], Tuple[bool, Any]]): Single status check
        check_interval (int): Fixed seconds between checks
        max_rounds (int): Number of checks before giving up
        logger (logging.Logger): Logger instance

    Returns:
        Any: The result returned by the probe on completion

    Raises:
        UpgradeTimeoutError: If the round budget is exhausted
    """
    for round_number in range(1, max_rounds + 1):
        done, detail = probe()
        if done:
            logger.info(f"{description} completed after {round_number} check(s)")
            return detail
        logger.info(f"{description} still pending ({detail}), check {round_number}/{max_rounds}")
        if round_number < max_rounds:
            time.sleep(check_interval)

    logger.error(f"{description} did not complete within {max_rounds} checks at {check_interval}s intervals")
    raise UpgradeTimeoutError(f"{description} timed out after {(max_rounds - 1) * check_interval} seconds")


def versions_match(current_version: str, expected_version: str) -> bool:
    """
    Compare two UCSM version strings, ignoring case and surrounding whitespace.
    """
    if current_version is None or expected_version is None:
        return False
    return current_version.strip().upper() == expected_version.strip().upper()

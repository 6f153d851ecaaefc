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
Type definitions for the fabric interconnect upgrade framework.

This module contains the core data structures shared by the upgrade
components, including firmware channels, transfer and activation states,
controller roles, polling settings and the per-run context.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class BundleChannel(Enum):
    """Firmware bundle channels, named after the letter UCSM appends to a version."""

    INFRA = "A"
    BLADE = "B"
    RACK = "C"


class TransferStatus(Enum):
    """Upload state of a single firmware bundle in the UCSM catalogue."""

    ABSENT = "absent"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"


class ActivationState(Enum):
    """
    Aggregated firmware activation state of one fabric interconnect.

    States:
        UNKNOWN: operState not recognized (keep polling)
        IN_PROGRESS: any of the activating/rebooting/updating substates
        READY: activation finished successfully (terminal)
        FAILED: bad-image, failed or faulty-state (terminal)
    """

    UNKNOWN = "unknown"
    IN_PROGRESS = "in-progress"
    READY = "ready"
    FAILED = "failed"


class PollDecision(Enum):
    """Outcome of one activation polling round."""

    DONE = "done"
    FAIL = "fail"
    WAIT = "wait"
    TIMEOUT = "timeout"


class ControllerRole(Enum):
    """Cluster leadership of a fabric interconnect."""

    PRIMARY = "primary"
    SUBORDINATE = "subordinate"


class ActivationOutcome(Enum):
    """Result of the infrastructure upgrade step."""

    ALREADY_AT_TARGET = "already-at-target"
    ACTIVATED = "activated"


@dataclass(frozen=True)
class Credentials:
    """UCSM login credentials."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='****')"


@dataclass(frozen=True)
class FirmwareBundle:
    """A firmware bundle file required for the run."""

    filename: str
    channel: BundleChannel


@dataclass
class ImageSource:
    """Where UCSM gets bundle files from: pushed from a local directory or pulled from a server."""

    protocol: str = "local"
    directory: str = "."
    server: Optional[str] = None
    remote_path: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


@dataclass
class PollingSettings:
    """Fixed polling intervals (seconds) and round budgets for every wait loop."""

    reachability_max_attempts: int = 20
    reachability_poll_interval: int = 30
    transfer_poll_interval: int = 30
    transfer_timeout: int = 600
    infra_settle_seconds: int = 300
    activation_poll_interval: int = 60
    activation_max_rounds: int = 20
    ack_poll_interval: int = 60
    ack_max_rounds: int = 40
    ack_settle_seconds: int = 300
    max_reconnects: int = 20


@dataclass
class RunConfig:
    """Validated input for one upgrade run."""

    endpoint: str
    credentials: Credentials
    target_version: str
    image_source: ImageSource
    host_firmware_policy: Optional[str] = None
    infra_only: bool = False
    protocol: str = "https"
    port: int = 443
    verify_ssl: bool = False
    request_timeout: int = 120
    polling: PollingSettings = field(default_factory=PollingSettings)
    log_directory: Optional[str] = None
    console_output: bool = True


@dataclass
class RunContext:
    """
    Working state of one run. Lives for the process lifetime only.

    The session is replaced, never mutated, whenever it is re-established.
    """

    session: Optional[Any] = None
    infra_only: bool = False
    bundles: List[FirmwareBundle] = field(default_factory=list)
    activated_version: Optional[str] = None
    primary_model: Optional[str] = None
    roles: Dict[ControllerRole, str] = field(default_factory=dict)

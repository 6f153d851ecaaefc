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
Shared mock classes for fabric upgrade testing.

This module provides an in-memory stand-in for a UCSM session and a session
manager mock, so component and end-to-end tests run without a UCS domain.

Usage:
    from FabricMode.TestFiles.test_mocks import FakeUcsSession, MockSessionManager
"""

import copy
from typing import Any, Callable, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

from FabricMode.FabricFlowFunctions.ucs_session import ManagedObject
from FabricMode.flow_types import (
    Credentials,
    ImageSource,
    PollingSettings,
    RunConfig,
)

WRITE_METHODS = ("set_mo", "transaction", "upload_file")


class FakeUcsSession:
    """
    In-memory UCSM object store with the UcsSession interface.

    Reads of a dn can be scripted with a list of attribute dicts or exceptions;
    each read consumes one entry and the last entry repeats.
    """

    def __init__(self, host: str = "192.168.1.10"):
        self.host = host
        self.objects: Dict[str, ManagedObject] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.uploaded_files: List[str] = []
        self.transactions: List[List[ManagedObject]] = []
        self.logged_out = False
        self.on_set_mo: Optional[Callable[["FakeUcsSession", ManagedObject], None]] = None
        self.on_transaction: Optional[Callable[["FakeUcsSession", List[ManagedObject]], None]] = None
        self._scripts: Dict[str, List[Any]] = {}
        self._failures: Dict[str, List[Exception]] = {}

    # === SETUP HELPERS ===
    def add(self, class_id: str, dn: str, **attributes) -> ManagedObject:
        """Store an object, replacing any object with the same dn."""
        mo = ManagedObject(class_id=class_id, dn=dn, attributes={"dn": dn, **attributes})
        self.objects[dn] = mo
        return mo

    def remove(self, dn: str) -> None:
        self.objects.pop(dn, None)

    def script(self, class_id: str, dn: str, states: List[Any]) -> None:
        """Script successive read_dn results for one dn (dicts of attributes or exceptions)."""
        self._scripts[dn] = [(class_id, state) for state in states]

    def fail_next(self, method: str, error: Exception) -> None:
        """Make the next call of a method raise."""
        self._failures.setdefault(method, []).append(error)

    def write_calls(self) -> List[Tuple[str, Any]]:
        """Calls that change UCSM state."""
        return [call for call in self.calls if call[0] in WRITE_METHODS]

    def objects_of_class(self, class_id: str) -> List[ManagedObject]:
        return [mo for mo in self.objects.values() if mo.class_id == class_id]

    # === SESSION INTERFACE ===
    def read_dn(self, dn: str) -> Optional[ManagedObject]:
        self._record("read_dn", dn)
        script = self._scripts.get(dn)
        if script:
            class_id, state = script[0] if len(script) == 1 else script.pop(0)
            if isinstance(state, Exception):
                raise state
            self.add(class_id, dn, **state)
        mo = self.objects.get(dn)
        return copy.deepcopy(mo) if mo else None

    def read_class(self, class_id: str, filters: Optional[Dict[str, str]] = None) -> List[ManagedObject]:
        self._record("read_class", (class_id, filters))
        return [
            copy.deepcopy(mo)
            for mo in self.objects.values()
            if mo.class_id == class_id
            and all(mo.get(name) == value for name, value in (filters or {}).items())
        ]

    def read_children(self, dn: str, class_id: Optional[str] = None) -> List[ManagedObject]:
        self._record("read_children", (dn, class_id))
        prefix = f"{dn}/"
        return [
            copy.deepcopy(mo)
            for mo in self.objects.values()
            if mo.dn.startswith(prefix) and (class_id is None or mo.class_id == class_id)
        ]

    def set_mo(self, mo: ManagedObject) -> ManagedObject:
        self._record("set_mo", copy.deepcopy(mo))
        stored = self._store(mo)
        if self.on_set_mo:
            self.on_set_mo(self, mo)
        return copy.deepcopy(stored)

    def transaction(self, mos: List[ManagedObject]) -> List[ManagedObject]:
        self._record("transaction", copy.deepcopy(mos))
        self.transactions.append(copy.deepcopy(mos))
        committed = [copy.deepcopy(self._store(mo)) for mo in mos]
        if self.on_transaction:
            self.on_transaction(self, mos)
        return committed

    def upload_file(self, file_path: str) -> None:
        self._record("upload_file", file_path)
        self.uploaded_files.append(file_path)

    def logout(self) -> None:
        self._record("logout", None)
        self.logged_out = True

    def _record(self, method: str, argument: Any) -> None:
        self.calls.append((method, argument))
        failures = self._failures.get(method)
        if failures:
            raise failures.pop(0)

    def _store(self, mo: ManagedObject) -> ManagedObject:
        attributes = {name: value for name, value in mo.attributes.items() if name != "status"}
        existing = self.objects.get(mo.dn)
        if existing is not None:
            existing.attributes.update(attributes)
            return existing
        return self.add(mo.class_id, mo.dn, **attributes)


class MockSessionManager:
    """
    Mock implementation of SessionManager.

    connect() hands out the given session every time unless side effects are
    configured on the mock; ping_endpoint() reports the host reachable.
    """

    def __init__(self, session: Optional[FakeUcsSession] = None, endpoint: str = "192.168.1.10"):
        self.endpoint = endpoint
        self.session = session or FakeUcsSession(endpoint)
        self.ping_endpoint = MagicMock(name="ping_endpoint", return_value=True)
        self.connect = MagicMock(name="connect", return_value=self.session)
        self.disconnect = MagicMock(name="disconnect")


def build_domain(
    session: Optional[FakeUcsSession] = None,
    running_version: str = "4.0(4b)",
    model: str = "UCS-FI-6454",
    clustered: bool = True,
) -> FakeUcsSession:
    """Populate a fake session with a healthy UCS domain: A primary, B subordinate."""
    session = session or FakeUcsSession()
    session.add("firmwareRunning", "sys/mgmt/fw-system", deployment="system", version=running_version)
    session.add("mgmtEntity", "sys/mgmt-entity-A", id="A", leadership="primary")
    if clustered:
        session.add("mgmtEntity", "sys/mgmt-entity-B", id="B", leadership="subordinate")
    for switch_id in ("A", "B") if clustered else ("A",):
        session.add("networkElement", f"sys/switch-{switch_id}", id=switch_id, model=model)
        session.add("firmwareBootUnit", f"sys/switch-{switch_id}/mgmt/fw-boot-def/bootunit-combined", operState="ready")
        session.add("firmwareStatus", f"sys/switch-{switch_id}/mgmt/fw-status", operState="ready")
    return session


def add_catalogue_package(session: FakeUcsSession, filename: str, deleted: bool = False) -> ManagedObject:
    """Add a downloaded firmware package with one constituent image."""
    package = session.add("firmwareDistributable", f"sys/fw-catalogue/distrib-{filename}", name=filename)
    session.add(
        "firmwareDistImage",
        f"{package.dn}/image-{filename}",
        name=filename,
        imageDeleted="yes" if deleted else "no",
    )
    return package


def complete_downloads(session: FakeUcsSession, mo: ManagedObject) -> None:
    """on_set_mo hook: a submitted firmwareDownloader finishes at once."""
    if mo.class_id != "firmwareDownloader":
        return
    filename = mo.get("fileName")
    session.objects[mo.dn].attributes["transferState"] = "downloaded"
    add_catalogue_package(session, filename)


def build_run_config(
    image_directory: str = ".",
    target_version: str = "4.1(3a)",
    host_firmware_policy: Optional[str] = None,
    infra_only: bool = True,
    log_directory: Optional[str] = None,
) -> RunConfig:
    """RunConfig with small polling budgets for tests."""
    return RunConfig(
        endpoint="192.168.1.10",
        credentials=Credentials("admin", "password"),
        target_version=target_version,
        image_source=ImageSource(protocol="local", directory=image_directory),
        host_firmware_policy=host_firmware_policy,
        infra_only=infra_only,
        polling=PollingSettings(
            reachability_max_attempts=3,
            activation_max_rounds=5,
            ack_max_rounds=5,
            max_reconnects=3,
        ),
        log_directory=log_directory,
        console_output=False,
    )

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
Upgrade Progress Tracking

Records one StageExecution per orchestrator stage (connect, stage images,
infra upgrade, activation, host policy, disconnect) and keeps
upgrade_progress.json in the run log directory in sync after every change.

JSON layout:
```json
{
  "timestamp": "2025-01-01T10:00:00",
  "run": {"status": "Running|Completed|Failed", "target_version": "4.1(3a)", "failure_reason": null},
  "stages": [
    {"name": "stage_images", "status": "completed", "duration": 312.4, "error_messages": []}
  ]
}
```

Usage:
    >>> tracker = FlowProgressTracker(Path("logs/upgrade_progress.json"))
    >>> tracker.start_stage("connect")
    >>> tracker.complete_stage("connect")
"""

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class StageExecution:
    """Execution record of one orchestrator stage."""

    name: str
    started_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    duration: float = 0.0
    status: str = "running"  # "running", "completed", "skipped", "failed"
    note: Optional[str] = None
    error_kind: Optional[str] = None
    error_messages: List[str] = field(default_factory=list)

    def finish(self, status: str) -> None:
        """Close the record with a final status."""
        self.completed_at = time.time()
        self.duration = self.completed_at - self.started_at
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        """Convert StageExecution to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "status": self.status,
            "started_at": datetime.fromtimestamp(self.started_at).isoformat(),
            "completed_at": datetime.fromtimestamp(self.completed_at).isoformat() if self.completed_at else None,
            "duration": self.duration,
            "note": self.note,
            "error_kind": self.error_kind,
            "error_messages": self.error_messages,
        }


class FlowProgressTracker:
    """Stage-level progress tracker with JSON persistence."""

    def __init__(self, json_file_path: Path, target_version: Optional[str] = None):
        self.json_file_path = Path(json_file_path)
        self.target_version = target_version
        self.stages: List[StageExecution] = []
        self.status = "Running"
        self.failure_reason: Optional[str] = None
        self._lock = threading.RLock()
        self.logger = logging.getLogger(__name__)

    def start_stage(self, name: str) -> StageExecution:
        """Open a new stage record."""
        with self._lock:
            stage = StageExecution(name=name)
            self.stages.append(stage)
            self._write_json()
            return stage

    def complete_stage(self, name: str, note: Optional[str] = None) -> None:
        """Mark the most recent stage with this name completed."""
        self._finish(name, "completed", note=note)

    def skip_stage(self, name: str, note: Optional[str] = None) -> None:
        """Record a stage that was not needed for this run."""
        with self._lock:
            stage = StageExecution(name=name, note=note)
            self.stages.append(stage)
            stage.finish("skipped")
            self._write_json()

    def fail_stage(
        self, name: str, error_kind: str, error_messages: Optional[List[str]] = None, note: Optional[str] = None
    ) -> None:
        """Mark the most recent stage with this name failed and carry its error text."""
        with self._lock:
            stage = self.find_stage(name)
            if stage is None:
                return
            stage.error_kind = error_kind
            stage.error_messages = list(error_messages or [])
            self._finish(name, "failed", note=note)

    def set_run_completed(self) -> None:
        with self._lock:
            self.status = "Completed"
            self._write_json()

    def set_run_failed(self, failure_reason: str) -> None:
        with self._lock:
            self.status = "Failed"
            self.failure_reason = failure_reason
            self._write_json()

    def find_stage(self, name: str) -> Optional[StageExecution]:
        """Return the most recent record for a stage name."""
        with self._lock:
            for stage in reversed(self.stages):
                if stage.name == name:
                    return stage
        return None

    def get_stage_dicts(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [stage.to_dict() for stage in self.stages]

    def _finish(self, name: str, status: str, note: Optional[str] = None) -> None:
        with self._lock:
            stage = self.find_stage(name)
            if stage is None:
                return
            if note:
                stage.note = note
            stage.finish(status)
            self._write_json()

    def _write_json(self) -> None:
        """Write the current progress data to JSON file."""
        try:
            json_data = {
                "timestamp": datetime.now().isoformat(),
                "run": {
                    "status": self.status,
                    "target_version": self.target_version,
                    "failure_reason": self.failure_reason,
                },
                "stages": [stage.to_dict() for stage in self.stages],
            }

            self.json_file_path.parent.mkdir(parents=True, exist_ok=True)
            # Write atomically by writing to temp file then renaming
            temp_path = self.json_file_path.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(json_data, f, indent=2)

            temp_path.replace(self.json_file_path)

        except Exception as e:
            self.logger.warning(f"Failed to write progress JSON file: {str(e)}")

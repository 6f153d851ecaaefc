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
Firmware version parsing and bundle filename construction.

Bundle names must match the UCSM firmware catalogue exactly:
    infra: <family-prefix>-k9-bundle-infra.<bundleVersion>.A.bin
    blade: ucs-k9-bundle-b-series.<bundleVersion>.B.bin
    rack:  ucs-k9-bundle-c-series.<bundleVersion>.C.bin
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from FabricMode.flow_types import BundleChannel, FirmwareBundle

from .exceptions import ConfigurationError

VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\(([0-9A-Za-z]+)\)$")

# Checked in order; UCS Mini (6324) must win over the generic 63xx pattern
MODEL_FAMILY_PREFIXES = (
    (re.compile(r"6324"), "ucs-mini"),
    (re.compile(r"63\d\d"), "ucs-6300"),
    (re.compile(r"64\d{2,3}"), "ucs-6400"),
    (re.compile(r"65\d\d"), "ucs-6500"),
)
DEFAULT_FAMILY_PREFIX = "ucs"


@dataclass(frozen=True)
class TargetVersion:
    """
    A UCSM firmware version such as "4.1(3a)".

    Attributes:
        version: The version as UCSM reports it
    """

    version: str

    @classmethod
    def parse(cls, version: str) -> "TargetVersion":
        """
        Validate a version string.

        Raises:
            ConfigurationError: If the string is not of the form X.Y(Z)
        """
        version = (version or "").strip()
        if not VERSION_PATTERN.match(version):
            raise ConfigurationError(f"Invalid firmware version '{version}', expected a form like 4.1(3a)")
        return cls(version)

    @property
    def bundle_version(self) -> str:
        """Dotted form used in bundle filenames: 4.1(3a) -> 4.1.3a."""
        return self.version.replace("(", ".").replace(")", "")

    def channel_tag(self, channel: BundleChannel) -> str:
        """Version with the channel letter appended: 4.1(3a) -> 4.1(3a)A."""
        return f"{self.version}{channel.value}"

    @property
    def infra_tag(self) -> str:
        return self.channel_tag(BundleChannel.INFRA)

    @property
    def blade_tag(self) -> str:
        return self.channel_tag(BundleChannel.BLADE)

    @property
    def rack_tag(self) -> str:
        return self.channel_tag(BundleChannel.RACK)

    def __str__(self) -> str:
        return self.version


def family_prefix_for_model(model: Optional[str]) -> str:
    """
    Pick the infra bundle filename prefix for a fabric interconnect model.

    Args:
        model (Optional[str]): Model string, e.g. "UCS-FI-6454"

    Returns:
        str: Prefix such as "ucs-6400", or "ucs" when no family matches
    """
    for pattern, prefix in MODEL_FAMILY_PREFIXES:
        if model and pattern.search(model):
            return prefix
    return DEFAULT_FAMILY_PREFIX


def infra_bundle_filename(version: TargetVersion, model: Optional[str]) -> str:
    return f"{family_prefix_for_model(model)}-k9-bundle-infra.{version.bundle_version}.A.bin"


def blade_bundle_filename(version: TargetVersion) -> str:
    return f"ucs-k9-bundle-b-series.{version.bundle_version}.B.bin"


def rack_bundle_filename(version: TargetVersion) -> str:
    return f"ucs-k9-bundle-c-series.{version.bundle_version}.C.bin"


def required_bundles(version: TargetVersion, model: Optional[str], infra_only: bool) -> List[FirmwareBundle]:
    """
    Build the bundle list for a run: infra always, blade and rack unless infra-only.
    """
    bundles = [FirmwareBundle(infra_bundle_filename(version, model), BundleChannel.INFRA)]
    if not infra_only:
        bundles.append(FirmwareBundle(blade_bundle_filename(version), BundleChannel.BLADE))
        bundles.append(FirmwareBundle(rack_bundle_filename(version), BundleChannel.RACK))
    return bundles

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
Image Stager
This module makes sure every firmware bundle a run needs is present in the
UCSM firmware catalogue. Bundles are handled one at a time. A bundle that is
already uploaded with no deleted constituent image is left alone, so staging
can be re-run safely after a partial failure.
"""

import logging
import os
from typing import List, Optional

from FabricMode.flow_types import FirmwareBundle, ImageSource, RunContext, TransferStatus

from .cluster_state import FIRMWARE_CATALOGUE_DN
from .exceptions import PreconditionFailedError, RemoteOperationFailedError, StaleStateError
from .shared_utils import poll_until, rounds_for_timeout
from .ucs_session import ManagedObject

REMOTE_PROTOCOLS = ("scp", "sftp", "ftp", "tftp")


class ImageStager:
    """Uploads missing firmware bundles and waits for UCSM to accept them."""

    def __init__(
        self,
        image_source: ImageSource,
        *,
        poll_interval: int = 30,
        timeout: int = 600,
        logger: logging.Logger = None,
    ):
        """
        Initialize the image stager.

        Args:
            image_source (ImageSource): Local directory or remote server holding the bundles
            poll_interval (int): Seconds between transfer state checks
            timeout (int): Total seconds allowed for one bundle transfer
            logger (logging.Logger): Logger instance
        """
        self.image_source = image_source
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def find_distributable(self, session, filename: str) -> Optional[ManagedObject]:
        """Return the catalogue package for a bundle file, if UCSM has one."""
        packages = session.read_class("firmwareDistributable", {"name": filename})
        return packages[0] if packages else None

    def find_downloader(self, session, filename: str) -> Optional[ManagedObject]:
        """Return the download task record for a bundle file, if one exists."""
        tasks = session.read_class("firmwareDownloader", {"fileName": filename})
        return tasks[0] if tasks else None

    def has_deleted_images(self, session, package: ManagedObject) -> bool:
        """True if any constituent image of a catalogue package is marked deleted."""
        images = session.read_children(package.dn, "firmwareDistImage")
        return any((image.get("imageDeleted") or "").lower() == "yes" for image in images)

    def get_transfer_status(self, session, filename: str) -> TransferStatus:
        """
        Determine the upload state of one bundle.

        Args:
            session: Active UCSM session
            filename (str): Bundle file name

        Returns:
            TransferStatus: UPLOADED only when the package exists with no deleted images
        """
        package = self.find_distributable(session, filename)
        if package is not None:
            if not self.has_deleted_images(session, package):
                return TransferStatus.UPLOADED
            self.logger.warning(f"Bundle {filename} is in the catalogue but has deleted images, re-upload needed")

        task = self.find_downloader(session, filename)
        if task is not None:
            transfer_state = (task.get("transferState") or "").lower()
            if transfer_state == "failed":
                return TransferStatus.FAILED
            if transfer_state == "downloading":
                return TransferStatus.UPLOADING
        return TransferStatus.ABSENT

    def stage_images(self, context: RunContext, bundles: List[FirmwareBundle]) -> List[str]:
        """
        Upload every bundle that is not already in the catalogue.

        Args:
            context (RunContext): Run context holding the active session
            bundles (List[FirmwareBundle]): Bundles required for the run

        Returns:
            List[str]: File names that were transferred in this run

        Raises:
            StaleStateError: A failed download task for a needed bundle exists
            PreconditionFailedError: A local bundle file is missing
            RemoteOperationFailedError: UCSM reported the transfer failed
            UpgradeTimeoutError: The transfer did not finish in time
        """
        staged = []
        for bundle in bundles:
            session = context.session
            status = self.get_transfer_status(session, bundle.filename)
            self.logger.info(f"Bundle {bundle.filename} ({bundle.channel.name.lower()}): {status.value}")

            if status == TransferStatus.UPLOADED:
                self.logger.info(f"Skipping upload of {bundle.filename}, already in the catalogue")
                continue
            if status == TransferStatus.FAILED:
                self.logger.error(f"Found failed download task for {bundle.filename}")
                raise StaleStateError(
                    f"Stale failed upload of {bundle.filename} must be cleared manually before re-running"
                )
            if status == TransferStatus.UPLOADING:
                self.logger.info(f"Download of {bundle.filename} already in progress, waiting for it")
            else:
                self.submit_upload(session, bundle)

            self.wait_for_transfer(session, bundle)
            staged.append(bundle.filename)

        self.logger.info(f"Image staging complete, {len(staged)} bundle(s) transferred")
        return staged

    def submit_upload(self, session, bundle: FirmwareBundle) -> None:
        """Start the transfer of one bundle into the catalogue."""
        protocol = (self.image_source.protocol or "local").lower()
        attributes = {
            "fileName": bundle.filename,
            "adminState": "restart",
            "status": "created,modified",
        }

        if protocol == "local":
            file_path = os.path.join(self.image_source.directory, bundle.filename)
            if not os.path.isfile(file_path):
                self.logger.error(f"Bundle file not found: {file_path}")
                raise PreconditionFailedError(f"Bundle file not found: {file_path}")
            self.logger.info(f"Uploading {file_path} to UCSM")
            session.upload_file(file_path)
            attributes.update({"protocol": "local", "server": "local"})
        elif protocol in REMOTE_PROTOCOLS:
            remote_path = self.image_source.remote_path or self.image_source.directory
            self.logger.info(
                f"Requesting UCSM download of {bundle.filename} from {protocol}://{self.image_source.server}{remote_path}"
            )
            attributes.update(
                {
                    "protocol": protocol,
                    "server": self.image_source.server or "",
                    "remotePath": remote_path,
                    "user": self.image_source.username or "",
                    "pwd": self.image_source.password or "",
                }
            )
        else:
            raise PreconditionFailedError(f"Unsupported image source protocol '{protocol}'")

        session.set_mo(
            ManagedObject(
                class_id="firmwareDownloader",
                dn=f"{FIRMWARE_CATALOGUE_DN}/dnld-{bundle.filename}",
                attributes=attributes,
            )
        )

    def wait_for_transfer(self, session, bundle: FirmwareBundle) -> None:
        """Poll the download task until UCSM reports the bundle downloaded."""

        def probe():
            task = self.find_downloader(session, bundle.filename)
            if task is None:
                return False, "no download task yet"
            transfer_state = (task.get("transferState") or "").lower()
            if transfer_state == "downloaded":
                # A re-submitted task can still show the state of its previous run
                package = self.find_distributable(session, bundle.filename)
                if package is None or self.has_deleted_images(session, package):
                    return False, "downloaded, catalogue not updated yet"
                return True, transfer_state
            if transfer_state == "failed":
                reason = task.get("fsmDescr") or task.get("fsmRmtInvErrDescr") or "transfer failed"
                self.logger.error(f"Transfer of {bundle.filename} failed: {reason}")
                raise RemoteOperationFailedError(f"Transfer of {bundle.filename} failed: {reason}")
            return False, transfer_state or "pending"

        poll_until(
            description=f"Transfer of {bundle.filename}",
            probe=probe,
            check_interval=self.poll_interval,
            max_rounds=rounds_for_timeout(self.timeout, self.poll_interval),
            logger=self.logger,
        )

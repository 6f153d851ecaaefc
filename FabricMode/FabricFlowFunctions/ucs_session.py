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
UCS Manager XML API session gateway.

This module provides the UcsGateway class which opens and closes
authenticated sessions (aaaLogin/aaaLogout), and the UcsSession class which
reads and writes managed objects over the UCSM XML API. Requests are POSTed
to the /nuova endpoint using the requests library.

Network failures, HTTP 5xx answers and expired-session errors are raised as
TransientSessionError. Every other UCSM error code is raised as UcsApiError.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from xml.etree import ElementTree

import requests
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from FabricMode.flow_types import Credentials

from .exceptions import TransientSessionError, UcsApiError

# Disable SSL warnings for UCSM connections
urllib3.disable_warnings(InsecureRequestWarning)

# UCSM error codes meaning the cookie is no longer valid
SESSION_EXPIRED_ERROR_CODES = ("552", "555")


@dataclass
class ManagedObject:
    """A UCSM managed object: class id, distinguished name and attributes."""

    class_id: str
    dn: str
    attributes: Dict[str, str] = field(default_factory=dict)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return an attribute value."""
        return self.attributes.get(name, default)

    def to_element(self) -> ElementTree.Element:
        """Serialize to an XML element for configConfMo(s)."""
        element = ElementTree.Element(self.class_id)
        element.set("dn", self.dn)
        for name, value in self.attributes.items():
            if name != "dn":
                element.set(name, str(value))
        return element

    @classmethod
    def from_element(cls, element: ElementTree.Element) -> "ManagedObject":
        """Build a ManagedObject from a response element."""
        attributes = dict(element.attrib)
        return cls(class_id=element.tag, dn=attributes.get("dn", ""), attributes=attributes)


class UcsSession:
    """
    Authenticated UCSM session bound to a single endpoint.

    The session is valid from a successful aaaLogin until logout() or until a
    request raises TransientSessionError.
    """

    def __init__(
        self,
        *,
        host: str,
        cookie: str,
        base_url: str,
        http: requests.Session,
        timeout: int = 120,
        logger: logging.Logger = None,
    ):
        self.host = host
        self.cookie = cookie
        self.base_url = base_url
        self.http = http
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def __repr__(self) -> str:
        return f"UcsSession(host={self.host!r})"

    def invoke(self, request: ElementTree.Element) -> ElementTree.Element:
        """
        Send one XML API method and return the parsed response root.

        Args:
            request (ElementTree.Element): Method element; the session cookie is added here

        Returns:
            ElementTree.Element: Response root element

        Raises:
            TransientSessionError: On network failure, HTTP 5xx or an expired session
            UcsApiError: If UCSM answered with any other error code
        """
        if request.tag != "aaaLogin":
            request.set("cookie", self.cookie)
        return post_xml(self.http, self.base_url, request, timeout=self.timeout, logger=self.logger)

    def read_dn(self, dn: str) -> Optional[ManagedObject]:
        """Resolve one object by distinguished name. Returns None if it does not exist."""
        request = ElementTree.Element("configResolveDn", dn=dn, inHierarchical="false")
        response = self.invoke(request)
        out_config = response.find("outConfig")
        if out_config is None or len(out_config) == 0:
            return None
        return ManagedObject.from_element(out_config[0])

    def read_class(self, class_id: str, filters: Optional[Dict[str, str]] = None) -> List[ManagedObject]:
        """
        Resolve all objects of a class, optionally filtered by property equality.

        Args:
            class_id (str): UCSM class id, e.g. "firmwareRunning"
            filters (Optional[Dict[str, str]]): Property/value pairs that must all match

        Returns:
            List[ManagedObject]: Matching objects
        """
        request = ElementTree.Element("configResolveClass", classId=class_id, inHierarchical="false")
        if filters:
            in_filter = ElementTree.SubElement(request, "inFilter")
            parent = in_filter
            if len(filters) > 1:
                parent = ElementTree.SubElement(in_filter, "and")
            for prop, value in filters.items():
                ElementTree.SubElement(parent, "eq", {"class": class_id, "property": prop, "value": value})
        return self._out_configs(self.invoke(request))

    def read_children(self, dn: str, class_id: Optional[str] = None) -> List[ManagedObject]:
        """Resolve the direct children of an object, optionally restricted to one class."""
        request = ElementTree.Element("configResolveChildren", inDn=dn, inHierarchical="false")
        if class_id:
            request.set("classId", class_id)
        return self._out_configs(self.invoke(request))

    def set_mo(self, mo: ManagedObject) -> ManagedObject:
        """
        Create or modify one object with configConfMo.

        The object's "status" attribute selects the operation
        ("created", "modified", "created,modified", "deleted").
        """
        request = ElementTree.Element("configConfMo", dn=mo.dn, inHierarchical="false")
        in_config = ElementTree.SubElement(request, "inConfig")
        in_config.append(mo.to_element())
        response = self.invoke(request)
        out_config = response.find("outConfig")
        if out_config is not None and len(out_config) > 0:
            return ManagedObject.from_element(out_config[0])
        return mo

    def transaction(self, mos: List[ManagedObject]) -> List[ManagedObject]:
        """
        Commit several objects atomically with configConfMos.

        UCSM applies either every object of the request or none of them.
        """
        request = ElementTree.Element("configConfMos", inHierarchical="false")
        in_configs = ElementTree.SubElement(request, "inConfigs")
        for mo in mos:
            pair = ElementTree.SubElement(in_configs, "pair", key=mo.dn)
            pair.append(mo.to_element())
        response = self.invoke(request)
        out_configs = response.find("outConfigs")
        if out_configs is None:
            return []
        committed = []
        for pair in out_configs.findall("pair"):
            committed.extend(ManagedObject.from_element(child) for child in pair)
        return committed

    def upload_file(self, file_path: str) -> None:
        """
        Push a local file to the UCSM file-upload endpoint.

        Args:
            file_path (str): Path of the bundle to push

        Raises:
            TransientSessionError: On network failure or HTTP 5xx
            UcsApiError: If UCSM rejects the upload
        """
        url = self.base_url.rsplit("/", 1)[0] + "/operations/file-upload"
        file_name = os.path.basename(file_path)
        self.logger.info(f"UCSM file upload Request: {url}, File: {file_name}")
        # The read timeout applies per socket read, not to the whole transfer
        try:
            with open(file_path, "rb") as file_handle:
                response = self.http.post(
                    url,
                    headers={"Cookie": f"ucsm-cookie={self.cookie}"},
                    files={"filename": (file_name, file_handle, "application/octet-stream")},
                    timeout=(self.timeout, self.timeout),
                )
        except requests.exceptions.RequestException as e:
            raise TransientSessionError(f"File upload of {file_name} lost connection: {e}") from e
        self.logger.info(f"UCSM file upload Response (Status {response.status_code})")
        if response.status_code >= 500:
            raise TransientSessionError(f"File upload of {file_name} got HTTP {response.status_code}")
        if response.status_code not in (200, 201, 202):
            raise UcsApiError("file-upload", str(response.status_code), response.text)

    def logout(self) -> None:
        """Release the session cookie on the server."""
        request = ElementTree.Element("aaaLogout", inCookie=self.cookie)
        response = post_xml(self.http, self.base_url, request, timeout=self.timeout, logger=self.logger)
        self.logger.info(f"UCSM logout status: {response.get('outStatus')}")

    @staticmethod
    def _out_configs(response: ElementTree.Element) -> List[ManagedObject]:
        out_configs = response.find("outConfigs")
        if out_configs is None:
            return []
        return [ManagedObject.from_element(child) for child in out_configs]


def post_xml(
    http: requests.Session,
    url: str,
    request: ElementTree.Element,
    *,
    timeout: int,
    logger: logging.Logger,
) -> ElementTree.Element:
    """
    POST one XML API method and parse the answer.

    Credentials are never logged: only the method name is written for aaaLogin.
    """
    method = request.tag
    body = ElementTree.tostring(request, encoding="unicode")
    if method in ("aaaLogin", "aaaLogout"):
        logger.info(f"UCSM XML Request: {url} method {method}")
    else:
        logger.info(f"UCSM XML Request: {url} {body}")

    try:
        response = http.post(url, data=body, headers={"Content-Type": "application/xml"}, timeout=timeout)
    except requests.exceptions.RequestException as e:
        logger.error(f"UCSM XML {method} connection failure: {e}")
        raise TransientSessionError(f"{method} lost connection to {url}: {e}") from e

    if response.status_code >= 500:
        logger.warning(f"UCSM XML {method} Response (Status {response.status_code})")
        raise TransientSessionError(f"{method} got HTTP {response.status_code} from {url}")
    if response.status_code != 200:
        raise UcsApiError(method, str(response.status_code), response.text)

    if method not in ("aaaLogin",):
        logger.info(f"UCSM XML {method} Response (Status {response.status_code}): {response.text}")

    try:
        root = ElementTree.fromstring(response.text)
    except ElementTree.ParseError as e:
        raise UcsApiError(method, None, f"unparseable response: {e}") from e

    error_code = root.get("errorCode")
    if error_code:
        error_descr = root.get("errorDescr")
        if error_code in SESSION_EXPIRED_ERROR_CODES:
            raise TransientSessionError(f"{method} rejected, session expired ({error_code}: {error_descr})")
        raise UcsApiError(method, error_code, error_descr)
    return root


class UcsGateway:
    """
    Opens and closes authenticated UCSM sessions.

    Each connect() returns a fresh UcsSession with its own cookie and HTTP
    connection pool; sessions are never reused after disconnect().
    """

    def __init__(
        self,
        *,
        protocol: str = "https",
        port: int = 443,
        verify_ssl: bool = False,
        timeout: int = 120,
        logger: logging.Logger = None,
    ):
        self.protocol = protocol
        self.port = port
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def get_url(self, endpoint: str) -> str:
        """Return the XML API URL for an endpoint."""
        return f"{self.protocol}://{endpoint}:{self.port}/nuova"

    def connect(self, endpoint: str, credentials: Credentials) -> UcsSession:
        """
        Log in to UCSM.

        Args:
            endpoint (str): UCSM virtual IP or hostname
            credentials (Credentials): Login credentials

        Returns:
            UcsSession: Authenticated session

        Raises:
            TransientSessionError: If UCSM cannot be reached
            UcsApiError: If the login is rejected
        """
        url = self.get_url(endpoint)
        http = requests.Session()
        http.verify = self.verify_ssl
        request = ElementTree.Element("aaaLogin", inName=credentials.username, inPassword=credentials.password)
        try:
            response = post_xml(http, url, request, timeout=self.timeout, logger=self.logger)
        except Exception:
            http.close()
            raise
        cookie = response.get("outCookie")
        if not cookie:
            http.close()
            raise UcsApiError("aaaLogin", None, "login response carried no session cookie")
        self.logger.info(f"Logged in to UCSM {endpoint} as {credentials.username}")
        return UcsSession(host=endpoint, cookie=cookie, base_url=url, http=http, timeout=self.timeout, logger=self.logger)

    def disconnect(self, session: UcsSession) -> None:
        """Log out and close the HTTP connection pool."""
        try:
            session.logout()
        finally:
            session.http.close()

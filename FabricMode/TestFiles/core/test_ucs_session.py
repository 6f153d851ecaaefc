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
Unit tests for the UCSM XML API gateway and session.
All HTTP traffic is mocked; no UCS Manager is contacted.
"""

import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch
from xml.etree import ElementTree

import pytest
import requests

from FabricMode.FabricFlowFunctions.exceptions import TransientSessionError, UcsApiError
from FabricMode.FabricFlowFunctions.ucs_session import ManagedObject, UcsGateway, UcsSession
from FabricMode.flow_types import Credentials

# Mark all tests in this file as core tests
pytestmark = pytest.mark.core

URL = "https://192.168.1.10:443/nuova"


def xml_response(text: str, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


def posted_element(http: MagicMock, call_index: int = -1) -> ElementTree.Element:
    """Parse the XML body of a recorded http.post call."""
    return ElementTree.fromstring(http.post.call_args_list[call_index].kwargs["data"])


class TestUcsSession(unittest.TestCase):
    """Test cases for UcsSession requests and error mapping."""

    def setUp(self):
        self.http = MagicMock()
        self.session = UcsSession(host="192.168.1.10", cookie="cookie-1", base_url=URL, http=self.http)

    def test_read_dn_returns_managed_object(self):
        self.http.post.return_value = xml_response(
            '<configResolveDn dn="sys/switch-A" response="yes"><outConfig>'
            '<networkElement dn="sys/switch-A" id="A" model="UCS-FI-6454"/>'
            "</outConfig></configResolveDn>"
        )
        mo = self.session.read_dn("sys/switch-A")

        self.assertEqual(mo.class_id, "networkElement")
        self.assertEqual(mo.get("model"), "UCS-FI-6454")
        request = posted_element(self.http)
        self.assertEqual(request.tag, "configResolveDn")
        self.assertEqual(request.get("cookie"), "cookie-1")
        self.assertEqual(request.get("dn"), "sys/switch-A")

    def test_read_dn_missing_object(self):
        self.http.post.return_value = xml_response('<configResolveDn response="yes"><outConfig/></configResolveDn>')
        self.assertIsNone(self.session.read_dn("sys/switch-C"))

    def test_read_class_with_single_filter(self):
        self.http.post.return_value = xml_response(
            '<configResolveClass response="yes"><outConfigs>'
            '<firmwareRunning dn="sys/mgmt/fw-system" deployment="system" version="4.0(4b)"/>'
            "</outConfigs></configResolveClass>"
        )
        result = self.session.read_class("firmwareRunning", {"deployment": "system"})

        self.assertEqual([mo.get("version") for mo in result], ["4.0(4b)"])
        eq = posted_element(self.http).find("inFilter/eq")
        self.assertEqual(eq.get("class"), "firmwareRunning")
        self.assertEqual(eq.get("property"), "deployment")
        self.assertEqual(eq.get("value"), "system")

    def test_read_class_with_multiple_filters_uses_and(self):
        self.http.post.return_value = xml_response('<configResolveClass response="yes"><outConfigs/></configResolveClass>')
        self.assertEqual(self.session.read_class("faultInst", {"severity": "major", "code": "F0283"}), [])
        self.assertEqual(len(posted_element(self.http).findall("inFilter/and/eq")), 2)

    def test_set_mo_sends_status(self):
        self.http.post.return_value = xml_response(
            '<configConfMo response="yes"><outConfig>'
            '<firmwareComputeHostPack dn="org-root/fw-host-pack-default" bladeBundleVersion="4.1(3a)B"/>'
            "</outConfig></configConfMo>"
        )
        mo = ManagedObject(
            "firmwareComputeHostPack",
            "org-root/fw-host-pack-default",
            {"bladeBundleVersion": "4.1(3a)B", "status": "created,modified"},
        )
        committed = self.session.set_mo(mo)

        self.assertEqual(committed.get("bladeBundleVersion"), "4.1(3a)B")
        element = posted_element(self.http).find("inConfig/firmwareComputeHostPack")
        self.assertEqual(element.get("status"), "created,modified")
        self.assertEqual(element.get("dn"), "org-root/fw-host-pack-default")

    def test_transaction_sends_all_pairs(self):
        self.http.post.return_value = xml_response(
            '<configConfMos response="yes"><outConfigs>'
            '<pair key="a"><trigSched dn="a"/></pair><pair key="b"><trigAbsWindow dn="b"/></pair>'
            "</outConfigs></configConfMos>"
        )
        committed = self.session.transaction(
            [ManagedObject("trigSched", "a", {"status": "created"}), ManagedObject("trigAbsWindow", "b", {})]
        )

        self.assertEqual([mo.dn for mo in committed], ["a", "b"])
        pairs = posted_element(self.http).findall("inConfigs/pair")
        self.assertEqual([pair.get("key") for pair in pairs], ["a", "b"])

    def test_connection_error_is_transient(self):
        self.http.post.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(TransientSessionError):
            self.session.read_dn("sys")

    def test_timeout_is_transient(self):
        self.http.post.side_effect = requests.exceptions.Timeout("timed out")
        with self.assertRaises(TransientSessionError):
            self.session.read_class("mgmtEntity")

    def test_connection_reset_mid_response_is_transient(self):
        self.http.post.side_effect = requests.exceptions.ChunkedEncodingError("Connection broken: reset by peer")
        with self.assertRaises(TransientSessionError):
            self.session.read_dn("sys/switch-B/mgmt/fw-status")

    def test_http_5xx_is_transient(self):
        self.http.post.return_value = xml_response("Service Unavailable", status_code=503)
        with self.assertRaises(TransientSessionError):
            self.session.read_dn("sys")

    def test_expired_session_is_transient(self):
        self.http.post.return_value = xml_response(
            '<configResolveDn response="yes" errorCode="552" errorDescr="Authorization required"/>'
        )
        with self.assertRaises(TransientSessionError):
            self.session.read_dn("sys")

    def test_other_error_code_is_api_error(self):
        self.http.post.return_value = xml_response(
            '<configConfMo response="yes" errorCode="103" errorDescr="can\'t create; object already exists."/>'
        )
        with self.assertRaises(UcsApiError) as ctx:
            self.session.set_mo(ManagedObject("trigSched", "org-root/sched-infra-fw", {}))
        self.assertEqual(ctx.exception.error_code, "103")
        self.assertEqual(ctx.exception.kind, "remote-operation-failed")

    def test_unparseable_response_is_api_error(self):
        self.http.post.return_value = xml_response("<html>not xml")
        with self.assertRaises(UcsApiError):
            self.session.read_dn("sys")

    def test_upload_file_posts_with_cookie(self):
        self.http.post.return_value = xml_response("", status_code=200)
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "ucs-6400-k9-bundle-infra.4.1.3a.A.bin")
            with open(path, "wb") as f:
                f.write(b"bundle")
            self.session.upload_file(path)

        call = self.http.post.call_args
        self.assertEqual(call.args[0], "https://192.168.1.10:443/operations/file-upload")
        self.assertEqual(call.kwargs["headers"], {"Cookie": "ucsm-cookie=cookie-1"})
        self.assertEqual(call.kwargs["files"]["filename"][0], "ucs-6400-k9-bundle-infra.4.1.3a.A.bin")
        self.assertEqual(call.kwargs["timeout"], (120, 120))

    def test_upload_file_connection_reset_is_transient(self):
        self.http.post.side_effect = requests.exceptions.ChunkedEncodingError("Connection broken")
        with tempfile.NamedTemporaryFile(suffix=".bin") as bundle:
            with self.assertRaises(TransientSessionError):
                self.session.upload_file(bundle.name)

    def test_upload_file_rejected(self):
        self.http.post.return_value = xml_response("forbidden", status_code=403)
        with tempfile.NamedTemporaryFile(suffix=".bin") as bundle:
            with self.assertRaises(UcsApiError):
                self.session.upload_file(bundle.name)


class TestUcsGateway(unittest.TestCase):
    """Test cases for login and logout."""

    def setUp(self):
        self.gateway = UcsGateway(protocol="https", port=443, verify_ssl=False, timeout=30)
        self.credentials = Credentials("admin", "secret-password")

    def test_get_url(self):
        self.assertEqual(self.gateway.get_url("10.0.0.1"), "https://10.0.0.1:443/nuova")

    @patch("FabricMode.FabricFlowFunctions.ucs_session.requests.Session")
    def test_connect_returns_session_with_cookie(self, mock_session_class):
        http = mock_session_class.return_value
        http.post.return_value = xml_response('<aaaLogin response="yes" outCookie="1700000000/abc"/>')

        session = self.gateway.connect("192.168.1.10", self.credentials)

        self.assertEqual(session.cookie, "1700000000/abc")
        self.assertEqual(session.base_url, URL)
        self.assertFalse(http.verify)
        login = posted_element(http)
        self.assertEqual(login.tag, "aaaLogin")
        self.assertEqual(login.get("inName"), "admin")
        self.assertIsNone(login.get("cookie"))

    @patch("FabricMode.FabricFlowFunctions.ucs_session.requests.Session")
    def test_connect_does_not_log_password(self, mock_session_class):
        http = mock_session_class.return_value
        http.post.return_value = xml_response('<aaaLogin response="yes" outCookie="c"/>')

        with self.assertLogs(self.gateway.logger, level="INFO") as logs:
            self.gateway.connect("192.168.1.10", self.credentials)

        self.assertFalse(any("secret-password" in line for line in logs.output))

    @patch("FabricMode.FabricFlowFunctions.ucs_session.requests.Session")
    def test_connect_rejected_login(self, mock_session_class):
        http = mock_session_class.return_value
        http.post.return_value = xml_response(
            '<aaaLogin response="yes" errorCode="551" errorDescr="Authentication failed"/>'
        )

        with self.assertRaises(UcsApiError):
            self.gateway.connect("192.168.1.10", self.credentials)
        http.close.assert_called_once()

    @patch("FabricMode.FabricFlowFunctions.ucs_session.requests.Session")
    def test_connect_unreachable(self, mock_session_class):
        mock_session_class.return_value.post.side_effect = requests.exceptions.ConnectionError("no route")
        with self.assertRaises(TransientSessionError):
            self.gateway.connect("192.168.1.10", self.credentials)

    def test_disconnect_logs_out_and_closes(self):
        http = MagicMock()
        http.post.return_value = xml_response('<aaaLogout response="yes" outStatus="success"/>')
        session = UcsSession(host="192.168.1.10", cookie="cookie-1", base_url=URL, http=http)

        self.gateway.disconnect(session)

        self.assertEqual(posted_element(http).get("inCookie"), "cookie-1")
        http.close.assert_called_once()

    def test_disconnect_closes_even_when_logout_fails(self):
        http = MagicMock()
        http.post.side_effect = requests.exceptions.ConnectionError("rebooting")
        session = UcsSession(host="192.168.1.10", cookie="cookie-1", base_url=URL, http=http)

        with self.assertRaises(TransientSessionError):
            self.gateway.disconnect(session)
        http.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()

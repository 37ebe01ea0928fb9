# Copyright 2025 Jared Hendrickson
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Tests the ACME state of the acme_appgw package."""
import json
import pathlib
import tempfile
import unittest

import acme_appgw
from acme_appgw.tests import TEST_DIRECTORY, TEST_EMAIL
from acme_appgw.tests.tools import FakeACMEServer, is_json, make_transport, registered_state


class TestACMEState(unittest.TestCase):
    """Tests exporting, saving and loading acme_appgw.ACMEState objects."""

    def setUp(self):
        """Creates a temporary directory for state files."""
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.state_path = pathlib.Path(self.tmp.name, "acme_state.json")

    def test_new_state(self):
        """Checks that a new state holds no account."""
        state = acme_appgw.ACMEState(directory_url=TEST_DIRECTORY)
        self.assertFalse(state.registered)
        self.assertIsNone(state.nonce)
        self.assertIsNone(state.directory)

        # Ensure generating a key does not make the state registered
        state.generate_account_key()
        self.assertFalse(state.registered)

    def test_consume_nonce(self):
        """Checks that a nonce can only be taken out of the state once."""
        state = acme_appgw.ACMEState()
        state.nonce = "bm9uY2U"
        self.assertEqual(state.consume_nonce(), "bm9uY2U")
        self.assertIsNone(state.consume_nonce())

    def test_export_requires_key(self):
        """Checks that a state without an account key cannot be exported."""
        with self.assertRaises(acme_appgw.errors.InvalidState):
            acme_appgw.ACMEState().export()

    def test_save_and_load(self):
        """Checks that a saved state can be loaded again."""
        state = registered_state(make_transport(FakeACMEServer()))
        state.save(str(self.state_path))

        # Ensure the file contains the account but never the nonce
        self.assertTrue(is_json(self.state_path.read_text(encoding="utf-8")))
        self.assertNotIn("nonce", json.loads(self.state_path.read_text(encoding="utf-8")))

        loaded = acme_appgw.ACMEState.load(str(self.state_path))
        self.assertTrue(loaded.registered)
        self.assertEqual(loaded.directory_url, TEST_DIRECTORY)
        self.assertEqual(loaded.account_url, state.account_url)
        self.assertEqual(loaded.email, TEST_EMAIL)
        self.assertEqual(loaded.account_key.thumbprint(), state.account_key.thumbprint())
        self.assertIsNone(loaded.nonce)

    def test_invalid_paths(self):
        """Checks that missing files and directories are reported."""
        state = acme_appgw.ACMEState()
        state.generate_account_key()

        with self.assertRaises(acme_appgw.errors.InvalidPath):
            state.save(str(pathlib.Path(self.tmp.name, "missing", "acme_state.json")))
        with self.assertRaises(acme_appgw.errors.InvalidPath):
            acme_appgw.ACMEState.load(str(self.state_path))

    def test_invalid_state_data(self):
        """Checks that data not created by export() is rejected."""
        for data in ("Not JSON!", "[]", json.dumps({"account_url": "https://acme.test/acct/1"}),
                     json.dumps({"account_key": "not a key"})):
            with self.assertRaises(acme_appgw.errors.InvalidState):
                acme_appgw.ACMEState.from_json(data)


if __name__ == "__main__":
    unittest.main()

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
"""Tests ACME account registration with the acme_appgw package."""
import unittest

import acme_appgw
from acme_appgw.tests import TEST_DIRECTORY, TEST_EMAIL
from acme_appgw.tests.tools import BASE_URL, FakeACMEServer, make_transport


class TestAccount(unittest.TestCase):
    """Tests acme_appgw.ensure_account()."""

    def setUp(self):
        """Creates a fake ACME server, a transport and an empty state for each test."""
        self.server = FakeACMEServer()
        self.transport = make_transport(self.server)
        self.state = acme_appgw.ACMEState(directory_url=TEST_DIRECTORY)

    def test_register(self):
        """Checks that a new account is registered when the state holds none."""
        account = acme_appgw.ensure_account(self.transport, self.state, TEST_EMAIL)

        self.assertEqual(account.url, f"{BASE_URL}/acct/1")
        self.assertEqual(account.email, TEST_EMAIL)
        self.assertEqual(account.status, "valid")
        self.assertEqual(self.state.account_url, account.url)
        self.assertEqual(self.state.email, TEST_EMAIL)
        self.assertTrue(self.state.registered)
        self.assertEqual(self.server.registrations, 1)

        # Ensure the server received the account public key
        self.assertEqual(
            self.server.account_keys[account.url].thumbprint(), self.state.account_key.thumbprint()
        )

    def test_reuse(self):
        """Checks that a registered state is reused without contacting the server."""
        acme_appgw.ensure_account(self.transport, self.state, TEST_EMAIL)
        calls = len(self.server.calls)

        account = acme_appgw.ensure_account(self.transport, self.state, TEST_EMAIL)
        self.assertEqual(account.url, self.state.account_url)
        self.assertEqual(len(self.server.calls), calls)
        self.assertEqual(self.server.registrations, 1)

    def test_existing_key_kept(self):
        """Checks that an existing account key is registered instead of a new one."""
        key = self.state.generate_account_key()
        acme_appgw.ensure_account(self.transport, self.state, TEST_EMAIL)
        self.assertIs(self.state.account_key, key)

    def test_registration_rejected(self):
        """Checks that a rejected registration raises a RegistrationError."""
        self.server.reject_account = True

        with self.assertRaises(acme_appgw.errors.RegistrationError):
            acme_appgw.ensure_account(self.transport, self.state, TEST_EMAIL)
        self.assertFalse(self.state.registered)

    def test_invalid_email(self):
        """Checks that an invalid email is rejected before any request is sent."""
        for email in ("Not a valid email address!", "", None):
            with self.assertRaises(acme_appgw.errors.InvalidEmail):
                acme_appgw.ensure_account(self.transport, self.state, email)
        self.assertEqual(self.server.calls, [])


if __name__ == "__main__":
    unittest.main()

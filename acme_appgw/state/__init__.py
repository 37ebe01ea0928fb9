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
"""
The explicit ACME state passed through every protocol operation. The state is only written to or read from disk at
the boundary of a renewal run using `ACMEState.save()` and `ACMEState.load()`.
"""
import json
import logging
import pathlib

import josepy as jose
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric import rsa

from .. import errors

DEFAULT_DIRECTORY = "https://acme-staging-v02.api.letsencrypt.org/directory"
logger = logging.getLogger(__name__)


class ACMEState:
    """
    Durable record of a renewal identity: the directory, the account key and account URL, and the current
    anti-replay nonce.
    """

    def __init__(
            self,
            directory_url: str = DEFAULT_DIRECTORY,
            account_key: jose.JWKRSA = None,
            account_url: str = None,
            email: str = None
    ):
        """
        Args:
            directory_url (str): The ACME directory URL to interact with.
            account_key (josepy.JWKRSA): An existing account key. A new one is generated on registration if omitted.
            account_url (str): The server-assigned account URL of an already registered account.
            email (str): The contact email the account was registered with.
        """
        self.directory_url = directory_url
        self.directory = None
        self.nonce = None
        self.account_key = account_key
        self.account_url = account_url
        self.email = email

    @property
    def registered(self) -> bool:
        """Indicates whether this state holds a registered account."""
        return bool(self.account_url and self.account_key)

    def generate_account_key(self) -> jose.JWKRSA:
        """
        Generates a new RSA2048 account key and assigns it to this state. Any previously registered account URL
        is discarded since it belongs to the old key.

        Returns:
            josepy.JWKRSA: The new account key.
        """
        rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048, backend=default_backend())
        self.account_key = jose.JWKRSA(key=rsa_key)
        self.account_url = None
        return self.account_key

    def consume_nonce(self) -> str:
        """
        Takes the current nonce out of the state so it can never be sent twice.

        Returns:
            str: The nonce to place in the next signed request, or None when a fresh one must be fetched.
        """
        nonce, self.nonce = self.nonce, None
        return nonce

    def export(self) -> str:
        """
        Exports the state as a JSON string. The nonce is never exported, it is only valid for the current session.

        Returns:
            str: The current state encoded as a JSON string.

        Raises:
            acme_appgw.errors.InvalidState: When no account key exists yet.
        """
        if not self.account_key:
            raise errors.InvalidState("Cannot export an ACME state without an account key.")

        state_data = {
            'directory': self.directory_url,
            'account_key': self.account_key.json_dumps(),
            'account_url': self.account_url,
            'email': self.email
        }

        return json.dumps(state_data)

    def save(self, path: str) -> None:
        """
        Writes the exported state to a file.

        Args:
            path (str): The file to write. Its parent directory must exist.

        Raises:
            acme_appgw.errors.InvalidPath: When the parent directory does not exist.
        """
        filepath = pathlib.Path(path).absolute()

        if not filepath.parent.is_dir():
            raise errors.InvalidPath(f"Directory at '{filepath.parent}' does not exist.")

        with open(filepath, 'w', encoding="utf-8") as state_file:
            state_file.write(self.export())
        logger.debug("Saved ACME state to %s", filepath)

    @staticmethod
    def from_json(json_data: str) -> 'ACMEState':
        """
        Loads a state from a JSON string created by `export()`.

        Args:
            json_data (str): The JSON state data string to import.

        Returns:
            acme_appgw.state.ACMEState: The imported state.

        Raises:
            acme_appgw.errors.InvalidState: When the data is not a valid exported state.
        """
        try:
            state_data = json.loads(json_data)
            account_key = jose.JWKRSA.json_loads(state_data['account_key'])
        except (ValueError, KeyError, TypeError, jose.DeserializationError) as error:
            raise errors.InvalidState(f"Invalid ACME state data: {error}") from error

        return ACMEState(
            directory_url=state_data.get('directory', DEFAULT_DIRECTORY),
            account_key=account_key,
            account_url=state_data.get('account_url'),
            email=state_data.get('email')
        )

    @staticmethod
    def load(path: str) -> 'ACMEState':
        """
        Loads a state from a file created by `save()`.

        Args:
            path (str): The JSON file path to import.

        Returns:
            acme_appgw.state.ACMEState: The imported state.

        Raises:
            acme_appgw.errors.InvalidPath: When the file does not exist.
        """
        filepath = pathlib.Path(path).absolute()

        if not filepath.exists():
            raise errors.InvalidPath(f"No ACME state file found at '{filepath}'")

        with open(filepath, 'r', encoding="utf-8") as state_file:
            state = ACMEState.from_json(state_file.read())
        logger.debug("Loaded ACME state for account %s from %s", state.account_url, filepath)

        return state

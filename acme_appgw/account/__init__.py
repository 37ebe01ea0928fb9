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
"""ACME account registration and reuse."""
import logging

import validators
from acme import messages

from .. import errors

logger = logging.getLogger(__name__)


class Account:
    """An ACME account, identified by its key pair and server-assigned URL."""
    # pylint: disable=too-few-public-methods

    def __init__(self, url: str, key, email: str = None, terms_of_service_agreed: bool = True, status: str = None):
        self.url = url
        self.key = key
        self.email = email
        self.terms_of_service_agreed = terms_of_service_agreed
        self.status = status

    def __repr__(self) -> str:
        return f"Account(url={self.url!r}, email={self.email!r})"


def ensure_account(transport, state, email: str) -> Account:
    """
    Returns the account held by `state`, registering a new one at the directory's `newAccount` endpoint first if
    the state has no account URL yet. By registering, you are agreeing to the ACME server's terms of service.

    Args:
        transport (acme_appgw.transport.Transport): The transport to send requests with.
        state (acme_appgw.state.ACMEState): The ACME state. Updated with the account key and URL on registration.
        email (str): The contact email address to register the account with.

    Returns:
        acme_appgw.account.Account: The registered account.

    Raises:
        acme_appgw.errors.InvalidEmail: When `email` is not a valid email address.
        acme_appgw.errors.RegistrationError: When the ACME server rejects the registration.
    """
    if not validators.email(email):
        raise errors.InvalidEmail(f"Value '{email}' is not a valid email address.")

    # Reuse a stored registration without contacting the server
    if state.registered:
        if state.email and state.email != email:
            logger.info("Reusing ACME account %s registered with %s", state.account_url, state.email)
        else:
            logger.info("Reusing ACME account %s", state.account_url)
        return Account(state.account_url, state.account_key, email=state.email or email)

    if not state.account_key:
        state.generate_account_key()
    if state.directory is None:
        transport.fetch_directory(state)

    registration = messages.NewRegistration.from_data(email=email, terms_of_service_agreed=True)

    try:
        response = transport.signed_request(state, state.directory['newAccount'], registration)
    except errors.ACMERequestError as error:
        raise errors.RegistrationError(f"ACME account registration for '{email}' was rejected: {error.message}") \
            from error

    if not response.location:
        raise errors.ProtocolError("ACME server did not return the URL of the registered account.")

    state.account_url = response.location
    state.email = email
    body = response.json()
    logger.info(
        "ACME account %s %s", state.account_url, "already exists" if response.status_code == 200 else "registered"
    )

    return Account(state.account_url, state.account_key, email=email, status=body.get('status'))

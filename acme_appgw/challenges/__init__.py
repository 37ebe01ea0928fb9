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
DNS-01 challenge handling. Each authorization of an order yields one `ChallengeRecord` holding the TXT value that
must be published at `_acme-challenge.<domain>`. Readiness may only be signaled to the ACME server once the record
carries the handle of its published TXT record, since the server may validate immediately.
"""
import logging

import josepy as jose
from acme import challenges
from acme import messages

from .. import errors
from ..orders import strip_wildcard

# Constants and Variables
DNS_LABEL = '_acme-challenge'
logger = logging.getLogger(__name__)


class ChallengeRecord:
    """A DNS-01 proof obligation for a single identifier."""

    def __init__(self, identifier: str, value: str, url: str, authorization_url: str):
        """
        Args:
            identifier (str): The identifier being proven, including the wildcard prefix if any.
            value (str): The TXT record value to publish.
            url (str): The challenge URL used to signal readiness.
            authorization_url (str): The URL of the authorization this challenge belongs to.
        """
        self.identifier = identifier
        self.value = value
        self.url = url
        self.authorization_url = authorization_url
        self.handle = None

    @property
    def domain(self) -> str:
        """The domain being validated, without the wildcard prefix."""
        return strip_wildcard(self.identifier)

    @property
    def fqdn(self) -> str:
        """The fully qualified name of the TXT record, e.g. `_acme-challenge.example.com`."""
        return f"{DNS_LABEL}.{self.domain}"

    @property
    def published(self) -> bool:
        """Indicates whether the TXT record for this challenge has been published."""
        return self.handle is not None

    def name_in_zone(self, zone: str) -> str:
        """The TXT record name relative to `zone`."""
        return record_name(self.fqdn, zone)

    def __repr__(self) -> str:
        return f"ChallengeRecord(identifier={self.identifier!r}, fqdn={self.fqdn!r}, value={self.value!r})"


def record_name(fqdn: str, zone: str) -> str:
    """
    Converts a fully qualified record name into a name relative to its DNS zone.

    Args:
        fqdn (str): The fully qualified record name, e.g. `_acme-challenge.www.example.com`.
        zone (str): The DNS zone name, e.g. `example.com`.

    Returns:
        str: The relative record name, e.g. `_acme-challenge.www`.

    Raises:
        acme_appgw.errors.InvalidDomain: When the record name is not inside the zone.
    """
    fqdn = fqdn.rstrip('.').lower()
    zone = zone.rstrip('.').lower()

    if not fqdn.endswith(f".{zone}"):
        raise errors.InvalidDomain(f"Record '{fqdn}' does not belong to DNS zone '{zone}'.")

    return fqdn[:-len(zone) - 1]


def prepare_challenges(transport, state, order) -> list:
    """
    Fetches each authorization of an order and derives the DNS-01 TXT value for it. Authorizations the server
    already considers valid need no proof and are skipped.

    Args:
        transport (acme_appgw.transport.Transport): The transport to send requests with.
        state (acme_appgw.state.ACMEState): The state of the account owning the order.
        order (acme_appgw.orders.Order): The pending order.

    Returns:
        list: A list of `ChallengeRecord` objects, one per authorization still requiring proof.

    Raises:
        acme_appgw.errors.ChallengeUnavailable: When an authorization does not offer the DNS-01 challenge.
        acme_appgw.errors.CertificateIssuanceFailed: When an authorization is already invalid.
    """
    records = []

    for url in order.authorizations:
        try:
            authz = messages.Authorization.from_json(transport.signed_request(state, url).json())
        except jose.DeserializationError as error:
            raise errors.ProtocolError(f"Malformed authorization received from '{url}': {error}") from error

        identifier = authz.identifier.value
        identifier = f"*.{identifier}" if authz.wildcard else identifier

        if authz.status == messages.STATUS_VALID:
            logger.info("Authorization for %s is already valid", identifier)
            continue
        if authz.status == messages.STATUS_INVALID:
            raise errors.CertificateIssuanceFailed(f"Authorization {url} for {identifier} is invalid.")

        # Only the DNS-01 challenge is answered, every other type offered is ignored
        dns_challenges = [challb for challb in authz.challenges or () if isinstance(challb.chall, challenges.DNS01)]
        if not dns_challenges:
            raise errors.ChallengeUnavailable(f"Authorization {url} for {identifier} does not offer DNS-01.")

        challb = dns_challenges[0]
        record = ChallengeRecord(identifier, challb.chall.validation(state.account_key), challb.uri, url)
        logger.info("TXT record %s must contain %s", record.fqdn, record.value)
        records.append(record)

    return records


def signal_ready(transport, state, record: ChallengeRecord) -> None:
    """
    Tells the ACME server the TXT record of a challenge is in place and may be validated.

    Raises:
        acme_appgw.errors.ChallengeNotPublished: When the record has not been published yet.
    """
    if not record.published:
        raise errors.ChallengeNotPublished(f"TXT record {record.fqdn} must be published before signaling readiness.")

    response = transport.signed_request(state, record.url, {})
    logger.info("Signaled challenge %s for %s (%s)", record.url, record.identifier, response.json().get('status'))

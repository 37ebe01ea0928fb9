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
Creation and polling of ACME orders. An order moves through `pending -> ready -> processing -> valid`, or to
`invalid` from any status. Orders are never changed locally: every server response yields a new `Order` value.
Polling happens in two phases with independent intervals, first until the order is ready to be finalized and then
until the certificate is available.
"""
import logging
import threading
import time

import josepy as jose
import validators
from acme import messages

from .. import errors

# Constants and Variables
ORDER_POLL_INTERVAL = 10
CERTIFICATE_POLL_INTERVAL = 15
DEFAULT_TIMEOUT = 300
STATUS_PENDING = 'pending'
STATUS_READY = 'ready'
STATUS_PROCESSING = 'processing'
STATUS_VALID = 'valid'
STATUS_INVALID = 'invalid'
logger = logging.getLogger(__name__)


class Order:
    """
    A certificate issuance request as last acknowledged by the ACME server.
    """

    def __init__(self, url: str, body: messages.Order):
        """
        Args:
            url (str): The order URL, taken from the `Location` header when the order was created.
            body (acme.messages.Order): The order object returned by the server.
        """
        self.url = url
        self.body = body

    @staticmethod
    def from_json(url: str, jobj: dict) -> 'Order':
        """
        Parses an order object returned by the ACME server.

        Raises:
            acme_appgw.errors.ProtocolError: When the order object is malformed.
        """
        try:
            body = messages.Order.from_json(jobj)
        except jose.DeserializationError as error:
            raise errors.ProtocolError(f"Malformed order received from '{url}': {error}") from error

        if body.status is None:
            raise errors.ProtocolError(f"Order received from '{url}' has no status.")

        return Order(url, body)

    @property
    def status(self) -> str:
        """The order status name, e.g. `pending` or `valid`."""
        return self.body.status.name

    @property
    def identifiers(self) -> list:
        """The domain names this order requests a certificate for."""
        return [identifier.value for identifier in self.body.identifiers or ()]

    @property
    def authorizations(self) -> list:
        """The URLs of this order's authorizations."""
        return list(self.body.authorizations or ())

    @property
    def finalize_url(self) -> str:
        """The URL the CSR must be posted to once the order is ready."""
        return self.body.finalize

    @property
    def certificate_url(self) -> str:
        """The URL of the issued certificate. Only set once the order is valid."""
        return self.body.certificate

    @property
    def error(self):
        """The problem document explaining why this order failed, if any."""
        return self.body.error

    def __repr__(self) -> str:
        return f"Order(url={self.url!r}, status={self.status!r}, identifiers={self.identifiers!r})"


def strip_wildcard(domain: str) -> str:
    """
    Strips the wildcard portion of a domain (*.) if present.

    Args:
        domain (str): The domain string to strip wildcards from.

    Returns:
        str: The domain string without the wildcard portion.
    """
    return domain[2:] if domain.startswith("*.") else domain


def validate_identifiers(identifiers) -> list:
    """
    Checks that identifiers are a non-empty list of valid, optionally wildcard, domain names.

    Returns:
        list: The identifiers with duplicates removed, in their original order.

    Raises:
        acme_appgw.errors.InvalidDomain: When no identifiers are given or one of them is invalid.
    """
    if isinstance(identifiers, str) or not identifiers:
        raise errors.InvalidDomain("Identifiers must be a non-empty list of domain names.")

    for domain in identifiers:
        # Check that value (minus the wildcard if present) is a valid FQDN
        if not isinstance(domain, str) or not validators.domain(strip_wildcard(domain)):
            raise errors.InvalidDomain(f"Invalid domain name '{domain}'. Domain name must adhere to RFC2181.")

    return list(dict.fromkeys(identifiers))


def create_order(transport, state, identifiers: list) -> Order:
    """
    Creates a new order for one or more domain names.

    Args:
        transport (acme_appgw.transport.Transport): The transport to send requests with.
        state (acme_appgw.state.ACMEState): The state of a registered account.
        identifiers (list): The domain names to request a certificate for. Wildcards (`*.example.com`) are allowed.

    Returns:
        acme_appgw.orders.Order: The created order, normally in the `pending` status.
    """
    identifiers = validate_identifiers(identifiers)

    if not state.registered:
        raise errors.InvalidState("An ACME account must be registered before creating an order.")
    if state.directory is None:
        transport.fetch_directory(state)

    new_order = messages.NewOrder(
        identifiers=[messages.Identifier(typ=messages.IDENTIFIER_FQDN, value=domain) for domain in identifiers]
    )
    response = transport.signed_request(state, state.directory['newOrder'], new_order)

    if not response.location:
        raise errors.ProtocolError("ACME server did not return the URL of the created order.")

    order = Order.from_json(response.location, response.json())
    logger.info("Created order %s for %s (%s)", order.url, ", ".join(order.identifiers), order.status)

    return order


def get_order(transport, state, order: Order) -> Order:
    """
    Fetches the current version of an order.

    Returns:
        acme_appgw.orders.Order: A new order value reflecting the server's current view.
    """
    response = transport.signed_request(state, order.url)
    return Order.from_json(order.url, response.json())


def poll_until(
        transport,
        state,
        order: Order,
        statuses: tuple,
        interval: float,
        timeout: float,
        cancel: threading.Event = None
) -> Order:
    """
    Polls an order at a fixed interval until it reaches one of `statuses`.

    Args:
        transport (acme_appgw.transport.Transport): The transport to send requests with.
        state (acme_appgw.state.ACMEState): The state of the account owning the order.
        order (acme_appgw.orders.Order): The order to poll.
        statuses (tuple): The order statuses to wait for.
        interval (float): The amount of time (in seconds) to wait between two polls.
        timeout (float): The maximum amount of time (in seconds) to wait.
        cancel (threading.Event): When set, polling stops at the next wait.

    Returns:
        acme_appgw.orders.Order: The order in one of the requested statuses.

    Raises:
        acme_appgw.errors.CertificateIssuanceFailed: When the order becomes `invalid`.
        acme_appgw.errors.PollingTimeout: When the order does not reach a requested status in time.
        acme_appgw.errors.RenewalCancelled: When `cancel` is set while waiting.
    """
    cancel = cancel if cancel is not None else threading.Event()
    deadline = time.monotonic() + timeout

    while True:
        if order.status in statuses:
            return order
        if order.status == STATUS_INVALID:
            raise issuance_failed(transport, state, order)

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            msg = f"Order {order.url} is still '{order.status}' after {timeout}s, expected {', '.join(statuses)}."
            raise errors.PollingTimeout(msg)

        logger.debug("Order %s is %s, checking again in %ss", order.url, order.status, interval)
        if cancel.wait(min(interval, remaining)):
            raise errors.RenewalCancelled(f"Cancelled while waiting for order {order.url}.")

        order = get_order(transport, state, order)


def wait_until_ready(
        transport,
        state,
        order: Order,
        interval: float = ORDER_POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        cancel: threading.Event = None
) -> Order:
    """
    Polls an order until all of its authorizations are satisfied. An order that is already `valid` is returned
    as is since there is nothing left to finalize.
    """
    order = poll_until(transport, state, order, (STATUS_READY, STATUS_VALID), interval, timeout, cancel)
    logger.info("Order %s is %s", order.url, order.status)
    return order


def poll_until_terminal(
        transport,
        state,
        order: Order,
        interval: float = CERTIFICATE_POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        cancel: threading.Event = None
) -> Order:
    """
    Polls a finalized order until its certificate is available. The only terminal statuses are `valid` (returned)
    and `invalid` (raised as `CertificateIssuanceFailed`).
    """
    order = poll_until(transport, state, order, (STATUS_VALID,), interval, timeout, cancel)
    logger.info("Order %s is valid, certificate available at %s", order.url, order.certificate_url)
    return order


def issuance_failed(transport, state, order: Order) -> errors.CertificateIssuanceFailed:
    """
    Builds the error for an `invalid` order, collecting the problems reported by the order and by each of its
    failed authorizations.
    """
    problems = [order.error] if order.error is not None else []

    for url in order.authorizations:
        try:
            authz = messages.Authorization.from_json(transport.signed_request(state, url).json())
        except (errors.ACMEAppGwError, jose.DeserializationError) as error:
            logger.warning("Unable to fetch failed authorization %s: %s", url, error)
            continue

        if authz.status == messages.STATUS_INVALID:
            problems.extend(chall.error for chall in authz.challenges or () if chall.error is not None)

    details = "; ".join(problem.detail or problem.typ for problem in problems) or "no details given"
    msg = f"Order {order.url} for {', '.join(order.identifiers)} is invalid: {details}"
    logger.error(msg)

    return errors.CertificateIssuanceFailed(msg, problems=problems)

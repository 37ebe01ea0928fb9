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
The complete renewal run: register or reuse the account, order the certificate, answer the DNS-01 challenges
through the DNS provider, finalize, and install the certificate onto the load balancer. The challenge TXT records
are always removed again, whether the run succeeds, fails or is cancelled.
"""
import logging
import pathlib
import threading

from .. import errors
from .. import tools
from ..account import ensure_account
from ..challenges import prepare_challenges, signal_ready
from ..finalizer import CertificateBundle, finalize
from ..orders import create_order, wait_until_ready
from ..state import ACMEState
from ..transport import Transport

logger = logging.getLogger(__name__)


def load_state(config) -> ACMEState:
    """
    Loads the ACME state from the configured state file. A new state is returned when there is no state file yet
    or when the stored account belongs to another ACME directory.
    """
    if config.state_path and pathlib.Path(config.state_path).exists():
        state = ACMEState.load(config.state_path)
        if state.directory_url == config.directory:
            return state
        logger.warning("Stored ACME account belongs to %s, registering a new one at %s", state.directory_url,
                       config.directory)

    return ACMEState(directory_url=config.directory)


def publish_challenges(dns_provider, records: list, zone: str, ttl: int) -> None:
    """Publishes the TXT record of each challenge, storing the returned handle on the record."""
    for record in records:
        record.handle = dns_provider.publish_txt(zone, record.name_in_zone(zone), record.value, ttl)


def cleanup_challenges(dns_provider, records: list) -> None:
    """
    Removes every published challenge TXT record. Removal is best effort: a failure is logged and the remaining
    records are still removed.
    """
    for record in records:
        if not record.published:
            continue
        try:
            dns_provider.delete_txt(record.handle)
        except Exception as error:  # pylint: disable=broad-except
            logger.warning("Unable to remove TXT record %s, remove it manually: %s", record.fqdn, error)
        else:
            record.handle = None


def wait_for_dns(records: list, config, cancel: threading.Event) -> None:
    """
    Waits until the published TXT records can be expected to be visible to the ACME server.

    Raises:
        acme_appgw.errors.PollingTimeout: When propagation checking is enabled and a record is still not visible.
        acme_appgw.errors.RenewalCancelled: When `cancel` is set while waiting.
    """
    if config.propagation_delay:
        logger.info("Waiting %ss for DNS propagation", config.propagation_delay)
        if cancel.wait(config.propagation_delay):
            raise errors.RenewalCancelled("Cancelled while waiting for DNS propagation.")

    if config.propagation_timeout and records:
        if not tools.wait_for_propagation(records, timeout=config.propagation_timeout,
                                          nameservers=config.nameservers, cancel=cancel):
            names = ", ".join(record.fqdn for record in records)
            raise errors.PollingTimeout(f"TXT records {names} not visible after {config.propagation_timeout}s.")


def obtain_certificate(transport, state, config, dns_provider, cancel: threading.Event = None) -> CertificateBundle:
    """
    Orders a certificate for the configured domains and answers its DNS-01 challenges.

    Args:
        transport (acme_appgw.transport.Transport): The transport to send requests with.
        state (acme_appgw.state.ACMEState): The state of a registered account.
        config (acme_appgw.config.RenewalConfig): The renewal settings.
        dns_provider (acme_appgw.collaborators.DNSProvider): The DNS provider publishing the TXT records.
        cancel (threading.Event): When set, waiting stops and the run is cancelled.

    Returns:
        acme_appgw.finalizer.CertificateBundle: The issued certificate bundle.
    """
    cancel = cancel if cancel is not None else threading.Event()
    if cancel.is_set():
        raise errors.RenewalCancelled("Cancelled before ordering the certificate.")
    order = create_order(transport, state, config.domains)
    records = prepare_challenges(transport, state, order)

    try:
        # Every record must be published before the first challenge is signaled
        publish_challenges(dns_provider, records, config.dns_zone, config.ttl)
        wait_for_dns(records, config, cancel)

        # No challenge may be signaled once the run is cancelled
        if cancel.is_set():
            raise errors.RenewalCancelled("Cancelled before signaling the challenges.")
        for record in records:
            signal_ready(transport, state, record)

        order = wait_until_ready(
            transport, state, order, interval=config.order_poll_interval, timeout=config.order_timeout, cancel=cancel
        )
        return finalize(
            transport,
            state,
            order,
            config.pfx_password,
            key_type=config.key_type,
            interval=config.certificate_poll_interval,
            timeout=config.certificate_timeout,
            cancel=cancel,
            friendly_name=config.certificate_name
        )
    finally:
        cleanup_challenges(dns_provider, records)


def renew(
        config,
        dns_provider,
        load_balancer,
        transport: Transport = None,
        state: ACMEState = None,
        cancel: threading.Event = None
) -> CertificateBundle:
    """
    Renews the certificate and installs it onto the load balancer.

    Args:
        config (acme_appgw.config.RenewalConfig): The renewal settings.
        dns_provider (acme_appgw.collaborators.DNSProvider): The DNS provider publishing the TXT records.
        load_balancer (acme_appgw.collaborators.LoadBalancer): The load balancer to install the certificate onto.
        transport (acme_appgw.transport.Transport): The transport to use. A new one is created if omitted,
            sharing the `cancel` event.
        state (acme_appgw.state.ACMEState): The ACME state to use. Loaded from `config.state_path` if omitted.
        cancel (threading.Event): When set, waiting stops and the run is cancelled.

    Returns:
        acme_appgw.finalizer.CertificateBundle: The installed certificate bundle.
    """
    transport = transport if transport is not None else Transport(verify_ssl=config.verify_ssl, cancel=cancel)
    state = state if state is not None else load_state(config)

    ensure_account(transport, state, config.email)
    if config.state_path:
        state.save(config.state_path)

    bundle = obtain_certificate(transport, state, config, dns_provider, cancel=cancel)
    logger.info("Certificate for %s issued, valid until %s", ", ".join(config.domains), bundle.not_valid_after)

    load_balancer.upload_certificate(bundle, config.certificate_name)
    if config.listener_name:
        load_balancer.bind_listener(config.certificate_name, config.listener_name)

    return bundle

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
"""Command line entrypoint renewing a certificate onto an Azure Application Gateway."""
import argparse
import logging
import os
import signal
import sys
import threading

from azure.core.exceptions import AzureError

from . import errors
from .azure import AzureApplicationGateway, AzureDNSProvider
from .config import RenewalConfig
from .finalizer import KEY_TYPES
from .orders import CERTIFICATE_POLL_INTERVAL, DEFAULT_TIMEOUT, ORDER_POLL_INTERVAL
from .renewal import renew
from .state import DEFAULT_DIRECTORY

logger = logging.getLogger("acme_appgw")


def build_parser() -> argparse.ArgumentParser:
    """Creates the argument parser of the `acme-appgw` command."""
    parser = argparse.ArgumentParser(
        prog="acme-appgw",
        description="Renews a TLS certificate using the ACME DNS-01 challenge against Azure DNS and installs it "
                    "onto an Azure Application Gateway.",
        epilog="acme-appgw --domain example.com --secondary-domain '*.example.com' --email admin@example.com "
               "--dns-zone example.com --dns-resource-group dns-rg --gateway-resource-group web-rg "
               "--gateway-name appgw --certificate-name example-com"
    )
    parser.add_argument("--domain", required=True, help="primary domain of the certificate")
    parser.add_argument("--secondary-domain", help="optional second domain, e.g. the wildcard '*.example.com'")
    parser.add_argument("--email", default=os.environ.get("ACME_APPGW_EMAIL"), help="ACME account contact email")
    parser.add_argument("--directory", default=os.environ.get("ACME_DIRECTORY", DEFAULT_DIRECTORY),
                        help="ACME directory URL (default: Let's Encrypt staging)")
    parser.add_argument("--state-file", help="JSON file the ACME account is loaded from and saved to")
    parser.add_argument("--dns-zone", required=True, help="Azure DNS zone holding the challenge records")
    parser.add_argument("--dns-resource-group", required=True, help="resource group of the Azure DNS zone")
    parser.add_argument("--subscription-id", default=os.environ.get("AZURE_SUBSCRIPTION_ID"),
                        help="Azure subscription ID (default: $AZURE_SUBSCRIPTION_ID)")
    parser.add_argument("--gateway-resource-group", required=True, help="resource group of the application gateway")
    parser.add_argument("--gateway-name", required=True, help="name of the application gateway")
    parser.add_argument("--certificate-name", required=True, help="certificate slot on the application gateway")
    parser.add_argument("--listener", help="HTTPS listener to bind to the certificate slot")
    parser.add_argument("--pfx-password", default=os.environ.get("ACME_APPGW_PFX_PASSWORD"),
                        help="password of the exported PFX (default: $ACME_APPGW_PFX_PASSWORD)")
    parser.add_argument("--key-type", default="rsa2048", choices=KEY_TYPES, help="certificate key type")
    parser.add_argument("--ttl", type=int, default=60, help="TTL of the challenge TXT records")
    parser.add_argument("--order-poll-interval", type=float, default=ORDER_POLL_INTERVAL,
                        help="seconds between polls while waiting for the order to be ready")
    parser.add_argument("--order-timeout", type=float, default=DEFAULT_TIMEOUT,
                        help="maximum seconds to wait for the order to be ready")
    parser.add_argument("--certificate-poll-interval", type=float, default=CERTIFICATE_POLL_INTERVAL,
                        help="seconds between polls while waiting for the certificate")
    parser.add_argument("--certificate-timeout", type=float, default=DEFAULT_TIMEOUT,
                        help="maximum seconds to wait for the certificate")
    parser.add_argument("--propagation-delay", type=float, default=0,
                        help="fixed seconds to wait after publishing the TXT records")
    parser.add_argument("--propagation-timeout", type=float, default=300,
                        help="maximum seconds to wait for the TXT records to be visible, 0 disables the check")
    parser.add_argument("--nameserver", action="append", help="DNS server used for the propagation check")
    parser.add_argument("--insecure", action="store_true", help="do not verify the ACME server SSL certificate")
    parser.add_argument("--verbose", action="store_true", help="log protocol details")
    return parser


def main(argv=None) -> int:
    """Runs a renewal and returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.subscription_id:
        parser.error("--subscription-id or $AZURE_SUBSCRIPTION_ID is required")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    # A termination request stops the run at its next wait, the challenge records are still removed
    cancel = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: cancel.set())

    try:
        config = RenewalConfig.from_args(args)
        dns_provider = AzureDNSProvider(args.subscription_id, args.dns_resource_group)
        gateway = AzureApplicationGateway(args.subscription_id, args.gateway_resource_group, args.gateway_name)
        renew(config, dns_provider, gateway, cancel=cancel)
    except (errors.ACMEAppGwError, AzureError) as error:
        logger.error("Certificate renewal failed: %s", error)
        return 1
    except KeyboardInterrupt:
        logger.error("Certificate renewal interrupted")
        return 130

    logger.info("Certificate renewal complete")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main(sys.argv[1:]))

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
"""Settings of a certificate renewal run."""
import validators

from .. import errors
from ..finalizer import KEY_TYPES
from ..orders import CERTIFICATE_POLL_INTERVAL, DEFAULT_TIMEOUT, ORDER_POLL_INTERVAL, validate_identifiers
from ..state import DEFAULT_DIRECTORY


class RenewalConfig:
    """
    Validated settings for `acme_appgw.renewal.renew()`.
    """
    # A renewal run simply has this many settings, keeping them in one object keeps the entrypoints simple.
    # pylint: disable=too-many-instance-attributes,too-many-arguments,too-many-locals

    def __init__(
            self,
            domain: str,
            email: str,
            dns_zone: str,
            certificate_name: str,
            pfx_password: str,
            secondary_domain: str = None,
            directory: str = DEFAULT_DIRECTORY,
            state_path: str = None,
            listener_name: str = None,
            key_type: str = 'rsa2048',
            ttl: int = 60,
            order_poll_interval: float = ORDER_POLL_INTERVAL,
            order_timeout: float = DEFAULT_TIMEOUT,
            certificate_poll_interval: float = CERTIFICATE_POLL_INTERVAL,
            certificate_timeout: float = DEFAULT_TIMEOUT,
            propagation_delay: float = 0,
            propagation_timeout: float = 0,
            nameservers: list = None,
            verify_ssl: bool = True
    ):
        """
        Args:
            domain (str): The primary domain of the certificate.
            email (str): The contact email address of the ACME account.
            dns_zone (str): The DNS zone the challenge TXT records are published in.
            certificate_name (str): The load balancer certificate slot to install the certificate into.
            pfx_password (str): The password protecting the exported certificate bundle.
            secondary_domain (str): An optional second domain, typically the wildcard of `domain`.
            directory (str): The ACME directory URL to interact with.
            state_path (str): A JSON file to load the ACME account from and to save it to.
            listener_name (str): An optional listener to bind to the certificate slot.
            key_type (str): The certificate key type. Options are: [`ec256`, `ec384`, `rsa2048`, `rsa4096`]
            ttl (int): The TTL (in seconds) of the challenge TXT records.
            order_poll_interval (float): The time (in seconds) between polls while waiting for the order to be ready.
            order_timeout (float): The maximum time (in seconds) to wait for the order to be ready.
            certificate_poll_interval (float): The time (in seconds) between polls while waiting for the certificate.
            certificate_timeout (float): The maximum time (in seconds) to wait for the certificate.
            propagation_delay (float): A fixed time (in seconds) to wait after publishing the TXT records.
            propagation_timeout (float): The maximum time (in seconds) to wait for the TXT records to be visible in
                DNS. Propagation is not checked when `0`.
            nameservers (list): The DNS servers queried when checking propagation.
            verify_ssl (bool): Verify the SSL certificate of the ACME server when making requests.
        """
        self.email = email
        self._domains = validate_identifiers([domain] + ([secondary_domain] if secondary_domain else []))
        self.dns_zone = dns_zone.rstrip('.')
        self.certificate_name = certificate_name
        self.pfx_password = pfx_password
        self.directory = directory
        self.state_path = state_path
        self.listener_name = listener_name
        self.key_type = key_type
        self.ttl = ttl
        self.order_poll_interval = order_poll_interval
        self.order_timeout = order_timeout
        self.certificate_poll_interval = certificate_poll_interval
        self.certificate_timeout = certificate_timeout
        self.propagation_delay = propagation_delay
        self.propagation_timeout = propagation_timeout
        self.nameservers = nameservers
        self.verify_ssl = verify_ssl

        if key_type not in KEY_TYPES:
            raise errors.InvalidKeyType(f"Invalid private key type '{key_type}'. Options {KEY_TYPES}")
        if not pfx_password:
            raise errors.InvalidPassword("A password is required to protect the certificate bundle.")
        if not validators.domain(self.dns_zone):
            raise errors.InvalidDomain(f"Invalid DNS zone '{dns_zone}'.")

    @property
    def domains(self) -> list:
        """The identifiers to request the certificate for, primary domain first."""
        return list(self._domains)

    @property
    def email(self) -> str:
        """The contact email address of the ACME account."""
        return self._email

    @email.setter
    def email(self, value: str):
        """
        Setter for the `email` property. This ensures an email address is valid before setting.

        Raises:
            acme_appgw.errors.InvalidEmail: When the `value` is not a valid email address
        """
        if not value or not validators.email(value):
            raise errors.InvalidEmail(f"Value '{value}' is not a valid email address.")

        self._email = value

    @staticmethod
    def from_args(args) -> 'RenewalConfig':
        """
        Builds the settings from parsed command line arguments.

        Args:
            args (argparse.Namespace): The arguments parsed by `acme_appgw.__main__.build_parser()`.

        Returns:
            acme_appgw.config.RenewalConfig: The validated settings.
        """
        return RenewalConfig(
            domain=args.domain,
            secondary_domain=args.secondary_domain,
            email=args.email,
            dns_zone=args.dns_zone,
            certificate_name=args.certificate_name,
            pfx_password=args.pfx_password,
            directory=args.directory,
            state_path=args.state_file,
            listener_name=args.listener,
            key_type=args.key_type,
            ttl=args.ttl,
            order_poll_interval=args.order_poll_interval,
            order_timeout=args.order_timeout,
            certificate_poll_interval=args.certificate_poll_interval,
            certificate_timeout=args.certificate_timeout,
            propagation_delay=args.propagation_delay,
            propagation_timeout=args.propagation_timeout,
            nameservers=args.nameserver,
            verify_ssl=not args.insecure
        )

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
"""DNS tools to confirm challenge TXT records are visible before the ACME server validates them."""
import logging
import threading
import time

import dns.exception
import dns.resolver

from .. import errors

logger = logging.getLogger(__name__)
UNRESOLVED = (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN, dns.resolver.NoNameservers, dns.exception.Timeout)


class DNSQuery:
    """A basic class to make DNS queries"""

    def __init__(
        self,
        domain: str,
        rtype: str = "A",
        nameservers: list = None,
        authoritative: bool = False,
        round_robin: bool = False
    ) -> None:
        """
        Initializes our DNS query.

        Args:
            domain (str): The fully qualified domain name to query.
            rtype (str): The DNS request type (e.g. `A`, `TXT`, `CNAME`, etc.).
            nameservers (list): Nameservers to query when making DNS requests.
            authoritative (bool): Use the authoritative nameserver for the domain.
            round_robin (bool): Rotate between each nameserver instead of the default fail-over method.
        """
        self.round_robin = round_robin
        self.type = rtype.upper()
        self.domain = domain
        self.nameservers = nameservers if nameservers else dns.resolver.Resolver().nameservers
        self.nameservers = self.__get_authoritative_nameservers__() if authoritative else self.nameservers
        self.values = []
        self.last_nameserver = ""

    def resolve(self) -> list:
        """
        Queries the nameservers with our configured object values.

        Returns:
            list: The values of the DNS answer. TXT values are returned without their quotes.
        """
        self.last_nameserver = self.nameservers[0] if self.nameservers else ""

        try:
            answer = DNSQuery.__resolve__(self.domain, rtype=self.type, nameservers=self.nameservers)
        except UNRESOLVED:
            answer = None

        # Rotate the nameservers if round robin mode is enabled
        if self.round_robin and len(self.nameservers) > 1:
            self.nameservers = self.nameservers[1:] + [self.nameservers[0]]

        self.values = self.__parse_values__(answer) if answer is not None else []
        return self.values

    def __get_authoritative_nameservers__(self) -> list:
        """
        Checks the domain's SOA record for the authoritative nameserver of this domain.

        Returns:
            list: A list of authoritative nameserver addresses, or the configured nameservers if none is found.
        """
        domain_sections = self.domain.split(".")

        # Loop through each level of the subdomain to find the SOA for this FQDN.
        while domain_sections:
            domain = ".".join(domain_sections)

            try:
                answer = self.__resolve__(domain, rtype="SOA", nameservers=self.nameservers)
            except UNRESOLVED:
                domain_sections.pop(0)
                continue

            # Resolve the primary nameserver named by the SOA record to its address
            primary = answer[0].mname.to_text()
            try:
                return self.__parse_values__(self.__resolve__(primary, rtype="A", nameservers=self.nameservers))
            except UNRESOLVED:
                break

        logger.warning("No authoritative nameserver found for %s, using %s", self.domain, self.nameservers)
        return self.nameservers

    @staticmethod
    def __resolve__(domain: str, rtype: str = "A", nameservers: list = None) -> dns.resolver.Answer:
        """
        Internal function-like DNS request method.

        Returns:
             dns.resolver.Answer: The answer to the request.
        """
        resolver = dns.resolver.Resolver()
        resolver.nameservers = nameservers if nameservers else resolver.nameservers
        return resolver.resolve(domain, rtype)

    @staticmethod
    def __parse_values__(answer) -> list:
        """
        Parses the value portion of each record of an answer.

        Args:
            answer (dns.resolver.Answer): The answer returned by the `__resolve__()` method.
        Returns:
            list: A parsed list of values for each record.
        """
        values = []

        for rdata in answer:
            # TXT records may be split in several strings, join them back together
            if hasattr(rdata, 'strings'):
                values.append(b"".join(rdata.strings).decode())
            else:
                values.append(rdata.to_text())

        return list(filter(None, values))


def wait_for_propagation(
        records: list,
        timeout: int = 300,
        interval: int = 2,
        nameservers: list = None,
        authoritative: bool = False,
        round_robin: bool = True,
        cancel: threading.Event = None
) -> bool:
    """
    Checks each challenge's TXT record until it contains the challenge value or until the timeout is reached.

    Args:
        records (list): The `ChallengeRecord` objects whose TXT values must be visible.
        timeout (int): The amount of time (in seconds) to continue trying to verify the TXT records.
        interval (int): The amount of time (in seconds) between DNS requests per record.
        nameservers (list): The DNS server hosts to query. Defaults to the system resolvers.
        authoritative (bool): Identify and use the authoritative nameserver for each record instead of `nameservers`.
        round_robin (bool): Rotate between each nameserver instead of the default failover behavior.
        cancel (threading.Event): When set, checking stops before the next DNS request.

    Returns:
        bool: A boolean indicating whether every record returned its challenge value.

    Raises:
        acme_appgw.errors.RenewalCancelled: When `cancel` is set while checking.
    """
    cancel = cancel if cancel is not None else threading.Event()
    verified = []
    deadline = time.monotonic() + timeout
    resolvers = [
        (record, DNSQuery(record.fqdn, rtype='TXT', nameservers=nameservers, authoritative=authoritative,
                          round_robin=round_robin))
        for record in records
    ]

    while True:
        if cancel.is_set():
            raise errors.RenewalCancelled("Cancelled while checking DNS propagation.")

        for record, resolver in resolvers:
            # Only query records that have not been verified yet
            if record.value in verified:
                continue
            if record.value in resolver.resolve():
                verified.append(record.value)
            action = 'found' if record.value in verified else 'not found'
            logger.debug("Token '%s' for '%s' %s in %s via %s", record.value, record.fqdn, action, resolver.values,
                         resolver.last_nameserver)

        if len(verified) == len(resolvers):
            return True
        if time.monotonic() >= deadline:
            return False

        # Avoid flooding the DNS server(s) by briefly pausing between DNS checks
        if cancel.wait(interval):
            raise errors.RenewalCancelled("Cancelled while checking DNS propagation.")

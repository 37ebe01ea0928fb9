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
"""Capability interfaces for the DNS provider and the load balancer a renewal relies on."""
import abc


class RecordHandle:
    """Identifies a single published TXT value so it can be removed again."""
    # pylint: disable=too-few-public-methods

    def __init__(self, zone: str, name: str, value: str, ttl: int = None):
        self.zone = zone
        self.name = name
        self.value = value
        self.ttl = ttl

    def __eq__(self, other) -> bool:
        if not isinstance(other, RecordHandle):
            return NotImplemented
        return (self.zone, self.name, self.value) == (other.zone, other.name, other.value)

    def __hash__(self) -> int:
        return hash((self.zone, self.name, self.value))

    def __repr__(self) -> str:
        return f"RecordHandle(zone={self.zone!r}, name={self.name!r}, value={self.value!r})"


class DNSProvider(abc.ABC):
    """Publishes and removes the TXT records answering DNS-01 challenges."""

    @abc.abstractmethod
    def publish_txt(self, zone: str, name: str, value: str, ttl: int) -> RecordHandle:
        """
        Adds a value to the TXT record set `name` of `zone`. Values already present under the same name are kept,
        since a domain and its wildcard are both validated with `_acme-challenge.<domain>`.

        Args:
            zone (str): The DNS zone name, e.g. `example.com`.
            name (str): The record name relative to the zone, e.g. `_acme-challenge`.
            value (str): The TXT value to add.
            ttl (int): The record set time-to-live (in seconds).

        Returns:
            acme_appgw.collaborators.RecordHandle: A handle to pass to `delete_txt()`.
        """

    @abc.abstractmethod
    def delete_txt(self, handle: RecordHandle) -> None:
        """Removes the value identified by `handle`, deleting the record set once it holds no value."""


class LoadBalancer(abc.ABC):
    """Installs renewed certificates onto a load balancer."""

    @abc.abstractmethod
    def upload_certificate(self, bundle, slot_name: str) -> None:
        """
        Creates or replaces the certificate stored under `slot_name`.

        Args:
            bundle (acme_appgw.finalizer.CertificateBundle): The certificate and key to install.
            slot_name (str): The name of the certificate slot on the load balancer.
        """

    @abc.abstractmethod
    def bind_listener(self, slot_name: str, listener_name: str) -> None:
        """Makes a listener serve the certificate stored under `slot_name`."""

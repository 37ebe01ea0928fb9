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
Azure implementations of the renewal collaborators: TXT records are managed in an Azure DNS zone, and certificates
are installed onto an Azure Application Gateway. Both use an already authenticated Azure credential, by default
`azure.identity.DefaultAzureCredential`.
"""
import base64
import logging

from azure.core.exceptions import ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.mgmt.dns import DnsManagementClient
from azure.mgmt.dns.models import RecordSet, TxtRecord
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.network.models import ApplicationGatewaySslCertificate, SubResource

from .. import errors
from ..collaborators import DNSProvider, LoadBalancer, RecordHandle

logger = logging.getLogger(__name__)


class AzureDNSProvider(DNSProvider):
    """Manages DNS-01 TXT records in Azure DNS zones of a single resource group."""

    def __init__(self, subscription_id: str, resource_group: str, credential=None, client: DnsManagementClient = None):
        """
        Args:
            subscription_id (str): The Azure subscription holding the DNS zone.
            resource_group (str): The resource group holding the DNS zone.
            credential: The Azure credential to authenticate with. Defaults to `DefaultAzureCredential()`.
            client (azure.mgmt.dns.DnsManagementClient): An existing client to use instead of creating one.
        """
        self.resource_group = resource_group
        if client is None:
            client = DnsManagementClient(credential or DefaultAzureCredential(), subscription_id)
        self.client = client

    def _get_values(self, zone: str, name: str) -> list:
        """Returns the values of an existing TXT record set, or an empty list if it does not exist."""
        try:
            record_set = self.client.record_sets.get(self.resource_group, zone, name, "TXT")
        except ResourceNotFoundError:
            return []

        return [value for txt_record in record_set.txt_records or [] for value in txt_record.value]

    def publish_txt(self, zone: str, name: str, value: str, ttl: int) -> RecordHandle:
        values = self._get_values(zone, name)
        if value not in values:
            values.append(value)

        self.client.record_sets.create_or_update(
            self.resource_group,
            zone,
            name,
            "TXT",
            RecordSet(ttl=ttl, txt_records=[TxtRecord(value=[txt]) for txt in values])
        )
        logger.info("Published TXT record %s.%s with %d value(s)", name, zone, len(values))

        return RecordHandle(zone, name, value, ttl)

    def delete_txt(self, handle: RecordHandle) -> None:
        values = [value for value in self._get_values(handle.zone, handle.name) if value != handle.value]

        # Other challenges may still be using this record set, only remove our value from it
        if values:
            self.client.record_sets.create_or_update(
                self.resource_group,
                handle.zone,
                handle.name,
                "TXT",
                RecordSet(ttl=handle.ttl or 60, txt_records=[TxtRecord(value=[txt]) for txt in values])
            )
        else:
            self.client.record_sets.delete(self.resource_group, handle.zone, handle.name, "TXT")
        logger.info("Removed TXT value from %s.%s", handle.name, handle.zone)


class AzureApplicationGateway(LoadBalancer):
    """Installs certificates onto an Azure Application Gateway."""

    def __init__(
            self,
            subscription_id: str,
            resource_group: str,
            gateway_name: str,
            credential=None,
            client: NetworkManagementClient = None
    ):
        """
        Args:
            subscription_id (str): The Azure subscription holding the application gateway.
            resource_group (str): The resource group holding the application gateway.
            gateway_name (str): The name of the application gateway.
            credential: The Azure credential to authenticate with. Defaults to `DefaultAzureCredential()`.
            client (azure.mgmt.network.NetworkManagementClient): An existing client to use instead of creating one.
        """
        self.resource_group = resource_group
        self.gateway_name = gateway_name
        if client is None:
            client = NetworkManagementClient(credential or DefaultAzureCredential(), subscription_id)
        self.client = client

    def _update(self, gateway) -> None:
        """Applies a modified gateway configuration and waits for the operation to complete."""
        poller = self.client.application_gateways.begin_create_or_update(
            self.resource_group, self.gateway_name, gateway
        )
        poller.result()

    def upload_certificate(self, bundle, slot_name: str) -> None:
        gateway = self.client.application_gateways.get(self.resource_group, self.gateway_name)
        data = base64.b64encode(bundle.to_pfx()).decode()
        certificates = list(gateway.ssl_certificates or [])

        # Replace the slot's certificate in place, or add the slot if it does not exist yet
        for certificate in certificates:
            if certificate.name == slot_name:
                certificate.data = data
                certificate.password = bundle.password
                certificate.key_vault_secret_id = None
                break
        else:
            certificates.append(ApplicationGatewaySslCertificate(name=slot_name, data=data, password=bundle.password))

        gateway.ssl_certificates = certificates
        self._update(gateway)
        logger.info("Uploaded certificate to slot '%s' of application gateway '%s'", slot_name, self.gateway_name)

    def bind_listener(self, slot_name: str, listener_name: str) -> None:
        gateway = self.client.application_gateways.get(self.resource_group, self.gateway_name)
        listener = next((item for item in gateway.http_listeners or [] if item.name == listener_name), None)

        if listener is None:
            msg = f"Application gateway '{self.gateway_name}' has no listener named '{listener_name}'."
            raise errors.LoadBalancerError(msg)

        listener.ssl_certificate = SubResource(id=f"{gateway.id}/sslCertificates/{slot_name}")
        self._update(gateway)
        logger.info("Bound listener '%s' to certificate slot '%s'", listener_name, slot_name)

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
Order finalization: a fresh certificate key and CSR are generated for a ready order, the CSR is submitted, and the
issued certificate chain is downloaded and packaged with its key into a password protected PKCS#12 bundle.
"""
import logging
import threading

import josepy as jose
from acme import crypto_util
from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa, ec
from cryptography.hazmat.primitives.serialization import (
    Encoding, PrivateFormat, NoEncryption, load_pem_private_key, pkcs12
)

from .. import errors
from .. import orders

# Constants and Variables
KEY_TYPES = ['ec256', 'ec384', 'rsa2048', 'rsa4096']
PEM_CHAIN_CONTENT_TYPE = 'application/pem-certificate-chain'
logger = logging.getLogger(__name__)


class CertificateBundle:
    """
    An issued certificate chain together with the private key it was requested for.
    """

    def __init__(self, certificate_chain: bytes, private_key: bytes, password: str, friendly_name: str = None):
        """
        Args:
            certificate_chain (bytes): The PEM encoded certificate chain, leaf certificate first.
            private_key (bytes): The PEM encoded private key of the leaf certificate.
            password (str): The password protecting the PKCS#12 export of this bundle.
            friendly_name (str): The friendly name stored in the PKCS#12 export.

        Raises:
            acme_appgw.errors.DownloadError: When the chain does not contain any PEM certificate.
            acme_appgw.errors.InvalidPassword: When no export password is given.
        """
        if not password:
            raise errors.InvalidPassword("A password is required to protect the certificate bundle.")

        try:
            self.certificates = x509.load_pem_x509_certificates(certificate_chain)
        except ValueError as error:
            raise errors.DownloadError(f"Downloaded certificate chain is not valid PEM: {error}") from error

        self.certificate_chain = certificate_chain
        self.private_key = private_key
        self.password = password
        self.friendly_name = friendly_name

    @property
    def certificate(self) -> x509.Certificate:
        """The leaf certificate."""
        return self.certificates[0]

    @property
    def not_valid_after(self):
        """The expiration date of the leaf certificate."""
        return self.certificate.not_valid_after_utc

    def to_pfx(self) -> bytes:
        """
        Exports the key and chain as a PKCS#12 (PFX) file protected by the bundle password.

        Returns:
            bytes: The DER encoded PKCS#12 data.
        """
        key = load_pem_private_key(self.private_key, password=None)
        name = self.friendly_name.encode() if self.friendly_name else None

        # Application gateways only import PFX files using the legacy 3DES/SHA1 encryption
        encryption = (
            PrivateFormat.PKCS12.encryption_builder()
            .kdf_rounds(50000)
            .key_cert_algorithm(pkcs12.PBES.PBESv1SHA1And3KeyTripleDESCBC)
            .hmac_hash(hashes.SHA1())
            .build(self.password.encode())
        )

        return pkcs12.serialize_key_and_certificates(name, key, self.certificate, self.certificates[1:], encryption)

    def __repr__(self) -> str:
        return f"CertificateBundle(subject={self.certificate.subject.rfc4514_string()!r})"


def generate_private_key(key_type: str = 'rsa2048') -> bytes:
    """
    Generates a new RSA or EC certificate private key.

    Args:
        key_type (str): The requested private key type. Options are: [`ec256`, `ec384`, `rsa2048`, `rsa4096`]

    Returns:
        bytes: The PEM encoded private key data bytes-string.

    Raises:
        acme_appgw.errors.InvalidKeyType: When an unknown/unsupported `key_type` is requested.
    """
    if key_type == 'ec256':
        key = ec.generate_private_key(ec.SECP256R1(), default_backend())
    elif key_type == 'ec384':
        key = ec.generate_private_key(ec.SECP384R1(), default_backend())
    elif key_type == 'rsa2048':
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048, backend=default_backend())
    elif key_type == 'rsa4096':
        key = rsa.generate_private_key(public_exponent=65537, key_size=4096, backend=default_backend())
    # Otherwise, the requested key type is not supported. Throw an error
    else:
        raise errors.InvalidKeyType(f"Invalid private key type '{key_type}'. Options {KEY_TYPES}")

    return key.private_bytes(
        encoding=Encoding.PEM,
        format=PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=NoEncryption()
    )


def build_csr(private_key: bytes, identifiers: list) -> bytes:
    """
    Generates a CSR listing every identifier as a subject alternative name.

    Returns:
        bytes: The DER encoded CSR.
    """
    csr_pem = crypto_util.make_csr(private_key, identifiers)
    return x509.load_pem_x509_csr(csr_pem).public_bytes(Encoding.DER)


def download_certificate(transport, state, url: str) -> bytes:
    """
    Downloads the PEM certificate chain of a valid order.

    Raises:
        acme_appgw.errors.DownloadError: When the certificate cannot be retrieved.
    """
    try:
        response = transport.signed_request(state, url, headers={'Accept': PEM_CHAIN_CONTENT_TYPE})
    except (errors.ServerError, errors.ACMERequestError) as error:
        raise errors.DownloadError(f"Unable to download certificate from '{url}': {error.message}") from error

    if not response.content.strip():
        raise errors.DownloadError(f"Certificate downloaded from '{url}' is empty.")

    logger.info("Downloaded certificate chain from %s", url)
    return response.content


def finalize(
        transport,
        state,
        order,
        password: str,
        key_type: str = 'rsa2048',
        interval: float = orders.CERTIFICATE_POLL_INTERVAL,
        timeout: float = orders.DEFAULT_TIMEOUT,
        cancel: threading.Event = None,
        friendly_name: str = None
) -> CertificateBundle:
    """
    Finalizes a ready order and returns the issued certificate bundled with its freshly generated key.

    Args:
        transport (acme_appgw.transport.Transport): The transport to send requests with.
        state (acme_appgw.state.ACMEState): The state of the account owning the order.
        order (acme_appgw.orders.Order): An order in the `ready` status.
        password (str): The password protecting the bundle's PKCS#12 export.
        key_type (str): The certificate key type. Options are: [`ec256`, `ec384`, `rsa2048`, `rsa4096`]
        interval (float): The amount of time (in seconds) between two polls of the order.
        timeout (float): The maximum amount of time (in seconds) to wait for the certificate.
        cancel (threading.Event): When set, polling stops at the next wait.
        friendly_name (str): The friendly name stored in the PKCS#12 export.

    Returns:
        acme_appgw.finalizer.CertificateBundle: The issued certificate bundle.

    Raises:
        acme_appgw.errors.FinalizationError: When the order is not ready or the CSR is rejected.
        acme_appgw.errors.CertificateIssuanceFailed: When the order becomes invalid.
        acme_appgw.errors.PollingTimeout: When the certificate is not issued in time.
        acme_appgw.errors.DownloadError: When the certificate cannot be downloaded.
    """
    if order.status != orders.STATUS_READY:
        raise errors.FinalizationError(f"Order {order.url} is '{order.status}', only ready orders can be finalized.")
    if not password:
        raise errors.InvalidPassword("A password is required to protect the certificate bundle.")

    private_key = generate_private_key(key_type)
    csr = build_csr(private_key, order.identifiers)

    try:
        response = transport.signed_request(state, order.finalize_url, {'csr': jose.encode_b64jose(csr)})
    except errors.ACMERequestError as error:
        raise errors.FinalizationError(f"CSR for order {order.url} was rejected: {error.message}") from error

    order = orders.Order.from_json(order.url, response.json())
    logger.info("Finalized order %s (%s)", order.url, order.status)
    order = orders.poll_until_terminal(transport, state, order, interval=interval, timeout=timeout, cancel=cancel)

    if not order.certificate_url:
        raise errors.ProtocolError(f"Valid order {order.url} has no certificate URL.")

    chain = download_certificate(transport, state, order.certificate_url)
    return CertificateBundle(chain, private_key, password, friendly_name=friendly_name)

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
"""Custom exception classes for acme_appgw."""


class ACMEAppGwError(Exception):
    """Base class for every error raised by acme_appgw"""
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProtocolError(ACMEAppGwError):
    """Error occurs when the ACME server returns a malformed or unexpected response"""


class ServerError(ACMEAppGwError):
    """Error occurs when the ACME server answers with a 5xx status or cannot be reached"""
    def __init__(self, message: str, retry_after: int = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RateLimited(ServerError):
    """Error occurs when the ACME server signals throttling"""


class ACMERequestError(ACMEAppGwError):
    """Error occurs when the ACME server rejects a request with a non-retryable 4xx problem"""
    def __init__(self, message: str, problem=None, status_code: int = None) -> None:
        super().__init__(message)
        self.problem = problem
        self.status_code = status_code


class RegistrationError(ACMEAppGwError):
    """Error occurs when the ACME server rejects an account registration"""


class PollingTimeout(ACMEAppGwError, TimeoutError):
    """Error occurs when the max time has been exceeded waiting for an ACME server event"""


class RenewalCancelled(ACMEAppGwError):
    """Error occurs when a caller cancels the renewal while it is waiting on the ACME server"""


class CertificateIssuanceFailed(ACMEAppGwError):
    """Error occurs when an order reaches the 'invalid' status"""
    def __init__(self, message: str, problems: list = None) -> None:
        super().__init__(message)
        self.problems = problems if problems else []


class FinalizationError(ACMEAppGwError):
    """Error occurs when the ACME server rejects the CSR submitted to finalize an order"""


class DownloadError(ACMEAppGwError):
    """Error occurs when the issued certificate cannot be downloaded"""


class ChallengeUnavailable(ACMEAppGwError):
    """Error occurs when an authorization does not offer the DNS-01 challenge"""


class ChallengeNotPublished(ACMEAppGwError):
    """Error occurs when readiness is signaled for a challenge whose TXT record was never published"""


class InvalidKeyType(ACMEAppGwError):
    """Error occurs when the requested private key type is unsupported"""


class InvalidPassword(ACMEAppGwError):
    """Error occurs when a certificate bundle is exported without a password"""


class InvalidEmail(ACMEAppGwError):
    """Error occurs when an account action was requested without a valid email value"""


class InvalidDomain(ACMEAppGwError):
    """Error occurs when an identifier is not a valid domain name"""


class InvalidPath(ACMEAppGwError):
    """Error occurs when a requested file path does not exist"""


class InvalidState(ACMEAppGwError):
    """Error occurs when a stored ACME state cannot be loaded or is used before it is complete"""


class LoadBalancerError(ACMEAppGwError):
    """Error occurs when the renewed certificate cannot be installed onto the load balancer"""

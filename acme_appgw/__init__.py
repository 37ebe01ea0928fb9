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
acme_appgw renews a TLS certificate through the ACME DNS-01 challenge and installs it onto an application gateway.
The ACME protocol state is an explicit `ACMEState` value passed through every operation, the DNS provider and the
load balancer are pluggable collaborators. Azure DNS and Azure Application Gateway implementations are provided in
`acme_appgw.azure`.

Examples:
    >>> import acme_appgw
    >>> state = acme_appgw.ACMEState(directory_url="https://acme-staging-v02.api.letsencrypt.org/directory")
    >>> transport = acme_appgw.Transport()
    >>> acme_appgw.ensure_account(transport, state, "admin@example.com")
    >>> order = acme_appgw.create_order(transport, state, ["example.com", "*.example.com"])
    >>> records = acme_appgw.prepare_challenges(transport, state, order)
"""
from . import errors
from . import tools
from .account import Account, ensure_account
from .challenges import DNS_LABEL, ChallengeRecord, prepare_challenges, signal_ready
from .collaborators import DNSProvider, LoadBalancer, RecordHandle
from .config import RenewalConfig
from .finalizer import CertificateBundle, finalize, generate_private_key
from .orders import Order, create_order, get_order, poll_until_terminal, wait_until_ready
from .renewal import renew
from .state import ACMEState
from .transport import Transport

__version__ = "1.0.0"
__pdoc__ = {"tests": False}    # Excludes 'tests' submodule from documentation

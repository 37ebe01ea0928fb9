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

import sys

import acme_appgw

# Keep the ACME account in a file so later renewals reuse it. In this example, the Let's Encrypt staging environment.
state = acme_appgw.ACMEState(directory_url="https://acme-staging-v02.api.letsencrypt.org/directory")
transport = acme_appgw.Transport()
acme_appgw.ensure_account(transport, state, "user@example.com")
state.save("acme_state.json")

# Order a certificate for the domain and its wildcard. Print each challenge FQDN and its TXT value.
order = acme_appgw.create_order(transport, state, ["test.example.com", "*.test.example.com"])
records = acme_appgw.prepare_challenges(transport, state, order)
for record in records:
    print(f"{record.fqdn} -> {record.value}")

# [ !!! ADD YOUR CODE TO UPLOAD THE TXT VALUES TO YOUR DNS SERVER HERE; OR UPLOAD THEM MANUALLY !!! ]
for record in records:
    record.handle = acme_appgw.RecordHandle("example.com", record.name_in_zone("example.com"), record.value)

# Keep checking DNS for the TXT values for 1200 seconds (20 minutes) before giving up.
if not acme_appgw.tools.wait_for_propagation(records, timeout=1200, nameservers=["8.8.8.8", "1.1.1.1"]):
    print("TXT records for " + str(order.identifiers) + " never propagated")
    sys.exit(1)

# Tell the ACME server the records are in place, then finalize the order and export the certificate as PFX.
for record in records:
    acme_appgw.signal_ready(transport, state, record)
order = acme_appgw.wait_until_ready(transport, state, order)
bundle = acme_appgw.finalize(transport, state, order, password="change me")
print(bundle.certificate_chain.decode())

with open("certificate.pfx", "wb") as pfx_file:
    pfx_file.write(bundle.to_pfx())

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
Signed request plumbing for the ACME protocol. Every POST is wrapped in a JWS carrying the most recent anti-replay
nonce held by the `ACMEState`, and the nonce returned by the server replaces it, even when the server answers with
an error. Transient failures (5xx, throttling, stale nonces) are retried here with exponential backoff so the
callers only ever see permanent failures.
"""
import json
import logging
import threading

import josepy as jose
import requests
from acme import jws
from acme import messages

from .. import errors

logger = logging.getLogger(__name__)

REQUIRED_ENDPOINTS = ('newNonce', 'newAccount', 'newOrder')


class ACMEResponse:
    """A processed ACME server response."""

    def __init__(self, status_code: int, headers, content: bytes):
        self.status_code = status_code
        self.headers = headers
        self.content = content

    @property
    def location(self) -> str:
        """The `Location` header of this response, if any."""
        return self.headers.get('Location')

    @property
    def text(self) -> str:
        """The response body decoded as UTF-8."""
        return self.content.decode('utf-8', errors='replace')

    def json(self) -> dict:
        """
        Decodes the response body as a JSON object.

        Raises:
            acme_appgw.errors.ProtocolError: When the body is not a JSON object.
        """
        try:
            jobj = json.loads(self.content)
        except ValueError as error:
            raise errors.ProtocolError(f"Expected a JSON response, received: {self.text[:200]!r}") from error

        if not isinstance(jobj, dict):
            raise errors.ProtocolError(f"Expected a JSON object, received: {self.text[:200]!r}")

        return jobj


class Transport:
    """
    Sends requests to an ACME server on behalf of an `ACMEState`.
    """
    JOSE_CONTENT_TYPE = 'application/jose+json'
    REPLAY_NONCE_HEADER = 'Replay-Nonce'

    def __init__(
            self,
            session: requests.Session = None,
            user_agent: str = 'acme_appgw/1.0',
            verify_ssl: bool = True,
            timeout: int = 45,
            max_attempts: int = 5,
            backoff: float = 1.0,
            max_backoff: float = 60.0,
            cancel: threading.Event = None
    ):
        """
        Args:
            session (requests.Session): The HTTP session to send requests with. A new session is created if omitted.
            user_agent (str): The User-Agent header value to send.
            verify_ssl (bool): Verify the SSL certificate of the ACME server when making requests.
            timeout (int): The timeout (in seconds) of each individual HTTP request.
            max_attempts (int): The number of attempts made for a request before a transient failure is raised.
            backoff (float): The base delay (in seconds) of the exponential backoff between attempts.
            max_backoff (float): The longest delay (in seconds) waited between two attempts.
            cancel (threading.Event): When set, waiting between two attempts stops with `RenewalCancelled`.
        """
        self.session = session if session is not None else requests.Session()
        self.user_agent = user_agent
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.max_backoff = max_backoff
        self.cancel = cancel if cancel is not None else threading.Event()

    def fetch_directory(self, state) -> messages.Directory:
        """
        Fetches the ACME directory of the state's `directory_url` and stores it in the state.

        Returns:
            acme.messages.Directory: The parsed directory.

        Raises:
            acme_appgw.errors.ProtocolError: When the directory is malformed or lacks a required endpoint.
        """
        response = self._with_retries(lambda: self._check(self._send('GET', state.directory_url)))

        try:
            directory = messages.Directory.from_json(response.json())
        except jose.DeserializationError as error:
            raise errors.ProtocolError(f"Malformed ACME directory at '{state.directory_url}': {error}") from error

        # Ensure the endpoints needed to obtain a certificate are all advertised
        for endpoint in REQUIRED_ENDPOINTS:
            try:
                directory[endpoint]
            except KeyError as error:
                msg = f"ACME directory at '{state.directory_url}' does not advertise '{endpoint}'."
                raise errors.ProtocolError(msg) from error

        state.directory = directory
        return directory

    def fetch_nonce(self, state) -> str:
        """
        Requests a fresh nonce from the directory's `newNonce` endpoint and stores it in the state.

        Returns:
            str: The new nonce.
        """
        if state.directory is None:
            self.fetch_directory(state)

        return self._with_retries(lambda: self._fetch_nonce_once(state))

    def _fetch_nonce_once(self, state) -> str:
        """Sends a single `newNonce` request and stores the returned nonce in the state."""
        url = state.directory['newNonce']
        response = self._check(self._send('HEAD', url))
        nonce = response.headers.get(self.REPLAY_NONCE_HEADER)

        if not nonce:
            raise errors.ProtocolError(f"No '{self.REPLAY_NONCE_HEADER}' header returned by '{url}'.")

        logger.debug("Requested fresh nonce %s", nonce)
        state.nonce = nonce
        return nonce

    def signed_request(self, state, url: str, payload=None, headers: dict = None) -> ACMEResponse:
        """
        Sends a JWS signed POST request. A `None` payload sends a POST-as-GET request.

        Args:
            state (acme_appgw.state.ACMEState): The state holding the account key and the current nonce.
            url (str): The URL to POST to.
            payload (dict|josepy.JSONDeSerializable): The object to sign and send.
            headers (dict): Extra request headers, e.g. an `Accept` header.

        Returns:
            acme_appgw.transport.ACMEResponse: The successful response.

        Raises:
            acme_appgw.errors.ServerError: When the server keeps failing after `max_attempts` attempts.
            acme_appgw.errors.RateLimited: When the server keeps throttling after `max_attempts` attempts.
            acme_appgw.errors.ACMERequestError: When the server rejects the request.
            acme_appgw.errors.RenewalCancelled: When the transport's `cancel` event is set while waiting to retry.
        """
        if not state.account_key:
            raise errors.InvalidState("An account key is required to sign ACME requests.")
        if state.directory is None:
            self.fetch_directory(state)

        body = self._encode_payload(payload)
        request_headers = {'Content-Type': self.JOSE_CONTENT_TYPE}
        request_headers.update(headers or {})

        def attempt():
            if state.nonce is None:
                self._fetch_nonce_once(state)
            data = self._sign(state, url, body, state.consume_nonce())
            response = self._send('POST', url, data=data, headers=request_headers)

            # The nonce returned by the server replaces the one just consumed, even on errors
            nonce = response.headers.get(self.REPLAY_NONCE_HEADER)
            if nonce:
                state.nonce = nonce
            else:
                logger.debug("No %s returned by %s, a new one will be requested", self.REPLAY_NONCE_HEADER, url)

            return self._check(response)

        return self._with_retries(attempt)

    def _with_retries(self, request):
        """Runs `request` until it succeeds, fails permanently or runs out of attempts."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return request()
            except errors.ServerError as error:
                if attempt == self.max_attempts:
                    raise
                delay = self._delay(attempt, error.retry_after)
                logger.warning("%s (attempt %d/%d), retrying in %.1fs", error.message, attempt, self.max_attempts,
                               delay)
                if self.cancel.wait(delay):
                    raise errors.RenewalCancelled("Cancelled while waiting to retry an ACME request.") from error
            except errors.ACMERequestError as error:
                # A rejected nonce is the only 4xx worth retrying, the error response carried a fresh nonce
                if error.problem is None or error.problem.code != 'badNonce' or attempt == self.max_attempts:
                    raise
                logger.debug("Retrying request after error: %s", error.message)

        # max_attempts is always at least 1, this is never reached
        raise errors.ProtocolError("Request was never attempted.")

    def _delay(self, attempt: int, retry_after: int = None) -> float:
        """Computes the backoff delay before the next attempt."""
        if retry_after is not None:
            return min(float(retry_after), self.max_backoff)
        return min(self.backoff * 2 ** (attempt - 1), self.max_backoff)

    @staticmethod
    def _encode_payload(payload) -> bytes:
        """Serializes a request payload. POST-as-GET requests carry an empty payload."""
        if payload is None:
            return b''
        if isinstance(payload, jose.JSONDeSerializable):
            return payload.json_dumps().encode()
        return json.dumps(payload).encode()

    @staticmethod
    def _sign(state, url: str, body: bytes, nonce: str) -> str:
        """Wraps the body in a flattened JWS. `kid` is used once the account exists, `jwk` before that."""
        try:
            decoded_nonce = jose.decode_b64jose(nonce)
        except jose.DeserializationError as error:
            raise errors.ProtocolError(f"Invalid nonce '{nonce}' received from the ACME server.") from error

        logger.debug("JWS payload for %s:\n%s", url, body)
        return jws.JWS.sign(
            body,
            key=state.account_key,
            alg=jose.RS256,
            nonce=decoded_nonce,
            url=url,
            kid=state.account_url
        ).json_dumps()

    def _send(self, method: str, url: str, data: str = None, headers: dict = None) -> requests.Response:
        """Sends a single HTTP request. Connection failures are reported as retryable server errors."""
        headers = dict(headers or {})
        headers.setdefault('User-Agent', self.user_agent)
        logger.debug("Sending %s request to %s", method, url)

        try:
            response = self.session.request(
                method, url, data=data, headers=headers, timeout=self.timeout, verify=self.verify_ssl
            )
        except requests.exceptions.RequestException as error:
            raise errors.ServerError(f"Unable to reach ACME server at '{url}': {error}") from error

        logger.debug("Received response from %s: HTTP %d", url, response.status_code)
        return response

    @staticmethod
    def _check(response: requests.Response) -> ACMEResponse:
        """Converts a raw response into an `ACMEResponse`, raising the matching error for failures."""
        result = ACMEResponse(response.status_code, response.headers, response.content)

        if 200 <= response.status_code < 300:
            return result

        # Parse the RFC 7807 problem document if there is one
        problem = None
        try:
            problem = messages.Error.from_json(result.json())
        except (errors.ProtocolError, jose.DeserializationError):
            logger.debug("Error response from ACME server is not a problem document")
        detail = problem.detail if problem is not None and problem.detail else result.text[:200]
        code = problem.code if problem is not None else None
        msg = f"ACME server answered HTTP {response.status_code} ({code or 'no problem type'}): {detail}"

        if response.status_code == 429 or code == 'rateLimited':
            raise errors.RateLimited(msg, retry_after=Transport._retry_after(response))
        if response.status_code >= 500:
            raise errors.ServerError(msg, retry_after=Transport._retry_after(response))

        raise errors.ACMERequestError(msg, problem=problem, status_code=response.status_code)

    @staticmethod
    def _retry_after(response: requests.Response):
        """Parses an integer `Retry-After` header. Date values fall back to the regular backoff."""
        try:
            return int(response.headers.get('Retry-After'))
        except (TypeError, ValueError):
            return None

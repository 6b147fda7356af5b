"""OAuth device-authorization flow against github.com.

The user opens a verification URL and enters a short code; meanwhile we poll
the token endpoint until the grant is approved, denied, or we give up.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from memsync.protocols import (
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
    RemoteUnavailableError,
)

logger = logging.getLogger(__name__)

DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
DEFAULT_INTERVAL = 5.0
DEFAULT_TIMEOUT = 600.0
SLOW_DOWN_STEP = 5.0
REQUEST_TIMEOUT = 30.0


@dataclass
class DeviceCode:
    device_code: str
    user_code: str
    verification_uri: str
    interval: float = DEFAULT_INTERVAL
    expires_in: Optional[float] = None


class DeviceFlow:
    """Device-authorization client.

    Args:
        client_id: OAuth application client id.
        web_url: Base URL of the hosting site (not the API).
        scope: Requested OAuth scope.
        http: Module or client exposing ``post`` (defaults to ``httpx``).
        sleep: Sleep function, injectable for tests.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        client_id: str,
        web_url: str = "https://github.com",
        scope: str = "repo",
        http=None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client_id = client_id
        self.web_url = web_url.rstrip("/")
        self.scope = scope
        self._http = http or httpx
        self._sleep = sleep
        self._clock = clock

    def _post(self, path: str, payload: dict) -> dict:
        try:
            response = self._http.post(
                f"{self.web_url}{path}",
                data=payload,
                headers={"Accept": "application/json"},
                timeout=REQUEST_TIMEOUT,
            )
        except httpx.HTTPError as e:
            raise RemoteUnavailableError(f"Cannot reach {self.web_url}: {e}") from e

        if response.status_code >= 500:
            raise RemoteUnavailableError(
                f"{path} returned HTTP {response.status_code}", status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise RemoteUnavailableError(f"{path} returned a non-JSON body") from e

    def request_code(self) -> DeviceCode:
        """Ask the remote for a device code, user code and verification URL."""
        data = self._post("/login/device/code", {"client_id": self.client_id, "scope": self.scope})
        if "device_code" not in data:
            raise AuthorizationDeniedError(
                data.get("error_description") or data.get("error") or "no device code returned"
            )
        return DeviceCode(
            device_code=data["device_code"],
            user_code=data["user_code"],
            verification_uri=data["verification_uri"],
            interval=float(data.get("interval") or DEFAULT_INTERVAL),
            expires_in=data.get("expires_in"),
        )

    def poll_for_token(
        self,
        device_code: str,
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> str:
        """Poll the token endpoint until an access token is issued.

        Raises:
            AuthorizationTimeoutError: if ``timeout`` seconds pass without a token.
            AuthorizationDeniedError: if the remote rejects the grant.
        """
        deadline = self._clock() + timeout
        payload = {
            "client_id": self.client_id,
            "device_code": device_code,
            "grant_type": DEVICE_GRANT_TYPE,
        }

        while True:
            data = self._post("/login/oauth/access_token", payload)
            token = data.get("access_token")
            if token:
                return token

            error = data.get("error")
            if error == "slow_down":
                interval += SLOW_DOWN_STEP
            elif error != "authorization_pending":
                raise AuthorizationDeniedError(error or "unknown error")

            if self._clock() + interval > deadline:
                raise AuthorizationTimeoutError(
                    f"Device authorization not completed within {int(timeout)}s"
                )
            self._sleep(interval)

    def run(
        self,
        on_code: Callable[[DeviceCode], None],
        timeout: float = DEFAULT_TIMEOUT,
    ) -> str:
        """Full flow: request a code, hand it to ``on_code``, poll for the token."""
        code = self.request_code()
        on_code(code)
        logger.info("Waiting for device authorization")
        return self.poll_for_token(code.device_code, code.interval, timeout)

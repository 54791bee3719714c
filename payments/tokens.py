"""
Access token providers.

The gateway asks a TokenProvider for a bearer token before every PSP call.
ClientCredentialsTokenProvider performs the OAuth2 client-credentials exchange
on each call; CachingTokenProvider wraps any provider and reuses the token
until shortly before it expires.
"""

import threading
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

import requests
import structlog

from core.logging import BusinessEvents
from payments.errors import AuthenticationError

log = structlog.get_logger(__name__)

TOKEN_PATH = "/v1/oauth2/token"


@runtime_checkable
class TokenProvider(Protocol):
    def token(self) -> str: ...


class ClientCredentialsTokenProvider:
    def __init__(
        self,
        client_id: str,
        secret: str,
        endpoint: str,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        self.client_id = client_id
        self.secret = secret
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.session = session
        # Set from the last exchange; read by CachingTokenProvider
        self.last_expires_in: int | None = None

    def token(self) -> str:
        return self.fetch_access_token()

    def fetch_access_token(self) -> str:
        """Exchange the client credentials for a bearer token."""
        post = self.session.post if self.session else requests.post
        try:
            r = post(
                f"{self.endpoint}{TOKEN_PATH}",
                auth=(self.client_id, self.secret),
                data={"grant_type": "client_credentials"},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            log.error(BusinessEvents.TOKEN_FAILURE, endpoint=self.endpoint, error=str(e))
            raise AuthenticationError(f"Token exchange timed out: {e}") from e
        except requests.RequestException as e:
            log.error(BusinessEvents.TOKEN_FAILURE, endpoint=self.endpoint, error=str(e))
            raise AuthenticationError(f"Token exchange failed: {e}") from e

        if not 200 <= r.status_code < 300:
            log.error(
                BusinessEvents.TOKEN_FAILURE,
                endpoint=self.endpoint,
                status=r.status_code,
            )
            raise AuthenticationError(
                "Token exchange rejected", status_code=r.status_code, body=r.text
            )

        try:
            data = r.json()
        except ValueError as e:
            raise AuthenticationError(
                "Token exchange returned a non-JSON body",
                status_code=r.status_code,
                body=r.text,
            ) from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError(
                "Token exchange response has no access_token",
                status_code=r.status_code,
                body=r.text,
            )

        self.last_expires_in = data.get("expires_in")
        log.debug(BusinessEvents.TOKEN_FETCHED, endpoint=self.endpoint)
        return token


class CachingTokenProvider:
    """
    Reuse a token until it is about to expire.

    The lifetime comes from ``ttl`` when given, otherwise from the
    ``expires_in`` the inner provider saw on its last exchange. Tokens are
    dropped ``leeway`` seconds early so a cached token is never sent stale.
    """

    def __init__(
        self,
        inner: TokenProvider,
        ttl: float | None = None,
        leeway: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inner = inner
        self.ttl = ttl
        self.leeway = leeway
        self.clock = clock
        self._lock = threading.Lock()
        self._cached: tuple[str, float] | None = None

    def token(self) -> str:
        with self._lock:
            now = self.clock()
            if self._cached and self._cached[1] > now:
                return self._cached[0]

            tok = self.inner.token()
            lifetime = self.ttl
            if lifetime is None:
                lifetime = getattr(self.inner, "last_expires_in", None) or 0
            expires_at = now + float(lifetime) - self.leeway
            self._cached = (tok, expires_at) if expires_at > now else None
            return tok

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

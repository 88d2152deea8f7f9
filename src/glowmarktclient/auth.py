from __future__ import annotations

import datetime as dt
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from .config import API_URL, APPLICATION_ID
from .errors import AuthError

DEFAULT_TOKEN_TTL = dt.timedelta(hours=24)
# Cached tokens this close to expiry are not reused
DEFAULT_EXPIRY_MARGIN = dt.timedelta(seconds=500)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _from_epoch(value: Any) -> dt.datetime:
    return dt.datetime.fromtimestamp(int(value), tz=dt.timezone.utc)


@dataclass(frozen=True)
class AuthToken:
    value: str
    expires_at: dt.datetime
    issued_at: Optional[dt.datetime] = None

    def is_valid(self, now: Optional[dt.datetime] = None,
                 margin: dt.timedelta = DEFAULT_EXPIRY_MARGIN) -> bool:
        if now is None:
            now = _utcnow()
        return self.expires_at - now > margin

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'token': self.value, 'exp': int(self.expires_at.timestamp())}
        if self.issued_at is not None:
            data['issued_at'] = int(self.issued_at.timestamp())
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'AuthToken':
        """Build a token from a cache file or an auth response (both use 'token'/'exp')."""
        issued = data.get('issued_at')
        return AuthToken(
            value=str(data['token']),
            expires_at=_from_epoch(data['exp']),
            issued_at=_from_epoch(issued) if issued is not None else None,
        )


class TokenStore:
    """Single-token JSON cache on the local filesystem.

    With no path configured every operation is a no-op and each run logs in afresh.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._log = logging.getLogger(__name__)

    def load(self) -> Optional[AuthToken]:
        if not self.path:
            return None
        try:
            with open(self.path, 'r', encoding='utf-8') as fh:
                return AuthToken.from_dict(json.load(fh))
        except FileNotFoundError:
            self._log.debug("No cached token at %s", self.path)
        except (OSError, ValueError, KeyError, TypeError) as e:
            self._log.warning("Ignoring unreadable token cache %s: %s", self.path, e)
        return None

    def save(self, token: AuthToken) -> None:
        """Write the token via temp file + rename so a crash never leaves a truncated cache."""
        if not self.path:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix='.token-', dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(token.to_dict(), fh)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


class Authenticator:
    """Owns the GlowMarkt session token.

    All reader threads share one token. ``refresh`` is serialised by a lock, so
    a burst of 401s from concurrent requests produces a single login.
    """

    def __init__(
        self,
        http: httpx.Client,
        username: str,
        password: str,
        store: Optional[TokenStore] = None,
        token_ttl: dt.timedelta = DEFAULT_TOKEN_TTL,
        expiry_margin: dt.timedelta = DEFAULT_EXPIRY_MARGIN,
        clock: Callable[[], dt.datetime] = _utcnow,
        base_url: str = API_URL,
    ):
        self._http = http
        self._username = username
        self._password = password
        self.store = store or TokenStore(None)
        self.token_ttl = token_ttl
        self.expiry_margin = expiry_margin
        self._clock = clock
        self._base_url = base_url
        self._token: Optional[AuthToken] = None
        self._lock = threading.Lock()
        self._log = logging.getLogger(__name__)

    def _valid(self, token: Optional[AuthToken]) -> bool:
        return token is not None and token.is_valid(self._clock(), self.expiry_margin)

    def ensure_token(self) -> AuthToken:
        """Return a usable token, consulting memory, then the cache, then the API."""
        with self._lock:
            if self._valid(self._token):
                return self._token
            cached = self.store.load()
            if self._valid(cached):
                self._log.info("Using cached token (expires %s)", cached.expires_at.isoformat())
                self._token = cached
                return cached
            if cached is not None:
                self._log.info("Cached token expired at %s; logging in", cached.expires_at.isoformat())
            return self._login()

    def refresh(self, stale: Optional[AuthToken]) -> AuthToken:
        """Replace ``stale`` after the API rejected it.

        The rejected token is dropped from memory and the cache is not consulted,
        so a server-revoked token that is still cached is never reused. Callers
        that lost the race get the token the winner obtained.
        """
        with self._lock:
            current = self._token
            if current is not None and stale is not None and current.value != stale.value:
                return current
            self._token = None
            return self._login()

    def _login(self) -> AuthToken:
        # caller holds self._lock
        url = f"{self._base_url}/auth"
        headers = {'applicationId': APPLICATION_ID, 'Content-Type': 'application/json'}
        try:
            resp = self._http.post(url, json={'username': self._username, 'password': self._password}, headers=headers)
        except httpx.HTTPError as e:
            raise AuthError(f"Login request failed: {e}") from e
        if resp.status_code >= 400:
            raise AuthError(f"Login rejected with status {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as e:
            raise AuthError("Login response was not JSON") from e
        if not isinstance(body, dict) or body.get('valid') is False or not body.get('token'):
            raise AuthError("Login rejected: invalid credentials")

        issued = self._clock().replace(microsecond=0)
        if body.get('exp') is not None:
            expires = _from_epoch(body['exp'])
        else:
            expires = issued + self.token_ttl
        token = AuthToken(value=str(body['token']), expires_at=expires, issued_at=issued)
        self._token = token
        self._log.info("Obtained new GlowMarkt token, expires %s", expires.isoformat())
        try:
            self.store.save(token)
        except OSError as e:
            self._log.warning("Could not write token cache %s: %s", self.store.path, e)
        return token

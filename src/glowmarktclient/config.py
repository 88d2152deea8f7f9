from __future__ import annotations

import datetime as dt
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

API_URL = "https://api.glowmarkt.com/api/v0-1"
# Public application id of the Bright app, required on every request
APPLICATION_ID = "b0f1b774-a586-4f72-9edd-27ead8aa7a8d"


@dataclass(frozen=True)
class Resource:
    resource_id: str
    classifier: str  # e.g. 'electricity.consumption', 'gas.consumption'
    unit: Optional[str] = None
    name: Optional[str] = None

    @property
    def kind(self) -> str:
        """Energy kind taken from the classifier prefix ('electricity', 'gas')."""
        return self.classifier.split('.', 1)[0] if self.classifier else ''


@dataclass(frozen=True)
class Reading:
    resource_id: str
    timestamp: dt.datetime  # UTC, start of the bucket
    value: Optional[float]
    unit: Optional[str] = None


@dataclass
class GlowmarktSettings:
    """Configuration specific to the GlowMarkt (Bright) API client."""
    username: str
    password: str = field(repr=False)
    token_cache_file: Optional[str] = None
    max_window_days: int = 10  # API rejects PT30M queries spanning more than 10 days
    token_ttl_hours: int = 24  # used when the auth response carries no 'exp'
    period: str = 'PT30M'
    workers: int = 4
    classifiers: List[str] = field(default_factory=list)

    @property
    def max_window(self) -> dt.timedelta:
        return dt.timedelta(days=self.max_window_days)

    @property
    def token_ttl(self) -> dt.timedelta:
        return dt.timedelta(hours=self.token_ttl_hours)

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> 'GlowmarktSettings':
        """Create GlowMarkt settings from environment variables (or an equivalent mapping)."""
        if env is None:
            env = os.environ
        username = env['GM_USERNAME']
        password = env['GM_PASSWORD']
        classifiers_raw = env.get('GM_CLASSIFIERS') or ''
        classifiers = [c.strip() for c in classifiers_raw.split(',') if c.strip()]

        return GlowmarktSettings(
            username=username,
            password=password,
            token_cache_file=env.get('TOKEN_CACHE_FILE') or None,
            max_window_days=int(env.get('GM_MAX_WINDOW_DAYS') or '10'),
            token_ttl_hours=int(env.get('GM_TOKEN_TTL_HOURS') or '24'),
            period=env.get('GM_PERIOD') or 'PT30M',
            workers=int(env.get('GM_WORKERS') or '4'),
            classifiers=classifiers,
        )

from __future__ import annotations
import datetime as dt
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple
import logging
import httpx
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from .auth import Authenticator, AuthToken, TokenStore
from .config import API_URL, APPLICATION_ID, GlowmarktSettings, Reading, Resource
from .errors import ApiError, AuthError, TransientApiError
from .windows import DateRange, default_range, split_range


@dataclass
class FetchResult:
    resource: Resource
    readings: List[Reading] = field(default_factory=list)
    windows: int = 0
    failed_windows: List[Tuple[DateRange, ApiError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_windows


class GlowmarktClient:
    def __init__(
        self,
        settings: GlowmarktSettings,
        http: Optional[httpx.Client] = None,
        authenticator: Optional[Authenticator] = None,
        base_url: str = API_URL,
        max_attempts: int = 5,
        backoff: float = 0.5,
    ):
        self.settings = settings
        self.base_url = base_url
        self.max_attempts = max_attempts
        self.backoff = backoff
        self._client = http or httpx.Client(timeout=30.0)
        self.auth = authenticator or Authenticator(
            self._client,
            settings.username,
            settings.password,
            store=TokenStore(settings.token_cache_file),
            token_ttl=settings.token_ttl,
            base_url=base_url,
        )
        self._log = logging.getLogger(__name__)

    def close(self):
        self._client.close()

    def __enter__(self) -> 'GlowmarktClient':
        return self

    def __exit__(self, *exc):
        self.close()

    # ---------------- Internal Helpers -----------------
    @staticmethod
    def _fmt(ts: dt.datetime) -> str:
        """Format datetime as the naive UTC string the readings endpoint expects."""
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=dt.timezone.utc)
        else:
            ts = ts.astimezone(dt.timezone.utc)
        return ts.strftime('%Y-%m-%dT%H:%M:%S')

    def _retrying(self) -> Retrying:
        return Retrying(
            reraise=True,
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff, max=10),
            retry=retry_if_exception_type((httpx.TransportError, TransientApiError)),
        )

    def _send(self, token: AuthToken, path: str, params: Dict[str, Any] | None) -> httpx.Response:
        headers = {
            'applicationId': APPLICATION_ID,
            'Content-Type': 'application/json',
            'token': token.value,
        }
        resp = self._client.get(f"{self.base_url}{path}", params=params, headers=headers)
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientApiError(f"Error {resp.status_code} for {path}: {resp.text[:200]}", resp.status_code)
        return resp

    def _request(self, token: AuthToken, path: str, params: Dict[str, Any] | None) -> httpx.Response:
        try:
            return self._retrying()(self._send, token, path, params)
        except httpx.HTTPError as e:
            raise ApiError(f"Request to {path} failed: {e}") from e

    def _get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        token = self.auth.ensure_token()
        resp = self._request(token, path, params)
        if resp.status_code == 401:
            self._log.info("Token rejected for %s; re-authenticating", path)
            token = self.auth.refresh(token)
            resp = self._request(token, path, params)
            if resp.status_code == 401:
                raise AuthError(f"Unauthorized for {path} after re-authentication")
        if resp.status_code >= 400:
            raise ApiError(f"Error {resp.status_code} for {path}: {resp.text[:200]}", resp.status_code)
        if not resp.content:
            raise ApiError(f"Empty response body for {path}", resp.status_code)
        try:
            return resp.json()
        except ValueError as e:  # JSON decode error
            raise ApiError(f"Non-JSON response for {path}: {resp.text[:200]}", resp.status_code) from e

    # ---------------- Resource Discovery -----------------
    def list_resources(self) -> List[Resource]:
        """Return the account's resources in API order (entities, then their resources).

        Order is never re-sorted so repeated runs walk resources identically.
        """
        wanted = set(self.settings.classifiers)
        resources: List[Resource] = []
        seen = set()
        entities = self._get('/virtualentity') or []
        if not isinstance(entities, list):
            raise ApiError(f"Unexpected virtual entity payload: {type(entities).__name__}")
        for entity in entities:
            ve_id = entity.get('veId') if isinstance(entity, dict) else None
            if not ve_id:
                continue
            data = self._get(f'/virtualentity/{ve_id}/resources')
            if not isinstance(data, dict):
                raise ApiError(f"Unexpected resources payload for entity {ve_id}: {type(data).__name__}")
            for r in data.get('resources', []):
                rid = r.get('resourceId')
                if not rid or rid in seen:
                    continue
                classifier = r.get('classifier') or ''
                if wanted and classifier not in wanted:
                    continue
                seen.add(rid)
                resources.append(Resource(
                    resource_id=rid,
                    classifier=classifier,
                    unit=r.get('baseUnit'),
                    name=r.get('name'),
                ))
        self._log.info("Discovered %s resources", len(resources))
        return resources

    # ---------------- Readings -----------------
    def get_window(self, resource: Resource, window: DateRange, include_end: bool = False) -> List[Reading]:
        """Fetch one window of readings.

        Buckets before ``start`` or after ``end`` are dropped. A bucket at ``end``
        belongs to the next window unless ``include_end`` is set. Rows that carry
        no usable timestamp are logged and skipped; a body that is not a readings
        object raises ApiError.
        """
        params = {
            'from': self._fmt(window.start),
            'to': self._fmt(window.end),
            'period': self.settings.period,
            'function': 'sum',
        }
        path = f'/resource/{resource.resource_id}/readings'
        data = self._get(path, params)
        if not isinstance(data, dict):
            raise ApiError(f"Unexpected readings payload for {path}: {type(data).__name__}")
        rows = data.get('data') or []
        if not isinstance(rows, list):
            raise ApiError(f"Unexpected readings data for {path}: {type(rows).__name__}")
        unit = data.get('units') or resource.unit
        start = window.start.astimezone(dt.timezone.utc)
        end = window.end.astimezone(dt.timezone.utc)
        out: List[Reading] = []
        malformed = 0
        for row in rows:
            try:
                ts = dt.datetime.fromtimestamp(int(row[0]), tz=dt.timezone.utc)
            except (TypeError, ValueError, IndexError, KeyError, OverflowError, OSError):
                malformed += 1
                continue
            if ts < start or ts > end or (ts == end and not include_end):
                continue
            value = row[1] if len(row) > 1 else None
            out.append(Reading(resource_id=resource.resource_id, timestamp=ts, value=value, unit=unit))
        if malformed:
            self._log.warning(
                "Skipped %s malformed rows in window %s..%s for resource %s",
                malformed, window.start.isoformat(), window.end.isoformat(), resource.resource_id,
            )
        return out

    def fetch_readings(self, resource: Resource, date_range: Optional[DateRange] = None) -> FetchResult:
        """Fetch readings for ``date_range`` split into API-sized windows.

        Both ends of the range are included. Windows run on a small thread
        pool; results are merged and sorted by timestamp. A window that still
        fails after retries is recorded on the result and the rest are kept.
        AuthError propagates.
        """
        if date_range is None:
            date_range = default_range()
        windows = split_range(date_range.start, date_range.end, self.settings.max_window)
        result = FetchResult(resource=resource, windows=len(windows))
        if not windows:
            return result

        collected: List[Reading] = []
        workers = max(1, min(self.settings.workers, len(windows)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            last = windows[-1]
            futures = {pool.submit(self.get_window, resource, w, w is last): w for w in windows}
            try:
                for fut in as_completed(futures):
                    window = futures[fut]
                    try:
                        collected.extend(fut.result())
                    except ApiError as e:
                        self._log.error(
                            "Failed window %s..%s for resource %s: %s",
                            window.start.isoformat(), window.end.isoformat(), resource.resource_id, e,
                        )
                        result.failed_windows.append((window, e))
            except AuthError:
                for f in futures:
                    f.cancel()
                raise

        collected.sort(key=lambda r: r.timestamp)
        last_ts = None
        for reading in collected:
            if reading.timestamp == last_ts:
                continue
            result.readings.append(reading)
            last_ts = reading.timestamp
        result.failed_windows.sort(key=lambda item: item[0].start)
        self._log.debug(
            "Fetched %s readings across %s windows for %s", len(result.readings), len(windows), resource.resource_id
        )
        return result

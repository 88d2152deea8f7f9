import datetime as dt
import json
import threading
import time

import httpx
import pytest

from glowmarktclient.auth import Authenticator, TokenStore
from glowmarktclient.client import GlowmarktClient
from glowmarktclient.config import GlowmarktSettings

UTC = dt.timezone.utc
PREFIX = '/api/v0-1'


def _parse(ts):
    return dt.datetime.strptime(ts, '%Y-%m-%dT%H:%M:%S').replace(tzinfo=UTC)


def half_hourly(value=0.5):
    """Readings generator: one row every 30 minutes from 'from' to 'to' inclusive."""
    def gen(resource_id, start, end):
        rows = []
        cursor = start
        while cursor <= end:
            rows.append([int(cursor.timestamp()), value])
            cursor += dt.timedelta(minutes=30)
        return rows
    return gen


class FakeGlowmarkt:
    """In-memory stand-in for the GlowMarkt API, served through httpx.MockTransport."""

    def __init__(self, resources=None, readings=None, username='user', password='pass'):
        self.username = username
        self.password = password
        self.resources = resources if resources is not None else [
            {'resourceId': 'res-elec', 'classifier': 'electricity.consumption', 'baseUnit': 'kWh', 'name': 'electricity consumption'},
            {'resourceId': 'res-gas', 'classifier': 'gas.consumption', 'baseUnit': 'kWh', 'name': 'gas consumption'},
        ]
        self.readings = readings or half_hourly()
        self.login_count = 0
        self.valid_tokens = set()
        self.requests = []
        self.unauthorized_next = 0
        self.window_status = {}  # (resource_id, from-string) -> list of statuses to return first
        self.window_body = {}  # (resource_id, from-string) -> JSON body returned instead of readings
        self.token_lifetime = 7 * 86400
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith(PREFIX):
            path = path[len(PREFIX):]
        with self._lock:
            self.requests.append((request.method, path, dict(request.url.params)))
            if path == '/auth':
                return self._login(request)
            token = request.headers.get('token')
            if self.unauthorized_next > 0:
                self.unauthorized_next -= 1
                return httpx.Response(401, json={'error': 'unauthorized'})
            if token not in self.valid_tokens:
                return httpx.Response(401, json={'error': 'unauthorized'})

        if path == '/virtualentity':
            return httpx.Response(200, json=[{'veId': 've-1', 'name': 'DCC Sourced'}])
        if path == '/virtualentity/ve-1/resources':
            return httpx.Response(200, json={'veId': 've-1', 'resources': self.resources})
        if path.startswith('/resource/') and path.endswith('/readings'):
            resource_id = path.split('/')[2]
            params = request.url.params
            key = (resource_id, params['from'])
            with self._lock:
                queued = self.window_status.get(key)
                if queued:
                    status = queued.pop(0)
                    if isinstance(status, Exception):
                        raise status
                    return httpx.Response(status, text='failure')
            if key in self.window_body:
                return httpx.Response(200, json=self.window_body[key])
            rows = self.readings(resource_id, _parse(params['from']), _parse(params['to']))
            return httpx.Response(200, json={
                'status': 'OK',
                'resourceId': resource_id,
                'units': 'kWh',
                'classifier': 'electricity.consumption',
                'data': rows,
            })
        return httpx.Response(404, text='not found')

    def _login(self, request):
        body = json.loads(request.content)
        if body.get('username') != self.username or body.get('password') != self.password:
            return httpx.Response(200, json={'valid': False})
        self.login_count += 1
        token = f'token-{self.login_count}'
        self.valid_tokens = {token}
        return httpx.Response(200, json={
            'valid': True,
            'token': token,
            'exp': int(time.time()) + self.token_lifetime,
        })

    def expire_tokens(self):
        """Make the server reject every token handed out so far."""
        with self._lock:
            self.valid_tokens = set()

    def count(self, path_prefix):
        return sum(1 for _, p, _ in self.requests if p.startswith(path_prefix))

    def http(self):
        return httpx.Client(transport=httpx.MockTransport(self.handler), timeout=5.0)

    def client(self, settings=None, store=None, **kwargs):
        settings = settings or make_settings(username=self.username, password=self.password)
        http = self.http()
        auth = Authenticator(http, settings.username, settings.password, store=store or TokenStore(settings.token_cache_file))
        return GlowmarktClient(settings, http=http, authenticator=auth, backoff=0, **kwargs)


def make_settings(**overrides):
    values = dict(username='user', password='pass', max_window_days=10, workers=4)
    values.update(overrides)
    return GlowmarktSettings(**values)


class FakeWriteApi:
    """Records batches; ``failures`` maps a predicate to queued exceptions for matching batches."""

    def __init__(self, failures=None):
        self.writes = []
        self.attempts = 0
        self.failures = failures or []  # list of (predicate, [exc, exc, ...])
        self._lock = threading.Lock()

    def write(self, bucket, org, record):
        with self._lock:
            self.attempts += 1
            for predicate, queue in self.failures:
                if queue and predicate(record):
                    raise queue.pop(0)
            self.writes.append((bucket, list(record)))

    @property
    def points(self):
        return [p for _, batch in self.writes for p in batch]


@pytest.fixture
def fake_api():
    return FakeGlowmarkt()


@pytest.fixture
def write_api():
    return FakeWriteApi()

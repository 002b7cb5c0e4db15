"""
Shared fakes for the runtime core tests: an offline ``requests`` session,
canned responses, a scriptable editor engine and simple runtime handles.
"""

import asyncio

import pytest
import requests

from runtime_core.bridges import RuntimeHandle
from runtime_core.editor_loader import EditorEngine
from runtime_core.models import RuntimeResult


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=''):
        self.status_code = status_code
        self._json = json_data
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError('No JSON object could be decoded')
        return self._json


class FakeSession:
    """Routes ``(METHOD, url)`` or ``url`` to a response, an exception or a list of them.

    A list is consumed in order and its last item repeats. Unrouted URLs
    raise ``ConnectionError``, so nothing ever reaches the network.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def request(self, method, url, **kwargs):
        method = method.upper()
        self.calls.append((method, url, kwargs))
        action = self.routes.get((method, url), self.routes.get(url))
        if isinstance(action, list):
            action = action.pop(0) if len(action) > 1 else action[0]
        if action is None:
            raise requests.exceptions.ConnectionError(f'no route to {url}')
        if isinstance(action, BaseException):
            raise action
        if callable(action):
            return action(method, url, kwargs)
        return action

    def head(self, url, **kwargs):
        return self.request('HEAD', url, **kwargs)

    def get(self, url, **kwargs):
        return self.request('GET', url, **kwargs)

    def post(self, url, **kwargs):
        return self.request('POST', url, **kwargs)

    def urls(self, method=None):
        return [url for m, url, _ in self.calls if method is None or m == method]


class FakeEngine(EditorEngine):
    """Editor engine whose init fails for the module paths listed in ``fail_paths``."""

    def __init__(self, fail_paths=()):
        self.fail_paths = set(fail_paths)
        self.configured = []
        self.module_path = None
        self.init_calls = 0

    def configure(self, module_path):
        self.module_path = module_path
        self.configured.append(module_path)

    async def init(self):
        self.init_calls += 1
        await asyncio.sleep(0)
        if self.module_path in self.fail_paths:
            raise RuntimeError(f'cannot load {self.module_path}')


class EchoHandle(RuntimeHandle):
    """Synchronous handle that prints the source back."""

    language = 'python'

    def execute(self, code):
        return RuntimeResult(output=code)


class CountingFactory:
    """Async bridge factory counting constructions; the first ``fail_times`` calls raise."""

    def __init__(self, handle_cls=EchoHandle, fail_times=0, delay=0.01):
        self.handle_cls = handle_cls
        self.fail_times = fail_times
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.calls <= self.fail_times:
            raise RuntimeError('interpreter bundle unavailable')
        return self.handle_cls()


@pytest.fixture
def make_session():
    return FakeSession


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def make_engine():
    return FakeEngine


@pytest.fixture
def make_factory():
    return CountingFactory


@pytest.fixture
def echo_handle_cls():
    return EchoHandle

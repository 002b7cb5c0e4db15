"""
Remote compiler bridges - hosted services that compile and run a snippet.

    rust   → Rust Playground   POST /execute                     (JSON)
    cpp    → Wandbox           POST /api/compile.json            (JSON)
    java   → paiza.io          POST runners/create.json + poll   (form)
    swift  → paiza.io          POST runners/create.json + poll   (form)

Handles are stateless: each ``execute`` is an independent round trip. Every
network or protocol failure is folded into ``RuntimeResult.error``; only the
optional warm-up check at construction time raises.
"""

import asyncio
import logging
from abc import abstractmethod
from typing import Any, Dict, Optional, Type

import requests

from .bridges import RuntimeHandle
from .config import RemoteCompilerConfig
from .exceptions import RemoteServiceError, RuntimeAcquisitionError
from .languages import LanguageID
from .models import RuntimeResult
from .source_transforms import wrap_entry_point

logger = logging.getLogger(__name__)


class RemoteCompilerRuntime(RuntimeHandle):
    """Shared plumbing: session, auto-wrapping, error folding."""

    service = 'remote'

    def __init__(self, config: Optional[RemoteCompilerConfig] = None,
                 session: Optional[requests.Session] = None):
        self.config = config or RemoteCompilerConfig()
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        raise NotImplementedError

    def prepare(self, code: str) -> str:
        if self.config.auto_wrap:
            return wrap_entry_point(self.language, code)
        return code

    async def execute(self, code: str) -> RuntimeResult:
        try:
            return await self.submit(self.prepare(code))
        except requests.exceptions.Timeout:
            logger.warning(f"{self.service} request timed out")
            return RuntimeResult.failure(f"{self.service} request timed out, please retry")
        except requests.exceptions.RequestException as e:
            logger.warning(f"{self.service} request failed: {e}")
            return RuntimeResult.failure(f"{self.service} request failed: {e}")
        except RemoteServiceError as e:
            logger.warning(f"{self.service} returned an unusable response: {e}")
            return RuntimeResult.failure(str(e))

    @abstractmethod
    async def submit(self, code: str) -> RuntimeResult:
        """Send already-prepared source. May raise network or service errors."""

    async def warm_up(self) -> None:
        """Raise ``RuntimeAcquisitionError`` when the service host is unreachable."""
        try:
            await asyncio.to_thread(self._session.head, self.endpoint,
                                    timeout=self.config.request_timeout, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            raise RuntimeAcquisitionError(f"{self.service} is unreachable: {e}", self.language)

    def describe(self) -> dict:
        info = super().describe()
        info.update({'service': self.service, 'endpoint': self.endpoint})
        return info

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    @property
    def _headers(self) -> Dict[str, str]:
        return {'User-Agent': self.config.user_agent}

    async def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault('timeout', self.config.request_timeout)
        kwargs.setdefault('headers', self._headers)
        return await asyncio.to_thread(self._session.request, method, url, **kwargs)

    def _decode(self, response: requests.Response) -> Dict[str, Any]:
        if not response.ok:
            raise RemoteServiceError(
                self.service,
                f"{self.service} is temporarily unavailable (HTTP {response.status_code})",
                response.status_code)
        try:
            return response.json()
        except ValueError:
            raise RemoteServiceError(self.service, f"{self.service} returned invalid JSON",
                                     response.status_code)


# =========================================================================
# RUST PLAYGROUND
# =========================================================================

class RustPlaygroundRuntime(RemoteCompilerRuntime):
    language = LanguageID.RUST.value
    service = 'Rust Playground'

    @property
    def endpoint(self) -> str:
        return self.config.rust_url

    def build_payload(self, code: str) -> Dict[str, Any]:
        return {
            'channel': self.config.rust_channel,
            'mode': self.config.rust_mode,
            'edition': self.config.rust_edition,
            'crateType': 'bin',
            'tests': False,
            'code': code,
            'backtrace': False,
        }

    async def submit(self, code: str) -> RuntimeResult:
        response = await self._send('POST', self.endpoint, json=self.build_payload(code))
        result = self._decode(response)
        output = result.get('stdout') or ''
        if result.get('success'):
            return RuntimeResult(output=output)
        return RuntimeResult.failure(result.get('stderr') or 'Compilation failed', output=output)


# =========================================================================
# WANDBOX (C++)
# =========================================================================

class WandboxCppRuntime(RemoteCompilerRuntime):
    language = LanguageID.CPP.value
    service = 'Wandbox'

    @property
    def endpoint(self) -> str:
        return self.config.wandbox_url

    def build_payload(self, code: str) -> Dict[str, Any]:
        return {
            'code': code,
            'compiler': self.config.cpp_compiler,
            'options': self.config.cpp_options,
        }

    async def submit(self, code: str) -> RuntimeResult:
        response = await self._send('POST', self.endpoint, json=self.build_payload(code))
        result = self._decode(response)
        output = result.get('program_output') or ''
        status = str(result.get('status', '0'))
        if status == '0' and not result.get('signal'):
            return RuntimeResult(output=output)

        error = (result.get('compiler_error') or result.get('program_error')
                 or result.get('program_message') or result.get('signal')
                 or f'Program exited with status {status}')
        return RuntimeResult.failure(error, output=output)


# =========================================================================
# PAIZA.IO (Java, Swift)
# =========================================================================

class PaizaRuntime(RemoteCompilerRuntime):
    """Create a runner, then poll its details until it completes."""

    service = 'paiza.io'

    def __init__(self, language: str, config: Optional[RemoteCompilerConfig] = None,
                 session: Optional[requests.Session] = None):
        super().__init__(config, session)
        self.language = language
        self.paiza_language = language

    @property
    def endpoint(self) -> str:
        return self.config.paiza_create_url

    async def create_runner(self, code: str) -> Dict[str, Any]:
        form = {
            'source_code': code,
            'language': self.paiza_language,
            'input': '',
            'longpoll': 'false',
            'api_key': self.config.paiza_api_key,
        }
        response = await self._send('POST', self.config.paiza_create_url, data=form)
        return self._decode(response)

    async def get_details(self, runner_id: str) -> Optional[Dict[str, Any]]:
        """One poll. ``None`` means the poll failed transiently and should be retried."""
        params = {'id': runner_id, 'api_key': self.config.paiza_api_key}
        try:
            response = await self._send('GET', self.config.paiza_details_url, params=params)
        except requests.exceptions.RequestException as e:
            logger.warning(f"paiza.io poll for {runner_id} failed: {e}")
            return None
        if not response.ok:
            logger.warning(f"paiza.io poll for {runner_id} answered HTTP {response.status_code}")
            return None
        try:
            return response.json()
        except ValueError:
            raise RemoteServiceError(self.service, "paiza.io response could not be parsed",
                                     response.status_code)

    async def submit(self, code: str) -> RuntimeResult:
        created = await self.create_runner(code)
        if created.get('error'):
            return RuntimeResult.failure(f"Compilation error: {created['error']}")

        runner_id = created.get('id')
        if not runner_id:
            raise RemoteServiceError(self.service, "paiza.io did not return a runner id")

        for attempt in range(1, self.config.max_poll_attempts + 1):
            await asyncio.sleep(self.config.poll_interval)
            details = await self.get_details(runner_id)
            if details is None:
                continue

            status = details.get('status')
            if status == 'completed':
                return self._completed(details)
            if status == 'error':
                return RuntimeResult.failure(
                    f"Execution error: {details.get('stderr') or 'unknown error'}")
            logger.debug(f"paiza.io runner {runner_id} still {status} (poll {attempt})")

        logger.warning(f"paiza.io runner {runner_id} did not finish after "
                       f"{self.config.max_poll_attempts} polls")
        return RuntimeResult.failure("Execution timed out, please retry")

    @staticmethod
    def _completed(details: Dict[str, Any]) -> RuntimeResult:
        output = details.get('stdout') or ''
        if details.get('build_result') == 'failure' or (details.get('build_stderr') and not output):
            return RuntimeResult.failure(details.get('build_stderr') or 'Build failed', output=output)
        if details.get('stderr'):
            return RuntimeResult.failure(details['stderr'], output=output)
        return RuntimeResult(output=output)


# =========================================================================
# FACTORIES
# =========================================================================

class RemoteCompilerFactory:
    """Bridge factory for a remote handle; optionally probes the service first."""

    def __init__(self, handle_cls: Type[RemoteCompilerRuntime],
                 config: Optional[RemoteCompilerConfig] = None,
                 session: Optional[requests.Session] = None, **handle_kwargs):
        self.handle_cls = handle_cls
        self.config = config or RemoteCompilerConfig()
        self.session = session
        self.handle_kwargs = handle_kwargs

    async def __call__(self) -> RemoteCompilerRuntime:
        handle = self.handle_cls(config=self.config, session=self.session, **self.handle_kwargs)
        if self.config.warm_up:
            await handle.warm_up()
            logger.info(f"{handle.service} reachable at {handle.endpoint}")
        return handle


def remote_factories(config: Optional[RemoteCompilerConfig] = None,
                     session: Optional[requests.Session] = None) -> Dict[str, RemoteCompilerFactory]:
    """Factories for every remotely compiled language."""
    config = config or RemoteCompilerConfig()
    session = session or requests.Session()
    return {
        LanguageID.RUST.value: RemoteCompilerFactory(RustPlaygroundRuntime, config, session),
        LanguageID.CPP.value: RemoteCompilerFactory(WandboxCppRuntime, config, session),
        LanguageID.JAVA.value: RemoteCompilerFactory(PaizaRuntime, config, session,
                                                     language=LanguageID.JAVA.value),
        LanguageID.SWIFT.value: RemoteCompilerFactory(PaizaRuntime, config, session,
                                                      language=LanguageID.SWIFT.value),
    }

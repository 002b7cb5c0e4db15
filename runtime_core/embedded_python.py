"""
Embedded Python interpreter bridge.

The interpreter runs user snippets in-process with a persistent namespace
(REPL-style: variables survive between runs of the same editor session).
Third-party imports are discovered by scanning the snippet and installed on
demand from a package index mirror chosen by the CDN resolver.

Execution contract:
    1. scan imports, install missing distributions (failures logged, skipped)
    2. on a worker thread, route that thread's stdout to a capture buffer
    3. run the code
    4. stop routing and read the buffer back
    5. return RuntimeResult(output) or RuntimeResult('', "<Type>: <message>")

A caller that stops waiting (execution timeout) gets control back at once.
The snippet keeps its worker thread until it returns: Python threads
cannot be interrupted from outside.
"""

import asyncio
import builtins
import importlib
import io
import logging
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Set

from .bridges import RuntimeHandle, run_subprocess
from .cdn_resolver import CDNResolver, CDNResource, PACKAGE_INDEX
from .config import PythonRuntimeConfig
from .dependency_resolver import resolve_packages
from .exceptions import CDNUnavailableError, DependencyInstallError
from .languages import LanguageID
from .models import RuntimeResult

logger = logging.getLogger(__name__)


# =========================================================================
# PACKAGE INSTALLERS
# =========================================================================

class PackageInstaller(ABC):
    """Installs one distribution into the running interpreter."""

    @abstractmethod
    async def install(self, package: str, index_url: str) -> None:
        """Raise ``DependencyInstallError`` when the package cannot be installed."""


class PipInstaller(PackageInstaller):
    """Runs ``python -m pip install`` against the resolved index."""

    def __init__(self, timeout: float = 120.0, python: Optional[str] = None):
        self.timeout = timeout
        self.python = python or sys.executable

    async def install(self, package: str, index_url: str) -> None:
        cmd = [self.python, '-m', 'pip', 'install', '--quiet',
               '--disable-pip-version-check', '--index-url', index_url, package]
        try:
            proc = await asyncio.to_thread(
                run_subprocess, cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise DependencyInstallError(package, f'pip timed out after {self.timeout}s')
        except OSError as e:
            raise DependencyInstallError(package, str(e))

        if proc.returncode != 0:
            tail = (proc.stderr or proc.stdout or '').strip().splitlines()[-1:]
            raise DependencyInstallError(package, tail[0] if tail else f'pip exited with code {proc.returncode}')

        importlib.invalidate_caches()


# =========================================================================
# STDOUT CAPTURE
# =========================================================================

class _ThreadRoutedStdout:
    """``sys.stdout`` stand-in sending each capturing thread's writes to its own buffer."""

    def __init__(self, target):
        self.target = target
        self.local = threading.local()

    def _stream(self):
        buffer = getattr(self.local, 'buffer', None)
        return self.target if buffer is None else buffer

    def write(self, text):
        return self._stream().write(text)

    def flush(self):
        self._stream().flush()

    def __getattr__(self, name):
        return getattr(self._stream(), name)


class StdoutCapture:
    """Per-thread stdout capture shared by every interpreter in the process.

    The router is installed on ``sys.stdout`` while at least one thread is
    capturing and removed when the last one finishes. Threads that are not
    capturing write through to the original stream.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._router: Optional[_ThreadRoutedStdout] = None
        self._users = 0

    @contextmanager
    def capture(self, buffer: io.StringIO):
        with self._lock:
            if self._users == 0:
                self._router = _ThreadRoutedStdout(sys.stdout)
                sys.stdout = self._router
            self._users += 1
            router = self._router
        router.local.buffer = buffer
        try:
            yield buffer
        finally:
            router.local.buffer = None
            with self._lock:
                self._users -= 1
                if self._users == 0:
                    if sys.stdout is router:
                        sys.stdout = router.target
                    self._router = None


STDOUT_CAPTURE = StdoutCapture()


# =========================================================================
# RUNTIME HANDLE
# =========================================================================

class EmbeddedPythonRuntime(RuntimeHandle):
    """In-process interpreter with captured stdout and on-demand packages."""

    language = LanguageID.PYTHON.value

    def __init__(self, index_url: str, installer: PackageInstaller,
                 config: Optional[PythonRuntimeConfig] = None):
        self.config = config or PythonRuntimeConfig()
        self.index_url = index_url
        self.installer = installer
        self.global_namespace: Dict[str, Any] = {}
        self.preloaded: Set[str] = set()
        self.installed: Set[str] = set()
        self.failed_packages: Set[str] = set()
        self.reset_namespace()

    def preload_basic_modules(self) -> None:
        """Import the cheap standard modules once, up front."""
        for module in self.config.preload_modules:
            try:
                importlib.import_module(module)
                self.preloaded.add(module)
            except ImportError as e:
                logger.warning(f"Could not preload Python module {module}: {e}")
        logger.info(f"Preloaded {len(self.preloaded)} basic Python modules")

    async def load_packages(self, packages: Iterable[str]) -> List[str]:
        """Install each package; failures are logged and skipped."""
        loaded = []
        for package in packages:
            if package in self.installed or package in self.preloaded:
                continue
            try:
                await self.installer.install(package, self.index_url)
            except DependencyInstallError as e:
                self.failed_packages.add(package)
                logger.warning(f"Could not load Python package {package}: {e}")
                continue
            self.installed.add(package)
            loaded.append(package)
            logger.info(f"Loaded Python package on demand: {package}")
        return loaded

    async def execute(self, code: str) -> RuntimeResult:
        if self.config.allow_dynamic_imports:
            await self.load_packages(self.config.preload_packages)
            await self.load_packages(
                resolve_packages(code, skip=self.preloaded | self.installed))
        return await asyncio.to_thread(self.run_code, code)

    def run_code(self, code: str) -> RuntimeResult:
        """Blocking run on the calling thread with that thread's stdout captured."""
        buffer = io.StringIO()
        try:
            with STDOUT_CAPTURE.capture(buffer):
                exec(compile(code, '<editor>', 'exec'), self.global_namespace)
        except (Exception, SystemExit) as e:
            return RuntimeResult.failure(f'{type(e).__name__}: {e}')
        return RuntimeResult(output=buffer.getvalue())

    def reset_namespace(self) -> None:
        """Forget every variable defined by previous runs."""
        self.global_namespace.clear()
        self.global_namespace['__name__'] = '__main__'
        self.global_namespace['__builtins__'] = builtins

    def describe(self) -> dict:
        info = super().describe()
        info.update({
            'index_url': self.index_url,
            'preloaded': sorted(self.preloaded),
            'installed': sorted(self.installed),
            'failed_packages': sorted(self.failed_packages),
        })
        return info


# =========================================================================
# FACTORY
# =========================================================================

class EmbeddedPythonFactory:
    """Builds the interpreter; remembers the chosen index mirror for the process lifetime."""

    def __init__(self, resolver: CDNResolver, config: Optional[PythonRuntimeConfig] = None,
                 installer: Optional[PackageInstaller] = None,
                 resource: CDNResource = PACKAGE_INDEX):
        self.config = config or PythonRuntimeConfig()
        self.resolver = resolver
        self.installer = installer or PipInstaller(timeout=self.config.install_timeout)
        self.resource = resource
        self.index_url: Optional[str] = None

    async def __call__(self) -> EmbeddedPythonRuntime:
        index_url = await self._resolve_index()
        runtime = EmbeddedPythonRuntime(index_url, self.installer, self.config)
        runtime.preload_basic_modules()
        return runtime

    async def _resolve_index(self) -> str:
        if self.index_url is None:
            try:
                self.index_url = await self.resolver.resolve_resource(self.resource)
            except CDNUnavailableError as e:
                logger.warning(f"Package index failover failed, using default index: {e}")
                self.index_url = self.config.default_index_url
        return self.index_url

"""
Configuration for the runtime orchestrator.

Every setting resolves in three tiers:
    1. ``POLYRUN_*`` environment variable set in the shell
    2. the same variable in a ``.env`` file (never overrides the shell)
    3. Hard-coded default below

``RuntimeConfig.from_env()`` is the canonical entry point; components take
the relevant sub-config through their constructors.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import find_dotenv, load_dotenv


MONACO_VERSION = '0.52.2'
DEFAULT_MONACO_BASE_URL = f'https://cdn.jsdelivr.net/npm/monaco-editor@{MONACO_VERSION}/min'
DEFAULT_PACKAGE_INDEX_URL = 'https://pypi.org/simple'

# Cheap standard modules imported when the embedded interpreter starts
BASIC_PYTHON_MODULES: Tuple[str, ...] = (
    'json', 'datetime', 'math', 'random', 'os', 'sys', 're',
    'collections', 'itertools', 'functools', 'time', 'pathlib',
)


def resolve_setting(env_var: str, default: str) -> str:
    """Two-tier resolution: env → default."""
    env_val = os.environ.get(env_var, '').strip()
    if env_val:
        return env_val
    return default


def _resolve_float(env_var: str, default: Optional[float]) -> Optional[float]:
    raw = resolve_setting(env_var, '' if default is None else str(default))
    if raw == '':
        return None
    return float(raw)


def _resolve_int(env_var: str, default: int) -> int:
    return int(resolve_setting(env_var, str(default)))


def _resolve_bool(env_var: str, default: bool) -> bool:
    raw = resolve_setting(env_var, '1' if default else '0')
    return raw.lower() in ('1', 'true', 'yes', 'on')


def _resolve_list(env_var: str, default: List[str]) -> List[str]:
    raw = resolve_setting(env_var, ','.join(default))
    return [item.strip() for item in raw.split(',') if item.strip()]


@dataclass
class ResolverConfig:
    """CDN health probing."""
    probe_timeout: float = 3.0


@dataclass
class EditorConfig:
    """Editor widget engine (Monaco) loading."""
    default_base_url: str = DEFAULT_MONACO_BASE_URL
    probe_path: str = '/vs/loader.min.js'
    loader_script: str = 'loader.js'
    fetch_timeout: float = 10.0


@dataclass
class ViewportConfig:
    """Viewport gating for editor instances."""
    root_margin: float = 200.0     # px, render slightly before visible
    threshold: float = 0.1         # minimum visible ratio
    debounce: float = 0.1          # seconds between entering and mounting


@dataclass
class PythonRuntimeConfig:
    """Embedded Python interpreter."""
    default_index_url: str = DEFAULT_PACKAGE_INDEX_URL
    preload_modules: Tuple[str, ...] = BASIC_PYTHON_MODULES
    preload_packages: List[str] = field(default_factory=list)
    allow_dynamic_imports: bool = True
    install_timeout: float = 120.0


@dataclass
class RemoteCompilerConfig:
    """Hosted compiler services."""
    rust_url: str = 'https://play.rust-lang.org/execute'
    rust_channel: str = 'stable'
    rust_mode: str = 'debug'
    rust_edition: str = '2021'
    wandbox_url: str = 'https://wandbox.org/api/compile.json'
    cpp_compiler: str = 'gcc-head'
    cpp_options: str = 'warning,gnu++17'
    paiza_create_url: str = 'https://api.paiza.io/runners/create.json'
    paiza_details_url: str = 'https://api.paiza.io/runners/get_details.json'
    paiza_api_key: str = 'guest'
    poll_interval: float = 1.0
    max_poll_attempts: int = 30
    request_timeout: float = 15.0
    warm_up: bool = False
    user_agent: str = 'polyrun-runner/0.1'
    auto_wrap: bool = True


@dataclass
class NativeScriptConfig:
    """Node.js host scripting engine."""
    node_path: Optional[str] = None
    timeout: float = 30.0
    typescript_flags: List[str] = field(default_factory=lambda: ['--experimental-strip-types', '--no-warnings'])


@dataclass
class RuntimeConfig:
    """Aggregate configuration handed to ``RuntimeServices``."""
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    editor: EditorConfig = field(default_factory=EditorConfig)
    viewport: ViewportConfig = field(default_factory=ViewportConfig)
    python: PythonRuntimeConfig = field(default_factory=PythonRuntimeConfig)
    remote: RemoteCompilerConfig = field(default_factory=RemoteCompilerConfig)
    native: NativeScriptConfig = field(default_factory=NativeScriptConfig)
    acquisition_timeout: Optional[float] = None
    execution_timeout: Optional[float] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'RuntimeConfig':
        """Build a config from ``POLYRUN_*`` environment variables.

        ``env_file`` defaults to the nearest ``.env`` above the working directory.
        """
        dotenv_path = env_file or find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path, override=False)
        remote_defaults = RemoteCompilerConfig()
        python_defaults = PythonRuntimeConfig()
        return cls(
            resolver=ResolverConfig(
                probe_timeout=_resolve_float('POLYRUN_CDN_PROBE_TIMEOUT', 3.0),
            ),
            editor=EditorConfig(
                default_base_url=resolve_setting('POLYRUN_MONACO_BASE_URL', DEFAULT_MONACO_BASE_URL),
            ),
            viewport=ViewportConfig(
                root_margin=_resolve_float('POLYRUN_VIEWPORT_ROOT_MARGIN', 200.0),
                threshold=_resolve_float('POLYRUN_VIEWPORT_THRESHOLD', 0.1),
                debounce=_resolve_float('POLYRUN_VIEWPORT_DEBOUNCE', 0.1),
            ),
            python=PythonRuntimeConfig(
                default_index_url=resolve_setting('POLYRUN_PACKAGE_INDEX_URL', DEFAULT_PACKAGE_INDEX_URL),
                preload_packages=_resolve_list('POLYRUN_PYTHON_PRELOAD_PACKAGES', []),
                allow_dynamic_imports=_resolve_bool('POLYRUN_PYTHON_DYNAMIC_IMPORTS', True),
                install_timeout=_resolve_float('POLYRUN_PYTHON_INSTALL_TIMEOUT',
                                               python_defaults.install_timeout),
            ),
            remote=RemoteCompilerConfig(
                rust_url=resolve_setting('POLYRUN_RUST_URL', remote_defaults.rust_url),
                wandbox_url=resolve_setting('POLYRUN_WANDBOX_URL', remote_defaults.wandbox_url),
                paiza_create_url=resolve_setting('POLYRUN_PAIZA_CREATE_URL', remote_defaults.paiza_create_url),
                paiza_details_url=resolve_setting('POLYRUN_PAIZA_DETAILS_URL', remote_defaults.paiza_details_url),
                paiza_api_key=resolve_setting('POLYRUN_PAIZA_API_KEY', remote_defaults.paiza_api_key),
                poll_interval=_resolve_float('POLYRUN_PAIZA_POLL_INTERVAL', remote_defaults.poll_interval),
                max_poll_attempts=_resolve_int('POLYRUN_PAIZA_MAX_POLLS', remote_defaults.max_poll_attempts),
                request_timeout=_resolve_float('POLYRUN_REMOTE_TIMEOUT', remote_defaults.request_timeout),
                warm_up=_resolve_bool('POLYRUN_REMOTE_WARM_UP', False),
                auto_wrap=_resolve_bool('POLYRUN_AUTO_WRAP', True),
            ),
            native=NativeScriptConfig(
                node_path=resolve_setting('POLYRUN_NODE_PATH', '') or None,
                timeout=_resolve_float('POLYRUN_NODE_TIMEOUT', 30.0),
            ),
            acquisition_timeout=_resolve_float('POLYRUN_ACQUISITION_TIMEOUT', None),
            execution_timeout=_resolve_float('POLYRUN_EXECUTION_TIMEOUT', None),
        )

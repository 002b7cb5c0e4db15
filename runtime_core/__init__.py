"""
Runtime Core - lazily acquired, cached execution engines for multi-language code editors.

This package resolves healthy CDN mirrors, loads the editor widget engine
once, and runs code blocks in Python (embedded), JavaScript / TypeScript
(Node.js) and Rust / C++ / Java / Swift (hosted compilers).
"""

__version__ = "0.1.0"
__author__ = "polyrun Development Team"

from .languages import (
    LanguageID, LanguageConfig, RuntimeFamily, LANGUAGE_CONFIGS,
    resolve_language_id, get_language_config, get_supported_languages,
)
from .models import AcquisitionState, CodeBlock, RuntimeResult
from .exceptions import (
    RuntimeCoreError, CDNUnavailableError, EditorLoadError, RuntimeAcquisitionError,
    UnsupportedLanguageError, RuntimeTimedOut, DependencyInstallError, RemoteServiceError,
)
from .config import RuntimeConfig
from .cdn_resolver import CDNResolver, CDNResource, CDNMirror, MONACO_EDITOR, PACKAGE_INDEX
from .editor_loader import EditorLibraryLoader, EditorEngine, LoaderState
from .viewport import Rect, Viewport, IntersectionObserver, ViewportGatedRenderer, RenderState
from .bridges import RuntimeHandle
from .runtime_registry import RuntimeRegistry
from .embedded_python import EmbeddedPythonRuntime, EmbeddedPythonFactory, PipInstaller
from .remote_compilers import RustPlaygroundRuntime, WandboxCppRuntime, PaizaRuntime
from .native_script import NodeScriptRuntime, NodeScriptFactory
from .source_transforms import wrap_entry_point
from .orchestrator import ExecutionOrchestrator
from .services import RuntimeServices, SharedLoop

__all__ = [
    'LanguageID', 'LanguageConfig', 'RuntimeFamily', 'LANGUAGE_CONFIGS',
    'resolve_language_id', 'get_language_config', 'get_supported_languages',
    'AcquisitionState', 'CodeBlock', 'RuntimeResult',
    'RuntimeCoreError', 'CDNUnavailableError', 'EditorLoadError', 'RuntimeAcquisitionError',
    'UnsupportedLanguageError', 'RuntimeTimedOut', 'DependencyInstallError', 'RemoteServiceError',
    'RuntimeConfig',
    'CDNResolver', 'CDNResource', 'CDNMirror', 'MONACO_EDITOR', 'PACKAGE_INDEX',
    'EditorLibraryLoader', 'EditorEngine', 'LoaderState',
    'Rect', 'Viewport', 'IntersectionObserver', 'ViewportGatedRenderer', 'RenderState',
    'RuntimeHandle', 'RuntimeRegistry',
    'EmbeddedPythonRuntime', 'EmbeddedPythonFactory', 'PipInstaller',
    'RustPlaygroundRuntime', 'WandboxCppRuntime', 'PaizaRuntime',
    'NodeScriptRuntime', 'NodeScriptFactory',
    'wrap_entry_point',
    'ExecutionOrchestrator',
    'RuntimeServices', 'SharedLoop',
]

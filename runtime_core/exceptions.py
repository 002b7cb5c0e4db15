"""
Runtime-specific exceptions for the execution orchestrator.
"""

from typing import Any, Dict, List, Optional, Tuple


class RuntimeCoreError(Exception):
    """Base exception for all orchestrator errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class CDNUnavailableError(RuntimeCoreError):
    """Raised when every mirror candidate failed its reachability probe."""

    def __init__(self, message: str, failures: List[Tuple[str, str]]):
        super().__init__(message, {'failures': failures})
        self.failures = failures


class EditorLoadError(RuntimeCoreError):
    """Raised when the editor widget engine cannot be loaded."""

    def __init__(self, message: str, primary_error: Optional[Exception] = None,
                 fallback_error: Optional[Exception] = None):
        super().__init__(message)
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class RuntimeAcquisitionError(RuntimeCoreError):
    """Raised when a language's execution engine cannot be constructed."""

    def __init__(self, message: str, language: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.language = language


class UnsupportedLanguageError(RuntimeAcquisitionError):
    """Raised when no bridge factory is registered for a language."""

    def __init__(self, language: str):
        super().__init__(f"Unsupported language: {language}", language)


class RuntimeTimedOut(RuntimeCoreError):
    """Raised when acquisition or execution exceeds its timeout."""

    def __init__(self, language: str, timeout: float, phase: str = 'acquisition'):
        super().__init__(f"{language} {phase} timed out after {timeout}s",
                         {'phase': phase})
        self.language = language
        self.timeout = timeout
        self.phase = phase


class DependencyInstallError(RuntimeCoreError):
    """Raised by a package installer when one package fails to install."""

    def __init__(self, package: str, message: str):
        super().__init__(f"Failed to install {package}: {message}")
        self.package = package


class RemoteServiceError(RuntimeCoreError):
    """Raised when a hosted compiler service answers with an unusable response."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(message, {'service': service, 'status_code': status_code})
        self.service = service
        self.status_code = status_code

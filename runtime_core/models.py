"""
Core value types shared by the registry, the bridges and the orchestrator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .languages import LanguageID, resolve_language_id


class AcquisitionState(Enum):
    """Lifecycle of one language's execution engine in the registry."""
    UNSTARTED = "unstarted"
    LOADING   = "loading"
    READY     = "ready"
    FAILED    = "failed"


@dataclass(frozen=True)
class RuntimeResult:
    """The only externally observable result shape, uniform across languages."""
    output: str = ""
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: str, output: str = "") -> 'RuntimeResult':
        return cls(output=output, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {'output': self.output, 'error': self.error}

    def __str__(self) -> str:
        if self.success:
            return f"Success: {self.output}"
        return f"Error: {self.error}"


@dataclass(frozen=True)
class CodeBlock:
    """A (language, source) pair extracted from page content."""
    language: str
    source: str

    @property
    def language_id(self) -> Optional[LanguageID]:
        return resolve_language_id(self.language)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CodeBlock':
        """Accept both ``{language, source}`` and MDX-style ``{lang, value}``."""
        language = data.get('language', data.get('lang', ''))
        source = data.get('source', data.get('value', data.get('code', '')))
        return cls(language=language or '', source=source or '')

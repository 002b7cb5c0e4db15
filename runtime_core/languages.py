"""
Language Registry - permanent lookup table for executable languages.

Every language the orchestrator can run has a canonical string identifier
(the LanguageId) used as the sole cache / lookup key everywhere: the runtime
registry, the orchestrator's code-block map and the HTTP surface.

Runtime families:
    EMBEDDED  → in-process interpreter (Python)
    NATIVE    → host scripting engine (Node.js for JavaScript / TypeScript)
    REMOTE    → hosted compiler service (Rust, C++, Java, Swift)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class RuntimeFamily(Enum):
    """How a language's execution engine is acquired."""
    EMBEDDED = "embedded"
    NATIVE   = "native"
    REMOTE   = "remote"


class LanguageID(str, Enum):
    """
    Canonical language identifiers. These NEVER change.

    The enum is a ``str`` subclass so members compare equal to the plain
    strings coming from page content (``LanguageID.PYTHON == 'python'``).
    """
    PYTHON     = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    RUST       = "rust"
    CPP        = "cpp"
    JAVA       = "java"
    SWIFT      = "swift"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LanguageConfig:
    """Static description of a language as shown in the editor."""
    language: LanguageID
    name: str
    extension: str
    editor_language: str
    family: RuntimeFamily


LANGUAGE_CONFIGS: Dict[LanguageID, LanguageConfig] = {
    LanguageID.PYTHON:     LanguageConfig(LanguageID.PYTHON,     'Python',     'py',    'python',     RuntimeFamily.EMBEDDED),
    LanguageID.JAVASCRIPT: LanguageConfig(LanguageID.JAVASCRIPT, 'JavaScript', 'js',    'javascript', RuntimeFamily.NATIVE),
    LanguageID.TYPESCRIPT: LanguageConfig(LanguageID.TYPESCRIPT, 'TypeScript', 'ts',    'typescript', RuntimeFamily.NATIVE),
    LanguageID.RUST:       LanguageConfig(LanguageID.RUST,       'Rust',       'rs',    'rust',       RuntimeFamily.REMOTE),
    LanguageID.CPP:        LanguageConfig(LanguageID.CPP,        'C++',        'cpp',   'cpp',        RuntimeFamily.REMOTE),
    LanguageID.JAVA:       LanguageConfig(LanguageID.JAVA,       'Java',       'java',  'java',       RuntimeFamily.REMOTE),
    LanguageID.SWIFT:      LanguageConfig(LanguageID.SWIFT,      'Swift',      'swift', 'swift',      RuntimeFamily.REMOTE),
}


# Aliases seen in fenced code blocks → canonical id
LANGUAGE_ALIASES: Dict[str, LanguageID] = {
    'python':     LanguageID.PYTHON,
    'py':         LanguageID.PYTHON,
    'javascript': LanguageID.JAVASCRIPT,
    'js':         LanguageID.JAVASCRIPT,
    'typescript': LanguageID.TYPESCRIPT,
    'ts':         LanguageID.TYPESCRIPT,
    'rust':       LanguageID.RUST,
    'rs':         LanguageID.RUST,
    'cpp':        LanguageID.CPP,
    'c++':        LanguageID.CPP,
    'java':       LanguageID.JAVA,
    'swift':      LanguageID.SWIFT,
}


def resolve_language_id(language: Optional[str]) -> Optional[LanguageID]:
    """Resolve a language tag to its canonical id, or None if unsupported."""
    if not language:
        return None
    return LANGUAGE_ALIASES.get(str(language).lower().strip())


def get_language_config(language: str) -> Optional[LanguageConfig]:
    lang_id = resolve_language_id(language)
    return LANGUAGE_CONFIGS.get(lang_id) if lang_id else None


def display_name(language: str) -> str:
    """Human-readable name, falling back to the raw tag."""
    config = get_language_config(language)
    return config.name if config else str(language)


def get_supported_languages() -> List[str]:
    return [lang.value for lang in LanguageID]

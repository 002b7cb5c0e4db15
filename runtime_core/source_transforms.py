"""
Entry-point auto-wrapping for compiled languages.

Learning snippets are often bare statements (``println!("hi");``) that a
hosted compiler rejects because there is no entry point. Before a snippet is
sent, these helpers wrap it in the language's conventional ``main``. The
check is a text match, not a parse: if anything that looks like an entry
point is already present the source is sent untouched.
"""

import re
from typing import Callable, Dict, List, Tuple

from .languages import LanguageID, resolve_language_id

INDENT = '    '

RUST_MAIN = re.compile(r'\bfn\s+main\s*\(')
CPP_MAIN = re.compile(r'\bmain\s*\(')
JAVA_MAIN = re.compile(r'\bstatic\s+(?:final\s+)?void\s+main\s*\(')

CPP_HEADER_LINE = re.compile(r'^\s*(?:#|using\s)')
JAVA_HEADER_LINE = re.compile(r'^\s*(?:import|package)\s')


def _indent(lines: List[str]) -> List[str]:
    return [f'{INDENT}{line}' if line.strip() else '' for line in lines]


def _split_header(code: str, pattern: 're.Pattern') -> Tuple[List[str], List[str]]:
    """Separate hoistable header lines (includes, imports) from the body."""
    header, body = [], []
    for line in code.splitlines():
        (header if pattern.match(line) else body).append(line)
    return header, body


def _trim_blank(lines: List[str]) -> List[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


# =========================================================================
# PER-LANGUAGE WRAPPERS
# =========================================================================

def wrap_rust(code: str) -> str:
    if RUST_MAIN.search(code):
        return code
    body = _trim_blank(code.splitlines())
    return '\n'.join(['fn main() {', *_indent(body), '}']) + '\n'


def wrap_cpp(code: str) -> str:
    if CPP_MAIN.search(code):
        return code
    header, body = _split_header(code, CPP_HEADER_LINE)
    header = [line.strip() for line in header]
    if not any(line.startswith('#include') for line in header):
        header.insert(0, '#include <iostream>')
    if not any(line.startswith('using') for line in header):
        header.append('using namespace std;')

    lines = header + ['', 'int main() {', *_indent(_trim_blank(body)), f'{INDENT}return 0;', '}']
    return '\n'.join(lines) + '\n'


def wrap_java(code: str) -> str:
    if JAVA_MAIN.search(code):
        return code
    header, body = _split_header(code, JAVA_HEADER_LINE)
    header = [line.strip() for line in header if not line.strip().startswith('package')]

    statements = _trim_blank(body)

    lines = list(header)
    if header:
        lines.append('')
    lines.append('public class Main {')
    lines.append(f'{INDENT}public static void main(String[] args) {{')
    lines.extend(_indent(_indent(statements)))
    lines.append(f'{INDENT}}}')
    lines.append('}')
    return '\n'.join(lines) + '\n'


WRAPPERS: Dict[LanguageID, Callable[[str], str]] = {
    LanguageID.RUST: wrap_rust,
    LanguageID.CPP: wrap_cpp,
    LanguageID.JAVA: wrap_java,
}


def has_entry_point(language: str, code: str) -> bool:
    lang_id = resolve_language_id(language)
    pattern = {
        LanguageID.RUST: RUST_MAIN,
        LanguageID.CPP: CPP_MAIN,
        LanguageID.JAVA: JAVA_MAIN,
    }.get(lang_id)
    return pattern is None or bool(pattern.search(code))


def wrap_entry_point(language: str, code: str) -> str:
    """Wrap ``code`` in its language's entry point; other languages pass through."""
    wrapper = WRAPPERS.get(resolve_language_id(language))
    if wrapper is None or not code.strip():
        return code
    return wrapper(code)

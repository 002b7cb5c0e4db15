"""
Static import scanning for the embedded Python interpreter.

User snippets are scanned with a regular expression (not the ``ast`` module:
the code may not even parse yet) for ``import x`` / ``from x import y``
statements. Recognised top-level module names are mapped to the
distribution that provides them, so ``import cv2`` installs
``opencv-python``. Modules the interpreter already has are skipped.
"""

import importlib.util
import re
from typing import Callable, Dict, Iterable, List, Optional, Set

# Line-anchored: matches "import a.b", "import a, b as c", "from a.b import c"
IMPORT_PATTERN = re.compile(
    r'^[ \t]*(?:from[ \t]+([A-Za-z_]\w*)(?:\.\w+)*[ \t]+import\b'
    r'|import[ \t]+([A-Za-z_][\w.]*(?:[ \t]+as[ \t]+\w+)?'
    r'(?:[ \t]*,[ \t]*[A-Za-z_][\w.]*(?:[ \t]+as[ \t]+\w+)?)*))',
    re.MULTILINE,
)

# module name (or common alias) → installable distribution
LIBRARY_MAP: Dict[str, str] = {
    'numpy': 'numpy', 'np': 'numpy',
    'pandas': 'pandas', 'pd': 'pandas',
    'matplotlib': 'matplotlib', 'plt': 'matplotlib',
    'requests': 'requests', 'json': 'json',
    'datetime': 'datetime', 'math': 'math',
    'random': 'random', 'os': 'os', 'sys': 'sys',
    're': 're', 'collections': 'collections',
    'itertools': 'itertools', 'functools': 'functools',
    'urllib': 'urllib', 'time': 'time',
    'pathlib': 'pathlib', 'seaborn': 'seaborn',
    'scipy': 'scipy', 'sklearn': 'scikit-learn',
    'tensorflow': 'tensorflow', 'torch': 'torch',
    'cv2': 'opencv-python', 'PIL': 'pillow',
    'Image': 'pillow',
}

# Distributions that are part of the interpreter and never installed
BUILTIN_PACKAGES: Set[str] = {
    'json', 'datetime', 'math', 'random', 'os', 'sys', 're', 'collections',
    'itertools', 'functools', 'urllib', 'time', 'pathlib',
}


def scan_imports(code: str) -> List[str]:
    """Top-level module names imported by ``code``, in first-seen order."""
    modules: List[str] = []
    for match in IMPORT_PATTERN.finditer(code):
        if match.group(1):
            names = [match.group(1)]
        else:
            names = []
            for part in match.group(2).split(','):
                dotted = part.strip().split()[0] if part.strip() else ''
                if dotted:
                    names.append(dotted.split('.')[0])
        for name in names:
            if name not in modules:
                modules.append(name)
    return modules


def is_importable(module: str) -> bool:
    try:
        return importlib.util.find_spec(module) is not None
    except (ImportError, ValueError):
        return False


def resolve_packages(code: str, skip: Iterable[str] = (),
                     importable: Optional[Callable[[str], bool]] = None) -> List[str]:
    """Distributions that must be installed before ``code`` can run.

    Unrecognised module names are left alone (the import itself will report
    them); preloaded modules, builtins and anything already importable are
    skipped.
    """
    skip_set = set(skip) | BUILTIN_PACKAGES
    check = importable or is_importable
    packages: List[str] = []

    for module in scan_imports(code):
        package = LIBRARY_MAP.get(module)
        if package is None or package in skip_set or module in skip_set:
            continue
        if check(module):
            continue
        if package not in packages:
            packages.append(package)
    return packages

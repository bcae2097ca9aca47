from typing import Set, Tuple

IGNORE_DIRS: Set[str] = {
    '.git',
    'node_modules',
    'venv',
    '.venv',
    '__pycache__',
    'dist',
    'build',
    '.next',
    'coverage',
    '.idea',
    '.vscode',
    'target',
    'out',
}

# Minified bundles are build output, never sources worth rewriting.
IGNORE_SUFFIXES: Tuple[str, ...] = ('.min.js', '.d.ts')

SOURCE_EXTENSIONS: Set[str] = {'.js', '.mjs', '.cjs', '.jsx', '.ts', '.mts', '.cts', '.tsx'}
TSX_EXTENSIONS: Set[str] = {'.jsx', '.tsx'}

# Seconds without new reports before the deferred missing-dependency warning fires.
MISSING_DEPENDENCIES_FLUSH_DELAY: float = 1.0

PROVIDER_NAME = "es-shims"

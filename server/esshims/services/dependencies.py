from pathlib import Path
from typing import List, Union

from esshims.models import Descriptor


def dependency_key(desc: Descriptor) -> str:
    """Deduplication key for a polyfill's backing package, e.g. ``array-includes@^3.1.1``."""
    return f"{desc.package}@^{desc.version}"


def _node_modules_candidates(start: Path) -> List[Path]:
    """
    Walk up from `start` and list every `node_modules` directory Node would
    consult, nearest first.
    """
    current = start if start.is_dir() else start.parent
    candidates: List[Path] = []
    for parent in [current, *current.parents]:
        # Node never looks inside node_modules/node_modules.
        if parent.name == "node_modules":
            continue
        candidates.append(parent / "node_modules")
    return candidates


def has_dependency(basedir: Union[str, Path], name: str) -> bool:
    """
    Return True when package `name` can be found from `basedir` the way Node
    would find a bare specifier: ``node_modules/<name>/package.json`` in
    `basedir` or any of its ancestors. Scoped names (``@scope/pkg``) are
    supported.

    Missing packages, unreadable directories and odd names all count as
    "not installed" rather than errors.
    """
    if not name or name.startswith((".", "/")):
        return False

    try:
        start = Path(basedir).resolve()
        for node_modules in _node_modules_candidates(start):
            if (node_modules / name / "package.json").is_file():
                return True
    except OSError:
        return False

    return False

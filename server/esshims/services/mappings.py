import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from esshims.models import CatalogData, Descriptor

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
MAPPINGS_FILE = DATA_DIR / "mappings.json"
POLYFILLS_FILE = DATA_DIR / "polyfills.json"


@dataclass(frozen=True)
class Catalog:
    """
    Read-only lookup tables from a usage shape to candidate polyfills.

    - globals:  name -> descriptors (e.g. ``globalThis``)
    - static:   object -> property -> descriptors (e.g. ``Array.from``)
    - instance: property -> descriptors (e.g. ``[].includes``)

    Candidate lists keep their catalog order; callers process them front to back.
    """

    globals: Dict[str, List[Descriptor]] = field(default_factory=dict)
    static: Dict[str, Dict[str, List[Descriptor]]] = field(default_factory=dict)
    instance: Dict[str, List[Descriptor]] = field(default_factory=dict)

    def descriptors(self) -> Iterator[Descriptor]:
        for candidates in self.globals.values():
            yield from candidates
        for properties in self.static.values():
            for candidates in properties.values():
                yield from candidates
        for candidates in self.instance.values():
            yield from candidates

    def names(self) -> List[str]:
        return sorted({desc.name for desc in self.descriptors()})

    def to_data(self) -> CatalogData:
        return CatalogData(globals=self.globals, static=self.static, instance=self.instance)


def catalog_from_data(data: CatalogData) -> Catalog:
    catalog = Catalog(globals=data.globals, static=data.static, instance=data.instance)

    # A descriptor may be listed under several keys, but a name must always
    # describe the same package.
    seen: Dict[str, Descriptor] = {}
    for desc in catalog.descriptors():
        previous = seen.setdefault(desc.name, desc)
        if previous != desc:
            raise ValueError(f"Polyfill name {desc.name!r} is defined more than once")

    return catalog


def load_catalog(path: Path = MAPPINGS_FILE) -> Catalog:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return catalog_from_data(CatalogData.model_validate(data))


def load_compat_data(path: Path = POLYFILLS_FILE) -> Dict[str, Dict[str, str]]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


_catalog: Optional[Catalog] = None
_compat_data: Optional[Dict[str, Dict[str, str]]] = None

def get_catalog() -> Catalog:
    global _catalog
    if _catalog is None:
        _catalog = load_catalog()
    return _catalog

def get_compat_data() -> Dict[str, Dict[str, str]]:
    global _compat_data
    if _compat_data is None:
        _compat_data = load_compat_data()
    return _compat_data

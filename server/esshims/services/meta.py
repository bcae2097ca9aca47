from dataclasses import dataclass
from typing import List, Optional, Union

from esshims.models import Descriptor
from esshims.services.mappings import Catalog


@dataclass(frozen=True)
class GlobalUsage:
    """A bare reference to a global binding, e.g. ``globalThis``."""
    name: str

@dataclass(frozen=True)
class StaticUsage:
    """A property read off a global object, e.g. ``Array.from``."""
    object: str
    key: str

@dataclass(frozen=True)
class InstanceUsage:
    """A property read off any other value, e.g. ``list.includes``."""
    key: str

UsageMeta = Union[GlobalUsage, StaticUsage, InstanceUsage]


def resolve(meta: UsageMeta, catalog: Catalog) -> Optional[List[Descriptor]]:
    """
    Return the ordered candidate descriptors for a usage, or None when the
    catalog has no entry for it. Enablement is not checked here.
    """
    if isinstance(meta, GlobalUsage):
        return catalog.globals.get(meta.name)
    if isinstance(meta, StaticUsage):
        properties = catalog.static.get(meta.object)
        if properties is None:
            return None
        return properties.get(meta.key)
    if isinstance(meta, InstanceUsage):
        return catalog.instance.get(meta.key)
    raise TypeError(f"Unknown usage meta: {meta!r}")

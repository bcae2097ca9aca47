from typing import Callable, Dict, Iterable, Mapping, Optional

from packaging.version import InvalidVersion, Version

ShouldInject = Callable[[str], bool]


def is_supported(support: Mapping[str, str], targets: Mapping[str, str]) -> bool:
    """
    True when every target engine ships the feature natively.

    An engine missing from `support`, or a version that does not parse, is
    treated as lacking the feature.
    """
    for engine, target_version in targets.items():
        min_version = support.get(engine)
        if min_version is None:
            return False
        try:
            if Version(str(target_version)) < Version(str(min_version)):
                return False
        except InvalidVersion:
            return False
    return True


def build_should_inject(
    compat: Mapping[str, Mapping[str, str]],
    targets: Optional[Mapping[str, str]] = None,
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
    known_names: Optional[Iterable[str]] = None,
) -> ShouldInject:
    """
    Build the enablement predicate handed to the polyfill provider.

    `exclude` always wins, `include` forces a polyfill on, and otherwise a
    polyfill is injected when at least one target lacks it. Without targets
    every known polyfill is injected.
    """
    known = set(known_names) if known_names is not None else set(compat)
    include_set = set(include)
    exclude_set = set(exclude)

    unknown = sorted((include_set | exclude_set) - known)
    if unknown:
        raise ValueError(f"Unknown polyfill names in include/exclude: {', '.join(unknown)}")

    both = sorted(include_set & exclude_set)
    if both:
        raise ValueError(f"Polyfills cannot be both included and excluded: {', '.join(both)}")

    targets = dict(targets or {})
    cache: Dict[str, bool] = {}

    def should_inject_polyfill(name: str) -> bool:
        if name in exclude_set:
            return False
        if name in include_set:
            return True
        if name not in cache:
            if not targets:
                cache[name] = True
            else:
                cache[name] = not is_supported(compat.get(name, {}), targets)
        return cache[name]

    return should_inject_polyfill

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol, Set, Union

from esshims.config import PROVIDER_NAME
from esshims.models import Descriptor, ProviderOptions
from esshims.services import dependencies
from esshims.services.enablement import ShouldInject, build_should_inject
from esshims.services.mappings import Catalog, get_catalog, get_compat_data
from esshims.services.meta import UsageMeta, resolve
from esshims.services.reporting import (
    BatchAggregator,
    get_default_aggregator,
    log_missing_dependencies,
)

logger = logging.getLogger(__name__)


class InjectionUtils(Protocol):
    """Tree mutation handle supplied by whoever walks the syntax tree."""

    def inject_global_import(self, module_path: str) -> None: ...

    def inject_default_import(self, module_path: str, name_hint: str) -> str: ...

    def replace(self, node: Any, reference: str) -> None: ...


DescriptorCallback = Callable[[Descriptor, InjectionUtils, Any], None]
PackageCheck = Callable[[Union[str, Path], str], bool]


class PolyfillProvider:
    """
    Injects es-shims polyfills for detected usages and keeps track of which
    backing packages are missing from the project.

    One provider is meant to live for a whole run: the installed/missing sets
    are shared by every compilation unit it handles. `post()` must be called
    after each unit to report what is missing.
    """

    name = PROVIDER_NAME

    def __init__(
        self,
        dirname: Union[str, Path],
        options: Optional[ProviderOptions] = None,
        should_inject_polyfill: Optional[ShouldInject] = None,
        catalog: Optional[Catalog] = None,
        has_dependency: PackageCheck = dependencies.has_dependency,
        aggregator: Optional[BatchAggregator] = None,
    ):
        self.dirname = Path(dirname)
        self.options = options or ProviderOptions()
        self.catalog = catalog or get_catalog()
        if should_inject_polyfill is None:
            should_inject_polyfill = build_should_inject(
                get_compat_data(),
                targets=self.options.targets,
                include=self.options.include,
                exclude=self.options.exclude,
                known_names=self.catalog.names(),
            )
        self.should_inject_polyfill = should_inject_polyfill
        self.has_dependency = has_dependency
        self._aggregator = aggregator

        self.installed_deps: Set[str] = set()
        self.missing_deps: Set[str] = set()
        # Names marked since the last post(), in injection order.
        self.used: List[str] = []

        self.usage_global = self._create_desc_iterator(self._inject_global)
        self.usage_pure = self._create_desc_iterator(self._inject_pure)

    @property
    def aggregator(self) -> BatchAggregator:
        if self._aggregator is None:
            self._aggregator = get_default_aggregator()
        return self._aggregator

    def mark(self, desc: Descriptor) -> None:
        self._debug(desc.name)

        dep = dependencies.dependency_key(desc)
        if dep in self.installed_deps or dep in self.missing_deps:
            return

        if self.options.missing_dependencies.all or not self.has_dependency(
            self.dirname, desc.package
        ):
            self.missing_deps.add(dep)
        else:
            self.installed_deps.add(dep)

    def _debug(self, name: str) -> None:
        self.used.append(name)
        logger.debug("[%s] injected %s", self.name, name)

    def _create_desc_iterator(
        self, cb: DescriptorCallback
    ) -> Callable[[UsageMeta, InjectionUtils, Any], None]:
        def iterate(meta: UsageMeta, utils: InjectionUtils, node: Any = None) -> None:
            resolved = resolve(meta, self.catalog)
            if not resolved:
                return

            # Every candidate that passes the gate is injected, not just the first.
            for desc in resolved:
                if self.should_inject_polyfill(desc.name):
                    cb(desc, utils, node)

        return iterate

    def _inject_global(self, desc: Descriptor, utils: InjectionUtils, node: Any) -> None:
        if not desc.global_:
            return

        utils.inject_global_import(f"{desc.package}/auto.js")

        self.mark(desc)

    def _inject_pure(self, desc: Descriptor, utils: InjectionUtils, node: Any) -> None:
        if not desc.pure:
            return

        reference = utils.inject_default_import(
            f"{desc.package}/implementation.js",
            desc.name,
        )
        utils.replace(node, reference)

        self.mark(desc)

    def pre(self) -> None:
        self.used = []

    def post(self) -> None:
        """Report missing dependencies at the end of a compilation unit."""
        if self.options.debug and self.used:
            logger.info(
                "[%s] Based on your code and targets, added: %s",
                self.name,
                ", ".join(sorted(set(self.used))),
            )

        if self.options.missing_dependencies.log == "per-file":
            log_missing_dependencies(self.missing_deps)
        else:
            self.aggregator.merge(self.missing_deps)

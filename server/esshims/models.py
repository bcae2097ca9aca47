from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, Field

class Descriptor(BaseModel):
    name: str
    package: str
    version: str
    # Either flag may be switched off in the catalog when a polyfill cannot be
    # injected that way (e.g. getters have no standalone implementation).
    global_: bool = Field(default=True, alias="global")
    pure: bool = True

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }

class MissingDependenciesOptions(BaseModel):
    log: Literal["per-file", "deferred"] = "deferred"
    # When true, report every injected polyfill without checking if it is installed
    all: bool = False

class ProviderOptions(BaseModel):
    method: Literal["usage-global", "usage-pure"] = "usage-global"
    targets: Dict[str, str] = Field(default_factory=dict)
    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    debug: bool = False
    missing_dependencies: MissingDependenciesOptions = Field(
        default_factory=MissingDependenciesOptions,
        alias="missingDependencies",
    )

    model_config = {
        "populate_by_name": True
    }

class TransformRequest(BaseModel):
    code: str
    filename: str = "input.js"
    # Directory used to look up installed packages; defaults to the server root.
    root: Optional[str] = None
    options: ProviderOptions = Field(default_factory=ProviderOptions)

class TransformResponse(BaseModel):
    code: str
    polyfills: List[str] = Field(default_factory=list)
    missing_dependencies: List[str] = Field(default_factory=list)

class CatalogData(BaseModel):
    globals: Dict[str, List[Descriptor]] = Field(default_factory=dict)
    static: Dict[str, Dict[str, List[Descriptor]]] = Field(default_factory=dict)
    instance: Dict[str, List[Descriptor]] = Field(default_factory=dict)

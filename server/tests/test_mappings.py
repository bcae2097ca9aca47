import json

import pytest

from esshims.models import CatalogData
from esshims.services.mappings import (
    Catalog,
    catalog_from_data,
    get_catalog,
    get_compat_data,
    load_catalog,
)
from esshims.services.meta import GlobalUsage, InstanceUsage, StaticUsage, resolve


def test_default_catalog_loads():
    catalog = get_catalog()

    assert [d.package for d in catalog.static["Array"]["from"]] == ["array.from"]
    assert catalog.globals["globalThis"][0].version == "1.0.0"
    assert "includes" in catalog.instance


def test_descriptor_flags_default_to_true_and_parse_global_alias():
    catalog = get_catalog()

    includes = catalog.instance["includes"][0]
    assert includes.global_ is True
    assert includes.pure is True

    description = catalog.instance["description"][0]
    assert description.pure is False
    assert description.global_ is True


def test_every_catalog_polyfill_has_compat_data():
    compat = get_compat_data()
    assert set(get_catalog().names()) <= set(compat)


def test_catalog_names_are_unique_per_package():
    seen = {}
    for desc in get_catalog().descriptors():
        assert seen.setdefault(desc.name, desc) == desc


def test_conflicting_names_are_rejected():
    data = CatalogData.model_validate(
        {
            "globals": {"Foo": [{"name": "Foo", "package": "foo", "version": "1.0.0"}]},
            "instance": {"foo": [{"name": "Foo", "package": "other-foo", "version": "1.0.0"}]},
        }
    )

    with pytest.raises(ValueError, match="'Foo'"):
        catalog_from_data(data)


def test_load_catalog_from_file(tmp_path):
    path = tmp_path / "mappings.json"
    path.write_text(
        json.dumps(
            {
                "static": {
                    "Array": {
                        "isArray": [
                            {"name": "Array.isArray", "package": "es-foo", "version": "1.2.0", "pure": False}
                        ]
                    }
                }
            }
        ),
        encoding="utf-8",
    )

    catalog = load_catalog(path)

    assert catalog.globals == {}
    desc = catalog.static["Array"]["isArray"][0]
    assert (desc.name, desc.package, desc.version, desc.global_, desc.pure) == (
        "Array.isArray",
        "es-foo",
        "1.2.0",
        True,
        False,
    )


def test_to_data_serializes_global_flag_by_alias():
    dumped = get_catalog().to_data().model_dump(by_alias=True)
    assert dumped["instance"]["description"][0]["global"] is True
    assert dumped["instance"]["description"][0]["pure"] is False


# --- Meta resolution ---

FIRST = {"name": "Array.prototype.at", "package": "array.prototype.at", "version": "1.0.1"}
SECOND = {"name": "String.prototype.at", "package": "string.prototype.at", "version": "1.0.1"}
CATALOG = catalog_from_data(
    CatalogData.model_validate(
        {
            "globals": {"globalThis": [{"name": "globalThis", "package": "globalthis", "version": "1.0.0"}]},
            "static": {"Object": {"assign": [{"name": "Object.assign", "package": "object.assign", "version": "4.1.0"}]}},
            "instance": {"at": [FIRST, SECOND]},
        }
    )
)


def test_resolve_global():
    assert [d.name for d in resolve(GlobalUsage("globalThis"), CATALOG)] == ["globalThis"]


def test_resolve_static():
    assert [d.name for d in resolve(StaticUsage("Object", "assign"), CATALOG)] == ["Object.assign"]


def test_resolve_instance_keeps_catalog_order():
    assert [d.name for d in resolve(InstanceUsage("at"), CATALOG)] == [
        "Array.prototype.at",
        "String.prototype.at",
    ]


@pytest.mark.parametrize(
    "meta",
    [
        GlobalUsage("Map"),
        GlobalUsage("assign"),
        StaticUsage("Object", "keys"),
        StaticUsage("Reflect", "assign"),
        StaticUsage("globalThis", "at"),
        InstanceUsage("assign"),
        InstanceUsage("globalThis"),
    ],
)
def test_resolve_unmapped_returns_none(meta):
    assert resolve(meta, CATALOG) is None


def test_resolve_is_pure():
    before = CATALOG.instance["at"][:]
    resolve(InstanceUsage("at"), CATALOG)
    resolve(InstanceUsage("at"), CATALOG)
    assert CATALOG.instance["at"] == before


def test_resolve_rejects_unknown_meta():
    with pytest.raises(TypeError):
        resolve("includes", Catalog())

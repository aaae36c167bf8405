import json
from decimal import Decimal

import pytest

from conftest import make_entry
from set_splitter.bundle import BundleConfigBuilder
from set_splitter.errors import UpstreamFailure
from set_splitter.linker import VariantLinker
from set_splitter.models import ComponentEntry


@pytest.fixture
def components(client):
    top = client.add(make_entry(201, "Embroidered Kurta Top", price="600"))
    bottom = client.add(make_entry(202, "Embroidered Kurta Bottom", price="600"))
    return [ComponentEntry(top, "Top", 0), ComponentEntry(bottom, "Bottom", 1)]


def test_assemble_totals_and_pieces(client, set_entry, components):
    builder = BundleConfigBuilder(client)
    sync = VariantLinker().link(set_entry, components)
    config = builder.assemble(set_entry, components, sync)

    assert config.total_bundle_price == Decimal("1200.00")
    assert config.piece_count == 2
    data = config.to_dict()
    assert data["originalProductId"] == 101
    assert [p["componentType"] for p in data["bundleProducts"]] == ["Top", "Bottom"]
    assert [p["variantMapping"]["hideVariants"] for p in data["bundleProducts"]] == [False, True]
    assert data["bundleMetadata"]["totalBundlePrice"] == "1200.00"
    assert data["variantSync"]["componentVariantsBySize"]["M"]["Bottom"]["variantId"] == 2021


def test_persist_writes_marker_last(client, set_entry, components):
    builder = BundleConfigBuilder(client)
    config = builder.assemble(set_entry, components, VariantLinker().link(set_entry, components))
    written = builder.persist(set_entry, config, components)

    keys = [a.key for a in written]
    assert keys[0] == "bundle_config"
    assert keys[-1] == "auto_generated_bundle"
    assert "variant_sync_mapping" in keys
    stored = client.entries[101].attribute("bundle_app", "component_products")
    assert [c["id"] for c in json.loads(stored.value)] == [201, 202]


def test_partial_write_records_what_was_written(client, set_entry, components):
    client.fail("set_attribute", after=2)
    builder = BundleConfigBuilder(client)
    config = builder.assemble(set_entry, components)
    written = []
    with pytest.raises(UpstreamFailure):
        builder.persist(set_entry, config, components, written)
    assert [a.key for a in written] == ["bundle_config", "is_bundle"]
    assert client.entries[101].attribute("bundle_app", "auto_generated_bundle") is None


def test_activate_sets_aggregate_price_and_template(client, set_entry, components):
    builder = BundleConfigBuilder(client)
    config = builder.assemble(set_entry, components)
    builder.persist(set_entry, config, components)
    builder.activate(set_entry, config)

    stored = client.entries[101]
    assert stored.template_suffix == "bundle"
    assert {v.price for v in stored.variants} == {Decimal("1200.00")}
    assert {v.compare_at_price for v in stored.variants} == {Decimal("1440.00")}
    assert "set-processed" in stored.tags
    assert "2-piece-set" in stored.tags


def test_activate_leaves_tags_alone_without_app_attributes(client, set_entry, components):
    builder = BundleConfigBuilder(client)
    builder.activate(set_entry, builder.assemble(set_entry, components))
    _, patch = [c for c in client.calls if c[0] == "update_entry"][-1][1]
    assert "tags" not in patch


def test_activate_failure_raises(client, set_entry, components):
    client.fail("update_entry")
    builder = BundleConfigBuilder(client)
    with pytest.raises(UpstreamFailure):
        builder.activate(set_entry, builder.assemble(set_entry, components))

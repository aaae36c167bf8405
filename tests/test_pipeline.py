import json
from decimal import Decimal

import pytest

from conftest import make_entry
from set_splitter.config import PipelineConfig
from set_splitter.models import EntryState
from set_splitter.pipeline import INCOMPLETE_KEY, SetPipeline


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def pipeline(client, sleeps):
    return SetPipeline(client, PipelineConfig(create_delay=0.5), sleep=sleeps.append)


def _components(client):
    return [e for e in client.entries.values() if e.id != 101]


def test_process_splits_set_into_hidden_components(client, set_entry, pipeline, sleeps):
    result = pipeline.process_entry(101)

    assert result.success, result.error
    assert result.state is EntryState.BUNDLE_ACTIVE
    assert result.data["pieceCount"] == 2
    assert result.data["priceSplit"] == ["600.00", "600.00"]
    assert result.data["componentNames"] == ["Top", "Bottom"]
    assert [c["title"] for c in result.data["componentEntries"]] == ["Embroidered Kurta Top", "Embroidered Kurta Bottom"]
    assert result.data["bundleConfig"]["bundleMetadata"]["pieceCount"] == 2
    assert sleeps == [0.5]

    comps = _components(client)
    assert len(comps) == 2
    assert all(c.status == "draft" and "hidden-component" in c.tags for c in comps)

    main = client.entries[101]
    assert main.template_suffix == "bundle"
    assert main.variants[0].price == Decimal("1200.00")
    assert main.attribute("bundle_app", "auto_generated_bundle").value == "true"
    json.dumps(result.to_dict())


def test_reprocessing_is_skipped(client, set_entry, pipeline):
    assert pipeline.process_entry(101).success
    created = len(client.created())

    again = pipeline.process_entry(101)
    assert again.success is False
    assert again.reason == "already processed"
    assert len(client.created()) == created


def test_not_a_set(client, pipeline):
    client.add(make_entry(5, "Cotton Kurta"))
    result = pipeline.process_entry(5)
    assert result.reason == "not a set"
    assert not client.created()


def test_busy_entry_is_skipped(client, set_entry, pipeline):
    with pipeline.locks.hold(101):
        result = pipeline.process_entry(101)
    assert result.reason == "processing in progress"
    assert not client.created()


def test_entry_without_variants_is_invalid(client, pipeline):
    client.add(make_entry(6, "Plain Set", sizes=()))
    result = pipeline.process_entry(6)
    assert result.success is False
    assert result.reason == "configuration invalid"
    assert result.state is EntryState.FAILED


def test_missing_entry_is_upstream_failure(pipeline):
    result = pipeline.process_entry(999)
    assert result.reason == "upstream failure"


def test_dry_run_plans_without_writing(client, set_entry, pipeline):
    result = pipeline.process_entry(101, dry_run=True)
    assert result.success
    assert result.state is EntryState.UNPROCESSED
    assert result.data["dryRun"] is True
    assert [d["title"] for d in result.data["drafts"]] == ["Embroidered Kurta Top", "Embroidered Kurta Bottom"]
    assert result.data["tagDecision"]["shouldTag"] is False
    assert not [c for c in client.calls if c[0] in ("create_entry", "update_entry", "set_attribute")]


def test_partial_creation_is_rolled_back(client, set_entry, pipeline):
    client.fail("create_entry", after=1)
    result = pipeline.process_entry(101)

    assert result.success is False
    assert result.reason == "partial creation failure"
    assert result.state is EntryState.FAILED
    assert len(result.data["createdComponentIds"]) == 1
    assert _components(client) == []
    assert client.entries[101].attribute("bundle_app", INCOMPLETE_KEY) is None


def test_attribute_failure_rolls_back_components_and_attributes(client, set_entry, pipeline):
    client.fail("set_attribute", after=2)
    result = pipeline.process_entry(101)

    assert result.reason == "upstream failure"
    assert _components(client) == []
    assert client.entries[101].attributes == []


def test_failed_delete_leaves_incomplete_marker(client, set_entry, pipeline):
    client.fail("update_entry")
    client.fail("delete_entry")
    result = pipeline.process_entry(101)

    assert result.success is False
    marker = json.loads(client.entries[101].attribute("bundle_app", INCOMPLETE_KEY).value)
    assert len(marker["componentIds"]) == 2
    assert marker["attributeIds"] == []
    assert "activate bundle display" in marker["error"]


def test_no_rollback_then_reconcile(client, set_entry, sleeps):
    pipeline = SetPipeline(client, PipelineConfig(create_delay=0, rollback_on_failure=False), sleep=sleeps.append)
    client.fail("update_entry")
    assert pipeline.process_entry(101).success is False
    assert len(_components(client)) == 2
    assert client.entries[101].attribute("bundle_app", INCOMPLETE_KEY) is not None

    client._failures.clear()
    result = pipeline.reconcile_incomplete(101)
    assert result.success, result.error
    assert len(result.data["removedComponents"]) == 2
    assert _components(client) == []
    assert client.entries[101].attributes == []

    # with the leftovers gone the set can be processed again
    assert pipeline.process_entry(101).success


def test_check_entry_reports_plan_without_mutation(client, set_entry, pipeline):
    result = pipeline.check_entry(101)
    assert result.success
    assert result.data["isSet"] is True
    assert result.data["isAlreadyProcessed"] is False
    assert result.data["proposedPriceSplit"] == ["600.00", "600.00"]
    assert result.data["detectedFromDescription"] is True
    assert not client.created()


def test_check_entry_for_non_set(client, pipeline):
    client.add(make_entry(5, "Cotton Kurta"))
    result = pipeline.check_entry(5)
    assert result.success
    assert result.data["isSet"] is False


def test_find_and_process_all(client, set_entry, sleeps):
    client.add(make_entry(102, "Floral Anarkali Set", price="5000"))
    client.add(make_entry(103, "Cotton Kurta"))
    client.add(make_entry(104, "Old Set", tags=["set-processed"]))
    pipeline = SetPipeline(client, PipelineConfig(create_delay=0, max_component_price=Decimal("2000")), sleep=sleeps.append)

    assert [e.id for e in pipeline.find_all_unprocessed_sets()] == [101, 102]

    result = pipeline.process_all_sets(delay=1.0)
    assert result.success
    assert result.data["processedCount"] == 2
    assert result.data["failedCount"] == 0
    assert sleeps == [1.0]
    second = result.data["results"][1]["result"]["data"]
    assert second["priceSplit"] == ["2000.00", "3000.00"]
    assert pipeline.find_all_unprocessed_sets() == []


def test_bundle_config_and_size_mapping(client, set_entry, pipeline):
    assert pipeline.get_bundle_config(101).reason == "not configured"
    pipeline.process_entry(101)

    config = pipeline.get_bundle_config(101)
    assert config.success
    assert config.data["bundleConfig"]["originalProductId"] == 101

    size = pipeline.size_mapping(101, "m")
    assert size.success
    assert size.data["Top"]["title"] == "M"
    assert pipeline.size_mapping(101, "XXL").reason == "size unavailable"


def test_refresh_variant_mapping(client, set_entry, pipeline):
    pipeline.process_entry(101)
    comp = _components(client)[0]
    comp.variants[1].available = False

    result = pipeline.refresh_variant_mapping(101)
    assert result.success, result.error
    assert result.data["availableSizes"] == ["S", "M", "L"]
    assert result.data["variantMapping"]["sizeAvailability"]["M"]["available"] is False


def test_reconcile_without_marker_is_noop(client, set_entry, pipeline):
    result = pipeline.reconcile_incomplete(101)
    assert result.success
    assert result.data["removedComponents"] == []


def test_components_of_a_processed_set_are_not_sets(client, sleeps):
    # "Sunset" contains "set", so the pieces would otherwise look like sets
    client.add(make_entry(101, "Sunset Set", body_html="<p>Top with palazzo</p>"))
    pipeline = SetPipeline(client, PipelineConfig(create_delay=0), sleep=sleeps.append)
    assert pipeline.process_entry(101).success

    assert pipeline.find_all_unprocessed_sets() == []
    component = _components(client)[0]
    result = pipeline.process_entry(component.id)
    assert result.reason == "component entry"
    assert len(_components(client)) == 2
    assert pipeline.check_entry(component.id).data["isComponent"] is True


def test_partial_reconcile_rewrites_marker(client, set_entry, sleeps):
    pipeline = SetPipeline(client, PipelineConfig(create_delay=0, rollback_on_failure=False), sleep=sleeps.append)
    client.fail("update_entry")
    assert pipeline.process_entry(101).success is False

    client._failures.clear()
    client.fail("delete_entry", after=1)
    first = pipeline.reconcile_incomplete(101)
    assert first.success is False
    assert len(first.data["remainingComponents"]) == 1
    marker = json.loads(client.entries[101].attribute("bundle_app", INCOMPLETE_KEY).value)
    assert marker["componentIds"] == first.data["remainingComponents"]
    assert marker["attributeIds"] == []

    client._failures.clear()
    second = pipeline.reconcile_incomplete(101)
    assert second.success, second.error
    assert second.data["removedComponents"] == first.data["remainingComponents"]
    assert _components(client) == []
    assert client.entries[101].attribute("bundle_app", INCOMPLETE_KEY) is None

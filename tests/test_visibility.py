from conftest import make_entry
from set_splitter.config import PipelineConfig
from set_splitter.models import Attribute
from set_splitter.pipeline import SetPipeline
from set_splitter.visibility import hide_components, show_components, visibility_status


def test_show_then_hide(client):
    client.add(make_entry(1, "Kurta Top", tags=["component", "hidden-component"]))
    client.entries[1].status = "draft"

    shown = show_components(client, [1])
    assert shown["success"] and shown["successCount"] == 1
    assert client.entries[1].status == "active"
    assert "hidden-component" not in client.entries[1].tags

    hidden = hide_components(client, [1])
    assert hidden["success"]
    assert client.entries[1].status == "draft"
    assert client.entries[1].tags.count("hidden-component") == 1


def test_per_id_failures_are_reported(client):
    client.add(make_entry(1, "Kurta Top"))
    result = hide_components(client, [1, 404])
    assert result["success"] is False
    assert result["successCount"] == 1
    assert result["totalCount"] == 2
    assert result["results"][1]["success"] is False


def test_visibility_status_reads_bundle_components(client, set_entry):
    SetPipeline(client, PipelineConfig(create_delay=0)).process_entry(101)
    status = visibility_status(client, 101)
    assert status["success"]
    assert len(status["components"]) == 2
    assert all(c["isHidden"] for c in status["components"])


def test_visibility_status_without_components(client, set_entry):
    assert visibility_status(client, 101)["success"] is False


def test_visibility_status_with_malformed_component_list(client):
    client.add(make_entry(7, "Broken Set", attributes=[Attribute("bundle_app", "component_products", "{not json")]))
    status = visibility_status(client, 7)
    assert status["success"] is False
    assert status["reason"] == "configuration invalid"

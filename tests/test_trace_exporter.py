"""Tests for the TraceExporter Jaeger renderer."""

import json
from datetime import timedelta, timezone

import pytest

from conftest import T, make_node, make_resource
from deploy_waterfall.services.trace_exporter import TraceExporter
from deploy_waterfall.utils.time_utils import to_epoch_micros


MIN = timedelta(minutes=1)


@pytest.fixture
def exporter():
    return TraceExporter(tz=timezone.utc)


@pytest.fixture
def sample_tree():
    network = make_node(
        "network", T - 8 * MIN, 3 * MIN, "rg-app",
        uid="uid-network", parent_uid="uid-main",
        resources=[make_resource("vnet", T - 8 * MIN, MIN)],
    )
    policy = make_node(
        "policy", T - 5 * MIN, 5 * MIN,
        uid="uid-policy", parent_uid="uid-network", is_timing_from_parent=True,
    )
    return make_node(
        "main", T - 10 * MIN, 10 * MIN, "rg-app",
        uid="uid-main", correlation_id="corr-0001",
        resources=[
            make_resource("stg", T - 10 * MIN, timedelta(seconds=90.5)),
            make_resource("kv", T - 9 * MIN, MIN, state="Failed",
                          status_code="Conflict", status_message="Vault name already in use"),
        ],
        children=[network, policy],
    )


def tags_of(span):
    return {tag["key"]: tag["value"] for tag in span["tags"]}


class TestDocumentShape:
    """Tests for the overall trace document."""

    def test_single_trace_with_fixed_processes(self, exporter, sample_tree):
        doc = exporter.export(sample_tree)

        assert len(doc["data"]) == 1
        trace = doc["data"][0]
        assert trace["processes"] == {
            "tmp": {"serviceName": "template"},
            "prt": {"serviceName": "overarching"},
            "rsc": {"serviceName": "resource"},
        }
        assert {span["traceID"] for span in trace["spans"]} == {trace["traceID"]}

    def test_one_span_per_deployment_and_resource(self, exporter, sample_tree):
        spans = exporter.export(sample_tree)["data"][0]["spans"]
        # 3 deployments + 3 resources
        assert len(spans) == 6

    def test_pre_order_emission(self, exporter, sample_tree):
        spans = exporter.export(sample_tree)["data"][0]["spans"]
        assert [span["operationName"] for span in spans] == [
            "main",
            "Microsoft.Storage/storageAccounts/stg",
            "Microsoft.Storage/storageAccounts/kv",
            "network",
            "Microsoft.Storage/storageAccounts/vnet",
            "policy",
        ]

    def test_new_trace_id_per_export(self, exporter, sample_tree):
        first = exporter.export(sample_tree)["data"][0]["traceID"]
        second = exporter.export(sample_tree)["data"][0]["traceID"]
        assert first != second

    def test_references_resolve(self, exporter, sample_tree):
        """Every CHILD_OF reference points at a span in the same document."""
        trace = exporter.export(sample_tree)["data"][0]
        span_ids = {span["spanID"] for span in trace["spans"]}

        for span in trace["spans"]:
            for ref in span["references"]:
                assert ref["refType"] == "CHILD_OF"
                assert ref["traceID"] == trace["traceID"]
                assert ref["spanID"] in span_ids

    def test_to_json_round_trips(self, exporter, sample_tree):
        doc = json.loads(exporter.to_json(sample_tree))
        assert doc["data"][0]["spans"][0]["spanID"] == "uid-main"


class TestDeploymentSpans:
    """Tests for spans built from deployments."""

    def test_root_has_no_reference(self, exporter, sample_tree):
        root = exporter.export(sample_tree)["data"][0]["spans"][0]
        assert root["spanID"] == "uid-main"
        assert root["references"] == []

    def test_child_references_parent_uid(self, exporter, sample_tree):
        spans = exporter.export(sample_tree)["data"][0]["spans"]
        by_name = {span["operationName"]: span for span in spans}

        assert by_name["network"]["references"][0]["spanID"] == "uid-main"
        assert by_name["policy"]["references"][0]["spanID"] == "uid-network"

    def test_times_in_microseconds(self, exporter, sample_tree):
        root = exporter.export(sample_tree)["data"][0]["spans"][0]
        assert root["startTime"] == to_epoch_micros(T - 10 * MIN)
        assert root["startTime"] == 1709293800000000
        assert root["duration"] == 600_000_000

    def test_process_follows_timing_source(self, exporter, sample_tree):
        spans = exporter.export(sample_tree)["data"][0]["spans"]
        by_name = {span["operationName"]: span for span in spans}

        assert by_name["main"]["processID"] == "prt"
        assert by_name["policy"]["processID"] == "tmp"

    def test_tags(self, exporter, sample_tree):
        root = exporter.export(sample_tree)["data"][0]["spans"][0]
        tags = tags_of(root)

        assert tags["error"] is False
        assert tags["correlation-id"] == "corr-0001"
        assert tags["start-time"] == "11:50:00.0000+00:00"
        assert tags["end-time"] == "12:00:00.0000+00:00"
        assert tags["url"].startswith(
            "https://portal.azure.com/#blade/HubsExtension/DeploymentDetailsBlade/overview/id/"
        )
        assert "%2Fsubscriptions%2F" in tags["url"]
        assert "/subscriptions/" not in tags["url"]

    def test_error_tag_for_failed_deployment(self, exporter):
        tree = make_node("main", T - MIN, MIN, status_code="Failed")
        root = exporter.export(tree)["data"][0]["spans"][0]
        error = root["tags"][0]
        assert error == {"key": "error", "type": "bool", "value": True}

    def test_custom_portal_template(self, sample_tree):
        exporter = TraceExporter(portal_url_template="https://example.test/d?id={id}", tz=timezone.utc)
        root = exporter.export(sample_tree)["data"][0]["spans"][0]
        assert tags_of(root)["url"].startswith("https://example.test/d?id=%2Fsubscriptions")


class TestResourceSpans:
    """Tests for spans built from resources."""

    def test_resource_shares_owner_span_id(self, exporter, sample_tree):
        """Resources reuse their deployment's span id rather than minting their own."""
        spans = exporter.export(sample_tree)["data"][0]["spans"]
        stg, kv = spans[1], spans[2]

        assert stg["spanID"] == "uid-main"
        assert kv["spanID"] == "uid-main"
        assert stg["references"] == [
            {"refType": "CHILD_OF", "traceID": stg["traceID"], "spanID": "uid-main"}
        ]
        assert spans[4]["spanID"] == "uid-network"

    def test_resource_process_and_times(self, exporter, sample_tree):
        stg = exporter.export(sample_tree)["data"][0]["spans"][1]
        assert stg["processID"] == "rsc"
        assert stg["duration"] == 90_500_000
        assert stg["startTime"] == to_epoch_micros(T - 10 * MIN)

    def test_succeeded_resource_has_no_status_tags(self, exporter, sample_tree):
        stg = exporter.export(sample_tree)["data"][0]["spans"][1]
        tags = tags_of(stg)
        assert tags["error"] is False
        assert "statusCode" not in tags
        assert "statusMessage" not in tags
        assert tags["start-time"] == "11:50:00.0000+00:00"
        assert tags["end-time"] == "11:51:30.5000+00:00"

    def test_failed_resource_has_status_tags(self, exporter, sample_tree):
        kv = exporter.export(sample_tree)["data"][0]["spans"][2]
        tags = tags_of(kv)
        assert tags["error"] is True
        assert tags["statusCode"] == "Conflict"
        assert tags["statusMessage"] == "Vault name already in use"

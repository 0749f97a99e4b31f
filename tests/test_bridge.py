"""
Unit tests for the cross-stack output bridge
"""
import pytest

from stackgraph import App, DeferredToken, ExportHandle, Join, Stack, StackState
from stackgraph.lib.errors import UnknownReferenceError, UnresolvedExportError


def declare_service(app, handle):
    service = Stack(app, "Service")
    service.declare(
        "AWS::ECS::TaskDefinition",
        {"Environment": [{"Name": "DB_URL", "Value": Join(parts=["mysql://", handle, ":3306"])}]},
        logical_id="Task"
    )
    return service


def test_export_creates_handle(data_stack):
    handle = data_stack.bridge.export("Data", "endpoint")

    assert handle == ExportHandle(source_stack="Data", output_name="endpoint")


@pytest.mark.parametrize("stack_name, output_name", [
    ("Missing", "endpoint"),
    ("Data", "missing"),
])
def test_export_of_undeclared_output_fails(data_stack, stack_name, output_name):
    with pytest.raises(UnknownReferenceError):
        data_stack.bridge.export(stack_name, output_name)


def test_consuming_before_producer_synthesized_fails(app, data_stack):
    handle = app.bridge.export("Data", "endpoint")

    with pytest.raises(UnresolvedExportError) as exc_info:
        declare_service(app, handle)

    assert exc_info.value.source_stack == "Data"
    assert exc_info.value.output_name == "endpoint"
    assert not app.bridge.is_available(handle)


def test_publish_requires_manifest(app, data_stack):
    with pytest.raises(UnresolvedExportError):
        app.bridge.publish(data_stack)


def test_publish_defers_late_bound_outputs(app, data_stack):
    data_stack.synthesize()

    published = app.bridge.publish(data_stack)

    assert [entry.output_name for entry in published] == ["endpoint"]
    assert published[0].value == DeferredToken(
        source=ExportHandle(source_stack="Data", output_name="endpoint")
    )
    assert not published[0].is_resolved
    assert data_stack.state == StackState.EXPORTED


def test_publish_is_append_only(app, data_stack):
    app.synthesize(data_stack)

    with pytest.raises(ValueError):
        app.bridge.publish(data_stack)
    assert len(app.bridge.exports) == 1


def test_undeclared_output_of_synthesized_stack_is_unknown(app):
    producer = Stack(app, "Producer")
    producer.declare("AWS::SNS::Topic", logical_id="Topic")
    producer.synthesize()

    with pytest.raises(UnknownReferenceError):
        app.bridge.require(ExportHandle(source_stack="Producer", output_name="Topic"))


def test_late_bound_import_renders_marker(app, data_stack):
    app.synthesize(data_stack)
    service = declare_service(app, app.bridge.export("Data", "endpoint"))

    manifest = app.synthesize(service)

    task = manifest.resource("Task")
    assert task.properties["Environment"][0]["Value"] == "mysql://${ImportValue:Data:endpoint}:3306"
    assert manifest.imports == ["Data"]


def test_materialized_import_is_substituted(materialized_state):
    app = App(materialized=materialized_state, max_workers=1)
    data = Stack(app, "Data")
    cluster = data.declare("AWS::RDS::DBCluster", {"Engine": "aurora-mysql"}, logical_id="cluster")
    data.output("endpoint", cluster.get_att("address"))
    app.synthesize(data)

    assert app.bridge.import_value(ExportHandle(source_stack="Data", output_name="endpoint")) == \
        "data.cluster.local"

    service = declare_service(app, app.bridge.export("Data", "endpoint"))
    manifest = app.synthesize(service)

    value = manifest.resource("Task").properties["Environment"][0]["Value"]
    assert value == "mysql://data.cluster.local:3306"
    assert service.state == StackState.SYNTHESIZED


def test_literal_outputs_publish_resolved(app):
    producer = Stack(app, "Producer")
    producer.output("Region", "us-east-2")
    app.synthesize(producer)

    entry = app.bridge.require(ExportHandle(source_stack="Producer", output_name="Region"))

    assert entry.is_resolved
    assert entry.value == "us-east-2"


def test_producer_synthesized_directly_is_published_on_import(app, data_stack):
    data_stack.synthesize()
    assert not app.bridge.is_published("Data")

    service = declare_service(app, app.bridge.export("Data", "endpoint"))

    assert app.bridge.is_published("Data")
    assert data_stack.state == StackState.EXPORTED
    manifest = app.synthesize(service)
    assert manifest.resource("Task").properties["Environment"][0]["Value"] == \
        "mysql://${ImportValue:Data:endpoint}:3306"


def test_synth_publishes_stack_synthesized_directly(app, data_stack):
    data_stack.synthesize()

    app.synth()

    assert app.bridge.is_available(ExportHandle(source_stack="Data", output_name="endpoint"))

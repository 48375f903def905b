"""
Tests for the json log formatter
"""

# Standard
import json
import logging

# Local
from example_operator.log_format import (
    ExampleJsonFormatter,
    current_reconcile_context,
    reconcile_context,
)
from example_operator.test_helpers.helpers import setup_cr


def make_record(**attrs):
    record = logging.LogRecord(
        name="TEST",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=None,
        exc_info=None,
    )
    for key, val in attrs.items():
        setattr(record, key, val)
    return record


def test_format_with_resource_attribute():
    """A resource attached to the record is expanded into fields"""
    resource = setup_cr()
    resource["metadata"]["resourceVersion"] = "7"
    record = make_record(resource=resource, reconciliationId="abc")
    output = json.loads(ExampleJsonFormatter().format(record))
    assert output["kind"] == "Example"
    assert output["apiVersion"] == "example.com/v1"
    assert output["resourceName"] == "test-instance"
    assert output["resourceNamespace"] == "test"
    assert output["resourceVersion"] == "7"
    assert output["reconciliationId"] == "abc"
    assert "thread" in output
    assert "threadName" in output


def test_format_with_reconcile_context():
    """Records emitted inside a reconcile context carry its identity"""
    with reconcile_context(setup_cr(name="other"), "xyz"):
        record = make_record()
        ExampleJsonFormatter().format(record)
    assert record.resourceName == "other"
    assert record.reconciliationId == "xyz"


def test_format_without_context():
    record = make_record()
    ExampleJsonFormatter().format(record)
    assert not hasattr(record, "resourceName")
    assert not hasattr(record, "reconciliationId")


def test_reconcile_context_nesting():
    """The previous context is restored when a nested context closes"""
    outer = setup_cr(name="outer")
    inner = setup_cr(name="inner")
    assert current_reconcile_context() is None
    with reconcile_context(outer, "1"):
        with reconcile_context(inner, "2"):
            assert current_reconcile_context() == (inner, "2")
        assert current_reconcile_context() == (outer, "1")
    assert current_reconcile_context() is None

"""Tests for the logging and telemetry helpers."""

from opentelemetry.sdk.trace import TracerProvider

from api import observability
from api.observability import add_trace_context, get_resource, initialize_observability


class TestTraceContext:
    """Log events pick up the ids of the span they were emitted in."""

    def test_ids_added_inside_span(self):
        tracer = TracerProvider().get_tracer("tests")

        with tracer.start_as_current_span("request") as span:
            event = add_trace_context(None, "info", {"event": "note_created"})

        ctx = span.get_span_context()
        assert event["trace_id"] == format(ctx.trace_id, "032x")
        assert event["span_id"] == format(ctx.span_id, "016x")

    def test_no_ids_outside_span(self):
        event = add_trace_context(None, "info", {"event": "note_created"})

        assert event == {"event": "note_created"}


class TestSetup:
    def test_resource_names_service(self):
        attributes = get_resource().attributes

        assert attributes["service.name"] == observability.SERVICE_NAME_VALUE
        assert attributes["service.namespace"] == "livenotes"

    def test_initialize_runs_once(self, monkeypatch):
        installed = (object(), object())
        monkeypatch.setattr(observability, "_providers", installed)

        def fail():
            raise AssertionError("configured twice")

        monkeypatch.setattr(observability, "configure_logging", fail)

        assert initialize_observability() is installed

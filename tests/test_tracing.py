"""Tests for per-phase OpenTelemetry spans."""

from __future__ import annotations

import logging
import sys
from unittest.mock import patch

import pytest
from opentelemetry.sdk.trace.export import ConsoleSpanExporter
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from phase_engine.config import TracingConfig
from phase_engine.tracing import PhaseTracer, _otlp_exporter, record_report


class TestDisabled:
	def test_no_provider(self) -> None:
		tracer = PhaseTracer(TracingConfig())
		assert tracer.provider is None
		assert not tracer.active

	def test_spans_do_not_record(self) -> None:
		tracer = PhaseTracer(TracingConfig())
		with tracer.phase_span("EXPLORE", "/w") as span:
			record_report(span, 0.5, "PLAN")
			assert not span.is_recording()
		tracer.shutdown()


class TestEnabled:
	def test_phase_span_attributes(self) -> None:
		exporter = InMemorySpanExporter()
		tracer = PhaseTracer(TracingConfig(enabled=True, exporter="none"), exporter=exporter)

		with tracer.phase_span("PLAN", "/work/shop", attempt=2) as span:
			record_report(span, 0.81234, "COMPLETE", True)

		spans = exporter.get_finished_spans()
		assert len(spans) == 1
		assert spans[0].name == "phase.plan"
		attrs = spans[0].attributes
		assert attrs["phase.name"] == "PLAN"
		assert attrs["phase.directory"] == "/work/shop"
		assert attrs["phase.attempt"] == 2
		assert attrs["phase.confidence"] == 0.812
		assert attrs["phase.next"] == "COMPLETE"
		assert attrs["phase.success"] is True

	def test_optional_attributes_omitted(self) -> None:
		exporter = InMemorySpanExporter()
		tracer = PhaseTracer(TracingConfig(enabled=True, exporter="none"), exporter=exporter)
		with tracer.phase_span("COMPLETE", "/w") as span:
			record_report(span, 0.5)
		attrs = exporter.get_finished_spans()[0].attributes
		assert "phase.next" not in attrs
		assert "phase.success" not in attrs

	def test_unknown_phase_name(self) -> None:
		exporter = InMemorySpanExporter()
		tracer = PhaseTracer(TracingConfig(enabled=True, exporter="none"), exporter=exporter)
		with tracer.phase_span("DEPLOY", "/w"):
			pass
		assert exporter.get_finished_spans()[0].name == "phase.deploy"

	def test_service_name_resource(self) -> None:
		tracer = PhaseTracer(TracingConfig(enabled=True, exporter="none", service_name="shop-agent"))
		assert tracer.active
		assert tracer.provider is not None
		assert tracer.provider.resource.attributes["service.name"] == "shop-agent"
		tracer.shutdown()

	def test_shutdown_flushes_exporter(self) -> None:
		exporter = InMemorySpanExporter()
		tracer = PhaseTracer(TracingConfig(enabled=True, exporter="none"), exporter=exporter)
		with tracer.phase_span("EXPLORE", "/w"):
			pass
		tracer.shutdown()
		# an exporter that was shut down drops later spans
		with tracer.phase_span("PLAN", "/w"):
			pass
		assert [s.name for s in exporter.get_finished_spans()] == ["phase.explore"]


_OTLP_MODULE = "opentelemetry.exporter.otlp.proto.grpc.trace_exporter"


class TestOtlpExporter:
	def test_missing_extra_falls_back_to_console(self, caplog: pytest.LogCaptureFixture) -> None:
		with patch.dict(sys.modules, {_OTLP_MODULE: None}), caplog.at_level(logging.WARNING, logger="phase_engine.tracing"):
			exporter = _otlp_exporter("http://localhost:4317")
		assert isinstance(exporter, ConsoleSpanExporter)
		assert "OTLP exporter not available" in caplog.text

	def test_tracer_starts_without_extra(self) -> None:
		with patch.dict(sys.modules, {_OTLP_MODULE: None}):
			tracer = PhaseTracer(TracingConfig(enabled=True, exporter="otlp"))
		assert tracer.active
		tracer.shutdown()

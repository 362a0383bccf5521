"""OpenTelemetry spans around each phase.

With tracing disabled no SDK provider is installed and the API hands out
non-recording spans, so callers never branch on whether tracing is on.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor, SpanExporter

from phase_engine.config import TracingConfig

logger = logging.getLogger(__name__)

PHASE_SPAN_NAMES = {
	"EXPLORE": "phase.explore",
	"PLAN": "phase.plan",
	"COMPLETE": "phase.complete",
}


def _otlp_exporter(endpoint: str) -> SpanExporter:
	"""OTLP exporter from the optional "otlp" extra, or console output when it is not installed."""
	try:
		from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
	except ImportError:
		logger.warning(
			"OTLP exporter not available. Install phase-engine[otlp] (opentelemetry-exporter-otlp-proto-grpc)"
		)
		return ConsoleSpanExporter()
	return OTLPSpanExporter(endpoint=endpoint)


class PhaseTracer:
	"""Opens one span per phase execution."""

	def __init__(self, config: TracingConfig, exporter: SpanExporter | None = None) -> None:
		self._config = config
		self.provider: TracerProvider | None = None

		if config.enabled:
			resource = Resource.create({"service.name": config.service_name})
			self.provider = TracerProvider(resource=resource)
			if exporter is None and config.exporter == "otlp":
				exporter = _otlp_exporter(config.otlp_endpoint)
			elif exporter is None and config.exporter == "console":
				exporter = ConsoleSpanExporter()
			if exporter is not None:
				self.provider.add_span_processor(SimpleSpanProcessor(exporter))
			self._tracer = self.provider.get_tracer("phase-engine")
			logger.info("Tracing enabled (%s exporter)", config.exporter)
		else:
			self._tracer = trace.get_tracer("phase-engine")

	@property
	def active(self) -> bool:
		return self.provider is not None

	@contextmanager
	def phase_span(self, phase: str, directory: str, attempt: int = 1) -> Generator[Any, None, None]:
		name = PHASE_SPAN_NAMES.get(phase, f"phase.{phase.lower()}")
		with self._tracer.start_as_current_span(name) as span:
			span.set_attribute("phase.name", phase)
			span.set_attribute("phase.directory", directory)
			span.set_attribute("phase.attempt", attempt)
			yield span

	def shutdown(self) -> None:
		if self.provider is not None:
			self.provider.shutdown()


def record_report(span: Any, confidence: float, next_phase: str | None = None, success: bool | None = None) -> None:
	"""Attach report outcome attributes to a phase span."""
	span.set_attribute("phase.confidence", round(confidence, 3))
	if next_phase is not None:
		span.set_attribute("phase.next", next_phase)
	if success is not None:
		span.set_attribute("phase.success", success)


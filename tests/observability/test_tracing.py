"""Tests for tracer provider configuration."""

from unittest.mock import patch

from opentelemetry.sdk.trace import TracerProvider

from revdel.observability.tracing import configure_tracing


class TestConfigureTracing:
    def test_resource_carries_service_name(self) -> None:
        with patch("revdel.observability.tracing.trace.set_tracer_provider"):
            provider = configure_tracing("revdel-test")
        assert isinstance(provider, TracerProvider)
        assert provider.resource.attributes["service.name"] == "revdel-test"

    def test_exporter_added_with_endpoint(self) -> None:
        with (
            patch("revdel.observability.tracing.trace.set_tracer_provider"),
            patch("revdel.observability.tracing.OTLPSpanExporter") as exporter,
            patch("revdel.observability.tracing.BatchSpanProcessor") as processor,
        ):
            configure_tracing("revdel-test", "http://collector:4318/v1/traces")

        exporter.assert_called_once_with(endpoint="http://collector:4318/v1/traces")
        processor.assert_called_once_with(exporter.return_value)

import unittest

from co11y.observability import otel


class ObservabilityTests(unittest.TestCase):
    def test_signal_endpoint_normalization(self) -> None:
        self.assertEqual(otel._signal_endpoint("http://collector:4318", "traces"), "http://collector:4318/v1/traces")
        self.assertEqual(otel._signal_endpoint("http://collector:4318/v1/", "metrics"), "http://collector:4318/v1/metrics")
        self.assertEqual(otel._signal_endpoint("http://c/v1/traces", "traces"), "http://c/v1/traces")
        self.assertIsNone(otel._signal_endpoint("  ", "traces"))

    def test_recorders_are_noops_when_disabled(self) -> None:
        otel.record_aggregation("interval", "ok", 12.5)
        otel.record_parser_failure("jsonl")
        otel.record_broadcast("hook", delivered=2, dropped=1)
        otel.record_client_count(1, 1)
        with otel.start_span("co11y.test", {"key": "value"}) as span:
            self.assertIsNone(span)

    def test_blank_labels_become_unknown(self) -> None:
        spec = otel._METRICS["broadcast_frames"]
        self.assertEqual(otel._label_values(spec, {"event": "", "result": "dropped"}), {"event": "unknown", "result": "dropped"})


if __name__ == "__main__":
    unittest.main()

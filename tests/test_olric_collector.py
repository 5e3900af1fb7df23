import logging
from concurrent.futures import ThreadPoolExecutor

from prometheus_client.core import CollectorRegistry

from olric_exporter.config import ExporterConfig
from olric_exporter.olric_client import OlricClient
from olric_exporter.olric_collector import OlricCollector


def _samples(collector):
    families = list(collector.collect())
    assert len(families) == 1
    return [(s.name, s.value) for s in families[0].samples]


def test_reachable_server_reports_up(olric_server):
    collector = OlricCollector(ExporterConfig(address=olric_server.address))

    assert _samples(collector) == [("olric_up", 1.0)]
    assert olric_server.commands == [["STATS"]]


def test_ping_probe_reports_up(olric_server):
    collector = OlricCollector(ExporterConfig(address=olric_server.address, probe="ping"))

    assert _samples(collector) == [("olric_up", 1.0)]
    assert olric_server.commands == [["PING"]]


def test_unreachable_server_reports_down(closed_address, caplog):
    collector = OlricCollector(ExporterConfig(address=closed_address, timeout=0.5))

    with caplog.at_level(logging.ERROR, logger="olric_exporter"):
        assert _samples(collector) == [("olric_up", 0.0)]

    assert any("Failed to connect to Olric" in r.getMessage() for r in caplog.records)


def test_failing_query_reports_down(olric_server, caplog):
    olric_server.mode = "error"
    collector = OlricCollector(ExporterConfig(address=olric_server.address))

    with caplog.at_level(logging.ERROR, logger="olric_exporter"):
        assert _samples(collector) == [("olric_up", 0.0)]

    assert any("Failed to collect stats" in r.getMessage() for r in caplog.records)


def test_each_scrape_uses_a_fresh_probe(olric_server):
    collector = OlricCollector(ExporterConfig(address=olric_server.address))

    assert _samples(collector) == [("olric_up", 1.0)]
    olric_server.mode = "error"
    assert _samples(collector) == [("olric_up", 0.0)]
    olric_server.mode = "ok"
    assert _samples(collector) == [("olric_up", 1.0)]
    assert len(olric_server.commands) == 3


def test_describe_declares_up_gauge():
    collector = OlricCollector(ExporterConfig())

    descriptors = collector.describe()

    assert len(descriptors) == 1
    assert descriptors[0].name == "olric_up"
    assert descriptors[0].type == "gauge"
    assert descriptors[0].samples == []


def test_namespace_prefixes_metric_name(olric_server):
    collector = OlricCollector(ExporterConfig(address=olric_server.address, namespace="cache"))

    assert collector.describe()[0].name == "cache_up"
    assert _samples(collector) == [("cache_up", 1.0)]


def test_injected_logger_receives_errors(closed_address, caplog):
    logger = logging.getLogger("tests.injected")
    collector = OlricCollector(ExporterConfig(address=closed_address, logger=logger))

    with caplog.at_level(logging.ERROR, logger="tests.injected"):
        collector.probe()

    assert [r.name for r in caplog.records] == ["tests.injected"]


def test_concurrent_collects_are_independent(olric_server, closed_address):
    up = OlricCollector(ExporterConfig(address=olric_server.address))
    down = OlricCollector(ExporterConfig(address=closed_address, timeout=0.5))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(_samples, [up, down] * 8))

    assert results == [[("olric_up", 1.0)], [("olric_up", 0.0)]] * 8


def test_registry_integration(olric_server):
    registry = CollectorRegistry()
    registry.register(OlricCollector(ExporterConfig(address=olric_server.address)))

    assert registry.get_sample_value("olric_up") == 1.0


def test_deeply_nested_reply_reports_down(olric_server, caplog):
    olric_server.mode = "nested"
    collector = OlricCollector(ExporterConfig(address=olric_server.address))

    with caplog.at_level(logging.ERROR, logger="olric_exporter"):
        assert _samples(collector) == [("olric_up", 0.0)]

    assert any("nested deeper than" in r.getMessage() for r in caplog.records)


def test_deeply_nested_stats_document_reports_down(olric_server):
    olric_server.mode = "deep_json"
    collector = OlricCollector(ExporterConfig(address=olric_server.address))

    assert _samples(collector) == [("olric_up", 0.0)]


def test_unexpected_error_reports_down(olric_server, monkeypatch, caplog):
    async def broken_stats(self):
        raise RuntimeError("decoder exploded")

    monkeypatch.setattr(OlricClient, "stats", broken_stats)
    collector = OlricCollector(ExporterConfig(address=olric_server.address))

    with caplog.at_level(logging.ERROR, logger="olric_exporter"):
        assert _samples(collector) == [("olric_up", 0.0)]

    assert any("Unexpected error probing Olric" in r.getMessage() for r in caplog.records)

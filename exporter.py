#!/usr/bin/env python3
"""
RAPL Exporter - Prometheus exporter for CPU package and DRAM energy.

Supports:
- Per-scrape energy deltas for every RAPL package and subdomain
- Counter wraparound correction
- Central config server with local fallback
- Health endpoint on a separate management port
- Prometheus metrics exposition
"""
import json
import logging
import re
import socket
import threading
import time
from datetime import datetime
from http.server import HTTPServer, BaseHTTPRequestHandler
from threading import Lock
from typing import Optional

from prometheus_client import CollectorRegistry, start_http_server
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from config_loader import ConfigLoader
from collectors import BaseCollector, SampleResult, get_collector
from collectors.rapl import ENERGY_METRIC, SUCCESS_METRIC, WRAPS_METRIC


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)

_METRIC_NAME_RE = re.compile(r"_*[^0-9A-Za-z_]+_*")


def sanitize_metric_name(name: str) -> str:
    """
    Replace characters that are invalid in metric names with underscores.

    Colons are replaced too; they are reserved for recording rules.
    """
    return _METRIC_NAME_RE.sub("_", name)


class HealthState:
    """Thread-safe record of the last collection outcome."""

    def __init__(self):
        self.lock = Lock()
        self.start_time = datetime.now()
        self.last_collection_time: Optional[datetime] = None
        self.last_collection_error: Optional[str] = None
        self.last_domain_count = 0

    def record(self, result: SampleResult):
        with self.lock:
            if result.has_data:
                self.last_collection_time = datetime.now()
                self.last_domain_count = len(result.readings)
            if result.errors:
                self.last_collection_error = "; ".join(str(e) for e in result.errors)
            elif result.has_data:
                self.last_collection_error = None
            else:
                self.last_collection_error = "No metrics collected"

    def snapshot(self) -> dict:
        with self.lock:
            uptime_seconds = int((datetime.now() - self.start_time).total_seconds())

            if self.last_collection_error:
                status = "degraded"
            elif self.last_collection_time:
                status = "healthy"
            else:
                status = "starting"

            return {
                "status": status,
                "uptime_seconds": uptime_seconds,
                "last_collection": self.last_collection_time.isoformat() if self.last_collection_time else None,
                "last_error": self.last_collection_error,
                "domains": self.last_domain_count,
            }


class RaplMetricsCollector:
    """
    Custom Prometheus collector that samples RAPL on demand.
    Only reads counters when Prometheus scrapes /metrics.
    """

    def __init__(self, collector: BaseCollector, instance: Optional[str] = None,
                 per_domain_metrics: bool = False, health: Optional[HealthState] = None):
        self.collector = collector
        self.instance = instance or socket.gethostname()
        self.per_domain_metrics = per_domain_metrics
        self.health = health or HealthState()

    def describe(self):
        """Metric families without samples, so registration does not trigger a read"""
        for family in self._families().values():
            yield family

    def _families(self):
        families = {}
        for descriptor in self.collector.describe():
            family_class = CounterMetricFamily if descriptor.kind == "counter" else GaugeMetricFamily
            families[descriptor.name] = family_class(
                descriptor.name,
                descriptor.help,
                labels=list(descriptor.labels),
            )
        return families

    def collect(self):
        """Called by Prometheus when scraping /metrics"""
        result = self.collector.safe_sample()
        self.health.record(result)

        families = self._families()
        energy = families[ENERGY_METRIC]
        wraps = families[WRAPS_METRIC]
        success = families[SUCCESS_METRIC]

        for reading in result.readings:
            labels = [self.instance, str(reading.domain.package_id), reading.domain.domain_name]
            energy.add_metric(labels, reading.joules)
            wraps.add_metric(labels, reading.wrap_count)

        success.add_metric([], 1 if result.has_data else 0)

        yield from families.values()

        if self.per_domain_metrics:
            reserved = set(families) | {family.name for family in families.values()}
            yield from self._per_domain_families(result, reserved)

    def _per_domain_families(self, result: SampleResult, reserved):
        families = {}
        for reading in result.readings:
            domain = reading.domain
            name = f"node_rapl_{sanitize_metric_name(domain.domain_name)}_joules"
            if name in reserved:
                logger.warning(f"Skipping per-domain metric {name} for {domain.key}: name is already in use")
                continue
            family = families.get(name)
            if family is None:
                family = GaugeMetricFamily(
                    name,
                    f"RAPL {domain.domain_name} energy since the previous scrape in joules",
                    labels=["index", "path"],
                )
                families[name] = family
            family.add_metric([str(domain.index), str(domain.path)], reading.joules)
        return list(families.values())


class HealthHandler(BaseHTTPRequestHandler):
    """
    HTTP handler for the management API.
    GET /health - Exporter and last collection status
    """

    health: HealthState = None
    instance: str = ""

    def do_GET(self):
        if self.path == '/health':
            self._handle_health()
        else:
            self.send_response(404)
            self.send_header('Content-Type', 'text/plain')
            self.end_headers()
            self.wfile.write(b'Not Found\n')

    def _handle_health(self):
        """Handle GET /health endpoint"""
        try:
            response = self.health.snapshot()
            response["instance"] = self.instance

            self.send_response(200)
            self.send_header('Content-Type', 'application/json')
            self.end_headers()
            self.wfile.write(json.dumps(response, indent=2).encode())

        except Exception as e:
            logger.error(f"Error handling /health: {e}")
            self.send_error(500, f"Internal server error: {e}")

    def log_message(self, format, *args):
        """Suppress default HTTP request logs"""
        pass


def start_management_server(port: int, health: HealthState, instance: str) -> HTTPServer:
    """
    Start HTTP server for the management API in a separate thread.

    Args:
        port: Port to listen on (e.g., 9111)
        health: Shared health state
        instance: Instance label reported in /health

    Returns:
        The running HTTPServer
    """
    handler = type("BoundHealthHandler", (HealthHandler,), {"health": health, "instance": instance})
    server = HTTPServer(('0.0.0.0', port), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info(f"🔄 Management API started on :{port}")
    logger.info(f"   - GET  :{port}/health - Health check status")
    return server


def initialize_collector(config: dict) -> BaseCollector:
    """
    Initialize collector based on config.

    Args:
        config: Configuration dictionary

    Returns:
        Initialized collector instance
    """
    collector_type = config["collector"]
    logger.info(f"Initializing collector: {collector_type}")

    try:
        collector = get_collector(collector_type, config)
        logger.info(f"✅ Collector initialized: {collector.__class__.__name__}")
        return collector
    except Exception as e:
        logger.error(f"❌ Failed to initialize collector: {e}")
        raise


def build_registry(config: dict, health: Optional[HealthState] = None) -> CollectorRegistry:
    """
    Build a registry holding the on-demand RAPL collector.

    Args:
        config: Configuration dictionary
        health: Shared health state (created if omitted)

    Returns:
        CollectorRegistry ready to be served
    """
    collector = initialize_collector(config)
    registry = CollectorRegistry()
    registry.register(RaplMetricsCollector(
        collector,
        instance=config.get("instance"),
        per_domain_metrics=bool(config.get("rapl", {}).get("per_domain_metrics", False)),
        health=health,
    ))
    return registry


def resolve_log_level(level) -> int:
    """Map a level name to its logging constant, falling back to INFO"""
    value = getattr(logging, str(level).upper(), None)
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=resolve_log_level(level), format=LOG_FORMAT)


def main():
    """Main exporter entry point"""
    configure_logging()
    logger.info("🚀 RAPL Exporter starting...")

    config = ConfigLoader().load()
    logging.getLogger().setLevel(resolve_log_level(config.get("log_level", "INFO")))
    logger.info(f"Configuration: {config}")

    health = HealthState()
    registry = build_registry(config, health)
    logger.info("✅ On-demand collector registered")

    metrics_port = config.get("port", 9110)
    start_http_server(metrics_port, registry=registry)
    logger.info(f"📊 Prometheus metrics endpoint started on :{metrics_port}/metrics")

    instance = config.get("instance") or socket.gethostname()
    start_management_server(config.get("management_port", 9111), health, instance)

    logger.info("✅ Exporter fully initialized - waiting for scrape requests")

    while True:
        time.sleep(60)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Exporter stopped by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        exit(1)

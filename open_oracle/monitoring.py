# open_oracle/monitoring.py
import time
import psutil
import socket
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app
from wsgiref.simple_server import make_server, WSGIServer
from socketserver import ThreadingMixIn
import threading
import logging

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the main application."""
    allow_reuse_address = True


class Monitor:
    def __init__(self, oracle, host="127.0.0.1", port=9090, start_server=False):
        self.oracle = oracle
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Isolated registry so several oracles can live in one process
        self.registry = CollectorRegistry()

        self.op_counter = Counter('oracle_operations_total', 'Entry point invocations', ['operation', 'status'], registry=self.registry)
        self.op_latency = Histogram('oracle_operation_latency_seconds', 'Time to execute an entry point', ['operation'], registry=self.registry)
        self.disputes = Counter('oracle_disputes_total', 'Accepted disputes', registry=self.registry)
        self.settlements = Counter('oracle_settlements_total', 'Distributed reports', ['in_window'], registry=self.registry)
        self.callbacks = Counter('oracle_callbacks_total', 'Settlement callbacks dispatched', ['success'], registry=self.registry)
        self.reports = Gauge('oracle_reports', 'Reports created so far', registry=self.registry)
        self.open_reports = Gauge('oracle_open_reports', 'Reports not yet distributed', registry=self.registry)
        self.native_fees = Gauge('oracle_native_fee_pool', 'Native currency in the fee pool', registry=self.registry)
        self.forfeited = Gauge('oracle_forfeited_native', 'Native payouts forfeited to escrow', registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)

        # Counted once here, then kept current by record_settlement
        registry = oracle.registry
        self._distributed = sum(1 for rid in registry.ids() if registry.get_status(rid).is_distributed)

        if start_server:
            self.start_server()

    def start_server(self):
        """Creates and starts the Prometheus HTTP server with retry logic."""
        app = make_wsgi_app(self.registry)

        max_retries = 5
        retry_delay = 2

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98:  # Address already in use
                    if attempt < max_retries - 1:
                        logger.warning(f"Port {self.port} in use, retrying in {retry_delay}s (attempt {attempt+1}/{max_retries})...")
                        time.sleep(retry_delay)
                    else:
                        logger.error(f"Failed to bind to port {self.port} after {max_retries} attempts")
                        raise
                else:
                    raise

    def stop_server(self):
        """Stops the HTTP server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            logger.info("Prometheus server stopped.")

    def update(self):
        """Refresh the gauges. Runs after every entry point."""
        self.reports.set(len(self.oracle.registry))
        self.open_reports.set(len(self.oracle.registry) - self._distributed)
        self.native_fees.set(self.oracle.treasury.native_fees)
        self.forfeited.set(self.oracle.custodian.forfeited_native)

        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def record_op(self, operation: str, status: str, latency: float):
        self.op_counter.labels(operation=operation, status=status).inc()
        self.op_latency.labels(operation=operation).observe(latency)

    def record_dispute(self):
        self.disputes.inc()

    def record_settlement(self, in_window: bool):
        self.settlements.labels(in_window=str(in_window).lower()).inc()
        self._distributed += 1

    def record_callback(self, success: bool):
        self.callbacks.labels(success=str(success).lower()).inc()

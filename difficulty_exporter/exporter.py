import argparse
import logging
import signal
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer

from .chain import ChainReader
from .config import DEFAULTS, load_config, merge_args, normalize_config, validate_config
from .errors import (
    ChainConnectionError,
    ConfigError,
    StoreConnectionError,
    StorageError,
    TransientFetchError,
)
from .ledger import Ledger
from .logs import setup_logging
from .metrics import MetricsExporter
from .synchronizer import HeightSynchronizer

logger = logging.getLogger("difficulty_exporter")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Block Difficulty Exporter")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--rpc", help="RPC URL for the blockchain")
    parser.add_argument("--dsn", help="Database DSN (SQLAlchemy URL)")
    parser.add_argument("--interval", type=float, help="Polling interval in seconds")
    parser.add_argument("--start", type=int, help="Starting block height")
    parser.add_argument(
        "--resume",
        action="store_true",
        default=None,
        help="Resume from the highest stored block when --start is not given",
    )
    parser.add_argument("--pushgateway", help="Pushgateway address")
    parser.add_argument("--namespace", help="Metric name prefix")
    parser.add_argument("--job", help="Pushgateway job label")
    parser.add_argument("--rpc-namespace", dest="rpc_namespace", help="JSON-RPC method prefix")
    parser.add_argument("--rpc-timeout", dest="rpc_timeout", type=float)
    parser.add_argument("--healthz-port", dest="healthz_port", type=int)
    parser.add_argument("--log-format", dest="log_format", choices=["text", "json"])
    parser.add_argument("--log-level", dest="log_level")
    return parser.parse_args(argv)


def build_config(args):
    config = load_config(args.config) if args.config else normalize_config({})
    return validate_config(merge_args(config, args))


def resolve_start_height(config, reader, ledger):
    """Explicit start wins, then the stored maximum when resuming, then the tip."""
    if config["start"] >= 0:
        return config["start"]
    if config["resume"]:
        stored = ledger.latest_height()
        if stored is not None:
            logger.info(f"Resuming after stored block height {stored}")
            return stored
        logger.info("Store is empty, starting from the current tip")
    return reader.current_height()


def install_signal_handlers(stop_event):
    def handle(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)


def run_healthz_server(synchronizer, port=8001, stale_after=None, host="0.0.0.0"):
    stale_after = stale_after or synchronizer.interval * 3

    class HealthzHandler(BaseHTTPRequestHandler):
        def do_GET(self):
            if self.path != "/healthz":
                self.send_response(404)
                self.end_headers()
                return
            last = synchronizer.last_success
            healthy = last is not None and time.monotonic() - last < stale_after
            self.send_response(200 if healthy else 503)
            self.send_header("Content-type", "text/plain")
            self.end_headers()
            self.wfile.write(b"ok" if healthy else b"stale")

        def log_message(self, format, *args):
            return  # Silence default logging

    server = HTTPServer((host, port), HealthzHandler)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    return server


def _abort(reader, ledger):
    reader.close()
    ledger.close()
    return 1


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_format or DEFAULTS["log_format"], args.log_level or DEFAULTS["log_level"])
    try:
        config = build_config(args)
    except ConfigError as e:
        logger.critical(str(e))
        return 1
    setup_logging(config["log_format"], config["log_level"])

    reader = ChainReader(
        config["rpc"], namespace=config["rpc_namespace"], timeout=config["rpc_timeout"]
    )
    ledger = Ledger(config["dsn"], table=config["table"])
    try:
        reader.connect(config["connect_attempts"], config["connect_delay"])
        ledger.connect()
        watermark = resolve_start_height(config, reader, ledger)
    except (ChainConnectionError, StoreConnectionError) as e:
        logger.critical(str(e))
        return _abort(reader, ledger)
    except (TransientFetchError, StorageError) as e:
        logger.critical(f"failed to determine starting block height: {e}")
        return _abort(reader, ledger)

    exporter = None
    if config["pushgateway"]:
        exporter = MetricsExporter(
            config["pushgateway"],
            namespace=config["namespace"],
            job=config["job"],
            grouping=config["grouping"],
            timeout=config["push_timeout"],
        )
    else:
        logger.info("No pushgateway configured, metrics export disabled")

    synchronizer = HeightSynchronizer(
        reader, ledger, watermark, interval=config["interval"], exporter=exporter
    )
    stop_event = threading.Event()
    install_signal_handlers(stop_event)
    server = None
    if config["healthz_port"] is not None:
        server = run_healthz_server(synchronizer, config["healthz_port"])
        logger.info(f"Health endpoint running on :{config['healthz_port']}/healthz")

    try:
        synchronizer.run(stop_event)
    finally:
        if server is not None:
            server.shutdown()
        reader.close()
        ledger.close()
    return 0

"""
Prometheus metrics server for the celebration engine.

Starts an HTTP server that exposes Prometheus metrics at /metrics, and
optionally runs the periodic tick against a database so the lifecycle
gauges stay current.

Usage:
    python -m celebration_engine.metrics_server --port 9090
    python -m celebration_engine.metrics_server --db celebrations.db --tick-interval 3600
"""

import argparse
import time

from celebration_engine.engine import CelebrationEngine
from celebration_engine.kernel.compliance_policy import CompliancePolicy
from celebration_engine.kernel.logging import configure_logging, get_logger
from celebration_engine.kernel.metrics import start_metrics_server

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Celebration Engine Metrics Server")
    parser.add_argument(
        "--port",
        type=int,
        default=9090,
        help="Port to listen on (default: 9090)",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Database to tick periodically (default: metrics only)",
    )
    parser.add_argument(
        "--tick-interval",
        type=int,
        default=3600,
        help="Seconds between ticks when --db is given (default: 3600)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs in JSON format (default: False)",
    )
    return parser


def main() -> None:
    """
    Start the Prometheus metrics server.

    The server exposes all engine metrics at http://0.0.0.0:<port>/metrics
    in Prometheus text format.
    """
    args = build_parser().parse_args()

    configure_logging(json_output=args.json_logs, log_level=args.log_level)

    logger.info(
        "Starting Prometheus metrics server",
        port=args.port,
        endpoint=f"http://0.0.0.0:{args.port}/metrics",
    )
    start_metrics_server(port=args.port)
    logger.info("Metrics server started successfully")

    engine = CelebrationEngine(args.db, policy=CompliancePolicy.from_env()) if args.db else None
    next_tick = time.monotonic()

    try:
        while True:
            if engine is not None and time.monotonic() >= next_tick:
                result = engine.tick()
                logger.info("Scheduled tick", summary=result.summary())
                next_tick = time.monotonic() + args.tick_interval
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down metrics server")


if __name__ == "__main__":
    main()

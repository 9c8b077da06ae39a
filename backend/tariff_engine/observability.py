"""Logging setup and structured operation logs with operation ID tracing."""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager

from tariff_engine.config import Settings

logger = logging.getLogger("tariff.operations")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    # Initialize Sentry if DSN is configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.environment,
            )
            logging.getLogger("tariff").info("Sentry initialized (env=%s)", settings.environment)
        except Exception as e:
            logging.getLogger("tariff").warning("Failed to initialize Sentry: %s", e)


@asynccontextmanager
async def log_operation(operation: str, **fields):
    """Emit one structured JSON log line for the wrapped operation.

    Yields a dict that the caller may extend with result fields; they are
    merged into the log line when the block exits.
    """
    op_id = str(uuid.uuid4())[:8]
    start_time = time.perf_counter()
    extra: dict = {}
    status = "ok"
    try:
        yield extra
    except Exception:
        status = "error"
        raise
    finally:
        log_data = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "op_id": op_id,
            "operation": operation,
            "status": status,
            "duration_ms": round((time.perf_counter() - start_time) * 1000, 1),
            **fields,
            **extra,
        }
        logger.info(json.dumps(log_data, default=str))

from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger
from mangum import Mangum
from mangum.types import LambdaContext

from campus_reservations.api import app, metrics

logger = Logger()
handler = Mangum(app, lifespan="off")


@metrics.log_metrics
def lambda_handler(event: dict[str, Any], context: LambdaContext) -> Any:
    # Minimal HTTP API v2.0 events (local runs, tests) lack fields Mangum expects.
    if isinstance(event, dict) and event.get("version") == "2.0":
        request_context = event.setdefault("requestContext", {})
        http_ctx = request_context.setdefault("http", {})
        http_ctx.setdefault("sourceIp", "127.0.0.1")
        http_ctx.setdefault("userAgent", "local")
        request_context.setdefault("stage", "$default")
        logger.append_keys(request_id=request_context.get("requestId"))

    return handler(event, context)

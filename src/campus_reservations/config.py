from __future__ import annotations

import os

from botocore.config import Config

TABLE_NAME = os.environ.get("TABLE_NAME", "reservations")
RESOURCES_TABLE_NAME = os.environ.get("RESOURCES_TABLE_NAME", "resources")
EVENT_BUS_NAME = os.environ.get("EVENT_BUS_NAME", "default")
AWS_REGION = os.environ.get("AWS_REGION", os.environ.get("AWS_DEFAULT_REGION", "us-east-1"))
METRICS_NAMESPACE = os.environ.get("METRICS_NAMESPACE", "CampusReservations")

STORE_CONNECT_TIMEOUT_SECONDS = float(os.environ.get("STORE_CONNECT_TIMEOUT_SECONDS", "2"))
STORE_READ_TIMEOUT_SECONDS = float(os.environ.get("STORE_READ_TIMEOUT_SECONDS", "3"))
STORE_MAX_ATTEMPTS = int(os.environ.get("STORE_MAX_ATTEMPTS", "3"))

# Every AWS call made by this service is bounded by these limits.
AWS_CLIENT_CONFIG = Config(
    region_name=AWS_REGION,
    connect_timeout=STORE_CONNECT_TIMEOUT_SECONDS,
    read_timeout=STORE_READ_TIMEOUT_SECONDS,
    retries={"max_attempts": STORE_MAX_ATTEMPTS, "mode": "standard"},
)

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from . import config
from .errors import InternalError
from .models import Resource, ResourceType

if TYPE_CHECKING:
    from mypy_boto3_dynamodb.service_resource import Table as DynamoDBTable
else:
    DynamoDBTable = Any  # type: ignore[assignment]

logger = Logger()

_table: DynamoDBTable = boto3.resource("dynamodb", config=config.AWS_CLIENT_CONFIG).Table(
    config.RESOURCES_TABLE_NAME
)


def resource_key(resource_type: ResourceType, resource_id: str) -> str:
    return f"{resource_type}#{resource_id}"


def get_resource(resource_type: ResourceType, resource_id: str) -> Resource | None:
    """Look a bookable resource up in the catalog; None when it does not exist."""
    key = resource_key(resource_type, resource_id)
    try:
        resp = cast(dict[str, Any], _table.get_item(Key={"resource_key": key}))
    except (BotoCoreError, ClientError) as exc:
        logger.exception("Resource catalog lookup failed", extra={"resource_key": key})
        raise InternalError("Resource catalog unavailable, retry later") from exc

    item = resp.get("Item")
    if not isinstance(item, dict):
        return None
    capacity = item.get("capacity")
    return Resource(
        resource_type=resource_type,
        resource_id=resource_id,
        name=item.get("name"),
        location=item.get("location"),
        capacity=int(capacity) if capacity is not None else None,
    )

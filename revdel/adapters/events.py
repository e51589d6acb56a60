import json
import logging
from typing import Any, Protocol

import boto3

from ..config import get_settings

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        attributes: dict[str, str] | None = None,
    ) -> None: ...


class NullPublisher:
    def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        attributes: dict[str, str] | None = None,
    ) -> None:
        logger.debug("event.skipped", extra={"event_type": event_type})


class SnsPublisher:
    def __init__(self, topic_arn: str, region: str = "us-east-1"):
        self.topic_arn = topic_arn
        self.client = boto3.client("sns", region_name=region)

    def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        attributes: dict[str, str] | None = None,
    ) -> None:
        message_attributes = {
            "event_type": {"DataType": "String", "StringValue": event_type}
        }
        for key, value in (attributes or {}).items():
            message_attributes[key] = {"DataType": "String", "StringValue": value}
        self.client.publish(
            TopicArn=self.topic_arn,
            Message=json.dumps(payload, default=str),
            MessageAttributes=message_attributes,
        )
        logger.info("event.published", extra={"event_type": event_type})


def get_event_publisher() -> EventPublisher:
    settings = get_settings()
    if settings.sns_topic_arn:
        return SnsPublisher(settings.sns_topic_arn, region=settings.aws_region)
    return NullPublisher()

# no "from __future__ import annotations" here, marshmallow_dataclass needs the real types

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union
import base64
import binascii
import json
import logging

import marshmallow
import marshmallow_dataclass

__all__ = (
    "Action",
    "ChangeEvent",
    "DecodeError",
    "normalize",
)


logger = logging.getLogger(__name__)


class DecodeError(Exception):
    pass


class Action(Enum):
    INSERT = "INSERT"
    DELETE = "DELETE"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: str) -> "Action":
        try:
            return cls(value.upper())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class ChangeEvent:
    action: Action
    tag: str = ""
    digest: str = ""


class BaseSchema(marshmallow.Schema):
    class Meta:
        unknown = marshmallow.EXCLUDE


# Artifact Registry / Container Registry notification payload
# https://cloud.google.com/artifact-registry/docs/configure-notifications#examples
@dataclass
class Notification:
    action: str
    tag: Optional[str] = ""
    digest: Optional[str] = ""


@dataclass
class PubsubMessage:
    data: Optional[str] = None
    attributes: Optional[Dict[str, str]] = None
    messageId: Optional[str] = None
    orderingKey: Optional[str] = None
    publishTime: Optional[str] = None


@dataclass
class PushNotification:
    message: PubsubMessage
    subscription: Optional[str] = None


NotificationSchema = marshmallow_dataclass.class_schema(Notification, base_schema=BaseSchema)
PushNotificationSchema = marshmallow_dataclass.class_schema(PushNotification, base_schema=BaseSchema)


def _unwrap(data: Optional[str]) -> Union[str, bytes]:
    if not data:
        raise DecodeError("Empty Pub/Sub message data")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        # not base64, the notification was pushed as-is
        return data


def _loads(body: Union[str, bytes]) -> Dict:
    try:
        j = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError("Malformed JSON payload") from e
    if not isinstance(j, dict):
        raise DecodeError("Expected a JSON object, got {}".format(type(j).__name__))
    return j


def normalize(body: Union[str, bytes]) -> ChangeEvent:
    """Decode a registry notification into a :class:`ChangeEvent`.

    The body is either the bare notification or a Pub/Sub push envelope whose
    ``message.data`` carries the notification (base64 encoded).
    """
    j = _loads(body)
    try:
        if "message" in j:
            envelope = PushNotificationSchema().load(j)
            logger.debug("Unwrapping Pub/Sub message %s from %s", envelope.message.messageId, envelope.subscription)
            j = _loads(_unwrap(envelope.message.data))
        n = NotificationSchema().load(j)
    except marshmallow.ValidationError as e:
        raise DecodeError("Invalid notification: {}".format(e.messages)) from e

    return ChangeEvent(action=Action.parse(n.action), tag=n.tag or "", digest=n.digest or "")

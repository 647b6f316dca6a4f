"""Serialization helpers for message frames."""

from __future__ import annotations

import json
from typing import Any

from pydantic_core import to_jsonable_python

from dynclient.utils.helpers import safe_dict

from .protocol import Message, MessageFault


def to_wire(value: Any) -> Any:
    """Convert payload values (pydantic models included) to JSON-safe data."""
    return to_jsonable_python(value)


def encode_message(message: Message) -> dict[str, Any]:
    """Encode a message into a JSON-safe frame."""
    payload: dict[str, Any] = {"action": message.action, "headers": to_wire(message.headers)}
    if message.message_id:
        payload["messageId"] = message.message_id
    if message.relates_to:
        payload["relatesTo"] = message.relates_to
    if message.body is not None:
        payload["body"] = to_wire(message.body)
    if message.fault is not None:
        payload["fault"] = {
            "code": message.fault.code,
            "reason": message.fault.reason,
            "detail": to_wire(message.fault.detail),
        }
    return payload


def encode_message_line(message: Message) -> str:
    """Encode a message frame into one line of JSON."""
    return json.dumps(encode_message(message), ensure_ascii=False)


def normalize_fault(fault: Any) -> MessageFault:
    """Normalize unknown fault payloads into MessageFault."""
    row = safe_dict(fault)
    return MessageFault(
        code=str(row.get("code") or "Receiver"),
        reason=str(row.get("reason") or "service fault"),
        detail=row.get("detail"),
    )


def decode_message(payload: Any, *, fallback_action: str = "") -> Message:
    """Decode a raw dict frame into a Message."""
    row = safe_dict(payload)
    body = row.get("body")
    fault = row.get("fault")
    return Message(
        action=str(row.get("action") or fallback_action),
        body=body if isinstance(body, dict) else None,
        message_id=row.get("messageId") or None,
        relates_to=row.get("relatesTo") or None,
        headers=safe_dict(row.get("headers")),
        fault=normalize_fault(fault) if fault is not None else None,
    )


def clone_message(message: Message) -> Message:
    """Copy a message through its wire form so no object is shared across the channel."""
    cloned = decode_message(encode_message(message), fallback_action=message.action)
    cloned.properties = dict(message.properties)
    return cloned

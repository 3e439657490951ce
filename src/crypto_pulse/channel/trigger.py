"""Wire codec for update triggers.

Wire format (UTF-8 JSON object)::

    {"trigger": "update", "timestamp": "2024-01-15T10:30:00+00:00"}

``kind`` is accepted as an alias for ``trigger``. A missing timestamp is
filled with the time of decoding; a present but unparseable one makes the
message malformed.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from pydantic import ValidationError

from crypto_pulse.core.exceptions import MalformedTrigger
from crypto_pulse.core.models import UpdateTrigger

UPDATE_KIND = "update"


def make_trigger(issued_at: datetime | None = None) -> UpdateTrigger:
    return UpdateTrigger(
        kind=UPDATE_KIND,
        issued_at=issued_at or datetime.now(timezone.utc),
    )


def encode_trigger(trigger: UpdateTrigger) -> bytes:
    """Serialize a trigger to its wire representation."""
    payload = {
        "trigger": trigger.kind,
        "timestamp": trigger.issued_at.isoformat(),
    }
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def decode_trigger(payload: bytes | str) -> UpdateTrigger:
    """Parse a wire message into an UpdateTrigger.

    Unknown kinds decode successfully; deciding whether to act on them is
    the consumer's job.

    Raises
    ------
    MalformedTrigger
        If the payload is not a JSON object with a string ``trigger`` field
        and an optional ISO-8601 ``timestamp``.
    """
    try:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        data = json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedTrigger(
            f"Trigger is not valid JSON: {e}", context={"reason": "invalid_json"}
        ) from e

    if not isinstance(data, dict):
        raise MalformedTrigger(
            f"Trigger must be a JSON object, got {type(data).__name__}",
            context={"reason": "not_an_object"},
        )

    kind = data.get("trigger", data.get("kind"))
    if not isinstance(kind, str) or not kind:
        raise MalformedTrigger(
            "Trigger is missing a 'trigger' field", context={"reason": "missing_kind"}
        )

    timestamp = data.get("timestamp")
    if timestamp is None:
        return UpdateTrigger(kind=kind, issued_at=datetime.now(timezone.utc))

    if not isinstance(timestamp, str):
        raise MalformedTrigger(
            "Trigger timestamp must be an ISO-8601 string",
            context={"reason": "bad_timestamp"},
        )
    try:
        issued_at = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return UpdateTrigger(kind=kind, issued_at=issued_at)
    except (ValueError, ValidationError) as e:
        raise MalformedTrigger(
            f"Unparseable trigger timestamp: {timestamp!r}",
            context={"reason": "bad_timestamp"},
        ) from e

"""Result payload value object.

A :class:`Payload` is the atomic unit courier delivers: one participant's
finished result record. Courier never inspects ``meta`` or ``data``; it only
serializes the record for the wire and for the durable slot.

Example:
    >>> payload = Payload.create({"trials": [1, 2, 3]}, meta={"ver": "2025-10-04a"})
    >>> restored = Payload.from_json(payload.to_json())
    >>> restored == payload
    True
"""

from __future__ import annotations

import json
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from courier.core.errors import PayloadError

_ID_ALPHABET = string.ascii_letters + string.digits


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_participant_id(length: int = 10) -> str:
    """Random alphanumeric participant id (e.g. ``"aZ3kP0qL9x"``)."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class Payload:
    """Immutable result record ``{id, when, meta, data}``.

    Attributes:
        id: Participant/submission id, also the server-side dedup key
        when: ISO-8601 UTC timestamp of when the payload was built
        meta: Free-form metadata (site, version, user agent, ...)
        data: The collected responses, any JSON-serializable value
    """

    id: str
    when: str
    meta: dict[str, Any] = field(default_factory=dict)
    data: Any = None

    @classmethod
    def create(
        cls,
        data: Any,
        *,
        meta: dict[str, Any] | None = None,
        id: str | None = None,
        when: datetime | str | None = None,
    ) -> Payload:
        """Build a payload, filling in a fresh id and the current time."""
        if isinstance(when, datetime):
            when = when.isoformat()
        return cls(
            id=id or generate_participant_id(),
            when=when or utcnow().isoformat(),
            meta=dict(meta or {}),
            data=data,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "when": self.when, "meta": self.meta, "data": self.data}

    def to_json(self) -> str:
        """Serialize to compact JSON.

        Raises:
            PayloadError: If ``meta`` or ``data`` is not JSON-serializable
        """
        try:
            return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise PayloadError(
                "Payload is not JSON-serializable", cause=e, payload_id=self.id
            ) from e

    @classmethod
    def from_dict(cls, raw: Any) -> Payload:
        """Rebuild a payload from its dict form.

        Raises:
            PayloadError: If ``raw`` is not a payload-shaped mapping
        """
        if not isinstance(raw, dict):
            raise PayloadError(f"Payload must be an object, got {type(raw).__name__}")
        payload_id = raw.get("id")
        if not isinstance(payload_id, str) or not payload_id:
            raise PayloadError("Payload is missing a string 'id'")
        meta = raw.get("meta") or {}
        if not isinstance(meta, dict):
            raise PayloadError("Payload 'meta' must be an object", payload_id=payload_id)
        return cls(
            id=payload_id,
            when=str(raw.get("when") or ""),
            meta=meta,
            data=raw.get("data"),
        )

    @classmethod
    def from_json(cls, text: str) -> Payload:
        """Parse a payload from JSON text.

        Raises:
            PayloadError: If ``text`` is not valid payload JSON
        """
        try:
            raw = json.loads(text)
        except (TypeError, ValueError) as e:
            raise PayloadError("Payload is not valid JSON", cause=e) from e
        return cls.from_dict(raw)


__all__ = ["Payload", "generate_participant_id", "utcnow"]

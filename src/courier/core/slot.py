"""Durable single-payload slot.

:class:`DurableSlot` holds at most one pending :class:`Payload` under a
reserved key of a :class:`~courier.core.storage.KeyValueStore`. It is the
only thing that survives a restart between a failed delivery and the
next attempt.

None of its operations raise on storage failure. A failed ``write``
degrades durability to best-effort (the in-memory retry loop still runs);
a failed ``read`` or ``clear`` behaves as if the slot were empty.
"""

from __future__ import annotations

from courier.core.errors import PayloadError, StorageError, is_retryable
from courier.core.logging import get_logger
from courier.core.payload import Payload
from courier.core.storage import KeyValueStore

logger = get_logger(__name__)

DEFAULT_SLOT_KEY = "pending_submission_v1"


class DurableSlot:
    """Zero-or-one payload, addressed by a fixed key.

    Example:
        >>> slot = DurableSlot(MemoryKeyValueStore())
        >>> slot.write(payload)
        >>> slot.read() == payload
        True
        >>> slot.clear()
        >>> slot.read() is None
        True
    """

    def __init__(self, store: KeyValueStore, key: str = DEFAULT_SLOT_KEY) -> None:
        self._store = store
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def write(self, payload: Payload) -> None:
        """Store ``payload``, replacing any previous content."""
        try:
            self._store.set(self._key, payload.to_json())
        except (StorageError, PayloadError, OSError) as e:
            logger.warning(
                "slot.write_failed",
                key=self._key,
                payload_id=payload.id,
                error=str(e),
                retryable=is_retryable(e),
            )
            return
        logger.debug("slot.written", key=self._key, payload_id=payload.id)

    def read(self) -> Payload | None:
        """Return the stored payload, or ``None`` if empty/unreadable."""
        raw = self._read_raw()
        if raw is None:
            return None
        try:
            return Payload.from_json(raw)
        except PayloadError as e:
            logger.warning("slot.malformed", key=self._key, error=str(e))
            return None

    def clear(self) -> None:
        """Remove the stored payload. Idempotent."""
        try:
            self._store.remove(self._key)
        except (StorageError, OSError) as e:
            logger.warning("slot.clear_failed", key=self._key, error=str(e))
            return
        logger.debug("slot.cleared", key=self._key)

    def clear_if_holds(self, payload_id: str) -> bool:
        """Clear the slot unless it now holds a different payload.

        Returns ``True`` when the slot ended up cleared.
        """
        stored = self.read()
        if stored is not None and stored.id != payload_id:
            logger.info("slot.kept_newer", key=self._key, payload_id=payload_id, stored_id=stored.id)
            return False
        self.clear()
        return True

    @property
    def occupied(self) -> bool:
        """True when raw content exists under the key, parseable or not."""
        return self._read_raw() is not None

    def _read_raw(self) -> str | None:
        try:
            return self._store.get(self._key)
        except (StorageError, OSError) as e:
            logger.warning("slot.read_failed", key=self._key, error=str(e))
            return None

    def __repr__(self) -> str:
        return f"DurableSlot(key={self._key!r}, store={self._store!r})"


__all__ = ["DEFAULT_SLOT_KEY", "DurableSlot"]

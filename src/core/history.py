"""Address history and policy flags kept in the key-value store."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from core.models import VerificationResult
from core.ports import KeyValueStorePort

HISTORY_KEY = "addresses"
AUTO_FORWARD_KEY = "auto_forward"


class AddressHistory:
    """Append-and-update log of detected addresses, newest last."""

    def __init__(self, store: KeyValueStorePort) -> None:
        self._store = store

    def records(self) -> list[dict[str, Any]]:
        return list(self._store.get(HISTORY_KEY) or [])

    def append(
        self,
        address: str,
        timestamp: datetime,
        channel: str,
        message: str,
        sender: str,
    ) -> None:
        records = self.records()
        records.append(
            {
                "address": address,
                "timestamp": timestamp.isoformat(),
                "channel": channel,
                "message": message,
                "sender": sender,
            }
        )
        self._store.set(HISTORY_KEY, records)

    def record_verification(self, address: str, result: VerificationResult) -> None:
        records = self.records()
        for record in records:
            if record.get("address") == address:
                record["verified"] = result.verified
                record["token_info"] = result.to_dict()
                break
        else:
            return
        self._store.set(HISTORY_KEY, records)

    def clear(self) -> None:
        self._store.set(HISTORY_KEY, [])

    def auto_forward(self, default: bool = False) -> bool:
        value: Optional[Any] = self._store.get(AUTO_FORWARD_KEY)
        if value is None:
            return default
        return bool(value)

    def set_auto_forward(self, enabled: bool) -> None:
        self._store.set(AUTO_FORWARD_KEY, bool(enabled))

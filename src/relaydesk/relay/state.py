"""In-memory identity mapping tables for one platform."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from relaydesk.platforms.models import OrganizationalUnit, utcnow

logger = logging.getLogger(__name__)


class ForwardRecord(BaseModel):
    """The last inbound message seen from one external user."""

    user_id: str
    username: str
    last_message: str
    forwarded_message_id: str
    unit_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    def __str__(self) -> str:
        """String representation."""
        where = f"unit {self.unit_id}" if self.unit_id else "shared surface"
        return f"{self.username} ({self.user_id}) -> {where}"


class RoutingState:
    """Mapping tables used by the routing engine.

    Tables:
    - user -> unit and unit -> user (always updated together)
    - user -> last ForwardRecord
    - forwarded message id -> user (never pruned, grows with traffic)

    State lives in process memory only and is lost on restart.
    """

    def __init__(self) -> None:
        """Initialize empty tables."""
        self._user_units: dict[str, OrganizationalUnit] = {}
        self._unit_users: dict[str, str] = {}
        self._forward_records: dict[str, ForwardRecord] = {}
        self._forwarded_index: dict[str, str] = {}
        self._creation_blocked: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    # Units

    def bind_unit(self, user_id: str, unit: OrganizationalUnit) -> None:
        """Map a user to a unit in both directions.

        Any previous unit of the user and any previous owner of the unit are
        unbound first, so both directions stay inverse of each other.
        """
        old_unit = self._user_units.pop(user_id, None)
        if old_unit is not None:
            self._unit_users.pop(old_unit.unit_id, None)

        old_owner = self._unit_users.pop(unit.unit_id, None)
        if old_owner is not None and old_owner != user_id:
            self._user_units.pop(old_owner, None)
            self._set_record_unit(old_owner, None)

        self._user_units[user_id] = unit
        self._unit_users[unit.unit_id] = user_id
        self._set_record_unit(user_id, unit.unit_id)
        logger.debug(f"Bound {user_id} to {unit}")

    def evict_unit(self, user_id: str) -> Optional[OrganizationalUnit]:
        """Remove the unit mapping of a user in both directions.

        Returns:
            The evicted unit, or None if the user had none
        """
        unit = self._user_units.pop(user_id, None)
        if unit is not None:
            self._unit_users.pop(unit.unit_id, None)
            self._set_record_unit(user_id, None)
            logger.debug(f"Evicted {unit} of {user_id}")
        return unit

    def _set_record_unit(self, user_id: str, unit_id: Optional[str]) -> None:
        record = self._forward_records.get(user_id)
        if record is not None and record.unit_id != unit_id:
            self._forward_records[user_id] = record.model_copy(update={"unit_id": unit_id})

    def unit_of(self, user_id: str) -> Optional[OrganizationalUnit]:
        """Get the unit mapped to a user."""
        return self._user_units.get(user_id)

    def identity_of(self, unit_id: str) -> Optional[str]:
        """Get the user a unit belongs to."""
        return self._unit_users.get(unit_id)

    def units(self) -> list[tuple[str, OrganizationalUnit]]:
        """All (user id, unit) pairs in creation order."""
        return list(self._user_units.items())

    # Forward records

    def record_forward(self, record: ForwardRecord) -> None:
        """Store the ForwardRecord of a user, replacing the previous one."""
        self._forward_records[record.user_id] = record

    def forward_record(self, user_id: str) -> Optional[ForwardRecord]:
        """Get the last ForwardRecord of a user."""
        return self._forward_records.get(user_id)

    def forward_records(self) -> list[ForwardRecord]:
        """All ForwardRecords, oldest user first."""
        return list(self._forward_records.values())

    def index_forward(self, forwarded_message_id: str, user_id: str) -> None:
        """Remember which user a forwarded copy belongs to."""
        self._forwarded_index[forwarded_message_id] = user_id

    def identity_for_forwarded(self, forwarded_message_id: str) -> Optional[str]:
        """Get the user whose message was forwarded as ``forwarded_message_id``."""
        return self._forwarded_index.get(forwarded_message_id)

    # Unit creation blocking

    def block_creation(self, user_id: str) -> None:
        """Stop trying to create units for a user."""
        self._creation_blocked.add(user_id)

    def unblock_creation(self, user_id: str) -> None:
        """Allow unit creation for a user again."""
        self._creation_blocked.discard(user_id)

    def is_creation_blocked(self, user_id: str) -> bool:
        """Whether unit creation previously failed for lack of rights or support."""
        return user_id in self._creation_blocked

    @asynccontextmanager
    async def locked(self, user_id: str) -> AsyncIterator[None]:
        """Serialize unit resolution and linking for one user.

        The lock is dropped once nobody holds or waits for it.
        """
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if self._lock_users[user_id] == 0:
                del self._lock_users[user_id]
                del self._locks[user_id]

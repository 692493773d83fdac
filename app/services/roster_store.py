from __future__ import annotations

import logging

from app.services.cache_store import ROSTER_COLLECTION, CacheStore
from app.services.errors import NotReady
from app.services.roster_models import RosterSnapshot, RosterType

logger = logging.getLogger(__name__)


class RosterStore:
    """Latest reconciled roster per roster type.

    Snapshots are immutable; ``publish`` persists the new snapshot and then
    swaps the reference, so readers see either the old or the new roster.
    """

    def __init__(self, store: CacheStore):
        self.store = store
        self._snapshots: dict[RosterType, RosterSnapshot] = {}

    def peek(self, roster_type: RosterType) -> RosterSnapshot | None:
        return self._snapshots.get(roster_type)

    def has_snapshot(self, roster_type: RosterType) -> bool:
        snapshot = self._snapshots.get(roster_type)
        return snapshot is not None and bool(snapshot.officials)

    def get(self, roster_type: RosterType) -> RosterSnapshot:
        snapshot = self._snapshots.get(roster_type)
        if snapshot is None or not snapshot.officials:
            raise NotReady(f"{roster_type.value} roster is not ready")
        return snapshot

    async def publish(self, snapshot: RosterSnapshot) -> None:
        await self.store.upsert(ROSTER_COLLECTION, snapshot.roster_type.value, snapshot.to_dict())
        self._snapshots[snapshot.roster_type] = snapshot
        logger.info(
            "roster_published roster_type=%s count=%s last_updated=%s",
            snapshot.roster_type.value,
            len(snapshot.officials),
            snapshot.last_updated.isoformat(),
        )

    async def load(self, roster_type: RosterType) -> bool:
        try:
            doc = await self.store.find_by_id(ROSTER_COLLECTION, roster_type.value)
        except Exception as exc:  # noqa: BLE001
            logger.warning("roster_load_failed roster_type=%s error=%s", roster_type.value, exc)
            return False
        if doc is None:
            return False
        try:
            snapshot = RosterSnapshot.from_dict(doc.payload)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("roster_load_malformed roster_type=%s error=%s", roster_type.value, exc)
            return False
        self._snapshots[roster_type] = snapshot
        logger.info("roster_loaded roster_type=%s count=%s", roster_type.value, len(snapshot.officials))
        return bool(snapshot.officials)

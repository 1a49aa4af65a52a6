"""
Local Record Store — device metadata, impact snapshots and timelines.

Four maps keyed by device id, held in memory and mirrored to a single JSON
file. The file is read once at construction and rewritten in full after
every mutation. Durability is best-effort:

  - a missing file means an empty store
  - a corrupt or unreadable file is logged and the store starts empty
  - a failed save is logged and swallowed; memory stays authoritative
"""

import json
import logging
import os
import threading
from typing import Dict, List, Optional

from impact.calculator import ImpactKind, ImpactSnapshot
from tracker.models import DeviceMetadata, TimelineEntry

logger = logging.getLogger(__name__)


class RecordStore:

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.RLock()
        self._metadata: Dict[int, DeviceMetadata] = {}
        self._projected: Dict[int, ImpactSnapshot] = {}
        self._verified: Dict[int, ImpactSnapshot] = {}
        self._timelines: Dict[int, List[TimelineEntry]] = {}
        self._load()

    # ── persistence ──────────────────────────────────────────────────────────

    def _load(self) -> None:
        if not os.path.exists(self.path):
            logger.info("No data store at %s, starting fresh", self.path)
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            metadata = {int(k): DeviceMetadata.from_dict(v)
                        for k, v in data.get("deviceMetadata", {}).items()}
            projected = {int(k): ImpactSnapshot.from_dict(v)
                         for k, v in data.get("projectedImpacts", {}).items()}
            verified = {int(k): ImpactSnapshot.from_dict(v)
                        for k, v in data.get("verifiedImpacts", {}).items()}
            timelines = {int(k): [TimelineEntry.from_dict(e) for e in v]
                         for k, v in data.get("timelines", {}).items()}
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("Could not load data store %s, starting empty: %s", self.path, e)
            return

        self._metadata = metadata
        self._projected = projected
        self._verified = verified
        self._timelines = timelines
        logger.info("Loaded data store from %s: %d device(s)", self.path, len(self._metadata))

    def snapshot(self) -> dict:
        """Plain-dict export of all four maps, as written to disk."""
        with self._lock:
            return {
                "deviceMetadata": {str(k): v.to_dict() for k, v in self._metadata.items()},
                "projectedImpacts": {str(k): v.to_dict() for k, v in self._projected.items()},
                "verifiedImpacts": {str(k): v.to_dict() for k, v in self._verified.items()},
                "timelines": {str(k): [e.to_dict() for e in v] for k, v in self._timelines.items()},
            }

    def _save(self) -> None:
        tmp_path = f"{self.path}.tmp"
        try:
            payload = self.snapshot()
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save data store to %s: %s", self.path, e)

    # ── metadata ─────────────────────────────────────────────────────────────

    def store_metadata(self, metadata: DeviceMetadata) -> None:
        with self._lock:
            self._metadata[metadata.device_id] = metadata
            self._save()
        logger.info("Saved metadata for device %d", metadata.device_id)

    def get_metadata(self, device_id: int) -> Optional[DeviceMetadata]:
        return self._metadata.get(device_id)

    # ── impact snapshots ─────────────────────────────────────────────────────

    def _store_snapshot(self, target: Dict[int, ImpactSnapshot], snapshot: ImpactSnapshot) -> ImpactSnapshot:
        """Snapshots are write-once: the first one stored for a device wins."""
        with self._lock:
            existing = target.get(snapshot.device_id)
            if existing is not None:
                logger.warning("%s impact for device %d already stored, keeping the original",
                               snapshot.kind.value, snapshot.device_id)
                return existing
            target[snapshot.device_id] = snapshot
            self._save()
        return snapshot

    def store_projected_impact(self, snapshot: ImpactSnapshot) -> ImpactSnapshot:
        if snapshot.kind != ImpactKind.PROJECTED:
            raise ValueError(f"expected a projected snapshot, got {snapshot.kind.value}")
        return self._store_snapshot(self._projected, snapshot)

    def get_projected_impact(self, device_id: int) -> Optional[ImpactSnapshot]:
        return self._projected.get(device_id)

    def store_verified_impact(self, snapshot: ImpactSnapshot) -> ImpactSnapshot:
        if snapshot.kind != ImpactKind.VERIFIED:
            raise ValueError(f"expected a verified snapshot, got {snapshot.kind.value}")
        return self._store_snapshot(self._verified, snapshot)

    def get_verified_impact(self, device_id: int) -> Optional[ImpactSnapshot]:
        return self._verified.get(device_id)

    # ── timelines ────────────────────────────────────────────────────────────

    def append_timeline_entry(self, device_id: int, entry: TimelineEntry) -> TimelineEntry:
        """
        Append an entry to a device's timeline.

        Timestamps never go backwards: an entry older than the last one is
        stamped with the last entry's timestamp.
        """
        with self._lock:
            timeline = self._timelines.setdefault(device_id, [])
            if timeline and entry.timestamp < timeline[-1].timestamp:
                entry = TimelineEntry(
                    status=entry.status,
                    timestamp=timeline[-1].timestamp,
                    confirmation_ref=entry.confirmation_ref,
                )
            timeline.append(entry)
            self._save()
        return entry

    def get_timeline(self, device_id: int) -> List[TimelineEntry]:
        return list(self._timelines.get(device_id, []))

    # ── misc ─────────────────────────────────────────────────────────────────

    def device_ids(self) -> List[int]:
        return sorted(self._metadata.keys())

    def has_records(self, device_id: int) -> bool:
        return any(device_id in m for m in (self._metadata, self._projected, self._verified, self._timelines))

    def discard_device(self, device_id: int) -> bool:
        """Drop everything stored for one device. Returns False if nothing was stored."""
        with self._lock:
            if not self.has_records(device_id):
                return False
            for target in (self._metadata, self._projected, self._verified, self._timelines):
                target.pop(device_id, None)
            self._save()
        logger.info("Discarded local records for device %d", device_id)
        return True

    def clear(self) -> None:
        with self._lock:
            self._metadata.clear()
            self._projected.clear()
            self._verified.clear()
            self._timelines.clear()
            self._save()
        logger.info("Data store cleared")

# Copyright (c) 2026, Hackpath and contributors
# For license information, please see license.txt

"""
Bounded Record Store

A versioned Redis container holding at most ``cap`` JSON records keyed by id:

	{"version": 1, "records": {record_id: {...}}}

Inserting a new record into a full store evicts the least recently played
record (smallest ``recency_field`` timestamp; records without one go first).
Updating an existing record never evicts.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import redis

from hackpath.services.progress_engine.local_store import VersionedContainer
from hackpath.services.progress_engine.records import parse_timestamp

logger = logging.getLogger(__name__)

# Sorts records without a usable timestamp before everything else
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _empty_records() -> Dict[str, Any]:
	return {"records": {}}


class BoundedRecordStore:
	"""Capped map of JSON records with least-recently-played eviction."""

	def __init__(
		self,
		redis_client: redis.Redis,
		key: str,
		cap: int,
		version: int = 1,
		recency_field: str = "last_played_at",
	):
		if cap < 1:
			raise ValueError(f"cap must be at least 1, got {cap}")
		self.cap = cap
		self.recency_field = recency_field
		self.container = VersionedContainer(redis_client, key, version, _empty_records)

	def get(self, record_id: str) -> Optional[Dict[str, Any]]:
		record = self._records(self.container.load()).get(record_id)
		return dict(record) if isinstance(record, dict) else None

	def get_all(self) -> Dict[str, Dict[str, Any]]:
		records = self._records(self.container.load())
		return {rid: dict(r) for rid, r in records.items() if isinstance(r, dict)}

	def count(self) -> int:
		return len(self.get_all())

	def put(self, record_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
		"""Insert or replace a record, evicting if a new id would exceed the cap."""
		return self.update(record_id, lambda _existing: record)

	def update(
		self,
		record_id: str,
		mutate: Callable[[Optional[Dict[str, Any]]], Dict[str, Any]],
	) -> Dict[str, Any]:
		"""
		Read-merge-write one record

		Args:
			record_id: Record to update or create
			mutate: Receives the current record (None when absent), returns the new one

		Returns:
			dict: The stored record
		"""
		def apply(data: Dict[str, Any]) -> Dict[str, Any]:
			records = self._records(data)
			existing = records.get(record_id)
			if not isinstance(existing, dict):
				existing = None
				self._evict_for_insert(records)
			updated = mutate(dict(existing) if existing else None)
			records[record_id] = updated
			return dict(updated)

		return self.container.update(apply)

	def remove(self, record_id: str) -> bool:
		"""
		Delete one record

		Returns:
			bool: True if the record existed
		"""
		def apply(data: Dict[str, Any]) -> bool:
			return self._records(data).pop(record_id, None) is not None

		return self.container.update(apply)

	def clear(self) -> bool:
		return self.container.clear()

	def _records(self, data: Dict[str, Any]) -> Dict[str, Any]:
		records = data.get("records")
		if not isinstance(records, dict):
			records = {}
			data["records"] = records
		return records

	def _evict_for_insert(self, records: Dict[str, Any]) -> None:
		while records and len(records) >= self.cap:
			oldest_id = min(records, key=lambda rid: self._recency(records[rid]))
			del records[oldest_id]
			logger.info(f"Evicted record {oldest_id} from {self.container.key} (cap {self.cap})")

	def _recency(self, record: Any) -> datetime:
		if not isinstance(record, dict):
			return _OLDEST
		return parse_timestamp(record.get(self.recency_field)) or _OLDEST

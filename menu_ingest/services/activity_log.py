"""
Append-only activity log kept in an upload's metadata.

The log lives under metadata["activityLog"]; appending never mutates the
existing metadata dict or list and never drops earlier entries.
"""
from collections.abc import Sequence
from typing import Any, Dict, Iterable, Iterator, Mapping, Union

from menu_ingest.schemas.menu_upload import ActivityEvent

ACTIVITY_LOG_KEY = "activityLog"


def create_activity_event_id(event: ActivityEvent) -> str:
    """Deterministic id: type:uploadId:itemId|na:timestamp:actorEmail|system."""
    item_part = event.item_id if event.item_id is not None else "na"
    actor_part = event.actor_email or "system"
    return f"{event.type.value}:{event.upload_id}:{item_part}:{event.timestamp}:{actor_part}"


class ActivityLog(Sequence):
    """Immutable ordered sequence of stored activity events."""

    def __init__(self, entries: Iterable[Dict[str, Any]] = ()):
        self._entries = tuple(dict(entry) for entry in entries)

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, Any] | None) -> "ActivityLog":
        entries = (metadata or {}).get(ACTIVITY_LOG_KEY)
        if not isinstance(entries, list):
            return cls()
        return cls(entry for entry in entries if isinstance(entry, dict))

    def append(self, event: Union[ActivityEvent, Mapping[str, Any]]) -> "ActivityLog":
        """Return a new log with the event added at the end."""
        if not isinstance(event, ActivityEvent):
            event = ActivityEvent.model_validate(event)
        if not event.id:
            event = event.model_copy(update={"id": create_activity_event_id(event)})
        return ActivityLog((*self._entries, event.to_metadata()))

    def to_list(self) -> list:
        return [dict(entry) for entry in self._entries]

    def __getitem__(self, index):
        return self._entries[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._entries)


def append_activity_event(
    metadata: Mapping[str, Any] | None,
    event: Union[ActivityEvent, Mapping[str, Any]],
) -> Dict[str, Any]:
    """
    Return a copy of `metadata` with `event` appended to its activity log.

    Also sets lastActivityAt/lastActivityType. Other keys are carried over
    unchanged.

    Args:
        metadata: Existing upload metadata (may be None)
        event: ActivityEvent or its camelCase dict form

    Returns:
        New metadata dict
    """
    if not isinstance(event, ActivityEvent):
        event = ActivityEvent.model_validate(event)

    log = ActivityLog.from_metadata(metadata).append(event)

    updated = dict(metadata or {})
    updated[ACTIVITY_LOG_KEY] = log.to_list()
    updated["lastActivityAt"] = event.timestamp
    updated["lastActivityType"] = event.type.value
    return updated

"""Wire schemas for documents sent to the remote collector."""

from nightsync.models.entries import NightscoutEntry, entries_to_json

__all__ = ["NightscoutEntry", "entries_to_json"]

"""Nightsync: incremental, checkpointed upload of glucose readings to Nightscout."""

__version__ = "0.1.0"

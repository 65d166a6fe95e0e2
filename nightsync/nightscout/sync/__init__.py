"""Nightscout sync engine.

Modules:
    debounce     - Per-key gate collapsing bursts of settings notifications
    verifier     - Authenticated credential probe
    uploader     - Watermarked, incremental entries upload
    orchestrator - Settings-change reactor: verify, then sync
    scheduler    - Periodic synchronize() loop
"""

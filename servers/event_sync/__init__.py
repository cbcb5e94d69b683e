"""
Community Event Sync

Pulls community event listings (concerts, meetups, local happenings) from
external providers and keeps a local event store in sync:
- Paginated fetching per enabled city with per-provider backoff
- Normalization into a canonical event shape
- Idempotent upserts keyed by (source, external id)
- Staleness sweep that deactivates listings a provider stopped returning

Run with: python -m servers.event_sync
"""

__version__ = "1.0.0"

"""
Core business logic

This package holds the match protocol:
- State machine: legal status transitions
- Managers: match lifecycle and move resolution
- Event log: audit trail of every change
- Locks: concurrency control on the match row
- Notifier: pushes committed snapshots to subscribers
"""

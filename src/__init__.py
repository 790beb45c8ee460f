"""
Invoice reconciliation data synchronization layer: expiring cache, backend
services, shared realtime subscriptions and data-fetching hooks.
"""

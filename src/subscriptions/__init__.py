"""
Realtime subscription sharing.
"""

from src.subscriptions.multiplexer import SubscriptionMultiplexer

__all__ = ['SubscriptionMultiplexer']

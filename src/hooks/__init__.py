"""
Data-fetching hooks: per-entity state holders combining the cache, the data
service and realtime subscriptions.
"""

from src.hooks.base_hook import DataHook, HookResult, HookState
from src.hooks.invoices import InvoicesHook
from src.hooks.vendors import VendorsHook
from src.hooks.rules import RulesHook

__all__ = ['DataHook', 'HookResult', 'HookState', 'InvoicesHook', 'VendorsHook', 'RulesHook']

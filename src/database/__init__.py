"""
Database module initialization

Backend implementations of the data service used by the invoice
reconciliation data layer.
"""

from src.database.data_service import DataService
from src.database.mock_data_service import MockDataService

__all__ = ['DataService', 'MockDataService']

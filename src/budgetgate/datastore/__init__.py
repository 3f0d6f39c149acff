"""
Bookkeeping layer gated by admission control.

Stores arbitrary key/value records in nested in-memory maps and calls
into the AdmissionController before every operation. Plain stores
spend get and set_increment; ordered stores keep separate maps and
spend get_sorted and set_increment_sorted. The global map has a single
handle of its own.
"""

from budgetgate.datastore.registry import DataRegistry
from budgetgate.datastore.store import BudgetedDataStore

__all__ = ["BudgetedDataStore", "DataRegistry"]

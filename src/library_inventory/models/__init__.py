"""
Library Inventory Models.

Pydantic models for the entities and results exposed by the backend:

- Item, Author, Publisher: the catalog, with derived availability
- Patron: registered readers
- Staff, Actor: employees and the authenticated request identity
- LoanRecord, LoanView, ReturnReceipt: the loan ledger and its projections
- DashboardStats: reporting counts
"""

from .catalog import Author, Item, ItemKind, ItemSummary, Publisher
from .loan import (
    LoanHistoryFilter,
    LoanRecord,
    LoanStatus,
    LoanView,
    ReturnReceipt,
    whole_days,
)
from .patron import Patron, PatronSummary
from .staff import Actor, Staff
from .stats import DashboardStats, HistoryOperation, LoanHistoryReportFilter

__all__ = [
    "Actor",
    "Author",
    "DashboardStats",
    "HistoryOperation",
    "Item",
    "ItemKind",
    "ItemSummary",
    "LoanHistoryFilter",
    "LoanHistoryReportFilter",
    "LoanRecord",
    "LoanStatus",
    "LoanView",
    "Patron",
    "PatronSummary",
    "Publisher",
    "ReturnReceipt",
    "Staff",
    "whole_days",
]

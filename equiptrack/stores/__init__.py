"""
equiptrack Stores

In-process implementations of the persistence layer. Services only rely
on the async methods, so a database-backed store can replace these
without touching the services.
"""

from .graph import GraphSnapshot, InMemoryOrganizationGraph, order_partners
from .tickets import InMemoryTicketStore, TicketCommit

__all__ = [
    "GraphSnapshot", "InMemoryOrganizationGraph", "order_partners",
    "InMemoryTicketStore", "TicketCommit",
]

"""
equiptrack

Service tickets for medical equipment with:
- Manufacturer-rooted service networks (OEM, partners, providers, hospitals)
- Four-tier engineer eligibility
- Append-only assignment ledger
- Status workflow with audit history
"""

__version__ = "0.1.0"

"""
TenderSync - Procurement release indexer.

Pulls paginated OCDS releases from a government open-contracting API,
flattens them into a relational store, and keeps that store in step with
the upstream feed through periodic, idempotent re-synchronization.
"""

__version__ = "0.1.0"
__app_name__ = "tendersync"

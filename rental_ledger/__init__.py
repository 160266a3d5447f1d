"""Bookkeeping for rental units: leases, monthly invoices, deposits and short stays."""

__version__ = "0.1.0"

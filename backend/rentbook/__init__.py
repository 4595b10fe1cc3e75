"""Rentbook: reservation and payment ledger backend for rental orders."""

__version__ = "0.1.0"

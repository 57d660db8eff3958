"""Fetch, extract and convert congressional district boundary archives."""

__version__ = "0.1.0"

"""Regulatory content ingestion for medical-device compliance."""

__version__ = "0.1.0"

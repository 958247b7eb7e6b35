"""Reporting package — run summary output."""

from .json_export import export_json

__all__ = [
    "export_json",
]

# meter_ingest/api/__init__.py

from meter_ingest.api import readings

__all__ = [
    "readings",
]

"""Ingestion layer.

This package turns provider responses of uncertain shape into normalized
:class:`etatrack.models.RawEstimate` records and distances.
"""

__all__: list[str] = []

"""State/store layer.

The smoothing store is the single source of truth for the ETA each
consumer displays; poll cycles feed it, consumers only read it.
"""

from etatrack.state.store import EstimateListener, SmoothingStore

__all__ = ["EstimateListener", "SmoothingStore"]

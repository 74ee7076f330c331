"""Spatial index factory.

Provides get_spatial_index() / set_spatial_index() / reset_spatial_index().
The default is a process-wide GridSpatialIndex; swap in a database-backed
implementation by calling set_spatial_index() at startup.
"""

from delivery import settings
from delivery.spatial.grid_adapter import GridSpatialIndex
from delivery.spatial.port import SpatialIndex

_current_index: SpatialIndex | None = None


def get_spatial_index() -> SpatialIndex:
    """Return the active spatial index. Defaults to an in-memory grid."""
    global _current_index
    if _current_index is None:
        _current_index = GridSpatialIndex(cell_km=settings.spatial_index_cell_km())
    return _current_index


def set_spatial_index(index: SpatialIndex) -> None:
    global _current_index
    _current_index = index


def reset_spatial_index() -> None:
    """Drop the active index (useful for tests)."""
    global _current_index
    _current_index = None

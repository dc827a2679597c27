"""Fleet view core: query pipeline, map clustering and popup placement for pNodes."""

from .geo import Cluster, MapNode, compute_clusters, expand_cluster, marker_style
from .overlay import FixedRegions, Placement, Rect, place_overlay
from .query import ViewResult, ViewState, compute_view
from .records import NodeRecord, normalize_record, normalize_records

__all__ = [
    "Cluster",
    "FixedRegions",
    "MapNode",
    "NodeRecord",
    "Placement",
    "Rect",
    "ViewResult",
    "ViewState",
    "compute_clusters",
    "compute_view",
    "expand_cluster",
    "marker_style",
    "normalize_record",
    "normalize_records",
    "place_overlay",
]

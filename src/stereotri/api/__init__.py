from stereotri.api.rig import TwoViewRig, status_counts
from stereotri.api.rig_io import load_bearings, load_rig, save_bearings, save_points, save_rig

__all__ = [
    "TwoViewRig",
    "status_counts",
    "load_rig",
    "save_rig",
    "load_bearings",
    "save_bearings",
    "save_points",
]

from stereotri import meta
from stereotri.api import TwoViewRig, load_bearings, load_rig, save_rig
from stereotri.core.triangulation import (
    triangulate_dlt,
    triangulate_dlt_homogeneous,
    triangulate_idw,
    triangulate_l1_angular,
    triangulate_linf_angular,
)
from stereotri.core.two_view import TwoViewTriangulation, triangulate_two_view

__all__ = [
    "meta",
    "TwoViewRig",
    "load_rig",
    "save_rig",
    "load_bearings",
    "triangulate_dlt",
    "triangulate_dlt_homogeneous",
    "triangulate_l1_angular",
    "triangulate_linf_angular",
    "triangulate_idw",
    "triangulate_two_view",
    "TwoViewTriangulation",
]

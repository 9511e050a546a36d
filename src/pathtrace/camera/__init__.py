"""Camera module for primary ray generation.

Ray generation uses normalized image coordinates:
    u in [0, 1]: left to right across image
    v in [0, 1]: bottom to top across image
"""

from .pinhole import (
    PinholeCamera,
    ThinLensCamera,
    get_camera_info,
    get_camera_origin,
    get_camera_ray,
    get_ray,
    get_thin_lens_ray,
    setup_camera,
)

__all__ = [
    "PinholeCamera",
    "ThinLensCamera",
    "setup_camera",
    "get_ray",
    "get_thin_lens_ray",
    "get_camera_ray",
    "get_camera_origin",
    "get_camera_info",
]

"""Scene module: surfaces, lights, world settings and scene building.

Components:
    intersection: Surface storage and closest-hit / shadow queries
    lights: Point lights and area light sampling on emissive surfaces
    world: Ambient, background environment and path settings
    manager: SceneManager facade and dict/JSON scene format
    cornell_box: Demo scene factory
"""

from .cornell_box import CornellBoxParams, create_cornell_box_scene, get_light_quad_info
from .intersection import (
    MAX_SURFACES,
    SceneHitRecord,
    add_surface,
    build_frame,
    clear_scene,
    get_surface_count,
    intersect_scene,
    intersect_shadow_ray,
    intersect_shadow_segment,
)
from .lights import add_point_light, clear_point_lights, get_point_light_count
from .manager import (
    PointLightInfo,
    SceneConfig,
    SceneManager,
    SurfaceInfo,
    TextureInfo,
    WorldInfo,
)
from .world import eval_env, reset_world, set_ambient, set_background, set_path_options

__all__ = [
    # Intersection
    "SceneHitRecord",
    "MAX_SURFACES",
    "build_frame",
    "add_surface",
    "clear_scene",
    "get_surface_count",
    "intersect_scene",
    "intersect_shadow_segment",
    "intersect_shadow_ray",
    # Lights
    "add_point_light",
    "clear_point_lights",
    "get_point_light_count",
    # World
    "eval_env",
    "reset_world",
    "set_ambient",
    "set_background",
    "set_path_options",
    # Manager
    "SceneManager",
    "SceneConfig",
    "TextureInfo",
    "SurfaceInfo",
    "PointLightInfo",
    "WorldInfo",
    # Cornell box
    "CornellBoxParams",
    "create_cornell_box_scene",
    "get_light_quad_info",
]

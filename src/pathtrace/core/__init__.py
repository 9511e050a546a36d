"""Core rendering module.

Components:
    ray: Ray data structure, frames and hemisphere sampling
    rng: Per-pixel random number generator table
    texture: Texture store and bilinear lookup
    integrator: Radiance estimator, tile driver and parallel dispatcher
    renderer: Renderer facade and render settings

All per-ray work runs inside Taichi kernels built from @ti.func pieces.
"""

from .ray import (
    RAY_EPSILON,
    Ray,
    frame_from_z,
    is_zero,
    length_squared,
    make_ray,
    make_segment,
    mean,
    ray_at,
    reflect,
    transform_direction,
    transform_direction_inverse,
    transform_point,
    vec2,
    vec3,
)
from .rng import get_rng_state, rng_next_float, rng_next_vec2f, seed_rngs
from .texture import NO_TEXTURE, add_texture, clear_textures, lookup_scaled_texture

# Note: integrator and renderer are NOT imported here to avoid circular imports.
# Import directly from src.pathtrace.core.integrator or src.pathtrace.core.renderer.

__all__ = [
    "Ray",
    "RAY_EPSILON",
    "ray_at",
    "make_ray",
    "make_segment",
    "vec2",
    "vec3",
    "length_squared",
    "is_zero",
    "mean",
    "reflect",
    "frame_from_z",
    "transform_direction",
    "transform_direction_inverse",
    "transform_point",
    "seed_rngs",
    "get_rng_state",
    "rng_next_float",
    "rng_next_vec2f",
    "NO_TEXTURE",
    "add_texture",
    "clear_textures",
    "lookup_scaled_texture",
]

"""Ray data structure, frame utilities and hemisphere sampling.

This module provides the Ray dataclass plus the small set of vector and
sampling helpers shared by the estimator. All sampling routines take their
uniform random numbers as arguments instead of drawing them, so that every
random decision is driven by the per-pixel generator in ``core.rng`` and a
render is reproducible for a given seed.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.core.ray import Ray, ray_at
    >>> ray = Ray(origin=ti.math.vec3(0.0), direction=ti.math.vec3(0.0, 0.0, -1.0))
"""

import taichi as ti
import taichi.math as tm

# Type aliases for Taichi vectors
vec2 = tm.vec2
vec3 = tm.vec3

# Offset applied at ray origins (and segment ends) to avoid self-intersection
RAY_EPSILON = 1e-4

# Upper bound used for rays that extend to infinity
RAY_T_MAX = 1e10


@ti.dataclass
class Ray:
    """A ray with an origin, a unit direction and a parametric range.

    Attributes:
        origin: The starting point of the ray.
        direction: The normalized direction of the ray.
        t_min: Smallest accepted hit distance.
        t_max: Largest accepted hit distance. Segments use the segment length.
    """

    origin: vec3
    direction: vec3
    t_min: ti.f32
    t_max: ti.f32


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Compute the point along the ray at parameter t."""
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    """Create an unbounded ray starting just past its origin."""
    return Ray(origin=origin, direction=direction, t_min=RAY_EPSILON, t_max=RAY_T_MAX)


@ti.func
def make_segment(p0: vec3, p1: vec3) -> Ray:
    """Create a ray covering the open segment between two points.

    Both ends are shortened by RAY_EPSILON so that neither the surface the
    segment starts on nor the one it ends on is reported as an occluder.

    Args:
        p0: Segment start.
        p1: Segment end.

    Returns:
        A Ray from p0 toward p1 bounded by the segment length.
    """
    d = p1 - p0
    dist = tm.length(d)
    return Ray(origin=p0, direction=d / dist, t_min=RAY_EPSILON, t_max=dist - RAY_EPSILON)


# =============================================================================
# Vector Utility Functions
# =============================================================================


@ti.func
def length_squared(v: vec3) -> ti.f32:
    return tm.dot(v, v)


@ti.func
def is_zero(v: vec3) -> ti.i32:
    """Check if a vector is exactly zero in all components.

    The estimator skips contributions whose value is exactly zero, so this
    is an exact test, unlike a tolerance-based near-zero check.
    """
    return v.x == 0.0 and v.y == 0.0 and v.z == 0.0


@ti.func
def mean(v: vec3) -> ti.f32:
    """Average of the three components of a color."""
    return (v.x + v.y + v.z) / 3.0


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Reflect an incident vector about a normal."""
    return incident - 2.0 * tm.dot(incident, normal) * normal


# =============================================================================
# Orthonormal Frames
# =============================================================================


@ti.func
def frame_from_z(normal: vec3):
    """Build an orthonormal frame whose z-axis is the given normal.

    Args:
        normal: The frame z-axis (should be normalized).

    Returns:
        A tuple (x, y, z) of world-space axes.
    """
    a = vec3(1.0, 0.0, 0.0)
    if ti.abs(normal.x) > 0.9:
        a = vec3(0.0, 1.0, 0.0)
    x = tm.normalize(tm.cross(a, normal))
    y = tm.cross(normal, x)
    return x, y, normal


@ti.func
def transform_direction(x: vec3, y: vec3, z: vec3, local_dir: vec3) -> vec3:
    """Transform a direction from frame-local to world coordinates."""
    return local_dir.x * x + local_dir.y * y + local_dir.z * z


@ti.func
def transform_direction_inverse(x: vec3, y: vec3, z: vec3, world_dir: vec3) -> vec3:
    """Transform a direction from world to frame-local coordinates."""
    return vec3(tm.dot(world_dir, x), tm.dot(world_dir, y), tm.dot(world_dir, z))


@ti.func
def transform_point(origin: vec3, x: vec3, y: vec3, z: vec3, local_point: vec3) -> vec3:
    """Transform a point from frame-local to world coordinates."""
    return origin + transform_direction(x, y, z, local_point)


# =============================================================================
# Hemisphere Sampling (z-up local frame)
# =============================================================================


@ti.func
def sample_direction_hemispherical_cosine(ruv: vec2) -> vec3:
    """Draw a local direction with density proportional to cos(theta).

    Args:
        ruv: Two uniform numbers in [0, 1).

    Returns:
        A unit direction in the z-up local frame.
    """
    z = ti.sqrt(ruv.y)
    r = ti.sqrt(ti.max(0.0, 1.0 - z * z))
    phi = 2.0 * tm.pi * ruv.x
    return vec3(r * ti.cos(phi), r * ti.sin(phi), z)


@ti.func
def sample_direction_hemispherical_cosine_pdf(local_dir: vec3) -> ti.f32:
    """Solid-angle density of sample_direction_hemispherical_cosine."""
    pdf = 0.0
    if local_dir.z > 0.0:
        pdf = local_dir.z / tm.pi
    return pdf


@ti.func
def sample_direction_hemispherical_cospower(ruv: vec2, n: ti.f32) -> vec3:
    """Draw a local direction with density proportional to cos(theta)^n.

    Args:
        ruv: Two uniform numbers in [0, 1).
        n: The cosine exponent (n >= 0).

    Returns:
        A unit direction in the z-up local frame.
    """
    z = ti.pow(ruv.y, 1.0 / (n + 1.0))
    r = ti.sqrt(ti.max(0.0, 1.0 - z * z))
    phi = 2.0 * tm.pi * ruv.x
    return vec3(r * ti.cos(phi), r * ti.sin(phi), z)


@ti.func
def sample_direction_hemispherical_cospower_pdf(local_dir: vec3, n: ti.f32) -> ti.f32:
    """Solid-angle density of sample_direction_hemispherical_cospower."""
    pdf = 0.0
    if local_dir.z > 0.0:
        pdf = (n + 1.0) / (2.0 * tm.pi) * ti.pow(local_dir.z, n)
    return pdf

"""Scene-level intersection and visibility queries.

This module stores every surface of the scene (spheres and quads, each
positioned by a rigid frame and sized by a radius) in Taichi fields and
answers the two queries the estimator needs:

- intersect_scene: closest hit along a ray, with material and texture
  coordinates
- intersect_shadow_segment / intersect_shadow_ray: whether anything blocks
  a segment between two points, or a ray toward infinity

Self-intersection at the query origin is avoided with the RAY_EPSILON offset
built into the Ray bounds.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.scene.intersection import add_surface, build_frame
    >>> frame = build_frame((0.0, 0.0, -2.0), normal=(0.0, 0.0, 1.0))
    >>> add_surface(frame, radius=0.5, is_quad=False, material_id=0)
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from src.pathtrace.core.ray import Ray, make_ray, make_segment
from src.pathtrace.geometry.quad import Quad, hit_quad
from src.pathtrace.geometry.sphere import Frame, HitRecord, Sphere, hit_sphere

vec2 = tm.vec2
vec3 = tm.vec3

Vec3Tuple = tuple[float, float, float]
FrameTuple = tuple[Vec3Tuple, Vec3Tuple, Vec3Tuple, Vec3Tuple]


@ti.dataclass
class SceneHitRecord:
    """Record of a ray-scene intersection with material information.

    Attributes:
        hit: 1 if the ray intersected any surface, 0 on a miss.
        t: Ray parameter of the closest hit.
        point: Hit position.
        normal: Unit normal at the hit, facing the incoming ray.
        uv: Texture coordinates at the hit.
        front_face: 1 if the front face was hit, 0 for the back face.
        material_id: Material of the hit surface, -1 on a miss.
        surface_id: Index of the hit surface, -1 on a miss.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    uv: vec2
    front_face: ti.i32
    material_id: ti.i32
    surface_id: ti.i32


MAX_SURFACES = 1024

# Surface storage: Structure of Arrays layout
surface_origin = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SURFACES)
surface_x = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SURFACES)
surface_y = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SURFACES)
surface_z = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SURFACES)
surface_radius = ti.field(dtype=ti.f32, shape=MAX_SURFACES)
surface_is_quad = ti.field(dtype=ti.i32, shape=MAX_SURFACES)
surface_material_id = ti.field(dtype=ti.i32, shape=MAX_SURFACES)
num_surfaces = ti.field(dtype=ti.i32, shape=())


def build_frame(
    origin: Vec3Tuple,
    normal: Vec3Tuple = (0.0, 0.0, 1.0),
    x_axis: Vec3Tuple | None = None,
) -> FrameTuple:
    """Build a rigid frame from an origin, a z-axis and an optional x hint.

    Args:
        origin: Frame origin.
        normal: Direction of the frame z-axis (normalized here).
        x_axis: Preferred x-axis direction. It is orthogonalized against the
            z-axis; when omitted an arbitrary perpendicular axis is chosen.

    Returns:
        (origin, x, y, z) as tuples.

    Raises:
        ValueError: If the normal is zero or the x hint is parallel to it.
    """
    z = np.asarray(normal, dtype=np.float64)
    z_len = np.linalg.norm(z)
    if z_len < 1e-12:
        raise ValueError("Frame normal must be non-zero")
    z = z / z_len

    if x_axis is None:
        hint = np.array([0.0, 1.0, 0.0]) if abs(z[0]) > 0.9 else np.array([1.0, 0.0, 0.0])
        x = np.cross(hint, z)
    else:
        hint = np.asarray(x_axis, dtype=np.float64)
        x = hint - np.dot(hint, z) * z
    x_len = np.linalg.norm(x)
    if x_len < 1e-12:
        raise ValueError("Frame x-axis must not be parallel to the normal")
    x = x / x_len
    y = np.cross(z, x)

    return (
        tuple(float(c) for c in origin),
        tuple(float(c) for c in x),
        tuple(float(c) for c in y),
        tuple(float(c) for c in z),
    )


def clear_scene() -> None:
    """Remove all surfaces from the scene."""
    num_surfaces[None] = 0


def add_surface(frame: FrameTuple, radius: float, is_quad: bool, material_id: int = 0) -> int:
    """Add a sphere or quad surface to the scene.

    Args:
        frame: (origin, x, y, z) rigid frame, e.g. from build_frame().
        radius: Sphere radius or quad half-extent (must be positive).
        is_quad: True for a quad, False for a sphere.
        material_id: The material ID to associate with this surface.

    Returns:
        The index of the added surface.

    Raises:
        ValueError: If the radius is not positive.
        RuntimeError: If the maximum number of surfaces is exceeded.
    """
    if radius <= 0.0:
        raise ValueError(f"Surface radius must be positive, got {radius}")
    idx = num_surfaces[None]
    if idx >= MAX_SURFACES:
        raise RuntimeError(f"Maximum number of surfaces ({MAX_SURFACES}) exceeded")
    origin, x, y, z = frame
    surface_origin[idx] = vec3(*origin)
    surface_x[idx] = vec3(*x)
    surface_y[idx] = vec3(*y)
    surface_z[idx] = vec3(*z)
    surface_radius[idx] = radius
    surface_is_quad[idx] = int(is_quad)
    surface_material_id[idx] = material_id
    num_surfaces[None] = idx + 1
    return idx


def get_surface_count() -> int:
    """Get the number of surfaces in the scene."""
    return int(num_surfaces[None])


@ti.func
def get_surface_frame(i: ti.i32) -> Frame:
    return Frame(o=surface_origin[i], x=surface_x[i], y=surface_y[i], z=surface_z[i])


@ti.func
def _hit_surface(i: ti.i32, ray: Ray, t_max: ti.f32) -> HitRecord:
    rec = HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        uv=vec2(0.0, 0.0),
        front_face=0,
    )
    if surface_is_quad[i]:
        quad = Quad(frame=get_surface_frame(i), radius=surface_radius[i])
        rec = hit_quad(ray.origin, ray.direction, quad, ray.t_min, t_max)
    else:
        sphere = Sphere(frame=get_surface_frame(i), radius=surface_radius[i])
        rec = hit_sphere(ray.origin, ray.direction, sphere, ray.t_min, t_max)
    return rec


@ti.func
def _make_miss_record() -> SceneHitRecord:
    return SceneHitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        uv=vec2(0.0, 0.0),
        front_face=0,
        material_id=-1,
        surface_id=-1,
    )


@ti.func
def intersect_scene(ray: Ray) -> SceneHitRecord:
    """Find the closest surface hit along a ray.

    Args:
        ray: The query ray; only hits with t in (t_min, t_max) count.

    Returns:
        A SceneHitRecord for the closest hit, or a miss record.
    """
    closest_t = ray.t_max
    result = _make_miss_record()

    for i in range(num_surfaces[None]):
        rec = _hit_surface(i, ray, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = SceneHitRecord(
                hit=1,
                t=rec.t,
                point=rec.point,
                normal=rec.normal,
                uv=rec.uv,
                front_face=rec.front_face,
                material_id=surface_material_id[i],
                surface_id=i,
            )

    return result


@ti.func
def intersect_any(ray: Ray) -> ti.i32:
    """Test if a ray hits any surface within its bounds (1 if so)."""
    hit_any = 0
    for i in range(num_surfaces[None]):
        if hit_any == 0:
            rec = _hit_surface(i, ray, ray.t_max)
            if rec.hit == 1:
                hit_any = 1
    return hit_any


@ti.func
def intersect_shadow_segment(p0: vec3, p1: vec3) -> ti.i32:
    """Whether the open segment between two points is occluded."""
    return intersect_any(make_segment(p0, p1))


@ti.func
def intersect_shadow_ray(origin: vec3, direction: vec3) -> ti.i32:
    """Whether a ray toward infinity is occluded."""
    return intersect_any(make_ray(origin, direction))

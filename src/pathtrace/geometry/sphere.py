"""Sphere primitive, the rigid Frame type and the shared HitRecord.

Spheres sit at the origin of a rigid frame. The frame does not change the
shape, but it orients the spherical texture coordinates: u is the longitude
around frame z measured from frame x, v the polar angle from +z.

Roots are computed with the cancellation-free form of the quadratic formula,
so rays starting far away from small spheres still hit them cleanly.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.geometry.sphere import Frame, Sphere, hit_sphere
    >>> # Call hit_sphere from inside a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

from src.pathtrace.core.ray import transform_direction_inverse

vec2 = tm.vec2
vec3 = tm.vec3


@ti.dataclass
class Frame:
    """A rigid frame: an origin and three orthonormal axes.

    Attributes:
        o: Frame origin in world space.
        x: Local x-axis in world space.
        y: Local y-axis in world space.
        z: Local z-axis in world space.
    """

    o: vec3
    x: vec3
    y: vec3
    z: vec3


@ti.dataclass
class Sphere:
    """A sphere centered at its frame origin.

    Attributes:
        frame: Placement and texture orientation; frame.o is the center.
        radius: Sphere radius, positive.
    """

    frame: Frame
    radius: ti.f32


@ti.dataclass
class HitRecord:
    """Closest intersection of a ray with one primitive.

    Attributes:
        hit: 1 on a hit, 0 on a miss. The other fields are meaningful only
            when hit == 1.
        t: Ray parameter of the hit.
        point: Hit position.
        normal: Unit surface normal facing the incoming ray.
        uv: Surface texture coordinates in [0, 1]^2.
        front_face: 1 if the ray arrived on the outward side, else 0.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    uv: vec2
    front_face: ti.i32


@ti.func
def _sphere_roots(a: ti.f32, half_b: ti.f32, c: ti.f32):
    """Ordered roots (near, far) of a*t^2 + 2*half_b*t + c, discriminant >= 0."""
    root = ti.sqrt(ti.max(half_b * half_b - a * c, 0.0))
    q = -(half_b + ti.select(half_b < 0.0, -root, root))
    near = 0.0
    far = 0.0
    if ti.abs(q) < 1e-10:
        near = -half_b / a
        far = near
    else:
        near = ti.min(q / a, c / q)
        far = ti.max(q / a, c / q)
    return near, far


@ti.func
def sphere_uv(sphere: Sphere, point: vec3) -> vec2:
    """Spherical (longitude, latitude) coordinates of a point in [0, 1]^2."""
    local = transform_direction_inverse(
        sphere.frame.x, sphere.frame.y, sphere.frame.z, point - sphere.frame.o
    )
    local = local / sphere.radius
    u = ti.atan2(local.y, local.x) / (2.0 * tm.pi)
    if u < 0.0:
        u += 1.0
    v = ti.acos(tm.clamp(local.z, -1.0, 1.0)) / tm.pi
    return vec2(u, v)


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Intersect a ray with a sphere inside the open interval (t_min, t_max).

    With oc = origin - center the hit parameters solve
    dot(d, d) t^2 + 2 dot(d, oc) t + dot(oc, oc) - r^2 = 0. The near root is
    preferred; the far root is used when the near one lies outside the
    interval (ray starting inside the sphere).

    Args:
        ray_origin: Ray origin.
        ray_direction: Ray direction, not necessarily normalized.
        sphere: The sphere.
        t_min: Exclusive lower bound on t.
        t_max: Exclusive upper bound on t.

    Returns:
        A HitRecord; check its hit field.
    """
    record = HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0),
        normal=vec3(0.0),
        uv=vec2(0.0),
        front_face=0,
    )
    oc = ray_origin - sphere.frame.o
    a = tm.dot(ray_direction, ray_direction)
    half_b = tm.dot(ray_direction, oc)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius

    if half_b * half_b - a * c >= 0.0:
        near, far = _sphere_roots(a, half_b, c)
        t = near
        if t <= t_min or t >= t_max:
            t = far
        if t > t_min and t < t_max:
            point = ray_origin + t * ray_direction
            outward = (point - sphere.frame.o) / sphere.radius
            front = tm.dot(ray_direction, outward) <= 0.0
            record.hit = 1
            record.t = t
            record.point = point
            record.normal = ti.select(front, outward, -outward)
            record.uv = sphere_uv(sphere, point)
            record.front_face = ti.select(front, 1, 0)
    return record

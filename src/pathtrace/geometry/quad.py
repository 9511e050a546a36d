"""Quad primitive with ray-quad intersection.

A quad is the square [-r, r] x [-r, r] in the XY plane of a rigid frame, with
its geometric normal along the frame's z-axis. The same description is used
to draw points on emissive quads, so texture coordinates of a hit are the
in-plane parameters mapped to [0, 1]^2:

    uv = ((x / r + 1) / 2, (y / r + 1) / 2)

Intersection moves the ray into the quad frame, crosses it with the z = 0
plane and keeps the crossing if it falls inside the square.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.geometry.quad import Quad, hit_quad
    >>> # Call hit_quad from inside a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

from src.pathtrace.core.ray import transform_direction_inverse

from .sphere import Frame, HitRecord

vec2 = tm.vec2
vec3 = tm.vec3


@ti.dataclass
class Quad:
    """A square centered at its frame origin.

    Attributes:
        frame: The quad's rigid frame. The quad lies in the frame's XY plane.
        radius: Half the side length of the square.
    """

    frame: Frame
    radius: ti.f32


@ti.func
def hit_quad(
    ray_origin: vec3,
    ray_direction: vec3,
    quad: Quad,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Intersect a ray with a quad inside the open interval (t_min, t_max).

    The ray-plane intersection is found by solving, in the quad frame,
        local_origin.z + t * local_direction.z = 0
    and the hit is accepted when |x| <= r and |y| <= r.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        quad: The quad to test intersection against.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A HitRecord; check its hit field.
    """
    fr = quad.frame
    local_o = transform_direction_inverse(fr.x, fr.y, fr.z, ray_origin - fr.o)
    local_d = transform_direction_inverse(fr.x, fr.y, fr.z, ray_direction)

    record = HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0),
        normal=vec3(0.0),
        uv=vec2(0.0),
        front_face=0,
    )

    # Parallel rays never cross the plane
    if ti.abs(local_d.z) > 1e-8:
        t = -local_o.z / local_d.z
        plane = vec2(local_o.x, local_o.y) + t * vec2(local_d.x, local_d.y)
        inside = ti.abs(plane.x) <= quad.radius and ti.abs(plane.y) <= quad.radius
        if t > t_min and t < t_max and inside:
            front = local_d.z < 0.0
            record.hit = 1
            record.t = t
            record.point = ray_origin + t * ray_direction
            record.normal = ti.select(front, fr.z, -fr.z)
            record.uv = (plane / quad.radius + 1.0) * 0.5
            record.front_face = ti.select(front, 1, 0)

    return record


@ti.func
def quad_area(quad: Quad) -> ti.f32:
    """Area of the quad, (2r)^2."""
    return (2.0 * quad.radius) * (2.0 * quad.radius)

"""Light sources: point lights and emissive surfaces.

Point lights are stored in their own registry (position and RGB intensity)
and contribute intensity / distance^2 toward every shaded point.

Area lights are not registered separately: any surface whose material has
nonzero emission is also a light. One point is drawn on such a surface per
shading point, using the planar parameterization of the surface frame:

    S = frame * (2r (u - 1/2), 2r (v - 1/2), 0),   N = frame.z

with area (2r)^2 for quads. Spheres reuse the same planar formula with the
sphere's surface area 4 pi r^2, an approximation of sphere sampling that is
biased and kept deliberately. The emission is looked up at the random (u, v)
with clamp addressing.
"""

import taichi as ti
import taichi.math as tm

from src.pathtrace.core.ray import length_squared, transform_point
from src.pathtrace.core.texture import lookup_scaled_texture
from src.pathtrace.materials.material import material_ke, material_ke_txt
from src.pathtrace.scene.intersection import (
    get_surface_frame,
    surface_is_quad,
    surface_material_id,
    surface_radius,
)

vec2 = tm.vec2
vec3 = tm.vec3

MAX_POINT_LIGHTS = 256

point_light_position = ti.Vector.field(3, dtype=ti.f32, shape=MAX_POINT_LIGHTS)
point_light_intensity = ti.Vector.field(3, dtype=ti.f32, shape=MAX_POINT_LIGHTS)
num_point_lights = ti.field(dtype=ti.i32, shape=())


def clear_point_lights() -> None:
    """Remove all point lights."""
    num_point_lights[None] = 0


def add_point_light(
    position: tuple[float, float, float],
    intensity: tuple[float, float, float],
) -> int:
    """Add a point light.

    Args:
        position: Light position in world space.
        intensity: Radiant intensity (RGB), attenuated by distance squared.

    Returns:
        The index of the added light.

    Raises:
        ValueError: If any intensity component is negative.
        RuntimeError: If the maximum number of point lights is exceeded.
    """
    for i, component in enumerate(intensity):
        if component < 0.0:
            raise ValueError(f"Intensity component {i} = {component} is negative")
    idx = num_point_lights[None]
    if idx >= MAX_POINT_LIGHTS:
        raise RuntimeError(f"Maximum number of point lights ({MAX_POINT_LIGHTS}) exceeded")
    point_light_position[idx] = vec3(position[0], position[1], position[2])
    point_light_intensity[idx] = vec3(intensity[0], intensity[1], intensity[2])
    num_point_lights[None] = idx + 1
    return idx


def get_point_light_count() -> int:
    """Get the number of point lights."""
    return int(num_point_lights[None])


@ti.func
def point_light_response(light: ti.i32, pos: vec3):
    """Unoccluded light arriving at pos from a point light.

    Returns:
        A tuple (light_position, direction_to_light, radiance).
    """
    lpos = point_light_position[light]
    cl = point_light_intensity[light] / length_squared(lpos - pos)
    l = tm.normalize(lpos - pos)
    return lpos, l, cl


@ti.func
def area_light_area(surface: ti.i32) -> ti.f32:
    r = surface_radius[surface]
    area = 4.0 * tm.pi * r * r
    if surface_is_quad[surface]:
        area = (2.0 * r) * (2.0 * r)
    return area


@ti.func
def sample_area_light(surface: ti.i32, pos: vec3, ruv: vec2):
    """Draw a point on an emissive surface and compute its contribution.

    Args:
        surface: Index of the emissive surface.
        pos: The point being shaded.
        ruv: Two uniform numbers in [0, 1) locating the point on the light.

    Returns:
        A tuple (light_point, direction_to_light, radiance) where radiance
        is emission * area * max(0, -N.l) / distance^2.
    """
    fr = get_surface_frame(surface)
    r = surface_radius[surface]
    s = transform_point(
        fr.o, fr.x, fr.y, fr.z, 2.0 * r * vec3(ruv.x - 0.5, ruv.y - 0.5, 0.0)
    )
    nl = fr.z
    material = surface_material_id[surface]
    kel = lookup_scaled_texture(material_ke[material], material_ke_txt[material], ruv, 0)
    l = tm.normalize(s - pos)
    cl = kel * area_light_area(surface) * ti.max(0.0, -tm.dot(nl, l)) / length_squared(s - pos)
    return s, l, cl

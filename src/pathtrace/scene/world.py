"""World settings and environment lookup.

Global, read-only-during-render settings of the scene live here: the ambient
term, the background color and optional latitude-longitude background
texture, whether shadow rays are traced, and the maximum path depth.

The environment evaluator maps a direction to equirectangular coordinates

    u = atan2(d.x, d.z) / (2 pi)   (wrapped into [0, 1))
    v = 1 - acos(d.y) / pi

and looks the background texture up with wrap addressing so the map is
continuous across the u = 0 / 1 seam. Without a texture the constant
background color is returned.
"""

import taichi as ti
import taichi.math as tm

from src.pathtrace.core.texture import NO_TEXTURE, lookup_scaled_texture, num_textures

vec2 = tm.vec2
vec3 = tm.vec3

DEFAULT_MAX_DEPTH = 3

_ambient = ti.Vector.field(3, dtype=ti.f32, shape=())
_background = ti.Vector.field(3, dtype=ti.f32, shape=())
_background_txt = ti.field(dtype=ti.i32, shape=())
_path_shadows = ti.field(dtype=ti.i32, shape=())
_path_max_depth = ti.field(dtype=ti.i32, shape=())


def reset_world() -> None:
    """Restore the default world settings (black, no texture, shadows on)."""
    _ambient[None] = vec3(0.0, 0.0, 0.0)
    _background[None] = vec3(0.0, 0.0, 0.0)
    _background_txt[None] = NO_TEXTURE
    _path_shadows[None] = 1
    _path_max_depth[None] = DEFAULT_MAX_DEPTH


def set_ambient(ambient: tuple[float, float, float]) -> None:
    """Set the constant ambient term multiplied by kd at every hit."""
    _ambient[None] = vec3(ambient[0], ambient[1], ambient[2])


def set_background(
    color: tuple[float, float, float],
    texture_id: int = NO_TEXTURE,
) -> None:
    """Set the background color and optional environment texture.

    Args:
        color: Background radiance, also the scale of the texture lookup.
        texture_id: Latitude-longitude texture id, or NO_TEXTURE.

    Raises:
        ValueError: If texture_id does not refer to a stored texture.
    """
    if texture_id != NO_TEXTURE and not 0 <= texture_id < num_textures[None]:
        raise ValueError(f"Invalid background texture id: {texture_id}")
    _background[None] = vec3(color[0], color[1], color[2])
    _background_txt[None] = texture_id


def set_path_options(max_depth: int | None = None, shadows: bool | None = None) -> None:
    """Set the maximum path depth and/or whether shadow rays are traced.

    Raises:
        ValueError: If max_depth is negative.
    """
    if max_depth is not None:
        if max_depth < 0:
            raise ValueError(f"max_depth must be non-negative, got {max_depth}")
        _path_max_depth[None] = max_depth
    if shadows is not None:
        _path_shadows[None] = int(shadows)


def get_world_info() -> dict:
    """Get the current world settings for debugging."""
    ambient = _ambient[None]
    background = _background[None]
    return {
        "ambient": (float(ambient[0]), float(ambient[1]), float(ambient[2])),
        "background": (float(background[0]), float(background[1]), float(background[2])),
        "background_txt": int(_background_txt[None]),
        "path_shadows": bool(_path_shadows[None]),
        "path_max_depth": int(_path_max_depth[None]),
    }


@ti.func
def get_ambient() -> vec3:
    return _ambient[None]


@ti.func
def has_background_texture() -> ti.i32:
    return _background_txt[None] >= 0


@ti.func
def shadows_enabled() -> ti.i32:
    return _path_shadows[None]


@ti.func
def get_max_depth() -> ti.i32:
    return _path_max_depth[None]


@ti.func
def direction_to_latlong(direction: vec3) -> vec2:
    """Equirectangular texture coordinates of a unit direction."""
    u = ti.atan2(direction.x, direction.z) / (2.0 * tm.pi)
    if u < 0.0:
        u += 1.0
    # f32 rounding of a tiny negative angle
    if u >= 1.0:
        u = 0.0
    v = 1.0 - ti.acos(tm.clamp(direction.y, -1.0, 1.0)) / tm.pi
    return vec2(u, v)


@ti.func
def eval_env(ke: vec3, ke_txt: ti.i32, direction: vec3) -> vec3:
    """Evaluate the environment radiance arriving from a direction.

    Args:
        ke: Background color (returned directly when there is no texture).
        ke_txt: Latitude-longitude texture id, or NO_TEXTURE.
        direction: Unit direction pointing away from the scene.

    Returns:
        The environment radiance.
    """
    return lookup_scaled_texture(ke, ke_txt, direction_to_latlong(direction), 1)


@ti.func
def eval_background(direction: vec3) -> vec3:
    """Evaluate the scene's configured environment for a direction."""
    return eval_env(_background[None], _background_txt[None], direction)

"""Pinhole and thin-lens camera models for primary ray generation.

The camera is a rigid frame (origin plus right, up and backward axes) and a
film rectangle at unit distance in front of the origin:

    film height = 2 tan(vfov / 2),   film width = aspect_ratio * film height

A pinhole ray through normalized image coordinates (u, v) leaves the camera
origin along

    frame * normalize(((u - 0.5) w, (v - 0.5) h, -1))

The thin-lens camera adds depth of field. It draws one point on a square
aperture, F = ((0.5 - a.x) A, (0.5 - a.y) A, 0), and aims at the point of the
focal plane seen through (u, v), Q = ((u - 0.5) w, (v - 0.5) h, -1) * focal_depth.
The ray F -> Q is then moved into world space by the camera frame. Which of
the two strategies is used is decided once, when the camera is set up.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.camera.pinhole import PinholeCamera, setup_camera
    >>> camera = PinholeCamera(
    ...     lookfrom=(0.0, 0.0, 3.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vup=(0.0, 1.0, 0.0),
    ...     vfov=60.0,
    ...     aspect_ratio=16.0 / 9.0,
    ... )
    >>> setup_camera(camera)
"""

import math
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from src.pathtrace.core.ray import Ray, make_ray, transform_direction, transform_point
from src.pathtrace.core.rng import rng_next_vec2f

vec3 = tm.vec3

LENS_PINHOLE = 0
LENS_THIN = 1


@dataclass
class PinholeCamera:
    """Configuration for a pinhole (perspective) camera.

    Attributes:
        lookfrom: Camera position in world space (x, y, z).
        lookat: Point the camera is looking at in world space (x, y, z).
        vup: Up direction vector for camera orientation (typically (0, 1, 0)).
        vfov: Vertical field of view in degrees.
        aspect_ratio: Width divided by height of the output image.
    """

    lookfrom: tuple[float, float, float]
    lookat: tuple[float, float, float]
    vup: tuple[float, float, float]
    vfov: float
    aspect_ratio: float


@dataclass
class ThinLensCamera(PinholeCamera):
    """A pinhole camera with a square aperture and a focal plane.

    Attributes:
        focal_depth: Distance of the plane in focus. Zero disables the lens.
        aperture: Side length of the square aperture.
    """

    focal_depth: float = 0.0
    aperture: float = 0.0


# Camera frame
_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_x = ti.Vector.field(3, dtype=ti.f32, shape=())  # Right
_camera_y = ti.Vector.field(3, dtype=ti.f32, shape=())  # Up
_camera_z = ti.Vector.field(3, dtype=ti.f32, shape=())  # Backward (opposite view)

# Film size at unit distance
_film_width = ti.field(dtype=ti.f32, shape=())
_film_height = ti.field(dtype=ti.f32, shape=())

# Lens strategy and thin-lens parameters
_lens_mode = ti.field(dtype=ti.i32, shape=())
_focal_depth = ti.field(dtype=ti.f32, shape=())
_aperture = ti.field(dtype=ti.f32, shape=())

_camera_ready = False


def setup_camera(camera: PinholeCamera) -> None:
    """Initialize camera state from configuration.

    Args:
        camera: A PinholeCamera, or a ThinLensCamera for depth of field.

    Raises:
        ValueError: If the field of view or aspect ratio is out of range,
            the view direction is degenerate, vup is parallel to it or the
            aperture is negative.
    """
    global _camera_ready

    if not 0.0 < camera.vfov < 180.0:
        raise ValueError(f"vfov must be in (0, 180) degrees, got {camera.vfov}")
    if camera.aspect_ratio <= 0.0:
        raise ValueError(f"aspect_ratio must be positive, got {camera.aspect_ratio}")

    focal_depth = getattr(camera, "focal_depth", 0.0)
    aperture = getattr(camera, "aperture", 0.0)
    if aperture < 0.0:
        raise ValueError(f"aperture must be non-negative, got {aperture}")

    film_height = 2.0 * math.tan(math.radians(camera.vfov) / 2.0)
    film_width = camera.aspect_ratio * film_height

    lookfrom = np.array(camera.lookfrom, dtype=np.float64)
    lookat = np.array(camera.lookat, dtype=np.float64)
    vup = np.array(camera.vup, dtype=np.float64)

    # z points from lookat toward lookfrom (backward)
    z = lookfrom - lookat
    z_len = np.linalg.norm(z)
    if z_len < 1e-12:
        raise ValueError("lookfrom and lookat must differ")
    z = z / z_len

    x = np.cross(vup, z)
    x_len = np.linalg.norm(x)
    if x_len < 1e-12:
        raise ValueError("vup must not be parallel to the view direction")
    x = x / x_len
    y = np.cross(z, x)

    _camera_origin[None] = lookfrom.tolist()
    _camera_x[None] = x.tolist()
    _camera_y[None] = y.tolist()
    _camera_z[None] = z.tolist()
    _film_width[None] = film_width
    _film_height[None] = film_height

    _focal_depth[None] = focal_depth
    _aperture[None] = aperture
    _lens_mode[None] = LENS_THIN if focal_depth != 0.0 else LENS_PINHOLE

    _camera_ready = True


def is_camera_ready() -> bool:
    """Whether setup_camera() has been called since the last reset."""
    return _camera_ready


def reset_camera() -> None:
    """Forget the configured camera."""
    global _camera_ready
    _camera_ready = False


@ti.func
def _film_point(u: ti.f32, v: ti.f32) -> vec3:
    return vec3((u - 0.5) * _film_width[None], (v - 0.5) * _film_height[None], -1.0)


@ti.func
def get_ray(u: ti.f32, v: ti.f32) -> Ray:
    """Pinhole ray through normalized image coordinates (u, v).

    u runs left to right and v bottom to top, both over [0, 1].
    """
    local_dir = tm.normalize(_film_point(u, v))
    direction = transform_direction(_camera_x[None], _camera_y[None], _camera_z[None], local_dir)
    return make_ray(_camera_origin[None], direction)


@ti.func
def get_thin_lens_ray(u: ti.f32, v: ti.f32, a: tm.vec2) -> Ray:
    """Thin-lens ray through (u, v) from the aperture sample a in [0, 1)^2."""
    aperture = _aperture[None]
    f = vec3((0.5 - a.x) * aperture, (0.5 - a.y) * aperture, 0.0)
    # Focal point reuses the jittered (u, v); no second vec2 is drawn for it
    q = _film_point(u, v) * _focal_depth[None]
    x = _camera_x[None]
    y = _camera_y[None]
    z = _camera_z[None]
    origin = transform_point(_camera_origin[None], x, y, z, f)
    direction = transform_direction(x, y, z, tm.normalize(q - f))
    return make_ray(origin, direction)


@ti.func
def get_camera_ray(u: ti.f32, v: ti.f32, pixel: tm.ivec2) -> Ray:
    """Camera ray for (u, v) using the configured lens strategy.

    The thin-lens strategy consumes one vec2 from the pixel's RNG stream.
    """
    ray = get_ray(u, v)
    if _lens_mode[None] == LENS_THIN:
        ray = get_thin_lens_ray(u, v, rng_next_vec2f(pixel))
    return ray


@ti.func
def get_camera_origin() -> vec3:
    return _camera_origin[None]


def get_camera_info() -> dict:
    """Get current camera state for debugging.

    Returns:
        Dictionary with origin, x, y, z, film_width, film_height,
        lens ("pinhole" or "thin_lens"), focal_depth and aperture.
    """

    def _tuple(field):
        vec = field[None]
        return (float(vec[0]), float(vec[1]), float(vec[2]))

    return {
        "origin": _tuple(_camera_origin),
        "x": _tuple(_camera_x),
        "y": _tuple(_camera_y),
        "z": _tuple(_camera_z),
        "film_width": float(_film_width[None]),
        "film_height": float(_film_height[None]),
        "lens": "thin_lens" if _lens_mode[None] == LENS_THIN else "pinhole",
        "focal_depth": float(_focal_depth[None]),
        "aperture": float(_aperture[None]),
    }

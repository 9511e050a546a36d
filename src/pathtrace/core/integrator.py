"""Path tracing integrator, tile driver and parallel dispatcher.

The radiance estimator follows one random path per camera sample. At every
hit it adds, weighted by the path throughput:

    - ambient * kd
    - the emission ke, only for the hit seen directly from the camera
    - one shadowed contribution per point light
    - one shadowed contribution per emissive surface, from a point drawn on it
    - one BRDF-sampled environment contribution when a background texture is
      set (the shadow test is a ray, the environment is at infinity)

and then, while depth < max depth, continues along a BRDF-sampled direction
with the throughput scaled by brdfcos / pdf. A miss adds the environment and
ends the path. This loop is the iterative form of the recursive estimator

    L(x, depth) = local(x) + brdfcos * L(x', depth + 1) / pdf

bounded by the maximum depth, with no Russian roulette.

Contributions whose unoccluded value is exactly zero are skipped together
with their shadow query.

Rows are the unit of work. The tile driver renders rows row_offset,
row_offset + row_stride, ... of the image; the dispatcher runs one driver per
worker k = 0..H-1 with offset k and stride H inside a single parallel kernel
loop, so no pixel (and no per-pixel RNG state) is touched by two workers.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.core.integrator import (
    ...     setup_render_target, render_parallel, get_image_numpy
    ... )
    >>> from src.pathtrace.scene.cornell_box import create_cornell_box_scene
    >>> from src.pathtrace.camera.pinhole import setup_camera
    >>>
    >>> scene, camera = create_cornell_box_scene()
    >>> setup_camera(camera)
    >>> setup_render_target(256, 256)
    >>> render_parallel(samples=4)
    >>> image = get_image_numpy()
"""

import logging
import os
import time

import numpy as np
import taichi as ti
import taichi.math as tm

from src.pathtrace.camera.pinhole import get_camera_ray, is_camera_ready
from src.pathtrace.core.ray import Ray, is_zero, make_ray
from src.pathtrace.core.rng import (
    MAX_RNG_HEIGHT,
    MAX_RNG_WIDTH,
    rng_next_float,
    rng_next_vec2f,
    seed_rngs,
)
from src.pathtrace.core.texture import NO_TEXTURE, lookup_scaled_texture
from src.pathtrace.materials.brdf import eval_brdfcos, sample_brdf
from src.pathtrace.materials.material import (
    is_emissive,
    material_kd,
    material_kd_txt,
    material_ke,
    material_ke_txt,
    material_ks,
    material_ks_txt,
    material_microfacet,
    material_n,
    material_norm_txt,
    num_materials,
)
from src.pathtrace.scene.intersection import (
    intersect_scene,
    intersect_shadow_ray,
    intersect_shadow_segment,
    num_surfaces,
    surface_material_id,
)
from src.pathtrace.scene.lights import num_point_lights, point_light_response, sample_area_light
from src.pathtrace.scene.world import (
    eval_background,
    get_ambient,
    get_max_depth,
    has_background_texture,
    shadows_enabled,
)

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# =============================================================================
# Render Target (Image Buffer)
# =============================================================================

# Preallocated to the largest supported image to avoid kernel recompilation
MAX_IMAGE_WIDTH = MAX_RNG_WIDTH
MAX_IMAGE_HEIGHT = MAX_RNG_HEIGHT

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())

_color_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# Number of times the tile driver rendered each pixel since the last clear
_pixel_visits = ti.field(dtype=ti.i32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

_render_target_initialized = ti.field(dtype=ti.i32, shape=())

# Diagnostics
_stat_paths = ti.field(dtype=ti.i64, shape=())
_stat_intersect_queries = ti.field(dtype=ti.i64, shape=())
_stat_shadow_queries = ti.field(dtype=ti.i64, shape=())
_stat_max_path_queries = ti.field(dtype=ti.i32, shape=())

# Result slot for single-ray queries
_trace_result = ti.Vector.field(3, dtype=ti.f32, shape=())
_trace_queries = ti.field(dtype=ti.i32, shape=())


def setup_render_target(width: int, height: int) -> None:
    """Initialize the render target buffers.

    Args:
        width: Image width in pixels (max MAX_IMAGE_WIDTH).
        height: Image height in pixels (max MAX_IMAGE_HEIGHT).

    Raises:
        ValueError: If a dimension is not positive or exceeds the maximum.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1

    clear_render_target()


def clear_render_target() -> None:
    """Clear the image, the visit counters and the statistics."""
    _color_buffer.fill(0.0)
    _pixel_visits.fill(0)
    reset_render_statistics()


def reset_render_statistics() -> None:
    _stat_paths[None] = 0
    _stat_intersect_queries[None] = 0
    _stat_shadow_queries[None] = 0
    _stat_max_path_queries[None] = 0


def get_image_dimensions() -> tuple[int, int]:
    """Get the current render target dimensions as (width, height)."""
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


def _check_scene() -> None:
    """Fail fast on scene state a render cannot start from."""
    if not is_camera_ready():
        raise RuntimeError("Camera not set up. Call setup_camera() first.")
    count = int(num_surfaces[None])
    if count == 0:
        return
    ids = surface_material_id.to_numpy()[:count]
    materials = int(num_materials[None])
    bad = np.flatnonzero((ids < 0) | (ids >= materials))
    if bad.size > 0:
        surface = int(bad[0])
        raise ValueError(
            f"Surface {surface} refers to material {int(ids[surface])}, "
            f"but only {materials} materials exist"
        )


# =============================================================================
# Radiance Estimator
# =============================================================================


@ti.func
def _visible_segment(p0: vec3, p1: vec3) -> ti.i32:
    visible = 1
    if shadows_enabled():
        visible = 1 - intersect_shadow_segment(p0, p1)
    return visible


@ti.func
def _visible_ray(origin: vec3, direction: vec3) -> ti.i32:
    visible = 1
    if shadows_enabled():
        visible = 1 - intersect_shadow_ray(origin, direction)
    return visible


@ti.func
def pathtrace_ray(ray: Ray, pixel: tm.ivec2):
    """Estimate the radiance arriving along a camera ray.

    Args:
        ray: The primary ray.
        pixel: Pixel whose RNG stream supplies the random numbers.

    Returns:
        A tuple (radiance, intersect_queries, shadow_queries) where the
        query counts cover this path only.
    """
    radiance = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)
    max_depth = get_max_depth()
    depth = 0
    queries = 0
    shadow_queries = 0
    current = ray
    active = 1

    while active == 1:
        rec = intersect_scene(current)
        queries += 1

        if rec.hit == 0:
            radiance += throughput * eval_background(current.direction)
            active = 0
        else:
            m = rec.material_id
            uv = rec.uv
            pos = rec.point
            v = -current.direction

            ke = lookup_scaled_texture(material_ke[m], material_ke_txt[m], uv, 1)
            kd = lookup_scaled_texture(material_kd[m], material_kd_txt[m], uv, 1)
            ks = lookup_scaled_texture(material_ks[m], material_ks_txt[m], uv, 1)
            norm = rec.normal
            if material_norm_txt[m] != NO_TEXTURE:
                norm = tm.normalize(lookup_scaled_texture(norm, material_norm_txt[m], uv, 1))
            n = material_n[m]
            mf = material_microfacet[m]

            local = get_ambient() * kd
            if depth == 0:
                local += ke

            for light in range(num_point_lights[None]):
                lpos, l, cl = point_light_response(light, pos)
                shade = cl * eval_brdfcos(kd, ks, n, v, l, norm, mf)
                if is_zero(shade) == 0:
                    shadow_queries += shadows_enabled()
                    if _visible_segment(pos, lpos):
                        local += shade

            for surface in range(num_surfaces[None]):
                if is_emissive(surface_material_id[surface]):
                    s, l, cl = sample_area_light(surface, pos, rng_next_vec2f(pixel))
                    shade = cl * eval_brdfcos(kd, ks, n, v, l, norm, mf)
                    if is_zero(shade) == 0:
                        shadow_queries += shadows_enabled()
                        if _visible_segment(pos, s):
                            local += shade

            if has_background_texture():
                env_dir, env_pdf = sample_brdf(
                    kd, ks, n, v, norm, rng_next_vec2f(pixel), rng_next_float(pixel)
                )
                brdfcos = eval_brdfcos(kd, ks, n, v, env_dir, norm, mf)
                if is_zero(brdfcos) == 0 and env_pdf > 0.0:
                    shade = brdfcos * eval_background(env_dir) / env_pdf
                    if is_zero(shade) == 0:
                        shadow_queries += shadows_enabled()
                        if _visible_ray(pos, env_dir):
                            local += shade

            radiance += throughput * local

            if depth < max_depth:
                next_dir, pdf = sample_brdf(
                    kd, ks, n, v, norm, rng_next_vec2f(pixel), rng_next_float(pixel)
                )
                brdfcos = eval_brdfcos(kd, ks, n, v, next_dir, norm, mf)
                if is_zero(brdfcos) == 1 or pdf <= 0.0:
                    active = 0
                else:
                    throughput *= brdfcos / pdf
                    current = make_ray(pos, next_dir)
                    depth += 1
            else:
                active = 0

    return radiance, queries, shadow_queries


# =============================================================================
# Tile Driver and Dispatcher
# =============================================================================


@ti.func
def _render_rows(
    row_offset: ti.i32,
    row_stride: ti.i32,
    samples: ti.i32,
    width: ti.i32,
    height: ti.i32,
):
    """Render every row_stride-th row starting at row_offset."""
    inv_samples = 1.0 / ti.cast(samples, ti.f32)
    fwidth = ti.cast(width, ti.f32)
    fheight = ti.cast(height, ti.f32)
    j = row_offset
    while j < height:
        for i in range(width):
            pixel = tm.ivec2(i, j)
            acc = vec3(0.0, 0.0, 0.0)
            queries = 0
            shadow_queries = 0
            max_queries = 0
            for jj in range(samples):
                for ii in range(samples):
                    su = (ti.cast(ii, ti.f32) + rng_next_float(pixel)) * inv_samples
                    sv = (ti.cast(jj, ti.f32) + rng_next_float(pixel)) * inv_samples
                    u = (ti.cast(i, ti.f32) + su) / fwidth
                    v = (ti.cast(j, ti.f32) + sv) / fheight
                    ray = get_camera_ray(u, v, pixel)
                    color, q, sq = pathtrace_ray(ray, pixel)
                    acc += color
                    queries += q
                    shadow_queries += sq
                    max_queries = ti.max(max_queries, q)
            _color_buffer[i, j] = acc * inv_samples * inv_samples
            _pixel_visits[i, j] += 1
            _stat_paths[None] += samples * samples
            _stat_intersect_queries[None] += queries
            _stat_shadow_queries[None] += shadow_queries
            ti.atomic_max(_stat_max_path_queries[None], max_queries)
        j += row_stride


@ti.kernel
def _render_rows_kernel(
    row_offset: ti.i32,
    row_stride: ti.i32,
    samples: ti.i32,
    width: ti.i32,
    height: ti.i32,
):
    # Not a top-level for loop: runs as a single serial task
    _render_rows(row_offset, row_stride, samples, width, height)


@ti.kernel
def _render_parallel_kernel(num_workers: ti.i32, samples: ti.i32, width: ti.i32, height: ti.i32):
    # One loop iteration per worker; the outermost loop is the parallel one
    ti.loop_config(block_dim=1)
    for worker in range(num_workers):
        _render_rows(worker, num_workers, samples, width, height)


@ti.kernel
def _trace_ray_kernel(
    ox: ti.f32,
    oy: ti.f32,
    oz: ti.f32,
    dx: ti.f32,
    dy: ti.f32,
    dz: ti.f32,
    pi: ti.i32,
    pj: ti.i32,
):
    ray = make_ray(vec3(ox, oy, oz), tm.normalize(vec3(dx, dy, dz)))
    color, q, sq = pathtrace_ray(ray, tm.ivec2(pi, pj))
    _trace_result[None] = color
    _trace_queries[None] = q
    _stat_shadow_queries[None] += sq


def partition_rows(height: int, num_workers: int) -> list[list[int]]:
    """Rows owned by each worker: worker k owns k, k + H, k + 2H, ...

    Raises:
        ValueError: If height is negative or num_workers is not positive.
    """
    if height < 0:
        raise ValueError(f"height must be non-negative, got {height}")
    if num_workers <= 0:
        raise ValueError(f"num_workers must be positive, got {num_workers}")
    return [list(range(worker, height, num_workers)) for worker in range(num_workers)]


def default_num_workers() -> int:
    """Number of workers used when none is given: one per CPU core."""
    return os.cpu_count() or 1


def _check_samples(samples: int) -> None:
    if samples <= 0:
        raise ValueError(f"samples must be positive, got {samples}")


def render_rows(row_offset: int, row_stride: int, samples: int) -> None:
    """Run the tile driver on one row set of the current render target.

    The RNG table must already be seeded (see seed_rngs).

    Args:
        row_offset: First row to render.
        row_stride: Distance between consecutive rendered rows.
        samples: Stratification count per axis; each pixel gets samples^2 paths.

    Raises:
        RuntimeError: If the render target or camera are not set up.
        ValueError: If the row set or sample count is invalid.
    """
    _check_render_target_initialized()
    _check_scene()
    _check_samples(samples)
    if row_stride <= 0:
        raise ValueError(f"row_stride must be positive, got {row_stride}")
    if row_offset < 0:
        raise ValueError(f"row_offset must be non-negative, got {row_offset}")
    width, height = get_image_dimensions()
    _render_rows_kernel(row_offset, row_stride, samples, width, height)


def render_parallel(samples: int, num_workers: int | None = None, seed: int = 0) -> None:
    """Render the whole image with one tile driver per worker.

    Seeds one RNG per pixel, then runs workers k = 0..num_workers-1 over rows
    k, k + num_workers, ... in a single parallel kernel and waits for all of
    them to finish.

    Args:
        samples: Stratification count per axis; each pixel gets samples^2 paths.
        num_workers: Number of workers. Defaults to the CPU core count.
        seed: Global RNG seed.

    Raises:
        RuntimeError: If the render target or camera are not set up.
        ValueError: If samples or num_workers is not positive.
    """
    _check_render_target_initialized()
    _check_scene()
    _check_samples(samples)
    if num_workers is None:
        num_workers = default_num_workers()
    if num_workers <= 0:
        raise ValueError(f"num_workers must be positive, got {num_workers}")

    width, height = get_image_dimensions()
    logger.info(
        "Rendering %dx%d, %d samples per pixel, %d workers",
        width,
        height,
        samples * samples,
        num_workers,
    )
    start = time.perf_counter()

    seed_rngs(width, height, seed)
    _render_parallel_kernel(num_workers, samples, width, height)
    ti.sync()

    elapsed = time.perf_counter() - start
    logger.info("Rendering done in %.3f seconds", elapsed)


def trace_ray(
    origin: tuple[float, float, float],
    direction: tuple[float, float, float],
    pixel: tuple[int, int] = (0, 0),
) -> tuple[float, float, float]:
    """Run the radiance estimator on a single ray.

    The pixel selects which RNG stream the estimator draws from; the stream
    must have been seeded.

    Returns:
        The estimated radiance (R, G, B).
    """
    _trace_ray_kernel(
        origin[0],
        origin[1],
        origin[2],
        direction[0],
        direction[1],
        direction[2],
        pixel[0],
        pixel[1],
    )
    color = _trace_result[None]
    return (float(color[0]), float(color[1]), float(color[2]))


def get_last_trace_queries() -> int:
    """Non-shadow intersection queries issued by the last trace_ray() call."""
    return int(_trace_queries[None])


def get_render_statistics() -> dict[str, int]:
    """Counters accumulated since the render target was last cleared.

    Returns:
        Dictionary with paths, intersect_queries, shadow_queries and
        max_path_queries (the most non-shadow queries on a single path).
    """
    return {
        "paths": int(_stat_paths[None]),
        "intersect_queries": int(_stat_intersect_queries[None]),
        "shadow_queries": int(_stat_shadow_queries[None]),
        "max_path_queries": int(_stat_max_path_queries[None]),
    }


def get_pixel_visits_numpy() -> np.ndarray:
    """Per-pixel tile driver visit counts as an (height, width) array.

    Row 0 of the array is image row 0 (the bottom row).
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    return np.transpose(_pixel_visits.to_numpy()[:width, :height]).copy()


def get_image_numpy() -> np.ndarray:
    """Get the rendered radiance as a NumPy array.

    Values are linear and unclamped. The array shape is (height, width, 3)
    with the top image row first.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()

    width, height = get_image_dimensions()
    full_image = _color_buffer.to_numpy()
    image = full_image[:width, :height, :]

    # Transpose from (width, height, 3) to (height, width, 3) for standard image format
    image = np.transpose(image, (1, 0, 2))

    # Flip vertically (row 0 of the buffer is the bottom of the image)
    image = np.flipud(image)

    return image.astype(np.float32)

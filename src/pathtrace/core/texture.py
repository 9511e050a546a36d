"""Texture store and bilinear texture sampler.

Textures of different sizes are packed one after another into a single flat
texel field (a linear atlas), with per-texture offset and size fields. A
texture is referenced by its integer id; ``NO_TEXTURE`` (-1) marks an absent
texture, in which case lookups pass the base value through unchanged.

Texel (i, j) addresses column i (along u) and row j (along v) with row 0 at
the bottom of the image, matching the bottom-left origin used by the render
target. Arrays are uploaded in the usual top-row-first layout and flipped.

Example:
    >>> import numpy as np
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.core.texture import add_texture, lookup_scaled_texture
    >>> checker_id = add_texture(np.random.rand(8, 8, 3).astype(np.float32))
    >>> # Inside a kernel:
    >>> # color = lookup_scaled_texture(vec3(1.0), checker_id, uv, 1)
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

vec2 = tm.vec2
vec3 = tm.vec3

# Sentinel id for "no texture bound"
NO_TEXTURE = -1

MAX_TEXTURES = 64
MAX_TEXELS = 2048 * 1024

_texels = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXELS)
_texture_offsets = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
_texture_widths = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
_texture_heights = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
num_textures = ti.field(dtype=ti.i32, shape=())
_texels_used = ti.field(dtype=ti.i32, shape=())


def clear_textures() -> None:
    """Remove all textures from the store."""
    num_textures[None] = 0
    _texels_used[None] = 0


@ti.kernel
def _upload_texels(offset: ti.i32, count: ti.i32, data: ti.types.ndarray()):
    for k in range(count):
        _texels[offset + k] = vec3(data[k, 0], data[k, 1], data[k, 2])


def add_texture(image: npt.ArrayLike) -> int:
    """Upload an image into the texture store.

    Args:
        image: Array of shape (H, W, 3) or (H, W) with the first row being
            the top of the image. Scalar textures are replicated to RGB.

    Returns:
        The texture id to store in a material or the background.

    Raises:
        ValueError: If the array has the wrong shape or a zero dimension.
        RuntimeError: If the texture or texel capacity is exceeded.
    """
    data = np.asarray(image, dtype=np.float32)
    if data.ndim == 2:
        data = np.repeat(data[:, :, np.newaxis], 3, axis=2)
    if data.ndim != 3 or data.shape[2] != 3:
        raise ValueError(f"Texture must have shape (H, W, 3) or (H, W), got {data.shape}")
    height, width = int(data.shape[0]), int(data.shape[1])
    if width == 0 or height == 0:
        raise ValueError(f"Texture dimensions must be at least 1x1, got {width}x{height}")

    idx = num_textures[None]
    if idx >= MAX_TEXTURES:
        raise RuntimeError(f"Maximum number of textures ({MAX_TEXTURES}) exceeded")
    offset = _texels_used[None]
    count = width * height
    if offset + count > MAX_TEXELS:
        raise RuntimeError(
            f"Texture of {width}x{height} texels does not fit in the texel store "
            f"({MAX_TEXELS - offset} of {MAX_TEXELS} texels free)"
        )

    # Row j of the store is row (H - 1 - j) of the image
    flat = np.ascontiguousarray(np.flipud(data).reshape(count, 3))
    _upload_texels(offset, count, flat)

    _texture_offsets[idx] = offset
    _texture_widths[idx] = width
    _texture_heights[idx] = height
    _texels_used[None] = offset + count
    num_textures[None] = idx + 1
    return idx


def get_texture_count() -> int:
    """Get the number of textures in the store."""
    return int(num_textures[None])


def get_texture_size(texture_id: int) -> tuple[int, int]:
    """Get the (width, height) of a stored texture."""
    if texture_id < 0 or texture_id >= num_textures[None]:
        raise ValueError(f"Invalid texture_id: {texture_id}")
    return int(_texture_widths[texture_id]), int(_texture_heights[texture_id])


@ti.func
def texel_at(texture_id: ti.i32, i: ti.i32, j: ti.i32) -> vec3:
    """Fetch texel (i, j) of a texture; indices must already be in range."""
    return _texels[_texture_offsets[texture_id] + j * _texture_widths[texture_id] + i]


@ti.func
def _tile_index(x: ti.i32, size: ti.i32) -> ti.i32:
    r = x % size
    if r < 0:
        r += size
    return r


@ti.func
def lookup_scaled_texture(value: vec3, texture_id: ti.i32, uv: vec2, tile: ti.i32) -> vec3:
    """Bilinearly sample a texture and scale the base value by it.

    Args:
        value: Base value returned as-is when no texture is bound.
        texture_id: The texture to sample, or NO_TEXTURE.
        uv: Normalized texture coordinates.
        tile: 1 for wrap addressing, 0 for clamp-to-edge addressing.

    Returns:
        value * bilinear(texture, uv), or value when texture_id is NO_TEXTURE.
    """
    result = value
    if texture_id >= 0:
        width = _texture_widths[texture_id]
        height = _texture_heights[texture_id]

        x = uv.x * ti.cast(width, ti.f32)
        y = uv.y * ti.cast(height, ti.f32)
        i = ti.cast(ti.floor(x), ti.i32)
        j = ti.cast(ti.floor(y), ti.i32)
        s = x - ti.cast(i, ti.f32)
        t = y - ti.cast(j, ti.f32)
        i1 = i + 1
        j1 = j + 1

        if tile:
            i = _tile_index(i, width)
            j = _tile_index(j, height)
            i1 = _tile_index(i1, width)
            j1 = _tile_index(j1, height)
        else:
            i = tm.clamp(i, 0, width - 1)
            j = tm.clamp(j, 0, height - 1)
            i1 = tm.clamp(i1, 0, width - 1)
            j1 = tm.clamp(j1, 0, height - 1)

        result = value * (
            texel_at(texture_id, i, j) * (1.0 - s) * (1.0 - t)
            + texel_at(texture_id, i, j1) * (1.0 - s) * t
            + texel_at(texture_id, i1, j) * s * (1.0 - t)
            + texel_at(texture_id, i1, j1) * s * t
        )
    return result

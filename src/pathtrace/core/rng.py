"""Per-pixel random number generator table.

Every pixel owns one 32-bit xorshift generator state stored in an
image-shaped Taichi field. States are seeded from the pixel coordinates and a
global seed through an integer hash, so streams are independent across pixels
and identical between runs with the same seed. A worker only ever advances
the states of the pixels it owns, so the table needs no synchronization.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.core.rng import seed_rngs, rng_next_float
    >>> seed_rngs(64, 64, seed=7)
    >>> @ti.kernel
    ... def draw() -> ti.f32:
    ...     return rng_next_float(ti.math.ivec2(3, 5))
"""

import taichi as ti
import taichi.math as tm

# Preallocated to the largest supported image to avoid kernel recompilation
MAX_RNG_WIDTH = 2048
MAX_RNG_HEIGHT = 2048

# 2^-24: converts the top 24 bits of a state to a float in [0, 1)
_FLOAT_SCALE = 1.0 / 16777216.0

_rng_state = ti.field(dtype=ti.u32, shape=(MAX_RNG_WIDTH, MAX_RNG_HEIGHT))


@ti.func
def _hash_u32(value: ti.u32) -> ti.u32:
    """Wang integer hash, used to decorrelate neighbouring pixel seeds."""
    x = value
    x = (x ^ ti.cast(61, ti.u32)) ^ ti.bit_shr(x, 16)
    x = x * ti.cast(9, ti.u32)
    x = x ^ ti.bit_shr(x, 4)
    x = x * ti.cast(0x27D4EB2D, ti.u32)
    x = x ^ ti.bit_shr(x, 15)
    return x


@ti.func
def _advance(pixel: tm.ivec2) -> ti.u32:
    """Advance the xorshift32 state of a pixel and return the new state."""
    x = _rng_state[pixel.x, pixel.y]
    x = x ^ (x << 13)
    x = x ^ ti.bit_shr(x, 17)
    x = x ^ (x << 5)
    _rng_state[pixel.x, pixel.y] = x
    return x


@ti.func
def rng_next_float(pixel: tm.ivec2) -> ti.f32:
    """Draw the next uniform float in [0, 1) from a pixel's stream."""
    return ti.cast(ti.bit_shr(_advance(pixel), 8), ti.f32) * _FLOAT_SCALE


@ti.func
def rng_next_vec2f(pixel: tm.ivec2) -> tm.vec2:
    """Draw the next pair of uniform floats in [0, 1) from a pixel's stream."""
    a = rng_next_float(pixel)
    b = rng_next_float(pixel)
    return tm.vec2(a, b)


@ti.kernel
def _seed_kernel(width: ti.i32, height: ti.i32, seed: ti.i32):
    for i, j in ti.ndrange(width, height):
        key = ti.cast(j * MAX_RNG_WIDTH + i, ti.u32)
        state = _hash_u32(key ^ _hash_u32(ti.cast(seed, ti.u32)))
        # xorshift has a fixed point at zero
        if state == 0:
            state = ti.cast(1, ti.u32)
        _rng_state[i, j] = state


def seed_rngs(width: int, height: int, seed: int = 0) -> None:
    """Seed one generator per pixel for an image of the given size.

    Args:
        width: Image width in pixels (max MAX_RNG_WIDTH).
        height: Image height in pixels (max MAX_RNG_HEIGHT).
        seed: Global seed. The same seed reproduces the same streams.

    Raises:
        ValueError: If the size is not positive or exceeds the table size.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if width > MAX_RNG_WIDTH or height > MAX_RNG_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_RNG_WIDTH}x{MAX_RNG_HEIGHT})"
        )
    # Kernel arguments are signed 32-bit; the hash only needs the low bits
    _seed_kernel(width, height, int(seed) & 0x7FFFFFFF)


def get_rng_state(i: int, j: int) -> int:
    """Read the raw generator state of a pixel (for debugging and tests)."""
    return int(_rng_state[i, j])

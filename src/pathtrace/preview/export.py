"""Image import and export utilities.

Rendered radiance is linear and unbounded. For 8-bit output it is clamped to
[0, 1] and gamma encoded (2.2 by default, approximately sRGB), then written
through Pillow in whatever format the file extension selects.

Texture images are read back the other way: 8-bit files become float arrays
in [0, 1], optionally gamma decoded, ready for add_texture().

Example:
    >>> from src.pathtrace.preview.export import save_png_from_array
    >>> from src.pathtrace.core.integrator import get_image_numpy
    >>> save_png_from_array(get_image_numpy(), "output.png", gamma=2.2)
"""

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage


def apply_gamma(
    image: npt.NDArray[np.float32],
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Clamp to [0, 1] and apply gamma encoding: out = in^(1/gamma).

    Args:
        image: Linear image array of shape (H, W, 3).
        gamma: Gamma value (default 2.2 for sRGB). Must be positive.

    Returns:
        Gamma corrected image in [0, 1].

    Raises:
        ValueError: If gamma is not positive.
    """
    if gamma <= 0.0:
        raise ValueError(f"gamma must be positive, got {gamma}")

    # Clamp before the power to avoid NaN from negative values
    image = np.clip(image, 0.0, 1.0)
    if gamma == 1.0:
        return image.astype(np.float32)

    return np.power(image, 1.0 / gamma).astype(np.float32)


def image_to_uint8(
    image: npt.NDArray[np.float32],
    *,
    gamma: float = 2.2,
) -> npt.NDArray[np.uint8]:
    """Convert a linear float image to gamma encoded uint8.

    Args:
        image: Linear image array of shape (H, W, 3).
        gamma: Gamma correction value (default 2.2 for sRGB).

    Returns:
        8-bit image array of shape (H, W, 3).
    """
    processed = apply_gamma(image, gamma)
    return np.round(processed * 255.0).astype(np.uint8)


def save_png_from_array(
    image: npt.NDArray[np.float32],
    filepath: str,
    *,
    gamma: float = 2.2,
) -> None:
    """Save a linear float image as an 8-bit file.

    Args:
        image: Linear image array of shape (H, W, 3), top row first.
        filepath: Output file path; the extension selects the format.
        gamma: Gamma correction value (default 2.2 for sRGB).

    Raises:
        ValueError: If the array is not (H, W, 3).
    """
    image = np.asarray(image)
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected an (H, W, 3) image, got shape {image.shape}")

    pil_image = PILImage.fromarray(image_to_uint8(image, gamma=gamma))
    pil_image.save(filepath)


def load_image_as_float(filepath: str, *, gamma: float = 1.0) -> npt.NDArray[np.float32]:
    """Load an image file as a float RGB array in [0, 1].

    Args:
        filepath: Image file readable by Pillow.
        gamma: Decoding gamma; 2.2 converts sRGB-like files to linear.

    Returns:
        Array of shape (H, W, 3), top row first.
    """
    with PILImage.open(filepath) as pil_image:
        data = np.asarray(pil_image.convert("RGB"), dtype=np.float32) / 255.0
    if gamma != 1.0:
        data = np.power(data, gamma)
    return data.astype(np.float32)


def compute_rmse(
    image_a: npt.NDArray[np.floating],
    image_b: npt.NDArray[np.floating],
) -> float:
    """Compute root mean squared error between two images.

    Raises:
        ValueError: If image shapes don't match.
    """
    if image_a.shape != image_b.shape:
        raise ValueError(f"Image shapes must match: {image_a.shape} vs {image_b.shape}")

    diff = image_a.astype(np.float64) - image_b.astype(np.float64)
    return float(np.sqrt(np.mean(diff**2)))

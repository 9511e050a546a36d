"""Preview module: image import and export through Pillow."""

from src.pathtrace.preview.export import (
    apply_gamma,
    compute_rmse,
    image_to_uint8,
    load_image_as_float,
    save_png_from_array,
)

__all__ = [
    "apply_gamma",
    "image_to_uint8",
    "save_png_from_array",
    "load_image_as_float",
    "compute_rmse",
]

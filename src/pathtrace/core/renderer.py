"""Renderer facade tying the render target, RNG table and dispatcher together.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.core.renderer import Renderer, RenderSettings
    >>> from src.pathtrace.scene.cornell_box import create_cornell_box_scene
    >>> from src.pathtrace.camera.pinhole import setup_camera
    >>>
    >>> scene, camera = create_cornell_box_scene()
    >>> setup_camera(camera)
    >>>
    >>> renderer = Renderer(RenderSettings(width=256, height=256, samples=4))
    >>> elapsed = renderer.render()
    >>> renderer.save_image("cornell.png")
"""

import logging
import time
from dataclasses import dataclass

import numpy as np

from src.pathtrace.core.integrator import (
    MAX_IMAGE_HEIGHT,
    MAX_IMAGE_WIDTH,
    default_num_workers,
    get_image_numpy,
    get_render_statistics,
    render_parallel,
    setup_render_target,
)
from src.pathtrace.preview.export import apply_gamma, save_png_from_array
from src.pathtrace.scene.world import set_path_options

logger = logging.getLogger(__name__)


@dataclass
class RenderSettings:
    """Image and path settings of a render.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        samples: Stratification count per axis; each pixel averages
            samples * samples paths.
        path_max_depth: Maximum number of indirect bounces.
        path_shadows: Whether shadow rays are traced.
        seed: Global seed of the per-pixel RNG table.
        num_workers: Row-stride workers; None uses one per CPU core.
    """

    width: int = 512
    height: int = 512
    samples: int = 4
    path_max_depth: int = 3
    path_shadows: bool = True
    seed: int = 0
    num_workers: int | None = None

    def validate(self) -> None:
        """Raise ValueError if any setting is out of range."""
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Image size must be positive, got {self.width}x{self.height}")
        if self.width > MAX_IMAGE_WIDTH or self.height > MAX_IMAGE_HEIGHT:
            raise ValueError(
                f"Image size {self.width}x{self.height} exceeds maximum "
                f"{MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT}"
            )
        if self.samples <= 0:
            raise ValueError(f"samples must be positive, got {self.samples}")
        if self.path_max_depth < 0:
            raise ValueError(f"path_max_depth must be non-negative, got {self.path_max_depth}")
        if self.num_workers is not None and self.num_workers <= 0:
            raise ValueError(f"num_workers must be positive, got {self.num_workers}")


class Renderer:
    """Renders the current scene into the global render target.

    The scene (surfaces, materials, lights, world settings) and the camera
    are configured separately; the renderer owns the image settings and
    pushes the path settings into the world before each render.
    """

    def __init__(self, settings: RenderSettings | None = None) -> None:
        """Initialize the renderer.

        Args:
            settings: Render settings; defaults to RenderSettings().

        Raises:
            ValueError: If the settings are invalid.
        """
        self._settings = settings if settings is not None else RenderSettings()
        self._settings.validate()
        self._last_elapsed: float | None = None
        setup_render_target(self._settings.width, self._settings.height)

    @property
    def settings(self) -> RenderSettings:
        return self._settings

    @property
    def width(self) -> int:
        return self._settings.width

    @property
    def height(self) -> int:
        return self._settings.height

    @property
    def num_workers(self) -> int:
        """Number of workers the next render will use."""
        if self._settings.num_workers is None:
            return default_num_workers()
        return self._settings.num_workers

    @property
    def last_elapsed(self) -> float | None:
        """Wall-clock seconds taken by the last render, or None."""
        return self._last_elapsed

    def resize(self, width: int, height: int) -> None:
        """Change the image size and clear the render target.

        Raises:
            ValueError: If the size is invalid.
        """
        self._settings.width = width
        self._settings.height = height
        self._settings.validate()
        setup_render_target(width, height)

    def render(self) -> float:
        """Render the full image.

        Returns:
            Elapsed wall-clock time in seconds.

        Raises:
            RuntimeError: If the camera is not set up.
            ValueError: If the scene refers to missing materials.
        """
        settings = self._settings
        set_path_options(max_depth=settings.path_max_depth, shadows=settings.path_shadows)
        setup_render_target(settings.width, settings.height)

        start = time.perf_counter()
        render_parallel(settings.samples, num_workers=self.num_workers, seed=settings.seed)
        self._last_elapsed = time.perf_counter() - start

        logger.debug("Render statistics: %s", get_render_statistics())
        return self._last_elapsed

    def get_image_numpy(self, gamma: float | None = None) -> np.ndarray:
        """Get the rendered image as a (height, width, 3) float32 array.

        Args:
            gamma: If given, clamp to [0, 1] and apply 1/gamma correction.
                Otherwise return linear, unclamped radiance.
        """
        image = get_image_numpy()
        if gamma is not None:
            image = apply_gamma(image, gamma)
        return image

    def save_image(self, filepath: str, gamma: float = 2.2) -> None:
        """Save the rendered image as an 8-bit image (format from extension)."""
        save_png_from_array(get_image_numpy(), filepath, gamma=gamma)
        logger.info("Saved %dx%d image to %s", self.width, self.height, filepath)

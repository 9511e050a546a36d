"""Pytest configuration for path tracer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Clear every scene registry before and after each test.

    This ensures tests are isolated from each other.
    """
    # Import here so that Taichi is initialized before fields are created
    from src.pathtrace.camera.pinhole import reset_camera
    from src.pathtrace.core.integrator import reset_render_statistics
    from src.pathtrace.core.texture import clear_textures
    from src.pathtrace.materials.material import clear_materials
    from src.pathtrace.scene.intersection import clear_scene
    from src.pathtrace.scene.lights import clear_point_lights
    from src.pathtrace.scene.world import reset_world

    def _clear_all():
        clear_scene()
        clear_materials()
        clear_textures()
        clear_point_lights()
        reset_world()
        reset_camera()
        reset_render_statistics()

    _clear_all()

    yield

    _clear_all()

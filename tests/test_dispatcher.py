"""Unit tests for the tile driver and the parallel row dispatcher.

Tests cover:
- Row partitioning across workers (complete and disjoint)
- Every pixel rendered exactly once by a parallel render
- A single tile driver touching only its own rows
- Identical images regardless of the worker count
- Seeding and statistics
"""

import numpy as np
import pytest


def _small_scene(width=12, height=10):
    """A lit diffuse floor seen from above, on a width x height target.

    Safe to call repeatedly within one test: the registries are cleared first.
    """
    from src.pathtrace.camera.pinhole import PinholeCamera, setup_camera
    from src.pathtrace.core.integrator import setup_render_target
    from src.pathtrace.materials.material import add_material, clear_materials
    from src.pathtrace.scene.intersection import add_surface, build_frame, clear_scene
    from src.pathtrace.scene.lights import add_point_light, clear_point_lights
    from src.pathtrace.scene.world import set_path_options

    clear_scene()
    clear_materials()
    clear_point_lights()
    floor = add_material(kd=(0.6, 0.6, 0.6))
    ball = add_material(kd=(0.2, 0.3, 0.8), ks=(0.3, 0.3, 0.3), n=40.0)
    add_surface(build_frame((0.0, 0.0, 0.0), normal=(0.0, 1.0, 0.0)), 5.0, True, floor)
    add_surface(build_frame((0.0, 0.5, 0.0)), 0.5, False, ball)
    add_point_light((1.0, 3.0, 1.0), (10.0, 10.0, 10.0))
    set_path_options(max_depth=2)

    setup_camera(
        PinholeCamera(
            lookfrom=(0.0, 2.0, 4.0),
            lookat=(0.0, 0.3, 0.0),
            vup=(0.0, 1.0, 0.0),
            vfov=45.0,
            aspect_ratio=width / height,
        )
    )
    setup_render_target(width, height)


class TestPartitionRows:
    """Tests for partition_rows."""

    @pytest.mark.parametrize(
        "height,num_workers",
        [(10, 1), (10, 3), (10, 10), (7, 16), (512, 8), (513, 8)],
    )
    def test_partition_is_complete_and_disjoint(self, height, num_workers):
        from src.pathtrace.core.integrator import partition_rows

        parts = partition_rows(height, num_workers)
        assert len(parts) == num_workers
        all_rows = [row for part in parts for row in part]
        assert sorted(all_rows) == list(range(height))

    def test_worker_rows_are_strided(self):
        from src.pathtrace.core.integrator import partition_rows

        parts = partition_rows(10, 3)
        assert parts == [[0, 3, 6, 9], [1, 4, 7], [2, 5, 8]]

    def test_more_workers_than_rows(self):
        from src.pathtrace.core.integrator import partition_rows

        parts = partition_rows(2, 4)
        assert parts == [[0], [1], [], []]

    def test_invalid_arguments(self):
        from src.pathtrace.core.integrator import partition_rows

        with pytest.raises(ValueError, match="num_workers"):
            partition_rows(10, 0)
        with pytest.raises(ValueError, match="height"):
            partition_rows(-1, 2)

    def test_default_num_workers_is_positive(self):
        from src.pathtrace.core.integrator import default_num_workers

        assert default_num_workers() >= 1


class TestTileDriver:
    """Tests for render_rows."""

    def test_render_rows_touches_only_its_rows(self):
        from src.pathtrace.core.integrator import get_pixel_visits_numpy, render_rows
        from src.pathtrace.core.rng import seed_rngs

        _small_scene(width=8, height=9)
        seed_rngs(8, 9, seed=1)
        render_rows(row_offset=1, row_stride=3, samples=1)

        visits = get_pixel_visits_numpy()
        assert visits.shape == (9, 8)
        for row in range(9):
            expected = 1 if row in (1, 4, 7) else 0
            assert (visits[row] == expected).all()

    def test_render_rows_beyond_height_does_nothing(self):
        from src.pathtrace.core.integrator import get_pixel_visits_numpy, render_rows
        from src.pathtrace.core.rng import seed_rngs

        _small_scene(width=4, height=4)
        seed_rngs(4, 4)
        render_rows(row_offset=10, row_stride=1, samples=1)
        assert get_pixel_visits_numpy().sum() == 0

    def test_invalid_row_set(self):
        from src.pathtrace.core.integrator import render_rows

        _small_scene(width=4, height=4)
        with pytest.raises(ValueError, match="row_stride"):
            render_rows(row_offset=0, row_stride=0, samples=1)
        with pytest.raises(ValueError, match="row_offset"):
            render_rows(row_offset=-1, row_stride=1, samples=1)

    def test_drivers_together_match_parallel_render(self):
        """Running each worker's driver in turn reproduces render_parallel."""
        from src.pathtrace.core.integrator import get_image_numpy, render_parallel, render_rows
        from src.pathtrace.core.rng import seed_rngs

        _small_scene(width=6, height=5)
        render_parallel(samples=2, num_workers=2, seed=9)
        parallel = get_image_numpy()

        seed_rngs(6, 5, seed=9)
        for worker in range(3):
            render_rows(row_offset=worker, row_stride=3, samples=2)
        sequential = get_image_numpy()

        np.testing.assert_allclose(parallel, sequential, rtol=1e-5, atol=1e-6)


class TestParallelDispatch:
    """Tests for render_parallel."""

    @pytest.mark.parametrize("num_workers", [1, 3, 10, 16])
    def test_every_pixel_rendered_exactly_once(self, num_workers):
        from src.pathtrace.core.integrator import get_pixel_visits_numpy, render_parallel

        _small_scene(width=12, height=10)
        render_parallel(samples=1, num_workers=num_workers)
        visits = get_pixel_visits_numpy()
        assert (visits == 1).all()

    def test_image_independent_of_worker_count(self):
        from src.pathtrace.core.integrator import get_image_numpy, render_parallel

        _small_scene(width=12, height=10)
        render_parallel(samples=2, num_workers=1, seed=4)
        single = get_image_numpy()

        for num_workers in (2, 7):
            _small_scene(width=12, height=10)
            render_parallel(samples=2, num_workers=num_workers, seed=4)
            np.testing.assert_array_equal(get_image_numpy(), single)

    def test_seed_changes_the_image(self):
        from src.pathtrace.core.integrator import get_image_numpy, render_parallel

        _small_scene(width=12, height=10)
        render_parallel(samples=1, num_workers=2, seed=0)
        first = get_image_numpy()

        _small_scene(width=12, height=10)
        render_parallel(samples=1, num_workers=2, seed=1)
        assert not np.array_equal(get_image_numpy(), first)

    def test_statistics_count_every_path(self):
        from src.pathtrace.core.integrator import get_render_statistics, render_parallel

        _small_scene(width=12, height=10)
        render_parallel(samples=3, num_workers=4)
        stats = get_render_statistics()
        assert stats["paths"] == 12 * 10 * 9
        assert stats["intersect_queries"] >= stats["paths"]
        assert stats["max_path_queries"] <= 3

    def test_image_orientation(self):
        """The floor fills the bottom of the frame and the sky the top."""
        from src.pathtrace.core.integrator import get_image_numpy, render_parallel
        from src.pathtrace.scene.world import set_background, set_path_options

        _small_scene(width=12, height=10)
        set_background((0.0, 0.0, 5.0))
        set_path_options(max_depth=0)
        render_parallel(samples=1, num_workers=2)
        image = get_image_numpy()
        # Top row (first in the array) looks past the floor into the blue sky
        assert image[0, :, 2].mean() > image[-1, :, 2].mean()

    def test_invalid_worker_count(self):
        from src.pathtrace.core.integrator import render_parallel

        _small_scene(width=4, height=4)
        with pytest.raises(ValueError, match="num_workers"):
            render_parallel(samples=1, num_workers=0)

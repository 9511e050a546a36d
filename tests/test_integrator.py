"""Unit tests for the path tracing radiance estimator.

Tests cover:
- Misses return the environment
- Exact local terms: ambient, emission, point lights, environment sampling
- Emission is counted only for surfaces seen directly
- Shadow rays on and off
- Path depth bound
- Random numbers drawn per path
- Render target and scene validation
- Finite, non-negative output for a full scene
"""

import math

import numpy as np
import pytest
import taichi as ti


def _floor(kd=(0.5, 0.5, 0.5), ke=(0.0, 0.0, 0.0), radius=10.0, y=0.0, **material):
    """Add an upward-facing square at height y and return its material id."""
    from src.pathtrace.materials.material import add_material
    from src.pathtrace.scene.intersection import add_surface, build_frame

    mat = add_material(kd=kd, ke=ke, **material)
    add_surface(build_frame((0.0, y, 0.0), normal=(0.0, 1.0, 0.0)), radius, True, mat)
    return mat


def _trace_down(pixel=(0, 0)):
    """Trace a ray straight down onto the floor from one unit above it."""
    from src.pathtrace.core.integrator import trace_ray

    return trace_ray((0.0, 1.0, 0.0), (0.0, -1.0, 0.0), pixel)


@pytest.fixture
def seeded():
    from src.pathtrace.core.rng import seed_rngs

    seed_rngs(16, 16, seed=0)


class TestMissAndLocalTerms:
    """Tests for single-path estimates with exact expected values."""

    def test_miss_returns_background(self, seeded):
        from src.pathtrace.core.integrator import get_last_trace_queries, trace_ray
        from src.pathtrace.scene.world import set_background

        set_background((0.2, 0.3, 0.4))
        color = trace_ray((0.0, 0.0, 0.0), (0.0, 0.0, -1.0))
        assert color == pytest.approx((0.2, 0.3, 0.4))
        assert get_last_trace_queries() == 1

    def test_ambient_times_kd(self, seeded):
        from src.pathtrace.scene.world import set_ambient, set_path_options

        _floor(kd=(0.5, 0.25, 1.0))
        set_ambient((1.0, 2.0, 0.5))
        set_path_options(max_depth=0)
        assert _trace_down() == pytest.approx((0.5, 0.5, 0.5))

    def test_emission_seen_directly(self, seeded):
        from src.pathtrace.scene.world import set_path_options

        _floor(kd=(0.0, 0.0, 0.0), ke=(2.0, 3.0, 4.0))
        set_path_options(max_depth=3)
        assert _trace_down() == pytest.approx((2.0, 3.0, 4.0))

    def test_emission_texture(self, seeded):
        from src.pathtrace.core.texture import add_texture
        from src.pathtrace.scene.world import set_path_options

        tid = add_texture(np.full((2, 2, 3), 0.25, dtype=np.float32))
        _floor(kd=(0.0, 0.0, 0.0), ke=(4.0, 4.0, 4.0), ke_txt=tid)
        set_path_options(max_depth=0)
        assert _trace_down() == pytest.approx((1.0, 1.0, 1.0))

    def test_point_light_lambertian(self, seeded):
        """I / d^2 * kd / pi * cos for a light straight above the hit."""
        from src.pathtrace.scene.lights import add_point_light
        from src.pathtrace.scene.world import set_path_options

        _floor(kd=(1.0, 0.5, 0.25))
        add_point_light((0.0, 2.0, 0.0), (math.pi, math.pi, math.pi))
        set_path_options(max_depth=0)
        assert _trace_down() == pytest.approx((0.25, 0.125, 0.0625), rel=1e-5)

    def test_point_light_below_surface_contributes_nothing(self, seeded):
        from src.pathtrace.scene.lights import add_point_light
        from src.pathtrace.scene.world import set_path_options

        _floor()
        add_point_light((0.0, -2.0, 0.0), (10.0, 10.0, 10.0))
        set_path_options(max_depth=0)
        assert _trace_down() == (0.0, 0.0, 0.0)

    def test_environment_sampling_lambertian(self, seeded):
        """Cosine sampling a diffuse floor under a constant sky gives kd * sky."""
        from src.pathtrace.core.texture import add_texture
        from src.pathtrace.scene.world import set_background, set_path_options

        tid = add_texture(np.full((4, 8, 3), 0.8, dtype=np.float32))
        set_background((1.0, 1.0, 1.0), tid)
        _floor(kd=(0.5, 0.5, 0.5))
        set_path_options(max_depth=0)
        for k in range(4):
            assert _trace_down(pixel=(k, 0)) == pytest.approx((0.4, 0.4, 0.4), rel=1e-4)

    def test_normal_map_is_renormalized(self, seeded):
        """A uniform normal map scales the normal; renormalizing restores it."""
        from src.pathtrace.core.texture import add_texture
        from src.pathtrace.scene.lights import add_point_light
        from src.pathtrace.scene.world import set_path_options

        tid = add_texture(np.full((2, 2, 3), 0.5, dtype=np.float32))
        _floor(kd=(1.0, 0.5, 0.25), norm_txt=tid)
        add_point_light((0.0, 2.0, 0.0), (math.pi, math.pi, math.pi))
        set_path_options(max_depth=0)
        assert _trace_down() == pytest.approx((0.25, 0.125, 0.0625), rel=1e-5)


class TestShadows:
    """Tests for shadow rays."""

    def _setup_blocked_light(self):
        from src.pathtrace.materials.material import add_material
        from src.pathtrace.scene.intersection import add_surface, build_frame
        from src.pathtrace.scene.lights import add_point_light
        from src.pathtrace.scene.world import set_path_options

        _floor(kd=(1.0, 1.0, 1.0))
        blocker = add_material(kd=(0.0, 0.0, 0.0))
        add_surface(build_frame((0.0, 2.0, 0.0)), 0.5, False, blocker)
        add_point_light((0.0, 4.0, 0.0), (math.pi, math.pi, math.pi))
        set_path_options(max_depth=0)

    def test_blocked_light_casts_shadow(self, seeded):
        from src.pathtrace.core.integrator import trace_ray

        self._setup_blocked_light()
        # Start below the blocker so the primary ray hits the floor
        assert trace_ray((0.0, 1.0, 0.0), (0.0, -1.0, 0.0)) == (0.0, 0.0, 0.0)

    def test_shadows_disabled_ignores_blocker(self, seeded):
        from src.pathtrace.core.integrator import trace_ray
        from src.pathtrace.scene.world import set_path_options

        self._setup_blocked_light()
        set_path_options(shadows=False)
        color = trace_ray((0.0, 1.0, 0.0), (0.0, -1.0, 0.0))
        assert color == pytest.approx((1.0 / 16.0,) * 3, rel=1e-5)

    def test_shadow_queries_are_counted(self, seeded):
        from src.pathtrace.core.integrator import get_render_statistics, trace_ray
        from src.pathtrace.scene.world import set_path_options

        self._setup_blocked_light()
        trace_ray((0.0, 1.0, 0.0), (0.0, -1.0, 0.0))
        assert get_render_statistics()["shadow_queries"] == 1

        set_path_options(shadows=False)
        trace_ray((0.0, 1.0, 0.0), (0.0, -1.0, 0.0))
        assert get_render_statistics()["shadow_queries"] == 1


class TestPathDepth:
    """Tests for the maximum path depth."""

    @pytest.mark.parametrize("max_depth", [0, 1, 2, 5])
    def test_closed_scene_path_length(self, seeded, max_depth):
        """Inside a closed diffuse sphere every bounce hits; queries = depth + 1."""
        from src.pathtrace.core.integrator import get_last_trace_queries, trace_ray
        from src.pathtrace.materials.material import add_material
        from src.pathtrace.scene.intersection import add_surface, build_frame
        from src.pathtrace.scene.world import set_path_options

        mat = add_material(kd=(0.5, 0.5, 0.5))
        add_surface(build_frame((0.0, 0.0, 0.0)), 5.0, False, mat)
        set_path_options(max_depth=max_depth)

        for k in range(4):
            trace_ray((0.0, 0.0, 0.0), (0.3, -0.2, 1.0), pixel=(k, 1))
            assert get_last_trace_queries() == max_depth + 1

    def test_emission_only_counted_directly(self):
        """Area light under NEE: an indirect hit on the light adds nothing more.

        A diffuse floor under a 6x6 emitter one unit above receives kd * Le * F
        with F ~ 0.917 the form factor from the floor center to the emitter.
        Counting emission again on indirect hits would nearly double it.
        """
        from src.pathtrace.camera.pinhole import PinholeCamera, setup_camera
        from src.pathtrace.core.integrator import (
            get_image_numpy,
            render_parallel,
            setup_render_target,
        )
        from src.pathtrace.materials.material import add_material
        from src.pathtrace.scene.intersection import add_surface, build_frame
        from src.pathtrace.scene.world import set_path_options

        _floor(kd=(0.5, 0.5, 0.5), radius=3.0)
        light = add_material(kd=(0.0, 0.0, 0.0), ke=(1.0, 1.0, 1.0))
        add_surface(build_frame((0.0, 1.0, 0.0), normal=(0.0, -1.0, 0.0)), 3.0, True, light)
        set_path_options(max_depth=3)

        setup_camera(
            PinholeCamera(
                lookfrom=(0.0, 0.5, 0.0),
                lookat=(0.0, 0.0, 0.0),
                vup=(0.0, 0.0, -1.0),
                vfov=20.0,
                aspect_ratio=1.0,
            )
        )
        setup_render_target(16, 16)
        render_parallel(samples=4, num_workers=4, seed=3)
        mean = float(get_image_numpy().mean())
        assert 0.40 < mean < 0.52


class TestRandomStreamUsage:
    """Tests for how many numbers one path draws from its pixel stream."""

    @staticmethod
    def _state_after_draws(count, pixel=(0, 0), seed=0):
        """Pixel state after seeding and drawing `count` floats directly."""
        from src.pathtrace.core.rng import get_rng_state, rng_next_float, seed_rngs

        seed_rngs(16, 16, seed=seed)
        sink = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def draw_kernel(n: ti.i32, i: ti.i32, j: ti.i32):
            ti.loop_config(serialize=True)
            for k in range(n):
                sink[None] = rng_next_float(ti.math.ivec2(i, j))

        draw_kernel(count, pixel[0], pixel[1])
        return get_rng_state(*pixel)

    def _state_after_trace(self, pixel=(0, 0), seed=0):
        from src.pathtrace.core.rng import get_rng_state, seed_rngs

        seed_rngs(16, 16, seed=seed)
        _trace_down(pixel)
        return get_rng_state(*pixel)

    def test_zero_depth_draws_nothing(self):
        from src.pathtrace.scene.world import set_path_options

        _floor(kd=(0.5, 0.5, 0.5))
        set_path_options(max_depth=0)
        assert self._state_after_trace() == self._state_after_draws(0)

    def test_path_stops_after_zero_weight_bounce(self):
        """A black surface draws one BRDF sample (vec2 + lobe float), then the path ends."""
        from src.pathtrace.core.integrator import get_last_trace_queries
        from src.pathtrace.scene.world import set_path_options

        _floor(kd=(0.0, 0.0, 0.0))
        set_path_options(max_depth=3)
        assert self._state_after_trace(pixel=(2, 3)) == self._state_after_draws(3, pixel=(2, 3))
        assert get_last_trace_queries() == 1

    def test_bounce_draws_three_numbers_per_depth(self):
        """Inside a closed diffuse sphere each of the max_depth bounces draws vec2 + float."""
        from src.pathtrace.materials.material import add_material
        from src.pathtrace.scene.intersection import add_surface, build_frame
        from src.pathtrace.scene.world import set_path_options

        mat = add_material(kd=(0.5, 0.5, 0.5))
        add_surface(build_frame((0.0, 0.0, 0.0)), 5.0, False, mat)
        set_path_options(max_depth=2)
        assert self._state_after_trace(pixel=(1, 1)) == self._state_after_draws(6, pixel=(1, 1))


class TestRenderValidation:
    """Tests for render preconditions."""

    def _camera(self):
        from src.pathtrace.camera.pinhole import PinholeCamera, setup_camera

        setup_camera(
            PinholeCamera(
                lookfrom=(0.0, 0.0, 3.0),
                lookat=(0.0, 0.0, 0.0),
                vup=(0.0, 1.0, 0.0),
                vfov=40.0,
                aspect_ratio=1.0,
            )
        )

    def test_render_without_target_raises(self):
        from src.pathtrace.core import integrator

        self._camera()
        integrator._render_target_initialized[None] = 0
        with pytest.raises(RuntimeError, match="Render target not set up"):
            integrator.render_parallel(samples=1)

    def test_render_without_camera_raises(self):
        from src.pathtrace.core.integrator import render_parallel, setup_render_target

        setup_render_target(4, 4)
        with pytest.raises(RuntimeError, match="Camera not set up"):
            render_parallel(samples=1)

    def test_surface_with_unknown_material_raises(self):
        from src.pathtrace.core.integrator import render_parallel, setup_render_target
        from src.pathtrace.scene.intersection import add_surface, build_frame

        self._camera()
        setup_render_target(4, 4)
        add_surface(build_frame((0.0, 0.0, 0.0)), 1.0, False, material_id=5)
        with pytest.raises(ValueError, match="refers to material 5"):
            render_parallel(samples=1)

    @pytest.mark.parametrize("width,height", [(0, 4), (4, -1), (5000, 4)])
    def test_invalid_render_target(self, width, height):
        from src.pathtrace.core.integrator import setup_render_target

        with pytest.raises(ValueError):
            setup_render_target(width, height)

    def test_invalid_samples(self):
        from src.pathtrace.core.integrator import render_parallel, setup_render_target

        self._camera()
        setup_render_target(4, 4)
        with pytest.raises(ValueError, match="samples must be positive"):
            render_parallel(samples=0)


class TestFullScene:
    """Tests rendering the Cornell box."""

    @pytest.mark.parametrize("microfacet", [False, True])
    def test_cornell_box_output_is_finite(self, microfacet):
        from src.pathtrace.core.integrator import (
            get_image_numpy,
            get_render_statistics,
            render_parallel,
            setup_render_target,
        )
        from src.pathtrace.scene.cornell_box import CornellBoxParams, create_cornell_box_scene
        from src.pathtrace.scene.world import set_path_options

        create_cornell_box_scene(CornellBoxParams(glossy_microfacet=microfacet))
        set_path_options(max_depth=3)
        setup_render_target(16, 16)
        render_parallel(samples=2, num_workers=3)

        image = get_image_numpy()
        assert image.shape == (16, 16, 3)
        assert np.isfinite(image).all()
        assert (image >= 0.0).all()
        assert image.mean() > 0.0

        stats = get_render_statistics()
        assert stats["paths"] == 16 * 16 * 4
        assert 1 <= stats["max_path_queries"] <= 4
        assert stats["intersect_queries"] >= stats["paths"]

"""Unit tests for the Renderer facade and the render_scene command.

Tests cover:
- RenderSettings validation
- Rendering the Cornell box end to end
- Gamma-corrected image access and file output
- Resizing the render target
- Command-line argument handling
"""

import json

import numpy as np
import pytest


class TestRenderSettings:
    """Tests for RenderSettings.validate."""

    def test_defaults_are_valid(self):
        from src.pathtrace.core.renderer import RenderSettings

        RenderSettings().validate()

    @pytest.mark.parametrize(
        "overrides,match",
        [
            ({"width": 0}, "Image size must be positive"),
            ({"height": -4}, "Image size must be positive"),
            ({"width": 100000}, "exceeds maximum"),
            ({"samples": 0}, "samples"),
            ({"path_max_depth": -1}, "path_max_depth"),
            ({"num_workers": 0}, "num_workers"),
        ],
    )
    def test_invalid_settings(self, overrides, match):
        from src.pathtrace.core.renderer import RenderSettings

        with pytest.raises(ValueError, match=match):
            RenderSettings(**overrides).validate()


class TestRenderer:
    """Tests for Renderer."""

    def _renderer(self, **settings):
        from src.pathtrace.core.renderer import Renderer, RenderSettings
        from src.pathtrace.scene.cornell_box import create_cornell_box_scene

        create_cornell_box_scene()
        params = dict(width=16, height=12, samples=1, path_max_depth=1, num_workers=3)
        params.update(settings)
        return Renderer(RenderSettings(**params))

    def test_render_returns_elapsed_time(self):
        renderer = self._renderer()
        assert renderer.last_elapsed is None
        elapsed = renderer.render()
        assert elapsed >= 0.0
        assert renderer.last_elapsed == elapsed

    def test_image_shape_and_content(self):
        renderer = self._renderer()
        renderer.render()
        image = renderer.get_image_numpy()
        assert image.shape == (12, 16, 3)
        assert np.isfinite(image).all()
        assert (image >= 0.0).all()
        assert image.max() > 0.0

    def test_gamma_image_is_clamped(self):
        renderer = self._renderer()
        renderer.render()
        image = renderer.get_image_numpy(gamma=2.2)
        assert image.min() >= 0.0
        assert image.max() <= 1.0

    def test_render_applies_path_settings(self):
        from src.pathtrace.scene.world import get_world_info

        renderer = self._renderer(path_max_depth=5, path_shadows=False)
        renderer.render()
        info = get_world_info()
        assert info["path_max_depth"] == 5
        assert info["path_shadows"] is False

    def test_render_is_reproducible(self):
        renderer = self._renderer(seed=3)
        renderer.render()
        first = renderer.get_image_numpy().copy()
        renderer.render()
        np.testing.assert_array_equal(renderer.get_image_numpy(), first)

    def test_save_image(self, tmp_path):
        from PIL import Image

        renderer = self._renderer()
        renderer.render()
        path = tmp_path / "box.png"
        renderer.save_image(str(path))
        with Image.open(path) as saved:
            assert saved.size == (16, 12)

    def test_resize(self):
        from src.pathtrace.core.integrator import get_image_dimensions

        renderer = self._renderer()
        renderer.resize(8, 4)
        assert (renderer.width, renderer.height) == (8, 4)
        assert get_image_dimensions() == (8, 4)
        renderer.render()
        assert renderer.get_image_numpy().shape == (4, 8, 3)

    def test_resize_rejects_invalid_size(self):
        renderer = self._renderer()
        with pytest.raises(ValueError, match="Image size"):
            renderer.resize(0, 4)

    def test_num_workers_default(self):
        renderer = self._renderer(num_workers=None)
        assert renderer.num_workers >= 1

    def test_render_without_camera(self):
        from src.pathtrace.camera.pinhole import reset_camera

        renderer = self._renderer()
        reset_camera()
        with pytest.raises(RuntimeError, match="[Cc]amera"):
            renderer.render()


class TestRenderSceneCommand:
    """Tests for the render_scene example command."""

    def test_parse_args_defaults(self):
        from examples.render_scene import parse_args

        args = parse_args([])
        assert args.scene is None
        assert (args.width, args.height, args.samples) == (256, 256, 4)
        assert args.depth is None
        assert not args.no_shadows

    def test_renders_cornell_box(self, tmp_path):
        from examples.render_scene import parse_args, render_scene

        output = tmp_path / "cornell.png"
        args = parse_args(
            ["--width", "8", "--height", "6", "--samples", "1", "--output", str(output), "--quiet"]
        )
        assert render_scene(args) == output
        assert output.exists()

    def test_renders_json_scene_with_resolution(self, tmp_path):
        from PIL import Image

        from examples.render_scene import parse_args, render_scene

        scene = {
            "materials": [{"kd": [0.6, 0.6, 0.6]}],
            "surfaces": [{"type": "sphere", "center": [0, 0, 0], "radius": 1, "material_id": 0}],
            "point_lights": [{"position": [2, 2, 2], "intensity": [5, 5, 5]}],
            "world": {"path_max_depth": 1},
            "camera": {"lookfrom": [0, 0, 4], "lookat": [0, 0, 0], "aspect_ratio": 2.0},
        }
        scene_path = tmp_path / "ball.json"
        scene_path.write_text(json.dumps(scene), encoding="utf-8")

        args = parse_args(["--scene", str(scene_path), "--resolution", "5", "--quiet"])
        output = render_scene(args)
        assert output == scene_path.with_suffix(".png")
        with Image.open(output) as saved:
            assert saved.size == (10, 5)

    def test_scene_without_camera_is_rejected(self, tmp_path):
        from examples.render_scene import parse_args, render_scene

        scene_path = tmp_path / "empty.json"
        scene_path.write_text("{}", encoding="utf-8")
        args = parse_args(["--scene", str(scene_path), "--quiet"])
        with pytest.raises(RuntimeError, match="no camera"):
            render_scene(args)

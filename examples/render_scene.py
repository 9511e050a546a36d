#!/usr/bin/env python3
"""Path trace a scene and save it as a PNG.

Renders either the built-in Cornell box or a JSON scene description (the
format produced by SceneManager.to_dict) with the parallel row-stride
renderer, then saves the gamma-corrected image.

Usage:
    python -m examples.render_scene [options]

Options:
    --scene FILE        JSON scene file (default: built-in Cornell box)
    --width WIDTH       Image width in pixels (default: 256)
    --height HEIGHT     Image height in pixels (default: 256)
    --resolution RES    Image height; width follows the camera aspect ratio
    --samples N         Stratified samples per axis, N*N per pixel (default: 4)
    --depth DEPTH       Maximum indirect bounces (default: scene or 3)
    --workers N         Row-stride workers (default: CPU core count)
    --seed SEED         RNG seed (default: 0)
    --no-shadows        Disable shadow rays
    --output OUTPUT     Output file path (default: <scene>.png or cornell_box.png)
    --quiet             Suppress progress output

Example:
    python -m examples.render_scene --width 256 --height 256 --samples 8
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

import taichi as ti


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Path trace a scene.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--scene", type=str, default=None, help="JSON scene file")
    parser.add_argument("--width", type=int, default=256, help="Image width (default: 256)")
    parser.add_argument("--height", type=int, default=256, help="Image height (default: 256)")
    parser.add_argument(
        "--resolution",
        type=int,
        default=None,
        help="Image height; the width follows the camera aspect ratio",
    )
    parser.add_argument(
        "--samples",
        type=int,
        default=4,
        help="Stratified samples per axis, N*N per pixel (default: 4)",
    )
    parser.add_argument("--depth", type=int, default=None, help="Maximum indirect bounces")
    parser.add_argument("--workers", type=int, default=None, help="Number of row workers")
    parser.add_argument("--seed", type=int, default=0, help="RNG seed (default: 0)")
    parser.add_argument("--no-shadows", action="store_true", help="Disable shadow rays")
    parser.add_argument("--output", type=str, default=None, help="Output file path")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser.parse_args(argv)


def _default_output(scene_path: str | None) -> str:
    if scene_path is None:
        return "cornell_box.png"
    return str(Path(scene_path).with_suffix(".png"))


def render_scene(args: argparse.Namespace) -> Path:
    """Build the scene, render it and save the image.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports so that Taichi is initialized before fields are created
    from src.pathtrace.core.renderer import Renderer, RenderSettings
    from src.pathtrace.scene.cornell_box import create_cornell_box_scene
    from src.pathtrace.scene.manager import SceneManager

    if args.scene is None:
        scene, camera = create_cornell_box_scene()
    else:
        with open(args.scene, encoding="utf-8") as f:
            data = json.load(f)
        scene = SceneManager()
        scene.from_dict(data)
        camera = scene.camera

    width, height = args.width, args.height
    if args.resolution is not None:
        if camera is None:
            raise ValueError("--resolution needs a scene with a camera")
        height = args.resolution
        width = max(1, round(camera.aspect_ratio * height))

    scene.validate()

    settings = RenderSettings(
        width=width,
        height=height,
        samples=args.samples,
        path_max_depth=args.depth if args.depth is not None else scene.world.path_max_depth,
        path_shadows=not args.no_shadows and scene.world.path_shadows,
        seed=args.seed,
        num_workers=args.workers,
    )
    renderer = Renderer(settings)

    if not args.quiet:
        print(f"rendering {args.scene or 'cornell box'} ({width}x{height}) ... ", flush=True)

    start_time = time.perf_counter()
    renderer.render()

    output_file = Path(args.output or _default_output(args.scene))
    renderer.save_image(str(output_file), gamma=2.2)
    total_time = time.perf_counter() - start_time

    if not args.quiet:
        print("done")
        print(f"It took {total_time:f} seconds")
        print(f"Saved to: {output_file.absolute()}")

    return output_file


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    ti.init(arch=ti.cpu)

    try:
        render_scene(args)
        return 0
    except (OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

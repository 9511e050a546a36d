"""Taichi-based Monte Carlo path tracer.

The renderer estimates per-pixel radiance by path tracing with next-event
estimation toward point lights, emissive surfaces and a textured environment,
and renders rows in parallel with a fixed row-stride partition across workers.

Subpackages:
    core: Rays, per-pixel RNG, textures, the radiance estimator and dispatcher
    geometry: Sphere and quad primitives positioned by rigid frames
    materials: Material registry, BRDF evaluation and sampling
    scene: Surface storage, lights, world settings and the scene manager
    camera: Pinhole and thin-lens cameras
    preview: Image import and export
"""

__version__ = "0.1.0"

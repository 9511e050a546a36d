"""Geometry module for shape primitives.

This module provides the two surface shapes of the renderer:

Components:
    sphere: Sphere primitive, the rigid Frame type and the shared HitRecord
    quad: Square quad primitive in the XY plane of its frame

Both shapes are positioned by a rigid frame and sized by a radius, which is
also the shape descriptor used when an emissive surface is sampled as an
area light. All intersection routines are Taichi functions (@ti.func).
"""

from .quad import Quad, hit_quad, quad_area
from .sphere import Frame, HitRecord, Sphere, hit_sphere, sphere_uv

__all__ = [
    "Frame",
    "Sphere",
    "HitRecord",
    "hit_sphere",
    "sphere_uv",
    "Quad",
    "hit_quad",
    "quad_area",
]

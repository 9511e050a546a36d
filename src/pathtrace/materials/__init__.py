"""Materials module: the material registry and the BRDF.

Components:
    material: kd/ks/n/ke material registry with optional textures
    brdf: Phong and microfacet BRDF evaluation, mixture sampling and pdf
"""

from .brdf import eval_brdf, eval_brdfcos, pdf_brdf, sample_brdf, sample_cosine
from .material import MaterialInfo, add_material, clear_materials, get_material_count

__all__ = [
    "MaterialInfo",
    "add_material",
    "clear_materials",
    "get_material_count",
    "eval_brdf",
    "eval_brdfcos",
    "sample_cosine",
    "sample_brdf",
    "pdf_brdf",
]

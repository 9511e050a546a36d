"""Material registry.

A single material model covers every surface: diffuse reflectance ``kd``,
specular reflectance ``ks``, specular exponent ``n``, emission ``ke``, optional
textures for kd/ks/ke and a normal map, and a flag selecting the microfacet
BRDF instead of the normalized Phong lobe. Any material with nonzero emission
turns the surfaces that use it into sampled area lights.

Material parameters live in Structure-of-Arrays Taichi fields indexed by the
material id and are read-only during rendering.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.materials.material import add_material
    >>> plastic = add_material(kd=(0.5, 0.1, 0.1), ks=(0.04, 0.04, 0.04), n=100.0)
"""

from dataclasses import dataclass

import taichi as ti
import taichi.math as tm

from src.pathtrace.core.texture import NO_TEXTURE, num_textures

vec3 = tm.vec3


@dataclass
class MaterialInfo:
    """Python-side record of a registered material.

    Attributes:
        material_id: Index of the material in the registry fields.
        kd: Diffuse reflectance (RGB).
        ks: Specular reflectance (RGB).
        n: Specular exponent (roughness proxy, higher is sharper).
        ke: Emission (RGB). Nonzero makes the material an area light.
        kd_txt: Texture id scaling kd, or NO_TEXTURE.
        ks_txt: Texture id scaling ks, or NO_TEXTURE.
        ke_txt: Texture id scaling ke, or NO_TEXTURE.
        norm_txt: Normal map texture id, or NO_TEXTURE.
        microfacet: Whether the microfacet BRDF is used.
    """

    material_id: int
    kd: tuple[float, float, float]
    ks: tuple[float, float, float]
    n: float
    ke: tuple[float, float, float]
    kd_txt: int = NO_TEXTURE
    ks_txt: int = NO_TEXTURE
    ke_txt: int = NO_TEXTURE
    norm_txt: int = NO_TEXTURE
    microfacet: bool = False

    @property
    def is_emissive(self) -> bool:
        """Whether surfaces with this material are sampled as area lights."""
        return any(c != 0.0 for c in self.ke)


MAX_MATERIALS = 256

material_kd = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_ks = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_ke = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_n = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_microfacet = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_kd_txt = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_ks_txt = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_ke_txt = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_norm_txt = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())


def clear_materials() -> None:
    """Clear all materials.

    Resets the material count to zero. Existing data in the fields will be
    overwritten when new materials are added.
    """
    num_materials[None] = 0


def _validate_color(name: str, color: tuple[float, float, float]) -> None:
    if len(color) != 3:
        raise ValueError(f"{name} must have 3 components, got {len(color)}")
    for i, component in enumerate(color):
        if component < 0.0:
            raise ValueError(f"{name} component {i} = {component} is negative")


def _validate_texture(name: str, texture_id: int) -> None:
    if texture_id != NO_TEXTURE and not 0 <= texture_id < num_textures[None]:
        raise ValueError(f"{name} refers to unknown texture id {texture_id}")


def add_material(
    kd: tuple[float, float, float],
    ks: tuple[float, float, float] = (0.0, 0.0, 0.0),
    n: float = 10.0,
    ke: tuple[float, float, float] = (0.0, 0.0, 0.0),
    kd_txt: int = NO_TEXTURE,
    ks_txt: int = NO_TEXTURE,
    ke_txt: int = NO_TEXTURE,
    norm_txt: int = NO_TEXTURE,
    microfacet: bool = False,
) -> int:
    """Add a material to the registry.

    Args:
        kd: Diffuse reflectance (R, G, B).
        ks: Specular reflectance (R, G, B). All zero makes the material
            purely diffuse and switches sampling to the cosine lobe.
        n: Specular exponent.
        ke: Emission (R, G, B).
        kd_txt: Optional texture id scaling kd.
        ks_txt: Optional texture id scaling ks.
        ke_txt: Optional texture id scaling ke.
        norm_txt: Optional normal map texture id.
        microfacet: Use the microfacet BRDF instead of normalized Phong.

    Returns:
        The index of the added material.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
        ValueError: If a color is negative, n is negative, or a texture id
            does not exist.
    """
    _validate_color("kd", kd)
    _validate_color("ks", ks)
    _validate_color("ke", ke)
    if n < 0.0:
        raise ValueError(f"Specular exponent n = {n} must be non-negative")
    for name, texture_id in (
        ("kd_txt", kd_txt),
        ("ks_txt", ks_txt),
        ("ke_txt", ke_txt),
        ("norm_txt", norm_txt),
    ):
        _validate_texture(name, texture_id)

    idx = num_materials[None]
    if idx >= MAX_MATERIALS:
        raise RuntimeError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")

    material_kd[idx] = vec3(kd[0], kd[1], kd[2])
    material_ks[idx] = vec3(ks[0], ks[1], ks[2])
    material_ke[idx] = vec3(ke[0], ke[1], ke[2])
    material_n[idx] = n
    material_microfacet[idx] = int(microfacet)
    material_kd_txt[idx] = kd_txt
    material_ks_txt[idx] = ks_txt
    material_ke_txt[idx] = ke_txt
    material_norm_txt[idx] = norm_txt
    num_materials[None] = idx + 1

    return idx


def get_material_count() -> int:
    """Get the number of materials in the registry."""
    return int(num_materials[None])


@ti.func
def is_emissive(material_id: ti.i32) -> ti.i32:
    """Whether a material has nonzero emission."""
    ke = material_ke[material_id]
    return ke.x != 0.0 or ke.y != 0.0 or ke.z != 0.0

"""Cornell box scene configuration.

The classic global illumination test scene, built from square quads:

- 5 walls forming a box open toward the camera (left, right, back, floor,
  ceiling); red on the left, green on the right, white elsewhere
- A square area light just below the ceiling (emissive material, normal
  pointing down)
- Two spheres resting on the floor: a white diffuse one and a glossy one

The box spans [-1, 1] on every axis with y up; the camera sits on the +z
side looking toward -z through the open front.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.scene.cornell_box import create_cornell_box_scene
    >>> scene, camera = create_cornell_box_scene()
    >>> scene.get_surface_count()
    8
"""

from dataclasses import dataclass

from src.pathtrace.camera.pinhole import PinholeCamera
from src.pathtrace.scene.manager import SceneManager


@dataclass
class CornellBoxParams:
    """Parameters for configuring a Cornell box scene.

    Attributes:
        light_intensity: Emission scale of the ceiling light.
        light_color: RGB color of the light emission.
        light_radius: Half side length of the square light.
        left_wall_color: RGB diffuse reflectance of the left wall.
        right_wall_color: RGB diffuse reflectance of the right wall.
        white_color: RGB diffuse reflectance of back wall, floor and ceiling.
        glossy_microfacet: Use the microfacet BRDF for the glossy sphere.
        ambient: Constant ambient term.

    Example:
        >>> warm = CornellBoxParams(light_color=(1.0, 0.9, 0.8), light_intensity=15.0)
    """

    light_intensity: float = 12.0
    light_color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    light_radius: float = 0.25
    left_wall_color: tuple[float, float, float] = (0.65, 0.05, 0.05)
    right_wall_color: tuple[float, float, float] = (0.12, 0.45, 0.15)
    white_color: tuple[float, float, float] = (0.73, 0.73, 0.73)
    glossy_microfacet: bool = False
    ambient: tuple[float, float, float] = (0.0, 0.0, 0.0)


# Half extent of the box
BOX_RADIUS = 1.0

# Gap between the light and the ceiling
LIGHT_OFFSET = 1e-3

DIFFUSE_SPHERE_RADIUS = 0.3
GLOSSY_SPHERE_RADIUS = 0.35

GLOSSY_KD = (0.05, 0.05, 0.05)
GLOSSY_KS = (0.7, 0.7, 0.7)
GLOSSY_N = 200.0


def create_cornell_box_scene(
    params: CornellBoxParams | None = None,
    aspect_ratio: float = 1.0,
) -> tuple[SceneManager, PinholeCamera]:
    """Create a Cornell box scene.

    The returned SceneManager already holds the camera (set_camera has been
    called); the camera is also returned for convenience.

    Args:
        params: Optional CornellBoxParams; defaults to CornellBoxParams().
        aspect_ratio: Camera aspect ratio (image width / height).

    Returns:
        A tuple of (SceneManager, PinholeCamera).
    """
    if params is None:
        params = CornellBoxParams()

    r = BOX_RADIUS
    scene = SceneManager()

    left_mat = scene.add_material(kd=params.left_wall_color)
    right_mat = scene.add_material(kd=params.right_wall_color)
    white_mat = scene.add_material(kd=params.white_color)
    light_mat = scene.add_material(
        kd=(0.0, 0.0, 0.0),
        ke=tuple(c * params.light_intensity for c in params.light_color),
    )
    diffuse_mat = scene.add_material(kd=params.white_color)
    glossy_mat = scene.add_material(
        kd=GLOSSY_KD,
        ks=GLOSSY_KS,
        n=GLOSSY_N,
        microfacet=params.glossy_microfacet,
    )

    # Walls, normals facing into the box
    scene.add_quad(center=(-r, 0.0, 0.0), radius=r, material_id=left_mat, normal=(1.0, 0.0, 0.0))
    scene.add_quad(center=(r, 0.0, 0.0), radius=r, material_id=right_mat, normal=(-1.0, 0.0, 0.0))
    scene.add_quad(center=(0.0, 0.0, -r), radius=r, material_id=white_mat, normal=(0.0, 0.0, 1.0))
    scene.add_quad(center=(0.0, -r, 0.0), radius=r, material_id=white_mat, normal=(0.0, 1.0, 0.0))
    scene.add_quad(center=(0.0, r, 0.0), radius=r, material_id=white_mat, normal=(0.0, -1.0, 0.0))

    # Ceiling light, emitting downward
    scene.add_quad(
        center=(0.0, r - LIGHT_OFFSET, 0.0),
        radius=params.light_radius,
        material_id=light_mat,
        normal=(0.0, -1.0, 0.0),
        x_axis=(1.0, 0.0, 0.0),
    )

    scene.add_sphere(
        center=(-0.45, -r + DIFFUSE_SPHERE_RADIUS, -0.3),
        radius=DIFFUSE_SPHERE_RADIUS,
        material_id=diffuse_mat,
        normal=(0.0, 1.0, 0.0),
        x_axis=(1.0, 0.0, 0.0),
    )
    scene.add_sphere(
        center=(0.4, -r + GLOSSY_SPHERE_RADIUS, 0.2),
        radius=GLOSSY_SPHERE_RADIUS,
        material_id=glossy_mat,
        normal=(0.0, 1.0, 0.0),
        x_axis=(1.0, 0.0, 0.0),
    )

    scene.set_ambient(params.ambient)

    camera = PinholeCamera(
        lookfrom=(0.0, 0.0, 3.9),
        lookat=(0.0, 0.0, 0.0),
        vup=(0.0, 1.0, 0.0),
        vfov=40.0,
        aspect_ratio=aspect_ratio,
    )
    scene.set_camera(camera)

    return scene, camera


def get_light_quad_info(params: CornellBoxParams | None = None) -> dict[str, object]:
    """Geometry of the ceiling light.

    Returns:
        A dictionary with 'center', 'normal', 'radius' and 'area'.
    """
    if params is None:
        params = CornellBoxParams()
    side = 2.0 * params.light_radius
    return {
        "center": (0.0, BOX_RADIUS - LIGHT_OFFSET, 0.0),
        "normal": (0.0, -1.0, 0.0),
        "radius": params.light_radius,
        "area": side * side,
    }

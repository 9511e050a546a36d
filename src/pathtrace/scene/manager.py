"""Scene manager coordinating textures, materials, surfaces and lights.

The renderer reads its scene from module-level Taichi fields spread over
several registries (textures, materials, surfaces, point lights, world
settings, camera). SceneManager is the Python-side facade that fills them in
a consistent order, keeps a record of everything it added, and converts the
scene to and from a plain dictionary (the JSON scene format of the CLI).

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtrace.scene.manager import SceneManager
    >>> scene = SceneManager()
    >>> white = scene.add_material(kd=(0.8, 0.8, 0.8))
    >>> lamp = scene.add_material(kd=(0.0, 0.0, 0.0), ke=(10.0, 10.0, 10.0))
    >>> scene.add_sphere(center=(0.0, 0.0, -2.0), radius=0.5, material_id=white)
    >>> scene.add_quad(center=(0.0, 2.0, -2.0), radius=0.5, material_id=lamp,
    ...                normal=(0.0, -1.0, 0.0))
    >>> scene.validate()
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

import numpy.typing as npt

from src.pathtrace.camera.pinhole import (
    PinholeCamera,
    ThinLensCamera,
    reset_camera,
    setup_camera,
)
from src.pathtrace.core.texture import (
    NO_TEXTURE,
    MAX_TEXTURES,
    add_texture,
    clear_textures,
    get_texture_size,
)
from src.pathtrace.materials.material import (
    MAX_MATERIALS,
    MaterialInfo,
    add_material,
    clear_materials,
)
from src.pathtrace.preview.export import load_image_as_float
from src.pathtrace.scene.intersection import (
    MAX_SURFACES,
    FrameTuple,
    Vec3Tuple,
    add_surface,
    build_frame,
    clear_scene,
)
from src.pathtrace.scene.lights import MAX_POINT_LIGHTS, add_point_light, clear_point_lights
from src.pathtrace.scene.world import (
    DEFAULT_MAX_DEPTH,
    reset_world,
    set_ambient,
    set_background,
    set_path_options,
)

logger = logging.getLogger(__name__)


@dataclass
class TextureInfo:
    """Information about a stored texture.

    Attributes:
        texture_id: The texture id used by materials and the background.
        width: Width in texels.
        height: Height in texels.
        filename: Source file, or None for textures added from arrays.
        gamma: Decoding gamma applied when the file was loaded.
    """

    texture_id: int
    width: int
    height: int
    filename: str | None = None
    gamma: float = 1.0


@dataclass
class SurfaceInfo:
    """Information about a surface in the scene.

    Attributes:
        surface_id: Index in the surface storage arrays.
        is_quad: True for a quad, False for a sphere.
        frame: (origin, x, y, z) rigid frame of the surface.
        radius: Sphere radius or quad half-extent.
        material_id: The material assigned to the surface.
    """

    surface_id: int
    is_quad: bool
    frame: FrameTuple
    radius: float
    material_id: int


@dataclass
class PointLightInfo:
    """Information about a point light.

    Attributes:
        light_id: Index in the point light arrays.
        position: Light position.
        intensity: Radiant intensity (RGB).
    """

    light_id: int
    position: Vec3Tuple
    intensity: Vec3Tuple


@dataclass
class WorldInfo:
    """Global scene settings.

    Attributes:
        ambient: Constant ambient term multiplied by kd at every hit.
        background: Background color, or scale of the background texture.
        background_txt: Latitude-longitude environment texture id.
        path_max_depth: Maximum number of indirect bounces.
        path_shadows: Whether shadow rays are traced.
    """

    ambient: Vec3Tuple = (0.0, 0.0, 0.0)
    background: Vec3Tuple = (0.0, 0.0, 0.0)
    background_txt: int = NO_TEXTURE
    path_max_depth: int = DEFAULT_MAX_DEPTH
    path_shadows: bool = True


@dataclass
class SceneConfig:
    """Configuration for scene serialization.

    Attributes:
        textures: List of texture configurations.
        materials: List of material configurations.
        surfaces: List of sphere/quad configurations.
        point_lights: List of point light configurations.
        world: World settings.
        camera: Camera configuration, if any.
    """

    textures: list[dict[str, Any]] = field(default_factory=list)
    materials: list[dict[str, Any]] = field(default_factory=list)
    surfaces: list[dict[str, Any]] = field(default_factory=list)
    point_lights: list[dict[str, Any]] = field(default_factory=list)
    world: dict[str, Any] = field(default_factory=dict)
    camera: dict[str, Any] | None = None


def _vec3(values: Any, name: str) -> Vec3Tuple:
    if values is None or len(values) != 3:
        raise ValueError(f"{name} must have 3 components, got {values!r}")
    return (float(values[0]), float(values[1]), float(values[2]))


class SceneManager:
    """High-level scene builder over the renderer's registries.

    Creating a SceneManager clears every registry, so a process holds one
    scene at a time.

    Attributes:
        textures: TextureInfo for all stored textures.
        materials: MaterialInfo for all registered materials.
        surfaces: SurfaceInfo for all spheres and quads.
        point_lights: PointLightInfo for all point lights.
        world: Current world settings.
        camera: Current camera configuration, or None.
    """

    def __init__(self) -> None:
        """Initialize an empty scene."""
        self.textures: list[TextureInfo] = []
        self.materials: list[MaterialInfo] = []
        self.surfaces: list[SurfaceInfo] = []
        self.point_lights: list[PointLightInfo] = []
        self.world = WorldInfo()
        self.camera: PinholeCamera | None = None
        self._clear_all()

    def _clear_all(self) -> None:
        clear_textures()
        clear_materials()
        clear_scene()
        clear_point_lights()
        reset_world()
        reset_camera()
        self.textures.clear()
        self.materials.clear()
        self.surfaces.clear()
        self.point_lights.clear()
        self.world = WorldInfo()
        self.camera = None

    def clear(self) -> None:
        """Clear the entire scene, including world settings and camera."""
        self._clear_all()

    # =========================================================================
    # Textures and Materials
    # =========================================================================

    def add_texture(self, image: npt.ArrayLike) -> int:
        """Store an (H, W, 3) or (H, W) float image as a texture.

        Returns:
            The texture id.
        """
        texture_id = add_texture(image)
        width, height = get_texture_size(texture_id)
        self.textures.append(TextureInfo(texture_id=texture_id, width=width, height=height))
        return texture_id

    def add_texture_file(self, filename: str, gamma: float = 1.0) -> int:
        """Load an image file with Pillow and store it as a texture.

        Args:
            filename: Image file path.
            gamma: Decoding gamma (2.2 linearizes sRGB color maps).

        Returns:
            The texture id.
        """
        texture_id = add_texture(load_image_as_float(filename, gamma=gamma))
        width, height = get_texture_size(texture_id)
        self.textures.append(
            TextureInfo(
                texture_id=texture_id,
                width=width,
                height=height,
                filename=filename,
                gamma=gamma,
            )
        )
        return texture_id

    def add_material(
        self,
        kd: Vec3Tuple,
        ks: Vec3Tuple = (0.0, 0.0, 0.0),
        n: float = 10.0,
        ke: Vec3Tuple = (0.0, 0.0, 0.0),
        kd_txt: int = NO_TEXTURE,
        ks_txt: int = NO_TEXTURE,
        ke_txt: int = NO_TEXTURE,
        norm_txt: int = NO_TEXTURE,
        microfacet: bool = False,
    ) -> int:
        """Register a material. See materials.material.add_material.

        Returns:
            The material id.
        """
        material_id = add_material(
            kd,
            ks=ks,
            n=n,
            ke=ke,
            kd_txt=kd_txt,
            ks_txt=ks_txt,
            ke_txt=ke_txt,
            norm_txt=norm_txt,
            microfacet=microfacet,
        )
        self.materials.append(
            MaterialInfo(
                material_id=material_id,
                kd=tuple(kd),
                ks=tuple(ks),
                n=n,
                ke=tuple(ke),
                kd_txt=kd_txt,
                ks_txt=ks_txt,
                ke_txt=ke_txt,
                norm_txt=norm_txt,
                microfacet=microfacet,
            )
        )
        return material_id

    def get_material_count(self) -> int:
        return len(self.materials)

    def get_material_info(self, material_id: int) -> MaterialInfo | None:
        """Get information about a material by id, or None if not found."""
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id]
        return None

    # =========================================================================
    # Surfaces
    # =========================================================================

    def _check_material_id(self, material_id: int) -> None:
        if not 0 <= material_id < len(self.materials):
            raise ValueError(f"Invalid material_id: {material_id}")

    def add_surface(
        self,
        frame: FrameTuple,
        radius: float,
        is_quad: bool,
        material_id: int,
    ) -> int:
        """Add a sphere or quad positioned by an explicit frame.

        Returns:
            The surface index.

        Raises:
            ValueError: If material_id is invalid or radius not positive.
            RuntimeError: If the maximum number of surfaces is exceeded.
        """
        self._check_material_id(material_id)
        surface_id = add_surface(frame, radius, is_quad, material_id)
        self.surfaces.append(
            SurfaceInfo(
                surface_id=surface_id,
                is_quad=is_quad,
                frame=frame,
                radius=radius,
                material_id=material_id,
            )
        )
        return surface_id

    def add_sphere(
        self,
        center: Vec3Tuple,
        radius: float,
        material_id: int,
        normal: Vec3Tuple = (0.0, 0.0, 1.0),
        x_axis: Vec3Tuple | None = None,
    ) -> int:
        """Add a sphere.

        Args:
            center: Sphere center.
            radius: Sphere radius.
            material_id: Material of the sphere.
            normal: Polar axis of the sphere's texture mapping.
            x_axis: Direction of u = 0 in the texture mapping.

        Returns:
            The surface index.
        """
        frame = build_frame(center, normal=normal, x_axis=x_axis)
        return self.add_surface(frame, radius, False, material_id)

    def add_quad(
        self,
        center: Vec3Tuple,
        radius: float,
        material_id: int,
        normal: Vec3Tuple = (0.0, 0.0, 1.0),
        x_axis: Vec3Tuple | None = None,
    ) -> int:
        """Add a square quad of side 2 * radius.

        Args:
            center: Center of the square.
            radius: Half the side length.
            material_id: Material of the quad.
            normal: Quad normal (also the emission side of a quad light).
            x_axis: Direction of the quad's u axis.

        Returns:
            The surface index.
        """
        frame = build_frame(center, normal=normal, x_axis=x_axis)
        return self.add_surface(frame, radius, True, material_id)

    def get_surface_count(self) -> int:
        return len(self.surfaces)

    def get_area_lights(self) -> list[SurfaceInfo]:
        """Surfaces whose material emits light, in surface order."""
        return [s for s in self.surfaces if self.materials[s.material_id].is_emissive]

    # =========================================================================
    # Lights, World and Camera
    # =========================================================================

    def add_point_light(self, position: Vec3Tuple, intensity: Vec3Tuple) -> int:
        """Add a point light.

        Returns:
            The light index.
        """
        light_id = add_point_light(position, intensity)
        self.point_lights.append(
            PointLightInfo(light_id=light_id, position=tuple(position), intensity=tuple(intensity))
        )
        return light_id

    def set_ambient(self, ambient: Vec3Tuple) -> None:
        set_ambient(ambient)
        self.world.ambient = tuple(ambient)

    def set_background(self, color: Vec3Tuple, texture_id: int = NO_TEXTURE) -> None:
        """Set the background color and optional environment texture."""
        set_background(color, texture_id)
        self.world.background = tuple(color)
        self.world.background_txt = texture_id

    def set_path_options(self, max_depth: int | None = None, shadows: bool | None = None) -> None:
        """Set the maximum path depth and/or shadow tracing."""
        set_path_options(max_depth=max_depth, shadows=shadows)
        if max_depth is not None:
            self.world.path_max_depth = max_depth
        if shadows is not None:
            self.world.path_shadows = shadows

    def set_camera(self, camera: PinholeCamera) -> None:
        """Configure the camera used for rendering."""
        setup_camera(camera)
        self.camera = camera

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self, require_camera: bool = True) -> None:
        """Check the scene can be rendered.

        Raises:
            RuntimeError: If require_camera is set and no camera is configured.
            ValueError: If a surface refers to a missing material.
        """
        if require_camera and self.camera is None:
            raise RuntimeError("Scene has no camera. Call set_camera() first.")
        for surface in self.surfaces:
            self._check_material_id(surface.material_id)

        has_light = (
            bool(self.point_lights)
            or bool(self.get_area_lights())
            or any(c != 0.0 for c in self.world.ambient)
            or any(c != 0.0 for c in self.world.background)
        )
        if not has_light:
            logger.warning("Scene has no light sources; the image will be black")

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_config(self) -> SceneConfig:
        """Export the scene to a configuration object.

        Textures are exported by filename.

        Raises:
            ValueError: If a texture was added from an array.
        """
        config = SceneConfig()

        for tex in self.textures:
            if tex.filename is not None:
                config.textures.append({"file": tex.filename, "gamma": tex.gamma})
            else:
                raise ValueError(
                    f"Texture {tex.texture_id} was added from an array and cannot be exported"
                )

        for mat in self.materials:
            mat_config = asdict(mat)
            del mat_config["material_id"]
            for key in ("kd", "ks", "ke"):
                mat_config[key] = list(mat_config[key])
            config.materials.append(mat_config)

        for surface in self.surfaces:
            origin, x, _, z = surface.frame
            config.surfaces.append(
                {
                    "type": "quad" if surface.is_quad else "sphere",
                    "center": list(origin),
                    "normal": list(z),
                    "x_axis": list(x),
                    "radius": surface.radius,
                    "material_id": surface.material_id,
                }
            )

        for light in self.point_lights:
            config.point_lights.append(
                {"position": list(light.position), "intensity": list(light.intensity)}
            )

        world = asdict(self.world)
        world["ambient"] = list(world["ambient"])
        world["background"] = list(world["background"])
        config.world = world

        if self.camera is not None:
            camera = asdict(self.camera)
            for key in ("lookfrom", "lookat", "vup"):
                camera[key] = list(camera[key])
            config.camera = camera

        return config

    def from_config(self, config: SceneConfig) -> None:
        """Load a scene from a configuration object.

        Clears the current scene first. Textures are loaded before materials
        and materials before surfaces, so ids in the configuration refer to
        list positions.

        Raises:
            ValueError: If the configuration contains invalid data.
        """
        self.clear()

        for tex_config in config.textures:
            if "file" not in tex_config:
                raise ValueError(f"Texture entry needs a 'file' key: {tex_config!r}")
            self.add_texture_file(tex_config["file"], gamma=tex_config.get("gamma", 1.0))

        for mat_config in config.materials:
            self.add_material(
                kd=_vec3(mat_config.get("kd", [0.5, 0.5, 0.5]), "kd"),
                ks=_vec3(mat_config.get("ks", [0.0, 0.0, 0.0]), "ks"),
                n=float(mat_config.get("n", 10.0)),
                ke=_vec3(mat_config.get("ke", [0.0, 0.0, 0.0]), "ke"),
                kd_txt=int(mat_config.get("kd_txt", NO_TEXTURE)),
                ks_txt=int(mat_config.get("ks_txt", NO_TEXTURE)),
                ke_txt=int(mat_config.get("ke_txt", NO_TEXTURE)),
                norm_txt=int(mat_config.get("norm_txt", NO_TEXTURE)),
                microfacet=bool(mat_config.get("microfacet", False)),
            )

        for surface_config in config.surfaces:
            kind = surface_config.get("type", "sphere").lower()
            if kind not in ("sphere", "quad"):
                raise ValueError(f"Unknown surface type: {kind}")
            x_axis = surface_config.get("x_axis")
            frame = build_frame(
                _vec3(surface_config.get("center", [0.0, 0.0, 0.0]), "center"),
                normal=_vec3(surface_config.get("normal", [0.0, 0.0, 1.0]), "normal"),
                x_axis=_vec3(x_axis, "x_axis") if x_axis is not None else None,
            )
            self.add_surface(
                frame,
                float(surface_config.get("radius", 1.0)),
                kind == "quad",
                int(surface_config.get("material_id", 0)),
            )

        for light_config in config.point_lights:
            self.add_point_light(
                _vec3(light_config.get("position"), "position"),
                _vec3(light_config.get("intensity"), "intensity"),
            )

        world = config.world
        self.set_ambient(_vec3(world.get("ambient", [0.0, 0.0, 0.0]), "ambient"))
        self.set_background(
            _vec3(world.get("background", [0.0, 0.0, 0.0]), "background"),
            int(world.get("background_txt", NO_TEXTURE)),
        )
        self.set_path_options(
            max_depth=int(world.get("path_max_depth", DEFAULT_MAX_DEPTH)),
            shadows=bool(world.get("path_shadows", True)),
        )

        if config.camera is not None:
            self.set_camera(_camera_from_dict(config.camera))

    def to_dict(self) -> dict[str, Any]:
        """Export the scene to a dictionary (for JSON serialization)."""
        config = self.to_config()
        data: dict[str, Any] = {
            "textures": config.textures,
            "materials": config.materials,
            "surfaces": config.surfaces,
            "point_lights": config.point_lights,
            "world": config.world,
        }
        if config.camera is not None:
            data["camera"] = config.camera
        return data

    def from_dict(self, data: dict[str, Any]) -> None:
        """Load a scene from a dictionary.

        Args:
            data: Dictionary with optional 'textures', 'materials', 'surfaces',
                'point_lights', 'world' and 'camera' keys.
        """
        config = SceneConfig(
            textures=data.get("textures", []),
            materials=data.get("materials", []),
            surfaces=data.get("surfaces", []),
            point_lights=data.get("point_lights", []),
            world=data.get("world", {}),
            camera=data.get("camera"),
        )
        self.from_config(config)

    # =========================================================================
    # Capacity Information
    # =========================================================================

    @staticmethod
    def get_max_surfaces() -> int:
        return MAX_SURFACES

    @staticmethod
    def get_max_materials() -> int:
        return MAX_MATERIALS

    @staticmethod
    def get_max_textures() -> int:
        return MAX_TEXTURES

    @staticmethod
    def get_max_point_lights() -> int:
        return MAX_POINT_LIGHTS


def _camera_from_dict(data: dict[str, Any]) -> PinholeCamera:
    kwargs = {
        "lookfrom": _vec3(data.get("lookfrom"), "lookfrom"),
        "lookat": _vec3(data.get("lookat"), "lookat"),
        "vup": _vec3(data.get("vup", [0.0, 1.0, 0.0]), "vup"),
        "vfov": float(data.get("vfov", 45.0)),
        "aspect_ratio": float(data.get("aspect_ratio", 1.0)),
    }
    if "focal_depth" in data or "aperture" in data:
        return ThinLensCamera(
            **kwargs,
            focal_depth=float(data.get("focal_depth", 0.0)),
            aperture=float(data.get("aperture", 0.0)),
        )
    return PinholeCamera(**kwargs)


"""
Special-Case Model Builders

Some block families cannot be expressed as "one parent chain + textures"
because their geometry depends on relational state:

- Vertical fixtures (lanterns): a boolean property selects between a
  standing and a hanging template. The builder attaches the block's texture
  to the chosen template and resolves it like any other model.
- Connected panes: a center post plus one side panel per connected
  direction, each panel rotated about the block center (north 0, east 90,
  south 180, west -90 degrees). With no connections a dedicated no-side
  template is used instead.

Builders return None when their templates are missing from the catalog; the
resolver then falls back to generic resolution.
"""

from dataclasses import dataclass, replace
from typing import Dict, Mapping, Optional, Tuple

from .catalog import (
    CubeElement,
    ElementRotation,
    ModelDefinition,
    default_face_uv,
    is_valid_uv,
)
from .transforms import rotate_quarter_turns_y


# Clockwise quarter turn (looking down): north -> east -> south -> west
_TURN_CLOCKWISE = {
    "north": "east",
    "east": "south",
    "south": "west",
    "west": "north",
    "up": "up",
    "down": "down",
}

# Rotation applied to each connected side panel, in degrees
SIDE_ROTATIONS = (
    ("north", 0),
    ("east", 90),
    ("south", 180),
    ("west", -90),
)

STAINED_GLASS_COLORS = (
    "white", "orange", "magenta", "light_blue", "yellow", "lime", "pink",
    "gray", "light_gray", "cyan", "purple", "blue", "brown", "green", "red",
    "black",
)


def _is_true(value) -> bool:
    return str(value).lower() == "true"


def _turn_direction(direction: Optional[str], quarter_turns: int) -> Optional[str]:
    if direction is None:
        return None
    for _ in range(quarter_turns % 4):
        direction = _TURN_CLOCKWISE.get(direction, direction)
    return direction


def _is_point(values) -> bool:
    return len(values) == 3 and all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in values
    )


def _turn_rotation(rotation: ElementRotation, quarter_turns: int) -> ElementRotation:
    origin = tuple(rotation.origin)
    if not _is_point(origin):
        # Left as-is for the baker to reject
        return rotation
    x, y, z = origin
    x, z = rotate_quarter_turns_y(x, z, quarter_turns)
    origin = (x, y, z)
    axis, angle = rotation.axis, rotation.angle
    for _ in range(quarter_turns % 4):
        # A turn maps +X onto +Z and +Z onto -X
        if axis == "x":
            axis = "z"
        elif axis == "z":
            axis, angle = "x", -angle
    return replace(rotation, origin=origin, axis=axis, angle=angle)


def rotate_element_y(element: CubeElement, degrees: int) -> CubeElement:
    """
    Rotate an element about the block center (8, 8, 8) in 90 degree steps.

    Bounds stay axis-aligned, faces are renamed to their new directions and
    top/bottom face UVs turn along with the geometry. Faces without an
    explicit uv keep the region derived from the unturned bounds.

    Args:
        element: Element in 0-16 model space
        degrees: Clockwise (looking down) rotation, a multiple of 90

    Returns:
        The rotated element
    """
    quarter_turns = int(round(degrees / 90.0)) % 4
    if quarter_turns == 0:
        return element

    if not (_is_point(tuple(element.from_)) and _is_point(tuple(element.to))):
        # Left as-is for the baker to reject
        return element

    (x0, y0, z0), (x1, y1, z1) = element.from_, element.to
    ax, az = rotate_quarter_turns_y(x0, z0, quarter_turns)
    bx, bz = rotate_quarter_turns_y(x1, z1, quarter_turns)

    faces = {}
    for direction, face in element.faces.items():
        if not is_valid_uv(face.uv):
            # Pin the texture region to the unturned bounds
            face = replace(face, uv=default_face_uv(direction, element.from_, element.to))
        if direction == "up":
            face = replace(face, rotation=(face.rotation + 90 * quarter_turns) % 360)
        elif direction == "down":
            face = replace(face, rotation=(face.rotation - 90 * quarter_turns) % 360)
        face = replace(face, cullface=_turn_direction(face.cullface, quarter_turns))
        faces[_turn_direction(direction, quarter_turns)] = face

    rotation = element.rotation
    if rotation is not None:
        rotation = _turn_rotation(rotation, quarter_turns)

    return replace(
        element,
        from_=(min(ax, bx), y0, min(az, bz)),
        to=(max(ax, bx), y1, max(az, bz)),
        faces=faces,
        rotation=rotation,
    )


class SpecialCaseBuilder:
    """Base class: build(resolver, block_type, properties) -> ResolvedModel."""

    def build(self, resolver, block_type: str, properties: Mapping[str, str]):
        raise NotImplementedError

    @staticmethod
    def _resolve_template(resolver, template: str, name: str, textures: Mapping[str, str]):
        if resolver.catalog.get_model_definition(template) is None:
            return None
        definition = ModelDefinition(name=name, parent=template, textures=dict(textures))
        return resolver.resolve_definition(definition, name=name)


@dataclass(frozen=True)
class VerticalFixtureBuilder(SpecialCaseBuilder):
    """Standing vs. hanging fixture selected by a boolean property."""
    property_name: str = "hanging"
    true_template: str = "template_hanging_lantern"
    false_template: str = "template_lantern"
    texture_slot: str = "lantern"

    def build(self, resolver, block_type: str, properties: Mapping[str, str]):
        selected = _is_true(properties.get(self.property_name))
        template = self.true_template if selected else self.false_template
        name = f"{block_type}[{self.property_name}={'true' if selected else 'false'}]"
        return self._resolve_template(
            resolver, template, name, {self.texture_slot: f"block/{block_type}"}
        )


@dataclass(frozen=True)
class ConnectedPaneBuilder(SpecialCaseBuilder):
    """Center post plus rotated side panels for each connected direction."""
    post_template: str = "template_glass_pane_post"
    side_template: str = "template_glass_pane_side"
    noside_template: str = "template_glass_pane_noside"

    @staticmethod
    def textures_for(block_type: str) -> Dict[str, str]:
        """glass_pane -> pane: block/glass, edge: block/glass_pane_top."""
        pane = block_type[:-len("_pane")] if block_type.endswith("_pane") else block_type
        return {"pane": f"block/{pane}", "edge": f"block/{block_type}_top"}

    def connected_sides(self, properties: Mapping[str, str]) -> Tuple[Tuple[str, int], ...]:
        return tuple(
            (direction, degrees) for direction, degrees in SIDE_ROTATIONS
            if _is_true(properties.get(direction))
        )

    def build(self, resolver, block_type: str, properties: Mapping[str, str]):
        textures = self.textures_for(block_type)
        post = self._resolve_template(
            resolver, self.post_template, f"{block_type}_post", textures
        )
        if post is None:
            return None

        elements = list(post.elements)
        sides = self.connected_sides(properties)
        if sides:
            side = self._resolve_template(
                resolver, self.side_template, f"{block_type}_side", textures
            )
            if side is None:
                return None
            for _, degrees in sides:
                elements.extend(rotate_element_y(element, degrees) for element in side.elements)
        else:
            noside = self._resolve_template(
                resolver, self.noside_template, f"{block_type}_noside", textures
            )
            if noside is None:
                return None
            elements.extend(noside.elements)

        connected = "".join(direction[0] for direction, _ in sides) or "none"
        return replace(post, name=f"{block_type}[{connected}]", elements=tuple(elements))


def _build_dispatch_table() -> Dict[str, SpecialCaseBuilder]:
    fixture = VerticalFixtureBuilder()
    pane = ConnectedPaneBuilder()

    table: Dict[str, SpecialCaseBuilder] = {
        "lantern": fixture,
        "soul_lantern": fixture,
        "glass_pane": pane,
    }
    for color in STAINED_GLASS_COLORS:
        table[f"{color}_stained_glass_pane"] = pane
    return table


# Canonical block name -> builder; every other block is resolved generically
SPECIAL_CASES: Mapping[str, SpecialCaseBuilder] = _build_dispatch_table()

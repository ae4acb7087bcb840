"""
Building -> floor -> room layout hierarchy.

Layout input for a property arrives in one of two shapes:

* structured: ``building_layouts`` groups, each with an optional
  ``building_layout`` payload and a list of ``interior_layouts``;
* flat: a ``layouts`` list of space records, each with an optional
  ``floor_level`` label.

Either way the result is an ordered list of LayoutNode objects whose
``space_index`` runs 1..N in write order and whose parent links are turned
into ``relationship_layout_layout_<n>.json`` edges.
"""
import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .relationships import file_ref

logger = logging.getLogger(__name__)

ROLE_BUILDING = "Building"
ROLE_FLOOR = "Floor"
ROLE_ROOM = "Room"
ROLE_SITE_FEATURE = "SiteFeature"

LAND_PARCEL = "LandParcel"

# Layout attributes emitted as null unless the source supplies them
LAYOUT_FIELDS = [
    "space_type",
    "space_index",
    "size_square_feet",
    "total_area_sq_ft",
    "livable_area_sq_ft",
    "floor_level",
    "has_windows",
    "is_finished",
    "is_exterior",
    "flooring_material_type",
    "window_design_type",
    "window_material_type",
    "window_treatment_type",
    "furnished",
    "paint_condition",
    "flooring_wear",
    "clutter_level",
    "visible_damage",
    "countertop_material",
    "cabinet_style",
    "fixture_finish_quality",
    "design_style",
    "natural_light_quality",
    "decor_elements",
    "pool_type",
    "pool_equipment",
    "spa_type",
    "safety_features",
    "view_type",
    "lighting_features",
    "condition_issues",
    "pool_condition",
    "pool_surface_type",
    "pool_water_quality",
]

NUMERIC_LAYOUT_FIELDS = ("size_square_feet", "total_area_sq_ft", "livable_area_sq_ft")
BOOLEAN_LAYOUT_FIELDS = ("is_finished", "is_exterior")
TEXT_LAYOUT_FIELDS = ("space_type", "floor_level")
TRUE_WORDS = ("true", "yes", "y", "1")
FALSE_WORDS = ("false", "no", "n", "0")


@dataclass
class FallbackAreas:
    total_area_sq_ft: Optional[int] = None
    livable_area_sq_ft: Optional[int] = None


@dataclass
class BuildingGroupInput:
    building_layout: Optional[Dict[str, Any]] = None
    interior_layouts: List[Any] = field(default_factory=list)


@dataclass
class StructuredLayoutInput:
    groups: List[BuildingGroupInput]


@dataclass
class FlatLayoutInput:
    spaces: List[Any]


@dataclass
class LayoutNode:
    id: str
    role: str
    payload: Dict[str, Any]
    floor_key: Optional[str] = None
    parent_id: Optional[str] = None
    space_index: Optional[int] = None

    @property
    def file_name(self) -> str:
        if self.space_index is None:
            raise ValueError(f"Layout node {self.id} has no space_index yet")
        return f"layout_{self.space_index}.json"

    @property
    def ref(self) -> str:
        return file_ref(self.file_name)


def empty_layout_payload() -> Dict[str, Any]:
    return {name: None for name in LAYOUT_FIELDS}


def create_building_payload(fallback_areas: Optional[FallbackAreas]) -> Dict[str, Any]:
    areas = fallback_areas or FallbackAreas()
    payload = empty_layout_payload()
    payload.update({
        "space_type": "Building",
        "size_square_feet": areas.total_area_sq_ft,
        "total_area_sq_ft": areas.total_area_sq_ft,
        "livable_area_sq_ft": areas.livable_area_sq_ft,
        "is_finished": True,
        "is_exterior": False,
    })
    return payload


def create_floor_payload(floor_label) -> Dict[str, Any]:
    payload = empty_layout_payload()
    payload.update({
        "space_type": "Floor",
        "floor_level": floor_label,
    })
    return payload


def normalize_floor_key(floor_label) -> Optional[str]:
    """First digit run of the label ('2nd Floor' -> '2'), else the lower-cased label"""
    if floor_label is None:
        return None
    trimmed = str(floor_label).strip()
    if not trimmed:
        return None
    numeric_match = re.search(r"\d+", trimmed)
    if numeric_match:
        return numeric_match.group(0)
    return trimmed.lower()


def floor_sort_key(floor_key, label="") -> Tuple[int, int, str, str]:
    """Numeric keys ascending first, then non-numeric keys lexically"""
    if floor_key.isdigit():
        return (0, int(floor_key), "", str(label))
    return (1, 0, floor_key, str(label))


def _floor_label_of(payload) -> Optional[str]:
    value = payload.get("floor_level")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value if isinstance(value, str) else None


def _as_number(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        match = re.search(r"\d[\d,]*(?:\.\d+)?", value)
        if match:
            number = float(match.group(0).replace(",", ""))
            return int(number) if number.is_integer() else number
    return None


def _as_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_WORDS:
            return True
        if text in FALSE_WORDS:
            return False
    return None


def clean_layout_payload(payload: Dict[str, Any], where: str) -> Dict[str, Any]:
    """Coerce supplied typed fields; values that cannot be coerced are nulled with a warning"""
    for name in NUMERIC_LAYOUT_FIELDS:
        value = payload.get(name)
        if value is None:
            continue
        number = _as_number(value)
        if number is None:
            logger.warning(f"Dropping {name}={value!r} from {where}: not a number")
        payload[name] = number

    for name in BOOLEAN_LAYOUT_FIELDS:
        value = payload.get(name)
        if value is None:
            continue
        flag = _as_bool(value)
        if flag is None:
            logger.warning(f"Dropping {name}={value!r} from {where}: not a boolean")
        payload[name] = flag

    for name in TEXT_LAYOUT_FIELDS:
        value = payload.get(name)
        if value is None or isinstance(value, str):
            continue
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            payload[name] = str(value)
        else:
            logger.warning(f"Dropping {name}={value!r} from {where}: not text")
            payload[name] = None
    return payload


def layout_inputs_from_json(candidate) -> Tuple[Optional[StructuredLayoutInput], Optional[FlatLayoutInput], List[Any]]:
    """Split a layout_data.json property entry into its tagged input shapes"""
    if not isinstance(candidate, dict):
        return None, None, []

    structured = None
    raw_groups = candidate.get("building_layouts")
    if isinstance(raw_groups, list) and raw_groups:
        groups = []
        for group_idx, group in enumerate(raw_groups, 1):
            if not isinstance(group, dict):
                logger.warning(f"Skipping building group {group_idx}: not an object")
                continue
            building_layout = group.get("building_layout")
            interior = group.get("interior_layouts")
            groups.append(BuildingGroupInput(
                building_layout=building_layout if isinstance(building_layout, dict) else None,
                interior_layouts=interior if isinstance(interior, list) else [],
            ))
        structured = StructuredLayoutInput(groups)

    flat = None
    raw_spaces = candidate.get("layouts")
    if isinstance(raw_spaces, list):
        flat = FlatLayoutInput(raw_spaces)

    site_features = candidate.get("site_features")
    return structured, flat, site_features if isinstance(site_features, list) else []


class LayoutHierarchyBuilder:
    """Turns structured or flat layout input into an indexed list of layout nodes"""

    def __init__(self, property_type: Optional[str] = None, fallback_areas: Optional[FallbackAreas] = None):
        self.property_type = property_type
        self.fallback_areas = fallback_areas or FallbackAreas()

    def build(
        self,
        structured: Optional[StructuredLayoutInput] = None,
        flat: Optional[FlatLayoutInput] = None,
        site_features: Optional[List[Any]] = None,
    ) -> List[LayoutNode]:
        nodes: List[LayoutNode] = []
        if structured is not None and structured.groups:
            nodes = self._build_structured(structured)
        if not nodes:
            nodes = self._build_flat(flat if flat is not None else FlatLayoutInput([]))
        nodes.extend(self._build_site_features(site_features or []))
        self._assign_indexes(nodes)
        return nodes

    def _build_structured(self, structured: StructuredLayoutInput) -> List[LayoutNode]:
        nodes = []
        for group_idx, group in enumerate(structured.groups, 1):
            building_id = f"building-{group_idx}"
            if group.building_layout is not None:
                payload = clean_layout_payload(dict(group.building_layout), building_id)
            else:
                payload = create_building_payload(self.fallback_areas)
            payload["space_type"] = "Building"
            nodes.append(LayoutNode(id=building_id, role=ROLE_BUILDING, payload=payload))

            for room_idx, entry in enumerate(group.interior_layouts, 1):
                if not isinstance(entry, dict):
                    logger.warning(f"Skipping interior layout {room_idx} of {building_id}: not an object")
                    continue
                room_payload = clean_layout_payload(dict(entry), f"{building_id} interior layout {room_idx}")
                nodes.append(LayoutNode(
                    id=f"{building_id}-room-{room_idx}",
                    role=ROLE_ROOM,
                    payload=room_payload,
                    floor_key=normalize_floor_key(_floor_label_of(room_payload)),
                    parent_id=building_id,
                ))
        return nodes

    def _build_flat(self, flat: FlatLayoutInput) -> List[LayoutNode]:
        nodes = []
        building = None
        if self.property_type != LAND_PARCEL or len(flat.spaces) > 0:
            building = LayoutNode(
                id="building-1",
                role=ROLE_BUILDING,
                payload=create_building_payload(self.fallback_areas),
            )
            nodes.append(building)

        detected_floors = []
        seen_floor_keys = set()
        pending_rooms = []
        for space_idx, entry in enumerate(flat.spaces, 1):
            if not isinstance(entry, dict):
                logger.warning(f"Skipping layout space {space_idx}: not an object")
                continue
            payload = clean_layout_payload(dict(entry), f"layout space {space_idx}")
            payload["space_index"] = None
            label = _floor_label_of(payload)
            floor_key = normalize_floor_key(label)
            if floor_key and floor_key not in seen_floor_keys:
                seen_floor_keys.add(floor_key)
                detected_floors.append((floor_key, label.strip()))
            pending_rooms.append((payload, floor_key))

        if building is None:
            return nodes

        floors_by_key: Dict[str, LayoutNode] = {}
        if len(detected_floors) > 1:
            ordered = sorted(detected_floors, key=lambda item: floor_sort_key(item[0], item[1]))
            for floor_idx, (floor_key, label) in enumerate(ordered, 1):
                floor = LayoutNode(
                    id=f"{building.id}-floor-{floor_idx}",
                    role=ROLE_FLOOR,
                    payload=create_floor_payload(label),
                    floor_key=floor_key,
                    parent_id=building.id,
                )
                floors_by_key[floor_key] = floor
                nodes.append(floor)

        for room_counter, (payload, floor_key) in enumerate(pending_rooms, 1):
            parent = floors_by_key.get(floor_key, building) if floor_key else building
            nodes.append(LayoutNode(
                id=f"{parent.id}-room-{room_counter}",
                role=ROLE_ROOM,
                payload=payload,
                floor_key=floor_key,
                parent_id=parent.id,
            ))
        return nodes

    def _build_site_features(self, site_features: List[Any]) -> List[LayoutNode]:
        nodes = []
        for feature_idx, entry in enumerate(site_features, 1):
            if not isinstance(entry, dict):
                logger.warning(f"Skipping site feature {feature_idx}: not an object")
                continue
            payload = clean_layout_payload(dict(entry), f"site feature {feature_idx}")
            payload.setdefault("is_exterior", True)
            nodes.append(LayoutNode(id=f"site-feature-{feature_idx}", role=ROLE_SITE_FEATURE, payload=payload))
        return nodes

    @staticmethod
    def _assign_indexes(nodes: List[LayoutNode]):
        for space_index, node in enumerate(nodes, 1):
            node.space_index = space_index
            node.payload["space_index"] = space_index


def hierarchy_pairs(nodes: List[LayoutNode]) -> List[Tuple[LayoutNode, LayoutNode]]:
    """(parent, child) for every node with a resolvable parent, in node order"""
    by_id = {node.id: node for node in nodes}
    pairs = []
    for node in nodes:
        if node.parent_id is None:
            continue
        parent = by_id.get(node.parent_id)
        if parent is None:
            logger.warning(f"Layout node {node.id} references unknown parent {node.parent_id}")
            continue
        pairs.append((parent, node))
    return pairs


def write_hierarchy_edges(directory, nodes: List[LayoutNode], edge_writer) -> int:
    """Emit relationship_layout_layout_<n>.json for every parent/child pair"""
    written = 0
    for counter, (parent, child) in enumerate(hierarchy_pairs(nodes), 1):
        if edge_writer.write_edge(directory, f"relationship_layout_layout_{counter}.json", parent.ref, child.ref):
            written += 1
    return written

"""
Whole-diagram transforms used when pasting one diagram into another.

- Bounds: bounding box over every positioned element
- Remap: give every element a fresh id and rewrite all references
- Offset: shift every position and path point

Remap and offset modify the diagram in-place and return it.
"""

from typing import TYPE_CHECKING, Optional

from .models import Position, generate_id

if TYPE_CHECKING:
    from .models import Diagram


def get_diagram_bounds(diagram: "Diagram") -> tuple[float, float, float, float]:
    """
    Get the bounding box of a diagram.

    Returns:
        (min_x, min_y, max_x, max_y); all zero for an empty diagram
    """
    xs: list[float] = []
    ys: list[float] = []

    for element in [*diagram.entities, *diagram.relationships, *diagram.generalizations]:
        xs.extend([element.position.x, element.position.x + element.size.width])
        ys.extend([element.position.y, element.position.y + element.size.height])

    for attribute in diagram.attributes:
        xs.append(attribute.position.x)
        ys.append(attribute.position.y)

    for connection in diagram.connections:
        xs.extend(connection.points[0::2])
        ys.extend(connection.points[1::2])
        for waypoint in connection.waypoints:
            xs.append(waypoint.x)
            ys.append(waypoint.y)
        if connection.label_position:
            xs.append(connection.label_position.x)
            ys.append(connection.label_position.y)

    if not xs:
        return (0, 0, 0, 0)
    return (min(xs), min(ys), max(xs), max(ys))


def remap_diagram_ids(diagram: "Diagram") -> "Diagram":
    """
    Assign fresh ids to every element and update all cross references.

    Embedded attribute records keep the same id as their standalone twin.
    References to ids outside the diagram are left unchanged.
    """
    id_map: dict[str, str] = {}

    def remap(old_id: Optional[str], prefix: str) -> str:
        if old_id not in id_map:
            id_map[old_id] = generate_id(prefix)
        return id_map[old_id]

    def ref(old_id: Optional[str]) -> Optional[str]:
        if old_id is None:
            return None
        return id_map.get(old_id, old_id)

    for entity in diagram.entities:
        entity.id = remap(entity.id, "e")
        for attr in entity.attributes:
            attr.id = remap(attr.id, "a")
    for relationship in diagram.relationships:
        relationship.id = remap(relationship.id, "r")
        for attr in relationship.attributes:
            attr.id = remap(attr.id, "a")

    for relationship in diagram.relationships:
        relationship.entity_ids = [ref(eid) for eid in relationship.entity_ids]
        relationship.cardinalities = {ref(k): v for k, v in relationship.cardinalities.items()}
        relationship.participations = {ref(k): v for k, v in relationship.participations.items()}

    for attribute in diagram.attributes:
        attribute.id = remap(attribute.id, "a")
        attribute.entity_id = ref(attribute.entity_id)
        attribute.relationship_id = ref(attribute.relationship_id)

    for connection in diagram.connections:
        connection.id = remap(connection.id, "c")
        connection.from_id = ref(connection.from_id)
        connection.to_id = ref(connection.to_id)

    for generalization in diagram.generalizations:
        generalization.id = remap(generalization.id, "g")
        generalization.parent_id = ref(generalization.parent_id)
        generalization.child_ids = [ref(cid) for cid in generalization.child_ids]

    return diagram


def apply_offset(diagram: "Diagram", dx: float, dy: float) -> "Diagram":
    """Shift every position, path point and waypoint by (dx, dy)."""
    def shifted(p: Position) -> Position:
        return Position(x=p.x + dx, y=p.y + dy)

    for element in [
        *diagram.entities, *diagram.relationships,
        *diagram.attributes, *diagram.generalizations
    ]:
        element.position = shifted(element.position)

    for connection in diagram.connections:
        connection.points = [
            v + dx if i % 2 == 0 else v + dy
            for i, v in enumerate(connection.points)
        ]
        connection.waypoints = [shifted(wp) for wp in connection.waypoints]
        connection.position = shifted(connection.position)
        if connection.label_position:
            connection.label_position = shifted(connection.label_position)

    return diagram

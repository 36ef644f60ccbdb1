"""
Connection geometry for ER diagrams.

Provides the pure functions that decide where connections attach and how
they are routed:
- Closest edge: which side of an element faces a point
- Best available edge: spread several connections around a relationship
- Orthogonal path: turn a polyline into horizontal/vertical segments

`update_connection_points_on_move` is the only function that modifies its
input; it rewrites the connections touching a moved element in-place and
returns them.
"""

import math
from typing import TYPE_CHECKING, Iterable, Optional, Sequence, Union

from .models import EDGES, ConnectionPoint, ConnectionStyle, Position, Relationship

if TYPE_CHECKING:
    from .models import Connection, Diagram, Entity


# Segments shorter than this on both axes collapse to a single point
DEGENERATE_EPSILON = 0.1

HORIZONTAL_EDGES = (ConnectionPoint.LEFT.value, ConnectionPoint.RIGHT.value)
VERTICAL_EDGES = (ConnectionPoint.TOP.value, ConnectionPoint.BOTTOM.value)

PointLike = Union[Position, tuple[float, float]]


def _xy(point: PointLike) -> tuple[float, float]:
    if isinstance(point, Position):
        return (point.x, point.y)
    return (point[0], point[1])


def element_center(element) -> tuple[float, float]:
    """Center of anything with a `position` and a `size`."""
    return (
        element.position.x + element.size.width / 2,
        element.position.y + element.size.height / 2,
    )


def closest_edge(point: PointLike, element) -> str:
    """
    Pick the edge of `element` that faces `point`.

    Compares the raw center offsets, without normalizing by the element's
    size, so the result always agrees with the direction chosen by
    `to_orthogonal_path` for the same offsets.

    Args:
        point: Target point
        element: Anything with `position` and `size`

    Returns:
        One of "top", "right", "bottom", "left"
    """
    px, py = _xy(point)
    cx, cy = element_center(element)
    dx = px - cx
    dy = py - cy

    if abs(dx) >= abs(dy):
        return ConnectionPoint.RIGHT.value if dx > 0 else ConnectionPoint.LEFT.value
    return ConnectionPoint.BOTTOM.value if dy > 0 else ConnectionPoint.TOP.value


def edge_midpoint(element, edge: str) -> tuple[float, float]:
    """Midpoint of one edge of the element's bounding box."""
    pos = connection_point_position(element, edge)
    return (pos.x, pos.y)


def used_edges(element_id: str, connections: Iterable["Connection"]) -> set[str]:
    """Edges of `element_id` already taken by the given connections."""
    used: set[str] = set()
    for connection in connections:
        if connection.from_id == element_id:
            used.add(connection.from_point)
        if connection.to_id == element_id:
            used.add(connection.to_point)
    return used


def best_available_edge(
    element_id: str,
    connections: Iterable["Connection"],
    point: PointLike,
    element
) -> str:
    """
    Pick an edge of `element` for a new link, avoiding edges already in use.

    The free edge facing the point wins (offsets normalized by the element's
    width/height so wide diamonds behave). If that edge is taken, the free
    edge whose midpoint is nearest to the point is used. Once all four edges
    are taken, edges are reused and plain `closest_edge` decides.

    Args:
        element_id: Id of the element being attached to
        connections: Existing connections to inspect
        point: Where the other end of the new link is
        element: The element itself (position and size)

    Returns:
        One of "top", "right", "bottom", "left"
    """
    used = used_edges(element_id, connections)
    available = [edge for edge in EDGES if edge not in used]
    if not available:
        return closest_edge(point, element)

    px, py = _xy(point)
    cx, cy = element_center(element)
    dx = px - cx
    dy = py - cy
    width = element.size.width or 1
    height = element.size.height or 1

    if abs(dx) / width >= abs(dy) / height:
        preferred = ConnectionPoint.RIGHT.value if dx > 0 else ConnectionPoint.LEFT.value
    else:
        preferred = ConnectionPoint.BOTTOM.value if dy > 0 else ConnectionPoint.TOP.value

    if preferred in available:
        return preferred

    # min() keeps the first edge on ties, so EDGES order breaks them
    return min(
        available,
        key=lambda edge: math.dist((px, py), edge_midpoint(element, edge))
    )


def _route_segment(
    x1: float, y1: float, x2: float, y2: float, horizontal_first: bool
) -> list[float]:
    """Three-leg Manhattan route from (x1, y1) to (x2, y2), start excluded."""
    if horizontal_first:
        mid_x = x1 + (x2 - x1) / 2
        return [mid_x, y1, mid_x, y2, x2, y2]
    mid_y = y1 + (y2 - y1) / 2
    return [x1, mid_y, x2, mid_y, x2, y2]


def to_orthogonal_path(
    points: Sequence[float],
    from_edge: Optional[str] = None,
    to_edge: Optional[str] = None
) -> list[float]:
    """
    Convert a polyline into a path made of horizontal and vertical segments.

    Each pair of consecutive points is routed on its own and the results are
    concatenated, so waypoints are honoured. When both edge hints are given,
    the first segment leaves the source orthogonally to its edge: a left/right
    edge starts horizontally, a top/bottom edge vertically. Every other
    segment starts along its dominant axis (horizontal when |dx| >= |dy|).

    Args:
        points: Flat list [x1, y1, x2, y2, ...]
        from_edge: Edge the path leaves from, if known
        to_edge: Edge the path arrives at, if known

    Returns:
        Flat list of the routed path. The first and last coordinates are
        those of the input. Fewer than two points are returned unchanged.

    Raises:
        ValueError: If `points` has an odd number of coordinates
    """
    if len(points) % 2:
        raise ValueError(f"Expected an even number of coordinates, got {len(points)}")
    if len(points) < 4:
        return list(points)

    hinted = (
        from_edge in HORIZONTAL_EDGES + VERTICAL_EDGES
        and to_edge in HORIZONTAL_EDGES + VERTICAL_EDGES
    )

    result = [points[0], points[1]]
    for i in range(0, len(points) - 3, 2):
        x1, y1, x2, y2 = points[i], points[i + 1], points[i + 2], points[i + 3]
        dx = x2 - x1
        dy = y2 - y1

        if abs(dx) < DEGENERATE_EPSILON and abs(dy) < DEGENERATE_EPSILON:
            if (result[-2], result[-1]) != (x2, y2):
                result.extend([x2, y2])
            continue

        if i == 0 and hinted:
            horizontal_first = from_edge in HORIZONTAL_EDGES
        else:
            horizontal_first = abs(dx) >= abs(dy)

        result.extend(_route_segment(x1, y1, x2, y2, horizontal_first))

    return result


def connection_point_position(element, point: str) -> Position:
    """
    Coordinates of an attachment point on an element.

    For rectangles these are the edge midpoints; for relationship diamonds
    they are the vertices, which sit at the same coordinates.
    """
    cx, cy = element_center(element)
    x, y = element.position.x, element.position.y

    if point == ConnectionPoint.TOP.value:
        return Position(x=cx, y=y)
    if point == ConnectionPoint.RIGHT.value:
        return Position(x=x + element.size.width, y=cy)
    if point == ConnectionPoint.BOTTOM.value:
        return Position(x=cx, y=y + element.size.height)
    if point == ConnectionPoint.LEFT.value:
        return Position(x=x, y=cy)
    return Position(x=cx, y=cy)


def build_connection_points(
    from_pos: Position,
    waypoints: Sequence[Position],
    to_pos: Position
) -> list[float]:
    """Flat path: from -> waypoints -> to."""
    points = [from_pos.x, from_pos.y]
    for waypoint in waypoints:
        points.extend([waypoint.x, waypoint.y])
    points.extend([to_pos.x, to_pos.y])
    return points


def refresh_connection_path(connection: "Connection", from_element, to_element) -> None:
    """Rebuild a connection's points and bounding-box origin from its current edges."""
    from_pos = connection_point_position(from_element, connection.from_point)
    to_pos = connection_point_position(to_element, connection.to_point)
    connection.points = build_connection_points(from_pos, connection.waypoints, to_pos)
    connection.position = Position(
        x=min(from_pos.x, to_pos.x),
        y=min(from_pos.y, to_pos.y)
    )


def route_connection(connection: "Connection") -> list[float]:
    """The path to draw for a connection, honouring its style."""
    if connection.style == ConnectionStyle.ORTHOGONAL.value:
        return to_orthogonal_path(connection.points, connection.from_point, connection.to_point)
    return list(connection.points)


def pick_edge(
    diagram: "Diagram",
    element: Union["Entity", Relationship],
    toward: PointLike,
    exclude_connection_id: Optional[str] = None
) -> str:
    """
    Choose the attachment edge of `element` for a link heading to `toward`.

    Relationships spread their links over free edges; entities use the
    closest edge.
    """
    if isinstance(element, Relationship):
        others = [
            c for c in diagram.connections
            if c.id != exclude_connection_id and c.touches(element.id)
        ]
        return best_available_edge(element.id, others, toward, element)
    return closest_edge(toward, element)


def update_connection_points_on_move(diagram: "Diagram", element_id: str) -> list["Connection"]:
    """
    Re-attach every connection touching a moved element.

    Both endpoint edges are recomputed against the other element's center,
    the path is rebuilt as [from, *waypoints, to], and the bounding-box
    origin is reset to the min of the endpoint coordinates.

    Args:
        diagram: Diagram holding the element and its connections
        element_id: Id of the entity or relationship that moved

    Returns:
        The connections that were updated (modified in-place)
    """
    moved = diagram.get_element(element_id)
    if moved is None:
        return []

    updated: list["Connection"] = []
    for connection in diagram.connections_for(element_id):
        other = diagram.get_element(connection.other_end(element_id))
        if other is None:
            continue

        from_element = moved if connection.from_id == element_id else other
        to_element = moved if connection.to_id == element_id else other

        connection.from_point = pick_edge(
            diagram, from_element, element_center(to_element), connection.id
        )
        connection.to_point = pick_edge(
            diagram, to_element, element_center(from_element), connection.id
        )
        refresh_connection_path(connection, from_element, to_element)
        updated.append(connection)

    return updated

"""Tests for connection geometry: edge choice and orthogonal routing."""

import pytest

from erd_core.geometry import (
    best_available_edge,
    build_connection_points,
    closest_edge,
    connection_point_position,
    route_connection,
    to_orthogonal_path,
    update_connection_points_on_move,
)
from erd_core.models import (
    Connection,
    Diagram,
    Entity,
    Position,
    Relationship,
    Size,
)


def _box(x=0, y=0, width=100, height=100) -> Entity:
    return Entity(position=Position(x=x, y=y), size=Size(width=width, height=height))


def _is_orthogonal(points: list[float]) -> bool:
    pairs = list(zip(points[0::2], points[1::2]))
    return all(a[0] == b[0] or a[1] == b[1] for a, b in zip(pairs, pairs[1:]))


class TestClosestEdge:
    """Tests for closest_edge."""

    def test_point_to_the_right(self):
        assert closest_edge((110, 50), _box()) == "right"

    def test_each_direction(self):
        box = _box()
        assert closest_edge((-20, 50), box) == "left"
        assert closest_edge((50, -20), box) == "top"
        assert closest_edge((50, 180), box) == "bottom"

    def test_diagonal_tie_prefers_horizontal(self):
        """|dx| == |dy| picks a left/right edge."""
        assert closest_edge((100, 100), _box()) == "right"
        assert closest_edge((0, 0), _box()) == "left"

    def test_raw_offsets_not_normalized(self):
        """A wide box still uses raw distances from its center."""
        wide = _box(width=400, height=40)
        # center (200, 20); dx=150, dy=160
        assert closest_edge((350, 180), wide) == "bottom"

    def test_accepts_position(self):
        assert closest_edge(Position(x=50, y=-10), _box()) == "top"


class TestBestAvailableEdge:
    """Tests for best_available_edge."""

    def _diamond(self) -> Relationship:
        return Relationship(id="r1", position=Position(x=0, y=0))  # 120x80, center (60, 40)

    def test_free_facing_edge_wins(self):
        diamond = self._diamond()
        assert best_available_edge("r1", [], (60, -100), diamond) == "top"

    def test_taken_edge_is_avoided(self):
        diamond = self._diamond()
        used = [Connection(from_id="r1", to_id="e1", from_point="top")]
        edge = best_available_edge("r1", used, (60, -100), diamond)
        assert edge != "top"
        # right and left midpoints are equidistant; EDGES order breaks the tie
        assert edge == "right"

    def test_edges_used_as_target_count(self):
        diamond = self._diamond()
        used = [Connection(from_id="e1", to_id="r1", to_point="top")]
        assert best_available_edge("r1", used, (60, -100), diamond) != "top"

    def test_all_edges_used_falls_back_to_closest(self):
        diamond = self._diamond()
        used = [
            Connection(from_id="r1", to_id=f"e{i}", from_point=edge)
            for i, edge in enumerate(["top", "right", "bottom", "left"])
        ]
        assert best_available_edge("r1", used, (60, -100), diamond) == "top"

    def test_normalized_by_size(self):
        """Offsets are scaled by width/height before comparing."""
        diamond = self._diamond()
        # dx=90 (0.75 of width), dy=70 (0.875 of height)
        assert best_available_edge("r1", [], (150, 110), diamond) == "bottom"

    def test_other_elements_connections_ignored(self):
        diamond = self._diamond()
        used = [Connection(from_id="r2", to_id="e1", from_point="top")]
        assert best_available_edge("r1", used, (60, -100), diamond) == "top"


class TestOrthogonalPath:
    """Tests for to_orthogonal_path."""

    def test_horizontal_dominant(self):
        assert to_orthogonal_path([0, 0, 100, 50]) == [0, 0, 50, 0, 50, 50, 100, 50]

    def test_vertical_dominant(self):
        assert to_orthogonal_path([0, 0, 50, 100]) == [0, 0, 0, 50, 50, 50, 50, 100]

    def test_endpoints_preserved(self):
        points = [12, 7, 140, 90, 160, 300, 20, 310]
        result = to_orthogonal_path(points)
        assert result[:2] == points[:2]
        assert result[-2:] == points[-2:]

    def test_every_segment_axis_aligned(self):
        result = to_orthogonal_path([0, 0, 100, 50, 100, 150, -40, 160])
        assert _is_orthogonal(result)

    def test_waypoints_are_honoured(self):
        result = to_orthogonal_path([0, 0, 100, 50, 100, 150])
        pairs = list(zip(result[0::2], result[1::2]))
        assert (100, 50) in pairs

    def test_vertical_source_edge_starts_vertically(self):
        result = to_orthogonal_path([0, 0, 100, 50], "top", "left")
        assert result == [0, 0, 0, 25, 100, 25, 100, 50]

    def test_horizontal_source_edge_starts_horizontally(self):
        result = to_orthogonal_path([0, 0, 50, 100], "right", "top")
        assert result == [0, 0, 25, 0, 25, 100, 50, 100]

    def test_single_hint_is_ignored(self):
        assert to_orthogonal_path([0, 0, 100, 50], "top") == [0, 0, 50, 0, 50, 50, 100, 50]

    def test_degenerate_segment_collapses(self):
        assert to_orthogonal_path([10, 10, 10.05, 10.05]) == [10, 10, 10.05, 10.05]
        assert to_orthogonal_path([10, 10, 10, 10]) == [10, 10]

    def test_short_input_returned_unchanged(self):
        assert to_orthogonal_path([]) == []
        assert to_orthogonal_path([5, 5]) == [5, 5]

    def test_odd_length_rejected(self):
        with pytest.raises(ValueError, match="even number"):
            to_orthogonal_path([0, 0, 100, 50, 7])


class TestConnectionPoints:
    """Tests for attachment coordinates and path building."""

    def test_edge_midpoints(self):
        entity = Entity(position=Position(x=10, y=20))  # 150x80
        assert connection_point_position(entity, "top") == Position(x=85, y=20)
        assert connection_point_position(entity, "right") == Position(x=160, y=60)
        assert connection_point_position(entity, "bottom") == Position(x=85, y=100)
        assert connection_point_position(entity, "left") == Position(x=10, y=60)
        assert connection_point_position(entity, "center") == Position(x=85, y=60)

    def test_build_points_with_waypoints(self):
        points = build_connection_points(
            Position(x=0, y=0), [Position(x=5, y=6)], Position(x=10, y=10)
        )
        assert points == [0, 0, 5, 6, 10, 10]

    def test_route_connection_respects_style(self):
        connection = Connection(from_id="a", to_id="b", points=[0, 0, 100, 50])
        assert route_connection(connection) == [0, 0, 100, 50]
        connection.style = "orthogonal"
        connection.from_point = "right"
        connection.to_point = "left"
        assert route_connection(connection) == [0, 0, 50, 0, 50, 50, 100, 50]


class TestUpdateOnMove:
    """Tests for update_connection_points_on_move."""

    def _diagram(self):
        entity = Entity(id="e1", position=Position(x=0, y=0))
        relationship = Relationship(id="r1", position=Position(x=300, y=0))
        connection = Connection(id="c1", from_id="e1", to_id="r1", from_point="right", to_point="left")
        diagram = Diagram(entities=[entity], relationships=[relationship], connections=[connection])
        return diagram, entity, connection

    def test_reattaches_after_move(self):
        diagram, entity, connection = self._diagram()
        entity.position = Position(x=0, y=300)

        updated = update_connection_points_on_move(diagram, "e1")

        assert updated == [connection]
        assert connection.from_point == "top"
        assert connection.to_point == "bottom"
        assert connection.points == [75, 300, 360, 80]
        assert connection.position == Position(x=75, y=80)

    def test_waypoints_kept_in_path(self):
        diagram, entity, connection = self._diagram()
        connection.waypoints = [Position(x=200, y=200)]
        update_connection_points_on_move(diagram, "e1")
        assert connection.points[2:4] == [200, 200]

    def test_dangling_connection_skipped(self):
        diagram, _, connection = self._diagram()
        connection.to_id = "missing"
        before = list(connection.points)
        assert update_connection_points_on_move(diagram, "e1") == []
        assert connection.points == before

    def test_unknown_element(self):
        diagram, _, _ = self._diagram()
        assert update_connection_points_on_move(diagram, "nope") == []

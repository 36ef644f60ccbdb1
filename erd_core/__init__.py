"""
ER Diagram Core - Models, validation, connection geometry and analysis.

This module provides the diagram logic shared by the mutation layer and the
HTTP API, so every client sees the same warnings and the same routed paths.
"""

from .models import (
    # Enums
    ConnectionPoint,
    ConnectionStyle,
    Cardinality,
    Participation,
    EDGES,
    # Core models
    Position,
    Size,
    EntityOwner,
    RelationshipOwner,
    AttributeOwner,
    EntityAttribute,
    Entity,
    Relationship,
    Attribute,
    Connection,
    Generalization,
    Diagram,
)

from .geometry import (
    closest_edge,
    best_available_edge,
    to_orthogonal_path,
    connection_point_position,
    build_connection_points,
    route_connection,
    update_connection_points_on_move,
)
from .validation import (
    validate_entity,
    validate_relationship,
    validate_attribute,
    validate_connection,
    validate_generalization,
    validate_diagram,
    validation_summary,
    ValidationIssue,
    ValidationOptions,
    IssueSeverity,
)
from .analysis import summarize_diagram, find_connected_components
from .transform import get_diagram_bounds, remap_diagram_ids, apply_offset

__all__ = [
    # Enums
    "ConnectionPoint",
    "ConnectionStyle",
    "Cardinality",
    "Participation",
    "EDGES",
    # Models
    "Position",
    "Size",
    "EntityOwner",
    "RelationshipOwner",
    "AttributeOwner",
    "EntityAttribute",
    "Entity",
    "Relationship",
    "Attribute",
    "Connection",
    "Generalization",
    "Diagram",
    # Geometry
    "closest_edge",
    "best_available_edge",
    "to_orthogonal_path",
    "connection_point_position",
    "build_connection_points",
    "route_connection",
    "update_connection_points_on_move",
    # Validation
    "validate_entity",
    "validate_relationship",
    "validate_attribute",
    "validate_connection",
    "validate_generalization",
    "validate_diagram",
    "validation_summary",
    "ValidationIssue",
    "ValidationOptions",
    "IssueSeverity",
    # Analysis
    "summarize_diagram",
    "find_connected_components",
    # Transforms
    "get_diagram_bounds",
    "remap_diagram_ids",
    "apply_offset",
]

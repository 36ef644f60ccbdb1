"""
Core data models for ER (Chen-notation) diagrams.

These models define the canonical schema for diagrams:
- Entities and relationships with their embedded attribute records
- Standalone attributes (the positioned canvas twins of embedded records)
- Connections between entities and relationships
- Generalization (ISA) hierarchies

Field Naming Convention:
- Python attributes are snake_case (`from_id`, `is_key`, `entity_ids`)
- The editor front end speaks camelCase (`fromId`, `isKey`, `entityIds`);
  both spellings are accepted on input and `to_json_dict()` emits camelCase
- For backward compatibility, `isPartialKey` is accepted as `isDiscriminant`
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
import uuid


class ConnectionPoint(str, Enum):
    """Attachment points on an entity or relationship."""
    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"
    LEFT = "left"
    CENTER = "center"


class ConnectionStyle(str, Enum):
    """How a connection is drawn."""
    STRAIGHT = "straight"
    CURVED = "curved"
    ORTHOGONAL = "orthogonal"


class Cardinality(str, Enum):
    """Per-entity cardinality inside a relationship."""
    ONE = "1"
    N = "N"
    M = "M"


class Participation(str, Enum):
    """Whether every entity instance must take part in the relationship."""
    PARTIAL = "partial"
    TOTAL = "total"


# The four edges an element exposes, in tie-break order
EDGES = (
    ConnectionPoint.TOP.value,
    ConnectionPoint.RIGHT.value,
    ConnectionPoint.BOTTOM.value,
    ConnectionPoint.LEFT.value,
)

DEFAULT_ENTITY_SIZE = (150, 80)
DEFAULT_RELATIONSHIP_SIZE = (120, 80)
DEFAULT_GENERALIZATION_SIZE = (60, 40)


def generate_id(prefix: str) -> str:
    """Generate a unique element ID with a kind prefix."""
    return f"{prefix}{uuid.uuid4().hex[:8]}"


def _convert_partial_key(data: Any) -> Any:
    """Convert the legacy 'isPartialKey' flag to 'isDiscriminant'."""
    if isinstance(data, dict) and 'isPartialKey' in data:
        if 'isDiscriminant' not in data and 'is_discriminant' not in data:
            data = dict(data)
            data['isDiscriminant'] = data.pop('isPartialKey')
    return data


class ERModel(BaseModel):
    """Base model accepting both snake_case and camelCase field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Position(ERModel):
    x: float = 0
    y: float = 0


class Size(ERModel):
    width: float
    height: float


class EntityOwner(ERModel):
    """Attribute owned by an entity."""
    kind: Literal["entity"] = "entity"
    id: str


class RelationshipOwner(ERModel):
    """Attribute owned by a relationship."""
    kind: Literal["relationship"] = "relationship"
    id: str


AttributeOwner = Annotated[Union[EntityOwner, RelationshipOwner], Field(discriminator="kind")]


class EntityAttribute(ERModel):
    """Attribute record embedded in its owning entity or relationship."""
    id: str = Field(default_factory=lambda: generate_id("a"))
    name: str
    is_key: bool = False
    is_discriminant: bool = False  # Weak key / partial key
    is_multivalued: bool = False
    is_derived: bool = False

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        return _convert_partial_key(data)


class Entity(ERModel):
    """An entity (rectangle)."""
    id: str = Field(default_factory=lambda: generate_id("e"))
    type: Literal["entity"] = "entity"
    name: str = "New Entity"
    attributes: list[EntityAttribute] = Field(default_factory=list)
    is_weak: bool = False
    position: Position = Field(default_factory=Position)
    size: Size = Field(default_factory=lambda: Size(width=DEFAULT_ENTITY_SIZE[0], height=DEFAULT_ENTITY_SIZE[1]))
    rotation: float = 0.0
    # Cached validation results
    has_warning: bool = False
    warnings: list[str] = Field(default_factory=list)

    def center(self) -> tuple[float, float]:
        """Get the center point of the entity."""
        return (self.position.x + self.size.width / 2, self.position.y + self.size.height / 2)


class Relationship(ERModel):
    """A relationship (diamond)."""
    id: str = Field(default_factory=lambda: generate_id("r"))
    type: Literal["relationship"] = "relationship"
    name: str = "New Relationship"
    entity_ids: list[str] = Field(default_factory=list)
    attributes: list[EntityAttribute] = Field(default_factory=list)
    cardinalities: dict[str, str] = Field(default_factory=dict)    # entity_id -> '1' | 'N' | 'M'
    participations: dict[str, str] = Field(default_factory=dict)   # entity_id -> 'partial' | 'total'
    is_weak: bool = False  # Identifying relationship (double border)
    position: Position = Field(default_factory=Position)
    size: Size = Field(default_factory=lambda: Size(width=DEFAULT_RELATIONSHIP_SIZE[0], height=DEFAULT_RELATIONSHIP_SIZE[1]))
    rotation: float = 0.0
    has_warning: bool = False
    warnings: list[str] = Field(default_factory=list)

    def center(self) -> tuple[float, float]:
        """Get the center point of the relationship."""
        return (self.position.x + self.size.width / 2, self.position.y + self.size.height / 2)


class Attribute(ERModel):
    """
    A standalone, positioned attribute (ellipse).

    Twin of an EntityAttribute embedded in its owner; both records share the
    same id and are kept in sync by the mutation layer. Exactly one of
    `entity_id` / `relationship_id` should be set. Diagrams built by an
    importer may violate that, which is why validation checks it explicitly.
    """
    id: str = Field(default_factory=lambda: generate_id("a"))
    type: Literal["attribute"] = "attribute"
    name: str
    is_key: bool = False
    is_discriminant: bool = False
    is_multivalued: bool = False
    is_derived: bool = False
    entity_id: Optional[str] = None
    relationship_id: Optional[str] = None
    position: Position = Field(default_factory=Position)
    has_warning: bool = False
    warnings: list[str] = Field(default_factory=list)

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        return _convert_partial_key(data)

    @property
    def owner(self) -> Optional[Union[EntityOwner, RelationshipOwner]]:
        """The tagged owner, or None when ownership is missing or ambiguous."""
        if self.entity_id and not self.relationship_id:
            return EntityOwner(id=self.entity_id)
        if self.relationship_id and not self.entity_id:
            return RelationshipOwner(id=self.relationship_id)
        return None

    def embedded(self) -> EntityAttribute:
        """Build the embedded record mirroring this attribute."""
        return EntityAttribute(
            id=self.id,
            name=self.name,
            is_key=self.is_key,
            is_discriminant=self.is_discriminant,
            is_multivalued=self.is_multivalued,
            is_derived=self.is_derived,
        )


class Connection(ERModel):
    """
    A link between an entity and a relationship.

    `points` is the flat path [x1, y1, ..., xn, yn]; its first and last pairs
    are the attachment coordinates of `from_point` / `to_point`.
    """
    id: str = Field(default_factory=lambda: generate_id("c"))
    type: Literal["connection"] = "connection"
    from_id: str
    to_id: str
    from_point: str = ConnectionPoint.RIGHT.value
    to_point: str = ConnectionPoint.LEFT.value
    points: list[float] = Field(default_factory=list)
    waypoints: list[Position] = Field(default_factory=list)
    style: str = ConnectionStyle.STRAIGHT.value
    cardinality: Optional[str] = Cardinality.ONE.value     # At the 'to' end
    participation: Optional[str] = Participation.PARTIAL.value
    label_position: Optional[Position] = None
    position: Position = Field(default_factory=Position)   # Bounding box origin

    def touches(self, element_id: str) -> bool:
        return self.from_id == element_id or self.to_id == element_id

    def other_end(self, element_id: str) -> str:
        return self.to_id if self.from_id == element_id else self.from_id


class Generalization(ERModel):
    """An ISA hierarchy: one parent entity specialized into child entities."""
    id: str = Field(default_factory=lambda: generate_id("g"))
    type: Literal["generalization"] = "generalization"
    parent_id: str
    child_ids: list[str] = Field(default_factory=list)
    is_total: bool = False  # Total (double line) vs partial
    position: Position = Field(default_factory=Position)
    size: Size = Field(default_factory=lambda: Size(width=DEFAULT_GENERALIZATION_SIZE[0], height=DEFAULT_GENERALIZATION_SIZE[1]))


class Diagram(ERModel):
    """
    The complete diagram aggregate.
    This is the unit of validation and the unit undo/redo snapshots.
    """
    id: str = Field(default_factory=lambda: f"diagram-{uuid.uuid4().hex[:8]}")
    name: str = "Untitled Diagram"
    entities: list[Entity] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    attributes: list[Attribute] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    generalizations: list[Generalization] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        """Convert to a JSON-serializable dict with front-end field names."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_json_dict(cls, data: dict) -> "Diagram":
        """Create a Diagram from a JSON dict (either field spelling)."""
        return cls.model_validate(data)

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        for entity in self.entities:
            if entity.id == entity_id:
                return entity
        return None

    def get_relationship(self, relationship_id: str) -> Optional[Relationship]:
        for relationship in self.relationships:
            if relationship.id == relationship_id:
                return relationship
        return None

    def get_element(self, element_id: str) -> Optional[Union[Entity, Relationship]]:
        """Get the entity or relationship a connection may point at."""
        return self.get_entity(element_id) or self.get_relationship(element_id)

    def get_attribute(self, attribute_id: str) -> Optional[Attribute]:
        for attribute in self.attributes:
            if attribute.id == attribute_id:
                return attribute
        return None

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        for connection in self.connections:
            if connection.id == connection_id:
                return connection
        return None

    def get_generalization(self, generalization_id: str) -> Optional[Generalization]:
        for generalization in self.generalizations:
            if generalization.id == generalization_id:
                return generalization
        return None

    def connections_for(self, element_id: str) -> list[Connection]:
        """All connections with `element_id` at either end."""
        return [c for c in self.connections if c.touches(element_id)]

    def isa_child_ids(self) -> set[str]:
        """Ids of every entity that is a child in some generalization."""
        return {cid for g in self.generalizations for cid in g.child_ids}


# --- API Request/Response Models ---

class DiagramInfoRequest(ERModel):
    """Request to update diagram metadata."""
    name: Optional[str] = None


class CreateEntityRequest(ERModel):
    """Request to create a new entity."""
    position: Position = Field(default_factory=Position)
    name: Optional[str] = None
    is_weak: bool = False


class UpdateEntityRequest(ERModel):
    """Request to update an existing entity (partial update)."""
    name: Optional[str] = None
    is_weak: Optional[bool] = None
    position: Optional[Position] = None
    size: Optional[Size] = None
    rotation: Optional[float] = None


class CreateRelationshipRequest(ERModel):
    """Request to create a new relationship."""
    position: Position = Field(default_factory=Position)
    name: Optional[str] = None
    is_weak: bool = False


class UpdateRelationshipRequest(ERModel):
    """Request to update an existing relationship (partial update)."""
    name: Optional[str] = None
    is_weak: Optional[bool] = None
    position: Optional[Position] = None
    size: Optional[Size] = None
    rotation: Optional[float] = None


class CreateAttributeRequest(ERModel):
    """Request to add an attribute to an entity or relationship."""
    owner: AttributeOwner
    name: str
    is_key: bool = False
    is_discriminant: bool = False
    is_multivalued: bool = False
    is_derived: bool = False
    position: Optional[Position] = None

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        return _convert_partial_key(data)


class UpdateAttributeRequest(ERModel):
    """Request to update an attribute (partial update)."""
    name: Optional[str] = None
    is_key: Optional[bool] = None
    is_discriminant: Optional[bool] = None
    is_multivalued: Optional[bool] = None
    is_derived: Optional[bool] = None
    position: Optional[Position] = None


class CreateConnectionRequest(ERModel):
    """Request to connect an entity and a relationship."""
    from_id: str
    to_id: str
    from_point: Optional[str] = None  # "top", "right", "bottom", "left", "center" or None for auto
    to_point: Optional[str] = None
    waypoints: list[Position] = Field(default_factory=list)
    style: str = ConnectionStyle.STRAIGHT.value
    cardinality: Optional[str] = Cardinality.ONE.value
    participation: Optional[str] = Participation.PARTIAL.value


class UpdateConnectionRequest(ERModel):
    """Request to update an existing connection."""
    from_point: Optional[str] = None
    to_point: Optional[str] = None
    waypoints: Optional[list[Position]] = None
    style: Optional[str] = None
    cardinality: Optional[str] = None
    participation: Optional[str] = None
    label_position: Optional[Position] = None


class WaypointRequest(ERModel):
    """Request to add or move a connection waypoint."""
    position: Position
    index: Optional[int] = None


class CreateGeneralizationRequest(ERModel):
    """Request to create an ISA hierarchy."""
    parent_id: str
    child_ids: list[str] = Field(default_factory=list)
    is_total: bool = False
    position: Optional[Position] = None


class UpdateGeneralizationRequest(ERModel):
    """Request to update an ISA hierarchy."""
    is_total: Optional[bool] = None
    position: Optional[Position] = None
    size: Optional[Size] = None


class ClosestEdgeRequest(ERModel):
    """Geometry query: which edge of a box faces a point."""
    point: Position
    position: Position
    size: Size


class OrthogonalPathRequest(ERModel):
    """Geometry query: route a polyline orthogonally."""
    points: list[float]
    from_edge: Optional[str] = None
    to_edge: Optional[str] = None

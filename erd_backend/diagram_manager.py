"""
Diagram Manager - Mutation layer for the ER diagram being edited.

This module implements:
- Single diagram state management (one diagram open at a time)
- Create/update/delete for every element kind with complete cascading deletes
- Connection re-attachment whenever an entity or relationship moves
- Inline re-validation of the affected elements when validation is enabled
- Linear undo/redo history using whole-diagram snapshots

Every mutation runs to completion before returning; there are no deferred
updates.
"""

import logging
import os
from typing import Callable, Iterable, Optional, Union

from erd_core.geometry import (
    connection_point_position,
    element_center,
    pick_edge,
    refresh_connection_path,
    update_connection_points_on_move,
)
from erd_core.models import (
    EDGES,
    Attribute,
    AttributeOwner,
    Cardinality,
    Connection,
    ConnectionStyle,
    Diagram,
    Entity,
    EntityOwner,
    Generalization,
    Participation,
    Position,
    Relationship,
    RelationshipOwner,
)
from erd_core.transform import apply_offset, remap_diagram_ids
from erd_core.validation import (
    ValidationIssue,
    ValidationOptions,
    apply_warnings,
    clear_warnings,
    env_flag,
    is_valid_attribute_name,
    is_valid_entity_name,
    is_valid_relationship_name,
    validate_diagram,
)

logger = logging.getLogger(__name__)

# New attributes are stacked to the right of their owner
ATTRIBUTE_OFFSET_X = 40
ATTRIBUTE_OFFSET_Y = 20
ATTRIBUTE_SPACING = 30

ATTRIBUTE_FLAGS = ("name", "is_key", "is_discriminant", "is_multivalued", "is_derived")
ENTITY_FIELDS = ("name", "is_weak", "position", "size", "rotation")
RELATIONSHIP_FIELDS = ("name", "is_weak", "position", "size", "rotation")
CONNECTION_FIELDS = (
    "from_point", "to_point", "waypoints", "style",
    "cardinality", "participation", "label_position",
)
GENERALIZATION_FIELDS = ("is_total", "position", "size")

ParticipantElement = Union[Entity, Relationship]


class DiagramManager:
    """
    Manages a single ER diagram's state, history and derived data.

    The history system works via snapshots:
    - Each mutation first records a full dump of the diagram
    - Undo restores the previous snapshot
    - Redo re-applies a snapshot from the future stack

    Snapshots are opaque; restoring one never runs validation or geometry.
    """

    def __init__(
        self,
        max_history: int = 50,
        validation_enabled: bool = False,
        options: Optional[ValidationOptions] = None
    ):
        self._diagram: Optional[Diagram] = None
        self._history: list[dict] = []  # Past states (snapshots)
        self._future: list[dict] = []   # Future states (for redo)
        self._max_history = max_history
        self._validation_enabled = validation_enabled
        self._options = options or ValidationOptions()
        self._on_change_callbacks: list[Callable] = []
        self._next_entity_number = 1
        self._next_relationship_number = 1

    # --- Properties ---

    @property
    def diagram(self) -> Optional[Diagram]:
        """Get the current diagram."""
        return self._diagram

    @property
    def validation_enabled(self) -> bool:
        return self._validation_enabled

    @property
    def options(self) -> ValidationOptions:
        return self._options

    @property
    def can_undo(self) -> bool:
        """Check if undo is available."""
        return len(self._history) > 0

    @property
    def can_redo(self) -> bool:
        """Check if redo is available."""
        return len(self._future) > 0

    # --- Change Callbacks ---

    def on_change(self, callback: Callable):
        """Register a callback for diagram changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback()

    # --- Internal helpers ---

    def _require(self) -> Diagram:
        if self._diagram is None:
            raise ValueError("No diagram open")
        return self._diagram

    def _save_to_history(self):
        """Save current state to history before a mutation."""
        if self._diagram is None:
            return

        # A new action invalidates the redo stack
        self._future.clear()
        self._history.append(self._diagram.model_dump())

        if len(self._history) > self._max_history:
            self._history.pop(0)

    def _affected(self, element_ids: Iterable[Optional[str]]) -> set[str]:
        """Expand element ids to everything whose warnings may depend on them."""
        diagram = self._require()
        affected: set[str] = set()

        for element_id in element_ids:
            if not element_id:
                continue
            affected.add(element_id)

            attribute = diagram.get_attribute(element_id)
            if attribute is not None:
                affected.update(x for x in (attribute.entity_id, attribute.relationship_id) if x)
                continue

            for connection in diagram.connections_for(element_id):
                affected.add(connection.other_end(element_id))

            relationship = diagram.get_relationship(element_id)
            if relationship is not None:
                affected.update(relationship.entity_ids)

            affected.update(r.id for r in diagram.relationships if element_id in r.entity_ids)
            affected.update(
                a.id for a in diagram.attributes
                if element_id in (a.entity_id, a.relationship_id)
            )
            for generalization in diagram.generalizations:
                if element_id == generalization.parent_id or element_id in generalization.child_ids:
                    affected.add(generalization.parent_id)
                    affected.update(generalization.child_ids)

        return affected

    def _commit(self, *element_ids: Optional[str]):
        """Finish a mutation: refresh warnings of affected elements, notify."""
        if self._validation_enabled:
            apply_warnings(self._diagram, self._affected(element_ids), self._options)
        self._notify_change()

    def _dedupe_names(self, incoming: list, existing: list):
        """Suffix pasted names that clash with names already in the diagram."""
        taken = {element.name.strip().lower() for element in existing}
        for element in incoming:
            name = element.name
            if name.strip().lower() in taken:
                number = 2
                while f"{name} ({number})".lower() in taken:
                    number += 1
                element.name = f"{name} ({number})"
                logger.info("Renamed pasted %s %r to %r", element.type, name, element.name)
            taken.add(element.name.strip().lower())

    def _next_name(self, prefix: str, counter_attr: str, is_free: Callable[[str], bool]) -> str:
        number = getattr(self, counter_attr)
        name = f"{prefix} {number}"
        while not is_free(name):
            number += 1
            name = f"{prefix} {number}"
        setattr(self, counter_attr, number + 1)
        return name

    def _owner_element(self, owner: Union[EntityOwner, RelationshipOwner]) -> Optional[ParticipantElement]:
        diagram = self._require()
        if owner.kind == "entity":
            return diagram.get_entity(owner.id)
        return diagram.get_relationship(owner.id)

    def _refresh_path(self, connection: Connection):
        diagram = self._require()
        from_element = diagram.get_element(connection.from_id)
        to_element = diagram.get_element(connection.to_id)
        if from_element is not None and to_element is not None:
            refresh_connection_path(connection, from_element, to_element)

    def _participation_pair(self, connection: Connection) -> Optional[tuple[Relationship, str]]:
        """(relationship, entity_id) when the connection links the two kinds."""
        diagram = self._require()
        for rel_end, entity_end in ((connection.to_id, connection.from_id),
                                    (connection.from_id, connection.to_id)):
            relationship = diagram.get_relationship(rel_end)
            if relationship is not None and diagram.get_entity(entity_end) is not None:
                return relationship, entity_end
        return None

    def _links_between(self, relationship_id: str, entity_id: str, exclude_id: Optional[str] = None) -> int:
        diagram = self._require()
        return sum(
            1 for c in diagram.connections
            if c.id != exclude_id and {c.from_id, c.to_id} == {relationship_id, entity_id}
        )

    def _sync_participation_labels(self, relationship: Relationship, entity_id: str, connection: Connection):
        if connection.cardinality in {c.value for c in Cardinality}:
            relationship.cardinalities[entity_id] = connection.cardinality
        if connection.participation in {p.value for p in Participation}:
            relationship.participations[entity_id] = connection.participation

    def _attach(self, connection: Connection):
        """Record the entity as a participant of the relationship it was connected to."""
        pair = self._participation_pair(connection)
        if pair is None:
            return
        relationship, entity_id = pair
        # A recursive relationship lists the entity once per connection
        links = self._links_between(relationship.id, entity_id)
        while relationship.entity_ids.count(entity_id) < links:
            relationship.entity_ids.append(entity_id)
        self._sync_participation_labels(relationship, entity_id, connection)

    def _detach(self, connection: Connection):
        """Undo `_attach` for a connection that is about to be removed."""
        pair = self._participation_pair(connection)
        if pair is None:
            return
        relationship, entity_id = pair
        remaining = self._links_between(relationship.id, entity_id, exclude_id=connection.id)
        while relationship.entity_ids.count(entity_id) > remaining:
            relationship.entity_ids.remove(entity_id)
        if remaining == 0:
            relationship.cardinalities.pop(entity_id, None)
            relationship.participations.pop(entity_id, None)

    # --- Diagram Operations ---

    def new_diagram(self, name: str = "Untitled Diagram") -> Diagram:
        """Create a new empty diagram."""
        self._diagram = Diagram(name=name)
        self._history.clear()
        self._future.clear()
        self._next_entity_number = 1
        self._next_relationship_number = 1
        logger.debug("Created diagram %s", self._diagram.id)
        self._notify_change()
        return self._diagram

    def load_diagram(
        self,
        diagram: Diagram,
        replace: bool = True,
        offset: Optional[tuple[float, float]] = None
    ) -> Diagram:
        """
        Hand an externally built diagram (e.g. from an importer) to the editor.

        With `replace` the diagram becomes the current one. Otherwise its
        elements are merged into the current diagram under fresh ids,
        shifted by `offset` when given.
        """
        incoming = diagram.model_copy(deep=True)

        if replace or self._diagram is None:
            self._save_to_history()
            self._diagram = incoming
            logger.debug("Loaded diagram %s", incoming.id)
        else:
            self._save_to_history()
            remap_diagram_ids(incoming)
            if offset:
                apply_offset(incoming, offset[0], offset[1])
            current = self._diagram
            self._dedupe_names(incoming.entities, current.entities)
            self._dedupe_names(incoming.relationships, current.relationships)
            current.entities.extend(incoming.entities)
            current.relationships.extend(incoming.relationships)
            current.attributes.extend(incoming.attributes)
            current.connections.extend(incoming.connections)
            current.generalizations.extend(incoming.generalizations)
            logger.debug(
                "Merged %d entities and %d relationships into %s",
                len(incoming.entities), len(incoming.relationships), current.id
            )

        if self._validation_enabled:
            apply_warnings(self._diagram, options=self._options)
        self._notify_change()
        return self._diagram

    def rename_diagram(self, name: str) -> Diagram:
        """Update the diagram name."""
        diagram = self._require()
        self._save_to_history()
        diagram.name = name
        self._notify_change()
        return diagram

    # --- Undo/Redo ---

    def undo(self) -> Optional[Diagram]:
        """Undo the last action."""
        if not self.can_undo or self._diagram is None:
            return None

        self._future.append(self._diagram.model_dump())
        self._diagram = Diagram.model_validate(self._history.pop())
        self._notify_change()
        return self._diagram

    def redo(self) -> Optional[Diagram]:
        """Redo the last undone action."""
        if not self.can_redo or self._diagram is None:
            return None

        self._history.append(self._diagram.model_dump())
        self._diagram = Diagram.model_validate(self._future.pop())
        self._notify_change()
        return self._diagram

    # --- Validation ---

    def set_validation_enabled(self, enabled: bool) -> None:
        """Turn inline validation on (refreshing all warnings) or off (clearing them)."""
        self._validation_enabled = enabled
        if self._diagram is not None:
            if enabled:
                apply_warnings(self._diagram, options=self._options)
            else:
                clear_warnings(self._diagram)
        self._notify_change()

    def validate(self) -> list[ValidationIssue]:
        """Validate the whole diagram."""
        return validate_diagram(self._require(), self._options)

    # --- Entity Operations ---

    def add_entity(
        self,
        position: Optional[Position] = None,
        name: Optional[str] = None,
        is_weak: bool = False
    ) -> Entity:
        """Add a new entity, named 'Entity N' unless a name is given."""
        diagram = self._require()

        if name is None:
            name = self._next_name(
                "Entity", "_next_entity_number",
                lambda n: is_valid_entity_name(n, diagram)
            )
        elif not is_valid_entity_name(name, diagram):
            raise ValueError(f"Entity name is empty or already in use: {name!r}")

        self._save_to_history()
        entity = Entity(name=name, is_weak=is_weak, position=position or Position())
        diagram.entities.append(entity)
        logger.debug("Added entity %s (%s)", entity.id, entity.name)
        self._commit(entity.id)
        return entity

    def update_entity(self, entity_id: str, **kwargs) -> Optional[Entity]:
        """
        Update an existing entity.

        A rename to an empty or duplicate name rejects the whole update and
        returns the entity unchanged. Moving or resizing re-attaches every
        connection touching the entity.
        """
        diagram = self._require()
        entity = diagram.get_entity(entity_id)
        if entity is None:
            return None

        name = kwargs.get("name")
        if name is not None and name != entity.name and not is_valid_entity_name(name, diagram, entity_id):
            logger.info("Rejected rename of entity %s to %r", entity_id, name)
            return entity

        self._save_to_history()
        old_position, old_size = entity.position, entity.size

        for key, value in kwargs.items():
            if value is not None and key in ENTITY_FIELDS:
                setattr(entity, key, value)

        if entity.position != old_position or entity.size != old_size:
            update_connection_points_on_move(diagram, entity_id)

        self._commit(entity_id)
        return entity

    def delete_entity(self, entity_id: str) -> bool:
        """
        Delete an entity and everything that depends on it.

        Removes its standalone attributes, every connection touching it, its
        participant entries in relationships, and its place in ISA
        hierarchies. A generalization is deleted with its parent or when its
        last child goes.
        """
        diagram = self._require()
        entity = diagram.get_entity(entity_id)
        if entity is None:
            return False

        self._save_to_history()
        neighbors = self._affected([entity_id])

        diagram.attributes = [a for a in diagram.attributes if a.entity_id != entity_id]

        for connection in diagram.connections_for(entity_id):
            self._detach(connection)
        diagram.connections = [c for c in diagram.connections if not c.touches(entity_id)]

        for relationship in diagram.relationships:
            if entity_id in relationship.entity_ids:
                relationship.entity_ids = [eid for eid in relationship.entity_ids if eid != entity_id]
            relationship.cardinalities.pop(entity_id, None)
            relationship.participations.pop(entity_id, None)

        kept: list[Generalization] = []
        for generalization in diagram.generalizations:
            if generalization.parent_id == entity_id:
                continue
            if entity_id in generalization.child_ids:
                generalization.child_ids = [c for c in generalization.child_ids if c != entity_id]
                if not generalization.child_ids:
                    continue
            kept.append(generalization)
        diagram.generalizations = kept

        diagram.entities = [e for e in diagram.entities if e.id != entity_id]
        logger.debug("Deleted entity %s", entity_id)
        self._commit(*neighbors)
        return True

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self._require().get_entity(entity_id)

    # --- Relationship Operations ---

    def add_relationship(
        self,
        position: Optional[Position] = None,
        name: Optional[str] = None,
        is_weak: bool = False
    ) -> Relationship:
        """Add a new relationship, named 'Relationship N' unless a name is given."""
        diagram = self._require()

        if name is None:
            name = self._next_name(
                "Relationship", "_next_relationship_number",
                lambda n: is_valid_relationship_name(n, diagram)
            )
        elif not is_valid_relationship_name(name, diagram):
            raise ValueError(f"Relationship name is empty or already in use: {name!r}")

        self._save_to_history()
        relationship = Relationship(name=name, is_weak=is_weak, position=position or Position())
        diagram.relationships.append(relationship)
        logger.debug("Added relationship %s (%s)", relationship.id, relationship.name)
        self._commit(relationship.id)
        return relationship

    def update_relationship(self, relationship_id: str, **kwargs) -> Optional[Relationship]:
        """Update an existing relationship (same rules as `update_entity`)."""
        diagram = self._require()
        relationship = diagram.get_relationship(relationship_id)
        if relationship is None:
            return None

        name = kwargs.get("name")
        if (name is not None and name != relationship.name
                and not is_valid_relationship_name(name, diagram, relationship_id)):
            logger.info("Rejected rename of relationship %s to %r", relationship_id, name)
            return relationship

        self._save_to_history()
        old_position, old_size = relationship.position, relationship.size

        for key, value in kwargs.items():
            if value is not None and key in RELATIONSHIP_FIELDS:
                setattr(relationship, key, value)

        if relationship.position != old_position or relationship.size != old_size:
            update_connection_points_on_move(diagram, relationship_id)

        self._commit(relationship_id)
        return relationship

    def delete_relationship(self, relationship_id: str) -> bool:
        """Delete a relationship with its attributes and connections."""
        diagram = self._require()
        relationship = diagram.get_relationship(relationship_id)
        if relationship is None:
            return False

        self._save_to_history()
        neighbors = self._affected([relationship_id])

        diagram.attributes = [a for a in diagram.attributes if a.relationship_id != relationship_id]
        diagram.connections = [c for c in diagram.connections if not c.touches(relationship_id)]
        diagram.relationships = [r for r in diagram.relationships if r.id != relationship_id]
        logger.debug("Deleted relationship %s", relationship_id)
        self._commit(*neighbors)
        return True

    def get_relationship(self, relationship_id: str) -> Optional[Relationship]:
        return self._require().get_relationship(relationship_id)

    # --- Attribute Operations ---

    def add_attribute(
        self,
        owner: AttributeOwner,
        name: str,
        is_key: bool = False,
        is_discriminant: bool = False,
        is_multivalued: bool = False,
        is_derived: bool = False,
        position: Optional[Position] = None
    ) -> Attribute:
        """
        Add an attribute to an entity or relationship.

        Creates both the standalone canvas attribute and the record embedded
        in the owner, sharing one id.
        """
        diagram = self._require()
        owner_element = self._owner_element(owner)
        if owner_element is None:
            raise ValueError(f"Attribute owner not found: {owner.kind} {owner.id}")
        if not is_valid_attribute_name(name, owner, diagram):
            raise ValueError(f"Attribute name is empty or already used on this {owner.kind}: {name!r}")

        if position is None:
            siblings = sum(1 for a in diagram.attributes if a.owner == owner)
            position = Position(
                x=owner_element.position.x + owner_element.size.width + ATTRIBUTE_OFFSET_X,
                y=owner_element.position.y + ATTRIBUTE_OFFSET_Y + siblings * ATTRIBUTE_SPACING,
            )

        self._save_to_history()
        attribute = Attribute(
            name=name,
            is_key=is_key,
            is_discriminant=is_discriminant,
            is_multivalued=is_multivalued,
            is_derived=is_derived,
            entity_id=owner.id if owner.kind == "entity" else None,
            relationship_id=owner.id if owner.kind == "relationship" else None,
            position=position,
        )
        owner_element.attributes.append(attribute.embedded())
        diagram.attributes.append(attribute)
        logger.debug("Added attribute %s to %s %s", attribute.id, owner.kind, owner.id)
        self._commit(attribute.id)
        return attribute

    def update_attribute(self, attribute_id: str, **kwargs) -> Optional[Attribute]:
        """
        Update an attribute and its embedded twin together.

        A rename that clashes with a sibling attribute (same owner) or is
        blank rejects the whole update.
        """
        diagram = self._require()
        attribute = diagram.get_attribute(attribute_id)
        if attribute is None:
            return None

        name = kwargs.get("name")
        if name is not None and name != attribute.name:
            owner = attribute.owner
            valid = (
                is_valid_attribute_name(name, owner, diagram, attribute_id)
                if owner is not None else bool(name.strip())
            )
            if not valid:
                logger.info("Rejected rename of attribute %s to %r", attribute_id, name)
                return attribute

        self._save_to_history()
        for key, value in kwargs.items():
            if value is not None and key in ATTRIBUTE_FLAGS + ("position",):
                setattr(attribute, key, value)

        owner = attribute.owner
        owner_element = self._owner_element(owner) if owner is not None else None
        if owner_element is not None:
            embedded = next((a for a in owner_element.attributes if a.id == attribute_id), None)
            if embedded is None:
                owner_element.attributes.append(attribute.embedded())
            else:
                for flag in ATTRIBUTE_FLAGS:
                    setattr(embedded, flag, getattr(attribute, flag))

        self._commit(attribute_id)
        return attribute

    def move_attribute(self, attribute_id: str, position: Position) -> Optional[Attribute]:
        """Move a standalone attribute on the canvas."""
        diagram = self._require()
        attribute = diagram.get_attribute(attribute_id)
        if attribute is None:
            return None

        self._save_to_history()
        attribute.position = position
        self._notify_change()
        return attribute

    def delete_attribute(self, attribute_id: str) -> bool:
        """Delete an attribute from the canvas and from its owner's embedded list."""
        diagram = self._require()
        in_canvas = diagram.get_attribute(attribute_id) is not None
        owners = [
            element for element in [*diagram.entities, *diagram.relationships]
            if any(a.id == attribute_id for a in element.attributes)
        ]
        if not in_canvas and not owners:
            return False

        self._save_to_history()
        for element in owners:
            element.attributes = [a for a in element.attributes if a.id != attribute_id]
        diagram.attributes = [a for a in diagram.attributes if a.id != attribute_id]
        logger.debug("Deleted attribute %s", attribute_id)
        self._commit(*(element.id for element in owners))
        return True

    def get_attribute(self, attribute_id: str) -> Optional[Attribute]:
        return self._require().get_attribute(attribute_id)

    # --- Connection Operations ---

    def add_connection(
        self,
        from_id: str,
        to_id: str,
        from_point: Optional[str] = None,
        to_point: Optional[str] = None,
        waypoints: Optional[list[Position]] = None,
        style: str = ConnectionStyle.STRAIGHT.value,
        cardinality: Optional[str] = Cardinality.ONE.value,
        participation: Optional[str] = Participation.PARTIAL.value
    ) -> Connection:
        """
        Connect two elements (normally an entity and a relationship).

        Attachment points left as None are picked by the geometry engine:
        relationships spread their links over free edges, entities use the
        edge facing the other element. Connecting an entity to a
        relationship also records it as a participant.
        """
        diagram = self._require()
        from_element = diagram.get_element(from_id)
        to_element = diagram.get_element(to_id)
        if from_element is None:
            raise ValueError(f"Source element not found: {from_id}")
        if to_element is None:
            raise ValueError(f"Target element not found: {to_id}")

        if from_point is None:
            from_point = pick_edge(diagram, from_element, element_center(to_element))
        if to_point is None:
            to_point = pick_edge(diagram, to_element, element_center(from_element))

        self._save_to_history()
        connection = Connection(
            from_id=from_id,
            to_id=to_id,
            from_point=from_point,
            to_point=to_point,
            waypoints=list(waypoints or []),
            style=style,
            cardinality=cardinality,
            participation=participation,
        )
        refresh_connection_path(connection, from_element, to_element)
        diagram.connections.append(connection)
        self._attach(connection)
        logger.debug("Connected %s -> %s (%s)", from_id, to_id, connection.id)
        self._commit(from_id, to_id)
        return connection

    def update_connection(self, connection_id: str, **kwargs) -> Optional[Connection]:
        """Update a connection; changed edges or waypoints rebuild its path."""
        diagram = self._require()
        connection = diagram.get_connection(connection_id)
        if connection is None:
            return None

        self._save_to_history()
        for key, value in kwargs.items():
            if value is not None and key in CONNECTION_FIELDS:
                setattr(connection, key, value)

        if any(kwargs.get(key) is not None for key in ("from_point", "to_point", "waypoints")):
            self._refresh_path(connection)

        if kwargs.get("cardinality") is not None or kwargs.get("participation") is not None:
            pair = self._participation_pair(connection)
            if pair is not None:
                self._sync_participation_labels(pair[0], pair[1], connection)

        self._commit(connection.from_id, connection.to_id)
        return connection

    def delete_connection(self, connection_id: str) -> bool:
        """Delete a connection and drop the participant entry it created."""
        diagram = self._require()
        connection = diagram.get_connection(connection_id)
        if connection is None:
            return False

        self._save_to_history()
        self._detach(connection)
        diagram.connections = [c for c in diagram.connections if c.id != connection_id]
        logger.debug("Deleted connection %s", connection_id)
        self._commit(connection.from_id, connection.to_id)
        return True

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self._require().get_connection(connection_id)

    def add_connection_waypoint(
        self,
        connection_id: str,
        waypoint: Position,
        index: Optional[int] = None
    ) -> Optional[Connection]:
        """Insert a waypoint (appended when no index is given)."""
        diagram = self._require()
        connection = diagram.get_connection(connection_id)
        if connection is None:
            return None

        self._save_to_history()
        if index is None:
            connection.waypoints.append(waypoint)
        else:
            connection.waypoints.insert(index, waypoint)
        self._refresh_path(connection)
        self._notify_change()
        return connection

    def update_connection_waypoint(
        self,
        connection_id: str,
        index: int,
        position: Position
    ) -> Optional[Connection]:
        """Move one waypoint."""
        diagram = self._require()
        connection = diagram.get_connection(connection_id)
        if connection is None or not 0 <= index < len(connection.waypoints):
            return None

        self._save_to_history()
        connection.waypoints[index] = position
        self._refresh_path(connection)
        self._notify_change()
        return connection

    def remove_connection_waypoint(self, connection_id: str, index: int) -> Optional[Connection]:
        """Remove one waypoint."""
        diagram = self._require()
        connection = diagram.get_connection(connection_id)
        if connection is None or not 0 <= index < len(connection.waypoints):
            return None

        self._save_to_history()
        del connection.waypoints[index]
        self._refresh_path(connection)
        self._notify_change()
        return connection

    def get_connection_points(self, element_id: str) -> list[Position]:
        """Coordinates of the four attachment edges of an element."""
        element = self._require().get_element(element_id)
        if element is None:
            return []
        return [connection_point_position(element, edge) for edge in EDGES]

    # --- Generalization Operations ---

    def add_generalization(
        self,
        parent_id: str,
        child_ids: Optional[list[str]] = None,
        is_total: bool = False,
        position: Optional[Position] = None
    ) -> Generalization:
        """Create an ISA hierarchy below a parent entity."""
        diagram = self._require()
        parent = diagram.get_entity(parent_id)
        if parent is None:
            raise ValueError(f"Parent entity not found: {parent_id}")

        children = list(dict.fromkeys(child_ids or []))
        if parent_id in children:
            raise ValueError("Generalization parent cannot also be a child")
        for child_id in children:
            if diagram.get_entity(child_id) is None:
                raise ValueError(f"Child entity not found: {child_id}")

        self._save_to_history()
        generalization = Generalization(parent_id=parent_id, child_ids=children, is_total=is_total)
        if position is None:
            px, _ = parent.center()
            position = Position(
                x=px - generalization.size.width / 2,
                y=parent.position.y + parent.size.height + 40,
            )
        generalization.position = position
        diagram.generalizations.append(generalization)
        logger.debug("Added generalization %s under %s", generalization.id, parent_id)
        self._commit(parent_id, *children)
        return generalization

    def add_generalization_child(self, generalization_id: str, entity_id: str) -> Optional[Generalization]:
        """Add a child entity; adding the parent or an existing child is a no-op."""
        diagram = self._require()
        generalization = diagram.get_generalization(generalization_id)
        if generalization is None:
            return None
        if diagram.get_entity(entity_id) is None:
            raise ValueError(f"Child entity not found: {entity_id}")
        if entity_id == generalization.parent_id or entity_id in generalization.child_ids:
            return generalization

        self._save_to_history()
        generalization.child_ids.append(entity_id)
        self._commit(generalization.parent_id, entity_id)
        return generalization

    def remove_generalization_child(self, generalization_id: str, entity_id: str) -> bool:
        """Remove a child entity; the generalization goes with its last child."""
        diagram = self._require()
        generalization = diagram.get_generalization(generalization_id)
        if generalization is None or entity_id not in generalization.child_ids:
            return False

        self._save_to_history()
        neighbors = self._affected([generalization.parent_id])
        generalization.child_ids = [c for c in generalization.child_ids if c != entity_id]
        if not generalization.child_ids:
            diagram.generalizations = [g for g in diagram.generalizations if g.id != generalization_id]
        self._commit(*neighbors)
        return True

    def update_generalization(self, generalization_id: str, **kwargs) -> Optional[Generalization]:
        """Update total/partial flag, position or size of an ISA glyph."""
        diagram = self._require()
        generalization = diagram.get_generalization(generalization_id)
        if generalization is None:
            return None

        self._save_to_history()
        for key, value in kwargs.items():
            if value is not None and key in GENERALIZATION_FIELDS:
                setattr(generalization, key, value)
        self._notify_change()
        return generalization

    def delete_generalization(self, generalization_id: str) -> bool:
        """Delete an ISA hierarchy (the entities stay)."""
        diagram = self._require()
        generalization = diagram.get_generalization(generalization_id)
        if generalization is None:
            return False

        self._save_to_history()
        diagram.generalizations = [g for g in diagram.generalizations if g.id != generalization_id]
        self._commit(generalization.parent_id, *generalization.child_ids)
        return True

    def get_generalization(self, generalization_id: str) -> Optional[Generalization]:
        return self._require().get_generalization(generalization_id)

    # --- State ---

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        return {
            "diagram": self._diagram.to_json_dict() if self._diagram else None,
            "validation_enabled": self._validation_enabled,
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
        }


# Global instance for the application
diagram_manager = DiagramManager(
    max_history=int(os.environ.get("ERD_MAX_HISTORY", "50")),
    validation_enabled=env_flag("ERD_VALIDATION_ENABLED", False),
    options=ValidationOptions.from_env(),
)

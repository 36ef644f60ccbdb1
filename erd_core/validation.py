"""
Diagram validation - Check ER diagrams against Chen-notation modeling rules.

Every check is advisory: an invalid diagram is described by a list of
warnings, never rejected. The per-element validators return plain message
lists in check order; `validate_diagram` aggregates them into one
ValidationIssue per offending element.
"""

import os
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional, Union

from pydantic import BaseModel

from .models import EntityOwner, Participation, RelationshipOwner

if TYPE_CHECKING:
    from .models import Attribute, Connection, Diagram, Entity, Generalization, Relationship


VALID_CARDINALITIES = ("1", "N", "1:N", "N:1", "1:1", "N:N", "M:N")
VALID_PARTICIPATIONS = (Participation.PARTIAL.value, Participation.TOTAL.value)

_TRUTHY = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


class ValidationOptions(BaseModel):
    """
    Switches for the advisory heuristics.

    The structural rules are always on; these three are product decisions
    and can be turned off per deployment.
    """
    warn_orphan_entities: bool = True
    require_single_identifying_relationship: bool = True
    warn_single_child_generalization: bool = True

    @classmethod
    def from_env(cls) -> "ValidationOptions":
        """Load options from ERD_* environment variables."""
        return cls(
            warn_orphan_entities=env_flag("ERD_WARN_ORPHAN_ENTITIES", True),
            require_single_identifying_relationship=env_flag("ERD_REQUIRE_SINGLE_IDENTIFYING", True),
            warn_single_child_generalization=env_flag("ERD_WARN_SINGLE_CHILD_ISA", True),
        )


DEFAULT_OPTIONS = ValidationOptions()


class IssueSeverity(str, Enum):
    """Severity levels for validation issues. All ER rules are advisory."""
    WARNING = "warning"


@dataclass
class ValidationIssue:
    """All warnings raised for one diagram element."""
    element_id: str
    message: str
    severity: IssueSeverity = IssueSeverity.WARNING

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "elementId": self.element_id,
            "message": self.message,
            "severity": self.severity.value,
        }


def _element_label(diagram: "Diagram", element_id: str) -> str:
    element = diagram.get_element(element_id)
    return element.name if element else element_id


# --- Entities ---

def validate_entity(
    entity: "Entity",
    diagram: "Diagram",
    options: Optional[ValidationOptions] = None
) -> list[str]:
    """
    Validate an entity.

    ISA children inherit their parent's attributes and key, so the attribute
    and key rules are skipped for them.
    """
    options = options or DEFAULT_OPTIONS
    warnings: list[str] = []
    is_isa_child = entity.id in diagram.isa_child_ids()

    if not entity.attributes and not is_isa_child:
        warnings.append("Entity must have at least one attribute")

    if not entity.is_weak and not is_isa_child:
        if not any(attr.is_key for attr in entity.attributes):
            warnings.append("Entity must have at least one key attribute")

    connections = diagram.connections_for(entity.id)

    if entity.is_weak:
        if not any(attr.is_discriminant for attr in entity.attributes):
            warnings.append("Weak entity must have a discriminant attribute")

        identifying: list[str] = []
        for connection in connections:
            relationship = diagram.get_relationship(connection.other_end(entity.id))
            if relationship is None or not relationship.is_weak:
                continue
            if relationship.id not in identifying:
                identifying.append(relationship.id)
            if (connection.cardinality or "").strip() == "1":
                warnings.append(
                    f"Weak entity must be on the N side of identifying relationship '{relationship.name}'"
                )
            if connection.participation != Participation.TOTAL.value:
                warnings.append(
                    f"Weak entity must have total participation in identifying relationship '{relationship.name}'"
                )

        if not identifying:
            warnings.append("Weak entity must connect to at least one identifying relationship")
        elif len(identifying) > 1 and options.require_single_identifying_relationship:
            warnings.append(
                f"Weak entity must connect to exactly one identifying relationship "
                f"(currently has {len(identifying)})"
            )

    if options.warn_orphan_entities and not connections:
        warnings.append("Entity is not connected to any relationship")

    return warnings


# --- Relationships ---

def validate_relationship(
    relationship: "Relationship",
    diagram: "Diagram",
    options: Optional[ValidationOptions] = None
) -> list[str]:
    """Validate a relationship against its participants and connections."""
    warnings: list[str] = []

    # A recursive relationship lists the same entity twice, which counts
    if len(relationship.entity_ids) < 2:
        warnings.append("Relationship must connect at least 2 entities")

    connections = diagram.connections_for(relationship.id)
    # Each participant entry needs its own link; recursive roles use one each
    available = Counter(c.other_end(relationship.id) for c in connections)
    for entity_id in relationship.entity_ids:
        if available[entity_id] > 0:
            available[entity_id] -= 1
        else:
            warnings.append(
                f"Relationship has no connection to entity '{_element_label(diagram, entity_id)}'"
            )

    if any(not (c.cardinality or "").strip() for c in connections):
        warnings.append("All connections must have cardinality defined")

    if any(not c.participation for c in connections):
        warnings.append("All connections must have participation defined")

    if relationship.is_weak:
        participants = (diagram.get_entity(eid) for eid in relationship.entity_ids)
        if not any(e is not None and e.is_weak for e in participants):
            warnings.append("Identifying relationship must connect to at least one weak entity")

    return warnings


# --- Attributes ---

def validate_attribute(
    attribute: "Attribute",
    diagram: "Diagram",
    options: Optional[ValidationOptions] = None
) -> list[str]:
    """Validate a standalone attribute and its ownership."""
    warnings: list[str] = []
    has_entity = bool(attribute.entity_id)
    has_relationship = bool(attribute.relationship_id)

    if not has_entity and not has_relationship:
        warnings.append("Attribute must connect to exactly one entity or relationship")
    elif has_entity and has_relationship:
        warnings.append("Attribute cannot connect to both entity and relationship")

    owner_entity = diagram.get_entity(attribute.entity_id) if has_entity else None
    if has_entity and owner_entity is None:
        warnings.append("Attribute owner entity does not exist")
    if has_relationship and diagram.get_relationship(attribute.relationship_id) is None:
        warnings.append("Attribute owner relationship does not exist")

    if attribute.is_key and attribute.is_derived:
        warnings.append("Attribute cannot be both key and derived")

    # Keys and discriminants identify instances, so they must be single-valued
    if attribute.is_key and attribute.is_multivalued:
        warnings.append("Key attribute cannot be multivalued")
    if attribute.is_discriminant and attribute.is_multivalued:
        warnings.append("Discriminant attribute cannot be multivalued")

    if attribute.is_key and has_relationship:
        warnings.append("Relationship attribute cannot be a key")

    if attribute.is_discriminant:
        if has_relationship:
            warnings.append("Relationship attribute cannot be a discriminant")
        elif owner_entity is not None and not owner_entity.is_weak:
            warnings.append("Discriminant only valid for weak entity attributes")

    return warnings


# --- Connections ---

def validate_connection(
    connection: "Connection",
    diagram: "Diagram",
    options: Optional[ValidationOptions] = None
) -> list[str]:
    """Validate a connection's endpoints and labels."""
    warnings: list[str] = []

    if diagram.get_element(connection.from_id) is None:
        warnings.append("Connection source element does not exist")
    if diagram.get_element(connection.to_id) is None:
        warnings.append("Connection target element does not exist")

    if connection.cardinality:
        if connection.cardinality.strip() not in VALID_CARDINALITIES:
            warnings.append(
                f"Cardinality must be valid format ({', '.join(VALID_CARDINALITIES)})"
            )

    if connection.participation and connection.participation not in VALID_PARTICIPATIONS:
        warnings.append('Participation must be "partial" or "total"')

    return warnings


# --- Generalizations ---

def validate_generalization(
    generalization: "Generalization",
    diagram: "Diagram",
    options: Optional[ValidationOptions] = None
) -> list[str]:
    """Validate an ISA hierarchy."""
    options = options or DEFAULT_OPTIONS
    warnings: list[str] = []

    if diagram.get_entity(generalization.parent_id) is None:
        warnings.append("Generalization parent entity does not exist")

    if not generalization.child_ids:
        warnings.append("Generalization must have at least one child entity")
    elif len(generalization.child_ids) == 1 and options.warn_single_child_generalization:
        warnings.append(
            "Generalization has only one child entity (specialization usually needs at least 2)"
        )

    if generalization.parent_id in generalization.child_ids:
        warnings.append("Generalization parent cannot also be a child")

    for child_id in generalization.child_ids:
        if diagram.get_entity(child_id) is None:
            warnings.append(f"Generalization child entity '{child_id}' does not exist")

    return warnings


# --- Whole diagram ---

def validate_diagram(
    diagram: "Diagram",
    options: Optional[ValidationOptions] = None
) -> list[ValidationIssue]:
    """
    Validate a diagram and return one issue per element with warnings.

    Checks, in order: entities, relationships, attributes, connections,
    generalizations. The messages of an element are joined with "; ".

    Args:
        diagram: The diagram to validate
        options: Advisory rule switches (defaults apply when omitted)

    Returns:
        List of ValidationIssue objects (empty for a clean or empty diagram)
    """
    issues: list[ValidationIssue] = []
    groups = (
        (diagram.entities, validate_entity),
        (diagram.relationships, validate_relationship),
        (diagram.attributes, validate_attribute),
        (diagram.connections, validate_connection),
        (diagram.generalizations, validate_generalization),
    )

    for elements, validator in groups:
        for element in elements:
            warnings = validator(element, diagram, options)
            if warnings:
                issues.append(ValidationIssue(
                    element_id=element.id,
                    message="; ".join(warnings)
                ))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts and an overall verdict
    """
    warning_count = sum(len(i.message.split("; ")) for i in issues)
    return {
        "total": len(issues),
        "warnings": warning_count,
        "elements": len({i.element_id for i in issues}),
        "valid": len(issues) == 0,
    }


def apply_warnings(
    diagram: "Diagram",
    element_ids: Optional[Iterable[str]] = None,
    options: Optional[ValidationOptions] = None
) -> None:
    """
    Refresh the cached `has_warning` / `warnings` flags.

    Args:
        diagram: Diagram to update in-place
        element_ids: Only refresh these elements (all when None)
        options: Advisory rule switches
    """
    wanted = set(element_ids) if element_ids is not None else None

    groups = (
        (diagram.entities, validate_entity),
        (diagram.relationships, validate_relationship),
        (diagram.attributes, validate_attribute),
    )
    for elements, validator in groups:
        for element in elements:
            if wanted is not None and element.id not in wanted:
                continue
            element.warnings = validator(element, diagram, options)
            element.has_warning = bool(element.warnings)


def clear_warnings(diagram: "Diagram") -> None:
    """Reset every cached warning flag."""
    for elements in (diagram.entities, diagram.relationships, diagram.attributes):
        for element in elements:
            element.warnings = []
            element.has_warning = False


# --- Name checks (used before accepting a rename) ---

def _name_taken(name: str, others: Iterable[tuple[str, str]], exclude_id: Optional[str]) -> bool:
    wanted = name.strip().lower()
    return any(
        other_name.strip().lower() == wanted
        for other_id, other_name in others
        if other_id != exclude_id
    )


def is_valid_entity_name(name: str, diagram: "Diagram", exclude_id: Optional[str] = None) -> bool:
    """Non-empty and not used by another entity (case-insensitive)."""
    if not name or not name.strip():
        return False
    return not _name_taken(name, ((e.id, e.name) for e in diagram.entities), exclude_id)


def is_valid_relationship_name(name: str, diagram: "Diagram", exclude_id: Optional[str] = None) -> bool:
    """Non-empty and not used by another relationship (case-insensitive)."""
    if not name or not name.strip():
        return False
    return not _name_taken(name, ((r.id, r.name) for r in diagram.relationships), exclude_id)


def is_valid_attribute_name(
    name: str,
    owner: Union[EntityOwner, RelationshipOwner],
    diagram: "Diagram",
    exclude_id: Optional[str] = None
) -> bool:
    """
    Non-empty and unique among the attributes of the same owner.

    Attributes of different owners may share a name.
    """
    if not name or not name.strip():
        return False
    siblings = (
        (a.id, a.name) for a in diagram.attributes
        if a.owner is not None and a.owner.kind == owner.kind and a.owner.id == owner.id
    )
    return not _name_taken(name, siblings, exclude_id)

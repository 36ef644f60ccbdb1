"""
Diagram analysis - Structural summary of ER diagrams.

Treats entities and relationships as graph nodes; connections and
generalization parent/child links are the (undirected) edges.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Diagram


@dataclass
class ConnectedComponent:
    """A connected group of entities and relationships."""
    element_ids: list[str] = field(default_factory=list)
    link_count: int = 0

    @property
    def size(self) -> int:
        return len(self.element_ids)


@dataclass
class ElementConnectionInfo:
    """Connection counts for a single entity or relationship."""
    element_id: str
    name: str
    kind: str
    connections: int = 0
    generalizations: int = 0

    @property
    def total(self) -> int:
        return self.connections + self.generalizations


@dataclass
class DiagramSummary:
    """Complete summary of a diagram's structure."""
    name: str
    total_entities: int
    weak_entities: int
    total_relationships: int
    identifying_relationships: int
    total_attributes: int
    key_attributes: int
    total_connections: int
    total_generalizations: int
    connected_components: int
    most_connected: list[ElementConnectionInfo]
    orphan_entities: list[str]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "entities": {"total": self.total_entities, "weak": self.weak_entities},
            "relationships": {
                "total": self.total_relationships,
                "identifying": self.identifying_relationships,
            },
            "attributes": {"total": self.total_attributes, "keys": self.key_attributes},
            "connections": self.total_connections,
            "generalizations": self.total_generalizations,
            "connected_components": self.connected_components,
            "most_connected": [
                {
                    "id": info.element_id,
                    "name": info.name,
                    "kind": info.kind,
                    "connections": info.total,
                }
                for info in self.most_connected
            ],
            "orphan_entities": self.orphan_entities,
        }


def _adjacency(diagram: "Diagram") -> dict[str, set[str]]:
    adjacency: dict[str, set[str]] = {e.id: set() for e in diagram.entities}
    adjacency.update({r.id: set() for r in diagram.relationships})

    def link(a: str, b: str):
        if a in adjacency and b in adjacency and a != b:
            adjacency[a].add(b)
            adjacency[b].add(a)

    for connection in diagram.connections:
        link(connection.from_id, connection.to_id)
    for generalization in diagram.generalizations:
        for child_id in generalization.child_ids:
            link(generalization.parent_id, child_id)

    return adjacency


def find_connected_components(diagram: "Diagram") -> list[ConnectedComponent]:
    """
    Find all connected components of the entity/relationship graph using BFS.

    Args:
        diagram: The diagram to analyze

    Returns:
        List of ConnectedComponent objects, in element order
    """
    adjacency = _adjacency(diagram)
    if not adjacency:
        return []

    visited: set[str] = set()
    components: list[ConnectedComponent] = []

    for start in adjacency:
        if start in visited:
            continue

        members: list[str] = []
        links: set[frozenset[str]] = set()
        queue = [start]
        visited.add(start)

        while queue:
            current = queue.pop(0)
            members.append(current)
            for neighbor in adjacency[current]:
                links.add(frozenset((current, neighbor)))
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)

        components.append(ConnectedComponent(element_ids=members, link_count=len(links)))

    return components


def calculate_element_connections(diagram: "Diagram") -> dict[str, ElementConnectionInfo]:
    """
    Count connections and ISA links for every entity and relationship.

    Args:
        diagram: The diagram to analyze

    Returns:
        Dictionary mapping element id to ElementConnectionInfo
    """
    infos: dict[str, ElementConnectionInfo] = {}
    for entity in diagram.entities:
        infos[entity.id] = ElementConnectionInfo(entity.id, entity.name, "entity")
    for relationship in diagram.relationships:
        infos[relationship.id] = ElementConnectionInfo(relationship.id, relationship.name, "relationship")

    for connection in diagram.connections:
        for end in {connection.from_id, connection.to_id}:
            if end in infos:
                infos[end].connections += 1

    for generalization in diagram.generalizations:
        for member in [generalization.parent_id, *generalization.child_ids]:
            if member in infos:
                infos[member].generalizations += 1

    return infos


def summarize_diagram(diagram: "Diagram", top_n: int = 5) -> DiagramSummary:
    """
    Generate a structural summary of a diagram.

    Args:
        diagram: The diagram to summarize
        top_n: Number of most connected elements to include

    Returns:
        DiagramSummary object with all analysis results
    """
    infos = calculate_element_connections(diagram)

    ranked = sorted(infos.values(), key=lambda info: info.total, reverse=True)
    most_connected = [info for info in ranked[:top_n] if info.total > 0]

    orphans = [
        e.name for e in diagram.entities
        if infos[e.id].total == 0
    ]

    return DiagramSummary(
        name=diagram.name,
        total_entities=len(diagram.entities),
        weak_entities=sum(1 for e in diagram.entities if e.is_weak),
        total_relationships=len(diagram.relationships),
        identifying_relationships=sum(1 for r in diagram.relationships if r.is_weak),
        total_attributes=len(diagram.attributes),
        key_attributes=sum(1 for a in diagram.attributes if a.is_key),
        total_connections=len(diagram.connections),
        total_generalizations=len(diagram.generalizations),
        connected_components=len(find_connected_components(diagram)),
        most_connected=most_connected,
        orphan_entities=orphans,
    )

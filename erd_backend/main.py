"""
ER Diagram Editor Backend - FastAPI Application

This is the main entry point for the ER diagram editor backend.
It provides:
- REST API for diagram operations (CRUD for entities, relationships,
  attributes, connections and generalizations, undo/redo)
- Validation and structural summary endpoints
- Geometry queries (closest edge, orthogonal routing)
- CORS configuration for local frontend development
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from erd_core.analysis import summarize_diagram
from erd_core.geometry import closest_edge, route_connection, to_orthogonal_path
from erd_core.models import (
    Cardinality,
    ClosestEdgeRequest,
    ConnectionPoint,
    ConnectionStyle,
    CreateAttributeRequest,
    CreateConnectionRequest,
    CreateEntityRequest,
    CreateGeneralizationRequest,
    CreateRelationshipRequest,
    Diagram,
    DiagramInfoRequest,
    ERModel,
    OrthogonalPathRequest,
    Participation,
    Position,
    UpdateAttributeRequest,
    UpdateConnectionRequest,
    UpdateEntityRequest,
    UpdateGeneralizationRequest,
    UpdateRelationshipRequest,
    WaypointRequest,
)
from erd_core.validation import validation_summary

from .diagram_manager import diagram_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup/shutdown tasks."""
    if diagram_manager.diagram is None:
        diagram_manager.new_diagram()
    logger.info("Diagram %s ready", diagram_manager.diagram.id)
    yield


# --- FastAPI App ---

app = FastAPI(
    title="ER Diagram Editor API",
    description="Backend API for the Chen-notation ER diagram editor",
    version="1.0.0",
    lifespan=lifespan
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _fields(request: BaseModel) -> dict:
    """Partial-update payload as manager keyword arguments."""
    return {name: value for name, value in request if value is not None}


def _dump(model: ERModel) -> dict:
    return model.model_dump(mode="json", by_alias=True)


# --- Health Check ---

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "validation_enabled": diagram_manager.validation_enabled}


# --- Diagram State ---

@app.get("/api/diagram")
async def get_diagram():
    """Get the current diagram state."""
    return diagram_manager.get_state()


@app.patch("/api/diagram")
async def update_diagram(request: DiagramInfoRequest):
    """Update diagram metadata (name)."""
    try:
        diagram = diagram_manager.diagram
        if request.name is not None:
            diagram = diagram_manager.rename_diagram(request.name)
        if diagram is None:
            raise ValueError("No diagram open")
        return {"success": True, "diagram": diagram.to_json_dict()}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/diagram/new")
async def new_diagram(name: str = Query(default="Untitled Diagram")):
    """Create a new empty diagram."""
    diagram = diagram_manager.new_diagram(name=name)
    return {"success": True, "diagram": diagram.to_json_dict()}


class LoadDiagramRequest(ERModel):
    diagram: Diagram
    replace: bool = True
    offset: Optional[Position] = None


@app.post("/api/diagram/load")
async def load_diagram(request: LoadDiagramRequest):
    """Replace the current diagram, or paste one into it under fresh ids."""
    offset = (request.offset.x, request.offset.y) if request.offset else None
    diagram = diagram_manager.load_diagram(request.diagram, replace=request.replace, offset=offset)
    return {"success": True, "diagram": diagram.to_json_dict()}


# --- Undo/Redo ---

@app.post("/api/undo")
async def undo():
    """Undo the last action."""
    diagram = diagram_manager.undo()
    if diagram:
        return {"success": True, "diagram": diagram.to_json_dict()}
    return {"success": False, "message": "Nothing to undo"}


@app.post("/api/redo")
async def redo():
    """Redo the last undone action."""
    diagram = diagram_manager.redo()
    if diagram:
        return {"success": True, "diagram": diagram.to_json_dict()}
    return {"success": False, "message": "Nothing to redo"}


# --- Entity Operations ---

@app.post("/api/entities")
async def create_entity(request: CreateEntityRequest):
    """Create a new entity."""
    try:
        entity = diagram_manager.add_entity(
            position=request.position,
            name=request.name,
            is_weak=request.is_weak
        )
        return {"success": True, "entity": _dump(entity)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/entities/{entity_id}")
async def get_entity(entity_id: str):
    """Get a specific entity."""
    try:
        entity = diagram_manager.get_entity(entity_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if entity:
        return {"success": True, "entity": _dump(entity)}
    raise HTTPException(status_code=404, detail="Entity not found")


@app.patch("/api/entities/{entity_id}")
async def update_entity(entity_id: str, request: UpdateEntityRequest):
    """Update an entity. Moving it re-attaches its connections."""
    try:
        entity = diagram_manager.update_entity(entity_id, **_fields(request))
        if entity:
            return {"success": True, "entity": _dump(entity)}
        raise HTTPException(status_code=404, detail="Entity not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/entities/{entity_id}")
async def delete_entity(entity_id: str):
    """Delete an entity with its attributes, connections and ISA links."""
    try:
        if diagram_manager.delete_entity(entity_id):
            return {"success": True}
        raise HTTPException(status_code=404, detail="Entity not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Relationship Operations ---

@app.post("/api/relationships")
async def create_relationship(request: CreateRelationshipRequest):
    """Create a new relationship."""
    try:
        relationship = diagram_manager.add_relationship(
            position=request.position,
            name=request.name,
            is_weak=request.is_weak
        )
        return {"success": True, "relationship": _dump(relationship)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/relationships/{relationship_id}")
async def get_relationship(relationship_id: str):
    """Get a specific relationship."""
    try:
        relationship = diagram_manager.get_relationship(relationship_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if relationship:
        return {"success": True, "relationship": _dump(relationship)}
    raise HTTPException(status_code=404, detail="Relationship not found")


@app.patch("/api/relationships/{relationship_id}")
async def update_relationship(relationship_id: str, request: UpdateRelationshipRequest):
    """Update a relationship."""
    try:
        relationship = diagram_manager.update_relationship(relationship_id, **_fields(request))
        if relationship:
            return {"success": True, "relationship": _dump(relationship)}
        raise HTTPException(status_code=404, detail="Relationship not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/relationships/{relationship_id}")
async def delete_relationship(relationship_id: str):
    """Delete a relationship with its attributes and connections."""
    try:
        if diagram_manager.delete_relationship(relationship_id):
            return {"success": True}
        raise HTTPException(status_code=404, detail="Relationship not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Attribute Operations ---

@app.post("/api/attributes")
async def create_attribute(request: CreateAttributeRequest):
    """Add an attribute to an entity or relationship."""
    try:
        attribute = diagram_manager.add_attribute(
            owner=request.owner,
            name=request.name,
            is_key=request.is_key,
            is_discriminant=request.is_discriminant,
            is_multivalued=request.is_multivalued,
            is_derived=request.is_derived,
            position=request.position
        )
        return {"success": True, "attribute": _dump(attribute)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/attributes/{attribute_id}")
async def get_attribute(attribute_id: str):
    """Get a specific attribute."""
    try:
        attribute = diagram_manager.get_attribute(attribute_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if attribute:
        return {"success": True, "attribute": _dump(attribute)}
    raise HTTPException(status_code=404, detail="Attribute not found")


@app.patch("/api/attributes/{attribute_id}")
async def update_attribute(attribute_id: str, request: UpdateAttributeRequest):
    """Update an attribute and its embedded record."""
    try:
        attribute = diagram_manager.update_attribute(attribute_id, **_fields(request))
        if attribute:
            return {"success": True, "attribute": _dump(attribute)}
        raise HTTPException(status_code=404, detail="Attribute not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/attributes/{attribute_id}")
async def delete_attribute(attribute_id: str):
    """Delete an attribute."""
    try:
        if diagram_manager.delete_attribute(attribute_id):
            return {"success": True}
        raise HTTPException(status_code=404, detail="Attribute not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Connection Operations ---

@app.post("/api/connections")
async def create_connection(request: CreateConnectionRequest):
    """Connect an entity and a relationship."""
    try:
        connection = diagram_manager.add_connection(
            from_id=request.from_id,
            to_id=request.to_id,
            from_point=request.from_point,
            to_point=request.to_point,
            waypoints=request.waypoints,
            style=request.style,
            cardinality=request.cardinality,
            participation=request.participation
        )
        return {"success": True, "connection": _dump(connection)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/connections/{connection_id}")
async def get_connection(connection_id: str):
    """Get a specific connection."""
    try:
        connection = diagram_manager.get_connection(connection_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if connection:
        return {"success": True, "connection": _dump(connection)}
    raise HTTPException(status_code=404, detail="Connection not found")


@app.get("/api/connections/{connection_id}/route")
async def get_connection_route(connection_id: str):
    """Get the path to draw for a connection (orthogonal style is routed)."""
    try:
        connection = diagram_manager.get_connection(connection_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if connection:
        return {"success": True, "style": connection.style, "points": route_connection(connection)}
    raise HTTPException(status_code=404, detail="Connection not found")


@app.patch("/api/connections/{connection_id}")
async def update_connection(connection_id: str, request: UpdateConnectionRequest):
    """Update a connection."""
    try:
        connection = diagram_manager.update_connection(connection_id, **_fields(request))
        if connection:
            return {"success": True, "connection": _dump(connection)}
        raise HTTPException(status_code=404, detail="Connection not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/connections/{connection_id}")
async def delete_connection(connection_id: str):
    """Delete a connection."""
    try:
        if diagram_manager.delete_connection(connection_id):
            return {"success": True}
        raise HTTPException(status_code=404, detail="Connection not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Waypoints ---

@app.post("/api/connections/{connection_id}/waypoints")
async def add_waypoint(connection_id: str, request: WaypointRequest):
    """Insert a waypoint (appended when no index is given)."""
    try:
        connection = diagram_manager.add_connection_waypoint(
            connection_id, request.position, request.index
        )
        if connection:
            return {"success": True, "connection": _dump(connection)}
        raise HTTPException(status_code=404, detail="Connection not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.patch("/api/connections/{connection_id}/waypoints/{index}")
async def update_waypoint(connection_id: str, index: int, request: WaypointRequest):
    """Move a waypoint."""
    try:
        connection = diagram_manager.update_connection_waypoint(connection_id, index, request.position)
        if connection:
            return {"success": True, "connection": _dump(connection)}
        raise HTTPException(status_code=404, detail="Connection or waypoint not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/connections/{connection_id}/waypoints/{index}")
async def remove_waypoint(connection_id: str, index: int):
    """Remove a waypoint."""
    try:
        connection = diagram_manager.remove_connection_waypoint(connection_id, index)
        if connection:
            return {"success": True, "connection": _dump(connection)}
        raise HTTPException(status_code=404, detail="Connection or waypoint not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Generalization Operations ---

@app.post("/api/generalizations")
async def create_generalization(request: CreateGeneralizationRequest):
    """Create an ISA hierarchy."""
    try:
        generalization = diagram_manager.add_generalization(
            parent_id=request.parent_id,
            child_ids=request.child_ids,
            is_total=request.is_total,
            position=request.position
        )
        return {"success": True, "generalization": _dump(generalization)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/generalizations/{generalization_id}")
async def get_generalization(generalization_id: str):
    """Get a specific generalization."""
    try:
        generalization = diagram_manager.get_generalization(generalization_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if generalization:
        return {"success": True, "generalization": _dump(generalization)}
    raise HTTPException(status_code=404, detail="Generalization not found")


@app.patch("/api/generalizations/{generalization_id}")
async def update_generalization(generalization_id: str, request: UpdateGeneralizationRequest):
    """Update an ISA hierarchy."""
    try:
        generalization = diagram_manager.update_generalization(generalization_id, **_fields(request))
        if generalization:
            return {"success": True, "generalization": _dump(generalization)}
        raise HTTPException(status_code=404, detail="Generalization not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/generalizations/{generalization_id}")
async def delete_generalization(generalization_id: str):
    """Delete an ISA hierarchy."""
    try:
        if diagram_manager.delete_generalization(generalization_id):
            return {"success": True}
        raise HTTPException(status_code=404, detail="Generalization not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/generalizations/{generalization_id}/children/{entity_id}")
async def add_generalization_child(generalization_id: str, entity_id: str):
    """Add a child entity to an ISA hierarchy."""
    try:
        generalization = diagram_manager.add_generalization_child(generalization_id, entity_id)
        if generalization:
            return {"success": True, "generalization": _dump(generalization)}
        raise HTTPException(status_code=404, detail="Generalization not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/generalizations/{generalization_id}/children/{entity_id}")
async def remove_generalization_child(generalization_id: str, entity_id: str):
    """Remove a child entity; the hierarchy is deleted with its last child."""
    try:
        if diagram_manager.remove_generalization_child(generalization_id, entity_id):
            return {"success": True}
        raise HTTPException(status_code=404, detail="Generalization child not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Enums for Frontend ---

@app.get("/api/enums/connection-points")
async def get_connection_points():
    """Get available connection points."""
    return {"connection_points": [p.value for p in ConnectionPoint]}


@app.get("/api/enums/styles")
async def get_styles():
    """Get available connection styles."""
    return {"styles": [s.value for s in ConnectionStyle]}


@app.get("/api/enums/cardinalities")
async def get_cardinalities():
    """Get cardinality and participation values."""
    return {
        "cardinalities": [c.value for c in Cardinality],
        "participations": [p.value for p in Participation],
    }


# --- Analysis & Validation ---

@app.get("/api/diagram/validate")
async def validate_current_diagram():
    """
    Validate the current diagram.

    Returns one warning record per flagged element and a summary.
    """
    if diagram_manager.diagram is None:
        raise HTTPException(status_code=400, detail="No diagram open")

    issues = diagram_manager.validate()
    summary = validation_summary(issues)

    return {
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": summary
    }


class ValidationToggleRequest(BaseModel):
    enabled: bool


@app.put("/api/validation")
async def set_validation(request: ValidationToggleRequest):
    """Turn inline validation on or off."""
    diagram_manager.set_validation_enabled(request.enabled)
    return {"success": True, "validation_enabled": diagram_manager.validation_enabled}


@app.get("/api/diagram/summary")
async def summarize_current_diagram():
    """
    Get a structural summary of the current diagram.

    Returns element counts, connected components, most connected
    elements and orphan entities.
    """
    if diagram_manager.diagram is None:
        raise HTTPException(status_code=400, detail="No diagram open")

    summary = summarize_diagram(diagram_manager.diagram)

    return {
        "success": True,
        "summary": summary.to_dict()
    }


# --- Geometry ---

@app.post("/api/geometry/closest-edge")
async def get_closest_edge(request: ClosestEdgeRequest):
    """Which edge of a box faces a point."""
    return {"success": True, "edge": closest_edge(request.point, request)}


@app.post("/api/geometry/orthogonal-path")
async def get_orthogonal_path(request: OrthogonalPathRequest):
    """Route a flat polyline with horizontal/vertical segments."""
    try:
        points = to_orthogonal_path(request.points, request.from_edge, request.to_edge)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "points": points}


# --- Run with uvicorn ---

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=os.environ.get("ERD_LOG_LEVEL", "INFO").upper())
    uvicorn.run(
        app,
        host=os.environ.get("ERD_HOST", "127.0.0.1"),
        port=int(os.environ.get("ERD_PORT", "8765"))
    )

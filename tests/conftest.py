"""Shared fixtures for the ER diagram tests."""

import pytest

from erd_backend.diagram_manager import DiagramManager
from erd_core.models import Diagram, Entity, Position, Relationship

from .builders import add_attribute, connect


@pytest.fixture
def manager():
    """A manager with a fresh, empty diagram open."""
    mgr = DiagramManager()
    mgr.new_diagram("Test Diagram")
    return mgr


@pytest.fixture
def validating_manager():
    """A manager with inline validation switched on."""
    mgr = DiagramManager(validation_enabled=True)
    mgr.new_diagram("Validated Diagram")
    return mgr


@pytest.fixture
def student_course():
    """Student --(Enrolls)-- Course, both entities keyed."""
    diagram = Diagram(name="University")
    student = Entity(id="e-student", name="Student", position=Position(x=0, y=0))
    course = Entity(id="e-course", name="Course", position=Position(x=400, y=0))
    enrolls = Relationship(id="r-enrolls", name="Enrolls", position=Position(x=200, y=0))
    diagram.entities.extend([student, course])
    diagram.relationships.append(enrolls)

    add_attribute(diagram, student, "student_id", is_key=True)
    add_attribute(diagram, course, "code", is_key=True)
    connect(diagram, student, enrolls, cardinality="N", participation="total")
    connect(diagram, course, enrolls, cardinality="M", participation="partial")
    return diagram

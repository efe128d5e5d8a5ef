"""Canvas REST API gateway and the local shapes of its resources."""

from study_os.canvas.gateway import CanvasGateway
from study_os.canvas.models import (
    CalendarEvent,
    CanvasAssignment,
    CanvasCourse,
    CanvasFile,
    CanvasFolder,
)

__all__ = [
    "CalendarEvent",
    "CanvasAssignment",
    "CanvasCourse",
    "CanvasFile",
    "CanvasFolder",
    "CanvasGateway",
]

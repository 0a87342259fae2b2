# services/__init__.py

from .inspection_service import InspectionService

__all__ = ["InspectionService"]

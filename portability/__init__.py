"""
Portability package - export and import of a user's cases, profile and evidence.
"""

from portability.document import ExportDocument
from portability.engine import DataPortabilityEngine

__all__ = ["DataPortabilityEngine", "ExportDocument"]

"""
Database Package
================

Exports key database components.
"""

from todoforge.db.models import Base, ReplaySessionModel, ReplayStepModel
from todoforge.db.connection import ProjectDatabase

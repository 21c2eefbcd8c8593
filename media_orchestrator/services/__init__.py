"""Orchestration services"""

from .factory import create_orchestrator
from .orchestrator import Orchestrator

__all__ = ["Orchestrator", "create_orchestrator"]

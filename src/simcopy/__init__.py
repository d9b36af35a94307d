# Copyright (c) Syntropy Systems
"""
simcopy - Copy simulation models between database and text files.

Models, model runs, input worksets and modeling tasks are copied with
every numeric id translated into the destination id space.
"""

from simcopy.copier import CopyOptions
from simcopy.orchestrator import CopyOrchestrator, CopyReport, CopyState
from simcopy.selector import Selector

__version__ = "0.1.0"
__all__ = ["CopyOptions", "CopyOrchestrator", "CopyReport", "CopyState", "Selector", "__version__"]

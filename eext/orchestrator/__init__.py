"""
Orchestrator modules package
"""

from .commands import Orchestrator

__all__ = ['Orchestrator']

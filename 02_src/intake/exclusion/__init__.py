"""Exclusion module."""

from .manager import Exclusion, ExclusionKind, ExclusionManager, IExclusionManager

__all__ = ["Exclusion", "ExclusionKind", "ExclusionManager", "IExclusionManager"]

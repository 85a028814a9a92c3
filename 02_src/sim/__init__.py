"""Scripted traffic simulator."""

from .sim import SCRIPTS, ISim, Sim

__all__ = ["SCRIPTS", "ISim", "Sim"]

"""Visualization module - Plots and text reports."""

from .plots import SimulationPlotter

__all__ = ["SimulationPlotter"]

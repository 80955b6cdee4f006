"""Simulation engine and result queries."""

from pricelab.simulation.engine import SimulationEngine
from pricelab.simulation.results import BreakdownBy, ResultsQueryService

__all__ = ["BreakdownBy", "ResultsQueryService", "SimulationEngine"]

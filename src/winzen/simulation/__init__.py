"""Bot-driven trading simulation over the shared trade path."""

from winzen.simulation.config import SimulationConfig
from winzen.simulation.engine import SimulationEngine, TickReport

__all__ = ["SimulationConfig", "SimulationEngine", "TickReport"]

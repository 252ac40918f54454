"""
Operation Context

The shared collaborators handed to every operation and to the shutdown
margin analyzer.
"""

from dataclasses import dataclass

from .engine import SteadyStateEngine
from .poison import PoisonTracker
from .rods import RodController
from .search import CriticalitySearch
from .state import ReactorState


@dataclass
class OperationContext:
    """
    Engine and search shared by the operations of one simulation.

    Attributes:
        engine: Owner of the reactor state
        search: Criticality search bound to the same engine
    """

    engine: SteadyStateEngine
    search: CriticalitySearch

    @classmethod
    def from_engine(cls, engine: SteadyStateEngine) -> "OperationContext":
        return cls(engine=engine, search=CriticalitySearch(engine))

    @property
    def rods(self) -> RodController:
        return self.engine.rods

    @property
    def poison(self) -> PoisonTracker:
        return self.engine.poison

    @property
    def state(self) -> ReactorState:
        return self.engine.state

"""
Reactor Core Operation Package

Time-domain operation of a reactor core over a steady-state flux solver:
power maneuvers, rod sequencing with insertion limits, xenon and samarium
transients, depletion and shutdown margin analysis.

Modules:
    - constants: Physical constants and fission product data
    - geometry: Static core geometry
    - options: Calculation options and scenario items
    - state: Reactor state and result records
    - rods: Rod banks, PDIL tables and sequences
    - poison: Xenon and samarium chain integration
    - solver: Flux solver contract and the lumped reference solver
    - engine: Steady-state engine owning the reactor state
    - search: Criticality search
    - operations: Time-stepped operation state machine
    - maneuvers: Flexible, startup, coastdown and ECP operations
    - shutdown_margin: Shutdown margin analysis
    - reactor: Facade wiring everything together
"""

from .constants import PhysicalConstants
from .context import OperationContext
from .engine import SteadyStateEngine
from .errors import (
    ConfigurationError,
    CoreOpsError,
    ErrorCode,
    InvalidStateError,
    NumericalError,
)
from .geometry import CoreGeometry
from .maneuvers import (
    CoastdownOperation,
    ECPOperation,
    FlexibleOperation,
    StartupConfig,
    create_startup_operation,
)
from .operations import (
    GeneralOperation,
    OperationKind,
    OperationStatus,
    TimeSteppedOperation,
    XenonDynamicsOperation,
)
from .options import (
    CriticalOption,
    DepletionIsotope,
    DepletionOption,
    ECPOption,
    ScenarioItem,
    SMType,
    SteadyOption,
    TimeUnit,
    XEType,
)
from .poison import PoisonData, PoisonTracker
from .reactor import ReactorCore, create_reactor_core
from .rods import RodController, SequenceDirection
from .search import CriticalitySearch
from .shutdown_margin import ShutdownMarginAnalyzer
from .solver import FluxSolution, FluxSolver, LumpedCoreModel, LumpedFluxSolver, StaticSetup
from .state import PoisonState, ReactorState, Result, SDMResult

__version__ = "1.0.0"
__author__ = "Nuclear Engineering Model"

__all__ = [
    "PhysicalConstants",
    "OperationContext",
    "SteadyStateEngine",
    "ConfigurationError",
    "CoreOpsError",
    "ErrorCode",
    "InvalidStateError",
    "NumericalError",
    "CoreGeometry",
    "CoastdownOperation",
    "ECPOperation",
    "FlexibleOperation",
    "StartupConfig",
    "create_startup_operation",
    "GeneralOperation",
    "OperationKind",
    "OperationStatus",
    "TimeSteppedOperation",
    "XenonDynamicsOperation",
    "CriticalOption",
    "DepletionIsotope",
    "DepletionOption",
    "ECPOption",
    "ScenarioItem",
    "SMType",
    "SteadyOption",
    "TimeUnit",
    "XEType",
    "PoisonData",
    "PoisonTracker",
    "ReactorCore",
    "create_reactor_core",
    "RodController",
    "SequenceDirection",
    "CriticalitySearch",
    "ShutdownMarginAnalyzer",
    "FluxSolution",
    "FluxSolver",
    "LumpedCoreModel",
    "LumpedFluxSolver",
    "StaticSetup",
    "PoisonState",
    "ReactorState",
    "Result",
    "SDMResult",
]

"""
Reactor Core Facade

This module wires a flux solver, the steady-state engine, the criticality
search and the operation variants into one object that keeps a history of
results and reports it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from datetime import datetime
import json
import logging

from .context import OperationContext
from .engine import SteadyStateEngine
from .geometry import CoreGeometry
from .maneuvers import CoastdownOperation, ECPOperation, FlexibleOperation, create_startup_operation
from .operations import GeneralOperation, TimeSteppedOperation, XenonDynamicsOperation
from .options import SteadyOption
from .shutdown_margin import ShutdownMarginAnalyzer
from .solver import FluxSolver, LumpedCoreModel, LumpedFluxSolver, StaticSetup
from .state import Result, SDMResult
from .utils import reactivity_pcm

logger = logging.getLogger(__name__)

# Default bank layout: (rod id, worth [pcm]) in insertion order
STANDARD_BANKS: Tuple[Tuple[str, float], ...] = (
    ("R5", 450.0),
    ("R4", 650.0),
    ("R3", 900.0),
    ("B", 1800.0),
    ("A", 2200.0),
)

# Regulating bank insertion limits: (power [%], lowest position [cm])
STANDARD_PDIL: Dict[str, List[Tuple[float, float]]] = {
    "R5": [(0.0, 0.0), (50.0, 120.0), (100.0, 240.0)],
    "R4": [(0.0, 0.0), (50.0, 200.0), (100.0, 381.0)],
    "R3": [(0.0, 100.0), (50.0, 381.0), (100.0, 381.0)],
}


@dataclass
class ReactorCore:
    """
    Reactor core operation model.

    Attributes:
        geometry: Static core geometry
        model: Parameters of the lumped reference solver
        solver: Flux solver, a LumpedFluxSolver over `model` when omitted
    """

    geometry: CoreGeometry = field(default_factory=CoreGeometry)
    model: LumpedCoreModel = field(default_factory=LumpedCoreModel)
    solver: Optional[FluxSolver] = None

    # Computed components (initialized in __post_init__)
    engine: SteadyStateEngine = field(init=False)
    context: OperationContext = field(init=False)
    history: List[Result] = field(init=False, default_factory=list)
    last_sdm: Optional[SDMResult] = field(init=False, default=None)

    def __post_init__(self):
        """Wire the engine, search and shared operation context."""
        if self.solver is None:
            self.solver = LumpedFluxSolver(self.model, self.geometry)
        self.engine = SteadyStateEngine(
            self.solver,
            StaticSetup(self.geometry),
            poison_data=self.model.poison,
            rod_range=self.model.rod_range,
        )
        self.context = OperationContext.from_engine(self.engine)
        self._log_handler: Optional[logging.Handler] = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def initialize(
        self,
        geometry_file: str = "core.geom",
        xs_file: str = "core.xs",
        ff_file: str = "core.ff",
    ) -> CoreGeometry:
        return self.engine.initialize(geometry_file, xs_file, ff_file)

    def add_rod_bank(
        self,
        rod_id: str,
        worth: float,
        overlap_id: Optional[str] = None,
        rod_range: Optional[Tuple[float, float]] = None,
    ) -> None:
        """
        Register a bank with the engine and give it a worth in the lumped model.

        Args:
            rod_id: Bank identifier
            worth: Total bank worth [pcm]
            overlap_id: Linked bank moved with this one
            rod_range: (bottom, top) travel range [cm]
        """
        self.engine.set_control_rod(rod_id, overlap_id, rod_range)
        self.model.rod_worths[rod_id] = worth

    def set_log_file(self, path: str, level: int = logging.INFO) -> logging.Handler:
        """Send package log records to a file."""
        package_logger = logging.getLogger("core_ops")
        if self._log_handler is not None:
            package_logger.removeHandler(self._log_handler)
            self._log_handler.close()
        handler = logging.FileHandler(path)
        handler.setLevel(level)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")
        )
        package_logger.addHandler(handler)
        if package_logger.level == logging.NOTSET or package_logger.level > level:
            package_logger.setLevel(level)
        self._log_handler = handler
        return handler

    # ------------------------------------------------------------------
    # Calculations
    # ------------------------------------------------------------------

    def calc_static(self, option: SteadyOption) -> Result:
        """Criticality search at fixed time."""
        result = self.context.search.search(option)
        self.history.append(result)
        return result

    def search_asi(self, option: SteadyOption, target_asi: float) -> Result:
        """Critical state with the rod sequences moved to a target ASI."""
        result = self.engine.search_asi(option, target_asi)
        self.history.append(result)
        return result

    def xenon_dynamics(self) -> XenonDynamicsOperation:
        return XenonDynamicsOperation(self.context)

    def flexible(self) -> FlexibleOperation:
        return FlexibleOperation(self.context)

    def startup(
        self,
        shutdown_time: float,
        prior_power: float = 1.0,
        initial_rod_positions: Optional[Dict[str, float]] = None,
    ) -> FlexibleOperation:
        return create_startup_operation(
            self.context, shutdown_time, prior_power, initial_rod_positions
        )

    def coastdown(self) -> CoastdownOperation:
        return CoastdownOperation(self.context)

    def ecp(self) -> ECPOperation:
        return ECPOperation(self.context)

    def general(self) -> GeneralOperation:
        return GeneralOperation(self.context)

    def shutdown_margin(self) -> ShutdownMarginAnalyzer:
        return ShutdownMarginAnalyzer(self.context)

    def run_operation(
        self,
        operation: TimeSteppedOperation,
        option: SteadyOption,
    ) -> List[Result]:
        """
        Run an operation from INIT to DONE with one option for every step.

        Returns:
            Results of the steps, also appended to ``history``
        """
        operation.reset()
        results = []
        while operation.next():
            results.append(operation.run_step(option))
        self.history.extend(results)
        logger.info(
            f"{operation.kind.value} finished: {len(results)} steps, "
            f"{operation.elapsed:.0f}s"
        )
        return results

    def run_shutdown_margin(
        self,
        dt: float = 0.0,
        option: Optional[SteadyOption] = None,
        analyzer: Optional[ShutdownMarginAnalyzer] = None,
    ) -> SDMResult:
        if analyzer is None:
            analyzer = self.shutdown_margin()
        self.last_sdm = analyzer.run(dt, option if option is not None else SteadyOption())
        return self.last_sdm

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_geometry_summary(self) -> Dict[str, Any]:
        g = self.geometry
        return {
            "axial_nodes": g.nz,
            "assemblies": g.nxya,
            "active_height_cm": g.height,
            "assembly_pitch_cm": g.assembly_pitch,
            "equivalent_radius_cm": g.equivalent_radius,
            "thermal_power_MW": g.thermal_power,
            "heavy_metal_tonnes": g.heavy_metal_tonnes,
        }

    def get_state_summary(self) -> Dict[str, Any]:
        state = self.engine.state
        xenon, samarium = self.engine.poison.species_worth()
        return {
            "time_s": state.time,
            "burnup_MWD_MTU": state.burnup,
            "power_fraction": state.power,
            "boron_ppm": state.boron,
            "inlet_temp_C": state.tin,
            "rod_positions_cm": self.engine.rods.positions(),
            "xenon_worth_pcm": xenon,
            "samarium_worth_pcm": samarium,
        }

    def run_full_analysis(self) -> Dict[str, Any]:
        """Collect geometry, state, history and shutdown margin into one record."""
        analysis = {
            "metadata": {
                "model": "Core Operation Model v1.0",
                "timestamp": datetime.now().isoformat(),
                "solver": type(self.solver).__name__,
            },
            "geometry": self.get_geometry_summary(),
            "state": self.get_state_summary(),
            "history": [
                {
                    "time_s": r.time,
                    "k_effective": r.eigenvalue,
                    "reactivity_pcm": reactivity_pcm(r.eigenvalue),
                    "power_fraction": r.power_level,
                    "boron_ppm": r.boron_ppm,
                    "asi": r.asi,
                    "fq": r.fq,
                    "burnup_MWD_MTU": r.burnup,
                    "error": int(r.error),
                }
                for r in self.history
            ],
        }
        if self.last_sdm is not None:
            analysis["shutdown_margin"] = self.last_sdm.to_dict()
        return analysis

    def print_summary(self):
        """Print formatted summary of the simulation."""
        analysis = self.run_full_analysis()

        print("=" * 70)
        print("           CORE OPERATION SUMMARY")
        print("=" * 70)

        g = analysis["geometry"]
        print(f"\n{'CORE PARAMETERS':^70}")
        print("-" * 70)
        print(f"  Thermal Power:          {g['thermal_power_MW']:>10.1f} MW")
        print(f"  Number of Assemblies:   {g['assemblies']:>10d}")
        print(f"  Axial Nodes:            {g['axial_nodes']:>10d}")
        print(f"  Active Height:          {g['active_height_cm']:>10.1f} cm")

        s = analysis["state"]
        print(f"\n{'CURRENT STATE':^70}")
        print("-" * 70)
        print(f"  Elapsed Time:           {s['time_s']:>10.0f} s")
        print(f"  Burnup:                 {s['burnup_MWD_MTU']:>10.1f} MWD/MTU")
        print(f"  Power Level:            {s['power_fraction'] * 100:>10.2f} %")
        print(f"  Boron:                  {s['boron_ppm']:>10.1f} ppm")
        print(f"  Xe-135 Worth:           {s['xenon_worth_pcm']:>10.1f} pcm")
        print(f"  Sm-149 Worth:           {s['samarium_worth_pcm']:>10.1f} pcm")
        for rod_id, position in s["rod_positions_cm"].items():
            print(f"  Rod {rod_id:<19} {position:>10.1f} cm")

        history = analysis["history"]
        if history:
            print(f"\n{'HISTORY':^70}")
            print("-" * 70)
            print(f"  {'time [h]':>10} {'power [%]':>10} {'ppm':>8} {'ASI':>8} {'Fq':>7} {'k_eff':>9}")
            for row in history:
                print(
                    f"  {row['time_s'] / 3600.0:>10.2f} {row['power_fraction'] * 100:>10.2f} "
                    f"{row['boron_ppm']:>8.1f} {row['asi']:>+8.4f} {row['fq']:>7.3f} "
                    f"{row['k_effective']:>9.5f}"
                )

        sdm = analysis.get("shutdown_margin")
        if sdm is not None:
            print(f"\n{'SHUTDOWN MARGIN':^70}")
            print("-" * 70)
            print(f"  Bite Worth:             {sdm['bite_worth']:>10.1f} pcm")
            print(f"  Stuck Rod ({sdm['stuck_rod'] or '-':>3}):        {sdm['stuck_rod_worth']:>10.1f} pcm")
            print(f"  Power Defect:           {sdm['power_defect']:>10.1f} pcm")
            print(f"  Margin:                 {sdm['margin']:>10.1f} pcm")

        print("\n" + "=" * 70)

    def to_json(self, filepath: Optional[str] = None) -> str:
        """
        Export the analysis to JSON.

        Args:
            filepath: Optional file path to save JSON

        Returns:
            JSON string
        """
        json_str = json.dumps(self.run_full_analysis(), indent=2, default=str)

        if filepath:
            with open(filepath, 'w') as f:
                f.write(json_str)

        return json_str


def create_reactor_core(
    banks: Sequence[Tuple[str, float]] = STANDARD_BANKS,
    burnup_points: Optional[Sequence[float]] = None,
    **kwargs
) -> ReactorCore:
    """
    Factory function to create an initialized reactor core model.

    The banks are registered in insertion order, the regulating banks get
    their standard PDIL, and the IN/OUT sequences run the regulating banks
    in and out in opposite order.

    Args:
        banks: (rod id, worth [pcm]) pairs in insertion order
        burnup_points: Burnup table [MWD/MTU], 0 to 20000 when omitted
        **kwargs: Additional parameters passed to ReactorCore

    Returns:
        Initialized ReactorCore instance
    """
    core = ReactorCore(**kwargs)
    core.initialize()
    for rod_id, worth in banks:
        core.add_rod_bank(rod_id, worth)
        if rod_id in STANDARD_PDIL:
            core.engine.set_pdil(rod_id, STANDARD_PDIL[rod_id])

    regulating = [rod_id for rod_id, _ in banks if rod_id in STANDARD_PDIL]
    if regulating:
        rods = core.engine.rods
        rods.set_sequence(
            "in",
            regulating,
            [rods.group(rod_id).bottom for rod_id in regulating],
        )
        rods.set_sequence(
            "out",
            list(reversed(regulating)),
            [rods.group(rod_id).top for rod_id in reversed(regulating)],
        )

    if burnup_points is None:
        burnup_points = [0.0, 1000.0, 5000.0, 10000.0, 15000.0, 20000.0]
    core.engine.set_burnup_points(burnup_points)
    return core

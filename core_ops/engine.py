"""
Steady-State Engine

The engine owns the one mutable ReactorState of a simulation together with
the RodController and PoisonTracker bound to it. It applies calculation
options to the state, forwards solve and depletion requests to the flux
solver, builds Results, and keeps identified snapshots.

Every solve and depletion call is all-or-nothing: on NumericalError the
state is restored exactly before the error propagates.
"""

from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging
import math

import numpy as np

from .constants import PhysicalConstants
from .errors import ConfigurationError, InvalidStateError, NumericalError
from .geometry import CoreGeometry
from .options import SMType, SteadyOption, XEType
from .poison import PoisonData, PoisonTracker
from .rods import RodController
from .search import CriticalitySearch
from .solver import FluxSolution, FluxSolver, SetupCollaborator, SolverSettings, StaticSetup
from .state import ReactorState, Result
from .utils import (
    calculate_burnup,
    interpolate_band,
    seconds_for_burnup,
    validate_increasing,
)

logger = logging.getLogger(__name__)

BandTable = Union[Mapping[float, Tuple[float, float]], Sequence[Tuple[float, Tuple[float, float]]]]


class SteadyStateEngine:
    """
    Owner of the reactor state and gateway to the flux solver.

    Args:
        solver: Flux solver collaborator
        setup: Setup collaborator used by ``initialize``
        state: Initial reactor state, a fresh one when omitted
        poison_data: Core data for the poison tracker
        rod_range: Default travel range of registered rods [cm]
    """

    def __init__(
        self,
        solver: FluxSolver,
        setup: Optional[SetupCollaborator] = None,
        state: Optional[ReactorState] = None,
        poison_data: Optional[PoisonData] = None,
        rod_range: Tuple[float, float] = (0.0, 381.0),
    ):
        self.solver = solver
        self.setup = setup if setup is not None else StaticSetup()
        self.state = state if state is not None else ReactorState()
        self.rods = RodController(self.state.rod_positions, default_range=rod_range)
        self.poison = PoisonTracker(self.state.poison, poison_data)
        self.settings = SolverSettings()
        self.geometry: Optional[CoreGeometry] = None
        self.burnup_points: List[float] = []
        self.xenon_factor = 1.0
        self.asi_target: Optional[float] = None

        self._snapshots: Dict[int, ReactorState] = {}
        self._asi_band: List[Tuple[float, Tuple[float, float]]] = []
        self._asi_allowance: List[Tuple[float, Tuple[float, float]]] = []
        self.power_time = 0.0  # Σ plevel·dt since the last burnup update [s]
        self._last_result: Optional[Result] = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def initialize(self, geometry_file: str, xs_file: str, ff_file: str) -> CoreGeometry:
        """Load static geometry through the setup collaborator."""
        self.geometry = self.setup.load(geometry_file, xs_file, ff_file)
        self.solver.configure(self.settings)
        logger.info(
            f"Engine initialized: nz={self.geometry.nz}, nxya={self.geometry.nxya}, "
            f"height={self.geometry.height} cm"
        )
        return self.geometry

    @property
    def initialized(self) -> bool:
        return self.geometry is not None

    def require_initialized(self) -> None:
        if self.geometry is None:
            raise InvalidStateError("Engine used before initialize()")

    def get_geometry(self) -> CoreGeometry:
        self.require_initialized()
        return self.geometry

    def get_result(self) -> Result:
        if self._last_result is None:
            raise InvalidStateError("No solve has been run yet")
        return self._last_result

    def set_result(self, result: Result) -> None:
        """Make `result` the one returned by ``get_result``."""
        self._last_result = result

    def _update_settings(self, **changes) -> None:
        self.settings = replace(self.settings, **changes)
        self.solver.configure(self.settings)

    def set_iteration_limit(self, maxls: int, epsls: float) -> None:
        if maxls <= 0 or epsls <= 0.0:
            raise ConfigurationError(f"Invalid iteration limit ({maxls}, {epsls})")
        self._update_settings(max_inner_iterations=maxls, inner_epsilon=epsls)

    def set_number_of_threads(self, nthreads: int) -> None:
        """Thread count hint, consumed only by the solver's kernel."""
        if nthreads < 1:
            raise ConfigurationError(f"Thread count must be >= 1, got {nthreads}")
        self._update_settings(threads=nthreads)

    def set_tf_feedback_factor(self, factor: float) -> None:
        self._update_settings(tf_feedback_factor=factor)

    def set_tf_table(
        self,
        burnups: Sequence[float],
        powers: Sequence[float],
        table: Sequence[Sequence[float]],
    ) -> None:
        """Fuel temperature rise table [°C] by (burnup, power fraction)."""
        self._update_settings(
            tf_burnups=list(burnups),
            tf_powers=list(powers),
            tf_table=[list(row) for row in table],
        )

    # ------------------------------------------------------------------
    # Rods
    # ------------------------------------------------------------------

    def set_control_rod(
        self,
        rod_id: str,
        overlapped_with: Optional[str] = None,
        rod_range: Optional[Tuple[float, float]] = None,
    ) -> None:
        group = self.rods.register_rod(rod_id, overlapped_with, rod_range)
        ranges = dict(self.settings.rod_ranges)
        ranges[rod_id] = (group.bottom, group.top)
        self._update_settings(rod_ranges=ranges)

    def set_rod_strength(self, rod_id: str, strength: float) -> None:
        """Scale the worth of one bank, 1 being its nominal worth."""
        self.rods.group(rod_id)
        if strength < 0.0:
            raise ConfigurationError(f"Rod strength must be >= 0, got {strength}")
        strengths = dict(self.settings.rod_strengths)
        strengths[rod_id] = float(strength)
        self._update_settings(rod_strengths=strengths)

    def set_rod_strength_all(self, strengths: Sequence[float]) -> None:
        """Worth multipliers for every bank, in registration order."""
        rod_ids = self.rods.rod_ids
        if len(strengths) != len(rod_ids):
            raise ConfigurationError(
                f"Expected {len(rod_ids)} rod strengths, got {len(strengths)}"
            )
        for strength in strengths:
            if strength < 0.0:
                raise ConfigurationError(f"Rod strength must be >= 0, got {strength}")
        self._update_settings(
            rod_strengths={rod_id: float(s) for rod_id, s in zip(rod_ids, strengths)}
        )

    def set_pdil(self, rod_id: str, pdil: Sequence[Tuple[float, float]]) -> None:
        self.rods.set_pdil(rod_id, pdil)

    def get_pdil(self, rod_id: str, rel_power: float) -> float:
        return self.rods.get_pdil(rod_id, rel_power)

    def set_rod_position(self, rod_id: str, position: float, overlap: bool = False) -> float:
        return self.rods.set_position(rod_id, position, overlap)

    # ------------------------------------------------------------------
    # ASI limits
    # ------------------------------------------------------------------

    @staticmethod
    def _band_table(table: BandTable, name: str) -> List[Tuple[float, Tuple[float, float]]]:
        if isinstance(table, Mapping):
            points = sorted((float(p), tuple(band)) for p, band in table.items())
        else:
            points = [(float(p), tuple(band)) for p, band in table]
        validate_increasing([p for p, _ in points], name)
        for power, (lower, upper) in points:
            if lower > upper:
                raise ConfigurationError(
                    f"{name} at {power}% is inverted: {lower} > {upper}"
                )
        return points

    def set_asi_band(self, asi_band: BandTable) -> None:
        """Absolute ASI limits by relative power [%]."""
        self._asi_band = self._band_table(asi_band, "ASI band")

    def set_asi_allowance(self, asi_allowance: BandTable) -> None:
        """ASI deviation allowance from the target by relative power [%]."""
        self._asi_allowance = self._band_table(asi_allowance, "ASI allowance")

    def asi_band(self, power: float) -> Optional[Tuple[float, float]]:
        if not self._asi_band:
            return None
        return interpolate_band(power, self._asi_band)

    def asi_allowance(self, power: float) -> Optional[Tuple[float, float]]:
        if not self._asi_allowance:
            return None
        return interpolate_band(power, self._asi_allowance)

    def search_asi(self, option: SteadyOption, target_asi: float) -> Result:
        """
        Move the rod sequences to a target ASI while staying critical.

        The target is kept as the ASI that power maneuvers hold until
        ``reset_asi``.
        """
        result = CriticalitySearch(self).search_asi(option, target_asi)
        self.asi_target = target_asi
        logger.info(f"ASI search to {target_asi:+.4f}: reached {result.asi:+.4f}")
        return result

    def reset_asi(self) -> None:
        """Drop the ASI target and the ASI band and allowance tables."""
        self.asi_target = None
        self._asi_band = []
        self._asi_allowance = []

    # ------------------------------------------------------------------
    # Solving
    # ------------------------------------------------------------------

    def _apply_option(self, option: SteadyOption) -> None:
        for rod_id in option.rod_pos:
            self.rods.group(rod_id)
        if option.ppm < 0.0:
            raise ConfigurationError(f"Boron concentration must be >= 0, got {option.ppm}")

        self.state.boron = option.ppm
        self.state.power = option.plevel
        self.state.tin = option.tin
        for rod_id, position in option.rod_pos.items():
            self.rods.set_position(rod_id, position)

        self.poison.set_mode(option.xenon, option.samarium)
        self.poison.advance(0.0, option.plevel, self.xenon_factor)

    def _build_result(self, solution: FluxSolution) -> Result:
        geometry = self.geometry
        power_2d = np.asarray(solution.power_2d, dtype=float)
        power_1d = np.asarray(solution.power_1d, dtype=float)

        if not math.isfinite(solution.eigenvalue) or solution.eigenvalue <= 0.0:
            raise NumericalError(f"Solver returned eigenvalue {solution.eigenvalue}")
        if power_1d.shape != (geometry.nz,) or power_2d.shape != (geometry.nxya,):
            raise NumericalError(
                f"Solver returned power arrays {power_2d.shape}/{power_1d.shape}, "
                f"expected ({geometry.nxya},)/({geometry.nz},)"
            )
        if not (np.all(np.isfinite(power_1d)) and np.all(np.isfinite(power_2d))):
            raise NumericalError("Solver returned non-finite power")

        fr = float(power_2d.max()) if power_2d.size else 0.0
        fz = float(power_1d.max()) if power_1d.size else 0.0
        fxy = fr * solution.pin_peaking

        return Result(
            eigenvalue=float(solution.eigenvalue),
            boron_ppm=self.state.boron,
            fq=fxy * fz,
            fxy=fxy,
            fr=fr,
            fz=fz,
            asi=geometry.axial_shape_index(power_1d),
            fuel_temperature=solution.fuel_temperature,
            moderator_temperature=solution.moderator_temperature,
            power_level=self.state.power,
            power_2d=power_2d.tolist(),
            power_1d=power_1d.tolist(),
            time=self.state.time,
            burnup=self.state.burnup,
            rod_positions=self.rods.positions(),
            error=solution.error,
        )

    def solve(self, option: SteadyOption) -> Result:
        """
        Apply an option to the state and solve it.

        Boron, power level, inlet temperature and rod overrides are written
        into the state, equilibrium poisons are set when the option asks
        for them, and the flux solver is run.

        Raises:
            InvalidStateError: before ``initialize``
            ConfigurationError: unknown rod id or negative boron in the option
            NumericalError: the solver failed; the state is left unchanged
        """
        self.require_initialized()
        before = self.state.copy()
        try:
            self._apply_option(option)
            solution = self.solver.solve(self.state, option)
            result = self._build_result(solution)
        except NumericalError as exc:
            self.state.restore_from(before)
            logger.error(f"Solve failed, state restored: {exc}")
            raise
        except ConfigurationError:
            self.state.restore_from(before)
            raise

        self._last_result = result
        logger.debug(
            f"Solve: k={result.eigenvalue:.6f} ppm={result.boron_ppm:.1f} "
            f"P={result.power_level:.3f} ASI={result.asi:+.4f}"
        )
        return result

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def save_snapshot(self, snapshot_id: int, overwrite: bool = False) -> int:
        """
        Store an independent copy of the state under a caller-chosen id.

        Raises:
            ConfigurationError: non-integer id, or id already saved
                without ``overwrite``
        """
        if isinstance(snapshot_id, bool) or not isinstance(snapshot_id, int):
            raise ConfigurationError(f"Snapshot id must be an integer, got {snapshot_id!r}")
        if snapshot_id in self._snapshots and not overwrite:
            raise ConfigurationError(f"Snapshot {snapshot_id} already exists")
        self._snapshots[snapshot_id] = self.state.copy()
        logger.debug(f"Saved snapshot {snapshot_id}")
        return snapshot_id

    def load_snapshot(self, snapshot_id: int) -> None:
        """Restore the state from a snapshot; the snapshot stays available."""
        try:
            snapshot = self._snapshots[snapshot_id]
        except KeyError:
            raise ConfigurationError(f"Unknown snapshot id {snapshot_id!r}") from None
        self.state.restore_from(snapshot)
        logger.debug(f"Loaded snapshot {snapshot_id}")

    def discard_snapshot(self, snapshot_id: int) -> None:
        if self._snapshots.pop(snapshot_id, None) is None:
            raise ConfigurationError(f"Unknown snapshot id {snapshot_id!r}")

    @property
    def snapshot_ids(self) -> List[int]:
        return sorted(self._snapshots)

    # ------------------------------------------------------------------
    # Burnup and depletion
    # ------------------------------------------------------------------

    def set_burnup_points(self, burnups: Sequence[float]) -> None:
        validate_increasing(list(burnups), "Burnup point")
        self.burnup_points = [float(b) for b in burnups]

    def _require_burnup_points(self) -> None:
        if not self.burnup_points:
            raise ConfigurationError("Depletion requested with an empty burnup table")

    def set_burnup(self, burnup: float, option: SteadyOption) -> SteadyOption:
        """
        Move the core to a burnup point.

        Returns:
            A copy of `option` echoing the current rod positions for every
            registered rod not already overridden
        """
        self._require_burnup_points()
        if not self.burnup_points[0] <= burnup <= self.burnup_points[-1]:
            raise ConfigurationError(
                f"Burnup {burnup} outside burnup table "
                f"[{self.burnup_points[0]}, {self.burnup_points[-1]}]"
            )
        self.state.burnup = float(burnup)
        self.power_time = 0.0

        updated = option.copy()
        for rod_id, position in self.rods.positions().items():
            updated.rod_pos.setdefault(rod_id, position)
        logger.info(f"Burnup set to {burnup} MWD/MTU")
        return updated

    def record_power(self, plevel: float, dt: float) -> None:
        """Accumulate power history for the next ``update_burnup``."""
        self.power_time += max(plevel, 0.0) * dt

    def burnup_increment(self, power_time: float) -> float:
        """Burnup [MWD/MTU] accumulated by Σ plevel·dt seconds of operation."""
        g = self.get_geometry()
        days = power_time / PhysicalConstants.SECONDS_PER_DAY
        return calculate_burnup(g.thermal_power, days, g.heavy_metal_tonnes)

    def _advance_burnup(self, delta_burnup: float) -> float:
        if delta_burnup < 0.0:
            raise ConfigurationError(f"Burnup increment must be >= 0, got {delta_burnup}")
        burnup = self.solver.deplete(self.state, delta_burnup)
        if not math.isfinite(burnup) or burnup < self.state.burnup:
            raise NumericalError(
                f"Depletion moved burnup from {self.state.burnup} to {burnup}"
            )
        self.state.burnup = burnup
        return burnup

    def update_burnup(self) -> float:
        """
        Deplete by the power history recorded since the last call.

        Returns:
            The burnup increment [MWD/MTU]
        """
        self.require_initialized()
        self._require_burnup_points()
        delta = self.burnup_increment(self.power_time)
        before = self.state.burnup
        try:
            self._advance_burnup(delta)
        except NumericalError:
            self.state.burnup = before
            raise
        self.power_time = 0.0
        logger.debug(f"Burnup updated by {delta:.3f} to {self.state.burnup:.3f} MWD/MTU")
        return delta

    def _deplete(
        self,
        xe_option: XEType,
        sm_option: SMType,
        tsec: float,
        delta_burnup: float,
        xeamp: float,
    ) -> None:
        self.require_initialized()
        before = self.state.copy()
        try:
            self.poison.set_mode(xe_option, sm_option)
            self.poison.advance(tsec, self.state.power, xeamp)
            if delta_burnup > 0.0:
                self._advance_burnup(delta_burnup)
        except NumericalError:
            self.state.restore_from(before)
            raise

    def deplete(self, xe_option: XEType, sm_option: SMType, del_burnup: float) -> None:
        """Deplete by a burnup increment at the current power."""
        self._require_burnup_points()
        g = self.get_geometry()
        tsec = 0.0
        if self.state.power > 0.0:
            tsec = seconds_for_burnup(
                del_burnup, g.thermal_power * self.state.power, g.heavy_metal_tonnes
            )
        self._deplete(xe_option, sm_option, tsec, del_burnup, self.xenon_factor)

    def deplete_by_time(
        self,
        xe_option: XEType,
        sm_option: SMType,
        tsec: float,
        xeamp: float = 1.0,
    ) -> None:
        """Deplete for `tsec` seconds at the current power."""
        self._require_burnup_points()
        delta = self.burnup_increment(self.state.power * tsec)
        self._deplete(xe_option, sm_option, tsec, delta, xeamp)

    def deplete_xesm(
        self,
        xe_option: XEType,
        sm_option: SMType,
        tsec: float,
        xeamp: float = 1.0,
    ) -> None:
        """Advance only the xenon and samarium chains for `tsec` seconds."""
        self._deplete(xe_option, sm_option, tsec, 0.0, xeamp)

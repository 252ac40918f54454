"""
Flux Solver Collaborators

This module defines the narrow contract between the operation framework
and the steady-state flux solver, plus the setup collaborator that turns
the three initialization files into static geometry.

It also provides a lumped reference solver. The lumped model computes the
eigenvalue from a reactivity balance:

    ρ = ρ_excess(Bu) + α_B·C_B + Σ ρ_rod + α_D·(T_f - T_ref)
        + α_M(C_B)·(T_m - T_ref) + ρ_Xe + ρ_Sm
    k = 1 / (1 - ρ)

and analytic power shapes: a cosine axial shape tilted by coolant heating
and suppressed above inserted rod tips, and a J0 radial shape. It stands in
for a nodal diffusion code in examples and tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import logging
import math

import numpy as np
from scipy.interpolate import RegularGridInterpolator
from scipy.special import j0

from .constants import BORON_DATA, NOMINAL_CONDITIONS
from .errors import ConfigurationError, ErrorCode, NumericalError
from .geometry import CoreGeometry
from .options import SteadyOption
from .poison import PoisonData, poison_worth_pcm
from .state import ReactorState
from .utils import k_from_reactivity_pcm, validate_increasing

logger = logging.getLogger(__name__)


@dataclass
class FluxSolution:
    """
    Raw output of one flux solve.

    Attributes:
        eigenvalue: Effective multiplication factor
        power_2d: Assembly-wise relative power
        power_1d: Axial relative power
        fuel_temperature: Average fuel temperature [°C]
        moderator_temperature: Average moderator temperature [°C]
        pin_peaking: Pin-to-assembly peaking factor
        error: Soft error code of the solver's own iterations
    """

    eigenvalue: float
    power_2d: np.ndarray
    power_1d: np.ndarray
    fuel_temperature: float = 0.0
    moderator_temperature: float = 0.0
    pin_peaking: float = 1.0
    error: ErrorCode = ErrorCode.NONE


@dataclass
class SolverSettings:
    """
    Pass-through settings for the solver's internal kernel.

    Attributes:
        max_inner_iterations: Linear system iteration cap
        inner_epsilon: Linear system convergence criterion
        threads: Thread count hint for the linear algebra kernel
        tf_feedback_factor: Multiplier on the fuel temperature rise
        tf_burnups: Burnup axis of the fuel temperature table [MWD/MTU]
        tf_powers: Power axis of the fuel temperature table (fraction)
        tf_table: Fuel temperature rise [°C], shape (burnups, powers)
        rod_ranges: Travel range of each registered bank [cm]
        rod_strengths: Worth multiplier of each bank
    """

    max_inner_iterations: int = 100
    inner_epsilon: float = 1e-5
    threads: int = 1
    tf_feedback_factor: float = 1.0
    tf_burnups: Optional[List[float]] = None
    tf_powers: Optional[List[float]] = None
    tf_table: Optional[List[List[float]]] = None
    rod_ranges: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    rod_strengths: Dict[str, float] = field(default_factory=dict)


class FluxSolver(ABC):
    """Steady-state flux solver contract."""

    settings: SolverSettings

    def configure(self, settings: SolverSettings) -> None:
        """Receive iteration, threading and feedback settings."""
        self.settings = settings

    @abstractmethod
    def solve(self, state: ReactorState, option: SteadyOption) -> FluxSolution:
        """
        Solve the eigenvalue problem for a state.

        Must be deterministic given identical state and option, must not
        modify the state, and raises NumericalError on hard failure.
        """

    @abstractmethod
    def deplete(self, state: ReactorState, delta_burnup: float) -> float:
        """
        Deplete the core by `delta_burnup` MWD/MTU.

        Returns:
            The new core average burnup [MWD/MTU]
        """


class SetupCollaborator(ABC):
    """Turns the initialization files into static geometry."""

    @abstractmethod
    def load(self, geometry_file: str, xs_file: str, ff_file: str) -> CoreGeometry:
        """Read the geometry, cross-section and form-function libraries."""


class StaticSetup(SetupCollaborator):
    """Setup collaborator returning a fixed geometry without reading files."""

    def __init__(self, geometry: Optional[CoreGeometry] = None):
        self.geometry = geometry if geometry is not None else CoreGeometry()
        self.files: Tuple[str, ...] = ()

    def load(self, geometry_file: str, xs_file: str, ff_file: str) -> CoreGeometry:
        self.files = (geometry_file, xs_file, ff_file)
        logger.info(
            f"Static setup for {geometry_file}, {xs_file}, {ff_file}: "
            f"nz={self.geometry.nz} nxya={self.geometry.nxya}"
        )
        return self.geometry


@dataclass
class LumpedCoreModel:
    """
    Parameters of the lumped reference solver.

    Attributes:
        excess_reactivity: Clean, unborated, rods-out HZP reactivity at BOC [pcm]
        burnup_slope: Reactivity loss per unit burnup [pcm per MWD/MTU]
        boron_worth: Differential boron worth [pcm/ppm]
        doppler_coefficient: Fuel temperature coefficient [pcm/°C]
        mtc_unborated: Moderator temperature coefficient at 0 ppm [pcm/°C]
        mtc_boron_slope: MTC change per ppm of boron [pcm/°C/ppm]
        reference_tin: Inlet temperature of the reference state [°C]
        core_temperature_rise: Coolant temperature rise at rated power [°C]
        fuel_temperature_rise: Fuel-to-coolant temperature rise at rated power [°C]
        rod_worths: Total worth of each bank [pcm]
        rod_range: Travel range of banks the engine has not registered [cm]
        rod_shadow: Fraction of local power removed above the tip of a
            1000 pcm bank inserted 20 cm or more
        thermal_tilt: Bottom skew of the axial shape at rated power
        pin_peaking: Pin-to-assembly peaking factor
    """

    excess_reactivity: float = 13500.0  # [pcm]
    burnup_slope: float = 1.0  # [pcm/(MWD/MTU)]
    boron_worth: float = BORON_DATA["worth_pcm_per_ppm"]
    doppler_coefficient: float = -2.5  # [pcm/°C]
    mtc_unborated: float = -35.0  # [pcm/°C]
    mtc_boron_slope: float = 0.02  # [pcm/°C/ppm]
    reference_tin: float = NOMINAL_CONDITIONS["inlet_temperature_c"]
    core_temperature_rise: float = NOMINAL_CONDITIONS["core_temperature_rise_c"]
    fuel_temperature_rise: float = NOMINAL_CONDITIONS["fuel_temperature_rise_c"]
    rod_worths: Dict[str, float] = field(default_factory=dict)
    rod_range: Tuple[float, float] = (0.0, 381.0)  # [cm]
    rod_shadow: float = 0.6
    thermal_tilt: float = 0.25
    pin_peaking: float = 1.08
    poison: PoisonData = field(default_factory=PoisonData)


class LumpedFluxSolver(FluxSolver):
    """Reactivity-balance stand-in for a nodal flux solver."""

    def __init__(
        self,
        model: Optional[LumpedCoreModel] = None,
        geometry: Optional[CoreGeometry] = None,
    ):
        self.model = model if model is not None else LumpedCoreModel()
        self.geometry = geometry if geometry is not None else CoreGeometry()
        self.settings = SolverSettings()
        self._tf_interpolator: Optional[RegularGridInterpolator] = None

    def configure(self, settings: SolverSettings) -> None:
        super().configure(settings)
        self._tf_interpolator = None
        if settings.tf_table is not None:
            validate_increasing(settings.tf_burnups or [], "Fuel temperature burnup")
            validate_increasing(settings.tf_powers or [], "Fuel temperature power")
            table = np.asarray(settings.tf_table, dtype=float)
            expected = (len(settings.tf_burnups), len(settings.tf_powers))
            if table.shape != expected:
                raise ConfigurationError(
                    f"Fuel temperature table shape {table.shape} != {expected}"
                )
            self._tf_interpolator = RegularGridInterpolator(
                (settings.tf_burnups, settings.tf_powers),
                table,
                bounds_error=False,
                fill_value=None,
            )

    # ------------------------------------------------------------------
    # Reactivity components
    # ------------------------------------------------------------------

    def rod_range(self, rod_id: str) -> Tuple[float, float]:
        return self.settings.rod_ranges.get(rod_id, self.model.rod_range)

    def rod_worth(self, rod_id: str) -> float:
        """Total bank worth [pcm] scaled by its strength multiplier."""
        strength = self.settings.rod_strengths.get(rod_id, 1.0)
        return self.model.rod_worths.get(rod_id, 0.0) * strength

    def insertion_fraction(self, rod_id: str, position: float) -> float:
        bottom, top = self.rod_range(rod_id)
        return min(max((top - position) / (top - bottom), 0.0), 1.0)

    def rod_reactivity(self, rod_id: str, position: float) -> float:
        """
        Reactivity of one bank [pcm], an S-curve in insertion fraction.

        ρ(f) = -W * (f - sin(2πf) / 2π)
        """
        worth = self.rod_worth(rod_id)
        f = self.insertion_fraction(rod_id, position)
        return -worth * (f - math.sin(2.0 * math.pi * f) / (2.0 * math.pi))

    def temperatures(self, state: ReactorState, option: SteadyOption) -> Tuple[float, float]:
        """Average (fuel, moderator) temperature [°C]."""
        power = state.power
        moderator = state.tin
        if option.feed_tm:
            moderator += 0.5 * self.model.core_temperature_rise * power
        fuel = moderator
        if option.feed_tf:
            if self._tf_interpolator is not None:
                rise = float(self._tf_interpolator([[state.burnup, power]])[0])
            else:
                rise = self.model.fuel_temperature_rise * power
            fuel += rise * self.settings.tf_feedback_factor
        return fuel, moderator

    def reactivity(self, state: ReactorState, option: SteadyOption) -> float:
        """Core reactivity [pcm] for a state."""
        m = self.model
        fuel, moderator = self.temperatures(state, option)
        mtc = m.mtc_unborated + m.mtc_boron_slope * state.boron

        rho = m.excess_reactivity - m.burnup_slope * state.burnup
        rho += m.boron_worth * option.b10a * state.boron
        rho += sum(
            self.rod_reactivity(rod_id, position)
            for rod_id, position in state.rod_positions.items()
        )
        rho += m.doppler_coefficient * (fuel - m.reference_tin)
        rho += mtc * (moderator - m.reference_tin)
        xenon, samarium = poison_worth_pcm(state.poison, m.poison)
        return rho + xenon + samarium

    # ------------------------------------------------------------------
    # Power shapes
    # ------------------------------------------------------------------

    def axial_shape(self, state: ReactorState) -> np.ndarray:
        g = self.geometry
        m = self.model
        hz = np.asarray(g.hz, dtype=float)
        z = g.node_centers
        u = z / g.height

        h_ex = g.height + 14.0  # Include extrapolation
        shape = np.cos(math.pi * (z - 0.5 * g.height) / h_ex)
        shape = shape * (1.0 + m.thermal_tilt * max(state.power, 0.0) * (0.5 - u))

        for rod_id, position in state.rod_positions.items():
            bottom, top = self.rod_range(rod_id)
            worth = self.rod_worth(rod_id)
            if worth <= 0.0 or position >= top:
                continue
            tip = g.height * (position - bottom) / (top - bottom)
            # Ramp the shadow in over the first 20 cm of insertion
            shadow = m.rod_shadow * min(worth / 1000.0, 1.0) * min((top - position) / 20.0, 1.0)
            shape = shape * (1.0 - shadow / (1.0 + np.exp(-(z - tip) / 10.0)))

        active = np.zeros_like(shape)
        active[g.kbc:g.kec] = shape[g.kbc:g.kec]
        return active * hz.sum() / np.dot(active, hz)

    def radial_shape(self) -> np.ndarray:
        g = self.geometry
        r_ex = g.equivalent_radius + 7.0  # Include extrapolation
        shape = j0(2.405 * g.assembly_radii / r_ex)
        return shape / shape.mean()

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def solve(self, state: ReactorState, option: SteadyOption) -> FluxSolution:
        if state.power < 0.0:
            raise NumericalError(f"Negative power level {state.power}")

        rho = self.reactivity(state, option)
        if not math.isfinite(rho) or rho >= 1e5:
            raise NumericalError(f"Eigenvalue problem is singular, rho={rho} pcm")

        fuel, moderator = self.temperatures(state, option)
        return FluxSolution(
            eigenvalue=k_from_reactivity_pcm(rho),
            power_2d=self.radial_shape(),
            power_1d=self.axial_shape(state),
            fuel_temperature=fuel,
            moderator_temperature=moderator,
            pin_peaking=self.model.pin_peaking,
        )

    def deplete(self, state: ReactorState, delta_burnup: float) -> float:
        return state.burnup + delta_burnup

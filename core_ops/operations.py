"""
Time-Stepped Operations

A TimeSteppedOperation drives the engine through simulated time one step
at a time:

    op.reset()
    while op.next():
        result = op.run_step(option)

Each step advances the poison chains at the current power, lets the
variant apply its control actions (power, rods, boron), solves through
the criticality search and stamps the Result with the elapsed time. A step
is atomic: on NumericalError the reactor state, rod cursors and power
history are restored before the error propagates.

This module holds the state machine and the two variants without power
control, XenonDynamicsOperation and GeneralOperation. The maneuvering
variants live in ``maneuvers``.
"""

from enum import Enum
from typing import Optional, Sequence
import logging

from .constants import PhysicalConstants
from .context import OperationContext
from .errors import ConfigurationError, InvalidStateError, NumericalError
from .options import (
    DepletionIsotope,
    DepletionOption,
    SMType,
    SteadyOption,
    TimeUnit,
    XEType,
)
from .rods import SequenceDirection
from .state import Result
from .utils import seconds_for_burnup

logger = logging.getLogger(__name__)

_TIME_EPS = 1e-9  # [s]


class OperationStatus(Enum):
    INIT = "init"
    RUNNING = "running"
    DONE = "done"


class OperationKind(Enum):
    XENON_DYNAMICS = "xenon_dynamics"
    FLEXIBLE = "flexible"
    STARTUP = "startup"
    COASTDOWN = "coastdown"
    ECP = "ecp"
    GENERAL = "general"


def transient_xenon_mode(mode: XEType) -> XEType:
    """Xenon treatment used inside a time step: equilibrium becomes transient."""
    return XEType.XE_TR if mode == XEType.XE_EQ else XEType(mode)


class TimeSteppedOperation:
    """
    State machine shared by all operation variants.

    Variants customize a step through hooks:

    - ``_initialize_step``: runs on the first step, after equilibrium
      poison seeding and before the poison advance
    - ``_control``: power, rod and boron actions, returns the option to solve
    - ``_solve``: how the state is made critical (criticality search)
    - ``_after_solve``: post-solve work such as depletion

    Args:
        context: Shared engine and criticality search
    """

    kind = OperationKind.XENON_DYNAMICS

    def __init__(self, context: OperationContext):
        self.context = context
        self.engine = context.engine
        self.end_time = 0.0  # [s]
        self.time_step = 0.0  # [s]
        self.xenon_factor = 1.0
        self.status = OperationStatus.INIT
        self.step_count = 0
        self.elapsed = 0.0  # [s]
        self._poison_seeded = False

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_time(self, end_time: float, time_step: float) -> None:
        """
        Set the time budget.

        Args:
            end_time: Total simulated time [s]
            time_step: Step length [s]
        """
        if end_time <= 0.0 or time_step <= 0.0:
            raise ConfigurationError(
                f"Time budget and step must be positive, got {end_time}/{time_step}"
            )
        self.end_time = float(end_time)
        self.time_step = float(time_step)

    def set_xenon_factor(self, factor: float) -> None:
        if factor < 0.0:
            raise ConfigurationError(f"Xenon factor must be >= 0, got {factor}")
        self.xenon_factor = factor

    def set_rod_in_sequence(self, rod_ids: Sequence[str], limits: Sequence[float]) -> None:
        self.context.rods.set_sequence(SequenceDirection.IN, rod_ids, limits)

    def set_rod_out_sequence(self, rod_ids: Sequence[str], limits: Sequence[float]) -> None:
        self.context.rods.set_sequence(SequenceDirection.OUT, rod_ids, limits)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @property
    def remaining(self) -> float:
        return self.end_time - self.elapsed

    def reset(self) -> None:
        """Return to INIT with a cleared clock and rewound rod sequences."""
        self.status = OperationStatus.INIT
        self.step_count = 0
        self.elapsed = 0.0
        self._poison_seeded = False
        self.context.rods.reset_cursors()
        self._reset_variant()

    def _reset_variant(self) -> None:
        pass

    def next(self) -> bool:
        """Enter RUNNING while simulated time remains, DONE otherwise."""
        if self.remaining > _TIME_EPS:
            self.status = OperationStatus.RUNNING
            return True
        self.status = OperationStatus.DONE
        return False

    def run_step(self, option: SteadyOption) -> Result:
        """
        Run one time step.

        Raises:
            InvalidStateError: outside RUNNING, or with no time left
            ConfigurationError: invalid setup detected before the step
            NumericalError: a solve failed; the step left no trace
        """
        if self.status is not OperationStatus.RUNNING:
            raise InvalidStateError(
                f"run_step() requires RUNNING, operation is {self.status.name}"
            )
        if self.remaining <= _TIME_EPS:
            raise InvalidStateError("run_step() called with no simulated time left")
        self.engine.require_initialized()
        self._validate_step(option)

        engine = self.engine
        rods = self.context.rods
        elapsed = min((self.step_count + 1) * self.time_step, self.end_time)
        dt = elapsed - self.elapsed

        before = engine.state.copy()
        cursors = rods.cursor_state()
        power_time = engine.power_time
        seeded = self._poison_seeded

        try:
            solve_option = self._prepare_option(option)
            if self.step_count == 0:
                self._seed_poison(option)
                self._initialize_step(solve_option)
            self._advance_poison(dt, option)
            solve_option = self._control(dt, elapsed, solve_option)
            result = self._solve(solve_option)
            engine.state.time = before.time + dt
            engine.record_power(engine.state.power, dt)
            self._after_solve(dt, result, solve_option)
        except (NumericalError, ConfigurationError):
            engine.state.restore_from(before)
            rods.restore_cursors(cursors)
            engine.power_time = power_time
            self._poison_seeded = seeded
            logger.error(
                f"{self.kind.value} step {self.step_count + 1} failed, state restored"
            )
            raise

        self.step_count += 1
        self.elapsed = elapsed
        result.time = elapsed
        result.burnup = engine.state.burnup
        logger.debug(
            f"{self.kind.value} step {self.step_count}: t={elapsed:.0f}s "
            f"P={result.power_level:.4f} ppm={result.boron_ppm:.1f} ASI={result.asi:+.4f}"
        )
        return result

    # ------------------------------------------------------------------
    # Step pieces
    # ------------------------------------------------------------------

    def _validate_step(self, option: SteadyOption) -> None:
        for rod_id in option.rod_pos:
            self.context.rods.group(rod_id)

    def _prepare_option(self, option: SteadyOption) -> SteadyOption:
        """
        Option solved for this step.

        Rod overrides apply to the first step only. Later steps continue
        from the boron reached by the previous step.
        """
        solve_option = option.copy(
            xenon=transient_xenon_mode(option.xenon),
        )
        if self.step_count > 0:
            solve_option.rod_pos = {}
            solve_option.ppm = self.engine.state.boron
        return solve_option

    def _poison_modes(self, option: SteadyOption):
        return transient_xenon_mode(option.xenon), SMType(option.samarium)

    def _seed_poison(self, option: SteadyOption) -> None:
        """Equilibrium xenon at the pre-operation power when the option asks for it."""
        if self._poison_seeded or option.xenon != XEType.XE_EQ:
            return
        poison = self.context.poison
        poison.set_mode(XEType.XE_EQ, SMType.SM_FX)
        poison.advance(0.0, self.engine.state.power, self.xenon_factor)
        self._poison_seeded = True

    def _advance_poison(self, dt: float, option: SteadyOption) -> None:
        poison = self.context.poison
        xenon_mode, samarium_mode = self._poison_modes(option)
        poison.set_mode(xenon_mode, samarium_mode)
        poison.advance(dt, self.engine.state.power, self.xenon_factor)

    def _initialize_step(self, option: SteadyOption) -> None:
        pass

    def _control(self, dt: float, elapsed: float, option: SteadyOption) -> SteadyOption:
        return option

    def _solve(self, option: SteadyOption) -> Result:
        return self.context.search.search(option)

    def _after_solve(self, dt: float, result: Result, option: SteadyOption) -> None:
        pass


class XenonDynamicsOperation(TimeSteppedOperation):
    """Poison transient at the power given by the step option, without control."""

    kind = OperationKind.XENON_DYNAMICS


class GeneralOperation(TimeSteppedOperation):
    """
    Time stepping with fuel depletion.

    After each solve the burnup advances by the step's power-time product.
    A DepletionOption passed to ``run_step`` selects the poison treatment,
    the xenon amplification and the isotope set of the step.
    """

    kind = OperationKind.GENERAL

    def __init__(self, context: OperationContext):
        super().__init__(context)
        self._depletion = DepletionOption()

    def set_time(
        self,
        end_time: float,
        time_step: float,
        unit: TimeUnit = TimeUnit.TIME_SEC,
    ) -> None:
        """
        Set the time budget in seconds, hours or burnup.

        A burnup budget [MWD/MTU] is converted to seconds at rated power
        times the current power level.
        """
        unit = TimeUnit(unit)
        if unit == TimeUnit.TIME_HOUR:
            hour = PhysicalConstants.SECONDS_PER_HOUR
            end_time, time_step = end_time * hour, time_step * hour
        elif unit == TimeUnit.TIME_MWD:
            g = self.engine.get_geometry()
            power = g.thermal_power * self.engine.state.power
            end_time = seconds_for_burnup(end_time, power, g.heavy_metal_tonnes)
            time_step = seconds_for_burnup(time_step, power, g.heavy_metal_tonnes)
        super().set_time(end_time, time_step)

    def run_step(
        self,
        option: SteadyOption,
        depletion: Optional[DepletionOption] = None,
    ) -> Result:
        self._depletion = depletion if depletion is not None else DepletionOption()
        return super().run_step(option)

    def _validate_step(self, option: SteadyOption) -> None:
        super()._validate_step(option)
        if not self.engine.burnup_points:
            raise ConfigurationError("GeneralOperation requires burnup points")

    def _poison_modes(self, option: SteadyOption):
        samarium = SMType(self._depletion.samarium)
        if self._depletion.isotope == DepletionIsotope.DEP_XE:
            samarium = SMType.SM_FX
        return transient_xenon_mode(self._depletion.xenon), samarium

    def _advance_poison(self, dt: float, option: SteadyOption) -> None:
        factor = self.xenon_factor
        self.xenon_factor = factor * self._depletion.xeamp
        try:
            super()._advance_poison(dt, option)
        finally:
            self.xenon_factor = factor

    def _after_solve(self, dt: float, result: Result, option: SteadyOption) -> None:
        if self._depletion.isotope != DepletionIsotope.DEP_ALL:
            return
        before = self.engine.state.burnup
        self.engine.update_burnup()
        logger.debug(
            f"Depleted {self.engine.state.burnup - before:.3f} MWD/MTU "
            f"to {self.engine.state.burnup:.3f}"
        )

"""
Power Maneuvering Operations

Operation variants that control power, rods or boron while stepping:

- FlexibleOperation: rate-limited power schedule with PDIL enforcement
  and optional axial shape index control; with a StartupConfig it runs
  a reactor startup from a decayed shutdown state
- CoastdownOperation: linear power coastdown held critical by rods
- ECPOperation: post-shutdown boron or rod program and the estimated
  critical condition that follows it

Power schedules are given in percent of rated power and ramp rates in
percent per second.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from .context import OperationContext
from .errors import ConfigurationError
from .operations import OperationKind, TimeSteppedOperation
from .options import CriticalOption, ECPOption, ScenarioItem, SteadyOption
from .rods import SequenceDirection
from .state import Result

logger = logging.getLogger(__name__)


def _intersect(
    limits: Tuple[float, float], bound: Tuple[float, float]
) -> Tuple[float, float]:
    """Overlap of two intervals, `bound` itself when they are disjoint."""
    lower, upper = max(limits[0], bound[0]), min(limits[1], bound[1])
    if lower > upper:
        return bound
    return lower, upper


@dataclass
class StartupConfig:
    """
    Conditions of a reactor startup.

    Attributes:
        shutdown_time: Time since shutdown at the first step [s]
        prior_power: Power level held before the shutdown (fraction)
        initial_rod_positions: Rod map at the first step, every registered
            rod fully inserted when None
    """

    shutdown_time: float = 0.0  # [s]
    prior_power: float = 1.0
    initial_rod_positions: Optional[Dict[str, float]] = None


class FlexibleOperation(TimeSteppedOperation):
    """
    Load-follow maneuver driven by a list of ScenarioItems.

    Each step moves power toward the active item's target by at most
    ``rate * dt``, pulls rods up to the PDIL of the new power, solves
    critical and, when the item asks for it, corrects the axial shape
    with the rod sequences.

    Args:
        context: Shared engine and criticality search
        startup: Startup conditions, turns the maneuver into a startup
    """

    def __init__(self, context: OperationContext, startup: Optional[StartupConfig] = None):
        super().__init__(context)
        self.startup = startup
        self.scenario: List[ScenarioItem] = []
        self.initial_power: Optional[float] = None  # fraction
        self.down_rate = 0.05  # [%/s]
        self.up_rate = 0.05  # [%/s]
        self.asi_sensitivity = 0.002  # |dASI| per cm of rod travel
        self.max_asi_iterations = 5
        self.fuel_depletion = False
        self._reference_asi: Optional[float] = None

    @property
    def kind(self) -> OperationKind:
        return OperationKind.STARTUP if self.startup is not None else OperationKind.FLEXIBLE

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_time_step(self, time_step: float) -> None:
        """Set the step length; the time budget follows the scenario."""
        if time_step <= 0.0:
            raise ConfigurationError(f"Time step must be positive, got {time_step}")
        self.time_step = float(time_step)

    def set_ramp_rates(self, down_rate: float, up_rate: float) -> None:
        """Ramp rates [%/s]."""
        if down_rate <= 0.0 or up_rate <= 0.0:
            raise ConfigurationError(
                f"Ramp rates must be positive, got {down_rate}/{up_rate}"
            )
        self.down_rate = down_rate
        self.up_rate = up_rate

    def set_power_schedule(
        self,
        initial: float,
        target: float,
        down_rate: float,
        up_rate: float,
        duration: float,
        before: float = 7200.0,
        after: float = 7200.0,
        asi_allowance: float = 0.01,
    ) -> None:
        """
        Build a hold / ramp down / hold / ramp up / hold scenario.

        Args:
            initial: Initial power [%]
            target: Reduced power [%]
            down_rate: Ramp down rate [%/s]
            up_rate: Ramp up rate [%/s]
            duration: Time held at the reduced power [s]
            before: Equilibration time before the ramp down [s]
            after: Equilibration time after the ramp up [s]
            asi_allowance: Allowed ASI deviation from the initial ASI,
                0 disables ASI control
        """
        if not 0.0 <= target <= initial:
            raise ConfigurationError(
                f"Schedule target {target}% must lie in [0, {initial}]%"
            )
        self.set_ramp_rates(down_rate, up_rate)

        band = (-asi_allowance, asi_allowance)
        control = asi_allowance > 0.0
        depth = initial - target
        legs = [
            (before, initial),
            (depth / down_rate, target),
            (duration, target),
            (depth / up_rate, initial),
            (after, initial),
        ]
        items = [
            ScenarioItem(
                duration=length,
                power_ratio=power / 100.0,
                asi_allowance=band,
                control_asi=control,
            )
            for length, power in legs
            if length > 0.0
        ]
        self.set_power_scenario(items)
        self.initial_power = initial / 100.0

    def set_power_scenario(self, items: Sequence[ScenarioItem]) -> None:
        """Use an explicit scenario; the time budget is its total duration."""
        items = list(items)
        if not items:
            raise ConfigurationError("Power scenario is empty")
        for item in items:
            if item.duration <= 0.0 or item.power_ratio < 0.0:
                raise ConfigurationError(f"Invalid scenario item {item}")
            if item.asi_allowance[0] > item.asi_allowance[1]:
                raise ConfigurationError(f"Inverted ASI allowance in {item}")
        self.scenario = items
        self.end_time = sum(item.duration for item in items)
        self.initial_power = None

    def set_fuel_depletion(self, enabled: bool = True) -> None:
        self.fuel_depletion = enabled

    # ------------------------------------------------------------------
    # Step hooks
    # ------------------------------------------------------------------

    def _reset_variant(self) -> None:
        self._reference_asi = None

    def active_item(self, time: float) -> ScenarioItem:
        """Scenario item in effect at `time` seconds into the maneuver."""
        start = 0.0
        for item in self.scenario:
            if time < start + item.duration:
                return item
            start += item.duration
        return self.scenario[-1]

    def _validate_step(self, option: SteadyOption) -> None:
        super()._validate_step(option)
        if not self.scenario:
            raise ConfigurationError(f"{self.kind.value} operation has no power scenario")
        if self.fuel_depletion and not self.engine.burnup_points:
            raise ConfigurationError("Fuel depletion requires burnup points")

    def _initialize_step(self, option: SteadyOption) -> None:
        state = self.engine.state
        if self.startup is not None:
            cfg = self.startup
            rods = self.context.rods
            self.context.poison.decay(cfg.shutdown_time, cfg.prior_power, self.xenon_factor)
            self._poison_seeded = True
            positions = cfg.initial_rod_positions
            if positions is None:
                positions = rods.inserted_positions(rods.rod_ids)
            rods.set_positions(positions)
            logger.info(
                f"Startup after {cfg.shutdown_time:.0f}s shutdown from "
                f"P={cfg.prior_power:.2f}"
            )
        if self.initial_power is not None:
            state.power = self.initial_power
        elif self.startup is not None:
            state.power = 0.0

    def next_power(self, current: float, target: float, dt: float) -> float:
        """Power after a step of `dt` seconds toward `target`, both fractions."""
        if target < current:
            return max(target, current - self.down_rate / 100.0 * dt)
        return min(target, current + self.up_rate / 100.0 * dt)

    def _control(self, dt: float, elapsed: float, option: SteadyOption) -> SteadyOption:
        item = self.active_item(elapsed - dt)
        power = self.next_power(self.engine.state.power, item.power_ratio, dt)
        option.plevel = power
        self.enforce_pdil(power)
        return option

    def enforce_pdil(self, power: float) -> None:
        """Withdraw every rod sitting below its insertion limit at `power`."""
        rods = self.context.rods
        for rod_id in rods.rod_ids:
            limit = rods.get_pdil(rod_id, power * 100.0)
            if rods.position(rod_id) < limit:
                rods.set_position(rod_id, limit)
                logger.debug(f"Rod {rod_id} pulled to PDIL {limit:.1f} cm")

    def asi_limits(self, item: ScenarioItem, power: float) -> Optional[Tuple[float, float]]:
        """
        Allowed ASI band at `power` (fraction).

        The target is the item's, else the engine's ASI search target, else
        the ASI of the first step. The item allowance is narrowed by the
        engine's allowance table, and the result by the absolute ASI band.
        Where two limits are disjoint the engine table wins.
        """
        target = item.target_asi
        if target is None:
            target = self.engine.asi_target
        if target is None:
            target = self._reference_asi
        if target is None:
            return None
        power_pct = power * 100.0

        low_dev, high_dev = item.asi_allowance
        allowance = self.engine.asi_allowance(power_pct)
        if allowance is not None:
            low_dev, high_dev = _intersect((low_dev, high_dev), allowance)
        lower, upper = target + low_dev, target + high_dev

        band = self.engine.asi_band(power_pct)
        if band is not None:
            lower, upper = _intersect((lower, upper), band)
        return lower, upper

    def _solve(self, option: SteadyOption) -> Result:
        result = self.context.search.search(option)
        item = self.active_item(self.elapsed)
        if item.control_asi:
            result = self._control_asi(item, option, result)
        return result

    def _control_asi(self, item: ScenarioItem, option: SteadyOption, result: Result) -> Result:
        limits = self.asi_limits(item, option.plevel)
        if limits is None:
            return result
        return self.context.search.shift_asi(
            option,
            result,
            limits,
            max_moves=self.max_asi_iterations,
            sensitivity=self.asi_sensitivity,
        )

    def _after_solve(self, dt: float, result: Result, option: SteadyOption) -> None:
        if self._reference_asi is None:
            self._reference_asi = result.asi
        if self.fuel_depletion:
            self.engine.update_burnup()


def create_startup_operation(
    context: OperationContext,
    shutdown_time: float,
    prior_power: float = 1.0,
    initial_rod_positions: Optional[Dict[str, float]] = None,
) -> FlexibleOperation:
    """
    Create a startup: a FlexibleOperation seeded from a decayed shutdown.

    Args:
        context: Shared engine and criticality search
        shutdown_time: Time since shutdown [s]
        prior_power: Power held before the shutdown (fraction)
        initial_rod_positions: Rod map at the first step, all rods inserted
            when None

    Returns:
        FlexibleOperation with ``kind == OperationKind.STARTUP``
    """
    config = StartupConfig(
        shutdown_time=shutdown_time,
        prior_power=prior_power,
        initial_rod_positions=initial_rod_positions,
    )
    return FlexibleOperation(context, startup=config)


class CoastdownOperation(TimeSteppedOperation):
    """
    End-of-cycle coastdown.

    Power falls linearly from its value at the first step to the target
    over the time budget while boron stays fixed and a rod sequence search
    keeps the core critical.
    """

    kind = OperationKind.COASTDOWN

    def __init__(self, context: OperationContext):
        super().__init__(context)
        self.target_power = 1.0  # fraction
        self._start_power: Optional[float] = None

    def set_target_power(self, target: float) -> None:
        """Final power [%]."""
        if target < 0.0:
            raise ConfigurationError(f"Target power must be >= 0, got {target}")
        self.target_power = target / 100.0

    def _reset_variant(self) -> None:
        self._start_power = None

    def _initialize_step(self, option: SteadyOption) -> None:
        self._start_power = self.engine.state.power
        if self.target_power > self._start_power:
            raise ConfigurationError(
                f"Coastdown target {self.target_power:.3f} above starting "
                f"power {self._start_power:.3f}"
            )

    def power_at(self, elapsed: float) -> float:
        fraction = min(elapsed / self.end_time, 1.0)
        return self._start_power + (self.target_power - self._start_power) * fraction

    def _control(self, dt: float, elapsed: float, option: SteadyOption) -> SteadyOption:
        option.plevel = self.power_at(elapsed)
        option.search_option = CriticalOption.ROD
        option.search_rod = None
        return option


class ECPOperation(TimeSteppedOperation):
    """
    Shutdown program followed by an estimated critical condition search.

    The reactor is at zero power. During the shutdown window ECP_CBC
    ramps boron linearly to the target concentration and ECP_ROD inserts
    the IN sequence at uniform speed. After the window ECP_CBC searches the
    critical rod position along the sequences at target boron, ECP_ROD
    searches critical boron with rods held.
    """

    kind = OperationKind.ECP

    def __init__(self, context: OperationContext):
        super().__init__(context)
        self.ecp_option = ECPOption.ECP_CBC
        self.shutdown_time = 0.0  # [s]
        self.target_cbc = 0.0  # [ppm]
        self._start_boron: Optional[float] = None
        self._insertion_speed = 0.0  # [cm/s]

    def set_option(self, ecp_option: ECPOption) -> None:
        self.ecp_option = ECPOption(ecp_option)

    def set_time(self, end_time: float, shutdown_time: float, time_step: float) -> None:
        """
        Args:
            end_time: Total simulated time [s]
            shutdown_time: Length of the boron or rod program [s]
            time_step: Step length [s]
        """
        super().set_time(end_time, time_step)
        if not 0.0 < shutdown_time <= end_time:
            raise ConfigurationError(
                f"Shutdown window {shutdown_time} must lie in (0, {end_time}]"
            )
        self.shutdown_time = float(shutdown_time)

    def set_target_cbc(self, ppm: float) -> None:
        if ppm < 0.0:
            raise ConfigurationError(f"Target boron must be >= 0, got {ppm}")
        self.target_cbc = ppm

    def _reset_variant(self) -> None:
        self._start_boron = None
        self._insertion_speed = 0.0

    def _validate_step(self, option: SteadyOption) -> None:
        super()._validate_step(option)
        if self.ecp_option == ECPOption.ECP_ROD and not self.context.rods.has_sequence(
            SequenceDirection.IN
        ):
            raise ConfigurationError("ECP_ROD requires a rod insertion sequence")

    def _initialize_step(self, option: SteadyOption) -> None:
        state = self.engine.state
        self._start_boron = state.boron
        self._insertion_speed = (
            self.context.rods.total_travel(SequenceDirection.IN) / self.shutdown_time
        )
        state.power = 0.0
        logger.info(
            f"ECP {self.ecp_option.name}: boron {self._start_boron:.1f} -> "
            f"{self.target_cbc:.1f} ppm over {self.shutdown_time:.0f}s"
        )

    def _control(self, dt: float, elapsed: float, option: SteadyOption) -> SteadyOption:
        option.plevel = 0.0
        in_window = elapsed <= self.shutdown_time
        start = elapsed - dt

        if self.ecp_option == ECPOption.ECP_CBC:
            if in_window:
                fraction = elapsed / self.shutdown_time
                option.ppm = self._start_boron + (self.target_cbc - self._start_boron) * fraction
                option.search_option = CriticalOption.KEFF
            else:
                option.ppm = self.target_cbc
                option.search_option = CriticalOption.ROD
                option.search_rod = None
            return option

        if start < self.shutdown_time:
            window_dt = min(elapsed, self.shutdown_time) - start
            self.context.rods.advance(-self._insertion_speed * window_dt)
        option.ppm = self.engine.state.boron
        option.search_option = CriticalOption.KEFF if in_window else CriticalOption.CBC
        return option

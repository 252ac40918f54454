"""
Criticality Search

Adjusts one parameter (boron, power level or control rod travel) until the
engine's eigenvalue matches the target. The iteration is a secant method on
the two most recent (x, k) pairs:

    x_{n+1} = x_n - (k_n - k_target) * (x_n - x_{n-1}) / (k_n - k_{n-1})

Hitting the solve cap or stalling on a bound is not an exception: the best
iterate found is re-applied and returned with CONVERGENCE_FAILURE.

The ASI search moves rods along the IN/OUT sequences to reach a target
axial shape index, restoring criticality after every move.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple
import logging
import math

from .errors import ConfigurationError, ErrorCode, NumericalError
from .options import CriticalOption, SteadyOption
from .state import Result

logger = logging.getLogger(__name__)

_STALL = 1e-10


@dataclass
class _SearchVariable:
    """How one search parameter is applied and bounded."""

    apply: Callable[[float], float]
    start: float
    step: float
    max_step: float
    direction: float  # sign of dx that lowers k
    lower: float = -math.inf
    upper: float = math.inf


class CriticalitySearch:
    """
    Secant criticality search over a SteadyStateEngine.

    Args:
        engine: Engine whose state is searched
    """

    boron_step = 50.0  # [ppm]
    power_step = 0.05  # fraction of rated
    rod_step = 10.0  # [cm]
    asi_sensitivity = 0.002  # |dASI| per cm of rod travel
    asi_tolerance = 0.002

    def __init__(self, engine):
        self.engine = engine

    def search(self, option: SteadyOption) -> Result:
        """
        Solve the engine state critical with respect to ``option.eigvt``.

        Args:
            option: Calculation option; the caller's instance is not changed

        Returns:
            Result at the converged (or best) iterate with ``iterations``
            set to the number of solves performed

        Raises:
            ConfigurationError: unknown rod id in the option
            NumericalError: a solve failed; the state is left unchanged
        """
        engine = self.engine
        engine.require_initialized()
        mode = CriticalOption(option.search_option)
        self._validate(mode, option)
        working = option.copy()

        if mode == CriticalOption.KEFF:
            return engine.solve(working)

        before = engine.state.copy()
        cursors = engine.rods.cursor_state()
        try:
            return self._secant(mode, working)
        except (NumericalError, ConfigurationError):
            engine.state.restore_from(before)
            engine.rods.restore_cursors(cursors)
            raise

    def _validate(self, mode: CriticalOption, option: SteadyOption) -> None:
        rods = self.engine.rods
        for rod_id in option.rod_pos:
            rods.group(rod_id)
        if mode == CriticalOption.ROD and option.search_rod is not None:
            rods.group(option.search_rod)

    # ------------------------------------------------------------------
    # Search variables
    # ------------------------------------------------------------------

    def _variable(self, mode: CriticalOption, option: SteadyOption) -> _SearchVariable:
        rods = self.engine.rods

        if mode == CriticalOption.CBC:
            def apply_boron(x):
                option.ppm = max(x, 0.0)
                return option.ppm

            return _SearchVariable(apply_boron, option.ppm, self.boron_step, 500.0, 1.0, lower=0.0)

        if mode == CriticalOption.POWER:
            def apply_power(x):
                option.plevel = max(x, 0.0)
                return option.plevel

            return _SearchVariable(apply_power, option.plevel, self.power_step, 0.5, 1.0, lower=0.0)

        # Rod search: overrides are applied once so each solve sees the search move
        rods.set_positions(option.rod_pos)
        option.rod_pos = {}

        if option.search_rod is not None:
            group = rods.group(option.search_rod)

            def apply_rod(x):
                return rods.set_position(group.rod_id, x, overlap=True)

            return _SearchVariable(
                apply_rod,
                rods.position(group.rod_id),
                self._rod_step(group.rod_id),
                group.travel,
                -1.0,
                lower=group.bottom,
                upper=group.top,
            )

        travel = {"x": 0.0}

        def apply_sequence(x):
            delta = x - travel["x"]
            leftover = rods.advance(delta)
            travel["x"] += delta - leftover
            return travel["x"]

        return _SearchVariable(apply_sequence, 0.0, self.rod_step, 381.0, -1.0)

    def _rod_step(self, rod_id: str) -> float:
        """Initial rod step, scaled by the local differential worth when known."""
        rods = self.engine.rods
        position = rods.position(rod_id)
        upper = rods.integral_worth(rod_id, position + 1.0)
        lower = rods.integral_worth(rod_id, position - 1.0)
        if upper is None or lower is None:
            return self.rod_step
        differential = abs(upper - lower) / 2.0  # [pcm/cm]
        if differential <= 0.0:
            return self.rod_step
        # 100 pcm worth of travel, bounded to a sensible stroke
        return min(max(100.0 / differential, 1.0), 50.0)

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def _secant(self, mode: CriticalOption, option: SteadyOption) -> Result:
        engine = self.engine
        target = option.eigvt
        var = self._variable(mode, option)

        solves = 0
        best = None  # (|k - target|, result, state, cursors)

        def evaluate(x: float):
            nonlocal solves, best
            applied = var.apply(x)
            result = engine.solve(option)
            solves += 1
            miss = abs(result.eigenvalue - target)
            if best is None or miss < best[0]:
                best = (miss, result, engine.state.copy(), engine.rods.cursor_state())
            return applied, result

        x_prev, result = evaluate(var.start)
        k_prev = result.eigenvalue
        if abs(k_prev - target) < option.epsiter:
            return self._finish(result, solves, ErrorCode.NONE)

        sign = 1.0 if k_prev > target else -1.0
        x_next = x_prev + var.direction * sign * var.step
        stalled = False

        while solves < option.maxiter:
            x_next = min(max(x_next, var.lower), var.upper)
            x_cur, result = evaluate(x_next)
            k_cur = result.eigenvalue
            if abs(k_cur - target) < option.epsiter:
                return self._finish(result, solves, ErrorCode.NONE)

            if abs(x_cur - x_prev) <= _STALL or abs(k_cur - k_prev) <= _STALL * 1e-5:
                stalled = True
                break

            slope = (k_cur - k_prev) / (x_cur - x_prev)
            jump = -(k_cur - target) / slope
            jump = min(max(jump, -var.max_step), var.max_step)
            x_prev, k_prev = x_cur, k_cur
            x_next = x_cur + jump

        _, best_result, best_state, best_cursors = best
        engine.state.restore_from(best_state)
        engine.rods.restore_cursors(best_cursors)
        logger.warning(
            f"{mode.name} search did not converge after {solves} solves "
            f"({'stalled on a bound' if stalled else 'iteration cap'}); "
            f"best k={best_result.eigenvalue:.6f}"
        )
        return self._finish(best_result, solves, ErrorCode.CONVERGENCE_FAILURE)

    def _finish(self, result: Result, solves: int, error: ErrorCode) -> Result:
        result.iterations = solves
        if error != ErrorCode.NONE:
            result.error = error
        self.engine.set_result(result)
        logger.debug(
            f"Search finished in {solves} solves: k={result.eigenvalue:.6f} "
            f"ppm={result.boron_ppm:.1f}"
        )
        return result

    # ------------------------------------------------------------------
    # Axial shape
    # ------------------------------------------------------------------

    def shift_asi(
        self,
        option: SteadyOption,
        result: Result,
        band: Tuple[float, float],
        max_moves: int = 5,
        sensitivity: Optional[float] = None,
    ) -> Result:
        """
        Move rods along the sequences until the ASI lies inside `band`.

        Each move is a secant step on (rod travel, ASI), the first one sized
        by `sensitivity`. After every move the state is made critical again
        with `option`, starting from the current boron. Insertion stops at
        the PDIL of the current power.

        Args:
            option: Criticality option re-solved after each move
            result: Result of the state the rods start from
            band: Allowed (lower, upper) ASI
            max_moves: Rod move cap
            sensitivity: |dASI| per cm of travel for the first move

        Returns:
            Result of the last solve, `result` itself when no move was made
        """
        lower, upper = band
        slope0 = -(self.asi_sensitivity if sensitivity is None else sensitivity)
        rods = self.engine.rods

        moved = 0.0
        history = [(0.0, result.asi)]
        for _ in range(max_moves):
            if lower <= result.asi <= upper:
                break
            # Aim between the nearest edge and the middle of the band
            aim = min(max(result.asi, lower), upper)
            aim = 0.5 * (aim + 0.5 * (lower + upper))
            if len(history) >= 2 and history[-1][1] != history[-2][1]:
                (x0, a0), (x1, a1) = history[-2], history[-1]
                slope = (a1 - a0) / (x1 - x0)
            else:
                slope = slope0
            delta = (aim - result.asi) / slope

            leftover = rods.advance(delta, power=self.engine.state.power * 100.0)
            applied = delta - leftover
            if abs(applied) <= _STALL:
                logger.warning(
                    f"ASI {result.asi:+.4f} outside [{lower:+.4f}, {upper:+.4f}], "
                    f"no rod travel left"
                )
                break
            moved += applied
            result = self.search(option.copy(ppm=self.engine.state.boron, rod_pos={}))
            history.append((moved, result.asi))
        return result

    def search_asi(
        self,
        option: SteadyOption,
        target_asi: float,
        tolerance: Optional[float] = None,
        max_moves: int = 10,
    ) -> Result:
        """
        Reach a target axial shape index with the rod sequences.

        The state is first solved with `option`, then rods are moved until
        the ASI is within `tolerance` of the target, keeping the core
        critical. A ROD criticality option is searched on boron instead,
        since the rods are taken by the shape.

        Returns:
            Result of the last solve, with CONVERGENCE_FAILURE when the
            target could not be reached

        Raises:
            ConfigurationError: unknown rod id in the option
            NumericalError: a solve failed; the state is left unchanged
        """
        engine = self.engine
        engine.require_initialized()
        tol = self.asi_tolerance if tolerance is None else tolerance
        if tol < 0.0:
            raise ConfigurationError(f"ASI tolerance must be >= 0, got {tol}")

        working = option.copy()
        if CriticalOption(working.search_option) == CriticalOption.ROD:
            working.search_option = CriticalOption.CBC
            working.search_rod = None
        before = engine.state.copy()
        cursors = engine.rods.cursor_state()
        try:
            result = self.search(working)
            working.rod_pos = {}
            result = self.shift_asi(
                working, result, (target_asi - tol, target_asi + tol), max_moves
            )
        except (NumericalError, ConfigurationError):
            engine.state.restore_from(before)
            engine.rods.restore_cursors(cursors)
            raise

        if abs(result.asi - target_asi) > tol:
            result.error = ErrorCode.CONVERGENCE_FAILURE
            logger.warning(
                f"ASI search reached {result.asi:+.4f}, target {target_asi:+.4f}"
            )
        engine.set_result(result)
        return result

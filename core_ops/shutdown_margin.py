"""
Shutdown Margin Analysis

Point-in-time check that the control rods can shut the reactor down with
the most reactive stuck rod withheld:

    SDM = bite·(1 - u_rod) - stuck - PD - Xe - Sm - B - TM - void

All worths are in pcm. Rod worths are measured at hot zero power without
poison. Xenon and samarium worths are the reactivity their removal would
release, so no margin is credited to poisons that burn out or decay. Boron and moderator temperature worths are the
reactivity change from the analysis value to the shutdown value. A
negative margin is reported as is.
"""

from typing import Dict, List, Optional, Sequence
import logging

from .context import OperationContext
from .errors import ConfigurationError
from .operations import transient_xenon_mode
from .options import CriticalOption, SMType, SteadyOption, XEType
from .state import ReactorState, SDMResult
from .utils import delta_k_to_pcm, reactivity_pcm

logger = logging.getLogger(__name__)


class ShutdownMarginAnalyzer:
    """
    Shutdown margin calculation over an engine's current state.

    Args:
        context: Shared engine and criticality search
    """

    def __init__(self, context: OperationContext):
        self.context = context
        self.engine = context.engine
        self.reset()

    def reset(self) -> None:
        """Restore default uncertainties and clear the rod and shutdown settings."""
        self.rod_uncertainty = 0.06
        self.void_uncertainty = 100.0  # [pcm]
        self.failed_rod: Optional[str] = None
        self.stuck_rods: List[str] = []
        self.shutdown_boron: Optional[float] = None  # [ppm]
        self.shutdown_tin: Optional[float] = None  # [°C]

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_rod_uncertainty(self, fraction: float) -> None:
        if not 0.0 <= fraction < 1.0:
            raise ConfigurationError(f"Rod uncertainty must lie in [0, 1), got {fraction}")
        self.rod_uncertainty = fraction

    def set_void_uncertainty(self, delta_k: float) -> None:
        """Void uncertainty as Δk/k, stored in pcm."""
        if delta_k < 0.0:
            raise ConfigurationError(f"Void uncertainty must be >= 0, got {delta_k}")
        self.void_uncertainty = delta_k_to_pcm(delta_k)

    def set_stuck_rods(self, failed_rod: Optional[str], stuck_rods: Sequence[str]) -> None:
        """
        Args:
            failed_rod: Bank assumed unavailable, excluded from the bite worth
            stuck_rods: Candidate stuck banks; the most reactive one is withheld
        """
        rods = self.context.rods
        if failed_rod is not None:
            rods.group(failed_rod)
        for rod_id in stuck_rods:
            rods.group(rod_id)
        self.failed_rod = failed_rod
        self.stuck_rods = list(stuck_rods)

    def set_shutdown_conditions(
        self,
        boron: Optional[float] = None,
        tin: Optional[float] = None,
    ) -> None:
        """Boron [ppm] and inlet temperature [°C] of the shutdown state."""
        if boron is not None and boron < 0.0:
            raise ConfigurationError(f"Shutdown boron must be >= 0, got {boron}")
        self.shutdown_boron = boron
        self.shutdown_tin = tin

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    @staticmethod
    def margin_from_components(
        bite_worth: float,
        rod_uncertainty: float,
        stuck_rod_worth: float,
        power_defect: float,
        xenon_worth: float,
        samarium_worth: float,
        boron_worth: float,
        tm_worth: float,
        void_uncertainty: float,
    ) -> float:
        """Net shutdown margin [pcm] from its components [pcm]."""
        return (
            bite_worth * (1.0 - rod_uncertainty)
            - stuck_rod_worth
            - power_defect
            - xenon_worth
            - samarium_worth
            - boron_worth
            - tm_worth
            - void_uncertainty
        )

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def _reactivity(
        self,
        analysis: ReactorState,
        option: SteadyOption,
        poison_free: bool = False,
        **changes,
    ) -> float:
        """Reactivity [pcm] of the analysis state with option changes applied."""
        self.engine.state.restore_from(analysis)
        if poison_free:
            self.context.poison.clear()
        result = self.engine.solve(option.copy(**changes))
        return reactivity_pcm(result.eigenvalue)

    def _projection(self, dt: float, option: SteadyOption) -> None:
        engine = self.engine
        poison = self.context.poison
        poison.set_mode(transient_xenon_mode(option.xenon), SMType(option.samarium))
        poison.advance(dt, engine.state.power, engine.xenon_factor)
        engine.state.time += dt
        self.context.search.search(
            option.copy(xenon=transient_xenon_mode(option.xenon), rod_pos={})
        )

    def run(self, dt: float, option: SteadyOption) -> SDMResult:
        """
        Shutdown margin at the current state, or `dt` seconds ahead.

        Args:
            dt: Projection time [s], 0 analyzes the current state
            option: Calculation option of the projection solve

        Returns:
            SDMResult; the engine state is left as it was before the call
        """
        engine = self.engine
        engine.require_initialized()
        if dt < 0.0:
            raise ConfigurationError(f"Projection time must be >= 0, got {dt}")
        rods = self.context.rods

        before = engine.state.copy()
        cursors = rods.cursor_state()
        try:
            if dt > 0.0:
                self._projection(dt, option)
            result = self._analyze(engine.state.copy())
        finally:
            engine.state.restore_from(before)
            rods.restore_cursors(cursors)

        logger.info(
            f"Shutdown margin {result.margin:.1f} pcm (bite {result.bite_worth:.1f}, "
            f"stuck {result.stuck_rod or '-'} {result.stuck_rod_worth:.1f}, "
            f"PD {result.power_defect:.1f})"
        )
        if result.margin < 0.0:
            logger.warning(f"Insufficient shutdown margin: {result.margin:.1f} pcm")
        return result

    def _analyze(self, analysis: ReactorState) -> SDMResult:
        frozen = SteadyOption(
            search_option=CriticalOption.KEFF,
            xenon=XEType.XE_FX,
            samarium=SMType.SM_FX,
            ppm=analysis.boron,
            plevel=analysis.power,
            tin=analysis.tin,
        )
        xenon_rho, samarium_rho = self.context.poison.species_worth()
        xenon_worth, samarium_worth = -xenon_rho, -samarium_rho

        hzp = frozen.copy(plevel=0.0)
        rho_hzp = self._reactivity(analysis, hzp, poison_free=True)
        rho_power = self._reactivity(analysis, frozen, poison_free=True)

        bank_worths = self._bank_worths(analysis, hzp, rho_hzp)
        excluded = set(self.stuck_rods)
        if self.failed_rod is not None:
            excluded.add(self.failed_rod)
        bite = sum(w for rod_id, w in bank_worths.items() if rod_id not in excluded)

        stuck_rod, stuck_worth = "", 0.0
        if self.stuck_rods:
            stuck_rod = max(self.stuck_rods, key=lambda rod_id: bank_worths[rod_id])
            stuck_worth = bank_worths[stuck_rod]

        boron_worth = 0.0
        if self.shutdown_boron is not None:
            boron_worth = (
                self._reactivity(analysis, hzp, poison_free=True, ppm=self.shutdown_boron)
                - rho_hzp
            )
        tm_worth = 0.0
        if self.shutdown_tin is not None:
            tm_worth = (
                self._reactivity(analysis, hzp, poison_free=True, tin=self.shutdown_tin)
                - rho_hzp
            )

        power_defect = rho_hzp - rho_power
        margin = self.margin_from_components(
            bite_worth=bite,
            rod_uncertainty=self.rod_uncertainty,
            stuck_rod_worth=stuck_worth,
            power_defect=power_defect,
            xenon_worth=xenon_worth,
            samarium_worth=samarium_worth,
            boron_worth=boron_worth,
            tm_worth=tm_worth,
            void_uncertainty=self.void_uncertainty,
        )
        return SDMResult(
            bite_worth=bite * (1.0 - self.rod_uncertainty),
            power_defect=power_defect,
            stuck_rod=stuck_rod,
            stuck_rod_worth=stuck_worth,
            margin=margin,
            xenon_worth=xenon_worth,
            samarium_worth=samarium_worth,
            boron_worth=boron_worth,
            tm_worth=tm_worth,
        )

    def _bank_worths(
        self,
        analysis: ReactorState,
        hzp: SteadyOption,
        rho_reference: float,
    ) -> Dict[str, float]:
        """Worth [pcm] of inserting each bank alone from its analysis position."""
        rods = self.context.rods
        worths = {}
        for rod_id in rods.rod_ids:
            inserted = rods.inserted_positions([rod_id])
            rho = self._reactivity(analysis, hzp, poison_free=True, rod_pos=inserted)
            worths[rod_id] = rho_reference - rho
        return worths

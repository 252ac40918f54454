"""
Calculation Options

Enumerations and option records passed into every solve, depletion and
maneuver call.
"""

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Dict, Optional, Tuple


class CriticalOption(IntEnum):
    """Parameter adjusted to reach the target eigenvalue."""

    KEFF = 0   # No adjustment
    CBC = 1    # Critical boron concentration
    POWER = 2  # Critical power level
    ROD = 3    # Critical control rod position


class DepletionIsotope(IntEnum):
    """Nuclides advanced by a depletion step."""

    DEP_ALL = 0  # Fuel burnup and the poison chains
    DEP_FP = 1   # Xenon and samarium chains only
    DEP_XE = 2   # Xenon chain only, samarium held


class XEType(IntEnum):
    """Xenon treatment."""

    XE_NO = 0
    XE_EQ = 1
    XE_TR = 2
    XE_FX = 3


class SMType(IntEnum):
    """Samarium treatment."""

    SM_NO = 0
    SM_TR = 1
    SM_FX = 2


class TimeUnit(IntEnum):
    TIME_SEC = 0
    TIME_HOUR = 1
    TIME_MWD = 2


class ECPOption(IntEnum):
    """Control strategy of the estimated-critical-condition operation."""

    ECP_CBC = 0
    ECP_ROD = 1


@dataclass
class SteadyOption:
    """
    Steady-state calculation option.

    Passed into every solve. Searches and operations work on copies, so
    the caller's instance is only changed when a method documents that it
    echoes an updated option back.

    Attributes:
        search_option: Parameter adjusted to reach criticality
        feed_tf: Enable fuel temperature feedback
        feed_tm: Enable moderator temperature feedback
        xenon: Xenon treatment
        samarium: Samarium treatment
        tin: Inlet coolant temperature [°C]
        eigvt: Target eigenvalue
        maxiter: Maximum number of search solves
        epsiter: Eigenvalue convergence criterion
        ppm: Boron concentration [ppm], fixed value or search guess
        plevel: Power level as fraction of rated
        b10a: B-10 abundance multiplier
        time: Time point [s]
        rod_pos: Rod position overrides by rod id [cm from bottom]
        search_rod: Bank moved in ROD search, None walks the rod sequences
    """

    search_option: CriticalOption = CriticalOption.CBC
    feed_tf: bool = True
    feed_tm: bool = True
    xenon: XEType = XEType.XE_EQ
    samarium: SMType = SMType.SM_TR
    tin: float = 290.0  # [°C]
    eigvt: float = 1.0
    maxiter: int = 100
    epsiter: float = 1e-5
    ppm: float = 500.0  # [ppm]
    plevel: float = 1.0
    b10a: float = 1.0
    time: float = 0.0  # [s]
    rod_pos: Dict[str, float] = field(default_factory=dict)
    search_rod: Optional[str] = None

    def copy(self, **changes) -> "SteadyOption":
        """Return an independent copy, optionally with fields replaced."""
        changes.setdefault("rod_pos", dict(self.rod_pos))
        return replace(self, **changes)


@dataclass
class DepletionOption:
    """
    Depletion sub-step option.

    Attributes:
        isotope: Isotope set tracked during depletion
        xenon: Xenon treatment during depletion
        samarium: Samarium treatment during depletion
        time: Step length in `time_unit`, 0 uses the operation time step
        xeamp: Xenon amplification factor
        time_unit: Unit of `time`
    """

    isotope: DepletionIsotope = DepletionIsotope.DEP_ALL
    xenon: XEType = XEType.XE_TR
    samarium: SMType = SMType.SM_TR
    time: float = 0.0
    xeamp: float = 1.0
    time_unit: TimeUnit = TimeUnit.TIME_SEC


@dataclass
class ScenarioItem:
    """
    One leg of a power maneuver.

    Attributes:
        duration: Duration of this leg [s]
        power_ratio: Target power as fraction of rated
        asi_allowance: Allowed ASI deviation (lower, upper) from the target
        target_asi: Target axial shape index, None holds the initial ASI
        control_asi: Actively control ASI with rods during this leg
    """

    duration: float
    power_ratio: float
    asi_allowance: Tuple[float, float] = (-0.01, 0.01)
    target_asi: Optional[float] = None
    control_asi: bool = False

"""
Reactor State and Result Records

ReactorState is the single mutable model owned by a SteadyStateEngine.
Result and SDMResult are read-only snapshots produced by solves, steps and
shutdown margin runs.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List
import copy

from .errors import ErrorCode


@dataclass
class PoisonState:
    """
    Fission product poison concentrations.

    Attributes:
        iodine: I-135 number density [atoms/cm³]
        xenon: Xe-135 number density [atoms/cm³]
        promethium: Pm-149 number density [atoms/cm³]
        samarium: Sm-149 number density [atoms/cm³]
    """

    iodine: float = 0.0
    xenon: float = 0.0
    promethium: float = 0.0
    samarium: float = 0.0

    def as_list(self) -> List[float]:
        return [self.iodine, self.xenon, self.promethium, self.samarium]

    def assign(self, values) -> None:
        """Assign concentrations in place, clipping roundoff negatives to zero."""
        self.iodine, self.xenon, self.promethium, self.samarium = (
            max(float(v), 0.0) for v in values
        )


@dataclass
class ReactorState:
    """
    Mutable reactor state.

    Attributes:
        rod_positions: Rod position by rod id [cm from bottom]
        burnup: Core average burnup [MWD/MTU]
        poison: Xenon/samarium chain concentrations
        boron: Soluble boron concentration [ppm]
        power: Power level as fraction of rated
        tin: Inlet coolant temperature [°C]
        time: Elapsed simulated time [s]
    """

    rod_positions: Dict[str, float] = field(default_factory=dict)
    burnup: float = 0.0  # [MWD/MTU]
    poison: PoisonState = field(default_factory=PoisonState)
    boron: float = 0.0  # [ppm]
    power: float = 1.0
    tin: float = 290.0  # [°C]
    time: float = 0.0  # [s]

    def copy(self) -> "ReactorState":
        """Independent deep copy, used for snapshots."""
        return copy.deepcopy(self)

    def restore_from(self, other: "ReactorState") -> None:
        """
        Overwrite this state in place with the contents of another.

        The rod position mapping and the poison record keep their identity
        so that collaborators bound to them stay valid.
        """
        self.rod_positions.clear()
        self.rod_positions.update(other.rod_positions)
        self.poison.assign(other.poison.as_list())
        self.burnup = other.burnup
        self.boron = other.boron
        self.power = other.power
        self.tin = other.tin
        self.time = other.time


@dataclass
class Result:
    """
    Output of a solve or operation step.

    Attributes:
        eigenvalue: Effective multiplication factor
        boron_ppm: Boron concentration [ppm]
        fq: 3D power peaking factor
        fxy: Radial (pin) power peaking factor
        fr: Assembly power peaking factor
        fz: Axial power peaking factor
        asi: Axial shape index, (P_bottom - P_top) / (P_bottom + P_top)
        fuel_temperature: Core average fuel temperature [°C]
        moderator_temperature: Core average moderator temperature [°C]
        power_level: Power level as fraction of rated
        power_2d: Assembly-wise relative power (nxya values)
        power_1d: Axial relative power (nz values)
        time: Time stamp [s]
        burnup: Core average burnup [MWD/MTU]
        rod_positions: Rod positions by rod id [cm]
        error: ErrorCode, nonzero for soft failures
        iterations: Number of solves spent producing this result
    """

    eigenvalue: float = 1.0
    boron_ppm: float = 0.0
    fq: float = 0.0
    fxy: float = 0.0
    fr: float = 0.0
    fz: float = 0.0
    asi: float = 0.0
    fuel_temperature: float = 0.0
    moderator_temperature: float = 0.0
    power_level: float = 0.0
    power_2d: List[float] = field(default_factory=list)
    power_1d: List[float] = field(default_factory=list)
    time: float = 0.0
    burnup: float = 0.0
    rod_positions: Dict[str, float] = field(default_factory=dict)
    error: ErrorCode = ErrorCode.NONE
    iterations: int = 1

    @property
    def converged(self) -> bool:
        return self.error == ErrorCode.NONE

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["error"] = int(self.error)
        return data


@dataclass
class SDMResult:
    """
    Shutdown margin breakdown, all worths in pcm.

    Attributes:
        bite_worth: Available rod worth after the uncertainty reduction
        power_defect: Reactivity released going from power to zero power
        stuck_rod: Identifier of the most reactive stuck rod
        stuck_rod_worth: Worth of the stuck rod
        margin: Net shutdown margin, negative when insufficient
        xenon_worth: Reactivity held by xenon, released as it decays
        samarium_worth: Reactivity held by samarium
        boron_worth: Boron reactivity worth
        tm_worth: Moderator temperature reactivity worth
    """

    bite_worth: float = 0.0
    power_defect: float = 0.0
    stuck_rod: str = ""
    stuck_rod_worth: float = 0.0
    margin: float = 0.0
    xenon_worth: float = 0.0
    samarium_worth: float = 0.0
    boron_worth: float = 0.0
    tm_worth: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

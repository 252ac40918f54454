"""
Fission Product Poison Tracking

This module integrates the I-135/Xe-135 and Pm-149/Sm-149 chains:

    dI/dt = γ_I Σ_f φ - λ_I I
    dX/dt = γ_X Σ_f φ + λ_I I - (λ_X + σ_X φ) X
    dP/dt = γ_P Σ_f φ - λ_P P
    dS/dt = λ_P P - σ_S φ S

With the flux frozen over a step the system is linear with constant
coefficients, so a step is taken exactly with the matrix exponential of the
augmented system. This is unconditionally stable for any step length, from
minutes to days, even when the xenon burnout term σ_X φ dominates.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple
import logging

import numpy as np
from scipy.linalg import expm

from .constants import FISSION_PRODUCT_DATA, NOMINAL_CONDITIONS, PhysicalConstants
from .errors import ConfigurationError
from .options import SMType, XEType
from .state import PoisonState

logger = logging.getLogger(__name__)


@dataclass
class PoisonData:
    """
    Core-level data driving the poison chains.

    Attributes:
        sigma_f: Homogenized macroscopic fission cross-section [1/cm]
        sigma_a: Homogenized macroscopic absorption cross-section [1/cm]
        rated_flux: Core-average thermal flux at rated power [n/cm²/s]
    """

    sigma_f: float = 0.045  # [1/cm]
    sigma_a: float = 0.085  # [1/cm]
    rated_flux: float = NOMINAL_CONDITIONS["rated_flux"]
    chain: dict = field(default_factory=lambda: FISSION_PRODUCT_DATA, repr=False)

    def flux(self, power: float) -> float:
        """Thermal flux at a relative power level (fraction of rated)."""
        return max(power, 0.0) * self.rated_flux

    def micro(self, nuclide: str) -> float:
        """Microscopic absorption cross-section [cm²]."""
        return self.chain[nuclide]["sigma_a"] * PhysicalConstants.BARN_TO_CM2

    def decay(self, nuclide: str) -> float:
        return self.chain[nuclide]["decay_constant"]

    def fission_yield(self, nuclide: str) -> float:
        return self.chain[nuclide]["yield"]


def poison_worth_pcm(poison: PoisonState, data: PoisonData) -> Tuple[float, float]:
    """
    Signed reactivity of the xenon and samarium inventories.

    ρ_i = -σ_i N_i / Σ_a

    Returns:
        (xenon, samarium) reactivity [pcm], both non-positive
    """
    scale = -PhysicalConstants.PCM_PER_DELTA_K / data.sigma_a
    xenon = scale * data.micro("Xe-135") * poison.xenon
    samarium = scale * data.micro("Sm-149") * poison.samarium
    return xenon, samarium


class PoisonTracker:
    """
    Time integration of the xenon and samarium chains.

    The tracker updates the PoisonState it is bound to in place, normally
    the poison record of the engine's ReactorState.
    """

    def __init__(
        self,
        poison: Optional[PoisonState] = None,
        data: Optional[PoisonData] = None,
    ):
        self.poison = poison if poison is not None else PoisonState()
        self.data = data if data is not None else PoisonData()
        self.xenon_mode = XEType.XE_EQ
        self.samarium_mode = SMType.SM_TR

    def set_mode(self, xenon_mode: XEType, samarium_mode: SMType) -> None:
        self.xenon_mode = XEType(xenon_mode)
        self.samarium_mode = SMType(samarium_mode)

    def clear(self) -> None:
        self.poison.assign([0.0, 0.0, 0.0, 0.0])

    # ------------------------------------------------------------------
    # Closed forms
    # ------------------------------------------------------------------

    def equilibrium(self, power: float, xenon_factor: float = 1.0) -> np.ndarray:
        """
        Steady concentrations at a constant power level.

        Returns:
            Array of (iodine, xenon, promethium, samarium) [atoms/cm³]
        """
        d = self.data
        phi = d.flux(power)
        fission_rate = d.sigma_f * phi

        gamma_i = d.fission_yield("I-135")
        gamma_x = d.fission_yield("Xe-135")
        gamma_p = d.fission_yield("Pm-149")

        iodine = xenon_factor * gamma_i * fission_rate / d.decay("I-135")
        xenon = (
            xenon_factor * (gamma_i + gamma_x) * fission_rate /
            (d.decay("Xe-135") + d.micro("Xe-135") * phi)
        )
        promethium = gamma_p * fission_rate / d.decay("Pm-149")
        # Sm-149 is stable: N_Sm = γ_P Σ_f / σ_Sm, independent of flux
        samarium = gamma_p * d.sigma_f / d.micro("Sm-149")

        return np.array([iodine, xenon, promethium, samarium])

    def set_equilibrium(self, power: float, xenon_factor: float = 1.0) -> None:
        """Replace both chains with their equilibrium at `power`."""
        self.poison.assign(self.equilibrium(power, xenon_factor))

    def _transition(self, dt: float, power: float, xenon_factor: float) -> np.ndarray:
        """Exact one-step propagator of the augmented (I, X, P, S, 1) system."""
        d = self.data
        phi = d.flux(power)
        fission_rate = d.sigma_f * phi

        lam_i = d.decay("I-135")
        lam_x = d.decay("Xe-135")
        lam_p = d.decay("Pm-149")

        m = np.zeros((5, 5))
        m[0, 0] = -lam_i
        m[1, 0] = lam_i
        m[1, 1] = -(lam_x + d.micro("Xe-135") * phi)
        m[2, 2] = -lam_p
        m[3, 2] = lam_p
        m[3, 3] = -d.micro("Sm-149") * phi

        m[0, 4] = xenon_factor * d.fission_yield("I-135") * fission_rate
        m[1, 4] = xenon_factor * d.fission_yield("Xe-135") * fission_rate
        m[2, 4] = d.fission_yield("Pm-149") * fission_rate

        return expm(m * dt)

    # ------------------------------------------------------------------
    # Time stepping
    # ------------------------------------------------------------------

    def advance(self, dt: float, power: float, xenon_factor: float = 1.0) -> None:
        """
        Advance the poison chains by one step.

        Args:
            dt: Step length [s]
            power: Power level during the step (fraction of rated)
            xenon_factor: Xenon chain production multiplier
        """
        if dt < 0.0:
            raise ConfigurationError(f"Poison time step must be non-negative, got {dt}")

        current = np.array(self.poison.as_list())
        updated = current.copy()

        transient = (
            self.xenon_mode == XEType.XE_TR or self.samarium_mode == SMType.SM_TR
        )
        if transient and dt > 0.0:
            stepped = self._transition(dt, power, xenon_factor) @ np.append(current, 1.0)
        else:
            stepped = np.append(current, 1.0)

        if self.xenon_mode == XEType.XE_EQ:
            updated[:2] = self.equilibrium(power, xenon_factor)[:2]
        elif self.xenon_mode == XEType.XE_TR:
            updated[:2] = stepped[:2]
        elif self.xenon_mode == XEType.XE_NO:
            updated[:2] = 0.0

        if self.samarium_mode == SMType.SM_TR:
            updated[2:] = stepped[2:4]
        elif self.samarium_mode == SMType.SM_NO:
            updated[2:] = 0.0

        self.poison.assign(updated)
        logger.debug(
            f"Poison step dt={dt:.1f}s P={power:.3f}: "
            f"Xe={self.poison.xenon:.4e} Sm={self.poison.samarium:.4e}"
        )

    def decay(
        self,
        shutdown_time: float,
        prior_power: float = 1.0,
        xenon_factor: float = 1.0,
    ) -> None:
        """
        Seed the state of a core shut down after long operation.

        Both chains start from equilibrium at `prior_power` and then decay
        at zero power for `shutdown_time` seconds.
        """
        self.set_equilibrium(prior_power, xenon_factor)
        if shutdown_time > 0.0:
            stepped = self._transition(shutdown_time, 0.0, xenon_factor) @ np.append(
                np.array(self.poison.as_list()), 1.0
            )
            self.poison.assign(stepped[:4])

    # ------------------------------------------------------------------
    # Reactivity
    # ------------------------------------------------------------------

    def species_worth(self) -> Tuple[float, float]:
        """Signed (xenon, samarium) reactivity [pcm]."""
        return poison_worth_pcm(self.poison, self.data)

    def reactivity_contribution(self) -> float:
        """Signed poison reactivity relative to a poison-free core [pcm]."""
        xenon, samarium = self.species_worth()
        return xenon + samarium

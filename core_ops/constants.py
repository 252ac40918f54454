"""
Physical Constants and Nuclear Data for Core Operation Modeling

This module contains the fundamental constants, fission-product chain data
and unit conversion factors shared by the poison tracker, the lumped flux
solver and the shutdown margin analysis.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PhysicalConstants:
    """Fundamental physical constants used in reactor physics calculations."""

    # Barn to cm² conversion
    BARN_TO_CM2: float = 1e-24

    # Seconds per day
    SECONDS_PER_DAY: float = 86400.0

    # Seconds per hour
    SECONDS_PER_HOUR: float = 3600.0

    # Reactivity unit conversion (1 pcm = 1e-5 Δk/k)
    PCM_PER_DELTA_K: float = 1e5


# Fission product chain data for the I-135/Xe-135 and Pm-149/Sm-149 chains.
# Yields are direct (independent) yields so the two chains do not
# double-count the iodine/promethium feed.
FISSION_PRODUCT_DATA = {
    "I-135": {
        "yield": 0.0639,
        "sigma_a": 7.0,             # Absorption cross-section [barns]
        "decay_constant": 2.87e-5,  # [1/s]
    },
    "Xe-135": {
        "yield": 0.00237,
        "sigma_a": 2.65e6,
        "decay_constant": 2.09e-5,
    },
    "Pm-149": {
        "yield": 0.0113,
        "sigma_a": 1400.0,
        "decay_constant": 3.63e-6,
    },
    "Sm-149": {
        "yield": 0.0,
        "sigma_a": 40140.0,
        "decay_constant": 0.0,      # Stable
    },
}


# Soluble boron defaults
BORON_DATA = {
    "worth_pcm_per_ppm": -8.0,      # Differential boron worth near HFP
}


# Nominal operating constants
NOMINAL_CONDITIONS = {
    "inlet_temperature_c": 290.0,   # [°C]
    "core_temperature_rise_c": 30.0,
    "fuel_temperature_rise_c": 600.0,  # Average fuel-to-coolant ΔT at HFP
    "rated_flux": 3.0e13,           # Core-average thermal flux at HFP [n/cm²/s]
}

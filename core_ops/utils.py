"""
Utility Functions for Core Operation Modeling

This module provides helper functions for reactivity unit conversions,
table validation, interpolation and burnup bookkeeping.
"""

from typing import Iterable, Sequence, Tuple

import numpy as np

from .constants import PhysicalConstants
from .errors import ConfigurationError


def pcm_to_delta_k(pcm: float) -> float:
    """
    Convert reactivity from pcm to Δk/k.

    Args:
        pcm: Reactivity in pcm (percent mille)

    Returns:
        Reactivity as Δk/k
    """
    return pcm * 1e-5


def delta_k_to_pcm(delta_k: float) -> float:
    """
    Convert reactivity from Δk/k to pcm.

    Args:
        delta_k: Reactivity as Δk/k

    Returns:
        Reactivity in pcm
    """
    return delta_k * 1e5


def reactivity_pcm(k_eff: float) -> float:
    """
    Static reactivity of a multiplication factor.

    ρ = (k - 1) / k

    Args:
        k_eff: Effective multiplication factor

    Returns:
        Reactivity in pcm
    """
    return delta_k_to_pcm((k_eff - 1.0) / k_eff)


def k_from_reactivity_pcm(rho_pcm: float) -> float:
    """
    Multiplication factor for a given reactivity.

    k = 1 / (1 - ρ)

    Args:
        rho_pcm: Reactivity in pcm

    Returns:
        Effective multiplication factor
    """
    return 1.0 / (1.0 - pcm_to_delta_k(rho_pcm))


def calculate_burnup(
    power_mw: float,
    time_days: float,
    heavy_metal_tonnes: float
) -> float:
    """
    Calculate fuel burnup.

    Burnup = (Power × Time) / Mass

    Args:
        power_mw: Thermal power [MW]
        time_days: Irradiation time [days]
        heavy_metal_tonnes: Heavy metal mass [tonnes]

    Returns:
        Burnup [MWd/tHM]
    """
    return power_mw * time_days / heavy_metal_tonnes


def seconds_for_burnup(
    burnup: float,
    power_mw: float,
    heavy_metal_tonnes: float
) -> float:
    """Irradiation time [s] needed to accumulate `burnup` MWd/tHM at `power_mw`."""
    if power_mw <= 0.0:
        raise ConfigurationError(
            "Burnup-based time steps need a positive power level"
        )
    days = burnup * heavy_metal_tonnes / power_mw
    return days * PhysicalConstants.SECONDS_PER_DAY


def validate_increasing(values: Sequence[float], name: str) -> None:
    """
    Check that a table axis is strictly increasing.

    Raises:
        ConfigurationError: if the axis is empty or not strictly increasing
    """
    if len(values) == 0:
        raise ConfigurationError(f"{name} table is empty")
    for lower, upper in zip(values[:-1], values[1:]):
        if not upper > lower:
            raise ConfigurationError(
                f"{name} table must be strictly increasing, got {lower} then {upper}"
            )


def interpolate_linear(
    x: float,
    x_data: Sequence[float],
    y_data: Sequence[float]
) -> float:
    """
    Perform linear interpolation, clamped at the table extremes.

    Args:
        x: Point to interpolate at
        x_data: Known x values (increasing)
        y_data: Known y values

    Returns:
        Interpolated y value
    """
    return float(np.interp(x, x_data, y_data))


def interpolate_band(
    x: float,
    table: Iterable[Tuple[float, Tuple[float, float]]]
) -> Tuple[float, float]:
    """
    Interpolate a (min, max) band keyed by power.

    Args:
        x: Relative power [%]
        table: Sorted (power, (lower, upper)) pairs

    Returns:
        Interpolated (lower, upper) band
    """
    points = list(table)
    powers = [p for p, _ in points]
    lowers = [band[0] for _, band in points]
    uppers = [band[1] for _, band in points]
    return interpolate_linear(x, powers, lowers), interpolate_linear(x, powers, uppers)

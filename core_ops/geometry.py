"""
Core Geometry Module

Static geometry constants returned by the setup collaborator: axial node
mesh, radial assembly layout and core-level ratings. They size the power
distributions carried in every Result.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import math
import numpy as np

from .errors import ConfigurationError


@dataclass
class CoreGeometry:
    """
    Core geometry specification.

    Defaults describe a 241-assembly, 381 cm active height PWR core
    (roughly APR1400 sized).

    Attributes:
        nz: Number of axial nodes
        nxa: Number of radial assemblies in X direction
        nya: Number of radial assemblies in Y direction
        num_assemblies: Number of fuel assemblies in the layout
        assembly_pitch: Distance between assembly centers [cm]
        height: Active core height [cm]
        thermal_power: Rated thermal power [MW]
        heavy_metal_tonnes: Initial heavy metal loading [tHM]
        hz: Axial node heights [cm], uniform when not given
        kbc: Bottom plane of active fuel (node index)
        kec: Top plane of active fuel (exclusive node index)
    """

    nz: int = 20
    nxa: int = 17
    nya: int = 17
    num_assemblies: int = 241
    assembly_pitch: float = 20.78  # [cm]
    height: float = 381.0  # [cm]
    thermal_power: float = 3983.0  # [MW]
    heavy_metal_tonnes: float = 117.4  # [tHM]
    hz: Optional[List[float]] = None
    kbc: int = 0
    kec: Optional[int] = None
    assemblies_layout: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        """Validate the mesh and build the assembly layout if not provided."""
        if self.nz <= 0:
            raise ConfigurationError(f"Axial node count must be positive, got {self.nz}")
        if self.hz is None:
            self.hz = [self.height / self.nz] * self.nz
        if len(self.hz) != self.nz:
            raise ConfigurationError(
                f"Axial mesh has {len(self.hz)} heights for {self.nz} nodes"
            )
        if self.kec is None:
            self.kec = self.nz
        if not 0 <= self.kbc < self.kec <= self.nz:
            raise ConfigurationError(
                f"Active fuel planes [{self.kbc}, {self.kec}) outside mesh of {self.nz}"
            )
        if self.assemblies_layout is None:
            self.assemblies_layout = self._generate_assembly_layout()

    def _generate_assembly_layout(self) -> np.ndarray:
        """
        Generate the core assembly layout map.

        Assemblies fill the grid positions closest to the core center.
        Values: 1 = assembly present, 0 = no assembly

        Returns:
            2D numpy array of shape (nya, nxa)
        """
        if self.num_assemblies > self.nxa * self.nya:
            raise ConfigurationError(
                f"{self.num_assemblies} assemblies do not fit a "
                f"{self.nxa}x{self.nya} grid"
            )
        layout = np.zeros((self.nya, self.nxa), dtype=int)
        cx = (self.nxa - 1) / 2.0
        cy = (self.nya - 1) / 2.0

        cells = sorted(
            ((j - cy)**2 + (i - cx)**2, j, i)
            for j in range(self.nya)
            for i in range(self.nxa)
        )
        for _, j, i in cells[:self.num_assemblies]:
            layout[j, i] = 1

        return layout

    @property
    def nxya(self) -> int:
        """Total number of fuel assemblies."""
        return int(self.assemblies_layout.sum())

    @property
    def row_ranges(self) -> List[Tuple[int, int]]:
        """Starting and ending X index (inclusive) of fuel in each assembly row."""
        ranges = []
        for row in self.assemblies_layout:
            filled = np.nonzero(row)[0]
            if len(filled):
                ranges.append((int(filled[0]), int(filled[-1])))
        return ranges

    @property
    def equivalent_radius(self) -> float:
        """
        Equivalent cylindrical core radius.

        R_eq = sqrt(N * P² / π)

        Returns:
            Equivalent radius [cm]
        """
        return math.sqrt(self.nxya * self.assembly_pitch**2 / math.pi)

    @property
    def node_centers(self) -> np.ndarray:
        """Axial node center heights measured from the bottom of the core [cm]."""
        edges = np.concatenate(([0.0], np.cumsum(self.hz)))
        return 0.5 * (edges[:-1] + edges[1:])

    def axial_shape_index(self, power_1d) -> float:
        """
        Axial shape index of an axial power distribution.

        ASI = (P_bottom - P_top) / (P_bottom + P_top)

        Positive values mean bottom-skewed power.
        """
        power = np.asarray(power_1d, dtype=float) * np.asarray(self.hz, dtype=float)
        lower = self.node_centers < 0.5 * self.height
        p_bottom = power[lower].sum()
        p_top = power[~lower].sum()
        total = p_bottom + p_top
        if total <= 0.0:
            return 0.0
        return float((p_bottom - p_top) / total)

    @property
    def assembly_radii(self) -> np.ndarray:
        """Distance of each fuel assembly center from the core axis [cm]."""
        cx = (self.nxa - 1) / 2.0
        cy = (self.nya - 1) / 2.0
        rows, cols = np.nonzero(self.assemblies_layout)
        return self.assembly_pitch * np.sqrt((rows - cy)**2 + (cols - cx)**2)

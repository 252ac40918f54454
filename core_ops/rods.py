"""
Control Rod Bookkeeping

This module keeps rod identity, travel ranges, overlap partners, PDIL
tables and the insertion/withdrawal sequences. It performs no solves:
positions are written into the rod map of the engine's ReactorState.

Positions are measured in cm from the bottom of the core, so insertion
lowers the position. PDIL tables map relative power [%] to the lowest
position the rod may be driven to at that power.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from .errors import ConfigurationError
from .utils import interpolate_linear, validate_increasing

logger = logging.getLogger(__name__)

_EPS = 1e-9


class SequenceDirection(Enum):
    IN = "in"
    OUT = "out"


@dataclass
class RodGroup:
    """
    A control rod bank.

    Attributes:
        rod_id: Bank identifier
        bottom: Lowest position [cm]
        top: Highest position [cm]
        overlap_id: Mechanically linked bank moved by the same delta
        worth: Integral worth table, (position [cm], worth [pcm]) pairs
        pdil: Insertion limit table, (power [%], lowest position [cm]) pairs
    """

    rod_id: str
    bottom: float
    top: float
    overlap_id: Optional[str] = None
    worth: List[Tuple[float, float]] = field(default_factory=list)
    pdil: List[Tuple[float, float]] = field(default_factory=list)

    @property
    def travel(self) -> float:
        return self.top - self.bottom

    def clamp(self, value: float) -> float:
        return min(max(value, self.bottom), self.top)


@dataclass
class RodSequence:
    """Ordered (rod id, limit) list with a cursor on the moving bank."""

    rod_ids: List[str] = field(default_factory=list)
    limits: List[float] = field(default_factory=list)
    cursor: int = 0

    def __len__(self) -> int:
        return len(self.rod_ids)

    @property
    def active(self) -> Optional[Tuple[str, float]]:
        if self.cursor >= len(self.rod_ids):
            return None
        return self.rod_ids[self.cursor], self.limits[self.cursor]


class RodController:
    """
    Rod identity, ranges, overlap, PDIL and sequencing.

    The controller writes into the position mapping it is given, which is
    normally ``ReactorState.rod_positions`` of the owning engine.
    """

    def __init__(
        self,
        positions: Optional[Dict[str, float]] = None,
        default_range: Tuple[float, float] = (0.0, 381.0),
    ):
        self._positions = positions if positions is not None else {}
        self._groups: Dict[str, RodGroup] = {}
        self._sequences = {
            SequenceDirection.IN: RodSequence(),
            SequenceDirection.OUT: RodSequence(),
        }
        self.default_range = default_range

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_rod(
        self,
        rod_id: str,
        overlap_id: Optional[str] = None,
        rod_range: Optional[Tuple[float, float]] = None,
    ) -> RodGroup:
        """
        Register a rod bank.

        Args:
            rod_id: Bank identifier, unique
            overlap_id: Bank moved together with this one on overlapped moves
            rod_range: (bottom, top) travel range [cm], defaults to the
                controller's default range

        Returns:
            The registered RodGroup

        Raises:
            ConfigurationError: duplicate id or inverted range
        """
        if rod_id in self._groups:
            raise ConfigurationError(f"Rod '{rod_id}' is already registered")
        bottom, top = rod_range if rod_range is not None else self.default_range
        if bottom > top:
            raise ConfigurationError(
                f"Rod '{rod_id}' range is inverted: bottom {bottom} > top {top}"
            )
        if overlap_id == rod_id:
            raise ConfigurationError(f"Rod '{rod_id}' cannot overlap itself")

        group = RodGroup(rod_id=rod_id, bottom=bottom, top=top, overlap_id=overlap_id or None)
        self._groups[rod_id] = group

        # Fresh banks start fully withdrawn; restored positions are kept in range.
        self._positions[rod_id] = group.clamp(self._positions.get(rod_id, top))
        logger.debug(f"Registered rod {rod_id} range=({bottom}, {top}) overlap={overlap_id}")
        return group

    def group(self, rod_id: str) -> RodGroup:
        try:
            return self._groups[rod_id]
        except KeyError:
            raise ConfigurationError(f"Unknown rod id '{rod_id}'") from None

    @property
    def rod_ids(self) -> List[str]:
        return list(self._groups)

    def __contains__(self, rod_id: str) -> bool:
        return rod_id in self._groups

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def position(self, rod_id: str) -> float:
        self.group(rod_id)
        return self._positions[rod_id]

    def positions(self) -> Dict[str, float]:
        """Copy of the current position of every registered rod."""
        return {rod_id: self._positions[rod_id] for rod_id in self._groups}

    def set_position(self, rod_id: str, value: float, overlap: bool = False) -> float:
        """
        Move a rod, clamped into its range.

        With ``overlap`` the rod's overlap partner moves by the same delta,
        clamped to its own range.

        Returns:
            The position actually assigned
        """
        group = self.group(rod_id)
        old = self._positions[rod_id]
        new = group.clamp(value)
        self._positions[rod_id] = new

        if overlap and group.overlap_id is not None:
            partner = self.group(group.overlap_id)
            moved = self._positions[partner.rod_id] + (new - old)
            self._positions[partner.rod_id] = partner.clamp(moved)

        return new

    def set_positions(self, positions: Dict[str, float]) -> None:
        for rod_id, value in positions.items():
            self.set_position(rod_id, value)

    def inserted_positions(self, rod_ids: Iterable[str]) -> Dict[str, float]:
        """Fully inserted position of each given rod."""
        return {rod_id: self.group(rod_id).bottom for rod_id in rod_ids}

    def insertion(self, rod_id: str) -> float:
        """Inserted depth measured from the top of the rod range [cm]."""
        group = self.group(rod_id)
        return group.top - self._positions[rod_id]

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def set_pdil(self, rod_id: str, points: Sequence[Tuple[float, float]]) -> None:
        """
        Set the power-dependent insertion limit.

        Args:
            rod_id: Bank identifier
            points: (relative power [%], lowest position [cm]) pairs,
                power strictly increasing
        """
        group = self.group(rod_id)
        points = [(float(p), float(z)) for p, z in points]
        validate_increasing([p for p, _ in points], f"PDIL of rod '{rod_id}'")
        group.pdil = points

    def get_pdil(self, rod_id: str, power: float) -> float:
        """
        Insertion limit at a relative power [%].

        Linear between table points and clamped outside the table.
        A rod without a PDIL table may travel to the bottom of its range.
        """
        group = self.group(rod_id)
        if not group.pdil:
            return group.bottom
        powers = [p for p, _ in group.pdil]
        limits = [z for _, z in group.pdil]
        return interpolate_linear(power, powers, limits)

    def set_worth(self, rod_id: str, points: Sequence[Tuple[float, float]]) -> None:
        """Set the integral worth table, (position [cm], worth [pcm]) pairs."""
        group = self.group(rod_id)
        points = [(float(z), float(w)) for z, w in points]
        validate_increasing([z for z, _ in points], f"worth of rod '{rod_id}'")
        group.worth = points

    def integral_worth(self, rod_id: str, position: Optional[float] = None) -> Optional[float]:
        """Integral worth [pcm] at a position, None when no table is set."""
        group = self.group(rod_id)
        if not group.worth:
            return None
        if position is None:
            position = self._positions[rod_id]
        return interpolate_linear(
            position, [z for z, _ in group.worth], [w for _, w in group.worth]
        )

    # ------------------------------------------------------------------
    # Sequencing
    # ------------------------------------------------------------------

    def set_sequence(
        self,
        direction: SequenceDirection,
        rod_ids: Sequence[str],
        limits: Sequence[float],
    ) -> None:
        """
        Store the insertion or withdrawal sequence.

        Args:
            direction: SequenceDirection.IN or SequenceDirection.OUT
            rod_ids: Banks in moving order
            limits: Position each bank travels to before the next one moves
        """
        direction = SequenceDirection(direction)
        if len(rod_ids) != len(limits):
            raise ConfigurationError(
                f"{len(rod_ids)} rods given with {len(limits)} sequence limits"
            )
        for rod_id, limit in zip(rod_ids, limits):
            group = self.group(rod_id)
            if not group.bottom <= limit <= group.top:
                raise ConfigurationError(
                    f"Sequence limit {limit} outside range of rod '{rod_id}'"
                )
        self._sequences[direction] = RodSequence(list(rod_ids), [float(x) for x in limits])

    def sequence(self, direction: SequenceDirection) -> RodSequence:
        return self._sequences[SequenceDirection(direction)]

    def has_sequence(self, direction: SequenceDirection) -> bool:
        return len(self._sequences[SequenceDirection(direction)]) > 0

    def reset_cursors(self) -> None:
        for sequence in self._sequences.values():
            sequence.cursor = 0

    def cursor_state(self) -> Dict[SequenceDirection, int]:
        return {d: s.cursor for d, s in self._sequences.items()}

    def restore_cursors(self, cursors: Dict[SequenceDirection, int]) -> None:
        for direction, cursor in cursors.items():
            self._sequences[direction].cursor = cursor

    def _room(self, rod_id: str, limit: float, sign: float) -> float:
        return (limit - self._positions[rod_id]) * sign

    def advance(self, delta: float, power: Optional[float] = None) -> float:
        """
        Move rods along a sequence.

        A negative delta inserts along the IN sequence, a positive delta
        withdraws along the OUT sequence. The active bank moves toward its
        limit; travel it cannot absorb spills to the next bank.

        Args:
            delta: Signed travel to distribute [cm]
            power: Relative power [%]; when given, insertion stops at PDIL

        Returns:
            Signed travel left over, 0 when fully consumed
        """
        if abs(delta) <= _EPS:
            return 0.0
        sign = 1.0 if delta > 0 else -1.0
        seq = self._sequences[SequenceDirection.OUT if sign > 0 else SequenceDirection.IN]

        # Banks moved back by the opposite sequence become active again.
        seq.cursor = len(seq)
        for index, (rod_id, limit) in enumerate(zip(seq.rod_ids, seq.limits)):
            if self._room(rod_id, limit, sign) > _EPS:
                seq.cursor = index
                break

        remaining = abs(delta)
        while remaining > _EPS and seq.active is not None:
            rod_id, limit = seq.active
            pdil_bound = False
            if power is not None and sign < 0:
                floor = self.get_pdil(rod_id, power)
                if floor > limit:
                    limit = floor
                    pdil_bound = True

            room = self._room(rod_id, limit, sign)
            if room <= _EPS:
                if pdil_bound:
                    logger.debug(f"Rod {rod_id} held at PDIL {limit:.2f} cm")
                    break
                seq.cursor += 1
                continue

            move = min(remaining, room)
            self.set_position(rod_id, self._positions[rod_id] + sign * move, overlap=True)
            remaining -= move
            if move >= room - _EPS:
                if pdil_bound:
                    break
                seq.cursor += 1

        return sign * remaining if remaining > _EPS else 0.0

    def total_travel(self, direction: SequenceDirection) -> float:
        """Travel still available along a sequence [cm]."""
        direction = SequenceDirection(direction)
        sign = 1.0 if direction is SequenceDirection.OUT else -1.0
        seq = self._sequences[direction]
        return sum(
            max(self._room(rod_id, limit, sign), 0.0)
            for rod_id, limit in zip(seq.rod_ids, seq.limits)
        )

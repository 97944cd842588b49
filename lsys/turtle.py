"""
3D turtle interpretation of L-system strings.

The turtle walks the generated word left to right, keeping a position and
an orthonormal (forward, left, up) frame. Drawing symbols emit tapered
branch segments linked to their parent segment; brackets save and restore
the turtle so sub-branches return to their fork point.

Alphabet:
    F       move forward, emit a segment
    f       move forward, no segment
    + -     yaw left / right about up
    ^ &     pitch about left
    \\ /     roll about forward
    |       turn around (yaw 180)
    [ ]     push / pop turtle state
    L       place a leaf
Any other symbol is consumed without effect.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from lsys.config import TurtleConfig
from lsys.vectors import (
    EPSILON,
    X_AXIS,
    Z_AXIS,
    as_vec3,
    reorthonormalize,
    rotate_about_axis,
    vec_mag,
    vec_normalize,
)

logger = logging.getLogger(__name__)

MIN_STEP_LENGTH = 0.1
TROPISM_DEGREES_PER_STRENGTH = 5.0
TROPISM_MIN_ELEVATION = -80.0
TROPISM_MIN_ROTATION = 0.01


@dataclass
class TurtleState:
    """Position, orientation frame and branch bookkeeping of the turtle."""

    position: np.ndarray
    forward: np.ndarray
    left: np.ndarray
    up: np.ndarray
    width: float
    depth: int = 0
    last_segment_index: int = -1  # parent for the next segment

    def copy(self) -> "TurtleState":
        return TurtleState(
            position=self.position.copy(),
            forward=self.forward.copy(),
            left=self.left.copy(),
            up=self.up.copy(),
            width=self.width,
            depth=self.depth,
            last_segment_index=self.last_segment_index,
        )


@dataclass
class BranchSegment:
    """A tapered cylinder between two points. parent_index is -1 for roots."""

    start: np.ndarray
    end: np.ndarray
    start_radius: float
    end_radius: float
    direction: np.ndarray
    depth: int
    parent_index: int = -1
    material_index: int = 0

    @property
    def length(self) -> float:
        return vec_mag(self.end - self.start)


@dataclass
class LeafPlacement:
    """Where and how to place a leaf quad. rotation is degrees about normal."""

    position: np.ndarray
    normal: np.ndarray
    up: np.ndarray
    size: tuple[float, float]
    rotation: float = 0.0
    depth: int = 0


@dataclass
class Interpretation:
    """Skeleton produced by one turtle pass."""

    segments: list[BranchSegment] = field(default_factory=list)
    leaves: list[LeafPlacement] = field(default_factory=list)
    max_depth: int = 0
    symbols_processed: int = 0
    unbalanced_pops: int = 0
    skipped_branches: int = 0

    @property
    def total_length(self) -> float:
        return sum(s.length for s in self.segments)


class TurtleInterpreter:
    """
    Stateful interpreter; call interpret() once per word.

    All randomness (step jitter, angle jitter, pitch flips, branch
    skipping, leaf rotation, initial roll) comes from one numpy Generator
    seeded from the config, or from an explicit rng argument.
    """

    def __init__(self, config: Optional[TurtleConfig] = None):
        self.config = config or TurtleConfig()
        self._handlers: dict[str, Callable[[], None]] = {
            "F": lambda: self._forward(draw=True),
            "f": lambda: self._forward(draw=False),
            "+": lambda: self._yaw(self.config.default_angle),
            "-": lambda: self._yaw(-self.config.default_angle),
            "^": lambda: self._pitch(self.config.pitch_angle),
            "&": lambda: self._pitch(-self.config.pitch_angle),
            "\\": lambda: self._roll(self.config.roll_angle),
            "/": lambda: self._roll(-self.config.roll_angle),
            "|": lambda: self._yaw(180.0, jitter=False),
            "[": self._push,
            "]": self._pop,
            "L": self._leaf,
        }
        self._reset(np.random.default_rng(self.config.random_seed or None))

    def _reset(self, rng: np.random.Generator) -> None:
        self.rng = rng
        self.state = self._initial_state()
        self.stack: list[TurtleState] = []
        self.result = Interpretation()
        self._skip_depth = 0

    def _initial_state(self) -> TurtleState:
        cfg = self.config
        forward = vec_normalize(as_vec3(cfg.initial_forward))
        if not forward.any():
            forward = Z_AXIS.copy()
        ref = Z_AXIS if abs(forward[2]) < 0.99 else X_AXIS
        forward, left, up = reorthonormalize(forward, np.cross(ref, forward))
        state = TurtleState(
            position=as_vec3(cfg.initial_position),
            forward=forward,
            left=left,
            up=up,
            width=cfg.initial_width,
        )
        if cfg.initial_random_roll > 0:
            roll = self.rng.uniform(0.0, cfg.initial_random_roll)
            state.left = rotate_about_axis(state.left, state.forward, roll)
            state.up = rotate_about_axis(state.up, state.forward, roll)
        return state

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def interpret(
        self, word: str, rng: Optional[np.random.Generator] = None
    ) -> Interpretation:
        """Walk `word` and return its segments and leaves."""
        self._reset(rng or np.random.default_rng(self.config.random_seed or None))

        for symbol in word:
            self.result.symbols_processed += 1
            if self._skip_depth > 0:
                if symbol == "[":
                    self._skip_depth += 1
                elif symbol == "]":
                    self._skip_depth -= 1
                continue
            handler = self._handlers.get(symbol)
            if handler is not None:
                handler()

        if self.stack:
            logger.debug("%d unclosed branches at end of string", len(self.stack))
        logger.debug(
            "Interpreted %d symbols: %d segments, %d leaves, max depth %d",
            self.result.symbols_processed,
            len(self.result.segments),
            len(self.result.leaves),
            self.result.max_depth,
        )
        return self.result

    # -------------------------------------------------------------------------
    # Movement
    # -------------------------------------------------------------------------

    def _forward(self, draw: bool) -> None:
        cfg = self.config
        state = self.state
        start_width = state.width
        end_width = max(start_width * cfg.taper_ratio, cfg.min_width)

        step = cfg.step_length
        if cfg.step_length_variation > 0:
            variation = cfg.step_length_variation
            step *= 1.0 + self.rng.uniform(-variation, variation)
            step = max(step, MIN_STEP_LENGTH)

        start = state.position.copy()
        state.position = start + state.forward * step
        self._apply_tropism()

        if draw and start_width >= cfg.min_width:
            segment = BranchSegment(
                start=start,
                end=state.position.copy(),
                start_radius=start_width,
                end_radius=end_width,
                direction=vec_normalize(state.position - start),
                depth=state.depth,
                parent_index=state.last_segment_index,
            )
            self.result.segments.append(segment)
            state.last_segment_index = len(self.result.segments) - 1

        state.width = end_width

    def _apply_tropism(self) -> None:
        """
        Bend the heading toward the tropism direction.

        The horizontal heading is preserved; only the elevation relative
        to the plane perpendicular to the tropism vector drops, by at most
        strength * 5 degrees per step and never below -80 degrees.
        """
        cfg = self.config
        if cfg.tropism_strength <= 0:
            return
        vertical = -vec_normalize(as_vec3(cfg.tropism_direction))
        if not vertical.any():
            return

        state = self.state
        rise = float(np.dot(state.forward, vertical))
        horizontal = state.forward - vertical * rise
        h_len = vec_mag(horizontal)
        if h_len < EPSILON:
            return

        axis = np.cross(vertical, horizontal / h_len)
        elevation = math.degrees(math.atan2(rise, h_len))
        max_rotation = cfg.tropism_strength * TROPISM_DEGREES_PER_STRENGTH
        target = max(elevation - max_rotation, TROPISM_MIN_ELEVATION)
        rotation = elevation - target
        if rotation <= TROPISM_MIN_ROTATION:
            return

        state.forward = rotate_about_axis(state.forward, axis, rotation)
        state.left = rotate_about_axis(state.left, axis, rotation)
        state.up = rotate_about_axis(state.up, axis, rotation)
        self._reorthonormalize()

    # -------------------------------------------------------------------------
    # Rotation
    # -------------------------------------------------------------------------

    def _jitter(self, bounds: tuple[float, float]) -> float:
        lo, hi = bounds
        if lo >= hi:
            return 0.0
        return self.rng.uniform(lo, hi)

    def _reorthonormalize(self) -> None:
        state = self.state
        state.forward, state.left, state.up = reorthonormalize(state.forward, state.left)

    def _yaw(self, angle: float, jitter: bool = True) -> None:
        if jitter:
            angle += self._jitter(self.config.angle_variation)
        state = self.state
        state.forward = rotate_about_axis(state.forward, state.up, angle)
        state.left = rotate_about_axis(state.left, state.up, angle)
        self._reorthonormalize()

    def _pitch(self, angle: float) -> None:
        cfg = self.config
        if cfg.randomize_pitch_direction and self.rng.random() < cfg.pitch_flip_probability:
            angle = -angle
        angle += self._jitter(cfg.pitch_variation)
        state = self.state
        state.forward = rotate_about_axis(state.forward, state.left, angle)
        state.up = rotate_about_axis(state.up, state.left, angle)
        self._reorthonormalize()

    def _roll(self, angle: float) -> None:
        angle += self._jitter(self.config.angle_variation)
        state = self.state
        state.left = rotate_about_axis(state.left, state.forward, angle)
        state.up = rotate_about_axis(state.up, state.forward, angle)
        self._reorthonormalize()

    # -------------------------------------------------------------------------
    # Branching and leaves
    # -------------------------------------------------------------------------

    def _push(self) -> None:
        cfg = self.config
        if cfg.branch_probability < 1.0 and self.rng.random() > cfg.branch_probability:
            self._skip_depth = 1
            self.result.skipped_branches += 1
            return

        self.stack.append(self.state.copy())
        state = self.state
        state.depth += 1
        state.width = max(state.width * cfg.width_falloff, cfg.min_width)
        self.result.max_depth = max(self.result.max_depth, state.depth)

    def _pop(self) -> None:
        if not self.stack:
            logger.warning("Attempted to pop empty state stack")
            self.result.unbalanced_pops += 1
            return
        self.state = self.stack.pop()

    def _leaf(self) -> None:
        cfg = self.config
        state = self.state
        jitter = cfg.leaf_rotation_jitter
        self.result.leaves.append(
            LeafPlacement(
                position=state.position.copy(),
                normal=state.forward.copy(),
                up=state.up.copy(),
                size=cfg.leaf_size,
                rotation=self.rng.uniform(-jitter, jitter) if jitter > 0 else 0.0,
                depth=state.depth,
            )
        )


def interpret(
    word: str,
    config: Optional[TurtleConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> Interpretation:
    """Interpret `word` with a fresh TurtleInterpreter."""
    return TurtleInterpreter(config).interpret(word, rng)

"""
Tests for the 3D turtle interpreter.

The default turtle starts at the origin heading up +Z with width 1.0,
steps 10 units and tapers 5% per step.
"""

import math

import numpy as np
import pytest

from lsys.config import TurtleConfig
from lsys.errors import InvalidConfiguration
from lsys.turtle import TurtleInterpreter, interpret
from lsys.vectors import Z_AXIS


def angle_between(a: np.ndarray, b: np.ndarray) -> float:
    cos = np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b))
    return math.degrees(math.acos(np.clip(cos, -1.0, 1.0)))


class TestMovement:
    """Tests for F and f."""

    def test_single_segment(self) -> None:
        """F draws one segment straight up."""
        result = interpret("F")
        assert len(result.segments) == 1
        seg = result.segments[0]
        assert np.allclose(seg.start, [0, 0, 0])
        assert np.allclose(seg.end, [0, 0, 10])
        assert np.allclose(seg.direction, Z_AXIS)
        assert seg.start_radius == pytest.approx(1.0)
        assert seg.end_radius == pytest.approx(0.95)
        assert seg.parent_index == -1
        assert seg.length == pytest.approx(10.0)

    def test_chain_links_parents(self) -> None:
        """Consecutive F symbols chain through parent_index."""
        result = interpret("FFF")
        assert [s.parent_index for s in result.segments] == [-1, 0, 1]
        assert np.allclose(result.segments[2].end, [0, 0, 30])

    def test_taper_continues(self) -> None:
        """Each step starts at the previous step's end radius."""
        segs = interpret("FF").segments
        assert segs[1].start_radius == pytest.approx(segs[0].end_radius)
        assert segs[1].end_radius == pytest.approx(0.95 * 0.95)

    def test_move_without_drawing(self) -> None:
        """f moves the turtle but draws nothing."""
        result = interpret("fF")
        assert len(result.segments) == 1
        assert np.allclose(result.segments[0].start, [0, 0, 10])

    def test_initial_position(self) -> None:
        """Segments start at the configured position."""
        result = interpret("F", TurtleConfig(initial_position=(5.0, -2.0, 1.0)))
        assert np.allclose(result.segments[0].start, [5, -2, 1])
        assert np.allclose(result.segments[0].end, [5, -2, 11])

    def test_below_min_width_not_drawn(self) -> None:
        """A step starting under min_width is skipped, then width is floored."""
        config = TurtleConfig(initial_width=0.01, min_width=0.05)
        result = interpret("FF", config)
        assert len(result.segments) == 1
        assert np.allclose(result.segments[0].start, [0, 0, 10])
        assert result.segments[0].start_radius == pytest.approx(0.05)

    def test_step_variation_bounds(self) -> None:
        """Jittered steps stay within the variation band."""
        config = TurtleConfig(step_length_variation=0.1, random_seed=3)
        lengths = [s.length for s in interpret("F" * 50, config).segments]
        assert min(lengths) >= 9.0 - 1e-9
        assert max(lengths) <= 11.0 + 1e-9
        assert max(lengths) > min(lengths)

    def test_unknown_symbols_ignored(self) -> None:
        """Symbols outside the alphabet are consumed without effect."""
        result = interpret("XAF!")
        assert len(result.segments) == 1
        assert result.symbols_processed == 4


class TestRotation:
    """Tests for yaw, pitch, roll and turn-around."""

    def test_yaw(self) -> None:
        """+ turns the heading by the default angle."""
        seg = interpret("+F").segments[0]
        assert angle_between(seg.direction, Z_AXIS) == pytest.approx(25.0)

    def test_yaw_opposite(self) -> None:
        """+ and - turn in opposite directions."""
        plus = interpret("+F").segments[0].direction
        minus = interpret("-F").segments[0].direction
        assert angle_between(plus, minus) == pytest.approx(50.0)

    def test_pitch(self) -> None:
        """^ and & tilt by the pitch angle in opposite directions."""
        up = interpret("^F", TurtleConfig(pitch_angle=30.0)).segments[0].direction
        down = interpret("&F", TurtleConfig(pitch_angle=30.0)).segments[0].direction
        assert angle_between(up, Z_AXIS) == pytest.approx(30.0)
        assert angle_between(up, down) == pytest.approx(60.0)

    def test_roll_keeps_heading(self) -> None:
        """Rolling spins the frame around forward without moving it."""
        seg = interpret("/\\/F").segments[0]
        assert np.allclose(seg.direction, Z_AXIS)

    def test_roll_changes_yaw_plane(self) -> None:
        """After a 90 degree roll, yaw turns in a perpendicular plane."""
        config = TurtleConfig(roll_angle=90.0)
        plain = interpret("+F", config).segments[0].direction
        rolled = interpret("/+F", config).segments[0].direction
        assert np.dot(plain[:2], rolled[:2]) == pytest.approx(0.0, abs=1e-9)

    def test_turn_around(self) -> None:
        """| reverses the heading."""
        seg = interpret("|F").segments[0]
        assert np.allclose(seg.end, [0, 0, -10])

    def test_pitch_flip(self) -> None:
        """With flip probability 1, ^ behaves like &."""
        config = TurtleConfig(randomize_pitch_direction=True, pitch_flip_probability=1.0)
        flipped = interpret("^F", config).segments[0].direction
        down = interpret("&F").segments[0].direction
        assert np.allclose(flipped, down)

    def test_angle_variation_bounds(self) -> None:
        """Jittered yaw stays within angle + [min, max]."""
        config = TurtleConfig(angle_variation=(-5.0, 5.0), random_seed=11)
        turtle = TurtleInterpreter(config)
        for _ in range(20):
            seg = turtle.interpret("+F").segments[0]
            assert 20.0 - 1e-6 <= angle_between(seg.direction, Z_AXIS) <= 30.0 + 1e-6

    def test_frame_stays_orthonormal(self) -> None:
        """Long rotation sequences do not drift the frame."""
        turtle = TurtleInterpreter(TurtleConfig(default_angle=17.0, pitch_angle=23.0))
        turtle.interpret("+&/^\\-F" * 200)
        state = turtle.state
        frame = np.stack([state.forward, state.left, state.up])
        assert np.allclose(frame @ frame.T, np.eye(3), atol=1e-9)
        assert np.allclose(np.cross(state.forward, state.left), state.up)

    def test_invalid_variation_range(self) -> None:
        """Variation ranges must be ordered."""
        with pytest.raises(InvalidConfiguration):
            TurtleConfig(angle_variation=(5.0, -5.0))


class TestBranching:
    """Tests for [ and ] and branch bookkeeping."""

    def test_push_pop_restores_position(self) -> None:
        """After ], drawing resumes from the fork point."""
        result = interpret("F[+F]F")
        segs = result.segments
        assert len(segs) == 3
        assert np.allclose(segs[2].start, segs[0].end)
        assert np.allclose(segs[2].direction, Z_AXIS)

    def test_parent_links_follow_brackets(self) -> None:
        """Branch and continuation both hang off the fork segment."""
        result = interpret("F[+F[-F]]F")
        assert [s.parent_index for s in result.segments] == [-1, 0, 1, 0]

    def test_depth_and_width_falloff(self) -> None:
        """Each push increases depth and scales the width."""
        result = interpret("F[F[F]]")
        segs = result.segments
        assert [s.depth for s in segs] == [0, 1, 2]
        assert segs[1].start_radius == pytest.approx(0.95 * 0.7)
        assert segs[2].start_radius == pytest.approx(0.95 * 0.7 * 0.95 * 0.7)
        assert result.max_depth == 2

    def test_unbalanced_pop(self) -> None:
        """A pop on an empty stack is counted and ignored."""
        result = interpret("F]F")
        assert result.unbalanced_pops == 1
        assert len(result.segments) == 2

    def test_branch_skipping(self) -> None:
        """branch_probability 0 drops every bracketed block, nested ones included."""
        config = TurtleConfig(branch_probability=0.0)
        result = interpret("F[F[FL]F]FL", config)
        assert len(result.segments) == 2
        assert len(result.leaves) == 1
        assert result.skipped_branches == 1
        assert result.max_depth == 0
        assert result.segments[1].parent_index == 0


class TestLeaves:
    """Tests for L."""

    def test_leaf_placement(self) -> None:
        """A leaf sits at the turtle position facing forward."""
        result = interpret("FL")
        assert len(result.leaves) == 1
        leaf = result.leaves[0]
        assert np.allclose(leaf.position, [0, 0, 10])
        assert np.allclose(leaf.normal, Z_AXIS)
        assert leaf.size == (10.0, 15.0)
        assert -30.0 <= leaf.rotation <= 30.0

    def test_leaf_count_and_depth(self) -> None:
        """Leaves record the branch depth they were placed at."""
        result = interpret("F[L][[L]]L")
        assert [leaf.depth for leaf in result.leaves] == [1, 2, 0]

    def test_no_rotation_jitter(self) -> None:
        """Zero jitter gives unrotated leaves."""
        result = interpret("L", TurtleConfig(leaf_rotation_jitter=0.0))
        assert result.leaves[0].rotation == 0.0


class TestTropism:
    """Tests for bending toward the tropism direction."""

    def test_horizontal_branch_droops(self) -> None:
        """A horizontal heading drops by strength * 5 degrees per step."""
        config = TurtleConfig(initial_forward=(1.0, 0.0, 0.0), tropism_strength=1.0)
        segs = interpret("FF", config).segments
        assert np.allclose(segs[0].direction, [1, 0, 0])
        assert segs[1].direction[2] == pytest.approx(-math.sin(math.radians(5.0)))
        assert segs[1].direction[1] == pytest.approx(0.0, abs=1e-9)

    def test_vertical_heading_unaffected(self) -> None:
        """Straight up has no horizontal component to bend."""
        config = TurtleConfig(tropism_strength=2.0)
        segs = interpret("FFF", config).segments
        assert np.allclose(segs[-1].direction, Z_AXIS)

    def test_elevation_floor(self) -> None:
        """Bending stops at -80 degrees elevation."""
        config = TurtleConfig(initial_forward=(1.0, 0.0, 0.0), tropism_strength=4.0)
        segs = interpret("F" * 40, config).segments
        floor = -math.sin(math.radians(80.0))
        assert segs[-1].direction[2] == pytest.approx(floor, abs=1e-6)

    def test_custom_direction(self) -> None:
        """Tropism toward +X bends a heading along +Y toward +X."""
        config = TurtleConfig(
            initial_forward=(0.0, 1.0, 0.0),
            tropism_direction=(1.0, 0.0, 0.0),
            tropism_strength=1.0,
        )
        segs = interpret("FF", config).segments
        assert segs[1].direction[0] > 0.0


class TestDeterminism:
    """Tests for seeded randomness."""

    def test_same_seed_same_skeleton(self) -> None:
        """Identical config and seed give identical segments and leaves."""
        config = TurtleConfig.natural(seed=21)
        word = "F[+FL]F[-F[&FL]]F" * 5
        a = interpret(word, config)
        b = interpret(word, config)
        assert len(a.segments) == len(b.segments)
        for sa, sb in zip(a.segments, b.segments):
            assert np.allclose(sa.end, sb.end)
        assert [leaf.rotation for leaf in a.leaves] == [leaf.rotation for leaf in b.leaves]

    def test_initial_random_roll(self) -> None:
        """Initial roll rotates the frame but not the heading."""
        config = TurtleConfig(initial_random_roll=360.0, random_seed=4)
        turtle = TurtleInterpreter(config)
        turtle.interpret("")
        assert np.allclose(turtle.state.forward, Z_AXIS)

"""
Configuration for string generation, turtle interpretation and meshing.

All configs are frozen dataclasses passed by value into each stage.
Vectors are stored as plain (x, y, z) tuples and converted to numpy
arrays at the point of use.

Units:
    Angles are degrees. Lengths and widths are scene units; the default
    step of 10 with 100 units per UV tile matches centimetre-scale scenes.
"""

from dataclasses import dataclass

from lsys.errors import InvalidConfiguration

Vector3 = tuple[float, float, float]

# Strings longer than this are abbreviated in detailed log output
LOG_TRUNCATE_THRESHOLD = 200
LOG_HEAD = 100
LOG_TAIL = 97


def abbreviate(text: str) -> str:
    """Shorten long words for logging: head + '...' + tail."""
    if len(text) <= LOG_TRUNCATE_THRESHOLD:
        return text
    return f"{text[:LOG_HEAD]}...{text[-LOG_TAIL:]}"


# =============================================================================
# GENERATION
# =============================================================================

@dataclass(frozen=True)
class GenerationConfig:
    """
    Limits and options for the rewriting engine.

    A random_seed of 0 draws fresh OS entropy on every run; any other
    value makes stochastic rule selection reproducible.
    """

    max_iterations: int = 10
    max_string_length: int = 100_000
    random_seed: int = 0
    store_history: bool = True
    detailed_logging: bool = False

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise InvalidConfiguration(
                f"max_iterations must be at least 1, got {self.max_iterations}"
            )
        if self.max_string_length < 1:
            raise InvalidConfiguration(
                f"max_string_length must be at least 1, got {self.max_string_length}"
            )

    @classmethod
    def preview(cls) -> "GenerationConfig":
        """Small caps for interactive iteration on a grammar."""
        return cls(max_iterations=5, max_string_length=10_000, store_history=False)

    @classmethod
    def debug(cls, seed: int = 1) -> "GenerationConfig":
        """Reproducible, with per-iteration logging."""
        return cls(random_seed=seed, detailed_logging=True)


# =============================================================================
# TURTLE
# =============================================================================

@dataclass(frozen=True)
class TurtleConfig:
    """Parameters for turning a symbol string into branch segments and leaves."""

    default_angle: float = 25.0  # yaw step for + and -
    pitch_angle: float = 25.0  # pitch step for ^ and &
    roll_angle: float = 25.0  # roll step for \ and /
    step_length: float = 10.0
    step_length_variation: float = 0.0  # fraction, step *= 1 + U(-v, v)
    initial_width: float = 1.0
    width_falloff: float = 0.7  # applied on every [
    min_width: float = 0.05
    taper_ratio: float = 0.95  # applied on every F
    tropism_strength: float = 0.0
    tropism_direction: Vector3 = (0.0, 0.0, -1.0)
    random_seed: int = 0
    initial_position: Vector3 = (0.0, 0.0, 0.0)
    initial_forward: Vector3 = (0.0, 0.0, 1.0)
    initial_random_roll: float = 0.0  # max degrees of roll before the first symbol
    angle_variation: tuple[float, float] = (0.0, 0.0)  # added to yaw and roll
    pitch_variation: tuple[float, float] = (0.0, 0.0)
    randomize_pitch_direction: bool = False
    pitch_flip_probability: float = 0.5
    branch_probability: float = 1.0  # chance a [ ... ] block is kept
    leaf_size: tuple[float, float] = (10.0, 15.0)
    leaf_rotation_jitter: float = 30.0

    def __post_init__(self) -> None:
        if self.step_length <= 0:
            raise InvalidConfiguration("step_length must be positive")
        if self.min_width < 0:
            raise InvalidConfiguration("min_width must be nonnegative")
        if not 0.0 <= self.branch_probability <= 1.0:
            raise InvalidConfiguration("branch_probability must be in [0, 1]")
        if not 0.0 <= self.pitch_flip_probability <= 1.0:
            raise InvalidConfiguration("pitch_flip_probability must be in [0, 1]")
        if self.angle_variation[0] > self.angle_variation[1]:
            raise InvalidConfiguration("angle_variation must be (min, max)")
        if self.pitch_variation[0] > self.pitch_variation[1]:
            raise InvalidConfiguration("pitch_variation must be (min, max)")

    @classmethod
    def natural(cls, seed: int = 0) -> "TurtleConfig":
        """Jittered angles and lengths with mild gravitropism."""
        return cls(
            default_angle=22.5,
            pitch_angle=22.5,
            roll_angle=137.5,
            step_length_variation=0.15,
            initial_width=2.0,
            width_falloff=0.75,
            tropism_strength=0.3,
            random_seed=seed,
            initial_random_roll=360.0,
            angle_variation=(-5.0, 5.0),
            pitch_variation=(-5.0, 5.0),
            randomize_pitch_direction=True,
        )

    @classmethod
    def planar(cls, angle: float = 25.7) -> "TurtleConfig":
        """Deterministic 2D-style interpretation, every turn about the same axis."""
        return cls(default_angle=angle, pitch_angle=angle, roll_angle=angle)


# =============================================================================
# GEOMETRY
# =============================================================================

@dataclass(frozen=True)
class LODLevel:
    """
    One level of detail.

    radial_segments is clamped to [3, 32] when meshing. screen_size is the
    projected size threshold above which this level is used.
    """

    radial_segments: int = 8
    screen_size: float = 1.0
    include_leaves: bool = True


def default_lods() -> list[LODLevel]:
    """High, medium and low detail; the lowest drops leaves."""
    return [
        LODLevel(radial_segments=12, screen_size=1.0, include_leaves=True),
        LODLevel(radial_segments=8, screen_size=0.5, include_leaves=True),
        LODLevel(radial_segments=4, screen_size=0.25, include_leaves=False),
    ]


@dataclass(frozen=True)
class GeometryConfig:
    """Surface attributes for generated meshes."""

    bark_uv_tiling: float = 1.0
    uv_unit_length: float = 100.0  # scene units per V repeat at tiling 1
    default_leaf_size: tuple[float, float] = (10.0, 15.0)
    bark_color: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)
    leaf_color: tuple[float, float, float, float] = (0.2, 0.6, 0.2, 1.0)

    def __post_init__(self) -> None:
        if self.uv_unit_length <= 0:
            raise InvalidConfiguration("uv_unit_length must be positive")

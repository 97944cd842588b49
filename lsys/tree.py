"""
End-to-end tree building: grammar -> word -> skeleton -> LOD meshes.

TreeDefinition bundles everything needed to grow one tree, with a few
classic grammars as presets. build_tree() runs the three stages and
returns a TreeModel that keeps every intermediate product and tracks the
active level of detail.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from lsys.config import (
    GenerationConfig,
    GeometryConfig,
    LODLevel,
    TurtleConfig,
    default_lods,
)
from lsys.errors import InvalidConfiguration
from lsys.generator import GenerationStatistics, LSystemGenerator
from lsys.geometry import MeshBuffer, TreeGeometry
from lsys.rules import ProductionRule, parse_rules
from lsys.turtle import Interpretation, TurtleInterpreter

logger = logging.getLogger(__name__)

PIPELINE_STEPS = 4

StepCallback = Callable[[int, int], None]


@dataclass
class TreeDefinition:
    """A grammar plus the settings for each pipeline stage."""

    axiom: str
    rules: list[ProductionRule]
    iterations: int = 4
    random_seed: int = 0
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    turtle: TurtleConfig = field(default_factory=TurtleConfig)
    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    lod_levels: list[LODLevel] = field(default_factory=default_lods)

    @classmethod
    def from_strings(cls, axiom: str, rules: list[str], **kwargs) -> "TreeDefinition":
        """Build from rule notation, e.g. ["F -> F[+F]F[-F]F"]."""
        return cls(axiom=axiom, rules=parse_rules(rules), **kwargs)

    @classmethod
    def algae(cls) -> "TreeDefinition":
        """Lindenmayer's original algae system. Produces no geometry."""
        return cls.from_strings("A", ["A -> AB", "B -> A"], iterations=5)

    @classmethod
    def fractal_plant(cls) -> "TreeDefinition":
        """Bracketed plant with leaves at the tips of side branches."""
        return cls.from_strings(
            "X",
            ["X -> F[+X][-X]FX", "X -> F[&X][^X]FL"],
            iterations=4,
            random_seed=7,
            turtle=TurtleConfig(default_angle=25.0, pitch_angle=25.0, roll_angle=90.0),
        )

    @classmethod
    def bush(cls) -> "TreeDefinition":
        """Dense three-dimensional bush with gravitropism."""
        return cls.from_strings(
            "A",
            [
                "A -> [&FL!A]/////[&FL!A]///////[&FL!A]",
                "F -> S/////F",
                "S -> FL",
            ],
            iterations=5,
            turtle=TurtleConfig(
                default_angle=22.5,
                pitch_angle=22.5,
                roll_angle=22.5,
                step_length=5.0,
                initial_width=1.5,
                tropism_strength=0.2,
            ),
        )

    @classmethod
    def stochastic_tree(cls, seed: int = 42) -> "TreeDefinition":
        """Three competing branchings for F, jittered natural turtle."""
        return cls.from_strings(
            "F",
            [
                "F -> F[+F]F[-F]F (0.33)",
                "F -> F[+F]F (0.33)",
                "F -> F[-F]FL (0.34)",
            ],
            iterations=4,
            random_seed=seed,
            turtle=TurtleConfig.natural(seed),
        )


@dataclass
class TreeModel:
    """Output of build_tree(). LOD 0 is the most detailed."""

    definition: TreeDefinition
    string: str
    statistics: GenerationStatistics
    interpretation: Interpretation
    lods: list[MeshBuffer]
    lod_levels: list[LODLevel]
    current_lod: int = 0

    @property
    def lod_count(self) -> int:
        return len(self.lods)

    def set_lod(self, index: int) -> int:
        """Select a level, clamped to the available range. Returns the level used."""
        self.current_lod = min(max(index, 0), max(self.lod_count - 1, 0))
        return self.current_lod

    @property
    def mesh(self) -> Optional[MeshBuffer]:
        if not self.lods:
            return None
        return self.lods[self.current_lod]

    @property
    def vertex_count(self) -> int:
        mesh = self.mesh
        return mesh.vertex_count if mesh is not None else 0

    @property
    def triangle_count(self) -> int:
        mesh = self.mesh
        return mesh.triangle_count if mesh is not None else 0

    def lod_for_screen_size(self, screen_size: float) -> int:
        """Most detailed level whose threshold is at or below screen_size."""
        for i, level in enumerate(self.lod_levels):
            if screen_size >= level.screen_size:
                return i
        return max(self.lod_count - 1, 0)


def build_tree(
    definition: TreeDefinition, on_progress: Optional[StepCallback] = None
) -> TreeModel:
    """
    Run generation, interpretation and meshing for one tree.

    on_progress receives (step, total) after each stage. The definition's
    random_seed overrides the seeds of the generation and turtle configs.
    Raises InvalidConfiguration if the grammar cannot be generated.
    """

    def report(step: int) -> None:
        if on_progress is not None:
            on_progress(step, PIPELINE_STEPS)

    generation = replace(definition.generation, random_seed=definition.random_seed)
    generator = LSystemGenerator(generation)
    generator.initialize(definition.axiom)
    for rule in definition.rules:
        generator.add_rule(rule)

    result = generator.generate(definition.iterations)
    if not result.success:
        logger.error("L-system generation failed: %s", result.error_message)
        raise InvalidConfiguration(result.error_message)
    report(1)

    turtle_config = replace(definition.turtle, random_seed=definition.random_seed)
    interpretation = TurtleInterpreter(turtle_config).interpret(result.string)
    report(2)

    lod_levels = list(definition.lod_levels) or default_lods()
    lods = TreeGeometry(definition.geometry).generate_mesh_lods(
        interpretation.segments, interpretation.leaves, lod_levels
    )
    report(3)

    model = TreeModel(
        definition=definition,
        string=result.string,
        statistics=result.statistics,
        interpretation=interpretation,
        lods=lods,
        lod_levels=lod_levels,
    )
    report(4)
    logger.info(
        "Built tree: %d symbols, %d segments, %d leaves, %d LODs",
        len(model.string),
        len(interpretation.segments),
        len(interpretation.leaves),
        model.lod_count,
    )
    return model

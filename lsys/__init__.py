"""
L-System Tree Generation

Grows procedural trees from a compact grammar: a context-sensitive,
stochastic rewriting engine expands an axiom, a 3D turtle turns the
result into a branching skeleton, and a mesh synthesizer sweeps that
skeleton into level-of-detail vertex buffers.

Modules:
    errors: Exception hierarchy
    vectors: 3D vector math, rotations, bases, ring sampling
    rules: Production rules, rule notation parser, rule set utilities
    config: Generation, turtle, geometry and LOD configuration
    generator: Rewriting engine with sync and background generation
    turtle: Turtle interpreter producing segments and leaves
    geometry: Mesh buffers with shared parent/child rings
    tree: End-to-end pipeline and preset grammars
"""

from lsys.config import (
    GenerationConfig,
    GeometryConfig,
    LODLevel,
    TurtleConfig,
    default_lods,
)
from lsys.errors import (
    InvalidConfiguration,
    InvalidRuleError,
    LSystemError,
    RuleParseError,
)
from lsys.generator import (
    GenerationResult,
    GenerationState,
    GenerationStatistics,
    LSystemGenerator,
    TerminationReason,
)
from lsys.geometry import (
    MeshBuffer,
    MeshSection,
    TreeGeometry,
    generate_mesh,
    generate_mesh_lods,
)
from lsys.rules import (
    ProductionRule,
    normalize_probabilities,
    parse_rule,
    parse_rules,
    validate_rules,
)
from lsys.tree import TreeDefinition, TreeModel, build_tree
from lsys.turtle import (
    BranchSegment,
    Interpretation,
    LeafPlacement,
    TurtleInterpreter,
    TurtleState,
    interpret,
)

__all__ = [
    # Errors
    "InvalidConfiguration",
    "InvalidRuleError",
    "LSystemError",
    "RuleParseError",
    # Config
    "GenerationConfig",
    "GeometryConfig",
    "LODLevel",
    "TurtleConfig",
    "default_lods",
    # Rules
    "ProductionRule",
    "normalize_probabilities",
    "parse_rule",
    "parse_rules",
    "validate_rules",
    # Generation
    "GenerationResult",
    "GenerationState",
    "GenerationStatistics",
    "LSystemGenerator",
    "TerminationReason",
    # Interpretation
    "BranchSegment",
    "Interpretation",
    "LeafPlacement",
    "TurtleInterpreter",
    "TurtleState",
    "interpret",
    # Geometry
    "MeshBuffer",
    "MeshSection",
    "TreeGeometry",
    "generate_mesh",
    "generate_mesh_lods",
    # Pipeline
    "TreeDefinition",
    "TreeModel",
    "build_tree",
]

"""
Tests for the end-to-end tree pipeline and preset grammars.
"""

import pytest

from lsys.config import LODLevel
from lsys.errors import InvalidConfiguration
from lsys.tree import TreeDefinition, build_tree


class TestPresets:
    """Tests for the bundled grammars."""

    def test_algae_has_no_geometry(self) -> None:
        """The algae alphabet has no drawing symbols."""
        model = build_tree(TreeDefinition.algae())
        assert model.string == "ABAABABAABAAB"
        assert model.interpretation.segments == []
        assert model.vertex_count == 0

    @pytest.mark.parametrize(
        "factory",
        [TreeDefinition.fractal_plant, TreeDefinition.bush, TreeDefinition.stochastic_tree],
    )
    def test_presets_build(self, factory) -> None:
        """Every drawing preset produces segments and triangles."""
        model = build_tree(factory())
        assert len(model.interpretation.segments) > 0
        assert model.triangle_count > 0
        assert model.lod_count == 3

    def test_from_strings(self) -> None:
        """Definitions can be written in rule notation."""
        definition = TreeDefinition.from_strings("F", ["F -> F[+F]F"], iterations=2)
        assert len(definition.rules) == 1
        model = build_tree(definition)
        assert model.string == "F[+F]F[+F[+F]F]F[+F]F"
        assert len(model.interpretation.segments) == 9


class TestPipeline:
    """Tests for build_tree() and TreeModel."""

    def test_progress_steps(self) -> None:
        """Progress reports four steps in order."""
        steps = []
        build_tree(TreeDefinition.fractal_plant(), on_progress=lambda s, t: steps.append((s, t)))
        assert steps == [(1, 4), (2, 4), (3, 4), (4, 4)]

    def test_seed_reproducible(self) -> None:
        """Same definition and seed give identical meshes."""
        a = build_tree(TreeDefinition.stochastic_tree(seed=5))
        b = build_tree(TreeDefinition.stochastic_tree(seed=5))
        assert a.string == b.string
        assert a.vertex_count == b.vertex_count
        assert (a.mesh.vertices == b.mesh.vertices).all()

    def test_generation_failure_raises(self) -> None:
        """A definition without rules cannot be built."""
        with pytest.raises(InvalidConfiguration, match="No rules defined"):
            build_tree(TreeDefinition(axiom="F", rules=[]))

    def test_set_lod_clamped(self) -> None:
        """LOD selection is clamped to the available levels."""
        model = build_tree(TreeDefinition.fractal_plant())
        high = model.vertex_count
        assert model.set_lod(1) == 1
        assert model.vertex_count < high
        assert model.set_lod(10) == 2
        assert model.set_lod(-3) == 0
        assert model.vertex_count == high

    def test_empty_lod_levels_use_defaults(self) -> None:
        """An empty LOD list is replaced by the default chain."""
        definition = TreeDefinition.from_strings("F", ["F -> FF"], iterations=2, lod_levels=[])
        model = build_tree(definition)
        assert model.lod_count == 3

    def test_custom_lods(self) -> None:
        """Custom levels are honoured in order."""
        definition = TreeDefinition.from_strings(
            "F", ["F -> FF"], iterations=1, lod_levels=[LODLevel(5), LODLevel(3)]
        )
        model = build_tree(definition)
        assert [m.radial_segments for m in model.lods] == [5, 3]
        # two chained segments: three rings
        assert model.vertex_count == 15

    def test_lod_for_screen_size(self) -> None:
        """Larger on-screen size picks more detail."""
        model = build_tree(TreeDefinition.fractal_plant())
        assert model.lod_for_screen_size(2.0) == 0
        assert model.lod_for_screen_size(0.6) == 1
        assert model.lod_for_screen_size(0.3) == 2
        assert model.lod_for_screen_size(0.01) == 2

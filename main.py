"""
L-System Trees - Procedural Tree Pipeline Demo

Demonstrates the three stages working together:
1. generator - Rewrite an axiom with stochastic, context-sensitive rules
2. turtle - Interpret the word as a 3D branching skeleton
3. geometry - Sweep the skeleton into LOD mesh buffers

Also shows background generation with progress callbacks and
cancellation.
"""

import logging
import threading

from lsys import GenerationConfig, LSystemGenerator, TreeDefinition, build_tree


def print_generation(definition: TreeDefinition) -> None:
    """Print the first few words of a grammar's derivation."""
    generator = LSystemGenerator(GenerationConfig(random_seed=definition.random_seed or 1))
    generator.initialize(definition.axiom)
    for rule in definition.rules:
        generator.add_rule(rule)

    result = generator.generate(definition.iterations)
    for i, word in enumerate(result.history):
        shown = word if len(word) <= 60 else word[:57] + "..."
        print(f"  n={i}: {shown}")
    stats = result.statistics
    print(f"  Rules applied: {stats.rules_applied}, stop: {stats.termination_reason.value}")


def print_tree(name: str, definition: TreeDefinition) -> None:
    """Build a tree and summarise every LOD."""

    def on_progress(step: int, total: int) -> None:
        print(f"  [{step}/{total}]", end="\n" if step == total else " ")

    model = build_tree(definition, on_progress=on_progress)
    interp = model.interpretation
    print(f"  {name}: {len(model.string)} symbols")
    print(f"  Segments: {len(interp.segments)}, leaves: {len(interp.leaves)}, "
          f"max depth: {interp.max_depth}")
    for i, mesh in enumerate(model.lods):
        level = model.lod_levels[i]
        print(f"  LOD {i} ({level.radial_segments} radial, "
              f"leaves={'on' if level.include_leaves else 'off'}): "
              f"{mesh.vertex_count} vertices, {mesh.triangle_count} triangles")
    lo, hi = model.mesh.bounds()
    print(f"  Bounds: min={lo.round(1)}, max={hi.round(1)}")


def run_async_demo() -> None:
    """Start a long generation in the background and cancel it part way."""
    generator = LSystemGenerator(GenerationConfig(max_iterations=30, max_string_length=2_000_000))
    generator.initialize("F")
    generator.add_rule_string("F -> F[+F]F[-F]F")

    done = threading.Event()
    outcome = {}

    def on_iteration(iteration: int, word: str) -> None:
        print(f"  iteration {iteration}: {len(word)} symbols")
        if iteration == 3:
            generator.cancel()

    def on_complete(result) -> None:
        outcome["result"] = result
        done.set()

    generator.generate_async(30, on_complete=on_complete, on_iteration=on_iteration)
    done.wait(timeout=30)
    result = outcome.get("result")
    if result is not None:
        print(f"  success={result.success}, message='{result.error_message}'")


def main() -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    print("\n" + "=" * 60)
    print("  L-SYSTEM TREES: Procedural Tree Pipeline")
    print("=" * 60)

    print("\n" + "=" * 60)
    print("STAGE 1: String Rewriting (algae)")
    print("=" * 60)
    print_generation(TreeDefinition.algae())

    print("\n" + "=" * 60)
    print("STAGES 1-3: Full Pipeline")
    print("=" * 60)
    print_tree("Fractal plant", TreeDefinition.fractal_plant())
    print()
    print_tree("Stochastic tree", TreeDefinition.stochastic_tree(seed=42))

    print("\n" + "=" * 60)
    print("BACKGROUND GENERATION WITH CANCELLATION")
    print("=" * 60)
    run_async_demo()

    print("\n" + "=" * 60)
    print("  Demo complete!")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()

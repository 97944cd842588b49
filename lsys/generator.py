"""
Context-sensitive, stochastic L-system string generation.

The generator owns an axiom and a rule set and rewrites the axiom in
parallel for a number of iterations. At every position the most specific
matching rules win; ties between equally specific rules are broken by a
weighted draw from a seeded numpy Generator, so identical inputs and seed
always produce the same word.

Generation can run synchronously on the caller's thread or on a
background worker thread with cooperative cancellation.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

import numpy as np

from lsys.config import GenerationConfig, abbreviate
from lsys.errors import InvalidConfiguration, InvalidRuleError
from lsys.rules import ProductionRule, growth_factor, parse_rule

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
IterationCallback = Callable[[int, str], None]
CompleteCallback = Callable[["GenerationResult"], None]
Dispatcher = Callable[[Callable[[], None]], None]

CANCELLED_MESSAGE = "Generation was cancelled"


class TerminationReason(Enum):
    """Why a generation run stopped."""

    COMPLETED = "completed"
    MAX_ITERATIONS = "max_iterations"
    MAX_STRING_LENGTH = "max_string_length"
    FIXED_POINT = "fixed_point"
    CANCELLED = "cancelled"


@dataclass
class GenerationStatistics:
    """Counters gathered over one generation run."""

    total_iterations: int = 0
    final_length: int = 0
    generation_time_ms: float = 0.0
    rules_applied: int = 0
    context_rules_applied: int = 0
    symbol_counts: dict[str, int] = field(default_factory=dict)
    termination_reason: TerminationReason = TerminationReason.COMPLETED


@dataclass
class GenerationResult:
    """Outcome of a generation run. On failure only error_message is meaningful."""

    success: bool
    string: str = ""
    history: list[str] = field(default_factory=list)
    statistics: GenerationStatistics = field(default_factory=GenerationStatistics)
    error_message: str = ""

    @classmethod
    def succeeded(
        cls, string: str, history: list[str], statistics: GenerationStatistics
    ) -> "GenerationResult":
        return cls(success=True, string=string, history=history, statistics=statistics)

    @classmethod
    def failed(cls, message: str) -> "GenerationResult":
        return cls(success=False, error_message=message)

    @classmethod
    def cancelled(
        cls, string: str, statistics: GenerationStatistics
    ) -> "GenerationResult":
        return cls(
            success=False,
            string=string,
            statistics=statistics,
            error_message=CANCELLED_MESSAGE,
        )

    @property
    def was_cancelled(self) -> bool:
        return (
            not self.success
            and self.statistics.termination_reason is TerminationReason.CANCELLED
        )


@dataclass(frozen=True)
class GenerationState:
    """Point-in-time view of a (possibly running) generation."""

    current_string: str
    current_iteration: int
    history: tuple[str, ...]
    is_generating: bool
    progress: float


class LSystemGenerator:
    """
    Rewrites an axiom with a set of production rules.

    Rule mutations are cheap: the predecessor lookup table is rebuilt
    lazily the next time it is needed. All mutable state is guarded by a
    single lock so rules and snapshots can be read while a background
    run is in flight.

    Args:
        config: Iteration and length limits, seed, logging options.
        dispatcher: Optional callable used to deliver callbacks, e.g. a
            GUI loop's call_soon. Without one, callbacks of an async run
            are invoked on the worker thread.
    """

    def __init__(
        self,
        config: Optional[GenerationConfig] = None,
        dispatcher: Optional[Dispatcher] = None,
    ):
        self.config = config or GenerationConfig()
        self.dispatcher = dispatcher

        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._worker: Optional[threading.Thread] = None

        self._axiom = ""
        self._rules: list[ProductionRule] = []
        self._lookup: dict[str, list[ProductionRule]] = {}
        self._lookup_dirty = True

        self._current_string = ""
        self._current_iteration = 0
        self._history: list[str] = []
        self._progress = 0.0
        self._is_generating = False
        self._statistics = GenerationStatistics()

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def initialize(self, axiom: str) -> None:
        """Set the axiom and reset iteration state and statistics."""
        with self._lock:
            self._axiom = axiom
            self._current_string = axiom
            self._current_iteration = 0
            self._history = []
            self._progress = 0.0
            self._statistics = GenerationStatistics()
        if self.config.detailed_logging:
            logger.info("Initialized with axiom '%s'", abbreviate(axiom))

    def reset(self) -> None:
        """Forget the axiom, all rules, state and statistics."""
        with self._lock:
            self._axiom = ""
            self._rules = []
            self._lookup = {}
            self._lookup_dirty = True
            self._current_string = ""
            self._current_iteration = 0
            self._history = []
            self._progress = 0.0
            self._statistics = GenerationStatistics()

    def set_random_seed(self, seed: int) -> None:
        """Replace the seed used by subsequent runs (0 = fresh entropy)."""
        self.config = replace(self.config, random_seed=seed)

    @property
    def axiom(self) -> str:
        return self._axiom

    # -------------------------------------------------------------------------
    # Rule management
    # -------------------------------------------------------------------------

    def add_rule(self, rule: ProductionRule) -> None:
        """Install a rule. Raises InvalidRuleError and leaves the set untouched if it is malformed."""
        rule.validate()
        with self._lock:
            self._rules.append(rule)
            self._lookup_dirty = True
        if self.config.detailed_logging:
            logger.info("Added rule %s", rule)

    def add_simple_rule(self, predecessor: str, successor: str) -> None:
        self.add_rule(ProductionRule(predecessor, successor))

    def add_stochastic_rule(
        self, predecessor: str, successor: str, probability: float
    ) -> None:
        self.add_rule(ProductionRule(predecessor, successor, probability))

    def add_context_rule(
        self,
        left_context: str,
        predecessor: str,
        right_context: str,
        successor: str,
        probability: float = 1.0,
    ) -> None:
        self.add_rule(
            ProductionRule(
                predecessor,
                successor,
                probability,
                left_context=left_context,
                right_context=right_context,
            )
        )

    def add_rule_string(self, text: str) -> ProductionRule:
        """Parse authoring notation (e.g. "A < B > C -> X (0.5)") and install it."""
        rule = parse_rule(text)
        self.add_rule(rule)
        return rule

    def remove_rule(self, predecessor: str) -> bool:
        """Remove every rule for predecessor. Returns whether any were removed."""
        with self._lock:
            kept = [r for r in self._rules if r.predecessor != predecessor]
            removed = len(kept) != len(self._rules)
            self._rules = kept
            self._lookup_dirty = True
        return removed

    def remove_specific_rule(self, rule: ProductionRule) -> bool:
        """Remove the first rule equal to `rule`."""
        with self._lock:
            try:
                self._rules.remove(rule)
            except ValueError:
                return False
            self._lookup_dirty = True
        return True

    def clear_rules(self) -> None:
        with self._lock:
            self._rules = []
            self._lookup = {}
            self._lookup_dirty = True

    @property
    def rules(self) -> list[ProductionRule]:
        with self._lock:
            return list(self._rules)

    @property
    def rule_count(self) -> int:
        with self._lock:
            return len(self._rules)

    def has_rule_for_symbol(self, symbol: str) -> bool:
        with self._lock:
            return any(r.predecessor == symbol for r in self._rules)

    def _rule_lookup(self) -> dict[str, list[ProductionRule]]:
        """Predecessor -> rules, most specific first. Caller holds the lock."""
        if self._lookup_dirty:
            lookup: dict[str, list[ProductionRule]] = {}
            for rule in self._rules:
                lookup.setdefault(rule.predecessor, []).append(rule)
            for bucket in lookup.values():
                bucket.sort(key=lambda r: r.context_specificity, reverse=True)
            self._lookup = lookup
            self._lookup_dirty = False
        return self._lookup

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self) -> None:
        """Raise InvalidConfiguration if generation cannot start."""
        with self._lock:
            axiom = self._axiom
            rules = list(self._rules)
        if not axiom:
            raise InvalidConfiguration("Axiom cannot be empty")
        if not rules:
            raise InvalidConfiguration("No rules defined")
        for i, rule in enumerate(rules):
            try:
                rule.validate()
            except InvalidRuleError as exc:
                raise InvalidConfiguration(f"Invalid rule at index {i}: {exc}") from exc

    @property
    def is_valid(self) -> bool:
        try:
            self.validate()
        except InvalidConfiguration:
            return False
        return True

    # -------------------------------------------------------------------------
    # Rewriting
    # -------------------------------------------------------------------------

    def _make_rng(self) -> np.random.Generator:
        seed = self.config.random_seed
        return np.random.default_rng(seed if seed != 0 else None)

    @staticmethod
    def _select_rule(
        candidates: list[ProductionRule],
        left: str,
        right: str,
        rng: np.random.Generator,
    ) -> Optional[ProductionRule]:
        """
        Pick the rule to apply among candidates sorted by specificity.

        Only the most specific matching rules compete. A single winner is
        applied directly; several are drawn by weight, or uniformly if
        their weights sum to zero.
        """
        matches: list[ProductionRule] = []
        best = -1
        for rule in candidates:
            if rule.context_specificity < best:
                break
            if rule.matches_context(left, right):
                best = rule.context_specificity
                matches.append(rule)
        if not matches:
            return None
        if len(matches) == 1:
            return matches[0]

        total = sum(r.probability for r in matches)
        if total <= 0.0:
            return matches[int(rng.integers(len(matches)))]
        draw = rng.random() * total
        cumulative = 0.0
        for rule in matches:
            cumulative += rule.probability
            if cumulative > draw:
                return rule
        return matches[-1]

    def _apply_rules(
        self,
        word: str,
        lookup: dict[str, list[ProductionRule]],
        rng: np.random.Generator,
    ) -> tuple[str, int, int, bool]:
        """
        One parallel rewrite of `word`.

        Returns (new_word, rules_applied, context_rules_applied, truncated).
        Output is cut at max_string_length and scanning stops there.
        """
        max_len = self.config.max_string_length
        parts: list[str] = []
        length = 0
        applied = 0
        context_applied = 0
        truncated = False
        n = len(word)

        for i, symbol in enumerate(word):
            rule = None
            candidates = lookup.get(symbol)
            if candidates:
                left = word[i - 1] if i > 0 else ""
                right = word[i + 1] if i < n - 1 else ""
                rule = self._select_rule(candidates, left, right, rng)

            if rule is None:
                piece = symbol
            else:
                piece = rule.successor
                applied += 1
                if rule.is_context_sensitive:
                    context_applied += 1

            parts.append(piece)
            length += len(piece)
            if length > max_len:
                truncated = True
                break

        result = "".join(parts)
        if truncated:
            result = result[:max_len]
        return result, applied, context_applied, truncated

    def perform_single_iteration(
        self, word: str, rng: Optional[np.random.Generator] = None
    ) -> str:
        """Rewrite an arbitrary word once with the current rules."""
        with self._lock:
            lookup = self._rule_lookup()
        result, _, _, _ = self._apply_rules(word, lookup, rng or self._make_rng())
        return result

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def _notify(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        if self.dispatcher is not None:
            self.dispatcher(functools.partial(callback, *args))
        else:
            callback(*args)

    def _run(
        self,
        iterations: int,
        rng: Optional[np.random.Generator],
        on_progress: Optional[ProgressCallback],
        on_iteration: Optional[IterationCallback],
    ) -> GenerationResult:
        """Generation loop shared by the sync and async paths."""
        try:
            self.validate()
        except InvalidConfiguration as exc:
            logger.error("Generation failed: %s", exc)
            return GenerationResult.failed(str(exc))

        config = self.config
        requested = iterations
        iterations = min(max(iterations, 1), config.max_iterations)
        if iterations != requested:
            logger.warning(
                "Requested %d iterations, clamped to %d", requested, iterations
            )
        rng = rng or self._make_rng()

        with self._lock:
            lookup = self._rule_lookup()
            current = self._axiom
            self._current_string = current
            self._current_iteration = 0
            self._history = [current] if config.store_history else []
            self._progress = 0.0

        history = [current] if config.store_history else []
        stats = GenerationStatistics()
        reason = (
            TerminationReason.COMPLETED
            if requested <= config.max_iterations
            else TerminationReason.MAX_ITERATIONS
        )
        start = time.perf_counter()
        done = 0

        while done < iterations:
            if self._cancel_event.is_set():
                reason = TerminationReason.CANCELLED
                break
            if len(current) >= config.max_string_length:
                reason = TerminationReason.MAX_STRING_LENGTH
                logger.info(
                    "String length %d reached limit %d",
                    len(current),
                    config.max_string_length,
                )
                break

            nxt, applied, context_applied, truncated = self._apply_rules(
                current, lookup, rng
            )
            done += 1
            stats.rules_applied += applied
            stats.context_rules_applied += context_applied
            unchanged = nxt == current
            current = nxt

            if config.store_history:
                history.append(current)
            progress = done / iterations
            with self._lock:
                self._current_string = current
                self._current_iteration = done
                self._progress = progress
                if config.store_history:
                    self._history.append(current)

            if config.detailed_logging:
                logger.info(
                    "Iteration %d: length=%d '%s'", done, len(current), abbreviate(current)
                )
            self._notify(on_progress, progress)
            self._notify(on_iteration, done, current)

            if truncated:
                reason = TerminationReason.MAX_STRING_LENGTH
                logger.warning(
                    "String truncated to %d symbols at iteration %d",
                    config.max_string_length,
                    done,
                )
                break
            if unchanged:
                reason = TerminationReason.FIXED_POINT
                logger.info("String unchanged at iteration %d, stopping", done)
                break

        if reason is TerminationReason.MAX_ITERATIONS:
            logger.info("Reached maximum iterations (%d)", config.max_iterations)

        stats.total_iterations = done
        stats.final_length = len(current)
        stats.generation_time_ms = (time.perf_counter() - start) * 1000.0
        stats.symbol_counts = self.count_symbols(current)
        stats.termination_reason = reason

        with self._lock:
            self._statistics = stats
            if reason is not TerminationReason.CANCELLED:
                self._progress = 1.0

        if reason is TerminationReason.CANCELLED:
            logger.info("Generation cancelled after %d iterations", done)
            return GenerationResult.cancelled(current, stats)

        logger.debug(
            "Generated %d symbols in %d iterations (%.2f ms, %s)",
            stats.final_length,
            done,
            stats.generation_time_ms,
            reason.value,
        )
        return GenerationResult.succeeded(current, history, stats)

    def generate(
        self,
        iterations: int,
        rng: Optional[np.random.Generator] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_iteration: Optional[IterationCallback] = None,
    ) -> GenerationResult:
        """
        Rewrite the axiom `iterations` times on the calling thread.

        Iterations are clamped to [1, max_iterations]. Invalid setup is
        reported as a failed result rather than raised. An explicit rng
        overrides the configured seed.
        """
        with self._lock:
            if self._is_generating:
                return GenerationResult.failed("Generation already in progress")
            self._is_generating = True
        self._cancel_event.clear()
        try:
            return self._run(iterations, rng, on_progress, on_iteration)
        finally:
            with self._lock:
                self._is_generating = False

    def generate_string(self, iterations: int) -> str:
        """Like generate() but returns only the word ('' on failure)."""
        result = self.generate(iterations)
        if not result.success:
            logger.warning("generate_string failed: %s", result.error_message)
            return ""
        return result.string

    def generate_async(
        self,
        iterations: int,
        on_complete: Optional[CompleteCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_iteration: Optional[IterationCallback] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> bool:
        """
        Start generation on a background thread.

        Returns False without starting anything if a run is already in
        flight. on_complete always fires exactly once per started run,
        with a failed, cancelled or successful result.
        """
        with self._lock:
            if self._is_generating:
                logger.warning("Generation already in progress")
                return False
            self._is_generating = True
        self._cancel_event.clear()

        self._worker = threading.Thread(
            target=self._run_worker,
            args=(iterations, rng, on_complete, on_progress, on_iteration),
            name="lsystem-generation",
            daemon=True,
        )
        self._worker.start()
        return True

    def _run_worker(
        self,
        iterations: int,
        rng: Optional[np.random.Generator],
        on_complete: Optional[CompleteCallback],
        on_progress: Optional[ProgressCallback],
        on_iteration: Optional[IterationCallback],
    ) -> None:
        """Worker thread body."""
        try:
            result = self._run(iterations, rng, on_progress, on_iteration)
        except Exception as exc:
            logger.exception("Generation worker crashed")
            result = GenerationResult.failed(f"Generation error: {exc}")
        finally:
            with self._lock:
                self._is_generating = False
        self._notify(on_complete, result)

    def cancel(self) -> None:
        """Request the running generation to stop before its next iteration."""
        self._cancel_event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the background run finishes. Returns False on timeout."""
        worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    @property
    def is_generating(self) -> bool:
        with self._lock:
            return self._is_generating

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> GenerationState:
        with self._lock:
            return GenerationState(
                current_string=self._current_string,
                current_iteration=self._current_iteration,
                history=tuple(self._history),
                is_generating=self._is_generating,
                progress=self._progress,
            )

    @property
    def statistics(self) -> GenerationStatistics:
        with self._lock:
            return self._statistics

    def estimate_string_length(self, iterations: int) -> int:
        """
        Rough word length after `iterations` rewrites.

        axiom_length * max(mean successor length, 1) ** iterations, using
        probabilities as weights. 0 when there is nothing to generate.
        """
        with self._lock:
            axiom = self._axiom
            rules = list(self._rules)
        if not axiom or not rules:
            return 0
        estimate = len(axiom) * max(growth_factor(rules), 1.0) ** iterations
        return int(min(estimate, 2**31 - 1))

    @staticmethod
    def count_symbols(word: str) -> dict[str, int]:
        return dict(Counter(word))

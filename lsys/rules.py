"""
Production rules for the L-system rewriting engine.

A rule rewrites a single predecessor symbol into a successor string,
optionally gated on the symbols immediately to its left and right and
optionally weighted for stochastic selection.

Authoring notation:
    "F -> FF"                 context-free, deterministic
    "F -> F[+F]F (0.33)"      stochastic, probability in parentheses
    "A < B > C -> X"          full context
    "A < B -> X"              left context only
    "B > C -> X"              right context only

The ASCII arrow "->" and the unicode arrow "→" are both accepted.
"""

from __future__ import annotations

import math
import re
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Iterable

from lsys.errors import InvalidRuleError, RuleParseError

ARROWS = ("->", "→")

_PROBABILITY_SUFFIX = re.compile(
    r"\(\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*\)\s*$"
)


@dataclass(frozen=True)
class ProductionRule:
    """
    A single rewrite rule.

    Empty contexts are wildcards. Probability is the relative weight used
    when several equally specific rules compete for the same symbol; the
    weights of competing rules need not sum to one.
    """

    predecessor: str
    successor: str
    probability: float = 1.0
    left_context: str = ""
    right_context: str = ""

    def validate(self) -> None:
        """Raise InvalidRuleError describing the first violated invariant."""
        if len(self.predecessor) != 1:
            raise InvalidRuleError(
                f"Predecessor must be exactly 1 character, got "
                f"'{self.predecessor}' (len={len(self.predecessor)})"
            )
        if not self.successor:
            raise InvalidRuleError("Successor cannot be empty")
        if not 0.0 <= self.probability <= 1.0:
            raise InvalidRuleError(
                f"Probability must be between 0 and 1, got {self.probability:f}"
            )
        if len(self.left_context) > 1:
            raise InvalidRuleError(
                f"Left context must be 0 or 1 character, got '{self.left_context}'"
            )
        if len(self.right_context) > 1:
            raise InvalidRuleError(
                f"Right context must be 0 or 1 character, got '{self.right_context}'"
            )

    @property
    def is_valid(self) -> bool:
        try:
            self.validate()
        except InvalidRuleError:
            return False
        return True

    @property
    def has_left_context(self) -> bool:
        return bool(self.left_context)

    @property
    def has_right_context(self) -> bool:
        return bool(self.right_context)

    @property
    def is_context_sensitive(self) -> bool:
        return self.has_left_context or self.has_right_context

    @property
    def context_specificity(self) -> int:
        """Number of non-empty contexts: 0, 1 or 2."""
        return int(self.has_left_context) + int(self.has_right_context)

    @property
    def is_stochastic(self) -> bool:
        return self.probability < 1.0

    def matches_context(self, left: str, right: str) -> bool:
        """
        Check the neighbours of the symbol being rewritten.

        `left` / `right` are the adjacent symbols, or the empty string at
        the boundaries of the word. A boundary never satisfies a context.
        """
        if self.left_context and self.left_context != left:
            return False
        if self.right_context and self.right_context != right:
            return False
        return True

    @property
    def growth(self) -> int:
        """Symbols added per application."""
        return len(self.successor) - 1

    def describe(self) -> str:
        """Human readable classification, e.g. 'Left Context-Sensitive, Stochastic'."""
        if self.has_left_context and self.has_right_context:
            kind = "Full Context-Sensitive"
        elif self.has_left_context:
            kind = "Left Context-Sensitive"
        elif self.has_right_context:
            kind = "Right Context-Sensitive"
        else:
            kind = "Context-Free"
        return f"{kind}, {'Stochastic' if self.is_stochastic else 'Deterministic'}"

    def __str__(self) -> str:
        lhs = self.predecessor
        if self.left_context:
            lhs = f"{self.left_context} < {lhs}"
        if self.right_context:
            lhs = f"{lhs} > {self.right_context}"
        text = f"{lhs} -> {self.successor}"
        if self.probability != 1.0:
            text += f" ({self.probability:g})"
        return text


# =============================================================================
# PARSING
# =============================================================================

def parse_rule(text: str) -> ProductionRule:
    """
    Parse one rule from authoring notation.

    A trailing "(p)" sets the probability, clamped to [0, 1]. Raises
    RuleParseError if the text is malformed.
    """
    source = text.strip()
    if not source:
        raise RuleParseError("Rule string is empty")

    probability = 1.0
    match = _PROBABILITY_SUFFIX.search(source)
    if match:
        probability = min(max(float(match.group(1)), 0.0), 1.0)
        source = source[: match.start()].rstrip()

    arrow_at, arrow = -1, ""
    for candidate in ARROWS:
        arrow_at = source.find(candidate)
        if arrow_at != -1:
            arrow = candidate
            break
    if arrow_at == -1:
        raise RuleParseError("Rule must contain '->' or '→' separator")

    lhs = source[:arrow_at].strip()
    successor = source[arrow_at + len(arrow):].strip()
    if not successor:
        raise RuleParseError("Successor (right side of ->) cannot be empty")

    left_context = right_context = ""
    predecessor = lhs
    if "<" in lhs:
        left_context, predecessor = (part.strip() for part in lhs.split("<", 1))
    if ">" in predecessor:
        predecessor, right_context = (part.strip() for part in predecessor.split(">", 1))

    if len(predecessor) != 1:
        raise RuleParseError(
            f"Predecessor must be exactly 1 character, got '{predecessor}'"
        )
    if len(left_context) > 1:
        raise RuleParseError(f"Left context must be 0 or 1 character, got '{left_context}'")
    if len(right_context) > 1:
        raise RuleParseError(f"Right context must be 0 or 1 character, got '{right_context}'")

    return ProductionRule(
        predecessor=predecessor,
        successor=successor,
        probability=probability,
        left_context=left_context,
        right_context=right_context,
    )


def parse_rules(lines: Iterable[str]) -> list[ProductionRule]:
    """Parse several rules, skipping blank lines and '#' comments."""
    rules = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        rules.append(parse_rule(stripped))
    return rules


# =============================================================================
# RULE SET UTILITIES
# =============================================================================

def validate_rules(rules: Iterable[ProductionRule]) -> list[str]:
    """Collect one message per invalid rule, prefixed with its index."""
    errors = []
    for i, rule in enumerate(rules):
        try:
            rule.validate()
        except InvalidRuleError as exc:
            errors.append(f"Rule {i}: {exc}")
    return errors


def rules_for_predecessor(
    rules: Iterable[ProductionRule], predecessor: str
) -> list[ProductionRule]:
    return [r for r in rules if r.predecessor == predecessor]


def context_sensitive_rules(rules: Iterable[ProductionRule]) -> list[ProductionRule]:
    return [r for r in rules if r.is_context_sensitive]


def context_free_rules(rules: Iterable[ProductionRule]) -> list[ProductionRule]:
    return [r for r in rules if not r.is_context_sensitive]


def sort_by_specificity(rules: Iterable[ProductionRule]) -> list[ProductionRule]:
    """Most specific first; equal specificity keeps insertion order."""
    return sorted(rules, key=lambda r: r.context_specificity, reverse=True)


def unique_predecessors(rules: Iterable[ProductionRule]) -> list[str]:
    """Distinct predecessor symbols in first-seen order."""
    return list(dict.fromkeys(r.predecessor for r in rules))


def has_stochastic_rules(rules: Iterable[ProductionRule]) -> bool:
    return any(r.is_stochastic for r in rules)


def has_context_sensitive_rules(rules: Iterable[ProductionRule]) -> bool:
    return any(r.is_context_sensitive for r in rules)


def normalize_probabilities(rules: Iterable[ProductionRule]) -> list[ProductionRule]:
    """
    Rescale weights so rules sharing a predecessor sum to one.

    Groups whose total is zero or already one are left untouched. Order
    of the input is preserved.
    """
    rules = list(rules)
    totals: dict[str, float] = defaultdict(float)
    for rule in rules:
        totals[rule.predecessor] += rule.probability

    normalized = []
    for rule in rules:
        total = totals[rule.predecessor]
        if total > 0.0 and not math.isclose(total, 1.0, abs_tol=1e-6):
            rule = replace(rule, probability=rule.probability / total)
        normalized.append(rule)
    return normalized


def growth_factor(rules: Iterable[ProductionRule]) -> float:
    """
    Probability-weighted mean successor length across the rule set.

    An estimate of how much a word grows per iteration when every symbol
    has a rule; 1.0 for an empty rule set.
    """
    weighted = 0.0
    weight = 0.0
    for rule in rules:
        weighted += len(rule.successor) * rule.probability
        weight += rule.probability
    if weight <= 0.0:
        return 1.0
    return weighted / weight

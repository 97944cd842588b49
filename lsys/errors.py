"""
Exception types raised by the L-system pipeline.

All errors derive from ValueError so callers that only care about
"bad input" can catch the builtin.
"""


class LSystemError(ValueError):
    """Base class for every error raised by this package."""


class InvalidConfiguration(LSystemError):
    """Generator or pipeline inputs are unusable (empty axiom, no rules, bad bounds)."""


class InvalidRuleError(InvalidConfiguration):
    """A production rule violates its field invariants."""


class RuleParseError(InvalidRuleError):
    """Rule text could not be parsed from the authoring notation."""

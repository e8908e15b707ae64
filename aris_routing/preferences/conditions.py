"""Rule condition AST, parser, and interpreter.

Conditions are parsed once when a rule is loaded and then evaluated against a
flat mapping of lowercase task facts. Supported textual forms::

    subject_contains(['unsubscribe', 'newsletter'])
    sender_domain_in(['spam.com'])
    email_type = 'sales_inquiry'
    subject_contains(['invoice']) and not sender_contains(['noreply'])

A known function with malformed arguments parses to ``Never``. Any other
text, including free text that merely contains ``and``, ``or`` or ``not``,
falls back to a substring match of the whole text against the subject.
"""

import ast
import logging
import re
from typing import Annotated, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

ConditionFacts = Mapping[str, str]

# Facts a condition may reference
CONDITION_FIELDS: frozenset[str] = frozenset(
    {"subject", "sender", "sender_domain", "body", "email_type", "task_type", "urgency"}
)

# function name -> (node kind, field)
CONDITION_FUNCTIONS: dict[str, tuple[str, str]] = {
    "subject_contains": ("contains", "subject"),
    "subject_contains_any": ("contains", "subject"),
    "sender_contains": ("contains", "sender"),
    "body_contains": ("contains", "body"),
    "sender_domain_in": ("one_of", "sender_domain"),
    "task_type_in": ("one_of", "task_type"),
}

_FUNCTION_CALL = re.compile(r"^(\w+)\s*\((.*)\)$", re.DOTALL)
_EQUALITY = re.compile(r"""^(\w+)\s*==?\s*(['"])(.*)\2$""", re.DOTALL)
_NOT_PREFIX = re.compile(r"^not\s+", re.IGNORECASE)


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class Contains(_Node):
    """True when the field contains any of the terms (case-insensitive)."""

    kind: Literal["contains"] = "contains"
    field: str
    terms: tuple[str, ...]

    def evaluate(self, facts: ConditionFacts) -> bool:
        value = facts.get(self.field, "").lower()
        return any(term.lower() in value for term in self.terms if term)


class Equals(_Node):
    """True when the field equals the value (case-insensitive)."""

    kind: Literal["equals"] = "equals"
    field: str
    value: str

    def evaluate(self, facts: ConditionFacts) -> bool:
        return facts.get(self.field, "").lower() == self.value.lower()


class OneOf(_Node):
    """True when the field equals one of the values (case-insensitive)."""

    kind: Literal["one_of"] = "one_of"
    field: str
    values: tuple[str, ...]

    def evaluate(self, facts: ConditionFacts) -> bool:
        value = facts.get(self.field, "").lower()
        return bool(value) and value in {v.lower() for v in self.values}


class And(_Node):
    kind: Literal["and"] = "and"
    conditions: tuple["Condition", ...]

    def evaluate(self, facts: ConditionFacts) -> bool:
        return all(c.evaluate(facts) for c in self.conditions)


class Or(_Node):
    kind: Literal["or"] = "or"
    conditions: tuple["Condition", ...]

    def evaluate(self, facts: ConditionFacts) -> bool:
        return any(c.evaluate(facts) for c in self.conditions)


class Not(_Node):
    kind: Literal["not"] = "not"
    condition: "Condition"

    def evaluate(self, facts: ConditionFacts) -> bool:
        return not self.condition.evaluate(facts)


class Never(_Node):
    """Matches nothing. Produced for malformed conditions."""

    kind: Literal["never"] = "never"
    reason: str = ""

    def evaluate(self, facts: ConditionFacts) -> bool:
        return False


Condition = Annotated[
    Union[Contains, Equals, OneOf, And, Or, Not, Never],
    Field(discriminator="kind"),
]

And.model_rebuild()
Or.model_rebuild()
Not.model_rebuild()


def _split_top_level(text: str, keyword: str) -> list[str]:
    """Split on a boolean keyword outside brackets and quotes."""
    parts: list[str] = []
    depth = 0
    quote: str | None = None
    start = 0
    i = 0
    token = f" {keyword} "
    lowered = text.lower()

    while i < len(text):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        elif depth == 0 and lowered.startswith(token, i):
            parts.append(text[start:i])
            i += len(token)
            start = i
            continue
        i += 1

    parts.append(text[start:])
    return [p.strip() for p in parts]


def _strip_parens(text: str) -> str:
    """Remove one pair of parentheses wrapping the whole expression."""
    while text.startswith("(") and text.endswith(")"):
        depth = 0
        for i, ch in enumerate(text):
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
            if depth == 0 and i < len(text) - 1:
                return text
        text = text[1:-1].strip()
    return text


def _parse_terms(raw: str) -> tuple[str, ...]:
    """Parse a function argument list into a tuple of strings.

    Raises:
        ValueError: If the arguments are not a string or a list of strings.
    """
    value = ast.literal_eval(raw.strip())
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)) or not value:
        raise ValueError("expected a non-empty list of strings")
    if not all(isinstance(v, str) for v in value):
        raise ValueError("expected only string terms")
    return tuple(value)


def _parse_atom(text: str) -> Optional[Condition]:
    """Parse one function call or equality; None when the text is neither."""
    call = _FUNCTION_CALL.match(text)
    if call and call.group(1).lower() in CONDITION_FUNCTIONS:
        name = call.group(1).lower()
        kind, field = CONDITION_FUNCTIONS[name]
        try:
            terms = _parse_terms(call.group(2))
        except (ValueError, SyntaxError) as e:
            logger.warning(f"condition_malformed: function={name}, error={str(e)}")
            return Never(reason=f"malformed arguments for {name}")
        if kind == "one_of":
            return OneOf(field=field, values=terms)
        return Contains(field=field, terms=terms)

    equality = _EQUALITY.match(text)
    if equality and equality.group(1).lower() in CONDITION_FIELDS:
        return Equals(field=equality.group(1).lower(), value=equality.group(3))

    return None


def _parse_expression(text: str) -> Optional[Condition]:
    """Parse boolean structure; None unless every operand is a recognised atom."""
    text = _strip_parens(text.strip())
    if not text:
        return None

    alternatives = _split_top_level(text, "or")
    if len(alternatives) > 1:
        parts = [_parse_expression(part) for part in alternatives]
        return None if any(p is None for p in parts) else Or(conditions=tuple(parts))

    conjuncts = _split_top_level(text, "and")
    if len(conjuncts) > 1:
        parts = [_parse_expression(part) for part in conjuncts]
        return None if any(p is None for p in parts) else And(conditions=tuple(parts))

    negated = _NOT_PREFIX.match(text)
    if negated:
        inner = _parse_expression(text[negated.end():])
        return None if inner is None else Not(condition=inner)

    return _parse_atom(text)


def parse_condition(text: str) -> Condition:
    """Parse a textual rule condition into an AST.

    Precedence from loosest to tightest is ``or``, ``and``, ``not``. Boolean
    keywords only combine recognised functions and equalities; free text
    such as ``not interested`` is matched whole against the subject.

    Args:
        text: The condition as stored with the rule.

    Returns:
        The parsed Condition. Never raises.
    """
    text = text.strip()
    if not _strip_parens(text):
        return Never(reason="empty condition")

    condition = _parse_expression(text)
    if condition is not None:
        return condition

    logger.warning(f"condition_unrecognized: falling back to subject match, condition={text[:80]}")
    return Contains(field="subject", terms=(text,))

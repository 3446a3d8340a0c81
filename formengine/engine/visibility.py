"""
Field visibility resolution.

A field is hidden when a side effect put it in the externally hidden set
(for example the password field once an existing account is found), or
when its visibility rule says so. Rules reference exactly one other
field; boolean expression trees are not supported. Rule
evaluators are looked up by the rule's ``kind`` tag.
"""

from typing import Any, Callable, Collection, Mapping

from formengine.errors import FormConfigError
from formengine.schemas.form_schema import FormField, LogicAction, SingleRule


def _strictly_equal(recorded: Any, expected: Any) -> bool:
    # bool is an int subclass; True must not match 1, nor 0 match False.
    if isinstance(recorded, bool) or isinstance(expected, bool):
        return isinstance(recorded, bool) and isinstance(expected, bool) and recorded is expected
    return recorded == expected


def _matches_single(rule: SingleRule, values: Mapping[str, Any]) -> bool:
    if values.get(rule.field_id) is None:
        return False
    return _strictly_equal(values[rule.field_id], rule.value)


_RULE_EVALUATORS: dict[str, Callable[[Any, Mapping[str, Any]], bool]] = {
    "single": _matches_single,
}


def is_visible(
    field: FormField,
    values: Mapping[str, Any],
    externally_hidden: Collection[str] = frozenset(),
) -> bool:
    """Decide whether ``field`` takes part in rendering and validation."""
    if field.id in externally_hidden:
        return False
    rule = field.logic
    if rule is None:
        return True

    evaluator = _RULE_EVALUATORS.get(rule.kind)
    if evaluator is None:
        raise FormConfigError(f"Unsupported visibility rule kind: {rule.kind!r}")

    matched = evaluator(rule, values)
    return matched if rule.action == LogicAction.SHOW else not matched

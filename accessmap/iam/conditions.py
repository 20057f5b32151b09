"""
Condition evaluation.

The access graph never interprets Condition blocks itself. It hands them to
a ``ConditionEvaluator`` together with an ``EvaluationContext`` and turns the
outcome (or a ``ConditionEvaluationError``) into a decision. The evaluator is
injectable; ``DefaultConditionEvaluator`` covers the common IAM operators.

Notes:
- An empty or missing Condition block always matches.
- A missing context key makes a positive operator fail and a negated
  operator (``StringNotEquals`` ...) pass, like IAM does. ``...IfExists``
  operators pass on a missing key.
- Unknown operators and values that cannot be parsed raise
  ``ConditionEvaluationError``; the caller decides fail-open or fail-closed.
"""

from __future__ import annotations

import fnmatch
import ipaddress
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple

from accessmap.errors import ConditionEvaluationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationContext:
    """
    Request-time facts consumed by condition evaluation.

    Built once per query and passed explicitly; never global state.
    ``session_policy`` is the policy of an assumed-role session, which
    narrows whatever the principal's own policies allow.
    """
    source_ip: Optional[str] = None
    mfa_authenticated: bool = False
    organization_id: Optional[str] = None
    principal_org_id: Optional[str] = None
    principal_arn: Optional[str] = None
    session_policy: Optional[Any] = None  # PolicyDocument
    current_time: Optional[datetime] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def condition_keys(self) -> Dict[str, Any]:
        """Global condition keys for this request, lower-cased for lookup."""
        keys: Dict[str, Any] = {
            'aws:multifactorauthpresent': self.mfa_authenticated,
        }
        if self.source_ip:
            keys['aws:sourceip'] = self.source_ip
        if self.organization_id:
            keys['aws:resourceorgid'] = self.organization_id
        if self.principal_org_id:
            keys['aws:principalorgid'] = self.principal_org_id
        if self.principal_arn:
            keys['aws:principalarn'] = self.principal_arn
        if self.current_time is not None:
            keys['aws:currenttime'] = self.current_time
            keys['aws:epochtime'] = int(self.current_time.timestamp())

        for key, value in self.extra.items():
            keys[key.lower()] = value
        return keys


class ConditionEvaluator(Protocol):
    """Decides whether a Condition block holds for a request."""

    def evaluate(self, conditions: Optional[Mapping[str, Any]], context: EvaluationContext) -> bool:
        """
        Returns:
            True if every clause matches

        Raises:
            ConditionEvaluationError: the block cannot be decided
        """
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Value comparison helpers
# ═══════════════════════════════════════════════════════════════════════════════

def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).lower()
    if text in ('true', 'false'):
        return text == 'true'
    raise ConditionEvaluationError(f"not a boolean condition value: {value!r}")


def _to_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConditionEvaluationError(f"not a numeric condition value: {value!r}") from e


def _from_epoch(value: Any) -> datetime:
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise ConditionEvaluationError(f"epoch time out of range: {value!r}") from e


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, (int, float)):
        result = _from_epoch(value)
    else:
        text = str(value)
        if text.isdigit():
            result = _from_epoch(int(text))
        else:
            try:
                result = datetime.fromisoformat(text.replace('Z', '+00:00'))
            except ValueError as e:
                raise ConditionEvaluationError(f"not a date condition value: {value!r}") from e
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def _ip_in_network(actual: Any, expected: Any) -> bool:
    try:
        return ipaddress.ip_address(str(actual)) in ipaddress.ip_network(str(expected), strict=False)
    except ValueError as e:
        raise ConditionEvaluationError(f"invalid IP condition value: {e}") from e


def _string_equals(actual: Any, expected: Any) -> bool:
    return str(actual) == str(expected)


def _string_equals_ignore_case(actual: Any, expected: Any) -> bool:
    return str(actual).lower() == str(expected).lower()


def _string_like(actual: Any, expected: Any) -> bool:
    return fnmatch.fnmatchcase(str(actual), str(expected))


def _bool_equals(actual: Any, expected: Any) -> bool:
    return _to_bool(actual) == _to_bool(expected)


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    return lambda actual, expected: compare(_to_number(actual), _to_number(expected))


def _date(compare: Callable[[datetime, datetime], bool]) -> Callable[[Any, Any], bool]:
    return lambda actual, expected: compare(_to_datetime(actual), _to_datetime(expected))


# operator -> (positive comparison, negated)
_OPERATORS: Dict[str, Tuple[Callable[[Any, Any], bool], bool]] = {
    'StringEquals': (_string_equals, False),
    'StringNotEquals': (_string_equals, True),
    'StringEqualsIgnoreCase': (_string_equals_ignore_case, False),
    'StringNotEqualsIgnoreCase': (_string_equals_ignore_case, True),
    'StringLike': (_string_like, False),
    'StringNotLike': (_string_like, True),
    'ArnEquals': (_string_like, False),
    'ArnLike': (_string_like, False),
    'ArnNotEquals': (_string_like, True),
    'ArnNotLike': (_string_like, True),
    'Bool': (_bool_equals, False),
    'IpAddress': (_ip_in_network, False),
    'NotIpAddress': (_ip_in_network, True),
    'NumericEquals': (_numeric(lambda a, e: a == e), False),
    'NumericNotEquals': (_numeric(lambda a, e: a == e), True),
    'NumericLessThan': (_numeric(lambda a, e: a < e), False),
    'NumericLessThanEquals': (_numeric(lambda a, e: a <= e), False),
    'NumericGreaterThan': (_numeric(lambda a, e: a > e), False),
    'NumericGreaterThanEquals': (_numeric(lambda a, e: a >= e), False),
    'DateEquals': (_date(lambda a, e: a == e), False),
    'DateNotEquals': (_date(lambda a, e: a == e), True),
    'DateLessThan': (_date(lambda a, e: a < e), False),
    'DateLessThanEquals': (_date(lambda a, e: a <= e), False),
    'DateGreaterThan': (_date(lambda a, e: a > e), False),
    'DateGreaterThanEquals': (_date(lambda a, e: a >= e), False),
}

_SET_QUALIFIERS = ('ForAnyValue', 'ForAllValues')


def _split_operator(operator: str) -> Tuple[Optional[str], str, bool]:
    """Split ``ForAnyValue:StringLikeIfExists`` into its three parts."""
    qualifier = None
    if ':' in operator:
        prefix, operator = operator.split(':', 1)
        if prefix not in _SET_QUALIFIERS:
            raise ConditionEvaluationError(f"unsupported set qualifier: {prefix}")
        qualifier = prefix

    if_exists = operator.endswith('IfExists')
    if if_exists:
        operator = operator[:-len('IfExists')]
    return qualifier, operator, if_exists


def _as_values(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


class DefaultConditionEvaluator:
    """Evaluates the common IAM condition operators against an EvaluationContext."""

    def evaluate(self, conditions: Optional[Mapping[str, Any]], context: EvaluationContext) -> bool:
        if not conditions:
            return True
        if not isinstance(conditions, Mapping):
            raise ConditionEvaluationError("malformed condition block")

        keys = context.condition_keys()

        for operator, clauses in conditions.items():
            if not isinstance(clauses, Mapping):
                raise ConditionEvaluationError(f"malformed clauses for operator {operator}")
            for key, expected in clauses.items():
                if not self._clause_matches(operator, key, expected, keys):
                    return False

        return True

    def _clause_matches(self, operator: str, key: str, expected: Any, keys: Dict[str, Any]) -> bool:
        qualifier, base_operator, if_exists = _split_operator(operator)
        expected_values = _as_values(expected)
        present = keys.get(key.lower()) is not None

        if base_operator == 'Null':
            if not expected_values:
                raise ConditionEvaluationError(f"Null operator on {key} has no value")
            return (not present) == _to_bool(expected_values[0])

        if base_operator not in _OPERATORS:
            raise ConditionEvaluationError(f"unsupported condition operator: {operator}")
        compare, negated = _OPERATORS[base_operator]

        if not present:
            if qualifier == 'ForAllValues':
                return True
            if qualifier == 'ForAnyValue':
                return if_exists
            return if_exists or negated

        actual_values = _as_values(keys[key.lower()])

        if qualifier == 'ForAllValues':
            hits = [any(compare(a, e) for e in expected_values) for a in actual_values]
            return not any(hits) if negated else all(hits)

        matched = any(compare(a, e) for a in actual_values for e in expected_values)
        return not matched if negated else matched

# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""
Local evaluation of the store's native `where` format.

Used by stores that cannot push predicates down to their backend. Payloads
and predicate values are both in wire format; pointers are compared by
class name and id, dates by their ISO representation.
"""

import operator
import re
from collections.abc import Mapping

from parsnip.errors import InvalidOperatorError, LogicError


__all__ = ['MISSING', 'matches', 'get_path', 'normalize']


MISSING = object()

_REGEX_FLAGS = {'i': re.IGNORECASE, 'm': re.MULTILINE, 's': re.DOTALL, 'x': re.VERBOSE}


def normalize(value):
    if isinstance(value, Mapping):
        type_ = value.get('__type')
        if type_ in ('Pointer', 'Object'):
            return ('Pointer', value.get('className'), value.get('objectId'))
        elif type_ == 'Date':
            return value.get('iso')
        return {k: normalize(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [normalize(v) for v in value]
    return value


def get_path(payload, key):
    """
    Returns the value at the dot separated `key` of `payload`, or `MISSING`.
    """
    value = payload
    for part in key.split('.'):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return MISSING
    return value


def _equals(field, value):
    if field is MISSING:
        field = None
    if isinstance(field, list) and not isinstance(value, list):
        return value in field
    return field == value


def _contained_in(field, values):
    if field is MISSING:
        field = None
    if isinstance(field, list):
        return any(v in values for v in field)
    return field in values


def _compare(compare, field, value):
    if field is MISSING or field is None or value is None:
        return False
    if isinstance(field, list):
        return any(_compare(compare, f, value) for f in field)
    try:
        return compare(field, value)
    except TypeError:
        # Values of different types never match range comparisons
        return False


def _regex(field, pattern, options=''):
    if not isinstance(field, str):
        return False
    flags = 0
    for option in options or '':
        flags |= _REGEX_FLAGS.get(option, 0)
    return re.search(pattern, field, flags) is not None


def _pointers(subquery, run_query):
    return [('Pointer', subquery['className'], p.get('objectId')) for p in _subquery(run_query, subquery)]


def _subquery(run_query, subquery):
    if run_query is None:
        raise LogicError('Evaluating subqueries requires a run_query callable')
    return run_query(subquery['className'], subquery.get('where', {}))


def _resolve_condition(name, field, value, condition, run_query):
    return {
        '$ne': lambda: not _equals(field, value),
        '$gt': lambda: _compare(operator.gt, field, value),
        '$gte': lambda: _compare(operator.ge, field, value),
        '$lt': lambda: _compare(operator.lt, field, value),
        '$lte': lambda: _compare(operator.le, field, value),
        '$in': lambda: _contained_in(field, value),
        '$nin': lambda: not _contained_in(field, value),
        '$exists': lambda: (field is not MISSING) == bool(value),
        '$regex': lambda: _regex(field, value, condition.get('$options')),
        '$options': lambda: True,
        '$inQuery': lambda: _contained_in(field, _pointers(value, run_query)),
        '$notInQuery': lambda: not _contained_in(field, _pointers(value, run_query)),
        '$select': lambda: _contained_in(field, [
            normalize(get_path(p, value['key'])) for p in _subquery(run_query, value['query'])]),
        '$dontSelect': lambda: not _contained_in(field, [
            normalize(get_path(p, value['key'])) for p in _subquery(run_query, value['query'])]),
    }[name]()


def _matches_condition(field, condition, run_query):
    for name, value in condition.items():
        if name not in _CONDITIONS:
            raise InvalidOperatorError(name)
        if name in ('$inQuery', '$notInQuery', '$select', '$dontSelect'):
            matched = _resolve_condition(name, field, value, condition, run_query)
        else:
            matched = _resolve_condition(name, field, normalize(value), condition, run_query)
        if not matched:
            return False
    return True


_CONDITIONS = frozenset([
    '$ne', '$gt', '$gte', '$lt', '$lte', '$in', '$nin', '$exists', '$regex', '$options',
    '$inQuery', '$notInQuery', '$select', '$dontSelect'])


def _is_condition(value):
    return isinstance(value, Mapping) and bool(value) and all(k.startswith('$') for k in value)


def matches(payload, where, run_query=None):
    """
    Returns True if `payload` satisfies every constraint in `where`.

    Args:
        payload (dict): Wire format object, including ``objectId``,
            ``createdAt`` and ``updatedAt``.
        where (dict): Constraints in the store's native format.
        run_query (callable): Called as ``run_query(class_name, where)`` to
            evaluate ``$inQuery``, ``$notInQuery``, ``$select`` and
            ``$dontSelect``; must return a list of payloads.

    Raises:
        InvalidOperatorError: If `where` uses an unsupported operator.
    """
    for key, value in where.items():
        if key == '$or':
            if not any(matches(payload, w, run_query) for w in value):
                return False
        elif key == '$and':
            if not all(matches(payload, w, run_query) for w in value):
                return False
        elif key.startswith('$'):
            raise InvalidOperatorError(key)
        else:
            field = normalize(get_path(payload, key))
            if _is_condition(value):
                if not _matches_condition(field, value, run_query):
                    return False
            elif not _equals(field, normalize(value)):
                return False
    return True

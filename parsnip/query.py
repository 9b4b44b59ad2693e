# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""
Fluent query builder translated to the store's native predicate format.

Constraints are accumulated in a `where` dict shaped the way the remote
store expects it::

    {"title": "Hello", "views": {"$gt": 10}, "$or": [{...}, {...}]}

Results are materialized as instances of the query's target model class.
"""

import re
from collections.abc import Mapping
from copy import deepcopy

from pockets import camel, is_listy, listify
from pockets.autolog import log

from parsnip.collection import Collection
from parsnip.errors import InvalidOperatorError, ModelNotFoundError
from parsnip.objects import RemoteObject, decode, encode


__all__ = ['Query', 'OPERATORS', 'PAGE_SIZE', 'DELETED_AT']


PAGE_SIZE = 1000

DELETED_AT = 'deletedAt'

OPERATORS = {
    '=': 'equal_to',
    '!=': 'not_equal_to',
    '>': 'greater_than',
    '>=': 'greater_than_or_equal_to',
    '<': 'less_than',
    '<=': 'less_than_or_equal_to',
    'in': 'contained_in',
    'like': 'regex'}

_RE_DYNAMIC_CONNECTOR = re.compile(r'_(and|or)_')

_missing = object()


def _is_condition(value):
    return isinstance(value, Mapping) and bool(value) and all(k.startswith('$') for k in value)


class Query(object):
    """
    Chainable query against one remote class.

    Every constraint method returns the query itself, except `or_where` and
    `or_query` which return a new query and leave their inputs untouched.

    Args:
        class_name (str): Name of the remote class being queried.
        model_class (class): Model class results are wrapped in.
        use_master_key (bool): Whether remote calls bypass access control.
        store (parsnip.store.RemoteStore): Store the query is run against.
    """

    def __init__(self, class_name, model_class, use_master_key=False, store=None):
        self.class_name = class_name
        self.model_class = model_class
        self.store = store
        self._use_master_key = bool(use_master_key)
        self._where = {}
        self._order = []
        self._include = []
        self._select = []
        self._skip = None
        self._limit = None

    @classmethod
    def or_queries(cls, *queries):
        """
        Returns a new query matching any of the given queries.

        The first argument must be a `Query`; it supplies the class, target
        model and master key flag of the result. Callables are passed a fresh
        query of the same target to populate. A single list or tuple of
        queries is accepted too.

        >>> Query.or_queries(Post.where('views', '>', 10), lambda q: q.where('featured', True))

        """
        if len(queries) == 1 and isinstance(queries[0], (list, tuple)):
            queries = queries[0]
        first = queries[0]

        wheres = []
        for query in queries:
            if callable(query) and not isinstance(query, Query):
                fresh = first._new_query()
                query(fresh)
                query = fresh
            wheres.append(deepcopy(query._where))

        or_query = first._new_query()
        or_query._where = {'$or': wheres}
        or_query._order = list(first._order)
        or_query._include = list(first._include)
        or_query._select = list(first._select)
        or_query._skip = first._skip
        or_query._limit = first._limit
        return or_query

    @property
    def where_clause(self):
        return deepcopy(self._where)

    @property
    def includes(self):
        return list(self._include)

    def use_master_key(self, value):
        self._use_master_key = bool(value)
        return self

    def copy(self):
        query = self._new_query()
        query._where = deepcopy(self._where)
        query._order = list(self._order)
        query._include = list(self._include)
        query._select = list(self._select)
        query._skip = self._skip
        query._limit = self._limit
        return query

    def where(self, key, operator=_missing, value=_missing):
        """
        Adds a constraint to the query.

        Accepts any of these forms::

            query.where('title', '=', 'Hello')
            query.where('title', 'Hello')
            query.where({'title': 'Hello', 'author': user})
            query.where(lambda q: q.where('title', 'Hello'))

        Raises:
            InvalidOperatorError: If `operator` is not one of `OPERATORS`.
        """
        if isinstance(key, Mapping):
            for k, v in key.items():
                self.equal_to(k, v)
            return self
        elif callable(key):
            result = key(self)
            return self if result is None else result

        if value is _missing:
            operator, value = '=', (None if operator is _missing else operator)
        if operator not in OPERATORS:
            raise InvalidOperatorError(operator)
        return getattr(self, OPERATORS[operator])(key, value)

    def or_where(self, key, operator=_missing, value=_missing):
        return self.or_query(lambda query: query.where(key, operator, value))

    def or_query(self, *queries):
        if len(queries) == 1 and isinstance(queries[0], (list, tuple)):
            queries = queries[0]
        return self.or_queries(self, *queries)

    def equal_to(self, key, value):
        self._where[key] = encode(value)
        return self

    def not_equal_to(self, key, value):
        return self._add_condition(key, '$ne', encode(value))

    def greater_than(self, key, value):
        return self._add_condition(key, '$gt', encode(value))

    def greater_than_or_equal_to(self, key, value):
        return self._add_condition(key, '$gte', encode(value))

    def less_than(self, key, value):
        return self._add_condition(key, '$lt', encode(value))

    def less_than_or_equal_to(self, key, value):
        return self._add_condition(key, '$lte', encode(value))

    def contained_in(self, key, values):
        """
        Matches objects whose `key` is one of `values`.

        `values` may be a single value. Against an array field, matches when
        any element of the array is one of `values`.
        """
        return self._add_condition(key, '$in', self._encode_list(values))

    where_in = contained_in

    def not_contained_in(self, key, values):
        return self._add_condition(key, '$nin', self._encode_list(values))

    where_not_in = not_contained_in

    def where_null(self, key):
        return self.contained_in(key, [None])

    def where_not_null(self, key):
        return self.not_contained_in(key, [None])

    def where_exists(self, key):
        return self._add_condition(key, '$exists', True)

    def where_not_exists(self, key):
        return self._add_condition(key, '$exists', False)

    def without_trashed(self):
        """
        Excludes soft deleted objects, those with a ``deletedAt`` date.
        """
        return self.where_null(DELETED_AT)

    def only_trashed(self):
        return self.where_not_null(DELETED_AT)

    def regex(self, key, pattern, modifiers=None):
        self._add_condition(key, '$regex', pattern)
        if modifiers:
            self._add_condition(key, '$options', modifiers)
        return self

    def starts_with(self, key, value):
        return self.regex(key, '^' + re.escape(value))

    def matches_query(self, key, query):
        return self._add_condition(key, '$inQuery', query._subquery())

    def does_not_match_query(self, key, query):
        return self._add_condition(key, '$notInQuery', query._subquery())

    def matches_key_in_query(self, key, query_key, query):
        return self._add_condition(key, '$select', {'query': query._subquery(), 'key': query_key})

    def does_not_match_key_in_query(self, key, query_key, query):
        return self._add_condition(key, '$dontSelect', {'query': query._subquery(), 'key': query_key})

    def order_by(self, key, ascending=True):
        """
        Adds a sort key. Earlier sort keys take precedence.
        """
        self._order = [k for k in self._order if k.lstrip('-') != key]
        self._order.append(key if ascending else '-' + key)
        return self

    def latest(self, key='createdAt'):
        return self.order_by(key, ascending=False)

    def oldest(self, key='createdAt'):
        return self.order_by(key, ascending=True)

    def skip(self, count):
        self._skip = count
        return self

    def limit(self, count):
        self._limit = count
        return self

    def for_page(self, page, per_page=50):
        return self.skip((page - 1) * per_page).limit(per_page)

    def select(self, *keys):
        for key in keys:
            self._select.extend(k for k in listify(key) if k not in self._select)
        return self

    def with_(self, *keys):
        """
        Eager loads the given relations on every result.

        Keys may be dot separated paths, e.g. ``'comments.author'``, and are
        also sent to the store as include paths, so pointers along the way
        come back already fetched.
        """
        for key in keys:
            self._include.extend(k for k in listify(key) if k not in self._include)
        return self

    def find(self, object_id, select_keys=None):
        return self.copy().equal_to('objectId', object_id).first(select_keys)

    def find_or_fail(self, object_id, select_keys=None):
        return self.copy().equal_to('objectId', object_id).first_or_fail(select_keys)

    def find_or_new(self, object_id, select_keys=None):
        record = self.find(object_id, select_keys)
        if record is None:
            record = self._new_model()
        return record

    def first(self, select_keys=None):
        query = self.copy().limit(1)
        if select_keys:
            query.select(select_keys)
        return query.get().first()

    def first_or_fail(self, select_keys=None):
        record = self.first(select_keys)
        if record is None:
            raise ModelNotFoundError(self.model_class.__name__)
        return record

    def first_or_new(self, data=None):
        """
        Returns the first record matching the query plus `data`, or a new
        unsaved model seeded with the query's equality constraints and `data`.
        """
        data = data or {}
        record = self.copy().where(data).first()
        if record is not None:
            return record

        seed = {
            k: decode(v, self.store) for k, v in self._where.items()
            if k != 'objectId' and not k.startswith('$') and not _is_condition(v)}
        seed.update(data)
        return self._new_model(seed)

    def first_or_create(self, data=None):
        record = self.first_or_new(data)
        if not record.id:
            record.save()
        return record

    def get(self, select_keys=None):
        """
        Runs the query.

        Args:
            select_keys (str or list): Restrict the returned attributes to
                these keys.

        Returns:
            Collection: The matching models, with any `with_` relations
                already resolved.
        """
        if select_keys:
            self.select(select_keys)

        log.debug('Querying {} where={} order={} include={}', self.class_name, self._where, self._order, self._include)
        payloads = self.store.query(
            self.class_name, self._where,
            order=self._order or None,
            include=self._include or None,
            keys=self._select or None,
            skip=self._skip,
            limit=self._limit,
            use_master_key=self._use_master_key)

        models = Collection(self._new_model(RemoteObject.from_payload(self.class_name, p, self.store)) for p in payloads)
        for path in self._include:
            self._load_path(models, path.split('.'))
        return models

    def get_all(self):
        """
        Retrieves every matching record, regardless of the store's page size.

        Pages through the results ordered by ``objectId``, using the last id
        of each page as the lower bound of the next one, until a page comes
        back empty. Any `order_by`, `skip` or `limit` is ignored.
        """
        query = self.copy()
        query._order = ['objectId']
        query._skip = None
        query._limit = PAGE_SIZE

        results = Collection()
        last_id = None
        while True:
            page_query = query.copy()
            if last_id is not None:
                page_query._add_condition('objectId', '$gt', last_id)
            page = page_query.get()
            if not page:
                break
            results.extend(page)
            last_id = page[-1].id
        return results

    def chunk(self, size, callback):
        """
        Passes the results to `callback` in chunks of `size` records.

        Returns:
            bool: False if `callback` returned False and stopped the
                iteration, True otherwise.
        """
        page = 1
        while True:
            results = self.copy().for_page(page, size).get()
            if not results:
                break
            if callback(results) is False:
                return False
            if len(results) < size:
                break
            page += 1
        return True

    def pluck(self, key):
        return self.copy().get([key]).pluck(key)

    def count(self):
        log.debug('Counting {} where={}', self.class_name, self._where)
        return self.store.count(self.class_name, self._where, self._use_master_key)

    def _new_query(self):
        return Query(self.class_name, self.model_class, self._use_master_key, self.store)

    def _new_model(self, data=None):
        return self.model_class(data, use_master_key=self._use_master_key)

    def _subquery(self):
        return {'className': self.class_name, 'where': deepcopy(self._where)}

    def _add_condition(self, key, operator, value):
        condition = self._where.get(key)
        if not _is_condition(condition):
            condition = {}
            self._where[key] = condition
        condition[operator] = value
        return self

    def _encode_list(self, values):
        values = listify(values) if is_listy(values) else [values]
        return [encode(v) for v in values]

    def _load_path(self, target, segments):
        if target is None or not segments:
            return
        if isinstance(target, list):
            for item in target:
                self._load_path(item, segments)
            return

        name = segments[0]
        if name in getattr(type(target), '__relations__', {}):
            log.debug('Eager loading {}.{}', type(target).__name__, name)
            self._load_path(target.get(name), segments[1:])
        elif len(segments) > 1:
            log.warning('Cannot eager load {} on {}: {} is not a relation', '.'.join(segments),
                        type(target).__name__, name)

    def __getattr__(self, name):
        # Dynamic where clauses, e.g. where_title_and_author(title, author)
        if not name.startswith('where_'):
            raise AttributeError('{!r} object has no attribute {!r}'.format(type(self).__name__, name))
        segments = _RE_DYNAMIC_CONNECTOR.split(name[len('where_'):])

        def dynamic_where(*values):
            query, connector, index = self, 'and', 0
            for segment in segments:
                if segment in ('and', 'or'):
                    connector = segment
                    continue
                key = camel(segment, lower_initial=True)
                if connector == 'or':
                    query = query.or_where(key, values[index])
                else:
                    query = query.where(key, values[index])
                index += 1
            return query
        return dynamic_where

    def __repr__(self):
        return '<Query {} where={!r}>'.format(self.class_name, self._where)

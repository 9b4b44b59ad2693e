# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""
A `RemoteStore` backed by any database SQLAlchemy supports.

Every object is kept as one row, with its attributes serialized as JSON.
Predicates are evaluated in Python with `parsnip.predicates`, so this store
is meant for development and tests rather than for large data sets.

>>> from sqlalchemy import create_engine
>>> store = SqlStore(create_engine('sqlite://'))

"""

import json
from collections.abc import Mapping
from copy import deepcopy
from functools import wraps
from numbers import Number

from pockets.autolog import log
from sqlalchemy import Column, Integer, String, UniqueConstraint
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from parsnip.errors import ObjectNotFoundError, RemoteStoreError
from parsnip.predicates import MISSING, get_path, matches, normalize
from parsnip.store import DEFAULT_LIMIT, MAX_LIMIT, RemoteStore
from parsnip.types import JSON, UTCDateTime
from parsnip.utils import format_date, new_object_id, utcnow


__all__ = ['Base', 'ObjectRow', 'SessionManager', 'SqlStore', 'store_exceptions']


ALWAYS_SELECTED_KEYS = ('objectId', 'createdAt', 'updatedAt')


Base = declarative_base()


class ObjectRow(Base):
    __tablename__ = 'parsnip_object'
    __table_args__ = (UniqueConstraint('class_name', 'object_id'),)

    seq = Column(Integer, primary_key=True, autoincrement=True)
    class_name = Column(String(255), nullable=False, index=True)
    object_id = Column(String(32), nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
    data = Column(JSON, nullable=False, default=dict)

    def to_payload(self):
        payload = deepcopy(self.data or {})
        payload['objectId'] = self.object_id
        payload['createdAt'] = format_date(self.created_at)
        payload['updatedAt'] = format_date(self.updated_at)
        return payload

    def __repr__(self):
        return '<ObjectRow class_name={!r} object_id={!r}>'.format(self.class_name, self.object_id)


class SessionManager(object):
    """
    Context manager yielding a session which is committed on success and
    always closed.
    """

    def __init__(self, session_factory):
        self.session = session_factory()

    def __enter__(self):
        return self.session

    def __exit__(self, exc_type, exc_value, traceback):
        try:
            if exc_type is None:
                self.session.commit()
        finally:
            self.session.close()


def store_exceptions(fn):
    """A decorator re-raising database errors as `RemoteStoreError`."""
    @wraps(fn)
    def wrapped(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            log.error('Error calling {}.{} {!r} {!r}', fn.__module__, fn.__name__, args[1:], kwargs, exc_info=True)
            raise RemoteStoreError(str(exc)) from exc
    return wrapped


def _sort_key(value):
    if value is MISSING or value is None:
        return (0, 0)
    elif isinstance(value, bool):
        return (1, value)
    elif isinstance(value, Number):
        return (2, value)
    elif isinstance(value, str):
        return (3, value)
    return (4, json.dumps(value, sort_keys=True, default=str))


class SqlStore(RemoteStore):
    """
    Args:
        engine (sqlalchemy.engine.Engine): Database to keep objects in.
        create_tables (bool): Create the objects table if it doesn't exist.

    Access control is not modelled, so `use_master_key` has no effect.
    """

    def __init__(self, engine, create_tables=True):
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, autoflush=False)
        if create_tables:
            self.initialize_db()

    def initialize_db(self, drop=False, create=True):
        if drop:
            Base.metadata.drop_all(self.engine, checkfirst=True)
        if create:
            Base.metadata.create_all(self.engine, checkfirst=True)

    def session(self):
        return SessionManager(self.session_factory)

    @store_exceptions
    def create_or_update(self, class_name, object_id, attributes, use_master_key=False):
        now = utcnow()
        with self.session() as session:
            if object_id:
                row = self._get_row(session, class_name, object_id)
                data = dict(row.data or {})
            else:
                row = ObjectRow(
                    class_name=class_name,
                    object_id=self._new_object_id(session, class_name),
                    created_at=now)
                session.add(row)
                data = {}

            for key, value in attributes.items():
                if isinstance(value, Mapping) and value.get('__op') == 'Delete':
                    data.pop(key, None)
                else:
                    data[key] = value

            row.data = data
            row.updated_at = now
            log.debug('Saved {}({})', class_name, row.object_id)
            return row.object_id, row.created_at, row.updated_at

    @store_exceptions
    def fetch_by_id(self, class_name, object_id, use_master_key=False):
        with self.session() as session:
            return self._get_row(session, class_name, object_id).to_payload()

    @store_exceptions
    def delete(self, class_name, object_id, use_master_key=False):
        with self.session() as session:
            session.delete(self._get_row(session, class_name, object_id))

    @store_exceptions
    def query(self, class_name, where, order=None, include=None, keys=None, skip=None, limit=None,
              use_master_key=False):
        with self.session() as session:
            payloads = self._sort(self._find(session, class_name, where or {}), order)

            skip = skip or 0
            limit = DEFAULT_LIMIT if limit is None else min(limit, MAX_LIMIT)
            payloads = payloads[skip:skip + limit]

            for path in include or []:
                for payload in payloads:
                    self._include_path(session, payload, path.split('.'))

            if keys:
                top_keys = set(key.split('.')[0] for key in keys).union(ALWAYS_SELECTED_KEYS)
                payloads = [{k: v for k, v in p.items() if k in top_keys} for p in payloads]
            return payloads

    @store_exceptions
    def count(self, class_name, where, use_master_key=False):
        with self.session() as session:
            return len(self._find(session, class_name, where or {}))

    def _get_row(self, session, class_name, object_id):
        row = session.query(ObjectRow).filter_by(class_name=class_name, object_id=object_id).first()
        if row is None:
            raise ObjectNotFoundError(class_name, object_id)
        return row

    def _new_object_id(self, session, class_name):
        while True:
            object_id = new_object_id()
            if not session.query(ObjectRow.seq).filter_by(class_name=class_name, object_id=object_id).first():
                return object_id

    def _find(self, session, class_name, where, cache=None):
        cache = {} if cache is None else cache

        def run_query(subquery_class_name, subquery_where):
            cache_key = (subquery_class_name, json.dumps(subquery_where, sort_keys=True))
            if cache_key not in cache:
                cache[cache_key] = self._find(session, subquery_class_name, subquery_where, cache)
            return cache[cache_key]

        rows = session.query(ObjectRow).filter_by(class_name=class_name).order_by(ObjectRow.seq)
        payloads = []
        for row in rows:
            payload = row.to_payload()
            if matches(payload, where, run_query):
                payloads.append(payload)
        return payloads

    def _sort(self, payloads, order):
        for key in reversed(order or []):
            descending = key.startswith('-')
            key = key.lstrip('-')
            payloads = sorted(payloads, key=lambda p: _sort_key(normalize(get_path(p, key))), reverse=descending)
        return payloads

    def _include_path(self, session, payload, segments):
        key = segments[0]
        if key in payload:
            payload[key] = self._expand(session, payload[key], segments[1:])

    def _expand(self, session, value, segments):
        if isinstance(value, list):
            return [self._expand(session, v, segments) for v in value]
        if not isinstance(value, Mapping) or value.get('__type') not in ('Pointer', 'Object'):
            return value

        if value['__type'] == 'Pointer':
            row = session.query(ObjectRow).filter_by(
                class_name=value['className'], object_id=value['objectId']).first()
            if row is None:
                log.warning('Cannot include missing {}({})', value['className'], value['objectId'])
                return value
            value = row.to_payload()
            value.update({'__type': 'Object', 'className': row.class_name})

        if segments:
            self._include_path(session, value, segments)
        return value

# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""
Presence verification for "unique" and "exists" validation rules.
"""

from parsnip.model import resolve_model
from parsnip.query import Query


__all__ = ['PresenceVerifier']


def _default_resolver(class_name):
    return resolve_model(class_name.lstrip('_'))


class PresenceVerifier(object):
    """
    Counts the remote objects matching a validation rule.

    Args:
        resolver (callable): Maps a remote class name to the model class
            results are wrapped in. Defaults to looking the model up by name,
            ignoring any leading underscore, so "_User" resolves to "User".

    Extra constraints map keys to values, where values may be:

    * ``"NULL"``: the key is null or missing.
    * ``"NOT_NULL"``: the key is present and not null.
    * ``"!value"``: the key is not equal to "value".
    * a callable, passed the query to constrain.
    * anything else: the key equals the value.
    """

    def __init__(self, resolver=None):
        self.resolver = resolver or _default_resolver

    def get_count(self, class_name, column, value, exclude_id=None, id_column=None, extra=None):
        query = self.table(class_name).where({column: value})

        if exclude_id is not None and exclude_id != 'NULL':
            if not id_column or id_column == 'id':
                id_column = 'objectId'
            query.where(id_column, '!=', exclude_id)

        self._add_extra(query, extra)
        return query.count()

    def get_multi_count(self, class_name, column, values, extra=None):
        query = self.table(class_name).where_in(column, values)
        self._add_extra(query, extra)
        return query.count()

    def table(self, class_name):
        model_class = self.resolver(class_name)
        return Query(class_name, model_class, store=model_class.get_config().store)

    def _add_extra(self, query, extra):
        for key, value in (extra or {}).items():
            if callable(value):
                query.where(value)
            elif value == 'NULL':
                query.where_null(key)
            elif value == 'NOT_NULL':
                query.where_not_null(key)
            elif isinstance(value, str) and value.startswith('!'):
                query.where(key, '!=', value[1:])
            else:
                query.where({key: value})

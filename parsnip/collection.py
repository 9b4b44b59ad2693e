# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

import json


__all__ = ['Collection']


class Collection(list):
    """
    Ordered list of models, as returned by queries and relations.
    """

    def first(self, default=None):
        return self[0] if self else default

    def last(self, default=None):
        return self[-1] if self else default

    def pluck(self, key):
        return [model.get(key) for model in self]

    def ids(self):
        return [model.id for model in self]

    def to_dict(self):
        return [model.to_dict() for model in self]

    def to_json(self, **kwargs):
        return json.dumps(self.to_dict(), **kwargs)

    def __repr__(self):
        return '<Collection {}>'.format(list.__repr__(self))

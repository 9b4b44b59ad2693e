# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""
Relationships between models, resolved through the remote store.

There are no joins: every relation is resolved with its own remote call
when it is first accessed, unless it was eager loaded with `Query.with_`.

+---------------+------------------------------+-------------------------------+
| Relation      | Stored as                    | Resolved by                   |
+===============+==============================+===============================+
| BelongsTo     | pointer on the parent        | wrapping (and fetching) it    |
| BelongsToMany | array of pointers on parent  | wrapping each element         |
| HasMany       | pointer on each child        | querying children by pointer  |
| HasManyArray  | array of pointers on child   | querying children by element  |
+---------------+------------------------------+-------------------------------+

"""

from functools import wraps

from pockets import is_listy, listify
from pockets.autolog import log

from parsnip.collection import Collection
from parsnip.errors import InvalidStateError
from parsnip.objects import RemoteObject, unwrap
from parsnip.utils import lcfirst, pluralize


__all__ = ['Relation', 'RelationWithQuery', 'BelongsTo', 'BelongsToMany', 'HasMany', 'HasManyArray']


def _parent_key_name(parent):
    return lcfirst(parent.remote_class_name().lstrip('_'))


class Relation(object):
    """
    Base class of every relation.

    Args:
        parent (parsnip.Model): The model owning the relation.
        other_class (class): The related model class.
        key (str): Attribute holding the reference. Relations that store the
            reference on the parent default to the relation's name.
    """

    def __init__(self, parent, other_class, key=None):
        self.parent = parent
        self.other_class = other_class
        self.key = key
        self.name = None

    def bind_name(self, name):
        self.name = name
        if self.key is None:
            self.key = name
        return self

    def get_results(self):
        raise NotImplementedError()

    def _new_model(self, data=None):
        return self.other_class(data, use_master_key=self.parent._use_master_key)

    def __repr__(self):
        return '<{} {}.{} -> {} key={}>'.format(
            type(self).__name__, type(self.parent).__name__, self.name, self.other_class.__name__, self.key)


class RelationWithQuery(Relation):
    """
    Relation resolved by querying the related class.

    Unknown attributes are looked up on the underlying query, so the query
    can be further constrained before it is run::

        post.comments().where('approved', True).latest().get()

    """
    _query = None

    @property
    def query(self):
        if self._query is None:
            self._query = self.other_class.query(self.parent._use_master_key)
            self.add_constraints(self._query)
        return self._query

    def add_constraints(self, query):
        raise NotImplementedError()

    def _require_saved_parent(self):
        if not self.parent.id:
            raise InvalidStateError('Cannot save {} through an unsaved {}'.format(
                self.other_class.__name__, type(self.parent).__name__))

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError('{!r} object has no attribute {!r}'.format(type(self).__name__, name))
        attr = getattr(self.query, name)
        if not callable(attr):
            return attr

        @wraps(attr)
        def proxy(*args, **kwargs):
            result = attr(*args, **kwargs)
            return self if result is self._query else result
        return proxy


class BelongsTo(Relation):
    """
    The parent holds a pointer to one object of the related class.
    """

    def get_results(self):
        pointer = self.parent.remote_object.get(self.key)
        if not isinstance(pointer, RemoteObject):
            return None

        model = self._new_model(pointer)
        if not pointer.is_data_available:
            log.debug('Resolving {}.{} -> {}({})', type(self.parent).__name__, self.name, pointer.class_name,
                      pointer.object_id)
            model.fetch()
        return model

    def associate(self, other):
        self.parent.set(self.key, other)
        if self.name:
            self.parent.set_relation(self.name, other)
        return self.parent

    def dissociate(self):
        self.parent.unset(self.key)
        if self.name:
            self.parent.set_relation(self.name, None)
        return self.parent


class HasMany(RelationWithQuery):
    """
    Each related object holds a pointer to the parent.

    The pointer key defaults to the lower camel cased name of the parent's
    remote class, e.g. "post" for comments of a Post.
    """

    def __init__(self, parent, other_class, key=None):
        super(HasMany, self).__init__(parent, other_class, key or _parent_key_name(parent))

    def add_constraints(self, query):
        query.where(self.key, self.parent)

    def get_results(self):
        if not self.parent.id:
            return Collection()
        log.debug('Resolving {}.{} by {}', type(self.parent).__name__, self.name, self.key)
        return self.query.get()

    def save(self, child):
        """
        Points `child` at the parent and saves the child. The parent itself
        is not saved.

        Raises:
            InvalidStateError: If the parent has never been saved.
        """
        self._require_saved_parent()
        child.set(self.key, self.parent)
        child.save()
        return child

    def create(self, data):
        return self.save(self._new_model(data))


class HasManyArray(HasMany):
    """
    Each related object holds an array of pointers, one of which is the
    parent. This is the reverse of `BelongsToMany`.

    The array key defaults to the plural of the lower camel cased name of the
    parent's remote class, e.g. "categories" for posts of a Category.

    Args:
        back_reference (bool): Also point each saved child at the parent
            with a single pointer named after the parent's class.
    """

    def __init__(self, parent, other_class, key=None, back_reference=False):
        super(HasManyArray, self).__init__(parent, other_class, key or pluralize(_parent_key_name(parent)))
        self.back_reference = back_reference

    def add_constraints(self, query):
        query.contained_in(self.key, self.parent)

    def save(self, child):
        self._require_saved_parent()
        child.add_unique(self.key, self.parent)
        if self.back_reference:
            child.set(_parent_key_name(self.parent), self.parent)
        child.save()
        return child


class BelongsToMany(Relation):
    """
    The parent holds an array of pointers to objects of the related class.

    Elements are wrapped in the related class without being fetched. The
    relation behaves like the collection of related models.
    """

    def __init__(self, parent, other_class, key=None):
        super(BelongsToMany, self).__init__(parent, other_class, key)
        self._collection = None

    @property
    def collection(self):
        if self._collection is None:
            items = self.parent.remote_object.get(self.key) or []
            self._collection = Collection(self._new_model(item) for item in items if isinstance(item, RemoteObject))
        return self._collection

    def get_results(self):
        return self.collection

    def save(self, others, unique=True):
        """
        Adds `others` to the parent's array and saves the parent once.

        Only the models that actually grew the array are appended to the
        collection, which then replaces the parent's cached relation.

        Args:
            others (Model or list): Models to add.
            unique (bool): Skip models already in the array.

        Returns:
            Collection: The updated collection.
        """
        collection = self.collection
        for other in self._coerce_list(others):
            count = len(self._items())
            if unique:
                self.parent.add_unique(self.key, other)
            else:
                self.parent.add(self.key, other)
            if len(self._items()) > count:
                collection.append(other)

        self.parent.save()
        if self.name:
            self.parent.set_relation(self.name, collection)
        return collection

    def remove(self, others):
        others = self._coerce_list(others)
        removed = [unwrap(other) for other in others]
        self.parent.remove(self.key, others)
        self.collection[:] = [model for model in self.collection if unwrap(model) not in removed]
        self.parent.save()
        if self.name:
            self.parent.set_relation(self.name, self.collection)
        return self.collection

    def _items(self):
        return self.parent.remote_object.get(self.key) or []

    def _coerce_list(self, others):
        return listify(others) if is_listy(others) else [others]

    def __iter__(self):
        return iter(self.collection)

    def __len__(self):
        return len(self.collection)

    def __getitem__(self, index):
        return self.collection[index]

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError('{!r} object has no attribute {!r}'.format(type(self).__name__, name))
        return getattr(self.collection, name)

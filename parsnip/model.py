# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""
Models wrapping objects of the remote store.

Example::

    class Post(Model):
        @relation
        def user(self):
            return self.belongs_to(User)

        @relation
        def categories(self):
            return self.belongs_to_many(Category)

        @relation
        def comments(self):
            return self.has_many('Comment')

    post = Post.with_('user', 'categories').find('Ed1nuqPvcm')
    post.title              # attribute of the remote object
    post['categories']      # resolved relation, cached on the post
    post.comments()         # the relation itself, a chainable query

"""

import inspect
import json
from collections.abc import Mapping
from functools import wraps

from pockets import camel, collect_subclasses
from pockets.autolog import log

from parsnip.errors import InvalidStateError, LogicError
from parsnip.objects import RemoteObject, to_plain
from parsnip.query import Query
from parsnip.relations import BelongsTo, BelongsToMany, HasMany, HasManyArray, Relation


__all__ = ['relation', 'ModelMeta', 'Model', 'resolve_model']


def relation(method):
    """
    Marks a model method as a relation.

    The method must return a `Relation`, usually built with one of
    `Model.belongs_to`, `Model.belongs_to_many`, `Model.has_many` or
    `Model.has_many_array`. Relations that store their reference on the
    parent default their key to the method's name.

    Raises:
        LogicError: When the decorated method is called and does not return
            a `Relation`.
    """
    @wraps(method)
    def _relation(self):
        result = method(self)
        if not isinstance(result, Relation):
            raise LogicError('Relation method {}.{} must return a Relation, not {!r}'.format(
                type(self).__name__, method.__name__, result))
        return result.bind_name(method.__name__)
    _relation.__relation__ = True
    return _relation


def resolve_model(name):
    """
    Returns the model class named `name`.

    Tries the name as given, camel cased, and singularized, so "post",
    "Posts" and "categories" resolve to Post, Post and Category.

    Raises:
        ValueError: If no model class matches.
    """
    if inspect.isclass(name) and issubclass(name, Model):
        return name

    subclasses = {ModelClass.__name__: ModelClass for ModelClass in collect_subclasses(Model)}
    permutations = [name, camel(name)]
    for name in permutations:
        if name in subclasses:
            return subclasses[name]

        if name.lower().endswith('ies'):
            singular = name[:-3] + 'y'
            if singular in subclasses:
                return subclasses[singular]

        if name.lower().endswith('s'):
            singular = name[:-1]
            if singular in subclasses:
                return subclasses[singular]

    raise ValueError('Unrecognized model: {}'.format(name))


def _is_class_attribute(cls, name):
    return any(name in vars(klass) for klass in cls.__mro__)


class ModelMeta(type):
    """
    Collects the `@relation` methods of each model class in `__relations__`.

    Subclasses inherit the relations of their bases, and may override or
    hide them. Unknown public class attributes are looked up on a new query,
    so ``Post.where('title', 'Hello')`` is ``Post.query().where('title', 'Hello')``.
    """

    def __init__(cls, name, bases, attrs):
        super(ModelMeta, cls).__init__(name, bases, attrs)
        relations = {}
        for base in reversed(cls.__mro__[1:]):
            relations.update(vars(base).get('__relations__', {}))
        for attr_name, value in attrs.items():
            if getattr(value, '__relation__', False):
                relations[attr_name] = value
            else:
                relations.pop(attr_name, None)
        cls.__relations__ = relations

    def __getattr__(cls, name):
        if name.startswith('_') or not (hasattr(Query, name) or name.startswith('where_')):
            raise AttributeError('type object {!r} has no attribute {!r}'.format(cls.__name__, name))
        return getattr(cls.query(), name)


class Model(metaclass=ModelMeta):
    """
    Base class of every model.

    A model owns exactly one `RemoteObject`, exposes its attributes as
    Python attributes and items, and resolves the relations declared with
    `@relation`.

    Attributes:
        __classname__ (str): Name of the remote class. Defaults to the name
            of the model class.
        config (parsnip.config.Config): Config the model is bound to, see
            `Model.bind`.
    """
    __classname__ = None
    __remote_object_attr__ = 'remote_object'
    config = None

    def __init__(self, data=None, use_master_key=None):
        """
        Args:
            data (RemoteObject or dict): Remote object to wrap, or attributes
                to fill a new remote object with.
            use_master_key (bool): Defaults to the config's
                `default_use_master_key`.
        """
        config = type(self).config
        store = config.store if config else None

        if isinstance(data, RemoteObject):
            remote_object = data
            if remote_object.store is None:
                remote_object.store = store
        else:
            remote_object = RemoteObject(self.remote_class_name(), store=store)

        if use_master_key is None:
            use_master_key = self._default_use_master_key()

        object.__setattr__(self, 'remote_object', remote_object)
        object.__setattr__(self, '_relations', {})
        object.__setattr__(self, '_use_master_key', bool(use_master_key))

        if isinstance(data, Mapping):
            self.fill(data)

    @classmethod
    def bind(cls, config):
        """
        Binds this model class and its subclasses to `config`.

        Models and queries capture the config's store and master key default
        when they are constructed.
        """
        cls.config = config

    @classmethod
    def get_config(cls):
        if cls.config is None:
            raise InvalidStateError('{} is not bound to a config, see Model.bind()'.format(cls.__name__))
        return cls.config

    @classmethod
    def remote_class_name(cls):
        return cls.__classname__ or cls.__name__

    @classmethod
    def set_default_use_master_key(cls, value):
        cls.get_config().default_use_master_key = bool(value)

    @classmethod
    def _default_use_master_key(cls):
        return bool(cls.config and cls.config.default_use_master_key)

    @classmethod
    def query(cls, use_master_key=None):
        if use_master_key is None:
            use_master_key = cls._default_use_master_key()
        return Query(cls.remote_class_name(), cls, use_master_key, store=cls.get_config().store)

    @classmethod
    def create(cls, data, use_master_key=None):
        model = cls(data, use_master_key)
        model.save()
        return model

    @classmethod
    def all(cls, use_master_key=None):
        return cls.query(use_master_key).get()

    @classmethod
    def find(cls, object_id, use_master_key=None):
        return cls.query(use_master_key).find(object_id)

    @classmethod
    def find_or_fail(cls, object_id, use_master_key=None):
        return cls.query(use_master_key).find_or_fail(object_id)

    @classmethod
    def pointer(cls, object_id, use_master_key=None):
        """
        Returns a model referencing an existing object, without fetching it.
        """
        store = cls.config.store if cls.config else None
        return cls(RemoteObject.pointer(cls.remote_class_name(), object_id, store), use_master_key)

    @property
    def id(self):
        return self.remote_object.object_id

    @property
    def created_at(self):
        return self.remote_object.created_at

    @property
    def updated_at(self):
        return self.remote_object.updated_at

    def use_master_key(self, value):
        object.__setattr__(self, '_use_master_key', bool(value))
        return self

    def get(self, key, default=None):
        if key == 'id':
            return self.id
        if key in self.__relations__:
            return self.get_relation_value(key)
        return self.remote_object.get(key, default)

    def set(self, key, value):
        self.remote_object.set(key, value)
        return self

    def has(self, key):
        return self.remote_object.has(key)

    def fill(self, data):
        for key, value in data.items():
            self.set(key, value)
        return self

    def save(self):
        self.remote_object.save(self._use_master_key)
        return self

    def update(self, data, use_master_key=None):
        if use_master_key is None:
            use_master_key = self._use_master_key
        self.fill(data)
        self.remote_object.save(use_master_key)
        return self

    def delete(self):
        self.remote_object.destroy(self._use_master_key)

    def fetch(self, force=False):
        if force or not self.has_been_fetched():
            self.remote_object.fetch(self._use_master_key)
        return self

    def has_been_fetched(self):
        return self.remote_object.is_data_available

    def add(self, key, values):
        self.remote_object.add(key, values)
        return self

    def add_unique(self, key, values):
        self.remote_object.add_unique(key, values)
        return self

    def remove(self, key, values):
        self.remote_object.remove(key, values)
        return self

    def unset(self, key):
        self.remote_object.unset(key)
        return self

    def increment(self, key, amount=1):
        self.remote_object.increment(key, amount)
        return self

    def decrement(self, key, amount=1):
        self.remote_object.decrement(key, amount)
        return self

    def relation(self, name):
        """
        Returns a new, unresolved instance of the relation called `name`.
        """
        if name not in self.__relations__:
            raise AttributeError('{} has no relation {!r}'.format(type(self).__name__, name))
        return getattr(self, name)()

    def relation_loaded(self, name):
        return name in self._relations

    def set_relation(self, name, value):
        self._relations[name] = value
        return self

    def get_relation_value(self, name):
        if self.relation_loaded(name):
            return self._relations[name]

        if name in self.__relations__:
            log.debug('Loading relation {}.{}', type(self).__name__, name)
            results = self.relation(name).get_results()
            self.set_relation(name, results)
            return results
        return None

    def belongs_to(self, other_class, key=None):
        """
        This object holds a pointer to an object of `other_class`.

        Args:
            other_class (class or str): The related model class, or its name.
            key (str): Attribute holding the pointer. Defaults to the name
                of the relation method.
        """
        return BelongsTo(self, resolve_model(other_class), key)

    def belongs_to_many(self, other_class, key=None):
        """
        This object holds an array of pointers to objects of `other_class`.
        """
        return BelongsToMany(self, resolve_model(other_class), key)

    def has_many(self, other_class, key=None):
        """
        Objects of `other_class` hold a pointer to this object.
        """
        return HasMany(self, resolve_model(other_class), key)

    def has_many_array(self, other_class, key=None, back_reference=False):
        """
        Objects of `other_class` hold an array of pointers, one of them to
        this object. This is the reverse of `belongs_to_many`.
        """
        return HasManyArray(self, resolve_model(other_class), key, back_reference)

    def to_dict(self, ancestors=()):
        """
        Returns the remote object as a plain nested dict, plus every relation
        resolved so far.

        Resolved relations replace the attribute they are stored in, so
        relations eager loaded on related models are serialized too.
        Relations that were never accessed are left out, so serializing never
        makes remote calls.
        """
        result = self.remote_object.to_dict(ancestors)
        ancestors = tuple(ancestors) + (self.remote_object,)
        for name, value in self._relations.items():
            if value is None and name in result:
                continue
            result[name] = self._relation_to_plain(value, ancestors)
        return result

    def to_json(self, **kwargs):
        return json.dumps(self.to_dict(), **kwargs)

    @classmethod
    def _relation_to_plain(cls, value, ancestors):
        if isinstance(value, Model):
            remote_object = value.remote_object
            if not remote_object.is_data_available or any(
                    remote_object is a or remote_object == a for a in ancestors):
                return remote_object.to_pointer()
            return value.to_dict(ancestors)
        elif isinstance(value, (list, tuple)):
            return [cls._relation_to_plain(v, ancestors) for v in value]
        return to_plain(value, ancestors)

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError('{!r} object has no attribute {!r}'.format(type(self).__name__, name))
        return self.get(name)

    def __setattr__(self, name, value):
        if name.startswith('_') or _is_class_attribute(type(self), name):
            object.__setattr__(self, name, value)
        else:
            self.set(name, value)

    def __getitem__(self, key):
        return self.get(key)

    def __setitem__(self, key, value):
        self.set(key, value)

    def __contains__(self, key):
        return key == 'id' or key in self.__relations__ or self.remote_object.has(key)

    def __eq__(self, other):
        if not isinstance(other, Model):
            return NotImplemented
        return self.remote_object == other.remote_object

    def __ne__(self, other):
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self):
        return hash(self.remote_object)

    def __repr__(self):
        return '<{} id={!r}>'.format(type(self).__name__, self.id)

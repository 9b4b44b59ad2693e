# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""
Client side representation of objects living in the remote store.

A `RemoteObject` buffers every mutation until it is saved, and knows how to
encode itself (and everything it references) to and from the wire format
understood by the store::

    {"__type": "Pointer", "className": "Post", "objectId": "Ed1nuqPvcm"}
    {"__type": "Object", "className": "Post", "objectId": "Ed1nuqPvcm", ...}
    {"__type": "Date", "iso": "2017-04-17T10:30:05.123Z"}
    {"__type": "File", "name": "cover.png", "url": "http://..."}
    {"__type": "Bytes", "base64": "aGVsbG8="}

"""

import base64
from collections.abc import Mapping
from datetime import datetime

from pockets import is_listy, listify
from pockets.autolog import log

from parsnip.errors import InvalidStateError
from parsnip.utils import format_date, parse_date


__all__ = ['RESERVED_KEYS', 'RemoteFile', 'RemoteObject', 'unwrap', 'encode', 'decode', 'to_plain']


RESERVED_KEYS = ('objectId', 'createdAt', 'updatedAt')

DELETE_OP = {'__op': 'Delete'}


class RemoteFile(object):
    """
    Reference to a file previously uploaded to the remote store.
    """

    def __init__(self, name, url=None):
        self.name = name
        self.url = url

    def encode(self):
        return {'__type': 'File', 'name': self.name, 'url': self.url}

    def __eq__(self, other):
        if not isinstance(other, RemoteFile):
            return NotImplemented
        return (self.name, self.url) == (other.name, other.url)

    def __ne__(self, other):
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self):
        return hash((self.name, self.url))

    def __repr__(self):
        return '<RemoteFile name={!r} url={!r}>'.format(self.name, self.url)


def unwrap(value):
    """
    Returns the `RemoteObject` wrapped by a model, or `value` unchanged.
    """
    remote_object = getattr(type(value), '__remote_object_attr__', None)
    if remote_object:
        return getattr(value, remote_object)
    return value


def encode(value):
    """
    Encodes `value` to the wire format sent to the remote store.

    Referenced objects are always encoded as pointers, which means they must
    have been saved first.

    Raises:
        InvalidStateError: If `value` references an unsaved object.
    """
    value = unwrap(value)
    if isinstance(value, RemoteObject):
        if not value.object_id:
            raise InvalidStateError('Cannot encode a pointer to an unsaved {} object'.format(value.class_name))
        return value.to_pointer()
    elif isinstance(value, RemoteFile):
        return value.encode()
    elif isinstance(value, datetime):
        return {'__type': 'Date', 'iso': format_date(value)}
    elif isinstance(value, (bytes, bytearray)):
        return {'__type': 'Bytes', 'base64': base64.b64encode(bytes(value)).decode('ascii')}
    elif isinstance(value, Mapping):
        return {k: encode(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [encode(v) for v in value]
    return value


def decode(value, store=None):
    """
    Decodes a wire format `value` returned by the remote store.

    Args:
        value: The value to decode.
        store (parsnip.store.RemoteStore): The store any decoded
            `RemoteObject` should be bound to.

    Returns:
        The decoded value. Pointers become `RemoteObject` instances without
        data, expanded objects become `RemoteObject` instances with data.
    """
    if isinstance(value, Mapping):
        type_ = value.get('__type')
        if type_ == 'Pointer':
            return RemoteObject.pointer(value['className'], value['objectId'], store)
        elif type_ == 'Object':
            return RemoteObject.from_payload(value['className'], value, store)
        elif type_ == 'Date':
            return parse_date(value['iso'])
        elif type_ == 'File':
            return RemoteFile(value['name'], value.get('url'))
        elif type_ == 'Bytes':
            return base64.b64decode(value['base64'])
        return {k: decode(v, store) for k, v in value.items()}
    elif isinstance(value, list):
        return [decode(v, store) for v in value]
    return value


def to_plain(value, ancestors=()):
    """
    Converts `value` to a structure made only of plain JSON-able types.

    Fetched objects are expanded recursively. Pointer-only objects, and
    objects already being expanded higher up in the tree, are left as
    pointers.
    """
    value = unwrap(value)
    if isinstance(value, RemoteObject):
        if not value.is_data_available or any(value is a or value == a for a in ancestors):
            return value.to_pointer()
        return value.to_dict(ancestors)
    elif isinstance(value, RemoteFile):
        return value.encode()
    elif isinstance(value, datetime):
        return format_date(value)
    elif isinstance(value, (bytes, bytearray)):
        return {'__type': 'Bytes', 'base64': base64.b64encode(bytes(value)).decode('ascii')}
    elif isinstance(value, Mapping):
        return {k: to_plain(v, ancestors) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [to_plain(v, ancestors) for v in value]
    return value


def _iter_unsaved(value):
    if isinstance(value, RemoteObject):
        if not value.object_id and not value._saving:
            yield value
    elif isinstance(value, Mapping):
        for v in value.values():
            for obj in _iter_unsaved(v):
                yield obj
    elif isinstance(value, (list, tuple)):
        for v in value:
            for obj in _iter_unsaved(v):
                yield obj


class RemoteObject(object):
    """
    Attribute container for one object of the remote store.

    Attribute changes are buffered locally until `save` is called. An object
    created from a pointer only knows its class name and id; its attributes
    become available once it is fetched.

    Attributes:
        class_name (str): Name of the remote class, e.g. "Post" or "_User".
        object_id (str): Store assigned id, None until first saved.
        created_at (datetime): Set by the store, None until first saved.
        updated_at (datetime): Set by the store, None until first saved.
        store (parsnip.store.RemoteStore): Store used for remote calls.
    """

    def __init__(self, class_name, object_id=None, store=None):
        self.class_name = class_name
        self.object_id = object_id
        self.store = store
        self.created_at = None
        self.updated_at = None
        self._server_data = {}
        self._pending = {}
        self._unset = set()
        self._data_available = object_id is None
        self._saving = False

    @classmethod
    def pointer(cls, class_name, object_id, store=None):
        obj = cls(class_name, object_id, store)
        obj._data_available = False
        return obj

    @classmethod
    def from_payload(cls, class_name, payload, store=None):
        obj = cls(class_name, payload.get('objectId'), store)
        obj._merge(payload)
        return obj

    @property
    def is_data_available(self):
        return self._data_available

    @property
    def is_dirty(self):
        return not self.object_id or bool(self._pending or self._unset)

    @property
    def dirty_keys(self):
        return set(self._pending).union(self._unset)

    def keys(self):
        keys = [k for k in self._server_data if k not in self._unset]
        keys.extend(k for k in self._pending if k not in self._server_data)
        return keys

    def has(self, key):
        if key in self._unset:
            return False
        return key in self._pending or key in self._server_data

    def get(self, key, default=None):
        if key in self._unset:
            return default
        if key in self._pending:
            return self._pending[key]
        return self._server_data.get(key, default)

    def set(self, key, value):
        if key in RESERVED_KEYS:
            raise ValueError('Cannot set reserved key {!r}'.format(key))
        value = unwrap(value)
        if isinstance(value, Mapping):
            value = dict(value)
        elif isinstance(value, (list, tuple)):
            value = [unwrap(v) for v in value]
        self._pending[key] = value
        self._unset.discard(key)
        return self

    def add(self, key, values):
        current = list(self.get(key) or [])
        current.extend(unwrap(v) for v in self._coerce_list(values))
        return self._set_array(key, current)

    def add_unique(self, key, values):
        current = list(self.get(key) or [])
        added = False
        for value in self._coerce_list(values):
            value = unwrap(value)
            if value not in current:
                current.append(value)
                added = True
        if not added and self.has(key):
            return self
        return self._set_array(key, current)

    def remove(self, key, values):
        removed = [unwrap(v) for v in self._coerce_list(values)]
        current = [v for v in (self.get(key) or []) if v not in removed]
        return self._set_array(key, current)

    def unset(self, key):
        self._pending.pop(key, None)
        self._unset.add(key)
        return self

    def increment(self, key, amount=1):
        self._pending[key] = (self.get(key) or 0) + amount
        self._unset.discard(key)
        return self

    def decrement(self, key, amount=1):
        return self.increment(key, -amount)

    def save(self, use_master_key=False):
        """
        Saves pending changes to the remote store.

        Unsaved objects referenced by pending attributes are saved first, so
        they can be sent as pointers. Saving an already persisted object
        without pending changes makes no remote call.

        Raises:
            InvalidStateError: If the object is not bound to a store.
            RemoteStoreError: If the store rejects the save.
        """
        store = self._require_store()
        self._saving = True
        try:
            for value in list(self._pending.values()):
                for child in _iter_unsaved(value):
                    child.save(use_master_key)

            if not self.is_dirty:
                return self

            attributes = {k: encode(v) for k, v in self._pending.items()}
            attributes.update({k: dict(DELETE_OP) for k in self._unset})

            log.debug('Saving {}({}) keys={}', self.class_name, self.object_id, sorted(attributes))
            object_id, created_at, updated_at = store.create_or_update(
                self.class_name, self.object_id, attributes, use_master_key)
        finally:
            self._saving = False

        self.object_id = object_id
        self.created_at = created_at or self.created_at
        self.updated_at = updated_at or self.updated_at
        self._server_data.update(self._pending)
        for key in self._unset:
            self._server_data.pop(key, None)
        self._pending.clear()
        self._unset.clear()
        return self

    def fetch(self, use_master_key=False):
        """
        Loads every attribute of this object from the remote store.

        Pending changes to keys returned by the store are discarded.

        Raises:
            InvalidStateError: If the object has never been saved.
            ObjectNotFoundError: If the object no longer exists.
        """
        store = self._require_store()
        if not self.object_id:
            raise InvalidStateError('Cannot fetch a {} object without an id'.format(self.class_name))
        log.debug('Fetching {}({})', self.class_name, self.object_id)
        self._merge(store.fetch_by_id(self.class_name, self.object_id, use_master_key))
        return self

    def destroy(self, use_master_key=False):
        store = self._require_store()
        if not self.object_id:
            raise InvalidStateError('Cannot delete a {} object without an id'.format(self.class_name))
        log.debug('Deleting {}({})', self.class_name, self.object_id)
        store.delete(self.class_name, self.object_id, use_master_key)

    def to_pointer(self):
        return {'__type': 'Pointer', 'className': self.class_name, 'objectId': self.object_id}

    def to_dict(self, ancestors=()):
        """
        Returns this object as a plain nested dict.

        Dates are formatted the way the store returns them, files are
        encoded and fetched objects are expanded. A reference back to an
        object already being expanded is kept as a pointer.
        """
        ancestors = tuple(ancestors) + (self,)
        result = {'objectId': self.object_id}
        if self.created_at:
            result['createdAt'] = format_date(self.created_at)
        if self.updated_at:
            result['updatedAt'] = format_date(self.updated_at)
        for key in self.keys():
            result[key] = to_plain(self.get(key), ancestors)
        return result

    def _merge(self, payload):
        server_data = {}
        for key, value in payload.items():
            if key == 'objectId':
                self.object_id = value
            elif key == 'createdAt':
                self.created_at = parse_date(value) if value else None
            elif key == 'updatedAt':
                self.updated_at = parse_date(value) if value else None
            elif key not in ('__type', 'className'):
                server_data[key] = decode(value, self.store)
                self._pending.pop(key, None)
                self._unset.discard(key)
        self._server_data = server_data
        self._data_available = True

    def _set_array(self, key, values):
        self._pending[key] = values
        self._unset.discard(key)
        return self

    def _coerce_list(self, values):
        return listify(values) if is_listy(values) or values is None else [values]

    def _require_store(self):
        if self.store is None:
            raise InvalidStateError('{} object is not bound to a store'.format(self.class_name))
        return self.store

    def __eq__(self, other):
        if not isinstance(other, RemoteObject):
            return NotImplemented
        if not self.object_id or not other.object_id:
            return self is other
        return (self.class_name, self.object_id) == (other.class_name, other.object_id)

    def __ne__(self, other):
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self):
        return hash(self.class_name)

    def __repr__(self):
        return '<RemoteObject {}({})>'.format(self.class_name, self.object_id)

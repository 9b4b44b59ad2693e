# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""
The contract between models and the remote object store.

Every value crossing this boundary is in wire format: pointers, dates,
files and bytes are encoded as ``{"__type": ...}`` dicts. Payloads returned
by the store carry ``objectId``, ``createdAt`` and ``updatedAt`` (ISO
strings) alongside the object's attributes.

Failures are raised as `parsnip.errors.RemoteStoreError`.
"""

from abc import ABCMeta, abstractmethod


__all__ = ['RemoteStore', 'DEFAULT_LIMIT', 'MAX_LIMIT']


DEFAULT_LIMIT = 100
MAX_LIMIT = 1000


class RemoteStore(metaclass=ABCMeta):

    @abstractmethod
    def create_or_update(self, class_name, object_id, attributes, use_master_key=False):
        """
        Creates a new object, or updates an existing one.

        Args:
            class_name (str): Remote class of the object.
            object_id (str): Id of the object to update, None to create.
            attributes (dict): Wire encoded attributes to write. A value of
                ``{"__op": "Delete"}`` removes the attribute.
            use_master_key (bool): Bypass access control.

        Returns:
            tuple: ``(object_id, created_at, updated_at)``, timestamps as
                timezone aware datetimes.
        """

    @abstractmethod
    def fetch_by_id(self, class_name, object_id, use_master_key=False):
        """
        Returns the payload of one object.

        Raises:
            ObjectNotFoundError: If there is no such object.
        """

    @abstractmethod
    def delete(self, class_name, object_id, use_master_key=False):
        pass

    @abstractmethod
    def query(self, class_name, where, order=None, include=None, keys=None, skip=None, limit=None,
              use_master_key=False):
        """
        Returns the payloads of the objects matching `where`.

        Args:
            class_name (str): Remote class to query.
            where (dict): Constraints in native format.
            order (list): Sort keys, prefixed with "-" for descending order.
            include (list): Dot separated paths of pointers to return
                expanded, as ``{"__type": "Object", ...}`` payloads.
            keys (list): Restrict returned attributes to these keys.
            skip (int): Number of results to skip.
            limit (int): Maximum number of results, at most `MAX_LIMIT`.
                Defaults to `DEFAULT_LIMIT`.
            use_master_key (bool): Bypass access control.
        """

    @abstractmethod
    def count(self, class_name, where, use_master_key=False):
        pass

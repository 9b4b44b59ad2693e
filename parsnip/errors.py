# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""Exceptions raised by parsnip."""


__all__ = [
    'ParsnipException', 'RemoteStoreError', 'ObjectNotFoundError', 'ModelNotFoundError',
    'InvalidOperatorError', 'LogicError', 'InvalidStateError']


class ParsnipException(Exception):
    pass


class RemoteStoreError(ParsnipException):
    """
    Any failure surfaced by the remote object store.

    Network failures, timeouts, validation and permission errors all end up
    here. They are never retried or masked.

    Attributes:
        code (int): Optional error code reported by the store.
    """

    def __init__(self, message, code=None):
        super(RemoteStoreError, self).__init__(message)
        self.code = code


class ObjectNotFoundError(RemoteStoreError):
    OBJECT_NOT_FOUND = 101

    def __init__(self, class_name, object_id):
        super(ObjectNotFoundError, self).__init__(
            'Object not found: {}({})'.format(class_name, object_id), code=self.OBJECT_NOT_FOUND)
        self.class_name = class_name
        self.object_id = object_id


class ModelNotFoundError(ParsnipException, LookupError):
    """
    Raised by the `find_or_fail` / `first_or_fail` family.

    Attributes:
        model (str): Name of the model class that was being looked up.
    """

    def __init__(self, model, message=None):
        super(ModelNotFoundError, self).__init__(message or 'No query results for model [{}]'.format(model))
        self.model = model


class InvalidOperatorError(ParsnipException, ValueError):
    def __init__(self, operator):
        super(InvalidOperatorError, self).__init__('Invalid operator: {!r}'.format(operator))
        self.operator = operator


class LogicError(ParsnipException):
    pass


class InvalidStateError(ParsnipException):
    pass

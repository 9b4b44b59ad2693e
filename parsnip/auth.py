# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""
User lookups for authentication layers.

Sessions, guards and password checks belong to the surrounding web
framework; this module only finds users in the remote store.
"""

from pockets.autolog import log

from parsnip.errors import InvalidStateError
from parsnip.model import Model


__all__ = ['UserModel', 'UserProvider']


class UserModel(Model):
    """
    Model of the store's built in user class.
    """
    __classname__ = '_User'

    auth_identifier_name = 'objectId'
    remember_token_name = 'rememberToken'

    def get_auth_identifier(self):
        return self.id

    def get_remember_token_name(self):
        return self.remember_token_name

    @property
    def remember_token(self):
        return self.get(self.remember_token_name)

    @remember_token.setter
    def remember_token(self, value):
        self.set(self.remember_token_name, value)


class UserProvider(object):
    """
    Retrieves users of `user_class`, always with the master key.

    Lookups report a missing user as None rather than raising.

    Args:
        user_class (class): The user model. Defaults to the `user_class`
            of the config `Model` is bound to.

    Raises:
        InvalidStateError: If no user class is given or configured.
    """

    def __init__(self, user_class=None):
        if user_class is None:
            user_class = Model.get_config().user_class
        if user_class is None:
            raise InvalidStateError('No user class given, and none is configured')
        self.user_class = user_class

    def retrieve_by_id(self, identifier):
        return self.user_class.query(True).find(identifier)

    def retrieve_by_token(self, identifier, token):
        return self.user_class.query(True).where({
            'objectId': identifier,
            self.user_class.remember_token_name: token}).first()

    def update_remember_token(self, user, token):
        user.update({user.get_remember_token_name(): token}, use_master_key=True)

    def retrieve_by_credentials(self, credentials):
        """
        Returns the first user matching every credential but the password.

        Args:
            credentials (dict): E.g. ``{'username': 'alice', 'password': 's3cret'}``.

        Returns:
            UserModel: The matching user, or None.
        """
        constraints = {k: v for k, v in (credentials or {}).items() if k != 'password'}
        if not constraints:
            log.debug('Refusing to look up a user without credentials')
            return None
        return self.user_class.query(True).where(constraints).first()

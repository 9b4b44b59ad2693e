# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

import os


__all__ = ['Config', 'TRUTHY_VALUES']


TRUTHY_VALUES = ('1', 'true', 'yes', 'on')


class Config(object):
    """
    Connection settings for the remote store.

    The `app_id`, `rest_key`, `master_key` and `server_url` credentials are
    never read by parsnip itself. They are carried for transport backed
    `parsnip.store.RemoteStore` implementations, such as a REST client,
    which read them from the config they are bound with. The bundled
    `parsnip.store.sql.SqlStore` ignores them.

    Args:
        store (parsnip.store.RemoteStore): Store remote calls are made on.
        app_id (str): Application id sent to the store.
        rest_key (str): REST API key sent to the store.
        master_key (str): Key used for calls made with the master key.
        server_url (str): Base url of the store's REST API.
        default_use_master_key (bool): Whether models and queries use the
            master key unless told otherwise.
        user_class (class): Model class used by `parsnip.auth.UserProvider`.
    """

    def __init__(self, store=None, app_id='app_id', rest_key='rest_key', master_key='master_key',
                 server_url='server_url', default_use_master_key=False, user_class=None):
        self.store = store
        self.app_id = app_id
        self.rest_key = rest_key
        self.master_key = master_key
        self.server_url = server_url
        self.default_use_master_key = bool(default_use_master_key)
        self.user_class = user_class

    @classmethod
    def from_env(cls, environ=None, **kwargs):
        """
        Builds a config from ``PARSE_*`` environment variables.

        Reads PARSE_APP_ID, PARSE_REST_KEY, PARSE_MASTER_KEY,
        PARSE_SERVER_URL and PARSE_USE_MASTER_KEY. Keyword arguments take
        precedence over the environment.
        """
        environ = os.environ if environ is None else environ
        settings = {
            'app_id': environ.get('PARSE_APP_ID', 'app_id'),
            'rest_key': environ.get('PARSE_REST_KEY', 'rest_key'),
            'master_key': environ.get('PARSE_MASTER_KEY', 'master_key'),
            'server_url': environ.get('PARSE_SERVER_URL', 'server_url'),
            'default_use_master_key': environ.get('PARSE_USE_MASTER_KEY', '').strip().lower() in TRUTHY_VALUES}
        settings.update(kwargs)
        return cls(**settings)

    def __repr__(self):
        return '<Config app_id={!r} server_url={!r} default_use_master_key={!r}>'.format(
            self.app_id, self.server_url, self.default_use_master_key)

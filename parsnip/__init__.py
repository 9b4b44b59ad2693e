# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""Models, relations and queries over a Parse-style remote object store"""

from parsnip._version import __version__  # noqa: F401
from parsnip.auth import UserModel, UserProvider  # noqa: F401
from parsnip.collection import Collection  # noqa: F401
from parsnip.config import Config  # noqa: F401
from parsnip.errors import *  # noqa: F401,F403
from parsnip.model import Model, ModelMeta, relation, resolve_model  # noqa: F401
from parsnip.objects import RemoteFile, RemoteObject  # noqa: F401
from parsnip.query import Query  # noqa: F401
from parsnip.relations import *  # noqa: F401,F403
from parsnip.store import RemoteStore  # noqa: F401
from parsnip.validation import PresenceVerifier  # noqa: F401

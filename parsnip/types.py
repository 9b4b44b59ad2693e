# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

import json

from pytz import UTC
from sqlalchemy.types import DateTime, Text, TypeDecorator


__all__ = ['JSON', 'UTCDateTime']


class JSON(TypeDecorator):
    """
    Stores any JSON serializable value as text.
    """
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return json.dumps(value, sort_keys=True)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return json.loads(value)

    def compare_values(self, x, y):
        return x == y


class UTCDateTime(TypeDecorator):
    """
    Timezone aware datetime, stored as naive UTC.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is not None:
            return value.replace(tzinfo=UTC)

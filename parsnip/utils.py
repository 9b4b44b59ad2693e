# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""Naming, date and identifier utilities."""

import random
import string
from datetime import datetime

from pytz import UTC


__all__ = ['lcfirst', 'pluralize', 'format_date', 'parse_date', 'utcnow', 'new_object_id', 'OBJECT_ID_LENGTH']


OBJECT_ID_LENGTH = 10
_OBJECT_ID_CHARS = string.ascii_letters + string.digits
_random = random.SystemRandom()


def lcfirst(name):
    """
    Lower-cases the first character of `name`.

    >>> lcfirst('BlogPost')
    'blogPost'

    """
    return name[:1].lower() + name[1:]


def pluralize(name):
    """
    Naive English pluralization, good enough for default relation keys.

    >>> pluralize('post')
    'posts'
    >>> pluralize('category')
    'categories'
    >>> pluralize('box')
    'boxes'

    """
    if not name:
        return name
    lower = name.lower()
    if lower.endswith('y') and lower[-2:-1] not in 'aeiou':
        return name[:-1] + 'ies'
    if lower.endswith(('s', 'x', 'z', 'ch', 'sh')):
        return name + 'es'
    return name + 's'


def utcnow():
    return datetime.now(UTC)


def format_date(value):
    """
    Formats a datetime the way the remote store returns dates.

    Naive datetimes are assumed to already be in UTC.

    >>> format_date(datetime(2017, 4, 17, 10, 30, 5, 123456))
    '2017-04-17T10:30:05.123Z'

    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return '{}.{:03d}Z'.format(value.strftime('%Y-%m-%dT%H:%M:%S'), value.microsecond // 1000)


def parse_date(value):
    """
    Parses an ISO-8601 date string as returned by the remote store.

    Returns:
        datetime: A timezone aware datetime in UTC.
    """
    value = value.rstrip('Z')
    fmt = '%Y-%m-%dT%H:%M:%S.%f' if '.' in value else '%Y-%m-%dT%H:%M:%S'
    return datetime.strptime(value, fmt).replace(tzinfo=UTC)


def new_object_id():
    return ''.join(_random.choice(_OBJECT_ID_CHARS) for _ in range(OBJECT_ID_LENGTH))

""" Tools for working with document identifiers """
from datetime import datetime, timezone

from bson import ObjectId
from dateutil import tz

from ..exc import InvalidArgumentError


def to_object_id(value):
    """ Convert a string to ObjectId, if it looks like one

        Anything else (an ObjectId already, an int, a custom string key) is returned unchanged.
    """
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def to_object_ids(values):
    """ to_object_id() applied to a single value or to a list of values. Always returns a list. """
    if values is None:
        return []
    if not isinstance(values, (list, tuple, set, frozenset)):
        values = [values]
    return [to_object_id(v) for v in values]


def entity_key(value, key: str = '_id'):
    """ Get the key from an entity or a dict; return everything else as is

        Relation helpers like attach() and associate() accept both entities and ids.
    """
    if isinstance(value, dict):
        return value.get(key)
    if hasattr(value, 'get_attributes'):
        return value.get(key)
    return value


def utcnow() -> datetime:
    """ Current time, as the store expects it """
    return datetime.now(timezone.utc)


def now_in(tz_name: str) -> datetime:
    """ Current time in a named timezone: 'UTC', 'Europe/Berlin', ...

        The store keeps the instant, so this only matters for code that reads the value before it is saved.

        :raises InvalidArgumentError: unknown timezone
    """
    if not tz_name or tz_name.upper() == 'UTC':
        return utcnow()
    zone = tz.gettz(tz_name)
    if zone is None:
        raise InvalidArgumentError('Unknown timezone: {!r}'.format(tz_name))
    return datetime.now(zone)

"""
### Model

A model describes a collection, and its entities are documents with change tracking:

```python
class User(Model):
    __settings__ = ModelSettingsDict(collection='users', use_soft_delete=True)

    @relation
    def posts(self):
        return self.has_many('Post')

user = User.where('email', 'a@example.com').first()
user.set('name', 'Alice')
user.is_dirty('name')  # -> True
user.get_changes()  # -> {'name': {'old': 'alice', 'new': 'Alice'}}
user.save()  # only `name` (and `updatedAt`) are written
```

Attribute access is explicit: get()/set()/fill(), or the mapping interface (`user['name']`).
Every entity keeps a snapshot of its original state: dirty fields are found by comparing
the current attributes with the snapshot. The snapshot is reset after every successful write.

Relations are declared as methods decorated with @relation: they are collected into the model's
`__relations__` registry, which is what with_() looks relations up in.
"""

from copy import deepcopy
from typing import *

from .exc import InvalidArgumentError, ModelNotFoundError
from .query import QueryBuilder
from .relations import (HasOne, HasMany, HasOneThrough, HasManyThrough, BelongsTo, BelongsToMany,
                        MorphOne, MorphMany, MorphTo, MorphToMany, MorphedByMany)
from .util import ModelSettingsDict, register_model, now_in


def relation(method):
    """ Declare a relation method

        The method receives the parent entity and returns a Relation:

            @relation
            def posts(self):
                return self.has_many('Post')
    """
    method.__relation__ = True
    return method


def _flatten(fields):
    flat = []
    for field in fields:
        if isinstance(field, (list, tuple, set, frozenset)):
            flat.extend(field)
        else:
            flat.append(field)
    return flat


class Model:
    """ Base class for models """

    #: Model settings
    __settings__ = ModelSettingsDict()

    #: Relation registry: {name: relation method}
    __relations__ = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        # Default collection name
        if cls.__settings__['collection'] is None:
            cls.__settings__ = cls.__settings__.derive(collection=cls.__name__.lower() + 's')

        # Collect relations, including inherited ones
        relations = {}
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                if getattr(value, '__relation__', False):
                    relations[name] = value
        cls.__relations__ = relations

        register_model(cls)

    def __init__(self, attributes: Mapping = None, **kwargs):
        """ Make a new entity (not saved yet) """
        self._init_state(type(self).__settings__)
        self.fill({**(attributes or {}), **kwargs})

    def _init_state(self, settings: ModelSettingsDict):
        #: Settings the entity was loaded with
        self._settings = settings
        #: Current attributes
        self._attributes = {}
        #: Snapshot of the attributes as they are in the store
        self._original = {}
        #: Loaded relations
        self._relations = {}
        #: Fields written by the last save()
        self._changes = {}
        #: Is the entity in the store?
        self._exists = False

    @classmethod
    def from_document(cls, document: Mapping, settings: ModelSettingsDict = None):
        """ Make an entity from a document loaded from the store """
        instance = cls.__new__(cls)
        instance._init_state(settings or cls.__settings__)
        instance._sync(document)
        return instance

    @classmethod
    def query(cls, **settings) -> QueryBuilder:
        """ Start a query

        :param settings: Settings to override for this query only, e.g. `use_soft_delete=False`
        """
        return QueryBuilder(cls, cls.__settings__.derive(**settings) if settings else cls.__settings__)

    def _query(self, session=None) -> QueryBuilder:
        """ A query for this very entity: any state, including soft-deleted """
        return QueryBuilder(type(self), self._settings) \
            .with_session(session) \
            .with_trashed() \
            .where('_id', self.key)

    def __repr__(self):
        return '<{} {}>'.format(self.__class__.__name__, self._attributes.get('_id'))

    # region Accessors

    @property
    def key(self):
        """ The identity: `_id` """
        return self._attributes.get('_id')

    @property
    def exists(self) -> bool:
        return self._exists

    def get(self, field: str, default=None):
        return self._attributes.get(field, default)

    def set(self, field: str, value):
        self._attributes[field] = value
        return self

    def fill(self, attributes: Mapping):
        """ Set many attributes at once """
        self._attributes.update(attributes)
        return self

    def forget(self, field: str):
        """ Remove a field from the entity, as if it has never been loaded """
        self._attributes.pop(field, None)
        self._original.pop(field, None)
        return self

    def get_attributes(self) -> dict:
        return dict(self._attributes)

    def __getitem__(self, field):
        if field in self._attributes:
            return self._attributes[field]
        return self._relations[field]

    def __setitem__(self, field, value):
        self.set(field, value)

    def __contains__(self, field):
        return field in self._attributes or field in self._relations

    def get_relation(self, name: str, default=None):
        return self._relations.get(name, default)

    def set_relation(self, name: str, value):
        self._relations[name] = value
        return self

    def relation_loaded(self, name: str) -> bool:
        return name in self._relations

    def to_dict(self) -> dict:
        """ Attributes + loaded relations, as plain dicts """
        document = dict(self._attributes)
        for name, value in self._relations.items():
            if isinstance(value, list):
                document[name] = [v.to_dict() for v in value]
            elif value is not None:
                document[name] = value.to_dict()
            else:
                document[name] = None
        return document

    # endregion

    # region Change tracking

    def get_dirty(self) -> dict:
        """ Get the fields that differ from the snapshot: {field: new value} """
        return {field: value
                for field, value in self._attributes.items()
                if field not in self._original or self._original[field] != value}

    def is_dirty(self, *fields) -> bool:
        """ Have any of these fields (or any field at all) changed since loading? """
        dirty = self.get_dirty()
        fields = _flatten(fields)
        if not fields:
            return bool(dirty)
        return any(field in dirty for field in fields)

    def has_changes(self) -> bool:
        """ Has any field changed since loading? """
        return self.is_dirty()

    def is_clean(self, *fields) -> bool:
        return not self.is_dirty(*fields)

    def was_changed(self, *fields) -> bool:
        """ Were any of these fields (or any field at all) written by the last save()? """
        fields = _flatten(fields)
        if not fields:
            return bool(self._changes)
        return any(field in self._changes for field in fields)

    def get_changes(self) -> dict:
        """ Get dirty fields: {field: {'old': ..., 'new': ...}} """
        return {field: {'old': self._original.get(field), 'new': value}
                for field, value in self.get_dirty().items()}

    def get_original(self, *fields):
        """ Get the snapshot, or a value from it

            get_original() -> dict
            get_original('name') -> value
            get_original('name', 'age') -> dict
        """
        fields = _flatten(fields)
        if not fields:
            return deepcopy(self._original)
        if len(fields) == 1:
            return deepcopy(self._original.get(fields[0]))
        return {field: deepcopy(self._original.get(field)) for field in fields}

    def refresh(self):
        """ Discard unsaved changes """
        self._attributes = deepcopy(self._original)
        return self

    def _sync(self, document: Mapping):
        """ Make the entity reflect a stored document """
        self._attributes = dict(document)
        # deepcopy() ensures nested dicts and lists are compared in full
        self._original = deepcopy(self._attributes)
        self._exists = True

    def reload(self, session=None):
        """ Re-read the entity from the store

        :raises ModelNotFoundError: it's not there anymore
        """
        document = self._query(session).first()
        if document is None:
            raise ModelNotFoundError(self.__class__.__name__, {'_id': self.key})
        self._sync(document.get_attributes())
        self._relations = {}
        return self

    # endregion

    # region Persistence

    def save(self, session=None):
        """ Insert the entity, or write its dirty fields """
        if not self._exists:
            query = QueryBuilder(type(self), self._settings).with_session(session)
            document = query._insert_documents([self._attributes])[0]
            self._changes = dict(document)
            self._sync(document)
            return self

        dirty = self.get_dirty()
        dirty.pop('_id', None)
        if not dirty:
            return self

        document = self._query(session)._update_one(dirty)
        if document is None:
            raise ModelNotFoundError(self.__class__.__name__, {'_id': self.key})
        self._changes = dirty
        self._sync(document)
        return self

    def update(self, attributes: Mapping, session=None):
        """ fill() + save() """
        return self.fill(attributes).save(session=session)

    def _require_exists(self, action):
        if not self._exists:
            raise InvalidArgumentError('{}(): {} has not been saved'.format(action, self.__class__.__name__))

    def delete(self, session=None) -> bool:
        """ Delete the entity

            With soft delete, the entity is marked as deleted, and stays in the store.
        """
        self._require_exists('delete')
        settings = self._settings
        if not settings['use_soft_delete']:
            return self.force_delete(session=session)

        values = {settings['is_deleted']: True}
        if settings['use_timestamps']:
            values[settings['deleted_at']] = now_in(settings['timezone'])
        document = self._query(session)._update_one(values)
        if document is None:
            return False
        self._sync(document)
        return True

    def force_delete(self, session=None) -> bool:
        """ Remove the entity from the store """
        self._require_exists('force_delete')
        deleted = self._query(session)._delete_many()
        self._exists = False
        return deleted > 0

    def restore(self, session=None) -> bool:
        """ Un-delete a soft-deleted entity """
        self._require_exists('restore')
        settings = self._settings
        if not settings['use_soft_delete']:
            raise InvalidArgumentError('restore(): soft delete is not enabled for "{}"'.format(self.__class__.__name__))

        document = self._query(session)._update_one({
            settings['is_deleted']: False,
            settings['deleted_at']: None,
        })
        if document is None:
            return False
        self._sync(document)
        return True

    def trashed(self) -> bool:
        """ Is the entity soft-deleted? """
        return bool(self._settings['use_soft_delete'] and self._attributes.get(self._settings['is_deleted']))

    # endregion

    # region Relation declarations

    def has_one(self, related, foreign_key: str = None, local_key: str = '_id') -> HasOne:
        return HasOne(self, related, foreign_key, local_key)

    def has_many(self, related, foreign_key: str = None, local_key: str = '_id') -> HasMany:
        return HasMany(self, related, foreign_key, local_key)

    def has_one_through(self, related, through, first_key: str = None, second_key: str = None,
                        local_key: str = '_id', second_local_key: str = '_id') -> HasOneThrough:
        return HasOneThrough(self, related, through, first_key, second_key, local_key, second_local_key)

    def has_many_through(self, related, through, first_key: str = None, second_key: str = None,
                         local_key: str = '_id', second_local_key: str = '_id') -> HasManyThrough:
        return HasManyThrough(self, related, through, first_key, second_key, local_key, second_local_key)

    def belongs_to(self, related, foreign_key: str = None, owner_key: str = '_id') -> BelongsTo:
        return BelongsTo(self, related, foreign_key, owner_key)

    def belongs_to_many(self, related, collection: str = None,
                        foreign_pivot_key: str = None, related_pivot_key: str = None,
                        parent_key: str = '_id', related_key: str = '_id') -> BelongsToMany:
        return BelongsToMany(self, related, collection, foreign_pivot_key, related_pivot_key, parent_key, related_key)

    def morph_one(self, related, name: str, type_field: str = None, id_field: str = None,
                  local_key: str = '_id') -> MorphOne:
        return MorphOne(self, related, name, type_field, id_field, local_key)

    def morph_many(self, related, name: str, type_field: str = None, id_field: str = None,
                   local_key: str = '_id') -> MorphMany:
        return MorphMany(self, related, name, type_field, id_field, local_key)

    def morph_to(self, name: str, type_field: str = None, id_field: str = None,
                 owner_key: str = '_id') -> MorphTo:
        return MorphTo(self, name, type_field, id_field, owner_key)

    def morph_to_many(self, related, name: str, collection: str = None,
                      foreign_pivot_key: str = None, related_pivot_key: str = None,
                      parent_key: str = '_id', related_key: str = '_id') -> MorphToMany:
        return MorphToMany(self, related, name, collection, foreign_pivot_key, related_pivot_key,
                           parent_key, related_key)

    def morphed_by_many(self, related, name: str, collection: str = None,
                        foreign_pivot_key: str = None, related_pivot_key: str = None,
                        parent_key: str = '_id', related_key: str = '_id') -> MorphedByMany:
        return MorphedByMany(self, related, name, collection, foreign_pivot_key, related_pivot_key,
                             parent_key, related_key)

    # endregion


# Class-level shortcuts: `User.where(...)` is `User.query().where(...)`

_QUERY_SHORTCUTS = (
    'where', 'or_where', 'where_not', 'where_in', 'where_not_in', 'where_between', 'where_null', 'where_not_null',
    'select', 'exclude', 'order_by', 'sort', 'group_by', 'skip', 'limit',
    'with_', 'without', 'with_only', 'with_trashed', 'only_trashed',
    'all', 'first', 'find', 'find_or_fail', 'first_or_fail', 'sole', 'paginate', 'pluck', 'sample',
    'count', 'sum', 'avg', 'min', 'max',
    'insert', 'insert_many', 'create', 'create_many',
    'update_or_create', 'update_or_insert', 'first_or_create', 'first_or_new', 'destroy', 'force_destroy',
)


def _forward_to_query(name):
    def shortcut(cls, *args, **kwargs):
        return getattr(cls.query(), name)(*args, **kwargs)
    shortcut.__name__ = name
    shortcut.__doc__ = 'Shortcut for `query().{}()`'.format(name)
    return classmethod(shortcut)


for _name in _QUERY_SHORTCUTS:
    setattr(Model, _name, _forward_to_query(_name))
del _name

from typing import *


class ModelSettingsDict(dict):
    """ Model settings container.

        Every model carries one of these as `__settings__`, and every QueryBuilder receives one at init time.
        Nothing is ever changed in place: use derive() to make a tweaked copy.
        This way, toggling soft-delete for a single query does not leak into other queries of the same model.

        Example:

            class User(Model):
                __settings__ = ModelSettingsDict(
                    collection='users',
                    use_soft_delete=True,
                )

            # A query that does not care about timestamps
            User.query(use_timestamps=False).insert({...})
    """

    def __init__(self,
                 # --- storage
                 collection: str = None,
                 connection: str = None,
                 database_name: str = None,
                 database = None,
                 # --- soft delete
                 use_soft_delete: bool = False,
                 is_deleted: str = 'isDeleted',
                 deleted_at: str = 'deletedAt',
                 # --- timestamps
                 use_timestamps: bool = True,
                 created_at: str = 'createdAt',
                 updated_at: str = 'updatedAt',
                 timezone: str = 'UTC',
                 # --- relations
                 with_relations: Iterable[str] = (),
                 ):
        """ Init the settings

        Args:
            collection (str):
                Name of the collection. Model defaults it to the lowercased class name + 's'.
            connection (str):
                Connection URI (or alias) to look up with `Database.get_db()`.
                `None` means the default connection from the environment.
            database_name (str):
                Name of the database on that connection. `None` means the default one.
            database (pymongo.database.Database):
                A database handle to use as is. Takes precedence over `connection`.
            use_soft_delete (bool):
                Mark documents as deleted instead of removing them, and hide deleted documents
                from queries by default.
            is_deleted (str):
                Name of the boolean soft-delete marker field.
            deleted_at (str):
                Name of the field that gets the deletion time.
            use_timestamps (bool):
                Maintain creation and modification time fields.
            created_at (str):
                Name of the creation time field.
            updated_at (str):
                Name of the modification time field.
            timezone (str):
                Timezone of the timestamps this library sets: 'UTC', 'Asia/Jakarta', ...            with_relations (list[str]):
                Relations to eager-load with every query, unless without() says otherwise.
        """
        super(ModelSettingsDict, self).__init__(
            collection=collection,
            connection=connection,
            database_name=database_name,
            database=database,
            use_soft_delete=use_soft_delete,
            is_deleted=is_deleted,
            deleted_at=deleted_at,
            use_timestamps=use_timestamps,
            created_at=created_at,
            updated_at=updated_at,
            timezone=timezone,
            with_relations=tuple(with_relations),
        )

    def derive(self, **overrides) -> 'ModelSettingsDict':
        """ Make a copy with some settings overridden """
        unknown = set(overrides) - set(self)
        if unknown:
            raise TypeError('Unknown settings: {}'.format(', '.join(sorted(unknown))))
        return self.__class__(**{**self, **overrides})

    def _immutable(self, *args, **kwargs):
        raise TypeError('{} is immutable; use derive()'.format(self.__class__.__name__))

    __setitem__ = __delitem__ = _immutable
    update = pop = popitem = setdefault = clear = _immutable

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __repr__(self):
        return '{}({})'.format(self.__class__.__name__, super(ModelSettingsDict, self).__repr__())

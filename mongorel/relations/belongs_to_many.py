"""
### belongs_to_many

Links are stored in a pivot collection:

    users <- role_user: {userId, roleId} -> roles

```python
class User(Model):
    @relation
    def roles(self):
        return self.belongs_to_many('Role')  # collection='role_user', 'userId', 'roleId'

user.roles().attach([admin_id, editor_id])
user.roles().get()
```

The pivot collection name defaults to both model names, lowercased, sorted, and joined with '_'.
The related model's soft-delete scope applies as usual: a deleted role is not returned
even though its link is still there.

### morph_to_many, morphed_by_many

The polymorphic version: one pivot collection links a model with many kinds of models.

    posts, videos <- taggables: {tagId, taggableId, taggableType} -> tags

```python
class Post(Model):
    @relation
    def tags(self):
        return self.morph_to_many('Tag', 'taggable')

class Tag(Model):
    @relation
    def posts(self):
        return self.morphed_by_many('Post', 'taggable')
```
"""

from collections import OrderedDict

from .base import Relation, MATCH_NOTHING, hashable
from .pivot import PivotManager
from ..query import QueryBuilder
from ..util import ModelSettingsDict


class BelongsToMany(PivotManager, Relation):
    """ Many-to-many relation through a pivot collection """

    many = True

    def __init__(self, parent, related, collection: str = None,
                 foreign_pivot_key: str = None, related_pivot_key: str = None,
                 parent_key: str = '_id', related_key: str = '_id'):
        """ Init the relation

        :param collection: The pivot collection
        :param foreign_pivot_key: The pivot field that refers to the parent
        :param related_pivot_key: The pivot field that refers to the related model
        :param parent_key: The parent's field `foreign_pivot_key` refers to
        :param related_key: The related model's field `related_pivot_key` refers to
        """
        super(BelongsToMany, self).__init__(parent, related)

        owner_name = type(parent).__name__.lower()
        related_name = self.model.__name__.lower()

        self.collection = collection or '_'.join(sorted((owner_name, related_name)))
        self.foreign_pivot_key = foreign_pivot_key or owner_name + 'Id'
        self.related_pivot_key = related_pivot_key or related_name + 'Id'
        self.parent_key = parent_key
        self.related_key = related_key

    def pivot_type(self) -> dict:
        """ The type discriminator of pivot documents """
        return {}

    def pivot_query(self) -> QueryBuilder:
        """ A raw query on the pivot collection, limited to this relation's type """
        parent_settings = self.parent._settings
        settings = ModelSettingsDict(
            collection=self.collection,
            connection=parent_settings['connection'],
            database_name=parent_settings['database_name'],
            database=parent_settings['database'],
            use_timestamps=False,
        )
        query = QueryBuilder(None, settings).with_session(self._session)
        for field, value in self.pivot_type().items():
            query.where(field, value)
        return query

    def parent_keys(self):
        return [self.parent_key]

    def parent_constraints(self):
        if self.parent.get(self.parent_key) is None:
            return [MATCH_NOTHING]
        return [{self.related_key: {'$in': self._keys(self.related_ids())}}]

    def eager_load(self, parents, name, configure):
        keys = self._keys(p.get(self.parent_key) for p in parents)
        if not keys:
            return self._match_empty(parents, name)

        # Links of all parents: {parent key: set of related keys}
        links = self.pivot_query() \
            .where_in(self.foreign_pivot_key, keys) \
            ._get((self.foreign_pivot_key, self.related_pivot_key), eager=False)
        parent_to_related = OrderedDict()
        for link in links:
            parent_to_related.setdefault(hashable(link.get(self.foreign_pivot_key)), set()) \
                .add(hashable(link.get(self.related_pivot_key)))

        related_keys = self._keys(k for ks in parent_to_related.values() for k in ks)
        if not related_keys:
            return self._match_empty(parents, name)

        # Related documents: in the order the query gives them
        results, quiet = self._eager_fetch(configure, {self.related_key: {'$in': related_keys}}, self.related_key)
        for parent in parents:
            linked = parent_to_related.get(hashable(parent.get(self.parent_key)), ())
            parent.set_relation(name, [r for r in results if hashable(r.get(self.related_key)) in linked])
        self._strip(results, quiet)


class MorphToMany(BelongsToMany):
    """ Polymorphic many-to-many: the parent is one of many kinds of models

        Pivot: {<name>Id: parent key, <name>Type: parent class name, <related>Id: related key}
    """

    def __init__(self, parent, related, name: str, collection: str = None,
                 foreign_pivot_key: str = None, related_pivot_key: str = None,
                 parent_key: str = '_id', related_key: str = '_id'):
        super(MorphToMany, self).__init__(parent, related,
                                          collection or name + 's',
                                          foreign_pivot_key or name + 'Id',
                                          related_pivot_key,
                                          parent_key, related_key)
        self.name = name
        self.type_field = name + 'Type'

    def pivot_type(self):
        return {self.type_field: type(self.parent).__name__}


class MorphedByMany(BelongsToMany):
    """ The inverse of MorphToMany: the related model is one of many kinds of models

        Pivot: {<parent>Id: parent key, <name>Id: related key, <name>Type: related class name}
    """

    def __init__(self, parent, related, name: str, collection: str = None,
                 foreign_pivot_key: str = None, related_pivot_key: str = None,
                 parent_key: str = '_id', related_key: str = '_id'):
        super(MorphedByMany, self).__init__(parent, related,
                                            collection or name + 's',
                                            foreign_pivot_key,
                                            related_pivot_key or name + 'Id',
                                            parent_key, related_key)
        self.name = name
        self.type_field = name + 'Type'

    def pivot_type(self):
        return {self.type_field: self.model.__name__}

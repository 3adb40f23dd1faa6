"""
### morph_one, morph_many, morph_to

Polymorphic relations: the related documents may belong to many kinds of parents.
Every such document stores the parent's key and the parent's class name:

    comments: {commentableId: ..., commentableType: 'Post'}

```python
class Post(Model):
    @relation
    def comments(self):
        return self.morph_many('Comment', 'commentable')

class Comment(Model):
    @relation
    def commentable(self):
        return self.morph_to('commentable')  # Post, Video, ...: whatever commentableType says
```

morph_to() finds the model class by name in the model registry.
When eager-loaded, it runs one query per distinct type.
When the related document is not found (e.g. it was soft-deleted), the relation is left unset
rather than set to None.
"""

from collections import OrderedDict

from .base import Relation, MATCH_NOTHING, hashable
from ..util import find_model, entity_key


class MorphOneOrMany(Relation):
    """ Base for morph_one and morph_many """

    def __init__(self, parent, related, name: str, type_field: str = None, id_field: str = None,
                 local_key: str = '_id'):
        super(MorphOneOrMany, self).__init__(parent, related)

        self.name = name
        #: The field of the related model that stores the parent's class name
        self.type_field = type_field or name + 'Type'
        #: The field of the related model that refers to the parent
        self.id_field = id_field or name + 'Id'
        #: The parent's field `id_field` refers to
        self.local_key = local_key
        #: The type value of this parent
        self.morph_type = type(parent).__name__

    def parent_keys(self):
        return [self.local_key]

    def parent_constraints(self):
        value = self.parent.get(self.local_key)
        if value is None:
            return [MATCH_NOTHING]
        return [{self.type_field: self.morph_type, self.id_field: value}]

    def eager_load(self, parents, name, configure):
        keys = self._keys(p.get(self.local_key) for p in parents)
        if not keys:
            return self._match_empty(parents, name)

        results, quiet = self._eager_fetch(
            configure,
            {self.type_field: self.morph_type, self.id_field: {'$in': keys}},
            self.id_field)
        self._match(parents, name, self.local_key, self._dictionary(results, self.id_field))
        self._strip(results, quiet)

    def _prepare_insert(self, document):
        document = {
            **document,
            self.type_field: self.morph_type,
            self.id_field: self._parent_value(self.local_key),
        }
        return super(MorphOneOrMany, self)._prepare_insert(document)

    def save(self, entity):
        """ Attach an entity to the parent and save it """
        entity.set(self.type_field, self.morph_type)
        entity.set(self.id_field, self._parent_value(self.local_key))
        return entity.save(session=self._session)

    def save_many(self, entities):
        return [self.save(entity) for entity in entities]


class MorphOne(MorphOneOrMany):
    many = False


class MorphMany(MorphOneOrMany):
    many = True


class MorphTo(Relation):
    """ The inverse of morph_one/morph_many: the parent refers to a document of any model """

    many = False

    def __init__(self, parent, name: str, type_field: str = None, id_field: str = None, owner_key: str = '_id'):
        self.name = name
        #: The parent's field that stores the related model name
        self.type_field = type_field or name + 'Type'
        #: The parent's field that refers to the related document
        self.id_field = id_field or name + 'Id'
        #: The related model's field `id_field` refers to
        self.owner_key = owner_key

        # The related model: whatever the parent says.
        # An unknown type gives a relation that finds nothing.
        related = find_model(parent.get(self.type_field))
        self.resolved = related is not None
        super(MorphTo, self).__init__(parent, related or type(parent))

    def parent_keys(self):
        return [self.type_field, self.id_field]

    def parent_constraints(self):
        value = self.parent.get(self.id_field)
        if not self.resolved or value is None:
            return [MATCH_NOTHING]
        return [{self.owner_key: value}]

    def eager_load(self, parents, name, configure):
        # Group parents by type
        by_type = OrderedDict()
        for parent in parents:
            by_type.setdefault(parent.get(self.type_field), []).append(parent)

        # One query per type
        for type_name, group in by_type.items():
            model = find_model(type_name)
            keys = self._keys(p.get(self.id_field) for p in group)
            if model is None or not keys:
                continue

            query = configure(model.query().with_session(self._session))
            results, quiet = query._fetch(extra_match=[{self.owner_key: {'$in': keys}}],
                                          ensure_loaded=[self.owner_key])
            dictionary = self._dictionary(results, self.owner_key)

            # Not found: the relation stays unset
            for parent in group:
                matches = dictionary.get(hashable(parent.get(self.id_field)))
                if matches:
                    parent.set_relation(name, matches[0])
            query._strip(results, quiet)

    def associate(self, entity):
        """ Make the parent refer to an entity. Not saved until parent.save() """
        self.parent.set(self.type_field, type(entity).__name__)
        self.parent.set(self.id_field, entity_key(entity, self.owner_key))
        return self.parent

    def dissociate(self):
        self.parent.set(self.type_field, None)
        self.parent.set(self.id_field, None)
        return self.parent

from .base import Relation, MATCH_NOTHING
from ..util import entity_key


class BelongsTo(Relation):
    """ The parent refers to the related document:

            Post.userId == User._id

        ```python
        class Post(Model):
            @relation
            def user(self):
                return self.belongs_to('User')  # foreign_key='userId', owner_key='_id'
        ```
    """

    many = False

    def __init__(self, parent, related, foreign_key: str = None, owner_key: str = '_id'):
        super(BelongsTo, self).__init__(parent, related)

        #: The parent's field that refers to the related document
        self.foreign_key = foreign_key or self.model.__name__.lower() + 'Id'
        #: The related model's field the foreign key refers to
        self.owner_key = owner_key

    def parent_keys(self):
        return [self.foreign_key]

    def parent_constraints(self):
        value = self.parent.get(self.foreign_key)
        if value is None:
            return [MATCH_NOTHING]
        return [{self.owner_key: value}]

    def eager_load(self, parents, name, configure):
        keys = self._keys(p.get(self.foreign_key) for p in parents)
        if not keys:
            return self._match_empty(parents, name)

        results, quiet = self._eager_fetch(configure, {self.owner_key: {'$in': keys}}, self.owner_key)
        self._match(parents, name, self.foreign_key, self._dictionary(results, self.owner_key))
        self._strip(results, quiet)

    def associate(self, entity):
        """ Make the parent refer to an entity (or an id). Not saved until parent.save() """
        self.parent.set(self.foreign_key, entity_key(entity, self.owner_key))
        return self.parent

    def dissociate(self):
        """ Make the parent refer to nothing. Not saved until parent.save() """
        self.parent.set(self.foreign_key, None)
        return self.parent

"""
### has_one, has_many

The related documents refer to the parent:

    Post.userId == User._id

```python
class User(Model):
    @relation
    def posts(self):
        return self.has_many('Post')  # foreign_key='userId', local_key='_id'

user.posts().where('published', True).get()
user.posts().create({'title': 'Hello'})  # userId is set automatically
```

### has_one_through, has_many_through

The related documents are reached through an intermediate model:

    Country._id <- User.countryId ; User._id <- Post.userId

```python
class Country(Model):
    @relation
    def posts(self):
        return self.has_many_through('Post', 'User')  # first_key='countryId', second_key='userId'
```

The intermediate model is queried with its own soft-delete scope:
posts of deleted users are not reachable.
"""

from .base import Relation, MATCH_NOTHING, hashable
from ..util import resolve_model


class HasOneOrMany(Relation):
    """ Base for has_one and has_many """

    def __init__(self, parent, related, foreign_key: str = None, local_key: str = '_id'):
        super(HasOneOrMany, self).__init__(parent, related)

        #: The field of the related model that refers to the parent
        self.foreign_key = foreign_key or type(parent).__name__.lower() + 'Id'
        #: The parent's field the foreign key refers to
        self.local_key = local_key

    def parent_keys(self):
        return [self.local_key]

    def parent_constraints(self):
        value = self.parent.get(self.local_key)
        if value is None:
            return [MATCH_NOTHING]
        return [{self.foreign_key: value}]

    def eager_load(self, parents, name, configure):
        keys = self._keys(p.get(self.local_key) for p in parents)
        if not keys:
            return self._match_empty(parents, name)

        results, quiet = self._eager_fetch(configure, {self.foreign_key: {'$in': keys}}, self.foreign_key)
        self._match(parents, name, self.local_key, self._dictionary(results, self.foreign_key))
        self._strip(results, quiet)

    def _prepare_insert(self, document):
        # Related documents created through the relation refer to the parent
        document = {**document, self.foreign_key: self._parent_value(self.local_key)}
        return super(HasOneOrMany, self)._prepare_insert(document)

    def save(self, entity):
        """ Attach an entity to the parent and save it """
        entity.set(self.foreign_key, self._parent_value(self.local_key))
        return entity.save(session=self._session)

    def save_many(self, entities):
        return [self.save(entity) for entity in entities]


class HasOne(HasOneOrMany):
    many = False


class HasMany(HasOneOrMany):
    many = True


class HasManyThrough(Relation):
    """ A relation through an intermediate model """

    many = True

    def __init__(self, parent, related, through,
                 first_key: str = None, second_key: str = None,
                 local_key: str = '_id', second_local_key: str = '_id'):
        """ Init the relation

        :param through: The intermediate model
        :param first_key: Field of the intermediate model that refers to the parent
        :param second_key: Field of the related model that refers to the intermediate model
        :param local_key: Parent's field `first_key` refers to
        :param second_local_key: Intermediate model's field `second_key` refers to
        """
        super(HasManyThrough, self).__init__(parent, related)
        self.through = resolve_model(through)
        self.first_key = first_key or type(parent).__name__.lower() + 'Id'
        self.second_key = second_key or self.through.__name__.lower() + 'Id'
        self.local_key = local_key
        self.second_local_key = second_local_key

    def _through_query(self):
        return self.through.query().with_session(self._session)

    def parent_keys(self):
        return [self.local_key]

    def parent_constraints(self):
        value = self.parent.get(self.local_key)
        if value is None:
            return [MATCH_NOTHING]

        through_keys = self._through_query().where(self.first_key, value).pluck(self.second_local_key)
        return [{self.second_key: {'$in': self._keys(through_keys)}}]

    def eager_load(self, parents, name, configure):
        keys = self._keys(p.get(self.local_key) for p in parents)
        if not keys:
            return self._match_empty(parents, name)

        # Intermediate documents: map their keys to parent keys
        throughs = self._through_query() \
            .where_in(self.first_key, keys) \
            ._get((self.first_key, self.second_local_key), eager=False)
        through_to_parent = {hashable(t.get(self.second_local_key)): hashable(t.get(self.first_key))
                             for t in throughs}

        # Related documents
        results, quiet = self._eager_fetch(
            configure,
            {self.second_key: {'$in': self._keys(through_to_parent)}},
            self.second_key)

        dictionary = {}
        for result in results:
            parent_key = through_to_parent.get(hashable(result.get(self.second_key)))
            dictionary.setdefault(parent_key, []).append(result)

        self._match(parents, name, self.local_key, dictionary)
        self._strip(results, quiet)


class HasOneThrough(HasManyThrough):
    many = False

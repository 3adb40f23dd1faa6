"""
Mongorel is a query builder for MongoDB with models and relations.

Fluent calls are compiled into an aggregation pipeline:

```python
from mongorel import Model, ModelSettingsDict, relation

class User(Model):
    __settings__ = ModelSettingsDict(collection='users', use_soft_delete=True)

    @relation
    def posts(self):
        return self.has_many('Post')

class Post(Model):
    @relation
    def user(self):
        return self.belongs_to('User')

adults = User.where('age', '>=', 18) \
             .with_('posts', {'select': ['title'], 'sort': ['createdAt-']}) \
             .order_by('name') \
             .paginate(page=1, limit=20)
```

Relations: has_one, has_many, has_one_through, has_many_through, belongs_to, belongs_to_many,
morph_one, morph_many, morph_to, morph_to_many, morphed_by_many.

Entities track their changes, and save() only writes the dirty fields.
Soft delete and timestamps are configured per model.
"""

# Exceptions that are used here and there
from .exc import *

# Handlers: every section of the pipeline is compiled by its own handler
from . import handlers

# QueryBuilder compiles fluent calls into a pipeline and runs it
from .query import QueryBuilder

# Models, entities, and relations
from .model import Model, relation
from . import relations

# Queries without a model
from .db import DB

# Helpers
from .util import ModelSettingsDict, Database, ABSENT

"""
### QueryBuilder

A QueryBuilder collects fluent calls against a collection, and compiles them into an aggregation pipeline:

```python
users = User.where('age', '>=', 18) \
            .or_where('role', 'admin') \
            .order_by('name') \
            .select('name', 'age') \
            .limit(10) \
            .get()
```

Stages always come in the same order, no matter the order of calls:

1. `$match`: the condition tree + the soft-delete scope
2. `$sort`
3. `$group`
4. `$project`: inclusion or exclusion
5. `$skip`
6. `$limit`

Terminals (get(), first(), count(), paginate(), ...) compile the pipeline from the current state
and run it. The builder state is not modified by a terminal, with one exception: with_trashed(),
only_trashed() and with_() are consumed by a successful terminal, so that a builder that is kept around
does not leak them into unrelated queries. When the terminal fails, they are left in place.

Builders bound to a model return model entities; raw builders (see `DB.collection()`) return dicts.
"""

import logging
from contextlib import contextmanager
from copy import copy, deepcopy
from collections import OrderedDict
from typing import *

from pymongo import ReturnDocument

from .exc import InvalidArgumentError, ModelNotFoundError, MultipleRecordsFoundError, RelationNotFoundError
from .handlers import MongoFilter, FilterMixin, SoftDeleteScope, MongoSort, MongoGroup, MongoProject, MongoLimit, MongoAggregate
from .eager import EagerLoader, normalize_with
from .util import ModelSettingsDict, Database, to_object_id, to_object_ids, now_in

logger = logging.getLogger(__name__)


class QueryBuilder(FilterMixin):
    """ Fluent query builder & pipeline compiler """

    def __init__(self, model=None, settings: ModelSettingsDict = None):
        """ Init a query

        :param model: The model class. `None` for raw queries that return dicts.
        :type model: type[mongorel.model.Model] | None
        :param settings: Model settings. Defaults to `model.__settings__`.
        """
        if settings is None:
            settings = model.__settings__

        #: The model class (or None)
        self.model = model
        #: Immutable settings of this query
        self.settings = settings

        # Handlers
        self._filter = MongoFilter(settings)
        self._scope = SoftDeleteScope(settings)
        self._sort = MongoSort(settings)
        self._group = MongoGroup(settings)
        self._project = MongoProject(settings)
        self._limit = MongoLimit(settings)
        self._aggregate = MongoAggregate(settings)

        #: Eager-load requests: {relation name: options}
        self._with = self._default_with()

        #: The session every store call is made with
        self._session = None

        # Terminals in progress, and the constraints resolved for them
        self._terminal_depth = 0
        self._resolved_constraints = None

    def __repr__(self):
        return '{}({}, {!r})'.format(self.__class__.__name__,
                                     self.model.__name__ if self.model else None,
                                     self.settings['collection'])

    # region Fluent interface

    def select(self, *fields):
        """ Only load these fields (and `_id`) """
        self._project.select(*fields)
        return self

    def exclude(self, *fields):
        """ Load everything but these fields """
        self._project.exclude(*fields)
        return self

    def order_by(self, field: str, direction='asc', case_insensitive: bool = False):
        """ Sort by a field

        :param direction: 'asc', 'desc', 1, -1
        :param case_insensitive: Compare lowercased strings
        """
        self._sort.add(field, direction, case_insensitive)
        return self

    def sort(self, *sort_spec):
        """ Sort, compact syntax: sort('age-', 'name+') """
        self._sort.input(sort_spec)
        return self

    def group_by(self, *fields):
        self._group.add(*fields)
        return self

    def skip(self, skip: int):
        self._limit.input(skip=skip)
        return self

    offset = skip

    def limit(self, limit: int):
        """ Limit the number of documents. 0 means "no limit" """
        self._limit.input(limit=limit)
        return self

    def with_trashed(self):
        """ Include soft-deleted documents """
        self._scope.with_trashed()
        return self

    def only_trashed(self):
        """ Only soft-deleted documents """
        self._scope.only_trashed()
        return self

    def with_(self, relations, options=None):
        """ Eager-load relations

            with_('posts')
            with_('posts', {'select': ['title']})
            with_(['posts', 'posts.comments'])
            with_({'posts': {'limit': 10}, 'roles': lambda q: q.where('active', True)})

        :raises InvalidArgumentError: raw query, or invalid options
        :raises RelationNotFoundError: the model has no such relation
        """
        if self.model is None:
            raise InvalidArgumentError('Raw queries cannot load relations')

        requests = normalize_with(relations, options)
        for name in requests:
            head = name.split('.', 1)[0]
            if head not in self.model.__relations__:
                raise RelationNotFoundError(self.model.__name__, head)

        self._with.update(requests)
        return self

    def without(self, *relations):
        """ Do not eager-load these relations (even if the model loads them by default)

        :raises RelationNotFoundError: the model has no such relation
        """
        for name in relations:
            head = name.split('.', 1)[0]
            if self.model is not None and head not in self.model.__relations__:
                raise RelationNotFoundError(self.model.__name__, head)
            for requested in list(self._with):
                if requested == name or requested.startswith(name + '.'):
                    del self._with[requested]
        return self

    def with_only(self, *relations):
        """ Eager-load these relations only """
        self._with = OrderedDict()
        if relations:
            self.with_(list(relations))
        return self

    def with_session(self, session):
        """ Issue every store call with this session

        :type session: pymongo.client_session.ClientSession | None
        """
        self._session = session
        return self

    def _default_with(self):
        if self.model is None:
            return OrderedDict()
        return normalize_with(list(self.settings['with_relations']))

    # endregion

    # region Compiler

    def _constraints(self) -> List[dict]:
        """ Additional $match conditions

            Relations add their own conditions here.
            Some of them query the store for a key set: see _resolve_constraints().
        """
        return []

    def _resolve_constraints(self) -> List[dict]:
        """ Get _constraints(), once per terminal

            Relations through an intermediate collection look up their keys in the store.
            Within a terminal, this happens once, no matter how many times the $match is compiled.
            Outside of a terminal (to_pipeline()), every call looks them up anew.
        """
        if not self._terminal_depth:
            return self._constraints()
        if self._resolved_constraints is None:
            self._resolved_constraints = self._constraints()
        return self._resolved_constraints

    def compile_match(self, *extra: dict, scope: SoftDeleteScope = None) -> dict:
        """ Compile the $match condition: soft-delete scope + constraints + the condition tree

        :param extra: More conditions to AND with
        :param scope: The soft-delete scope to use instead of the builder's own one
        """
        conditions = []

        scope = (scope or self._scope).compile_statement()
        if scope is not None:
            conditions.append(scope)

        conditions.extend(self._resolve_constraints())
        conditions.extend(extra)

        statement = self._filter.compile_statement()
        if statement is not None:
            conditions.append(statement)

        if not conditions:
            return {}
        if len(conditions) == 1:
            return conditions[0]
        return {'$and': conditions}

    def compile_pipeline(self, *,
                         extra_match: Sequence[dict] = (),
                         project: MongoProject = None,
                         sort: bool = True,
                         group: bool = True,
                         tail: Sequence[dict] = None) -> List[dict]:
        """ Compile the pipeline

        :param extra_match: More conditions for the $match stage
        :param project: The projection handler to use instead of the builder's own one. None to skip projection.
        :param sort: Include the $sort stage?
        :param group: Include the $group stage?
        :param tail: Stages to use instead of $skip & $limit
        """
        pipeline = []

        match = self.compile_match(*extra_match)
        if match:
            pipeline.append({'$match': match})

        if sort:
            pipeline.extend(self._sort.compile_stages())
        if group:
            pipeline.extend(self._group.compile_stages())
        if project is not None:
            pipeline.extend(project.compile_stages())

        if tail is None:
            pipeline.extend(self._limit.compile_stages())
        else:
            pipeline.extend(tail)

        return pipeline

    def to_pipeline(self) -> List[dict]:
        """ The pipeline get() would run (without eager loading) """
        return self.compile_pipeline(project=self._project)

    # endregion

    # region Store

    def get_collection(self):
        """ Get the pymongo collection

        :rtype: pymongo.collection.Collection
        """
        return Database.for_settings(self.settings)[self.settings['collection']]

    def _store_kwargs(self) -> dict:
        return {'session': self._session} if self._session is not None else {}

    def _run(self, pipeline: List[dict]) -> List[dict]:
        """ Run a pipeline, get the documents """
        logger.debug('%s.aggregate(%r)', self.settings['collection'], pipeline)
        return list(self.get_collection().aggregate(pipeline, **self._store_kwargs()))

    @contextmanager
    def _terminal(self):
        """ Wrap a terminal: consume the one-off state, but only on success """
        self._terminal_depth += 1
        try:
            yield
        finally:
            self._terminal_depth -= 1
            if not self._terminal_depth:
                self._resolved_constraints = None
        self._scope.reset()
        self._with = self._default_with()

    def _hydrate(self, documents: List[dict]) -> list:
        """ Convert documents to entities """
        if self.model is None:
            return documents
        return [self.model.from_document(document, self.settings) for document in documents]

    @staticmethod
    def _strip(results: list, fields: Iterable[str]):
        """ Remove quietly loaded fields """
        for field in fields:
            for result in results:
                if isinstance(result, dict):
                    result.pop(field, None)
                else:
                    result.forget(field)

    def _fetch(self, fields: Sequence[str] = (), *,
               extra_match: Sequence[dict] = (),
               tail: Sequence[dict] = None,
               ensure_loaded: Sequence[str] = (),
               eager: bool = True):
        """ Run the query, load the relations

        :param fields: Fields to select, in addition to select()
        :param extra_match: More conditions for the $match stage
        :param tail: Stages to use instead of $skip & $limit
        :param ensure_loaded: Fields that have to be loaded regardless of the projection
        :param eager: Load relations?
        :return: (results, quietly loaded fields). The caller has to _strip() the fields when done.
        """
        project = deepcopy(self._project)
        if fields:
            project.select(*fields)

        quiet = [field for field in ensure_loaded if project.ensure_loaded(field)]

        loader = None
        if eager and self._with:
            loader = EagerLoader(self.model, self._with, self._session)
            quiet.extend(field
                         for field in loader.prepare(project)
                         if field not in quiet)

        pipeline = self.compile_pipeline(extra_match=extra_match, project=project, tail=tail)
        results = self._hydrate(self._run(pipeline))

        if loader is not None:
            loader.load(results)

        return results, quiet

    def _get(self, fields=(), **kwargs) -> list:
        results, quiet = self._fetch(fields, **kwargs)
        self._strip(results, quiet)
        return results

    # endregion

    # region Terminals

    def get(self, *fields) -> list:
        """ Get all matching documents

        :param fields: Only load these fields
        """
        with self._terminal():
            return self._get(fields)

    def all(self) -> list:
        return self.get()

    def _first_tail(self):
        tail = [{'$skip': self._limit.skip}] if self._limit.skip else []
        return tail + [{'$limit': 1}]

    def first(self, *fields):
        """ Get the first matching document, or None """
        with self._terminal():
            results = self._get(fields, tail=self._first_tail())
            return results[0] if results else None

    def first_or_fail(self, *fields):
        """ Get the first matching document

        :raises ModelNotFoundError: nothing found
        """
        with self._terminal():
            results = self._get(fields, tail=self._first_tail())
            if not results:
                raise ModelNotFoundError(self._model_name(), self.compile_match())
            return results[0]

    def find(self, id):
        """ Get a document by its _id, or None """
        with self._terminal():
            results = self._get(extra_match=[{'_id': to_object_id(id)}], tail=[{'$limit': 1}])
            return results[0] if results else None

    def find_or_fail(self, id):
        """ Get a document by its _id

        :raises ModelNotFoundError: nothing found
        """
        with self._terminal():
            condition = {'_id': to_object_id(id)}
            results = self._get(extra_match=[condition], tail=[{'$limit': 1}])
            if not results:
                raise ModelNotFoundError(self._model_name(), self.compile_match(condition))
            return results[0]

    def sole(self, *fields):
        """ Get the only matching document

        :raises ModelNotFoundError: nothing found
        :raises MultipleRecordsFoundError: more than one document found
        """
        with self._terminal():
            results = self._get(fields, tail=self._first_tail()[:-1] + [{'$limit': 2}])
            if not results:
                raise ModelNotFoundError(self._model_name(), self.compile_match())
            if len(results) > 1:
                raise MultipleRecordsFoundError(self._model_name(), self._count())
            return results[0]

    def pluck(self, field: str) -> list:
        """ Get the values of a single field """
        with self._terminal():
            results = self._get((field,), eager=False)
            return [result.get(field) for result in results]

    def exists(self) -> bool:
        with self._terminal():
            return bool(self._run(self.compile_pipeline(sort=False, tail=self._first_tail())))

    def paginate(self, page: int = 1, limit: int = 15) -> dict:
        """ Get a page of documents

        :param page: Page number, 1-based
        :param limit: Page size
        :return: {data: [...], meta: {total, page, limit, lastPage}}
        :raises InvalidArgumentError: non-positive page or limit
        """
        tail = MongoLimit.page_stages(page, limit)
        with self._terminal():
            total = self._count()
            data = self._get(tail=tail)
            return {
                'data': data,
                'meta': MongoLimit.pagination_meta(total, page, limit),
            }

    def _count(self) -> int:
        pipeline = self.compile_pipeline(sort=False, tail=[]) + self._aggregate.count_stages()
        return self._aggregate.result(self._run(pipeline), MongoAggregate.COUNT_KEY)

    def count(self) -> int:
        """ Count matching documents (or groups, when grouped) """
        with self._terminal():
            return self._count()

    def _accumulate(self, accumulator: str, field: str):
        stages = self._aggregate.accumulator_stages(accumulator, field)
        with self._terminal():
            pipeline = self.compile_pipeline(sort=False, group=False, tail=[]) + stages
            return self._aggregate.result(self._run(pipeline))

    def sum(self, field: str):
        return self._accumulate('sum', field)

    def avg(self, field: str):
        return self._accumulate('avg', field)

    def min(self, field: str):
        return self._accumulate('min', field)

    def max(self, field: str):
        return self._accumulate('max', field)

    def sample(self, size: int) -> list:
        """ Get `size` random matching documents

        :raises InvalidArgumentError: non-positive size
        """
        if not isinstance(size, int) or isinstance(size, bool) or size < 1:
            raise InvalidArgumentError('sample() size must be a positive integer, {!r} given'.format(size))
        with self._terminal():
            return self._get(tail=[{'$sample': {'size': size}}])

    def raw(self, stages: Sequence[dict]) -> List[dict]:
        """ Run custom stages after the $match stage. Returns plain dicts. """
        with self._terminal():
            return self._run(self.compile_pipeline(sort=False, group=False, tail=[]) + list(stages))

    # endregion

    # region Writes

    def _prepare_insert(self, document) -> dict:
        """ Add timestamps & soft-delete defaults to a new document

            Values provided by the caller are kept as they are.
        """
        document = dict(document)
        if self.settings['use_timestamps']:
            now = now_in(self.settings['timezone'])
            document.setdefault(self.settings['created_at'], now)
            document.setdefault(self.settings['updated_at'], now)
        if self.settings['use_soft_delete']:
            document.setdefault(self.settings['is_deleted'], False)
        return document

    def _prepare_update(self, values) -> dict:
        """ Prepare a $set document: drop _id, add the modification time """
        values = dict(values)
        values.pop('_id', None)
        if self.settings['use_timestamps']:
            values.setdefault(self.settings['updated_at'], now_in(self.settings['timezone']))
        if not values:
            raise InvalidArgumentError('Nothing to update')
        return values

    def _insert_documents(self, documents) -> List[dict]:
        """ Insert documents, return them with their _id """
        documents = [self._prepare_insert(document) for document in documents]
        if not documents:
            return []

        collection = self.get_collection()
        logger.debug('%s.insert(%d documents)', self.settings['collection'], len(documents))
        if len(documents) == 1:
            result = collection.insert_one(documents[0], **self._store_kwargs())
            documents[0]['_id'] = result.inserted_id
        else:
            result = collection.insert_many(documents, **self._store_kwargs())
            for document, inserted_id in zip(documents, result.inserted_ids):
                document['_id'] = inserted_id
        return documents

    def _update_one(self, values, *extra_match) -> Optional[dict]:
        """ Update the first matching document, return it (as it is after the update) """
        match = self.compile_match(*extra_match)
        logger.debug('%s.find_one_and_update(%r)', self.settings['collection'], match)
        return self.get_collection().find_one_and_update(
            match,
            {'$set': self._prepare_update(values)},
            return_document=ReturnDocument.AFTER,
            **self._store_kwargs()
        )

    def _update_many(self, values, *extra_match, scope: SoftDeleteScope = None) -> int:
        match = self.compile_match(*extra_match, scope=scope)
        logger.debug('%s.update_many(%r)', self.settings['collection'], match)
        result = self.get_collection().update_many(match, {'$set': self._prepare_update(values)},
                                                   **self._store_kwargs())
        return result.modified_count

    def _delete_many(self, *extra_match) -> int:
        match = self.compile_match(*extra_match)
        logger.debug('%s.delete_many(%r)', self.settings['collection'], match)
        return self.get_collection().delete_many(match, **self._store_kwargs()).deleted_count

    def _soft_delete_values(self) -> dict:
        values = {self.settings['is_deleted']: True}
        if self.settings['use_timestamps']:
            values[self.settings['deleted_at']] = now_in(self.settings['timezone'])
        return values

    def insert(self, document):
        """ Insert a document

            Timestamps and the soft-delete marker are added, unless provided.
        """
        with self._terminal():
            return self._hydrate(self._insert_documents([document]))[0]

    create = insert

    def insert_many(self, documents) -> list:
        with self._terminal():
            return self._hydrate(self._insert_documents(documents))

    create_many = insert_many

    def update(self, values):
        """ Update the first matching document

        :return: The updated document, or None if nothing matched
        """
        with self._terminal():
            document = self._update_one(values)
            return self._hydrate([document])[0] if document is not None else None

    def update_many(self, values) -> int:
        """ Update all matching documents

        :return: The number of modified documents
        """
        with self._terminal():
            return self._update_many(values)

    def delete(self) -> int:
        """ Delete matching documents: soft delete, when enabled

        :return: The number of deleted documents
        """
        with self._terminal():
            if self.settings['use_soft_delete']:
                return self._update_many(self._soft_delete_values())
            return self._delete_many()

    def force_delete(self) -> int:
        """ Remove matching documents from the store, even with soft delete """
        with self._terminal():
            return self._delete_many()

    def restore(self) -> int:
        """ Un-delete soft-deleted matching documents

        :return: The number of restored documents
        :raises InvalidArgumentError: soft delete is not enabled for this model
        """
        if not self.settings['use_soft_delete']:
            raise InvalidArgumentError('restore(): soft delete is not enabled for "{}"'.format(self._model_name()))
        with self._terminal():
            return self._update_many({
                self.settings['is_deleted']: False,
                self.settings['deleted_at']: None,
            }, scope=SoftDeleteScope(self.settings).only_trashed())

    def destroy(self, ids) -> int:
        """ Delete documents by _id (soft delete, when enabled) """
        condition = {'_id': {'$in': to_object_ids(ids)}}
        with self._terminal():
            if self.settings['use_soft_delete']:
                return self._update_many(self._soft_delete_values(), condition)
            return self._delete_many(condition)

    def force_destroy(self, ids) -> int:
        """ Remove documents by _id from the store """
        with self._terminal():
            return self._delete_many({'_id': {'$in': to_object_ids(ids)}})

    def _lookup(self, attributes: Mapping) -> 'QueryBuilder':
        """ A copy of the builder, with a condition on every attribute. The builder itself is left as is. """
        query = copy(self)
        query._filter = deepcopy(self._filter)
        query._scope = deepcopy(self._scope)
        for field, value in attributes.items():
            query.where(field, value)
        return query

    def first_or_new(self, attributes: Mapping, values: Mapping = None):
        """ Find the first document matching `attributes`, or make a new unsaved one """
        with self._terminal():
            found = self._lookup(attributes).first()
            if found is not None:
                return found
            document = {**attributes, **(values or {})}
            if self.model is None:
                return document
            return self.model(document)

    def first_or_create(self, attributes: Mapping, values: Mapping = None):
        """ Find the first document matching `attributes`, or insert a new one """
        with self._terminal():
            found = self._lookup(attributes).first()
            if found is not None:
                return found
            return self.insert({**attributes, **(values or {})})

    def update_or_create(self, attributes: Mapping, values: Mapping = None):
        """ Update the first document matching `attributes`, or insert a new one

            With no `values`, a found document is returned as it is.
        """
        values = values or {}
        with self._terminal():
            found = self._lookup(attributes).first()
            if found is None:
                return self.insert({**attributes, **values})
            if not values:
                return found
            if self.model is None:
                return self._hydrate([self._update_one(values, {'_id': found['_id']})])[0]
            return found.fill(values).save(session=self._session)

    update_or_insert = update_or_create

    # endregion

    def _model_name(self):
        return self.model.__name__ if self.model is not None else self.settings['collection']

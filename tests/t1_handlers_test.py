import unittest

from mongorel import ModelSettingsDict
from mongorel.exc import InvalidArgumentError
from mongorel.handlers import (MongoFilter, SoftDeleteScope, MongoSort, MongoGroup, MongoProject, MongoLimit,
                               MongoAggregate, ConditionGroup, lookup_operator)


class FilterTest(unittest.TestCase):
    """ Test MongoFilter """

    longMessage = True
    maxDiff = None

    def test_operators(self):
        """ Test the operator table """
        self.assertEqual(lookup_operator('='), ('$eq', None))
        self.assertEqual(lookup_operator('>='), ('$gte', None))
        self.assertEqual(lookup_operator('notIn'), ('$nin', None))
        self.assertEqual(lookup_operator('like'), ('$regex', 'i'))
        self.assertEqual(lookup_operator('gte'), ('$gte', None))  # alias

        with self.assertRaises(KeyError):
            lookup_operator('~')

    def test_conditions(self):
        """ Test compiling single conditions """
        def compile(*args):
            return MongoFilter().add_condition(*args).compile_statement()

        # Empty
        self.assertIsNone(MongoFilter().compile_statement())

        # Implicit equality
        self.assertEqual(compile('age', 18), {'age': {'$eq': 18}})

        # Comparisons
        self.assertEqual(compile('age', '>=', 18), {'age': {'$gte': 18}})
        self.assertEqual(compile('age', '!=', None), {'age': {'$ne': None}})
        self.assertEqual(compile('age', 'in', (1, 2)), {'age': {'$in': [1, 2]}})
        self.assertEqual(compile('age', 'notIn', [1]), {'age': {'$nin': [1]}})

        # like: case-insensitive regex
        self.assertEqual(compile('name', 'like', '^al'), {'name': {'$regex': '^al', '$options': 'i'}})

        # between: inclusive; a single bound is open-ended
        self.assertEqual(compile('age', 'between', [18, 65]), {'age': {'$gte': 18, '$lte': 65}})
        self.assertEqual(compile('age', 'between', [18]), {'age': {'$gte': 18}})

        # _id values are converted to ObjectId
        from bson import ObjectId
        oid = ObjectId()
        self.assertEqual(compile('_id', str(oid)), {'_id': {'$eq': oid}})
        self.assertEqual(compile('_id', 'in', [str(oid)]), {'_id': {'$in': [oid]}})

    def test_invalid_conditions(self):
        """ Test input validation """
        with self.assertRaises(InvalidArgumentError):
            MongoFilter().add_condition('age', '~', 1)
        with self.assertRaises(InvalidArgumentError):
            MongoFilter().add_condition('age', 'in', 1)
        with self.assertRaises(InvalidArgumentError):
            MongoFilter().add_condition('age', 'between', [])
        with self.assertRaises(InvalidArgumentError):
            MongoFilter().add_condition('age', 'between', 5)
        with self.assertRaises(InvalidArgumentError):
            ConditionGroup().where('age')

    def test_and_or(self):
        """ Test AND chains and OR branches """
        a, b, c = {'a': {'$eq': 1}}, {'b': {'$eq': 2}}, {'c': {'$eq': 3}}

        # a AND b
        self.assertEqual(ConditionGroup().where('a', 1).where('b', 2)._filter.compile_statement(),
                         {'$and': [a, b]})

        # (a AND b) OR c
        self.assertEqual(ConditionGroup().where('a', 1).where('b', 2).or_where('c', 3)._filter.compile_statement(),
                         {'$or': [{'$and': [a, b]}, c]})

        # a OR (b AND c)
        self.assertEqual(ConditionGroup().where('a', 1).or_where('b', 2).where('c', 3)._filter.compile_statement(),
                         {'$or': [a, {'$and': [b, c]}]})

        # or_where() first: there's nothing to close
        self.assertEqual(ConditionGroup().or_where('a', 1).where('b', 2)._filter.compile_statement(),
                         {'$and': [a, b]})

        # Nested group: a AND (b OR c)
        self.assertEqual(ConditionGroup().where('a', 1).where(lambda q: q.where('b', 2).or_where('c', 3))
                         ._filter.compile_statement(),
                         {'$and': [a, {'$or': [b, c]}]})

        # Empty nested group: ignored
        self.assertEqual(ConditionGroup().where('a', 1).where(lambda q: None)._filter.compile_statement(),
                         a)

    def test_shortcuts(self):
        """ Test where_*() shortcuts """
        f = ConditionGroup() \
            .where_in('a', [1]) \
            .where_not_in('b', [2]) \
            .where_null('c') \
            .where_not_null('d') \
            .where_not('e', 5) \
            .where_between('f', [1, 2]) \
            ._filter
        self.assertEqual(f.compile_statement(), {'$and': [
            {'a': {'$in': [1]}},
            {'b': {'$nin': [2]}},
            {'c': {'$eq': None}},
            {'d': {'$ne': None}},
            {'e': {'$ne': 5}},
            {'f': {'$gte': 1, '$lte': 2}},
        ]})

        f = ConditionGroup().where('a', 1).or_where_null('b').or_where_in('c', [3])._filter
        self.assertEqual(f.compile_statement(), {'$or': [
            {'a': {'$eq': 1}},
            {'b': {'$eq': None}},
            {'c': {'$in': [3]}},
        ]})


class SoftDeleteScopeTest(unittest.TestCase):
    """ Test SoftDeleteScope """

    def test_scope(self):
        settings = ModelSettingsDict(use_soft_delete=True)

        # Default: live only
        self.assertEqual(SoftDeleteScope(settings).compile_statement(), {'isDeleted': False})
        self.assertEqual(SoftDeleteScope(settings).with_trashed().compile_statement(), None)
        self.assertEqual(SoftDeleteScope(settings).only_trashed().compile_statement(), {'isDeleted': True})

        # Last call wins
        self.assertEqual(SoftDeleteScope(settings).with_trashed().only_trashed().compile_statement(), {'isDeleted': True})
        self.assertEqual(SoftDeleteScope(settings).only_trashed().with_trashed().compile_statement(), None)

        # Reset
        scope = SoftDeleteScope(settings).only_trashed()
        scope.reset()
        self.assertEqual(scope.mode, SoftDeleteScope.DEFAULT)

        # Custom field name
        settings = ModelSettingsDict(use_soft_delete=True, is_deleted='removed')
        self.assertEqual(SoftDeleteScope(settings).compile_statement(), {'removed': False})

        # Disabled
        settings = ModelSettingsDict(use_soft_delete=False)
        self.assertEqual(SoftDeleteScope(settings).compile_statement(), None)
        self.assertEqual(SoftDeleteScope(settings).only_trashed().compile_statement(), None)


class SortGroupTest(unittest.TestCase):
    """ Test MongoSort, MongoGroup """

    def test_sort(self):
        self.assertEqual(MongoSort().compile_stages(), [])

        sort = MongoSort().add('age', 'desc').add('name', 'asc')
        self.assertEqual(sort.compile_stages(), [{'$sort': {'age': -1, 'name': 1}}])
        self.assertEqual(list(sort.compile_stages()[0]['$sort']), ['age', 'name'])  # order matters

        # Compact syntax
        self.assertEqual(MongoSort().input(['a+', 'b-', 'c', ('d', 'desc')]).compile_stages(),
                         [{'$sort': {'a': 1, 'b': -1, 'c': 1, 'd': -1}}])

        # Case-insensitive
        self.assertEqual(MongoSort().add('name', 'asc', case_insensitive=True).add('age', -1).compile_stages(), [
            {'$addFields': {'__lowercase_name': {'$toLower': '$name'}}},
            {'$sort': {'__lowercase_name': 1, 'age': -1}},
            {'$project': {'__lowercase_name': 0}},
        ])

        with self.assertRaises(InvalidArgumentError):
            MongoSort().add('age', 'sideways')

    def test_group(self):
        self.assertEqual(MongoGroup().compile_stages(), [])
        self.assertEqual(MongoGroup().add('country', 'address.city').compile_stages(), [
            {'$group': {
                '_id': {'country': '$country', 'address_city': '$address.city'},
                'count': {'$sum': 1},
            }}
        ])


class ProjectTest(unittest.TestCase):
    """ Test MongoProject """

    def test_projection(self):
        self.assertEqual(MongoProject().compile_stages(), [])
        self.assertEqual(MongoProject().select('a', ['b', 'c']).compile_projection(), {'a': 1, 'b': 1, 'c': 1})
        self.assertEqual(MongoProject().exclude('a').compile_projection(), {'a': 0})

        # Last mode wins
        self.assertEqual(MongoProject().select('a').exclude('b').compile_projection(), {'b': 0})
        self.assertEqual(MongoProject().exclude('b').select('a').compile_projection(), {'a': 1})

        # Repeated calls accumulate
        self.assertEqual(MongoProject().select('a').select('b', 'a').compile_projection(), {'a': 1, 'b': 1})

    def test_contains(self):
        p = MongoProject()
        self.assertIn('anything', p)

        p = MongoProject().select('a')
        self.assertIn('a', p)
        self.assertIn('_id', p)
        self.assertNotIn('b', p)

        p = MongoProject().exclude('a')
        self.assertNotIn('a', p)
        self.assertIn('b', p)

    def test_ensure_loaded(self):
        # No projection: everything's loaded already
        p = MongoProject()
        self.assertFalse(p.ensure_loaded('userId'))

        # Inclusion
        p = MongoProject().select('name')
        self.assertFalse(p.ensure_loaded('name'))
        self.assertTrue(p.ensure_loaded('userId'))
        self.assertTrue(p.ensure_loaded('userId'))  # still has to be removed
        self.assertEqual(p.compile_projection(), {'name': 1, 'userId': 1})
        self.assertNotIn('userId', p)

        # Exclusion
        p = MongoProject().exclude('userId', 'password')
        self.assertTrue(p.ensure_loaded('userId'))
        self.assertEqual(p.compile_projection(), {'password': 0})

        # Exclusion of the only field: no projection at all
        p = MongoProject().exclude('userId')
        p.ensure_loaded('userId')
        self.assertEqual(p.compile_stages(), [])


class LimitTest(unittest.TestCase):
    """ Test MongoLimit """

    def test_limit(self):
        self.assertEqual(MongoLimit().compile_stages(), [])
        self.assertEqual(MongoLimit().input(skip=10, limit=5).compile_stages(), [{'$skip': 10}, {'$limit': 5}])
        self.assertEqual(MongoLimit().input(skip=0, limit=0).compile_stages(), [])

        for skip, limit in ((-1, None), (None, -1), ('1', None), (None, 1.5), (True, None)):
            with self.assertRaises(InvalidArgumentError, msg=(skip, limit)):
                MongoLimit().input(skip=skip, limit=limit)

    def test_pages(self):
        self.assertEqual(MongoLimit.page_stages(1, 10), [{'$limit': 10}])
        self.assertEqual(MongoLimit.page_stages(3, 10), [{'$skip': 20}, {'$limit': 10}])

        for page, limit in ((0, 10), (1, 0), (-1, 10), ('1', 10)):
            with self.assertRaises(InvalidArgumentError, msg=(page, limit)):
                MongoLimit.page_stages(page, limit)

        self.assertEqual(MongoLimit.pagination_meta(5, 2, 2), {'total': 5, 'page': 2, 'limit': 2, 'lastPage': 3})
        self.assertEqual(MongoLimit.pagination_meta(0, 1, 10), {'total': 0, 'page': 1, 'limit': 10, 'lastPage': 0})
        self.assertEqual(MongoLimit.pagination_meta(10, 1, 5)['lastPage'], 2)


class AggregateTest(unittest.TestCase):
    """ Test MongoAggregate """

    def test_stages(self):
        a = MongoAggregate()
        self.assertEqual(a.count_stages(), [{'$count': 'total'}])
        self.assertEqual(a.accumulator_stages('avg', 'age'),
                         [{'$group': {'_id': None, 'result': {'$avg': '$age'}}}])

        with self.assertRaises(InvalidArgumentError):
            a.accumulator_stages('median', 'age')
        with self.assertRaises(InvalidArgumentError):
            a.accumulator_stages('sum', '')

    def test_result(self):
        a = MongoAggregate()
        self.assertEqual(a.result([]), 0)
        self.assertEqual(a.result([{'result': None}]), 0)
        self.assertEqual(a.result([{'result': 'abc'}]), 0)
        self.assertEqual(a.result([{'result': float('nan')}]), 0)
        self.assertEqual(a.result([{'result': True}]), 0)
        self.assertEqual(a.result([{'result': 2.5}]), 2.5)
        self.assertEqual(a.result([{'total': 7}], 'total'), 7)

from unittest import mock

import mongomock

from mongorel import Database


def get_working_db_for_tests():
    """ A fresh in-memory database, registered as the default connection """
    db = mongomock.MongoClient()['mongorel_test']
    Database.register(db)
    return db


class ExpectedQueryCounter:
    """ A context manager that counts pipelines sent to the store

        Example:

            with ExpectedQueryCounter(self, 2, 'users + posts'):
                User.with_('posts').get()
    """

    def __init__(self, test: 'unittest.TestCase', expected_queries: int = None, comment: str = None):
        self.test = test
        self.expected_queries = expected_queries
        self.comment = comment
        self.pipelines = []

    def __enter__(self):
        original = mongomock.collection.Collection.aggregate

        def aggregate(collection, pipeline, *args, **kwargs):
            self.pipelines.append((collection.name, pipeline))
            return original(collection, pipeline, *args, **kwargs)

        self._patcher = mock.patch.object(mongomock.collection.Collection, 'aggregate', aggregate)
        self._patcher.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._patcher.stop()

        # Only check when there was no error
        if exc_type is None and self.expected_queries is not None:
            self.test.assertEqual(
                len(self.pipelines), self.expected_queries,
                '{}: {!r}'.format(self.comment or 'Unexpected number of queries', self.pipelines))

    @property
    def n(self):
        return len(self.pipelines)

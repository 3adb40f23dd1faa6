from .query import QueryBuilder
from .util import ModelSettingsDict, Database


class DB:
    """ Queries without a model

        ```python
        DB.collection('logs').where('level', 'error').order_by('time', 'desc').limit(10).get()
        DB.collection('logs').raw([{'$group': {'_id': '$level', 'n': {'$sum': 1}}}])
        ```

        Raw queries return plain dicts and cannot load relations.
    """

    @staticmethod
    def collection(name: str, **settings) -> QueryBuilder:
        """ Start a raw query on a collection

        :param settings: ModelSettingsDict arguments; timestamps are off by default
        """
        settings.setdefault('use_timestamps', False)
        return QueryBuilder(None, ModelSettingsDict(collection=name, **settings))

    @staticmethod
    def get_db(connection: str = None, name: str = None):
        """ Get a database handle """
        return Database.get_db(connection, name)

""" Database handles

    One pymongo.MongoClient is created per connection URI and is reused by all queries.
    A database handle can also be registered explicitly: e.g. a mongomock database in unit-tests.

    Defaults come from the environment:

    * MONGOREL_DATABASE_URI: the connection URI, default: mongodb://localhost:27017
    * MONGOREL_DATABASE_NAME: the database name, default: mongorel
"""

import os
import logging

import pymongo

logger = logging.getLogger(__name__)


DEFAULT_URI = 'mongodb://localhost:27017'
DEFAULT_DATABASE_NAME = 'mongorel'


class Database:
    """ A registry of database handles """

    #: uri -> MongoClient
    _clients = {}

    #: connection alias -> database handle
    _registered = {}

    @staticmethod
    def default_uri() -> str:
        return os.environ.get('MONGOREL_DATABASE_URI', DEFAULT_URI)

    @staticmethod
    def default_database_name() -> str:
        return os.environ.get('MONGOREL_DATABASE_NAME', DEFAULT_DATABASE_NAME)

    @classmethod
    def register(cls, database, connection: str = None):
        """ Bind a database handle to a connection alias

        :param database: pymongo.database.Database, or anything that quacks like one
        :param connection: The alias. `None` for the default connection.
        """
        cls._registered[connection] = database
        return database

    @classmethod
    def unregister(cls, connection: str = None):
        cls._registered.pop(connection, None)

    @classmethod
    def get_db(cls, connection: str = None, name: str = None):
        """ Get a database handle

        :param connection: A registered alias, or a connection URI. `None` for the default one.
        :param name: Database name. `None` for the default one.
        :rtype: pymongo.database.Database
        """
        # Registered handles first
        if connection in cls._registered:
            database = cls._registered[connection]
            if name is None or name == database.name:
                return database
            return database.client[name]

        # Connect
        uri = connection or cls.default_uri()
        client = cls._clients.get(uri)
        if client is None:
            logger.debug('Connecting to %s', uri)
            client = cls._clients[uri] = pymongo.MongoClient(uri)
        return client[name or cls.default_database_name()]

    @classmethod
    def for_settings(cls, settings):
        """ Get the database handle for a model

        :type settings: mongorel.util.ModelSettingsDict
        """
        if settings['database'] is not None:
            return settings['database']
        return cls.get_db(settings['connection'], settings['database_name'])

    @classmethod
    def close_all(cls):
        """ Close all the clients this class has created """
        for client in cls._clients.values():
            client.close()
        cls._clients.clear()

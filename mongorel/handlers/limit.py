import math

from .base import QueryHandlerBase
from ..exc import InvalidArgumentError


NoneType = type(None)


class MongoLimit(QueryHandlerBase):
    """ Pagination: skip & limit """

    query_object_section_name = 'limit'

    def __init__(self, settings=None):
        super(MongoLimit, self).__init__(settings)

        #: Number of documents to skip
        self.skip = None
        #: Max number of documents to return
        self.limit = None

    def __repr__(self):
        return '{}(skip={}, limit={})'.format(self.__class__.__name__, self.skip, self.limit)

    def input(self, skip=None, limit=None):
        """ Set skip and/or limit

            limit=0 means "no limit"

        :raises InvalidArgumentError: negative or non-integer values
        """
        if skip is not None:
            self.skip = self._validate('skip', skip)
        if limit is not None:
            self.limit = self._validate('limit', limit)
        self.input_received = True
        return self

    @staticmethod
    def _validate(name, value):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InvalidArgumentError('{} must be a non-negative integer, {!r} given'.format(name, value))
        return value

    def compile_stages(self):
        stages = []
        if self.skip:
            stages.append({'$skip': self.skip})
        if self.limit:
            stages.append({'$limit': self.limit})
        return stages

    @staticmethod
    def page_stages(page: int, limit: int):
        """ Get skip & limit stages for a page

        :param page: Page number, 1-based
        :param limit: Page size
        :raises InvalidArgumentError: non-positive page or limit
        """
        for name, value in (('page', page), ('limit', limit)):
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise InvalidArgumentError('{} must be a positive integer, {!r} given'.format(name, value))

        stages = []
        if page > 1:
            stages.append({'$skip': (page - 1) * limit})
        stages.append({'$limit': limit})
        return stages

    @staticmethod
    def pagination_meta(total: int, page: int, limit: int):
        """ Build the `meta` section of paginate() output """
        return {
            'total': total,
            'page': page,
            'limit': limit,
            'lastPage': math.ceil(total / limit),
        }

    # Not Implemented for this handler
    compile_statement = NotImplemented

from numbers import Number

from .base import QueryHandlerBase
from ..exc import InvalidArgumentError


class MongoAggregate(QueryHandlerBase):
    """ Numeric aggregates: count, sum, avg, min, max

        These terminals replace the rest of the pipeline after the $match stage.
        They always return a number: 0 when there's nothing to aggregate.
    """

    query_object_section_name = 'aggregate'

    #: Supported accumulators
    ACCUMULATORS = frozenset(('sum', 'avg', 'min', 'max'))

    #: The key the result is stored under
    RESULT_KEY = 'result'

    #: The key count() stores its result under
    COUNT_KEY = 'total'

    def __init__(self, settings=None):
        super(MongoAggregate, self).__init__(settings)

    def count_stages(self):
        return [{'$count': self.COUNT_KEY}]

    def accumulator_stages(self, accumulator: str, field: str):
        """ Get the stages for an accumulator

        :raises InvalidArgumentError: unknown accumulator, or no field
        """
        if accumulator not in self.ACCUMULATORS:
            raise InvalidArgumentError('Unsupported aggregate "{}"'.format(accumulator))
        if not isinstance(field, str) or not field:
            raise InvalidArgumentError('{}() needs a field name'.format(accumulator))

        return [{'$group': {
            '_id': None,
            self.RESULT_KEY: {'$' + accumulator: '$' + field},
        }}]

    def result(self, documents, key=RESULT_KEY):
        """ Pluck the number out of the aggregation result

            Non-numeric results (no documents, or no numeric values) become 0.
        """
        for document in documents:
            value = document.get(key)
            if isinstance(value, Number) and not isinstance(value, bool) and value == value:  # NaN check
                return value
            return 0
        return 0

    # Not Implemented for this handler
    compile_statement = NotImplemented
    compile_stages = NotImplemented

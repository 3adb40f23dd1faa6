from .base import QueryHandlerBase


class MongoGroup(QueryHandlerBase):
    """ Grouping: one output document per distinct combination of values, with a `count`

        group_by('country', 'city') gives:

            {'_id': {'country': 'NL', 'city': 'Amsterdam'}, 'count': 42}
    """

    query_object_section_name = 'group'

    def __init__(self, settings=None):
        super(MongoGroup, self).__init__(settings)

        #: List of field names to group by
        self.fields = []

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.fields)

    def add(self, *fields):
        for field in fields:
            if field not in self.fields:
                self.fields.append(field)
        self.input_received = True
        return self

    def compile_stages(self):
        if not self.fields:
            return []

        # Dots are not allowed in key names
        return [{'$group': {
            '_id': {field.replace('.', '_'): '$' + field for field in self.fields},
            'count': {'$sum': 1},
        }}]

    # Not Implemented for this handler
    compile_statement = NotImplemented

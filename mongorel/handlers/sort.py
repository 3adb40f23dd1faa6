"""
### Sort

order_by() calls accumulate, in order:

```python
User.order_by('age', 'desc').order_by('name', case_insensitive=True)
```

Input from with_() options may also use the compact string syntax:
`'age-'` is descending, `'name+'` and `'name'` are ascending.

Case-insensitive sorting sorts by a lowercased copy of the field,
which is removed right after the $sort stage.
"""

from collections import OrderedDict

from .base import QueryHandlerBase
from ..exc import InvalidArgumentError


#: Prefix of the temporary fields used for case-insensitive sorting
LOWERCASE_PREFIX = '__lowercase_'


class MongoSort(QueryHandlerBase):
    """ Sorting """

    query_object_section_name = 'sort'

    _DIRECTIONS = {'asc': +1, 'desc': -1, +1: +1, -1: -1}

    def __init__(self, settings=None):
        super(MongoSort, self).__init__(settings)

        #: field -> (direction, case_insensitive)
        self.sort_spec = OrderedDict()

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, dict(self.sort_spec))

    def add(self, field: str, direction='asc', case_insensitive: bool = False):
        """ Sort by a field

        :param direction: 'asc', 'desc', +1, or -1
        :raises InvalidArgumentError: invalid direction
        """
        key = direction.lower() if isinstance(direction, str) else direction
        try:
            direction = self._DIRECTIONS[key]
        except (KeyError, TypeError):
            raise InvalidArgumentError('Invalid sort direction "{}" for "{}"'.format(direction, field))

        self.sort_spec[field] = (direction, bool(case_insensitive))
        self.input_received = True
        return self

    def input(self, sort_spec):
        """ Add sorting from a list: ['a+', 'b-', ('c', 'desc')] """
        if isinstance(sort_spec, str):
            sort_spec = sort_spec.split()

        for item in sort_spec:
            if isinstance(item, (list, tuple)):
                self.add(*item)
            elif item.endswith('-'):
                self.add(item[:-1], 'desc')
            elif item.endswith('+'):
                self.add(item[:-1], 'asc')
            else:
                self.add(item, 'asc')
        return self

    def compile_stages(self):
        if not self.sort_spec:
            return []

        lowercased = OrderedDict()
        sort = OrderedDict()
        for field, (direction, case_insensitive) in self.sort_spec.items():
            if case_insensitive:
                lowercase_field = LOWERCASE_PREFIX + field.replace('.', '_')
                lowercased[lowercase_field] = {'$toLower': '$' + field}
                sort[lowercase_field] = direction
            else:
                sort[field] = direction

        # Simple case
        if not lowercased:
            return [{'$sort': sort}]

        # Sort by lowercased copies, then drop them
        return [
            {'$addFields': lowercased},
            {'$sort': sort},
            {'$project': dict.fromkeys(lowercased, 0)},
        ]

    # Not Implemented for this handler
    compile_statement = NotImplemented

"""
### Filter

Conditions are accumulated with where()-style calls:

```python
User.where('age', '>=', 18).where('active', True)
```

Consecutive where() calls form an AND chain.
An or_where() call closes the chain that has been built so far, and starts a new one,
so that the result mirrors conventional SQL precedence: all ANDs are evaluated first,
and then ORed together as alternative branches:

```python
# (age >= 18 AND active = true) OR (role = 'admin')
User.where('age', '>=', 18).where('active', True).or_where('role', 'admin')
```

A callable opens a nested group, which becomes a single node of the current chain:

```python
# country = 'NL' AND (age >= 18 OR guardian != null)
User.where('country', 'NL').where(lambda q: q.where('age', '>=', 18).or_where_not_null('guardian'))
```

Supported operators: `=`, `!=`, `>`, `<`, `>=`, `<=`, `in`, `notIn`, `like`.
Two-argument calls imply equality.
"""

from .base import QueryHandlerBase
from .operators import lookup_operator, ARRAY_OPERATORS
from ..exc import InvalidArgumentError
from ..util import ABSENT, to_object_id


# region Filter Expression Classes

def _is_array(value):
    return isinstance(value, (list, tuple, set, frozenset))


class FilterExpressionBase:
    """ An expression from the condition tree """

    __slots__ = ()

    def compile_expression(self):
        """ Compiles the expression into a $match condition

        :rtype: dict
        """
        raise NotImplementedError()


class FilterColumnExpression(FilterExpressionBase):
    """ A leaf: a field, an operator, and a value to compare the field to """

    __slots__ = ('field', 'operator_str', 'value')

    def __init__(self, field, operator_str, value):
        """ Init a column expression

        :param field: Name of the field (possibly, with a dot!)
        :param operator_str: Native operator, e.g. '$gte', or 'between'
        :param value: The value the operator is applied to
        """
        self.field = field
        self.operator_str = operator_str
        self.value = value

    def __repr__(self):
        return '{} {} {!r}'.format(self.field, self.operator_str, self.value)

    def compile_expression(self):
        # Ranges are inclusive on both ends
        # A single-element range is open-ended: [min, +inf)
        if self.operator_str == 'between':
            condition = {'$gte': self.value[0]}
            if len(self.value) > 1:
                condition['$lte'] = self.value[-1]
            return {self.field: condition}

        # Regular expressions: the options go next to the operator
        if self.operator_str == 'like':
            return {self.field: {'$regex': self.value, '$options': 'i'}}

        return {self.field: {self.operator_str: self.value}}


class FilterBooleanExpression(FilterExpressionBase):
    """ A boolean expression.

        Consists of: an operator ($and, $or), and a value (list of FilterExpressionBase)
    """

    __slots__ = ('operator_str', 'value')

    def __init__(self, operator_str, value):
        """ Init a boolean expression

        :type operator_str: str
        :type value: list[FilterExpressionBase]
        """
        self.operator_str = operator_str
        self.value = value

    def __repr__(self):
        return '({}: {})'.format(self.operator_str, self.value)

    def compile_expression(self):
        criteria = [c.compile_expression() for c in self.value]

        # No need to wrap a single clause
        if len(criteria) == 1:
            return criteria[0]

        return {self.operator_str: criteria}

    @classmethod
    def anded_together(cls, expressions):
        """ Put a list of expressions together with AND

            Returns None when there's nothing to put together.

            :type expressions: list[FilterExpressionBase]
            :rtype: FilterExpressionBase | None
        """
        expressions = [e for e in expressions if e is not None]
        if not expressions:
            return None
        if len(expressions) == 1:
            return expressions[0]
        return cls('$and', expressions)

# endregion


class MongoFilter(QueryHandlerBase):
    """ The condition tree

        Keeps AND chains: `branches` are the chains closed by or_where(), `chain` is the one being built.
        The tree is compiled as: branches[0] OR branches[1] OR ... OR chain
    """

    query_object_section_name = 'filter'

    def __init__(self, settings=None):
        super(MongoFilter, self).__init__(settings)

        #: AND chains closed by an OR
        self.branches = []
        #: The current AND chain
        self.chain = []

    def __repr__(self):
        return '{}(branches={!r}, chain={!r})'.format(self.__class__.__name__, self.branches, self.chain)

    def add_expression(self, expression: FilterExpressionBase, boolean: str = 'and'):
        """ Add an expression to the tree

        :param expression: The expression to add
        :param boolean: 'and' to extend the current chain; 'or' to start a new one
        """
        if boolean == 'or' and self.chain:
            self.branches.append(self.chain)
            self.chain = []
        self.chain.append(expression)
        self.input_received = True
        return self

    def add_condition(self, field, operator, value=ABSENT, boolean='and'):
        """ Add a where()-style condition

            Two arguments: `field`, `value` -- implicit equality
            Three arguments: `field`, `operator`, `value`

        :raises InvalidArgumentError: unsupported operator
        """
        if value is ABSENT:
            operator, value = '=', operator
        return self.add_expression(self._make_expression(field, operator, value), boolean)

    def add_group(self, group: 'MongoFilter', boolean='and'):
        """ Add a nested condition tree as a single node """
        expression = group.compile_expression()
        if expression is not None:
            self.add_expression(expression, boolean)
        return self

    def _make_expression(self, field, operator, value):
        """ Build a FilterColumnExpression for the given operator

            Here, all input validation happens
        """
        # Special operators
        if operator == 'between':
            if not _is_array(value) or len(value) == 0:
                raise InvalidArgumentError('between() expects a non-empty list of bounds for "{}"'.format(field))
            value = list(value)
            if field == '_id':
                value = [to_object_id(v) for v in value]
            return FilterColumnExpression(field, 'between', value)

        # Lookup the operator
        try:
            operator_str, options = lookup_operator(operator)
        except (KeyError, TypeError):
            raise InvalidArgumentError('Unsupported operator "{}" for "{}"'.format(operator, field))

        # Array operators expect a list
        if operator_str in ARRAY_OPERATORS:
            if not _is_array(value):
                raise InvalidArgumentError('Operator "{}" expects a list for "{}"'.format(operator, field))
            value = list(value)
            if field == '_id':
                value = [to_object_id(v) for v in value]
        elif field == '_id':
            value = to_object_id(value)

        if options == 'i':
            return FilterColumnExpression(field, 'like', value)
        return FilterColumnExpression(field, operator_str, value)

    def compile_expression(self):
        """ Compile the tree into one expression

        :rtype: FilterExpressionBase | None
        """
        ands = [FilterBooleanExpression.anded_together(chain)
                for chain in self.branches + [self.chain]
                if chain]

        if not ands:
            return None
        if len(ands) == 1:
            return ands[0]
        return FilterBooleanExpression('$or', ands)

    def compile_statement(self):
        expression = self.compile_expression()
        return expression.compile_expression() if expression is not None else None

    # Not Implemented for this handler
    compile_stages = NotImplemented


class FilterMixin:
    """ where()-style methods

        Requires the class to have `self._filter`: MongoFilter
    """

    _filter: MongoFilter

    def where(self, field, operator=ABSENT, value=ABSENT):
        """ Add a condition to the current AND chain

            where('age', 18)
            where('age', '>=', 18)
            where(lambda q: q.where(...).or_where(...))  # nested group
        """
        return self._where(field, operator, value, 'and')

    def or_where(self, field, operator=ABSENT, value=ABSENT):
        """ Close the current AND chain, start a new alternative branch with this condition """
        return self._where(field, operator, value, 'or')

    def where_not(self, field, value):
        return self._where(field, '!=', value, 'and')

    def or_where_not(self, field, value):
        return self._where(field, '!=', value, 'or')

    def where_in(self, field, values):
        return self._where(field, 'in', values, 'and')

    def or_where_in(self, field, values):
        return self._where(field, 'in', values, 'or')

    def where_not_in(self, field, values):
        return self._where(field, 'notIn', values, 'and')

    def or_where_not_in(self, field, values):
        return self._where(field, 'notIn', values, 'or')

    def where_between(self, field, values):
        """ Inclusive range. A single-element list means [min, +inf) """
        return self._where(field, 'between', values, 'and')

    def or_where_between(self, field, values):
        return self._where(field, 'between', values, 'or')

    def where_null(self, field):
        """ The field is absent or null """
        return self._where(field, '=', None, 'and')

    def or_where_null(self, field):
        return self._where(field, '=', None, 'or')

    def where_not_null(self, field):
        """ The field is present and not null """
        return self._where(field, '!=', None, 'and')

    def or_where_not_null(self, field):
        return self._where(field, '!=', None, 'or')

    def _where(self, field, operator, value, boolean):
        # Nested group
        if callable(field):
            group = ConditionGroup()
            field(group)
            self._filter.add_group(group._filter, boolean)
            return self

        # where('field') is meaningless
        if operator is ABSENT:
            raise InvalidArgumentError('where() needs a value for "{}"'.format(field))

        self._filter.add_condition(field, operator, value, boolean)
        return self


class ConditionGroup(FilterMixin):
    """ A nested condition group: the object that where(callable) gives to the callable """

    def __init__(self):
        self._filter = MongoFilter()

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self._filter)

""" The operator table

    Maps comparison symbols to the store's native operators.
    Every entry is: symbol -> (native operator, extra options for the operator).

    Native names (e.g. 'gte', 'nin') are accepted as aliases.
"""

#: Operators applicable to a single value
OPERATORS = {
    '=': ('$eq', None),
    '!=': ('$ne', None),
    '>': ('$gt', None),
    '<': ('$lt', None),
    '>=': ('$gte', None),
    '<=': ('$lte', None),
    'in': ('$in', None),
    'notIn': ('$nin', None),
    'like': ('$regex', 'i'),
}

#: Native aliases
OPERATORS.update({
    'eq': OPERATORS['='],
    'ne': OPERATORS['!='],
    'gt': OPERATORS['>'],
    'lt': OPERATORS['<'],
    'gte': OPERATORS['>='],
    'lte': OPERATORS['<='],
    'nin': OPERATORS['notIn'],
    'regex': ('$regex', None),
})

#: Operators that expect a list as their value
ARRAY_OPERATORS = frozenset(('$in', '$nin'))


def lookup_operator(operator: str):
    """ Lookup an operator by its symbol

    :param operator: Operator symbol, e.g. '>='
    :return: (native operator, options)
    :raises: KeyError
    """
    return OPERATORS[operator]

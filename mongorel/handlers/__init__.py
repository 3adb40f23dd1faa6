from .base import QueryHandlerBase
from .operators import OPERATORS, lookup_operator
from .filter import MongoFilter, FilterMixin, ConditionGroup
from .filter import FilterExpressionBase, FilterColumnExpression, FilterBooleanExpression
from .scope import SoftDeleteScope
from .sort import MongoSort
from .group import MongoGroup
from .project import MongoProject
from .limit import MongoLimit
from .aggregate import MongoAggregate

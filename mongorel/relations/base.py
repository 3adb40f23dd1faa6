from collections import OrderedDict
from typing import *

from ..exc import InvalidArgumentError
from ..query import QueryBuilder
from ..util import resolve_model


#: A condition that matches nothing: for relations of a parent that has no key yet
MATCH_NOTHING = {'_id': {'$in': []}}


def hashable(value):
    """ Make a key usable as a dict key """
    if isinstance(value, list):
        return tuple(value)
    return value


class Relation(QueryBuilder):
    """ A relation: a query on the related model, bound to a parent entity

        A relation is two things at once:

        1. A QueryBuilder for related documents of a single parent: `user.posts().where(...).get()`.
           The conditions that bind it to the parent are added at compile time, in _constraints().
        2. A loader for the whole list of parents, used by with_(): eager_load().
           Then, the relation is switched to the "eager" mode, where the parent constraints are
           replaced with a condition on the whole set of parent keys.
    """

    #: Does the relation resolve to a list (True), or to a single entity (False)?
    many = True

    def __init__(self, parent, related):
        """ Init a relation

        :param parent: The parent entity
        :type parent: mongorel.model.Model
        :param related: The related model class, or its name
        """
        related = resolve_model(related)
        super(Relation, self).__init__(related, related.__settings__)

        #: The parent entity
        self.parent = parent
        #: Eager-loading mode: parent constraints are not used
        self.eager = False

    def __repr__(self):
        return '{}({} -> {})'.format(self.__class__.__name__, self.parent.__class__.__name__, self.model.__name__)

    # region Override these

    def parent_keys(self) -> List[str]:
        """ Names of the parent fields the relation needs """
        raise NotImplementedError()

    def parent_constraints(self) -> List[dict]:
        """ Conditions that bind the query to the parent

            May query the store for a key set (pivot links, intermediate documents):
            QueryBuilder resolves them once per terminal.
        """
        raise NotImplementedError()

    def eager_load(self, parents: list, name: str, configure: Callable):
        """ Load related entities for all parents, set them with parent.set_relation(name, ...)

        :param parents: The parent entities
        :param name: The name of the relation
        :param configure: A callable(builder) that applies with_() options to the related query
        """
        raise NotImplementedError()

    # endregion

    def _constraints(self):
        if self.eager:
            return []
        return self.parent_constraints()

    def get_results(self):
        """ Get the related entities: a list, or an entity (or None) for to-one relations """
        return self.get() if self.many else self.first()

    def _parent_value(self, key: str):
        """ Get a key from the parent; fail if it's not there """
        value = self.parent.get(key)
        if value is None:
            raise InvalidArgumentError('{}: the parent {} has no "{}" yet'.format(
                self.__class__.__name__, self.parent.__class__.__name__, key))
        return value

    # region Eager loading helpers

    @staticmethod
    def _keys(values) -> list:
        """ Distinct non-null keys, in order """
        return list(OrderedDict.fromkeys(hashable(v) for v in values if v is not None))

    def _eager_fetch(self, configure: Callable, condition: dict, key: str):
        """ Run the relation in the eager mode

        :param condition: The condition on the set of parent keys
        :param key: The field of the related documents the merge relies on
        :return: (results, quietly loaded fields)
        """
        self.eager = True
        configure(self)
        return self._fetch(extra_match=[condition], ensure_loaded=[key])

    @staticmethod
    def _dictionary(results: list, key: str) -> dict:
        """ Group results by a key """
        dictionary = OrderedDict()
        for result in results:
            dictionary.setdefault(hashable(result.get(key)), []).append(result)
        return dictionary

    def _match(self, parents: list, name: str, parent_key: str, dictionary: dict):
        """ Give every parent its related entities: a list, or an entity (or None) """
        for parent in parents:
            matches = dictionary.get(hashable(parent.get(parent_key)), [])
            if self.many:
                parent.set_relation(name, list(matches))
            else:
                parent.set_relation(name, matches[0] if matches else None)

    def _match_empty(self, parents: list, name: str):
        for parent in parents:
            parent.set_relation(name, [] if self.many else None)

    # endregion

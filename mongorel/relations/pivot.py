"""
### Pivot collections

Many-to-many relations keep their links in a separate collection, one document per link:

    {'userId': ..., 'roleId': ..., ...extra attributes}

Polymorphic many-to-many relations add a type discriminator:

    {'tagId': ..., 'taggableId': ..., 'taggableType': 'Post'}

PivotManager maintains these links for a single parent.

NOTE: operations that both remove and insert links (sync(), toggle(), sync_with_pivot_values())
are two separate writes. They are not atomic unless you run them with a session in a transaction:

```python
with client.start_session() as session, session.start_transaction():
    user.roles().with_session(session).sync_with_pivot_values(role_ids, {'active': True})
```
"""

import logging
from collections import OrderedDict
from typing import *

from ..util import to_object_id, entity_key

logger = logging.getLogger(__name__)


class PivotManager:
    """ attach(), detach(), sync(), toggle() for pivot-backed relations

        Requires the class to have:

        * pivot_query(): a query on the pivot collection
        * pivot_type(): the type discriminator, {} for non-polymorphic relations
        * `foreign_pivot_key`, `related_pivot_key`: pivot fields referring to the parent and to the related model
        * `parent_key`, `related_key`: fields the pivot fields refer to
    """

    def _owner_pivot_query(self):
        """ Pivot documents of this parent """
        return self.pivot_query().where(self.foreign_pivot_key, self._parent_value(self.parent_key))

    def _normalize_ids(self, ids) -> list:
        """ Accept: an id, a list of ids, an entity, a list of entities """
        if ids is None:
            return []
        if not isinstance(ids, (list, tuple, set, frozenset)):
            ids = [ids]
        return list(OrderedDict.fromkeys(to_object_id(entity_key(i, self.related_key)) for i in ids))

    def _pivot_record(self, related_id, attributes: Mapping = None) -> dict:
        return {
            **(attributes or {}),
            self.foreign_pivot_key: self._parent_value(self.parent_key),
            self.related_pivot_key: related_id,
            **self.pivot_type(),
        }

    def _insert_pivot_records(self, ids: list, attributes: Mapping = None):
        if ids:
            self.pivot_query().insert_many([self._pivot_record(related_id, attributes) for related_id in ids])
        return ids

    def related_ids(self) -> list:
        """ Ids of the related documents linked to the parent """
        return list(OrderedDict.fromkeys(self._owner_pivot_query().pluck(self.related_pivot_key)))

    def attach(self, ids, attributes: Mapping = None) -> list:
        """ Link related documents to the parent

            Ids that are already linked are skipped.
            With extra `attributes`, a new link is always inserted, even if there already is one.

        :param ids: An id, an entity, or a list of those
        :param attributes: Extra attributes to store in the pivot documents
        :return: The list of linked ids
        """
        ids = self._normalize_ids(ids)
        if not ids:
            return []

        if not attributes:
            existing = set(self._owner_pivot_query().where_in(self.related_pivot_key, ids).pluck(self.related_pivot_key))
            ids = [i for i in ids if i not in existing]

        return self._insert_pivot_records(ids, attributes)

    def detach(self, ids=None) -> int:
        """ Unlink related documents

        :param ids: Ids to unlink. `None` unlinks everything.
        :return: The number of removed pivot documents
        """
        query = self._owner_pivot_query()
        if ids is not None:
            ids = self._normalize_ids(ids)
            if not ids:
                return 0
            query.where_in(self.related_pivot_key, ids)
        return query.force_delete()

    def sync(self, ids) -> dict:
        """ Make the parent linked to exactly these ids

        :return: {'attached': [...], 'detached': [...]}
        """
        ids = self._normalize_ids(ids)
        current = self.related_ids()

        detach = [i for i in current if i not in ids]
        attach = [i for i in ids if i not in current]

        if detach:
            self.detach(detach)
        self._insert_pivot_records(attach)
        return {'attached': attach, 'detached': detach}

    def sync_without_detaching(self, ids, attributes: Mapping = None) -> dict:
        """ Link the ids that are not linked yet; leave the rest alone

        :return: {'attached': [...], 'detached': []}
        """
        current = self.related_ids()
        attach = [i for i in self._normalize_ids(ids) if i not in current]
        self._insert_pivot_records(attach, attributes)
        return {'attached': attach, 'detached': []}

    def sync_with_pivot_values(self, ids, attributes: Mapping) -> dict:
        """ Replace all links of the parent with these ids, all having the same extra attributes

        :return: {'attached': [...], 'detached': [...]}
        """
        ids = self._normalize_ids(ids)
        current = self.related_ids()

        logger.debug('Replacing %d pivot links with %d in %s', len(current), len(ids), self.pivot_query().settings['collection'])
        self.detach()
        self._insert_pivot_records(ids, attributes)
        return {'attached': ids, 'detached': current}

    def toggle(self, ids) -> dict:
        """ Unlink the ids that are linked, link those that are not

        :return: {'attached': [...], 'detached': [...]}
        """
        ids = self._normalize_ids(ids)
        current = self.related_ids()

        detach = [i for i in ids if i in current]
        attach = [i for i in ids if i not in current]

        if detach:
            self.detach(detach)
        self._insert_pivot_records(attach)
        return {'attached': attach, 'detached': detach}

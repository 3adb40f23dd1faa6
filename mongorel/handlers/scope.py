"""
### Soft-delete scope

Models with `use_soft_delete=True` never lose documents on delete(): a marker field is set instead.
Queries only see live documents by default.

* default: `isDeleted == false`
* with_trashed(): no condition at all; both live and deleted documents are visible
* only_trashed(): `isDeleted == true`

These are replacements, not additions: the last call wins.
"""

from .base import QueryHandlerBase


class SoftDeleteScope(QueryHandlerBase):
    """ Decides which is-deleted condition goes into the $match stage """

    query_object_section_name = 'scope'

    #: Scope modes
    DEFAULT = 'default'
    WITH_TRASHED = 'with_trashed'
    ONLY_TRASHED = 'only_trashed'

    def __init__(self, settings):
        super(SoftDeleteScope, self).__init__(settings)

        #: Is this handler active at all?
        self.enabled = bool(settings['use_soft_delete'])
        #: The marker field
        self.field = settings['is_deleted']
        #: Current mode
        self.mode = self.DEFAULT

    def __repr__(self):
        return '{}({}, enabled={})'.format(self.__class__.__name__, self.mode, self.enabled)

    def with_trashed(self):
        self.mode = self.WITH_TRASHED
        self.input_received = True
        return self

    def only_trashed(self):
        self.mode = self.ONLY_TRASHED
        self.input_received = True
        return self

    def compile_statement(self):
        """ Get the is-deleted condition, if any

        :rtype: dict | None
        """
        if not self.enabled or self.mode == self.WITH_TRASHED:
            return None
        return {self.field: self.mode == self.ONLY_TRASHED}

    # Not Implemented for this handler
    compile_stages = NotImplemented

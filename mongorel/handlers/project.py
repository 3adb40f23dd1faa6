"""
### Projection

select() and exclude() choose the fields of the output documents:

```python
User.select('name', 'email').get()
User.exclude('password').get()
```

One projection stage is either inclusive or exclusive, never mixed.
When both select() and exclude() were called, the most recent call wins:
switching the mode drops the fields collected for the other one.

Some fields have to be loaded even when the user didn't ask for them:
e.g. relation keys needed to merge eager-loaded documents.
ensure_loaded() loads such fields quietly and tells the caller to remove them from the output.
"""

from .base import QueryHandlerBase


class MongoProject(QueryHandlerBase):
    """ Projection: inclusion or exclusion """

    query_object_section_name = 'project'

    #: Modes
    SELECT = 'select'
    EXCLUDE = 'exclude'

    def __init__(self, settings=None):
        super(MongoProject, self).__init__(settings)

        #: Projection mode: None (all fields), SELECT, or EXCLUDE
        self.mode = None
        #: The fields the user has listed
        self.fields = []
        #: Fields loaded quietly, against the user's projection
        self.quietly_loaded = set()

    def __repr__(self):
        return '{}({}: {!r})'.format(self.__class__.__name__, self.mode, self.fields)

    def select(self, *fields):
        return self._input(self.SELECT, fields)

    def exclude(self, *fields):
        return self._input(self.EXCLUDE, fields)

    def _input(self, mode, fields):
        # Flatten: select(['a', 'b']) is the same as select('a', 'b')
        flat = []
        for field in fields:
            if isinstance(field, (list, tuple, set, frozenset)):
                flat.extend(field)
            else:
                flat.append(field)

        # Last call wins
        if self.mode != mode:
            self.fields = []
            self.mode = mode

        for field in flat:
            if field not in self.fields:
                self.fields.append(field)

        self.input_received = True
        return self

    def __contains__(self, field):
        """ Will this field be in the output? """
        if field in self.quietly_loaded:
            return False
        if self.mode == self.SELECT:
            return field == '_id' or field in self.fields
        if self.mode == self.EXCLUDE:
            return field not in self.fields
        return True

    def ensure_loaded(self, field) -> bool:
        """ Make sure that a field is loaded

        :return: True if the field has been loaded quietly, and the caller has to remove it from the output
        """
        if field in self:
            return False

        # Already taken care of?
        if field in self.quietly_loaded:
            return True

        self.quietly_loaded.add(field)
        return True

    def compile_projection(self):
        """ Get the projection dict

        :rtype: dict | None
        """
        if self.mode == self.SELECT:
            fields = self.fields + sorted(self.quietly_loaded - set(self.fields))
            return dict.fromkeys(fields, 1) if fields else None
        if self.mode == self.EXCLUDE:
            fields = [f for f in self.fields if f not in self.quietly_loaded]
            return dict.fromkeys(fields, 0) if fields else None
        return None

    def compile_stages(self):
        projection = self.compile_projection()
        return [{'$project': projection}] if projection else []

    # Not Implemented for this handler
    compile_statement = NotImplemented

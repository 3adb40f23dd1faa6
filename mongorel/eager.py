"""
### Eager loading

with_() loads related documents together with the parents:

```python
User.with_('posts').get()
User.with_('posts', {'select': ['title'], 'sort': ['createdAt-'], 'limit': 10}).get()
User.with_({'posts': lambda q: q.where('published', True), 'posts.comments': None}).get()
```

Every relation is loaded with one extra query per request, no matter how many parents there are:
the query selects related documents for the whole set of parent keys at once (like SELECT ... IN),
and the results are distributed among the parents by key.

Options:

* `select`, `exclude`: projection of the related documents. Parent fields are never affected.
* `sort`: list of `'field+'`, `'field-'`, or `(field, direction)` items
* `skip`, `limit`: applied to the related query as a whole
* `with`: nested relations, same syntax as with_()
* a callable `fn(builder)` instead of a dict: customize the relation query as you like

Keys that the merge relies on are loaded quietly when the projection leaves them out,
and are removed before the results are given to you.
"""

import logging
from collections import OrderedDict

from .exc import InvalidArgumentError, RelationNotFoundError

logger = logging.getLogger(__name__)


#: Keys accepted in with_() options
OPTION_KEYS = frozenset(('select', 'exclude', 'sort', 'skip', 'limit', 'with'))


def _as_list(value):
    if isinstance(value, str):
        return [value]
    return list(value)


def normalize_options(name, options):
    """ Validate with_() options for a relation

    :raises InvalidArgumentError: unsupported options
    """
    if options is None or callable(options):
        return options
    if not isinstance(options, dict):
        raise InvalidArgumentError('with_("{}"): options must be a dict or a callable'.format(name))
    unknown = set(options) - OPTION_KEYS
    if unknown:
        raise InvalidArgumentError('with_("{}"): unsupported options: {}'.format(name, ', '.join(sorted(unknown))))
    return dict(options)


def normalize_with(relations, options=None):
    """ Convert with_() arguments into an OrderedDict: {relation name: options}

        Accepts:
            'posts', options
            ['posts', 'posts.comments']
            {'posts': options, 'posts.comments': options}
    """
    if isinstance(relations, str):
        relations = {relations: options}
    elif isinstance(relations, dict):
        pass
    elif isinstance(relations, (list, tuple, set, frozenset)):
        relations = OrderedDict((name, options) for name in relations)
    else:
        raise InvalidArgumentError('with_() expects a relation name, a list, or a dict; {!r} given'.format(relations))

    return OrderedDict(
        (name, normalize_options(name, opts))
        for name, opts in relations.items()
    )


def apply_options(builder, options):
    """ Apply with_() options to a relation query builder """
    if options is None:
        return builder
    if callable(options):
        options(builder)
        return builder

    if 'select' in options:
        builder.select(*_as_list(options['select']))
    if 'exclude' in options:
        builder.exclude(*_as_list(options['exclude']))
    if 'sort' in options:
        builder.sort(*_as_list(options['sort']))
    if 'skip' in options or 'limit' in options:
        builder.skip(options.get('skip', 0))
        builder.limit(options.get('limit', 0))
    if options.get('with'):
        builder.with_(options['with'])
    return builder


class EagerLoader:
    """ Loads relations onto a list of parent entities

        The loader is built from with_() requests; dotted names are split into a tree:
        'posts.comments' loads `posts` for the parents, and `comments` for those posts.
        Nested levels are handed over to the relation query, which has its own loader.
    """

    def __init__(self, model, requests, session=None):
        """ Init the loader

        :param model: The parent model class
        :param requests: {relation name: options}, names may be dotted
        :param session: The session to issue queries with
        """
        self.model = model
        self.session = session

        #: {name: (options, {nested name: options})}
        self.tree = self._build_tree(requests)

    def __repr__(self):
        return '{}({}, {!r})'.format(self.__class__.__name__, self.model.__name__, list(self.tree))

    @staticmethod
    def _build_tree(requests):
        tree = OrderedDict()
        for name, options in requests.items():
            head, _, tail = name.partition('.')
            node = tree.setdefault(head, [None, OrderedDict()])
            if tail:
                node[1][tail] = options
            else:
                node[0] = options
        return tree

    def relation(self, name, parent):
        """ Get a relation from the model registry, bound to a parent

        :raises RelationNotFoundError: the model has no such relation
        """
        try:
            declaration = self.model.__relations__[name]
        except KeyError:
            raise RelationNotFoundError(self.model.__name__, name)

        relation = declaration(parent)
        relation.with_session(self.session)
        return relation

    def prepare(self, project):
        """ Make sure the parent keys relations need are loaded

        :param project: The projection handler of the parent query
        :type project: mongorel.handlers.MongoProject
        :return: The list of fields loaded quietly: to be removed from the parents after the loading
        """
        prototype = self.model()
        quiet = []
        for name in self.tree:
            for key in self.relation(name, prototype).parent_keys():
                if project.ensure_loaded(key) and key not in quiet:
                    quiet.append(key)
        return quiet

    def load(self, parents):
        """ Load all relations onto the parents

        :type parents: list[mongorel.model.Model]
        """
        if not parents:
            return

        for name, (options, nested) in self.tree.items():
            relation = self.relation(name, parents[0])
            logger.debug('Eager-loading %s.%s for %d parents', self.model.__name__, name, len(parents))
            relation.eager_load(parents, name, self._configurator(options, nested))

    @staticmethod
    def _configurator(options, nested):
        """ Get a function that applies the options to a relation query """
        def configure(builder):
            apply_options(builder, options)
            if nested:
                builder.with_(nested)
            return builder
        return configure

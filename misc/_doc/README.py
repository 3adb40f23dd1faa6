import json
from exdoc import doc, getmembers

# Methods
doccls = lambda cls, *allowed_keys: {
    'cls': doc(cls),
    'attrs': {name: doc(m, cls)
              for name, m in getmembers(cls, None,
                                        lambda key, value: key in allowed_keys or not key.startswith('_'))}
}

# Data
import mongorel
from mongorel import eager, model, query, relations
from mongorel.handlers import filter, scope, sort, project
from mongorel.relations import has, belongs_to_many, morph, pivot
from mongorel import QueryBuilder, Model, DB, ModelSettingsDict

data = dict(
    mongorel=doc(mongorel),
    sections={
        m.__name__.rsplit('.', 1)[1]: doc(m)
        for m in (filter, scope, sort, project)},
    relations={
        m.__name__.rsplit('.', 1)[1]: doc(m)
        for m in (has, belongs_to_many, morph, pivot)},
    query=doc(query),
    model=doc(model),
    eager=doc(eager),

    QueryBuilder=doccls(QueryBuilder),
    Model=doccls(Model),
    DB=doccls(DB),
    ModelSettingsDict_init=doc(ModelSettingsDict.__init__, ModelSettingsDict),
    PivotManager=doccls(relations.PivotManager),
)

# Patches

class MyJsonEncoder(json.JSONEncoder):
    def default(self, o):
        # Classes
        if isinstance(o, type):
            return o.__name__
        return super(MyJsonEncoder, self).default(o)

# Document
print(json.dumps(data, indent=2, cls=MyJsonEncoder))

""" Model registry: lets relations and polymorphic types refer to models by class name """

_models = {}


def register_model(model):
    """ Remember a model class under its name """
    _models[model.__name__] = model
    return model


def resolve_model(model):
    """ Get a model class by its name. Classes are returned as is.

    :param model: Model class, or its name
    :raises: KeyError
    """
    if isinstance(model, type):
        return model
    try:
        return _models[model]
    except KeyError:
        raise KeyError('Unknown model: {!r}'.format(model))


def find_model(name):
    """ Get a model class by its name, or None """
    return _models.get(name) if isinstance(name, str) else None

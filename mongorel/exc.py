class BaseMongorelException(Exception):
    pass


class InvalidArgumentError(BaseMongorelException):
    """ Invalid input provided by the User

        Raised before anything is sent to the store.
    """

    def __init__(self, err: str):
        super(InvalidArgumentError, self).__init__('Invalid argument: {err}'.format(err=err))


class ModelNotFoundError(BaseMongorelException):
    """ A `*_or_fail()` terminal has found nothing """

    def __init__(self, model: str, filter: dict = None):
        self.model = model
        self.filter = filter

        super(ModelNotFoundError, self).__init__(
            'No "{model}" found for filter {filter!r}'.format(
                model=model,
                filter=filter)
        )


class MultipleRecordsFoundError(BaseMongorelException):
    """ sole() has found more than one document """

    def __init__(self, model: str, count: int):
        self.model = model
        self.count = count

        super(MultipleRecordsFoundError, self).__init__(
            'Expected one "{model}", found {count}'.format(
                model=model,
                count=count)
        )


class RelationNotFoundError(BaseMongorelException):
    """ Query mentioned a relation the model does not declare """

    def __init__(self, model: str, relation_name: str):
        self.model = model
        self.relation_name = relation_name

        super(RelationNotFoundError, self).__init__(
            'Invalid relation "{relation_name}" for "{model}"'.format(
                relation_name=relation_name,
                model=model)
        )

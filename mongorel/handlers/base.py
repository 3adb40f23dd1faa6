from ..util import ModelSettingsDict


class QueryHandlerBase:
    """ An implementation of a handler for QueryBuilder

        Every subclass handles a single section of the pipeline: filtering, sorting, projection, etc.
        QueryBuilder feeds user input into handlers, and then asks them to compile their piece.
    """

    #: Name of the pipeline section this object is capable of handling
    query_object_section_name = None

    def __init__(self, settings: ModelSettingsDict):
        """ Initialize the handler with model settings.

        :param settings: Settings of the model the query is made against
        :type settings: ModelSettingsDict
        """
        #: Model settings: field names, soft-delete, etc
        self.settings = settings

        # Has any input been received?
        # Handlers with no input compile to nothing.
        self.input_received = False

    def compile_statement(self):
        """ Compile a condition for the $match stage

            Implemented by handlers that contribute to filtering.

            :rtype: dict | None
        """
        raise NotImplementedError()

    def compile_stages(self):
        """ Compile a list of pipeline stages

            Implemented by handlers that contribute stages of their own.

            :rtype: list[dict]
        """
        raise NotImplementedError()

    def reset(self):
        """ Forget the input """
        self.__init__(self.settings)

    def __repr__(self):
        return '{}()'.format(self.__class__.__name__)

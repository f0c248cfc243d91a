class QueryError(Exception):
    """ Base class for every error raised by a prepared statement """


class MalformedTemplate(QueryError):
    """ The template is null, is not valid JSON, or is not a JSON object """

    def __init__(self, err: str):
        super(MalformedTemplate, self).__init__('Malformed query template: {err}'.format(err=err))


class ParameterCountMismatch(QueryError):
    """ The number of bindings does not match the number of placeholders """

    def __init__(self, expected: int, provided: int):
        self.expected = expected
        self.provided = provided

        super(ParameterCountMismatch, self).__init__(
            'Parameter count mismatch: the template has {expected} placeholders, '
            '{provided} parameters were bound'.format(expected=expected, provided=provided)
        )


class NoCollection(QueryError):
    """ The template does not name a collection """

    def __init__(self, template: str = None):
        self.template = template
        super(NoCollection, self).__init__('Invalid query format - no collection found')


class UnboundPlaceholder(QueryError):
    """ A placeholder has no binding to resolve it (strict mode only) """

    def __init__(self, name: str, parent: str = None):
        self.name = name
        self.parent = parent

        where = ' (under "{}")'.format(parent) if parent else ''
        super(UnboundPlaceholder, self).__init__(
            'No parameter was bound for placeholder "{name}"{where}'.format(name=name, where=where)
        )


class DisabledError(QueryError):
    """ The compiler is disabled by the settings """


class StatementClosed(QueryError):
    """ The statement was closed and cannot be used anymore """

    def __init__(self):
        super(StatementClosed, self).__init__('The prepared statement is closed')

from enum import Enum

from .constants import SET_FIELD, UNSET_FIELD


class CommandKind(Enum):
    """ What a compiled template turned into """
    #: A filter, with an optional projection: used by find(), insert(), remove(), add_batch(), update_batch()
    FILTER = 'filter'
    #: A filter and a `$set` document
    UPDATE = 'update'
    #: A filter and an `$unset` document
    UNSET = 'unset'
    #: A distinct key and a filter
    DISTINCT = 'distinct'
    #: An aggregation pipeline
    AGGREGATE = 'aggregate'


class CompiledCommand:
    """ A driver-ready command compiled from a template and its bindings

        Only the fields relevant to the `kind` are set:

        * FILTER: `filter`, `projection`
        * UPDATE, UNSET: `filter`, `update` (the `$set` / `$unset` document)
        * DISTINCT: `distinct_key`, `filter`
        * AGGREGATE: `pipeline`
    """

    __slots__ = ('kind', 'collection', 'filter', 'projection', 'update', 'distinct_key', 'pipeline')

    def __init__(self, kind, collection,
                 filter=None, projection=None, update=None,
                 distinct_key=None, pipeline=None):
        #: CommandKind
        self.kind = kind
        #: Name of the collection to run the command against
        self.collection = collection
        #: The predicate document (the WHERE)
        self.filter = filter if filter is not None else {}
        #: The field selection document, or None
        self.projection = projection or None
        #: The `$set` / `$unset` document, or None
        self.update = update
        #: The field to distinct over
        self.distinct_key = distinct_key
        #: list of stage documents
        self.pipeline = pipeline

    @property
    def update_operator(self):
        """ The update operator to wrap `update` with: `$set` or `$unset` """
        return {CommandKind.UPDATE: SET_FIELD,
                CommandKind.UNSET: UNSET_FIELD}.get(self.kind)

    @property
    def update_document(self):
        """ The complete update document: `{ $set: {...} }` or `{ $unset: {...} }` """
        return {self.update_operator: self.update or {}}

    def __eq__(self, other):
        return isinstance(other, CompiledCommand) and all(getattr(self, a) == getattr(other, a)
                                                          for a in self.__slots__)

    def __repr__(self):
        return '{}({})'.format(
            self.__class__.__name__,
            ', '.join('{}={!r}'.format(a, getattr(self, a))
                      for a in self.__slots__
                      if getattr(self, a) is not None)
        )

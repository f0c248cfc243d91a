"""
### Prepared Statements

A prepared statement is bound to a database and a template.
Parameters are bound by name; then the statement is executed, as many times as you like:

```python
from pymongo import MongoClient
from mongostmt import PreparedStatement

db = MongoClient().get_database('userstore')

stmt = PreparedStatement(db, '{"collection": "UM_USER", "UM_USER_NAME": "?", "UM_TENANT_ID": "?"}')
stmt.bind_string('UM_USER_NAME', 'alice')
stmt.bind_int('UM_TENANT_ID', -1234)
for user in stmt.find():
    ...
stmt.close()
```

Every execution compiles the template anew, with the current bindings,
and fails before touching the database when:

* the number of bindings differs from the number of placeholders (`ParameterCountMismatch`)
* the template has no `collection` (`NoCollection`)
* (strict mode) a placeholder has no binding (`UnboundPlaceholder`)

Driver errors propagate as they are.

The statement is single-threaded: share the database handle, not the statement.
"""

import logging
from enum import Enum

from pymongo import InsertOne, ReplaceOne

from .bindings import Bindings, Int32, Int64, Str, Bool, Date
from .command import CommandKind
from .compiler import StatementCompiler
from .exc import QueryError, StatementClosed
from .template import Template

logger = logging.getLogger(__name__)


class StatementState(Enum):
    """ Lifecycle of a prepared statement """
    #: Some placeholders have no bindings yet
    PARTIALLY_BOUND = 'partially-bound'
    #: As many bindings as placeholders
    BOUND = 'bound'
    #: Batched operations are waiting for insert_bulk() / update_bulk()
    BULK = 'bulk'
    #: Executed at least once. Can be re-bound and executed again.
    USED = 'used'
    #: Closed: every operation fails
    CLOSED = 'closed'


class PreparedStatement:
    """ A JSON-templated prepared statement for MongoDB """

    # The class that compiles templates
    _COMPILER_CLS = StatementCompiler

    def __init__(self, db, template, settings=None, **more_settings):
        """ Prepare a statement

        :param db: The database to run commands against
        :type db: pymongo.database.Database
        :param template: JSON template
        :type template: str
        :param settings: Settings. See StatementSettingsDict.
        :type settings: dict | mongostmt.StatementSettingsDict | None
        :param more_settings: More settings, as kwargs
        :raises MalformedTemplate: null or invalid template
        :raises KeyError: unknown settings
        """
        settings = {**(settings or {}), **more_settings}

        self._db = db
        self._template = Template(template)
        self._compiler = self._COMPILER_CLS(settings)
        self._bindings = Bindings()

        #: Pass `upsert=True` to update_one()
        self._update_upsert = settings.get('update_upsert', False)
        #: Lookup mode override; None: the template decides
        self._multi_lookup = self._compiler.multi_lookup

        #: Batched write requests, created by the first add_batch() / update_batch()
        self._bulk_requests = None
        self._bulk_collection = None

        #: Was the last compiled update an `$unset`? Cleared by update().
        self._is_unset = False

        self._state = StatementState.PARTIALLY_BOUND
        self._update_bound_state()

        logger.debug('Is multiple lookup enabled for the prepared statement: %s', self.multi_lookup)

    def __repr__(self):
        return '{}({}, {})'.format(self.__class__.__name__,
                                   self._template.text if self._template else None,
                                   self._state.name)

    # region Context manager

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # endregion

    # region State

    @property
    def state(self):
        """ :rtype: StatementState """
        return self._state

    @property
    def is_closed(self):
        return self._state == StatementState.CLOSED

    @property
    def template(self):
        """ :rtype: Template """
        self._raise_if_closed()
        return self._template

    @property
    def bindings(self):
        """ :rtype: Bindings """
        self._raise_if_closed()
        return self._bindings

    @property
    def multi_lookup(self):
        """ Is the single lookup mode on? (see StatementSettingsDict.multi_lookup for the naming) """
        if self._multi_lookup is not None:
            return self._multi_lookup
        return self._template.multi_lookup if self._template else False

    @property
    def is_unset(self):
        """ Was the last compiled update an `$unset`? update() clears the flag. """
        return self._is_unset

    def set_multi_lookup(self, status):
        """ Override the lookup mode

        :param status: True: keep only the last `$lookup` and `$unwind` stages.
            False: interleave all lookups and unwinds by their dependencies.
        """
        self._raise_if_closed()
        self._multi_lookup = bool(status)
        return self

    def _raise_if_closed(self):
        if self._state == StatementState.CLOSED:
            raise StatementClosed()

    def _update_bound_state(self):
        if self._state in (StatementState.PARTIALLY_BOUND, StatementState.BOUND, StatementState.USED):
            if len(self._bindings) == self._template.placeholder_count:
                self._state = StatementState.BOUND
            else:
                self._state = StatementState.PARTIALLY_BOUND

    def close(self):
        """ Release every reference. The statement can't be used anymore. """
        self._db = None
        self._template = None
        self._compiler = None
        self._bindings = None
        self._bulk_requests = None
        self._bulk_collection = None
        self._is_unset = False
        self._state = StatementState.CLOSED

    # endregion

    # region Bindings

    def bind(self, name, value):
        """ Bind a typed value to a placeholder name

        :type name: str
        :type value: TypedValue
        """
        self._raise_if_closed()
        self._bindings.bind(name, value)
        self._update_bound_state()
        return self

    def bind_int(self, name, value):
        return self.bind(name, Int32(value))

    def bind_long(self, name, value):
        return self.bind(name, Int64(value))

    def bind_string(self, name, value):
        return self.bind(name, Str(value))

    def bind_bool(self, name, value):
        return self.bind(name, Bool(value))

    def bind_date(self, name, value):
        return self.bind(name, Date(value))

    # endregion

    # region Compilation

    def compile(self):
        """ Compile the template with the current bindings, without running it

        :rtype: mongostmt.command.CompiledCommand
        """
        self._raise_if_closed()
        return self._compiler.compile(self._template, self._bindings, self._multi_lookup)

    def _compile_query(self):
        self._raise_if_closed()
        command = self._compiler.compile_query(self._template, self._bindings)
        self._is_unset = command.kind == CommandKind.UNSET
        return command

    def _collection(self, command):
        """ Get the collection the command runs against

        :rtype: pymongo.collection.Collection
        """
        return self._db.get_collection(command.collection)

    def _executed(self, result):
        self._state = StatementState.USED
        return result

    # endregion

    # region Execution

    def find(self):
        """ Find documents with the filter, and the projection

        :rtype: pymongo.cursor.Cursor
        """
        command = self._compile_query()
        collection = self._collection(command)

        if command.projection:
            cursor = collection.find(command.filter, command.projection)
        elif command.filter:
            cursor = collection.find(command.filter)
        else:
            cursor = collection.find()
        return self._executed(cursor)

    def insert(self):
        """ Insert the compiled document

        :rtype: pymongo.results.InsertOneResult
        """
        command = self._compile_query()
        return self._executed(self._collection(command).insert_one(dict(command.filter)))

    def update(self):
        """ Update the first matching document with `$set` or `$unset`

        :rtype: pymongo.results.UpdateResult
        :raises QueryError: the template has neither `$set` nor `$unset`
        """
        command = self._compile_query()
        if command.update_operator is None:
            raise QueryError('Invalid update query: no $set or $unset found in {}'.format(self._template.text))

        # The flag is only good for one update
        self._is_unset = False

        result = self._collection(command).update_one(command.filter, command.update_document,
                                                       upsert=self._update_upsert)
        return self._executed(result)

    def remove(self):
        """ Delete every matching document

        :rtype: pymongo.results.DeleteResult
        """
        command = self._compile_query()
        return self._executed(self._collection(command).delete_many(command.filter))

    def distinct(self):
        """ Get the distinct values of the `distinct` field among the matching documents

        :rtype: list
        :raises QueryError: the template has no `distinct` key
        """
        command = self._compile_query()
        if command.distinct_key is None:
            raise QueryError('Invalid distinct query: no "distinct" field found in {}'.format(self._template.text))
        return self._executed(self._collection(command).distinct(command.distinct_key, command.filter))

    def aggregate(self):
        """ Run the aggregation pipeline

        :rtype: pymongo.command_cursor.CommandCursor
        """
        self._raise_if_closed()
        command = self._compiler.compile_pipeline(self._template, self._bindings, self._multi_lookup)
        return self._executed(self._collection(command).aggregate(command.pipeline))

    # endregion

    # region Bulk

    def _add_bulk_request(self, command, request):
        if self._bulk_requests is None:
            self._bulk_requests = []
            self._bulk_collection = self._collection(command)
        self._bulk_requests.append(request)
        self._state = StatementState.BULK
        return self

    def add_batch(self):
        """ Queue an insert of the compiled document """
        command = self._compile_query()
        return self._add_bulk_request(command, InsertOne(dict(command.filter)))

    def update_batch(self):
        """ Queue an upsert: replace the matching document with the compiled projection

        :raises QueryError: nothing to replace the document with
        """
        command = self._compile_query()
        replacement = command.update if command.update_operator else command.projection
        if not replacement:
            raise QueryError('Invalid batch update: no projection found in {}'.format(self._template.text))
        return self._add_bulk_request(command, ReplaceOne(command.filter, dict(replacement), upsert=True))

    def _execute_bulk(self):
        self._raise_if_closed()
        if not self._bulk_requests:
            raise QueryError('No batched operations to execute')

        logger.debug('Executing %d batched operations', len(self._bulk_requests))
        result = self._bulk_collection.bulk_write(self._bulk_requests, ordered=False)

        # The batch stays queued when the driver fails
        self._bulk_requests = self._bulk_collection = None
        return self._executed(result)

    def insert_bulk(self):
        """ Execute the batched operations

        :rtype: pymongo.results.BulkWriteResult
        """
        return self._execute_bulk()

    def update_bulk(self):
        """ Execute the batched operations

        :rtype: pymongo.results.BulkWriteResult
        """
        return self._execute_bulk()

    # endregion

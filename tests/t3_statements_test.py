import unittest
from datetime import datetime

from pymongo import InsertOne, ReplaceOne
from pymongo.errors import PyMongoError

from mongostmt import PreparedStatement, StatementState, CompiledCommand, CommandKind, Str
from mongostmt.exc import QueryError, ParameterCountMismatch, NoCollection, UnboundPlaceholder, StatementClosed
from .util import mock_db


class PreparedStatementTest(unittest.TestCase):
    """ Test PreparedStatement against a mock database """

    longMessage = True
    maxDiff = None

    def test_find(self):
        db, collection = mock_db()

        # Simple find
        stmt = PreparedStatement(db, '{"collection": "users", "name": "?"}')
        self.assertIs(stmt.bind_string('name', 'alice'), stmt)
        cursor = stmt.find()
        self.assertIs(cursor, collection.find.return_value)
        db.get_collection.assert_called_once_with('users')
        collection.find.assert_called_once_with({'name': 'alice'})

        # With a projection
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "users", "name": "?", "projection": {"UM_ID": 1}}')
        stmt.bind_string('name', 'alice')
        stmt.find()
        collection.find.assert_called_once_with({'name': 'alice'}, {'UM_ID': 1})

        # No filter at all
        db, collection = mock_db()
        PreparedStatement(db, '{"collection": "users"}').find()
        collection.find.assert_called_once_with()

    def test_find_case_insensitive(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "UM_USER_NAME": {"$regex": "?"}}')
        stmt.bind_string('$regex', '^al')
        stmt.find()
        collection.find.assert_called_once_with({'UM_USER_NAME': {'$regex': '^al', '$options': 'i'}})

    def test_insert(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "users", "name": "?", "age": "?", "active": "?", "created": "?"}')
        stmt.bind_string('name', 'alice').bind_int('age', 30).bind_bool('active', True)
        stmt.bind_date('created', datetime(2020, 1, 2))
        stmt.insert()
        collection.insert_one.assert_called_once_with({'name': 'alice', 'age': 30, 'active': True,
                                                       'created': datetime(2020, 1, 2)})

    def test_update(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "id": "?", "projection": {"$set": {"role": "?"}}}')
        stmt.bind_long('id', 7).bind_string('role', 'admin')
        stmt.update()
        db.get_collection.assert_called_once_with('u')
        collection.update_one.assert_called_once_with({'id': 7}, {'$set': {'role': 'admin'}}, upsert=False)
        self.assertFalse(stmt.is_unset)

        # Upsert
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "id": "?", "projection": {"$set": {"role": "?"}}}',
                                 update_upsert=True)
        stmt.bind_long('id', 7).bind_string('role', 'admin')
        stmt.update()
        collection.update_one.assert_called_once_with({'id': 7}, {'$set': {'role': 'admin'}}, upsert=True)

    def test_unset(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "id": "?", "projection": {"$unset": {"tmp": 1}}}')
        stmt.bind_long('id', 7)

        # Compiling a query raises the flag
        stmt.find()
        self.assertTrue(stmt.is_unset)

        # The update clears it
        stmt.update()
        collection.update_one.assert_called_once_with({'id': 7}, {'$unset': {'tmp': 1}}, upsert=False)
        self.assertFalse(stmt.is_unset)

    def test_update_not_an_update(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "id": "?"}')
        stmt.bind_long('id', 7)
        with self.assertRaises(QueryError):
            stmt.update()
        collection.update_one.assert_not_called()

    def test_remove(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "UM_TENANT_ID": "?"}')
        stmt.bind_int('UM_TENANT_ID', -1234)
        stmt.remove()
        collection.delete_many.assert_called_once_with({'UM_TENANT_ID': -1234})

    def test_distinct(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "c", "distinct": "city", "country": "?"}')
        stmt.bind_string('country', 'NL')
        stmt.distinct()
        collection.distinct.assert_called_once_with('city', {'country': 'NL'})

        # No distinct key
        db, collection = mock_db()
        with self.assertRaises(QueryError):
            PreparedStatement(db, '{"collection": "c"}').distinct()
        collection.distinct.assert_not_called()

    def test_aggregate(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "c", "$match": {"t": "?"}, "$limit": "?"}')
        stmt.bind_int('t', 5).bind_long('$limit', 10)
        cursor = stmt.aggregate()
        self.assertIs(cursor, collection.aggregate.return_value)
        collection.aggregate.assert_called_once_with([{'$limit': 10}, {'$match': {'t': 5}}])

    def test_aggregate_lookups(self):
        tpl = ('{"collection": "UM_USER", '
               '"$lookup": {"from": "UM_USER_ROLE", "localField": "UM_ID", "foreignField": "UM_USER_ID", "as": "a"}, '
               '"$unwind": {"path": "$a"}, '
               '"$lookup_sub": {"from": "UM_ROLE", "localField": "a.UM_ROLE_ID", "foreignField": "UM_ID", '
               '"as": "b", "dependency": "a"}, '
               '"$unwind_sub": {"path": "$b"}}')
        lookup_a = {'from': 'UM_USER_ROLE', 'localField': 'UM_ID', 'foreignField': 'UM_USER_ID', 'as': 'a'}
        lookup_b = {'from': 'UM_ROLE', 'localField': 'a.UM_ROLE_ID', 'foreignField': 'UM_ID', 'as': 'b'}

        # Detected: single lookup mode
        db, collection = mock_db()
        stmt = PreparedStatement(db, tpl)
        self.assertTrue(stmt.multi_lookup)
        stmt.aggregate()
        collection.aggregate.assert_called_once_with([{'$lookup': lookup_b}, {'$unwind': {'path': '$b'}}])

        # Interleaved
        db, collection = mock_db()
        stmt = PreparedStatement(db, tpl)
        self.assertIs(stmt.set_multi_lookup(False), stmt)
        self.assertFalse(stmt.multi_lookup)
        stmt.aggregate()
        expected = [
            {'$lookup': lookup_a},
            {'$unwind': {'path': '$a'}},
            {'$unwind': {'path': '$b'}},
            {'$lookup': lookup_b},
        ]
        collection.aggregate.assert_called_once_with(expected)

        # Executed again: same pipeline
        stmt.aggregate()
        self.assertEqual(collection.aggregate.call_args_list[1][0][0], expected)

        # Settings
        db, collection = mock_db()
        PreparedStatement(db, tpl, multi_lookup=False).aggregate()
        collection.aggregate.assert_called_once_with(expected)

    def test_parameter_count_mismatch(self):
        # Every execution fails, and the driver is never called
        for tpl in ('{"collection": "u", "a": "?", "b": "?"}',
                    '{"collection": "u", "a": "?", "projection": {"$set": {"b": "?"}}}',
                    '{"collection": "u", "distinct": "city", "a": "?", "b": "?"}',
                    '{"collection": "u", "$match": {"a": "?", "b": "?"}}',
                    ):
            db, collection = mock_db()
            stmt = PreparedStatement(db, tpl)
            stmt.bind_string('a', 'x')

            for method in ('find', 'insert', 'update', 'remove', 'distinct', 'aggregate', 'add_batch', 'update_batch'):
                with self.assertRaises(ParameterCountMismatch, msg='{} {}'.format(tpl, method)) as e:
                    getattr(stmt, method)()
                self.assertEqual((e.exception.expected, e.exception.provided), (2, 1))

            self.assertEqual(db.mock_calls, [])

        # Too many bindings is a mismatch too
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "a": "?"}')
        stmt.bind_string('a', 'x').bind_string('b', 'y')
        with self.assertRaises(ParameterCountMismatch):
            stmt.find()
        self.assertEqual(db.mock_calls, [])

    def test_no_collection(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"name": "?"}')
        stmt.bind_string('name', 'alice')

        with self.assertRaises(NoCollection) as e:
            stmt.find()
        self.assertEqual(str(e.exception), 'Invalid query format - no collection found')

        with self.assertRaises(NoCollection):
            PreparedStatement(db, '{"$match": {}}').aggregate()
        self.assertEqual(db.mock_calls, [])

    def test_strict(self):
        tpl = '{"collection": "u", "a": "?"}'

        # Strict: a placeholder that no binding resolves
        db, collection = mock_db()
        stmt = PreparedStatement(db, tpl)
        stmt.bind_string('b', 'x')
        with self.assertRaises(UnboundPlaceholder) as e:
            stmt.find()
        self.assertEqual(e.exception.name, 'a')
        self.assertEqual(db.mock_calls, [])

        # Lax: dropped
        db, collection = mock_db()
        stmt = PreparedStatement(db, tpl, strict=False)
        stmt.bind_string('b', 'x')
        stmt.find()
        collection.find.assert_called_once_with()

        # Placeholders may be resolved by their parent key
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "UM_USER_NAME": {"$regex": "?"}}')
        stmt.bind_string('UM_USER_NAME', '^al')
        stmt.find()
        collection.find.assert_called_once_with({'UM_USER_NAME': {'$regex': '^al', '$options': 'i'}})

        # ... but only where the compiler looks for them: a filter resolves nested leaves by their own keys
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "age": {"$gt": "?"}}')
        stmt.bind_int('age', 18)
        with self.assertRaises(UnboundPlaceholder) as e:
            stmt.find()
        self.assertEqual((e.exception.name, e.exception.parent), ('$gt', 'age'))
        self.assertEqual(db.mock_calls, [])

        # An update only resolves its top-level keys and its $set object
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "t": {"id": "?"}, "projection": {"$set": {"r": "?"}}}')
        stmt.bind_long('id', 1).bind_string('r', 'x')
        with self.assertRaises(UnboundPlaceholder) as e:
            stmt.update()
        self.assertEqual((e.exception.name, e.exception.parent), ('id', 't'))
        collection.update_one.assert_not_called()
        self.assertEqual(db.mock_calls, [])

        # Lax: the nested leaf is dropped, the update goes on
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "t": {"id": "?"}, "projection": {"$set": {"r": "?"}}}',
                                 strict=False)
        stmt.bind_long('id', 1).bind_string('r', 'x')
        stmt.update()
        collection.update_one.assert_called_once_with({}, {'$set': {'r': 'x'}}, upsert=False)

    def test_bulk(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "name": "?"}')

        # Insert
        stmt.bind_string('name', 'alice').add_batch()
        self.assertEqual(stmt.state, StatementState.BULK)
        stmt.bind_string('name', 'bob').add_batch()
        collection.bulk_write.assert_not_called()

        result = stmt.insert_bulk()
        self.assertIs(result, collection.bulk_write.return_value)
        collection.bulk_write.assert_called_once_with(
            [InsertOne({'name': 'alice'}), InsertOne({'name': 'bob'})],
            ordered=False)
        self.assertEqual(stmt.state, StatementState.USED)

        # The batch is gone
        with self.assertRaises(QueryError):
            stmt.insert_bulk()

    def test_bulk_driver_error(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "name": "?"}')
        stmt.bind_string('name', 'alice').add_batch()
        stmt.bind_string('name', 'bob').add_batch()
        requests = [InsertOne({'name': 'alice'}), InsertOne({'name': 'bob'})]

        # The driver fails: the batch is kept
        collection.bulk_write.side_effect = PyMongoError('connection lost')
        with self.assertRaises(PyMongoError):
            stmt.insert_bulk()
        self.assertEqual(stmt.state, StatementState.BULK)

        # Retry
        collection.bulk_write.side_effect = None
        result = stmt.insert_bulk()
        self.assertIs(result, collection.bulk_write.return_value)
        self.assertEqual(collection.bulk_write.call_count, 2)
        collection.bulk_write.assert_called_with(requests, ordered=False)
        self.assertEqual(stmt.state, StatementState.USED)

    def test_bulk_update(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "id": "?", "projection": {"$set": {"role": "?"}}}')
        stmt.bind_long('id', 1).bind_string('role', 'admin').update_batch()
        stmt.bind_long('id', 2).bind_string('role', 'user').update_batch()
        stmt.update_bulk()
        collection.bulk_write.assert_called_once_with(
            [ReplaceOne({'id': 1}, {'role': 'admin'}, upsert=True),
             ReplaceOne({'id': 2}, {'role': 'user'}, upsert=True)],
            ordered=False)

        # Plain projection
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "id": "?", "projection": {"role": "admin"}}')
        stmt.bind_long('id', 1).update_batch()
        stmt.update_bulk()
        collection.bulk_write.assert_called_once_with(
            [ReplaceOne({'id': 1}, {'role': 'admin'}, upsert=True)],
            ordered=False)

        # Nothing to replace with
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "id": "?"}')
        with self.assertRaises(QueryError):
            stmt.bind_long('id', 1).update_batch()

        # Empty bulk
        with self.assertRaises(QueryError):
            stmt.update_bulk()
        collection.bulk_write.assert_not_called()

    def test_bulk_mixed(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "id": "?", "projection": {"role": "admin"}}')
        stmt.bind_long('id', 1).add_batch()
        stmt.bind_long('id', 2).update_batch()
        stmt.insert_bulk()
        collection.bulk_write.assert_called_once_with(
            [InsertOne({'id': 1}),
             ReplaceOne({'id': 2}, {'role': 'admin'}, upsert=True)],
            ordered=False)

    def test_compile(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "users", "name": "?"}')
        stmt.bind_string('name', 'alice')

        cmd = stmt.compile()
        self.assertEqual(cmd, CompiledCommand(CommandKind.FILTER, 'users', filter={'name': 'alice'}))
        # Compiling again gives the same command
        self.assertEqual(stmt.compile(), cmd)
        # The driver is not touched
        self.assertEqual(db.mock_calls, [])

        # Aggregation
        stmt = PreparedStatement(db, '{"collection": "c", "$limit": 5}')
        self.assertEqual(stmt.compile().pipeline, [{'$limit': 5}])
        self.assertEqual(db.mock_calls, [])

    def test_state(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "a": "?", "b": "?"}')
        self.assertEqual(stmt.state, StatementState.PARTIALLY_BOUND)

        stmt.bind_string('a', 'x')
        self.assertEqual(stmt.state, StatementState.PARTIALLY_BOUND)
        stmt.bind_string('b', 'y')
        self.assertEqual(stmt.state, StatementState.BOUND)

        stmt.find()
        self.assertEqual(stmt.state, StatementState.USED)

        # Re-bind and run again
        stmt.bind_string('a', 'z')
        self.assertEqual(stmt.state, StatementState.BOUND)
        stmt.find()
        self.assertEqual(collection.find.call_args_list[1][0][0], {'a': 'z', 'b': 'y'})

        # No placeholders: bound from the start
        self.assertEqual(PreparedStatement(db, '{"collection": "u"}').state, StatementState.BOUND)

    def test_close(self):
        db, collection = mock_db()
        stmt = PreparedStatement(db, '{"collection": "u", "a": "?"}')
        stmt.close()
        self.assertTrue(stmt.is_closed)
        self.assertEqual(stmt.state, StatementState.CLOSED)

        for method in ('find', 'insert', 'update', 'remove', 'distinct', 'aggregate', 'add_batch', 'update_batch',
                       'insert_bulk', 'update_bulk', 'compile'):
            with self.assertRaises(StatementClosed, msg=method):
                getattr(stmt, method)()
        with self.assertRaises(StatementClosed):
            stmt.bind('a', Str('x'))
        with self.assertRaises(StatementClosed):
            stmt.bind_string('a', 'x')
        with self.assertRaises(StatementClosed):
            stmt.set_multi_lookup(True)

        # Closing twice is fine
        stmt.close()

        # Context manager
        with PreparedStatement(db, '{"collection": "u"}') as stmt:
            stmt.find()
        self.assertTrue(stmt.is_closed)
        self.assertEqual(db.mock_calls[0][0], 'get_collection')

    def test_bad_template(self):
        db, collection = mock_db()
        with self.assertRaises(QueryError):
            PreparedStatement(db, None)
        with self.assertRaises(QueryError):
            PreparedStatement(db, '{"collection": ')
        with self.assertRaises(KeyError):
            PreparedStatement(db, '{"collection": "u"}', no_such_setting=1)

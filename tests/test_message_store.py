import json
import unittest
from unittest import mock

from sanstools.ledger.message_store import InMemoryMessageStore, PostgresMessageStore
from sanstools.sql.sql_manager import SQLManager

RECORD = {'id': 'abc', 'type': 'comic_sans_ledger', 'user_id': 'user-1', 'content': {'user_id': 'user-1', 'records': []}}

class TestInMemoryMessageStore(unittest.IsolatedAsyncioTestCase):

    async def test_create_get_remove(self):
        store = InMemoryMessageStore()
        await store.create(RECORD)
        self.assertEqual(await store.get_by_id('abc'), RECORD)

        await store.remove('abc')
        self.assertIsNone(await store.get_by_id('abc'))
        await store.remove('abc')  # removing an absent record is a no-op

    async def test_duplicate_create_is_refused(self):
        store = InMemoryMessageStore()
        await store.create(RECORD)
        with self.assertRaises(ValueError):
            await store.create(RECORD)

    async def test_replace_overwrites_or_creates(self):
        store = InMemoryMessageStore()
        await store.replace(RECORD)
        updated = dict(RECORD, content={'user_id': 'user-1', 'records': ['r1']})
        await store.replace(updated)
        self.assertEqual(await store.get_by_id('abc'), updated)
        self.assertEqual(len(store), 1)

    async def test_returned_records_are_copies(self):
        store = InMemoryMessageStore()
        await store.create(RECORD)
        fetched = await store.get_by_id('abc')
        fetched['content']['records'].append('tampered')
        self.assertEqual((await store.get_by_id('abc'))['content']['records'], [])

class TestPostgresMessageStore(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.conn = mock.MagicMock()
        self.conn.fetchrow = mock.AsyncMock()
        self.conn.execute = mock.AsyncMock()
        pool = mock.MagicMock()
        pool.acquire.return_value.__aenter__.return_value = self.conn
        self.db_manager = mock.MagicMock()
        self.db_manager.get_pool = mock.AsyncMock(return_value=pool)
        self.store = PostgresMessageStore(self.db_manager, "sansnode")

    async def test_get_by_id_decodes_content(self):
        self.conn.fetchrow.return_value = {
            'id': 'abc', 'record_type': 'comic_sans_ledger', 'user_id': 'user-1',
            'content': json.dumps(RECORD['content']),
        }
        self.assertEqual(await self.store.get_by_id('abc'), RECORD)
        query, record_id = self.conn.fetchrow.await_args.args
        self.assertIn("FROM sans_ledgers", query)
        self.assertEqual(record_id, 'abc')
        self.db_manager.get_pool.assert_awaited_with("sansnode")

    async def test_get_missing(self):
        self.conn.fetchrow.return_value = None
        self.assertIsNone(await self.store.get_by_id('abc'))

    async def test_create_serializes_content(self):
        await self.store.create(RECORD)
        query, *params = self.conn.execute.await_args.args
        self.assertIn("INSERT INTO sans_ledgers", query)
        self.assertEqual(params, ['abc', 'comic_sans_ledger', 'user-1', json.dumps(RECORD['content'])])

    async def test_replace_runs_delete_and_insert_in_one_transaction(self):
        await self.store.replace(RECORD)

        transaction = self.conn.transaction.return_value
        transaction.__aenter__.assert_awaited_once()
        transaction.__aexit__.assert_awaited_once()
        self.assertIsNone(transaction.__aexit__.await_args.args[0])
        (delete_query, delete_id), (insert_query, *insert_params) = [c.args for c in self.conn.execute.await_args_list]
        self.assertIn("DELETE FROM sans_ledgers", delete_query)
        self.assertEqual(delete_id, 'abc')
        self.assertIn("INSERT INTO sans_ledgers", insert_query)
        self.assertEqual(insert_params, ['abc', 'comic_sans_ledger', 'user-1', json.dumps(RECORD['content'])])

    async def test_failed_insert_rolls_back_the_delete(self):
        self.conn.execute.side_effect = [None, RuntimeError("connection lost")]

        with self.assertRaises(RuntimeError):
            await self.store.replace(RECORD)

        # The transaction block exits with the error, so asyncpg rolls back the delete
        transaction = self.conn.transaction.return_value
        self.assertIs(transaction.__aexit__.await_args.args[0], RuntimeError)
        self.assertEqual(self.conn.execute.await_count, 2)

    async def test_errors_propagate(self):
        self.conn.execute.side_effect = RuntimeError("connection lost")
        with self.assertRaises(RuntimeError):
            await self.store.remove('abc')

class TestSQLManager(unittest.TestCase):

    def test_packaged_scripts(self):
        manager = SQLManager()
        self.assertEqual(manager.get_table_names('init', 'create_tables'), ['sans_ledgers'])
        self.assertEqual(len(manager.load_statements('init', 'create_tables')), 2)
        self.assertIn("$1", manager.load_query('queries', 'delete_record'))

if __name__ == '__main__':
    unittest.main()

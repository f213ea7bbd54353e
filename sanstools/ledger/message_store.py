from typing import Optional, Dict, Any
import copy
import json
import traceback
from loguru import logger
from sanstools.sql.sql_manager import SQLManager
from sanstools.utilities.db_manager import DBConnectionManager

class InMemoryMessageStore:
    """Dict-backed message store. Returns copies so callers cannot mutate stored state."""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}

    async def get_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def remove(self, record_id: str) -> None:
        self._records.pop(record_id, None)

    async def create(self, record: Dict[str, Any]) -> None:
        if record['id'] in self._records:
            raise ValueError(f"Record {record['id']} already exists")
        self._records[record['id']] = copy.deepcopy(record)

    async def replace(self, record: Dict[str, Any]) -> None:
        self._records[record['id']] = copy.deepcopy(record)

    def __len__(self):
        return len(self._records)

class PostgresMessageStore:
    """Message store over the sans_ledgers table"""

    def __init__(self, db_manager: DBConnectionManager, node_name: str, sql_manager: Optional[SQLManager] = None):
        self.db_manager = db_manager
        self.node_name = node_name
        self.sql_manager = sql_manager or SQLManager()

    async def _execute(self, query_name: str, *params, fetch: bool = False):
        try:
            pool = await self.db_manager.get_pool(self.node_name)
            query = self.sql_manager.load_query('queries', query_name)
            async with pool.acquire() as conn:
                if fetch:
                    return await conn.fetchrow(query, *params)
                return await conn.execute(query, *params)
        except Exception as e:
            logger.error(f"PostgresMessageStore.{query_name}: Error executing query: {e}")
            logger.error(traceback.format_exc())
            raise

    async def get_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        row = await self._execute('get_record_by_id', record_id, fetch=True)
        if row is None:
            return None
        content = row['content']
        return {
            'id': row['id'],
            'type': row['record_type'],
            'user_id': row['user_id'],
            'content': json.loads(content) if isinstance(content, str) else content,
        }

    async def remove(self, record_id: str) -> None:
        await self._execute('delete_record', record_id)

    @staticmethod
    def _insert_params(record: Dict[str, Any]) -> tuple:
        return record['id'], record['type'], record['user_id'], json.dumps(record['content'])

    async def create(self, record: Dict[str, Any]) -> None:
        await self._execute('insert_record', *self._insert_params(record))

    async def replace(self, record: Dict[str, Any]) -> None:
        """Delete and re-insert in one transaction; a failed insert keeps the old row"""
        try:
            pool = await self.db_manager.get_pool(self.node_name)
            delete_query = self.sql_manager.load_query('queries', 'delete_record')
            insert_query = self.sql_manager.load_query('queries', 'insert_record')
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(delete_query, record['id'])
                    await conn.execute(insert_query, *self._insert_params(record))
        except Exception as e:
            logger.error(f"PostgresMessageStore.replace: Error replacing record {record['id']}: {e}")
            logger.error(traceback.format_exc())
            raise

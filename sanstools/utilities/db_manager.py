from typing import Optional
from loguru import logger
import asyncpg
from sanstools.configuration.constants import CredentialKey
from sanstools.protocols.credentials import CredentialManager
from sanstools.utilities.exceptions import ConfigurationError

class DBConnectionManager:
    ''' manages one asyncpg pool for the node's ledger database '''
    _instance = None
    _initialized = False

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, credential_manager: CredentialManager):
        if not self.__class__._initialized:
            self.credential_manager = credential_manager
            self._pool: Optional[asyncpg.Pool] = None
            self.__class__._initialized = True

    def get_connection_string(self, node_name: str) -> str:
        db_connstring = self.credential_manager.get_credential(CredentialKey.POSTGRES.for_node(node_name))
        if not db_connstring:
            raise ConfigurationError(f"No PostgreSQL connection string configured for {node_name}")
        return db_connstring

    async def get_pool(self, node_name: str) -> asyncpg.Pool:
        """Get or create connection pool for the specified node"""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(self.get_connection_string(node_name))
            logger.debug(f"DBConnectionManager.get_pool: Created connection pool for {node_name}")
        return self._pool

    async def close(self):
        """Close the connection pool"""
        if self._pool:
            await self._pool.close()
            self._pool = None

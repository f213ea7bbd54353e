import asyncio
import getpass
import asyncpg
from loguru import logger
from sanstools.configuration.configuration import get_node_config
from sanstools.sql.sql_manager import SQLManager
from sanstools.utilities.credentials import CredentialManager
from sanstools.utilities.db_manager import DBConnectionManager

async def create_tables(connstring: str, drop_tables: bool = False):
    sql_manager = SQLManager()
    statements = sql_manager.load_statements('init', 'create_tables')
    tables = sql_manager.get_table_names('init', 'create_tables')

    conn = await asyncpg.connect(connstring)
    try:
        async with conn.transaction():
            if drop_tables:
                for table in tables:
                    logger.warning(f"init_db: Dropping table {table}")
                    await conn.execute(f'DROP TABLE IF EXISTS "{table}" CASCADE')
            for statement in statements:
                await conn.execute(statement)
    finally:
        await conn.close()
    logger.info(f"init_db: Ensured tables {', '.join(tables)}")

def main(drop_tables: bool = False):
    node_config = get_node_config()
    cm = CredentialManager(getpass.getpass("Enter your password: "))
    connstring = DBConnectionManager(cm).get_connection_string(node_config.node_name)
    asyncio.run(create_tables(connstring, drop_tables=drop_tables))

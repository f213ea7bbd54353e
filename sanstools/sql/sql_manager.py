from importlib import resources
import pathlib
from typing import Optional, List
from loguru import logger
import traceback
import sqlparse

class SQLManager:
    """Manages SQL script loading and parsing"""

    def __init__(self, base_path: Optional[str] = None):
        # Without a base path the scripts are read from package resources
        self.base_path = pathlib.Path(base_path) if base_path else None

    def load_query(self, category: str, name: str) -> str:
        """Load SQL query from file

        Args:
            category: The category of SQL (e.g., 'init', 'queries')
            name: The name of the SQL file without extension

        Returns:
            str: The contents of the SQL file
        """
        if self.base_path:
            file_path = self.base_path / category / f"{name}.sql"
            try:
                return file_path.read_text()
            except FileNotFoundError:
                logger.error(f"SQLManager.load_query: SQL file not found: {file_path}")
                raise

        package_path = f"sanstools.sql.{category}"
        try:
            return resources.files(package_path).joinpath(f"{name}.sql").read_text()
        except Exception:
            logger.error(f"SQLManager.load_query: Failed to load SQL file {name}.sql from {package_path}")
            logger.error(traceback.format_exc())
            raise

    def load_statements(self, category: str, name: str) -> List[str]:
        """Load and parse SQL file into individual statements"""
        raw_sql = self.load_query(category, name)
        statements = sqlparse.split(raw_sql)
        return [stmt for stmt in statements if stmt.strip()]

    def get_table_names(self, category: str, name: str) -> List[str]:
        """Extract table names from CREATE TABLE statements in SQL file"""
        statements = self.load_statements(category, name)
        return [name for stmt in statements if (name := self._get_table_name_from_statement(stmt))]

    def _get_table_name_from_statement(self, statement: str) -> Optional[str]:
        """Extract table name from CREATE TABLE statement"""
        parsed = sqlparse.parse(statement)[0]
        if parsed.get_type() != 'CREATE' or not any(token.value.upper() == 'TABLE' for token in parsed.tokens):
            return None
        for i, token in enumerate(parsed.tokens):
            if token.value.upper() == 'TABLE':
                for next_token in parsed.tokens[i+1:]:
                    match next_token:
                        case _ if next_token.ttype == sqlparse.tokens.Whitespace:
                            continue
                        case _ if next_token.value.upper() in {'IF', 'NOT', 'EXISTS'}:
                            continue
                        case _:
                            return next_token.value.strip('"').split('.')[-1].split('(')[0].strip()
        return None

from pathlib import Path
from typing import Optional
import sqlite3
import base64
import re
import time
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.fernet import Fernet, InvalidToken
from loguru import logger
import sanstools.configuration.constants as global_constants
from sanstools.configuration.constants import CredentialKey
from sanstools.utilities.exceptions import CredentialsExpiredError, InvalidCredentialError

CREDENTIALS_DB_FILENAME = "credentials.sqlite"
KEY_EXPIRY = -1  # No expiration by default

def get_credentials_directory() -> Path:
    """Returns the path to the credentials directory, creating it if it doesn't exist"""
    creds_dir = global_constants.CONFIG_DIR
    creds_dir.mkdir(parents=True, exist_ok=True)
    return creds_dir

def get_database_path() -> Path:
    return get_credentials_directory() / CREDENTIALS_DB_FILENAME

def normalize_private_key(key: Optional[str]) -> str:
    """Normalize a hex signing key to 0x-prefixed 64 hex chars.

    Raises:
        InvalidCredentialError: if the key is missing or not 32 bytes of hex
    """
    if not key or not isinstance(key, str):
        raise InvalidCredentialError("Signing key is not configured")
    key = key.strip()
    if not key.startswith("0x"):
        key = "0x" + key
    if not re.match(global_constants.PRIVATE_KEY_PATTERN, key):
        raise InvalidCredentialError()
    return key

class CredentialManager:
    """Stores node secrets in a SQLite file, Fernet-encrypted with a password-derived key"""
    _instance = None  # ensures we only have one instance
    _initialized = False  # ensures we only initialize once

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            password = kwargs.get('password', args[0] if args else None)
            if password is None:
                raise ValueError("Password is required for first CredentialManager instance")

            # Verify password before allowing instantiation
            temp_instance = super().__new__(cls)
            temp_instance.db_path = get_database_path()
            if not temp_instance.verify_password(password):
                raise ValueError("Invalid password")

            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, password=None):
        if not self.__class__._initialized:
            if password is None:
                raise ValueError("Password is required for first CredentialManager instance")
            self.db_path = get_database_path()
            self.encryption_key = self._derive_encryption_key(password)
            self._key_expiry = time.time() + KEY_EXPIRY if KEY_EXPIRY >= 0 else float('inf')
            self._initialize_database()
            self.__class__._initialized = True

    @classmethod
    def reset(cls):
        """Forget the singleton, e.g. after switching CONFIG_DIR"""
        cls._instance = None
        cls._initialized = False

    def _check_key_expiry(self):
        """Check if encryption key has expired"""
        if KEY_EXPIRY >= 0 and time.time() > self._key_expiry:
            raise CredentialsExpiredError("Encryption key has expired. Please re-authenticate.")

    def _initialize_database(self):
        """Initialize SQLite database with credentials table if it doesn't exist"""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS credentials (
                    key TEXT PRIMARY KEY,
                    encrypted_value TEXT NOT NULL
                );
            """)
            conn.commit()
        logger.debug(f"CredentialManager._initialize_database: Using credential store at {self.db_path}")

    def _encrypt_value(self, value: str) -> str:
        return Fernet(self.encryption_key).encrypt(value.encode()).decode()

    def _decrypt_value(self, encrypted_value: str) -> str:
        return Fernet(self.encryption_key).decrypt(encrypted_value.encode()).decode()

    def verify_password(self, password: str) -> bool:
        """Verify password by decrypting any stored credential. An empty store accepts any password."""
        if not self.db_path.exists():
            return True
        test_key = self._derive_encryption_key(password)
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute("SELECT encrypted_value FROM credentials LIMIT 1;").fetchone()
        except sqlite3.OperationalError:
            return True  # Table not created yet
        if row is None:
            return True
        try:
            Fernet(test_key).decrypt(row[0].encode())
            return True
        except InvalidToken:
            return False

    def get_credential(self, credential_key: str) -> Optional[str]:
        """Get a specific credential"""
        self._check_key_expiry()

        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT encrypted_value FROM credentials WHERE key = ?;",
                (credential_key,)
            ).fetchone()
        if row:
            return self._decrypt_value(row[0])
        return None

    def list_credentials(self) -> list[str]:
        """List all credential keys stored in the database"""
        self._check_key_expiry()

        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute("SELECT key FROM credentials;").fetchall()
        return [row[0] for row in rows]

    def delete_credential(self, credential_key: str) -> bool:
        """Delete a credential. Returns True if it existed."""
        self._check_key_expiry()

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM credentials WHERE key = ?;", (credential_key,))
            deleted = cursor.rowcount > 0
            conn.commit()
        if deleted:
            logger.info(f"CredentialManager.delete_credential: Deleted credential {credential_key}")
        return deleted

    @staticmethod
    def _derive_encryption_key(password: str) -> bytes:
        """Derive an encryption key from a password"""
        kdf = PBKDF2HMAC(
            algorithm=SHA256(),
            length=32,
            salt=b'sanstools_salt',
            iterations=100000,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode()))

    def enter_and_encrypt_credential(self, credentials_dict: dict):
        """Encrypt and store multiple credentials"""
        self._check_key_expiry()

        with sqlite3.connect(self.db_path) as conn:
            for key, value in credentials_dict.items():
                conn.execute("""
                    INSERT OR REPLACE INTO credentials (key, encrypted_value)
                    VALUES (?, ?);
                """, (key, self._encrypt_value(value)))
            conn.commit()
        logger.info(f"CredentialManager.enter_and_encrypt_credential: Stored {len(credentials_dict)} credentials")

    def get_signing_key(self, node_name: str) -> str:
        """Return the node's EVM signing key, normalized

        Raises:
            InvalidCredentialError: if the key is missing or malformed
        """
        return normalize_private_key(self.get_credential(CredentialKey.SIGNING_KEY.for_node(node_name)))

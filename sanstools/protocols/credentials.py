from typing import Protocol, Optional

class CredentialManager(Protocol):
    """Protocol for the CredentialManager class"""
    def get_credential(self, credential_key: str) -> Optional[str]:
        """Get a specific credential"""
        ...

    def get_signing_key(self, node_name: str) -> str:
        """
        Get the node's EVM signing key, normalized to 0x + 64 hex chars

        Raises:
            InvalidCredentialError: if the key is missing or malformed
        """
        ...

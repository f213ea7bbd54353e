from typing import Protocol, Optional, Dict, Any

class MessageStore(Protocol):
    """
    Opaque record store keyed by id. Records are dicts with at least
    'id', 'type' and 'content' keys.
    """
    async def get_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Return the record or None if absent"""
        ...

    async def remove(self, record_id: str) -> None:
        """Remove the record; removing an absent record is a no-op"""
        ...

    async def create(self, record: Dict[str, Any]) -> None:
        """Store a new record under record['id']"""
        ...

    async def replace(self, record: Dict[str, Any]) -> None:
        """Atomically remove any record under record['id'] and store this one"""
        ...

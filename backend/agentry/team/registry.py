"""
Keyed registries owned by an agent team
"""

import logging
from typing import Dict, Generic, Iterator, List, Optional, TypeVar

from ..core.errors import DuplicateRegistrationError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Registry(Generic[T]):
    """
    Registry for one kind of team item

    On a duplicate key the ``warn`` policy overwrites the previous item and
    logs a warning; the ``reject`` policy raises DuplicateRegistrationError.
    """

    def __init__(self, kind: str, policy: str = "warn"):
        self.kind = kind
        self.policy = policy
        self._items: Dict[str, T] = {}

    def register(self, key: str, item: T) -> None:
        """Register an item under key"""
        if not key:
            raise ValueError(f"{self.kind} must have a name")
        if key in self._items:
            if self.policy == "reject":
                raise DuplicateRegistrationError(self.kind, key)
            logger.warning(f"{self.kind} '{key}' is already registered; overwriting")
        self._items[key] = item

    def unregister(self, key: str) -> bool:
        return self._items.pop(key, None) is not None

    def get(self, key: str) -> Optional[T]:
        """Get an item by key"""
        return self._items.get(key)

    def keys(self) -> List[str]:
        return list(self._items)

    def all(self) -> List[T]:
        """Get all registered items in registration order"""
        return list(self._items.values())

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

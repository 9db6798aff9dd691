"""
Object-storage interface used by the result publisher.

Backends wrap their own exceptions (botocore errors, OSError) in
StorageError so the publisher can retry on a single exception type.
"""

from abc import ABC, abstractmethod


class AbstractStorage(ABC):

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under key (overwriting) and return a public URL."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the object. Deleting a missing key is not an error."""
        ...

    @abstractmethod
    def ping(self) -> None:
        """Raise StorageError if the backend is unreachable."""
        ...

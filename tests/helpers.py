"""
Test doubles and constants shared by the test modules.

Caller headers for the three identities the API tests act as, a canned
PNG asset, and two fakes for the worker's external dependencies.
"""

from generation.base import AbstractGenerationClient, GeneratedAsset
from models.errors import StorageError
from storage.base import AbstractStorage

OWNER = {"X-Caller-Id": "user-1"}
OTHER_USER = {"X-Caller-Id": "user-2"}
ADMIN = {"X-Caller-Id": "ops-1", "X-Caller-Role": "ADMIN"}

PNG_ASSET = GeneratedAsset(data=b"\x89PNG\r\n\x1a\nfake-image", content_type="image/png")


# ── Fakes ───────────────────────────────────────────────────────

class MemoryStorage(AbstractStorage):
    """Dict-backed storage. fail_times makes the next N puts raise StorageError."""

    def __init__(self, fail_times: int = 0):
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_times = fail_times
        self.put_calls = 0
        self.down = False

    def put(self, key: str, data: bytes, content_type: str) -> str:
        self.put_calls += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise StorageError(f"Upload of {key} failed: bucket unavailable")
        self.objects[key] = data
        return f"https://cdn.test/{key}"

    def delete(self, key: str) -> None:
        if self.down:
            raise StorageError(f"Delete of {key} failed: bucket unavailable")
        self.objects.pop(key, None)
        self.deleted.append(key)

    def ping(self) -> None:
        if self.down:
            raise StorageError("Bucket unreachable")


class ScriptedClient(AbstractGenerationClient):
    """
    Plays back a list of outcomes, one per invoke():
    an exception is raised, a callable is called (its result returned),
    anything else is returned as-is. Once the script runs out, returns PNG_ASSET.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def invoke(self, prompt, style, format):
        self.calls.append((prompt, style, format))
        if not self.outcomes:
            return PNG_ASSET
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome()
        return outcome

    @property
    def backend(self) -> str:
        return "scripted"


"""In-process document store — local development and tests.

Records are deep-copied on the way in and out so no caller can mutate
what another caller will read.
"""

import copy

from .base import RecordStore


class MemoryStore(RecordStore):
    def __init__(self, initial: dict[str, list[dict]] | None = None):
        self.documents: dict[str, list[dict]] = copy.deepcopy(initial or {})
        self.fetch_calls = 0
        self.replace_calls = 0
        self.fail_writes = False

    async def fetch(self, collection: str) -> list[dict] | None:
        self.fetch_calls += 1
        if collection not in self.documents:
            return None
        return copy.deepcopy(self.documents[collection])

    async def replace(self, collection: str, records: list[dict]) -> bool:
        self.replace_calls += 1
        if self.fail_writes:
            return False
        self.documents[collection] = copy.deepcopy(records)
        return True

"""
Collaborator interfaces the classifier depends on.

Implementations live in collectors/; tests pass fakes. Every method returns
None on failure ("not found") and never raises.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from catalog.models import ChangedFile, ItemMetadata


class ChangedFilesSource(Protocol):
    async def list_changed_files(self, reference_id: int) -> Optional[List[ChangedFile]]:
        ...


class MetadataSource(Protocol):
    async def fetch_metadata(self, slug: str) -> Optional[ItemMetadata]:
        ...

from __future__ import annotations

import logging
import threading
import uuid
from typing import Dict, List, Optional

from promptsite.models import Generation

log = logging.getLogger(__name__)


class MemoryStorage:
    """Process-local generation history. Lost on restart."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generations: Dict[str, Generation] = {}

    def create_generation(
        self,
        prompt: str,
        generated_html: str,
        generated_css: Optional[str] = None,
        generated_js: Optional[str] = None,
        files: Optional[str] = None,
    ) -> Generation:
        generation = Generation(
            id=str(uuid.uuid4()),
            prompt=prompt,
            generated_html=generated_html,
            generated_css=generated_css,
            generated_js=generated_js,
            files=files,
        )
        with self._lock:
            self._generations[generation.id] = generation
        log.info("storage: created generation id=%s", generation.id)
        return generation

    def list_generations(self) -> List[Generation]:
        with self._lock:
            items = list(self._generations.values())
        # newest insert first on equal timestamps
        items.reverse()
        return sorted(items, key=lambda g: g.created_at, reverse=True)

    def get_generation(self, generation_id: str) -> Optional[Generation]:
        with self._lock:
            return self._generations.get(generation_id)

    def delete_generation(self, generation_id: str) -> bool:
        with self._lock:
            removed = self._generations.pop(generation_id, None)
        return removed is not None

    def clear(self) -> None:
        with self._lock:
            self._generations.clear()


storage = MemoryStorage()

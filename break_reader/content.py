import os
import json
import random
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .utils import ensure_dir, now_iso
from .config import MIN_CONTENT_ID, HISTORY_LIMIT


@dataclass(frozen=True)
class ContentItem:
    id: int
    title: str
    body: str

    @property
    def ref(self) -> str:
        return f"passage:{self.id}"


FALLBACK_CONTENT = ContentItem(
    id=0,
    title="Rest",
    body="Look away from the screen. Let your shoulders drop. Breathe slowly and let the eyes soften.",
)


def fallback_content() -> ContentItem:
    return FALLBACK_CONTENT


def parse_ref(ref) -> Optional[int]:
    if isinstance(ref, bool):
        return None
    if isinstance(ref, int):
        return ref
    if isinstance(ref, str):
        _, _, tail = ref.rpartition(":")
        try:
            return int(tail)
        except ValueError:
            return None
    return None


class ContentLibrary:
    def __init__(self, items: List[ContentItem]):
        self._items: Dict[int, ContentItem] = {item.id: item for item in items}

    @classmethod
    def load(cls, path: str, logger: logging.Logger) -> "ContentLibrary":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.warning(f"Content library at {path} unreadable, using fallback only", exc_info=True)
            return cls([])

        items = []
        for chapter in data.get("chapters", []) if isinstance(data, dict) else []:
            try:
                number = int(chapter["number"])
                body = str(chapter["content"]).strip()
            except (KeyError, TypeError, ValueError):
                continue
            title = str(chapter.get("title") or f"Chapter {number}")
            items.append(ContentItem(id=number, title=title, body=body))

        logger.info(f"Content library loaded: {len(items)} passages")
        return cls(items)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def max_id(self) -> int:
        return max(self._items) if self._items else MIN_CONTENT_ID

    def get(self, content_id: Optional[int]) -> Optional[ContentItem]:
        if content_id is None:
            return None
        return self._items.get(content_id)

    def resolve(self, ref) -> Optional[ContentItem]:
        content_id = parse_ref(ref)
        if content_id == FALLBACK_CONTENT.id:
            return FALLBACK_CONTENT
        return self.get(content_id)


@dataclass
class ContentHistory:
    last_picked_id: Optional[int] = None
    last_picked_at: Optional[str] = None
    history: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "lastPickedId": self.last_picked_id,
            "lastPickedAt": self.last_picked_at,
            "history": list(self.history),
        }


def update_history(existing: Optional[ContentHistory], picked_id: int, limit: int = HISTORY_LIMIT) -> ContentHistory:
    previous = existing.history if existing else []
    history = [picked_id] + [v for v in previous if v != picked_id]
    return ContentHistory(last_picked_id=picked_id, last_picked_at=now_iso(), history=history[:limit])


class HistoryStore:
    def __init__(self, path: str, logger: logging.Logger):
        self._path = path
        self._logger = logger

    def load(self) -> Optional[ContentHistory]:
        if not os.path.exists(self._path):
            return None
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            self._logger.warning("History file unreadable, ignoring history", exc_info=True)
            return None
        if not isinstance(data, dict):
            return None

        last_id = data.get("lastPickedId")
        last_at = data.get("lastPickedAt")
        history = data.get("history")
        return ContentHistory(
            last_picked_id=last_id if isinstance(last_id, int) and not isinstance(last_id, bool) else None,
            last_picked_at=last_at if isinstance(last_at, str) else None,
            history=[v for v in history if isinstance(v, int) and not isinstance(v, bool)]
            if isinstance(history, list)
            else [],
        )

    def save(self, history: ContentHistory) -> None:
        ensure_dir(os.path.dirname(self._path))
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(history.to_dict(), f, indent=2)


class ContentSelector:
    """Draws content ids at random while avoiding the most recent picks."""

    def __init__(
        self,
        library: ContentLibrary,
        store: HistoryStore,
        logger: logging.Logger,
        min_id: int = MIN_CONTENT_ID,
        max_id: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self._library = library
        self._store = store
        self._logger = logger
        self._min_id = min_id
        self._max_id = max_id if max_id is not None else library.max_id
        self._rng = rng or random.Random()

    def draw_id(self, excluded) -> int:
        attempts = max(self._max_id - self._min_id + 1, 10)
        for _ in range(attempts):
            candidate = self._rng.randint(self._min_id, self._max_id)
            if candidate not in excluded:
                return candidate
        return self._rng.randint(self._min_id, self._max_id)

    def pick(self) -> ContentItem:
        cache = self._store.load()
        excluded = set(cache.history) if cache else set()
        picked_id = self.draw_id(excluded)

        try:
            self._store.save(update_history(cache, picked_id))
        except OSError:
            self._logger.warning("Failed to persist content history", exc_info=True)

        item = self._library.get(picked_id)
        if item is None:
            self._logger.warning(f"Picked passage {picked_id} missing from library, using fallback")
            return fallback_content()
        return item

"""PbtA move catalog loaded from YAML (SCENEKEEPER_MOVES_FILE), cached per path."""
from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from backend.app.config import MOVES_FILE

logger = logging.getLogger(__name__)


class Move(BaseModel):
    id: str
    name: str
    stat: str | None = None
    description: str = ""
    strong_hit: str = ""
    weak_hit: str = ""


class MoveCatalog(BaseModel):
    moves: list[Move] = Field(default_factory=list)

    def get(self, move_id: str | None) -> Move | None:
        if not move_id:
            return None
        key = move_id.strip().lower()
        for move in self.moves:
            if move.id == key:
                return move
        return None


_CATALOG_CACHE: dict[str, MoveCatalog] = {}


def load_move_catalog(path: str | None = None) -> MoveCatalog:
    """Load and validate the catalog; missing file raises FileNotFoundError."""
    key = str(Path(path or MOVES_FILE).resolve())
    if key in _CATALOG_CACHE:
        return _CATALOG_CACHE[key]
    data = yaml.safe_load(Path(key).read_text(encoding="utf-8")) or {}
    catalog = MoveCatalog.model_validate(data)
    _CATALOG_CACHE[key] = catalog
    logger.info("Loaded move catalog: %d moves (%s)", len(catalog.moves), Path(key).name)
    return catalog


def clear_move_catalog_cache() -> None:
    """Clear cached catalogs (useful for tests)."""
    _CATALOG_CACHE.clear()

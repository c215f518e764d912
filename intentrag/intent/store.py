"""
Intent Tree Store

Loads the intent tree from a flat JSON export of the admin store (one row per
node) and keeps a refreshable snapshot for the retrieval path.
"""

import json
import logging
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..common.errors import IntentTreeError
from .tree import IntentKind, IntentLevel, IntentNode, IntentTree

logger = logging.getLogger("intentrag.intent.store")


class IntentNodeRecord(BaseModel):
    """One row of the intent tree export"""
    intent_code: str
    name: str
    level: IntentLevel
    parent_code: Optional[str] = None
    description: str = ""
    examples: List[str] = Field(default_factory=list)
    kind: IntentKind = IntentKind.KB
    collection_name: Optional[str] = None
    prompt_snippet: Optional[str] = None
    prompt_template: Optional[str] = None
    mcp_tool_id: Optional[str] = None
    sort_order: Optional[int] = None
    top_k: Optional[int] = Field(default=None, gt=0)
    enabled: bool = True

    @field_validator("level", mode="before")
    @classmethod
    def _parse_level(cls, value):
        if isinstance(value, str) and not value.isdigit():
            try:
                return IntentLevel[value.upper()]
            except KeyError:
                raise ValueError(f"unknown level {value!r}")
        if not isinstance(value, (str, int)):
            raise ValueError(f"invalid level {value!r}")
        return int(value)

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, value):
        return value.upper() if isinstance(value, str) else value

    @field_validator("examples", mode="before")
    @classmethod
    def _parse_examples(cls, value):
        # The admin store keeps examples as a JSON-encoded string column
        if value is None or value == "":
            return []
        if isinstance(value, str):
            try:
                decoded = json.loads(value)
            except json.JSONDecodeError:
                return [value]
            return decoded if isinstance(decoded, list) else [str(decoded)]
        return value

    @field_validator("parent_code", "collection_name", "prompt_snippet",
                     "prompt_template", "mcp_tool_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_node(self) -> IntentNode:
        return IntentNode(
            code=self.intent_code,
            name=self.name,
            level=self.level,
            parent_code=self.parent_code,
            description=self.description,
            examples=tuple(self.examples),
            kind=self.kind,
            collection_name=self.collection_name,
            prompt_snippet=self.prompt_snippet,
            prompt_template=self.prompt_template,
            mcp_tool_id=self.mcp_tool_id,
            sort_order=self.sort_order,
            top_k=self.top_k,
            enabled=self.enabled,
        )


def build_tree_from_records(rows: List[dict]) -> IntentTree:
    """Validate raw rows and build an ``IntentTree``."""
    nodes = []
    for i, row in enumerate(rows):
        try:
            nodes.append(IntentNodeRecord.model_validate(row).to_node())
        except ValidationError as e:
            raise IntentTreeError(f"Invalid intent row #{i}: {e}") from e
    return IntentTree.build(nodes)


class JsonIntentTreeStore:
    """Reads the tree from a JSON file: a list of rows or ``{"nodes": [...]}``."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load_tree(self) -> IntentTree:
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise IntentTreeError(f"Failed to read intent tree {self._path}: {e}") from e

        rows = data.get("nodes") if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise IntentTreeError(f"Intent tree {self._path} must contain a list of nodes")

        tree = build_tree_from_records(rows)
        logger.info("Loaded intent tree from %s: %d nodes, %d leaves",
                    self._path, len(tree), len(tree.leaf_nodes()))
        return tree


class IntentTreeCache:
    """
    Holds the current tree snapshot.

    ``snapshot()`` loads on first use and reloads once the snapshot is older
    than ``refresh_interval`` seconds (0 disables periodic reloads). A failed
    reload keeps serving the previous snapshot; a failed first load raises.
    """

    def __init__(
        self,
        store,
        refresh_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._refresh_interval = refresh_interval
        self._clock = clock
        self._tree: Optional[IntentTree] = None
        self._loaded_at = 0.0
        self._stale = False
        self._lock = threading.Lock()

    def snapshot(self) -> IntentTree:
        tree = self._tree
        if tree is not None and not self._needs_refresh():
            return tree
        return self.refresh()

    def refresh(self) -> IntentTree:
        with self._lock:
            try:
                tree = self._store.load_tree()
            except IntentTreeError:
                if self._tree is None:
                    raise
                logger.warning("Intent tree reload failed, keeping previous snapshot", exc_info=True)
                self._loaded_at = self._clock()
                self._stale = False
                return self._tree
            self._tree = tree
            self._loaded_at = self._clock()
            self._stale = False
            return tree

    def invalidate(self) -> None:
        """Force a reload on the next ``snapshot()``."""
        self._stale = True

    def _needs_refresh(self) -> bool:
        if self._stale:
            return True
        if self._refresh_interval <= 0:
            return False
        return self._clock() - self._loaded_at >= self._refresh_interval

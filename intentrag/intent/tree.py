"""
Intent Tree

Three-level hierarchy (DOMAIN > CATEGORY > TOPIC) of intents. Only TOPIC
nodes are classification and search targets. The tree is an arena keyed by
intent code with child lists resolved once at build time; it is never
mutated after construction, so a reference to it is a consistent snapshot.
"""

import logging
from enum import Enum, IntEnum
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from ..common.errors import IntentTreeError

logger = logging.getLogger("intentrag.intent.tree")

PATH_SEPARATOR = " > "


class IntentLevel(IntEnum):
    DOMAIN = 0
    CATEGORY = 1
    TOPIC = 2


class IntentKind(str, Enum):
    """What a TOPIC node routes to"""
    KB = "KB"  # knowledge-base retrieval
    SYSTEM = "SYSTEM"  # system / chit-chat, answered without retrieval
    MCP = "MCP"  # tool call, handled by the caller


@dataclass(frozen=True)
class IntentNode:
    code: str
    name: str
    level: IntentLevel
    parent_code: Optional[str] = None
    description: str = ""
    examples: Tuple[str, ...] = ()
    kind: IntentKind = IntentKind.KB
    collection_name: Optional[str] = None
    prompt_snippet: Optional[str] = None
    prompt_template: Optional[str] = None
    mcp_tool_id: Optional[str] = None
    sort_order: Optional[int] = None
    top_k: Optional[int] = None
    enabled: bool = True
    full_path: str = ""
    children: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def is_leaf(self) -> bool:
        return self.level == IntentLevel.TOPIC

    @property
    def is_kb(self) -> bool:
        return self.kind == IntentKind.KB


@dataclass(frozen=True)
class NodeScore:
    """A classifier match: a TOPIC node and its score in [0, 1]"""
    node: IntentNode
    score: float

    @property
    def code(self) -> str:
        return self.node.code


def _sibling_key(indexed: Tuple[int, IntentNode]):
    position, node = indexed
    # None sorts after every explicit order; declaration order breaks ties
    return (node.sort_order is None, node.sort_order or 0, position)


class IntentTree:
    """Immutable intent forest indexed by code."""

    def __init__(self, nodes: Dict[str, IntentNode], root_codes: Tuple[str, ...]):
        self._nodes = nodes
        self._root_codes = root_codes
        self._leaves = tuple(self._collect_leaves())

    @classmethod
    def build(cls, nodes: Iterable[IntentNode]) -> "IntentTree":
        """
        Validate ``nodes`` and build the arena.

        Raises:
            IntentTreeError: duplicate codes, dangling parents, or a parent
                whose level is not exactly one above its child
        """
        declared: List[IntentNode] = list(nodes)
        by_code: Dict[str, IntentNode] = {}
        for node in declared:
            if node.code in by_code:
                raise IntentTreeError(f"Duplicate intent code: {node.code}")
            by_code[node.code] = node

        children: Dict[str, List[Tuple[int, IntentNode]]] = {code: [] for code in by_code}
        roots: List[Tuple[int, IntentNode]] = []
        for position, node in enumerate(declared):
            if node.level == IntentLevel.DOMAIN:
                if node.parent_code:
                    raise IntentTreeError(f"DOMAIN node {node.code} must not have a parent")
                roots.append((position, node))
                continue
            parent = by_code.get(node.parent_code) if node.parent_code else None
            if parent is None:
                raise IntentTreeError(
                    f"Intent {node.code} references missing parent {node.parent_code!r}"
                )
            if parent.level != node.level - 1:
                raise IntentTreeError(
                    f"Intent {node.code} ({node.level.name}) cannot sit under "
                    f"{parent.code} ({parent.level.name})"
                )
            children[parent.code].append((position, node))

        # Resolve child lists and full paths top-down
        arena: Dict[str, IntentNode] = {}

        def _attach(node: IntentNode, parent_path: str) -> None:
            full_path = f"{parent_path}{PATH_SEPARATOR}{node.name}" if parent_path else node.name
            ordered = sorted(children[node.code], key=_sibling_key)
            arena[node.code] = replace(
                node,
                full_path=full_path,
                children=tuple(child.code for _, child in ordered),
            )
            for _, child in ordered:
                _attach(child, full_path)

        ordered_roots = sorted(roots, key=_sibling_key)
        for _, root in ordered_roots:
            _attach(root, "")

        tree = cls(arena, tuple(root.code for _, root in ordered_roots))
        for leaf in tree.leaf_nodes():
            if leaf.is_kb and not leaf.collection_name:
                logger.warning("KB intent %s has no collection configured", leaf.code)
        return tree

    def get(self, code: str) -> Optional[IntentNode]:
        return self._nodes.get(code)

    def roots(self) -> List[IntentNode]:
        return [self._nodes[code] for code in self._root_codes]

    def children(self, code: str) -> List[IntentNode]:
        node = self._nodes.get(code)
        if node is None:
            return []
        return [self._nodes[c] for c in node.children]

    def leaf_nodes(self) -> List[IntentNode]:
        """Enabled TOPIC nodes whose ancestors are all enabled, in tree order."""
        return list(self._leaves)

    def _collect_leaves(self):
        stack = [self._nodes[code] for code in reversed(self._root_codes)]
        while stack:
            node = stack.pop()
            if not node.enabled:
                continue
            if node.is_leaf:
                yield node
                continue
            stack.extend(self._nodes[c] for c in reversed(node.children))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, code: str) -> bool:
        return code in self._nodes

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

try:
    from constants import DEFAULT_NODE_NAME, LYRICS_NODE_NAME, LYRICS_NODE_TYPE, OUTPUT_NODE_TYPE
    from logger_config import logger
    from models import Node, build_node_data
    from utils import new_id
except ImportError:
    from .constants import DEFAULT_NODE_NAME, LYRICS_NODE_NAME, LYRICS_NODE_TYPE, OUTPUT_NODE_TYPE
    from .logger_config import logger
    from .models import Node, build_node_data
    from .utils import new_id


def default_node_name(node_type: str) -> str:
    return LYRICS_NODE_NAME if node_type == LYRICS_NODE_TYPE else DEFAULT_NODE_NAME


class NodeChain:
    """Ordered production pipeline: context first, content nodes, one terminal output.

    Every structural change renumbers ``step`` to the 1-based position. Id-keyed
    operations on unknown ids are no-ops. The selection is stored as an id and
    resolved on each use, so it never outlives the node it points at.
    """

    def __init__(self, nodes: Optional[Iterable[Node]] = None, selected_id: Optional[str] = None) -> None:
        self.nodes: List[Node] = list(nodes or [])
        self.selected_id: Optional[str] = None
        self.renumber()
        if selected_id is not None:
            self.select_node(selected_id)

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)

    def renumber(self) -> None:
        for position, node in enumerate(self.nodes, start=1):
            node.step = position

    def find(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def first_of_type(self, node_type: str) -> Optional[Node]:
        for node in self.nodes:
            if node.type == node_type:
                return node
        return None

    @property
    def selected_node(self) -> Optional[Node]:
        return self.find(self.selected_id)

    def _insert_index(self, after_output: bool) -> int:
        if after_output:
            return len(self.nodes)
        for index in range(len(self.nodes) - 1, -1, -1):
            if self.nodes[index].type == OUTPUT_NODE_TYPE:
                return index
        return len(self.nodes)

    def add_node(self, node_type: str, after_output: bool = False, name: Optional[str] = None) -> Node:
        node = Node(
            id=new_id(),
            type=node_type,
            name=name or default_node_name(node_type),
            data=build_node_data(node_type),
        )
        # An extra output node still lands before the terminal one.
        index = self._insert_index(after_output)
        self.nodes.insert(index, node)
        self.renumber()
        logger.info("Node added: id=%s type=%s step=%d total=%d", node.id, node_type, node.step, len(self.nodes))
        return node

    def remove_node(self, node_id: str) -> bool:
        node = self.find(node_id)
        if node is None:
            return False
        self.nodes.remove(node)
        if self.selected_id == node_id:
            self.selected_id = None
        self.renumber()
        logger.info("Node removed: id=%s total=%d", node_id, len(self.nodes))
        return True

    def update_node_field(self, node_id: str, partial: Dict[str, Any]) -> Optional[Node]:
        node = self.find(node_id)
        if node is None:
            return None
        # Off-type values are coerced by the payload variant, never rejected.
        merged = {**node.data.model_dump(), **partial}
        node.data = build_node_data(node.type, merged)
        return node

    def rename_node(self, node_id: str, name: str) -> Optional[Node]:
        node = self.find(node_id)
        if node is None:
            return None
        node.name = name
        return node

    def select_node(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            self.selected_id = None
            return None
        node = self.find(node_id)
        if node is not None:
            self.selected_id = node_id
        return node

"""
Input resolution: builds the concrete input bag handed to a node's executor.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from .constants import (
    CROP_DEFAULTS,
    DEFAULT_FRAME_TIMESTAMP,
    DEFAULT_LLM_MODEL,
    PASSTHROUGH_FIELDS,
    Handle,
)
from .schema import Edge, Node, NodeType
from .state import ExecutionState


class InputResolver:
    """
    Combines wired edge values with a node's own static fields.

    Lookups are indexed once per run (nodes by id, incoming edges by
    target) so resolving every node of a level stays linear in its inputs.

    Resolution order:
    1. Values flowing in over edges, in edge order
    2. The node's own fields, filling only what edges left unset
       (except ``model`` on LLM nodes, which always comes from the node)
    """

    def __init__(self, nodes: List[Node], edges: List[Edge], state: Optional[ExecutionState] = None):
        self.nodes_by_id = {node.id: node for node in nodes}
        self.state = state

        self.inputs_by_node: Dict[str, List[Edge]] = {}
        for edge in edges:
            self.inputs_by_node.setdefault(edge.target, []).append(edge)

        self._static_fillers: Dict[str, Callable[[Node, Dict[str, Any]], None]] = {
            NodeType.TEXT.value: self._fill_text,
            NodeType.IMAGE_UPLOAD.value: self._fill_image_upload,
            NodeType.VIDEO_UPLOAD.value: self._fill_video_upload,
            NodeType.CROP_IMAGE.value: self._fill_crop,
            NodeType.EXTRACT_FRAME.value: self._fill_extract_frame,
            NodeType.LLM.value: self._fill_llm,
        }

    def source_output(self, node_id: str) -> Any:
        """
        Current output of ``node_id``.

        Passthrough nodes are read live from their data so the freshest
        user edit is used even if the node never ran. Everything else comes
        from this run's execution state.
        """
        node = self.nodes_by_id.get(node_id)
        if node is None:
            return None
        field_name = PASSTHROUGH_FIELDS.get(node.type)
        if field_name is not None:
            return node.data.get(field_name) or ""
        if self.state is None:
            return None
        return self.state.output_of(node_id)

    def resolve(self, node_id: str) -> Dict[str, Any]:
        inputs: Dict[str, Any] = {}
        node = self.nodes_by_id.get(node_id)
        if node is None:
            return inputs

        for edge in self.inputs_by_node.get(node_id, []):
            value = self.source_output(edge.source)
            if value is None:
                continue
            if edge.target_handle == Handle.IMAGES:
                images = inputs.setdefault(Handle.IMAGES, [])
                if isinstance(value, (list, tuple)):
                    images.extend(value)
                else:
                    images.append(value)
            else:
                inputs[edge.target_handle] = value

        filler = self._static_fillers.get(node.type)
        if filler is not None:
            filler(node, inputs)
        return inputs

    # ------------------------------------------------------------------
    # Per-type static fields
    # ------------------------------------------------------------------

    @staticmethod
    def _fill_text(node: Node, inputs: Dict[str, Any]) -> None:
        inputs['text'] = node.data.get('text')

    @staticmethod
    def _fill_image_upload(node: Node, inputs: Dict[str, Any]) -> None:
        inputs['image_url'] = node.data.get('image_url')

    @staticmethod
    def _fill_video_upload(node: Node, inputs: Dict[str, Any]) -> None:
        inputs['video_url'] = node.data.get('video_url')

    @staticmethod
    def _fill_crop(node: Node, inputs: Dict[str, Any]) -> None:
        for name, default in CROP_DEFAULTS.items():
            if name in inputs:
                continue
            value = node.data.get(name)
            inputs[name] = default if value is None else value

    @staticmethod
    def _fill_extract_frame(node: Node, inputs: Dict[str, Any]) -> None:
        if 'timestamp' not in inputs:
            value = node.data.get('timestamp')
            inputs['timestamp'] = DEFAULT_FRAME_TIMESTAMP if value is None else value

    @staticmethod
    def _fill_llm(node: Node, inputs: Dict[str, Any]) -> None:
        inputs['model'] = node.data.get('model') or DEFAULT_LLM_MODEL
        for name in ('system_prompt', 'user_message'):
            manual = node.data.get(name)
            if not inputs.get(name) and manual:
                inputs[name] = manual


def resolve_inputs(
    node_id: str,
    nodes: List[Node],
    edges: List[Edge],
    state: Optional[ExecutionState] = None,
) -> Dict[str, Any]:
    return InputResolver(nodes, edges, state).resolve(node_id)

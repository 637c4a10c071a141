"""
Workflow graph schema: node type catalog, typed node data and edges.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple, Type

from .constants import Handle


class DataType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    ANY = "any"


class NodeType(str, Enum):
    TEXT = "textNode"
    IMAGE_UPLOAD = "imageUploadNode"
    VIDEO_UPLOAD = "videoUploadNode"
    LLM = "llmNode"
    CROP_IMAGE = "cropImageNode"
    EXTRACT_FRAME = "extractFrameNode"


@dataclass(frozen=True)
class NodeSchema:
    type: str
    inputs: Dict[str, DataType]
    outputs: Dict[str, DataType]


NODE_SCHEMAS: Dict[str, NodeSchema] = {
    NodeType.TEXT.value: NodeSchema(
        type=NodeType.TEXT.value,
        inputs={},
        outputs={Handle.OUTPUT: DataType.TEXT},
    ),
    NodeType.IMAGE_UPLOAD.value: NodeSchema(
        type=NodeType.IMAGE_UPLOAD.value,
        inputs={},
        outputs={Handle.OUTPUT: DataType.IMAGE},
    ),
    NodeType.VIDEO_UPLOAD.value: NodeSchema(
        type=NodeType.VIDEO_UPLOAD.value,
        inputs={},
        outputs={Handle.OUTPUT: DataType.VIDEO},
    ),
    NodeType.LLM.value: NodeSchema(
        type=NodeType.LLM.value,
        inputs={
            'system_prompt': DataType.TEXT,
            'user_message': DataType.TEXT,
            Handle.IMAGES: DataType.IMAGE,
        },
        outputs={Handle.OUTPUT: DataType.TEXT},
    ),
    NodeType.CROP_IMAGE.value: NodeSchema(
        type=NodeType.CROP_IMAGE.value,
        inputs={
            'image_url': DataType.IMAGE,
            'x_percent': DataType.TEXT,
            'y_percent': DataType.TEXT,
            'width_percent': DataType.TEXT,
            'height_percent': DataType.TEXT,
        },
        outputs={Handle.OUTPUT: DataType.IMAGE},
    ),
    NodeType.EXTRACT_FRAME.value: NodeSchema(
        type=NodeType.EXTRACT_FRAME.value,
        inputs={
            'video_url': DataType.VIDEO,
            'timestamp': DataType.TEXT,
        },
        outputs={Handle.OUTPUT: DataType.IMAGE},
    ),
}


class GraphValidationError(ValueError):
    """Raised when a graph definition fails validation."""


_CAMEL_RE = re.compile(r'(?<!^)(?=[A-Z])')


def _to_snake(name: str) -> str:
    return _CAMEL_RE.sub('_', name).lower()


def _to_camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


# ============================================================================
# Node data (one variant per node type)
# ============================================================================

@dataclass
class BaseNodeData:
    label: str = ""
    status: str = "idle"
    error: Optional[str] = None
    connected_handles: Set[str] = field(default_factory=set)
    # Keys this variant does not model, kept so payloads round-trip
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "BaseNodeData":
        known = {f.name for f in fields(cls)} - {'extra'}
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in (raw or {}).items():
            name = _to_snake(key)
            if name in known:
                kwargs[name] = value
            else:
                extra[key] = value
        kwargs['connected_handles'] = set(kwargs.get('connected_handles') or [])
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        payload = dict(self.extra)
        for f in fields(self):
            if f.name == 'extra':
                continue
            value = getattr(self, f.name)
            if f.name == 'connected_handles':
                value = sorted(value)
            payload[_to_camel(f.name)] = value
        return payload

    def get(self, name: str, default: Any = None) -> Any:
        """Read a field by snake_case name, falling back to unmodelled keys."""
        if name != 'extra' and name in {f.name for f in fields(self)}:
            return getattr(self, name)
        if name in self.extra:
            return self.extra[name]
        return self.extra.get(_to_camel(name), default)


@dataclass
class TextNodeData(BaseNodeData):
    text: str = ""


@dataclass
class ImageUploadNodeData(BaseNodeData):
    image_url: Optional[str] = None
    file_name: Optional[str] = None


@dataclass
class VideoUploadNodeData(BaseNodeData):
    video_url: Optional[str] = None
    file_name: Optional[str] = None


@dataclass
class LLMNodeData(BaseNodeData):
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    user_message: Optional[str] = None
    result: Optional[str] = None


@dataclass
class CropImageNodeData(BaseNodeData):
    x_percent: Optional[float] = 0
    y_percent: Optional[float] = 0
    width_percent: Optional[float] = 100
    height_percent: Optional[float] = 100
    output_url: Optional[str] = None


@dataclass
class ExtractFrameNodeData(BaseNodeData):
    timestamp: Optional[str] = "0"
    output_url: Optional[str] = None


@dataclass
class GenericNodeData(BaseNodeData):
    """Open-map fallback for node types this build does not know yet."""


NODE_DATA_TYPES: Dict[str, Type[BaseNodeData]] = {
    NodeType.TEXT.value: TextNodeData,
    NodeType.IMAGE_UPLOAD.value: ImageUploadNodeData,
    NodeType.VIDEO_UPLOAD.value: VideoUploadNodeData,
    NodeType.LLM.value: LLMNodeData,
    NodeType.CROP_IMAGE.value: CropImageNodeData,
    NodeType.EXTRACT_FRAME.value: ExtractFrameNodeData,
}


# ============================================================================
# Nodes and edges
# ============================================================================

@dataclass
class Node:
    id: str
    type: str
    data: BaseNodeData = field(default_factory=GenericNodeData)
    position: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.type, NodeType):
            self.type = self.type.value

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Node":
        node_id = raw.get('id')
        node_type = raw.get('type')
        if not node_id:
            raise GraphValidationError(f"Node is missing an id: {raw}")
        if not node_type:
            raise GraphValidationError(f"Node {node_id} is missing a type")
        data_cls = NODE_DATA_TYPES.get(node_type, GenericNodeData)
        return cls(
            id=node_id,
            type=node_type,
            data=data_cls.from_dict(raw.get('data')),
            position=raw.get('position') or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'data': self.data.to_dict(),
            'position': self.position,
        }


@dataclass
class Edge:
    source: str
    target: str
    source_handle: str = Handle.OUTPUT
    target_handle: str = Handle.INPUT
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Edge":
        source = raw.get('source')
        target = raw.get('target')
        if not source or not target:
            raise GraphValidationError(f"Edge must name a source and a target: {raw}")
        return cls(
            id=raw.get('id') or str(uuid.uuid4()),
            source=source,
            target=target,
            source_handle=raw.get('sourceHandle') or Handle.OUTPUT,
            target_handle=raw.get('targetHandle') or Handle.INPUT,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'source': self.source,
            'sourceHandle': self.source_handle,
            'target': self.target,
            'targetHandle': self.target_handle,
        }


def parse_graph(payload: Dict[str, Any]) -> Tuple[List[Node], List[Edge]]:
    """
    Parse a raw ``{nodes, edges}`` payload emitted by the canvas.

    Rejects duplicate node ids and edges pointing at nodes that are not in
    the payload, so the engine never sees a dangling edge.
    """
    nodes = [Node.from_dict(raw) for raw in payload.get('nodes') or []]
    edges = [Edge.from_dict(raw) for raw in payload.get('edges') or []]

    seen: Set[str] = set()
    for node in nodes:
        if node.id in seen:
            raise GraphValidationError(f"Duplicate node id: {node.id}")
        seen.add(node.id)

    for edge in edges:
        if edge.source not in seen or edge.target not in seen:
            raise GraphValidationError(
                f"Edge {edge.id} references unknown node: {edge.source} -> {edge.target}"
            )

    return nodes, edges

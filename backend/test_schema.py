"""
Tests for graph payload parsing and typed node data.
"""
import pytest

from graph_engine.schema import (
    CropImageNodeData,
    GenericNodeData,
    GraphValidationError,
    LLMNodeData,
    Node,
    NodeType,
    parse_graph,
)


def test_node_data_is_typed_per_node_type():
    nodes, edges = parse_graph({
        'nodes': [
            {'id': 'B', 'type': 'llmNode', 'data': {'systemPrompt': 'be brief', 'label': 'LLM'}},
            {'id': 'X', 'type': 'cropImageNode', 'data': {'xPercent': 20}},
            {'id': 'F', 'type': 'futureNode', 'data': {'knob': 3}},
        ],
        'edges': [{'source': 'X', 'target': 'B', 'targetHandle': 'images'}],
    })

    llm, crop, future = nodes
    assert isinstance(llm.data, LLMNodeData)
    assert llm.data.system_prompt == 'be brief'
    assert isinstance(crop.data, CropImageNodeData)
    assert (crop.data.x_percent, crop.data.width_percent) == (20, 100)
    assert isinstance(future.data, GenericNodeData)
    assert future.data.get('knob') == 3
    assert edges[0].source_handle == 'output'
    assert edges[0].target_handle == 'images'


def test_edge_without_handles_uses_defaults():
    _, edges = parse_graph({
        'nodes': [{'id': 'A', 'type': 'textNode'}, {'id': 'B', 'type': 'llmNode'}],
        'edges': [{'source': 'A', 'target': 'B'}],
    })
    assert (edges[0].source_handle, edges[0].target_handle) == ('output', 'input')
    assert edges[0].id


def test_duplicate_node_ids_are_rejected():
    with pytest.raises(GraphValidationError, match="Duplicate"):
        parse_graph({'nodes': [{'id': 'A', 'type': 'textNode'}, {'id': 'A', 'type': 'llmNode'}]})


def test_node_without_type_is_rejected():
    with pytest.raises(GraphValidationError):
        Node.from_dict({'id': 'A'})


def test_enum_node_type_is_normalised():
    node = Node(id='A', type=NodeType.TEXT)
    assert node.type == 'textNode'


def test_unknown_keys_survive_a_round_trip():
    raw = {'id': 'A', 'type': 'textNode', 'data': {'text': 'hi', 'color': 'red'}, 'position': {'x': 1, 'y': 2}}
    payload = Node.from_dict(raw).to_dict()
    assert payload['data']['color'] == 'red'
    assert payload['data']['text'] == 'hi'
    assert payload['position'] == {'x': 1, 'y': 2}

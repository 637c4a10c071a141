"""
Tests for edit-time connection checks (type compatibility + acyclicity).
"""
import random

import pytest

from conftest import make_edge, make_node
from graph_engine.schema import DataType, Edge, NodeSchema
from graph_engine.validator import (
    ConnectionRejected,
    check_connection,
    connection_error,
    has_cycle,
    validate_connection,
)


@pytest.fixture
def nodes():
    return [
        make_node('A', 'textNode', text='hi'),
        make_node('B', 'llmNode'),
        make_node('C', 'imageUploadNode', imageUrl='https://cdn/c.png'),
        make_node('D', 'extractFrameNode'),
        make_node('V', 'videoUploadNode', videoUrl='https://cdn/v.mp4'),
        make_node('X', 'cropImageNode'),
    ]


class TestTypeCheck:
    def test_text_into_text_handle_is_accepted(self, nodes):
        assert validate_connection(make_edge('A', 'B', 'user_message'), nodes)

    def test_image_into_images_handle_is_accepted(self, nodes):
        assert validate_connection(make_edge('C', 'B', 'images'), nodes)

    def test_image_into_text_handle_is_rejected(self, nodes, caplog):
        error = connection_error(make_edge('C', 'B', 'system_prompt'), nodes)
        assert error is not None
        assert error.reason == 'type_mismatch'
        assert 'imageUploadNode outputs "image" but system_prompt accepts "text"' in str(error)
        assert 'Type mismatch' in caplog.text

    def test_video_into_crop_image_is_rejected(self, nodes):
        assert not validate_connection(make_edge('V', 'X', 'image_url'), nodes)

    def test_text_into_crop_image_is_rejected(self, nodes):
        error = connection_error(make_edge('A', 'X', 'image_url'), nodes)
        assert error is not None
        assert error.reason == 'type_mismatch'
        assert not validate_connection(make_edge('A', 'X', 'image_url'), nodes)

    def test_undeclared_handle_is_permitted(self, nodes):
        assert validate_connection(make_edge('A', 'B', 'whatever'), nodes)

    def test_unknown_node_type_is_permitted(self, nodes):
        nodes.append(make_node('F', 'futureNode'))
        assert validate_connection(make_edge('A', 'F', 'input'), nodes)

    def test_any_kind_is_a_wildcard(self):
        schemas = {
            'sink': NodeSchema('sink', inputs={'input': DataType.ANY}, outputs={}),
            'imageUploadNode': NodeSchema('imageUploadNode', inputs={},
                                          outputs={'output': DataType.IMAGE}),
        }
        graph = [make_node('C', 'imageUploadNode'), make_node('S', 'sink')]
        assert validate_connection(make_edge('C', 'S'), graph, schemas)

    def test_self_loop_is_rejected(self, nodes):
        assert connection_error(make_edge('B', 'B', 'user_message'), nodes).reason == 'self_loop'

    def test_edge_to_missing_node_is_rejected(self, nodes):
        assert connection_error(make_edge('A', 'ghost'), nodes).reason == 'unknown_node'


class TestCycleCheck:
    def test_back_edge_closes_a_cycle(self, nodes):
        # A -> B exists; B.output back into A must be refused on any handle
        edges = [make_edge('A', 'B', 'user_message')]
        assert has_cycle(nodes, edges, make_edge('B', 'A', 'input'))
        assert has_cycle(nodes, edges, make_edge('B', 'A', 'text'))

    def test_diamond_is_not_a_cycle(self, nodes):
        edges = [
            make_edge('V', 'D', 'video_url'),
            make_edge('C', 'X', 'image_url'),
            make_edge('D', 'B', 'images'),
        ]
        assert not has_cycle(nodes, edges, make_edge('X', 'B', 'images'))

    def test_long_chain_does_not_recurse(self):
        count = 5000
        chain = [make_node(f"n{i}", 'textNode') for i in range(count)]
        edges = [make_edge(f"n{i}", f"n{i + 1}") for i in range(count - 1)]
        assert not has_cycle(chain, edges)
        assert has_cycle(chain, edges, make_edge(f"n{count - 1}", 'n0'))

    def test_check_connection_raises_on_cycle(self, nodes):
        edges = [make_edge('A', 'B', 'user_message')]
        with pytest.raises(ConnectionRejected) as excinfo:
            check_connection(make_edge('B', 'A', 'input'), nodes, edges)
        assert excinfo.value.reason == 'cycle'

    def test_check_connection_raises_on_type_mismatch_first(self, nodes):
        with pytest.raises(ConnectionRejected) as excinfo:
            check_connection(make_edge('C', 'B', 'user_message'), nodes, [])
        assert excinfo.value.reason == 'type_mismatch'

    def test_rejected_connection_is_a_value_error(self, nodes):
        with pytest.raises(ValueError):
            check_connection(make_edge('B', 'B'), nodes, [])


def test_accepted_edges_never_form_a_cycle():
    """Randomly proposed edges, inserted only when accepted, keep the graph a DAG."""
    rng = random.Random(1234)
    graph = [make_node(f"n{i}", 'genericNode') for i in range(25)]
    edges = []

    for attempt in range(400):
        source, target = rng.sample(graph, 2)
        candidate = Edge(source=source.id, target=target.id, id=f"e{attempt}")
        try:
            check_connection(candidate, graph, edges)
        except ConnectionRejected:
            continue
        edges.append(candidate)
        assert not has_cycle(graph, edges)

    assert edges

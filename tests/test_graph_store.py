"""
Tests for the per-owner knowledge graph store.
"""

from datetime import datetime

import pytest

from semantic_memory.exceptions import AuthorizationError, CapacityError, NotFoundError, ValidationError
from semantic_memory.models.core import EdgeKind, NodeType

from .conftest import NOW, OTHER_OWNER, OWNER


class TestNodes:

    def test_create_and_get(self, graph_store):
        node_id = graph_store.create_node(OWNER, NodeType.CONTACT, 'Ada', 'Ada Lovelace', 0.9, {'email': 'ada@x'})
        node = graph_store.get_node(OWNER, node_id)

        assert node.owner_id == OWNER
        assert node.type == NodeType.CONTACT
        assert node.properties == {'email': 'ada@x'}
        assert node.edges == []

    def test_missing_node_raises_not_found(self, graph_store):
        with pytest.raises(NotFoundError):
            graph_store.get_node(OWNER, 'nope')

    def test_foreign_node_raises_authorization(self, graph_store, make_node):
        node_id = make_node('secret', owner_id=OTHER_OWNER)
        with pytest.raises(AuthorizationError):
            graph_store.get_node(OWNER, node_id)

    def test_confidence_out_of_range(self, graph_store):
        with pytest.raises(ValidationError, match='confidence'):
            graph_store.create_node(OWNER, NodeType.TOPIC, 'x', confidence=1.5)

    def test_unknown_node_type(self, graph_store):
        with pytest.raises(ValidationError, match='Unknown node type'):
            graph_store.create_node(OWNER, 'planet', 'x')

    def test_node_ceiling(self, graph_store, make_node):
        for i in range(graph_store.config.max_nodes_per_owner):
            make_node(f'topic-{i}')
        with pytest.raises(CapacityError):
            make_node('one too many')
        # Other owners are unaffected
        make_node('fine', owner_id=OTHER_OWNER)

    def test_update_node(self, graph_store, make_node):
        node_id = make_node('python')
        node = graph_store.update_node(OWNER, node_id, label='Python', confidence=0.4)

        assert node.label == 'Python'
        assert node.confidence == 0.4
        assert node.content == 'python content'

    def test_list_nodes_filters(self, graph_store, make_node):
        make_node('a', confidence=0.2)
        make_node('b', confidence=0.8)
        make_node('c', node_type=NodeType.SKILL, confidence=0.9)

        topics = graph_store.list_nodes(OWNER, NodeType.TOPIC, min_confidence=0.5)
        assert [n.label for n in topics] == ['b']
        assert len(graph_store.list_nodes(OWNER, limit=2)) == 2


class TestEdges:

    def test_create_edge(self, graph_store, make_node):
        a, b = make_node('a'), make_node('b')
        edge = graph_store.create_edge(OWNER, a, b, EdgeKind.RELATED_TO, 0.6)

        assert edge.target_node_id == b
        assert edge.weight == 0.6
        assert graph_store.get_node(OWNER, b).edges == []

    def test_repeated_create_reinforces_softly(self, graph_store, make_node):
        a, b = make_node('a'), make_node('b')
        graph_store.create_edge(OWNER, a, b, EdgeKind.VISITED, 0.5)
        edge = graph_store.create_edge(OWNER, a, b, EdgeKind.INTERACTED_WITH, 0.8)

        assert edge.weight == pytest.approx(0.58)
        assert edge.kind == EdgeKind.INTERACTED_WITH
        assert len(graph_store.get_node(OWNER, a).edges) == 1

    def test_reinforcement_never_exceeds_one(self, graph_store, make_node):
        a, b = make_node('a'), make_node('b')
        for _ in range(30):
            edge = graph_store.create_edge(OWNER, a, b, EdgeKind.VISITED, 1.0)
        assert edge.weight == 1.0

    def test_bidirectional(self, graph_store, make_node):
        a, b = make_node('a'), make_node('b')
        graph_store.create_edge(OWNER, b, a, EdgeKind.KNOWS, 0.5)
        graph_store.create_edge(OWNER, a, b, EdgeKind.KNOWS, 0.7, bidirectional=True)

        assert graph_store.get_node(OWNER, a).find_edge(b).weight == 0.7
        assert graph_store.get_node(OWNER, b).find_edge(a).weight == pytest.approx(0.57)

    @pytest.mark.parametrize('weight', [-0.1, 1.1])
    def test_weight_out_of_range(self, graph_store, make_node, weight):
        a, b = make_node('a'), make_node('b')
        with pytest.raises(ValidationError, match='weight'):
            graph_store.create_edge(OWNER, a, b, EdgeKind.KNOWS, weight)

    def test_self_loop_rejected(self, graph_store, make_node):
        a = make_node('a')
        with pytest.raises(ValidationError, match='Self-loop'):
            graph_store.create_edge(OWNER, a, a, EdgeKind.KNOWS, 0.5)

    def test_cross_owner_edge_rejected(self, graph_store, make_node):
        a = make_node('a')
        foreign = make_node('b', owner_id=OTHER_OWNER)
        with pytest.raises(AuthorizationError):
            graph_store.create_edge(OWNER, a, foreign, EdgeKind.KNOWS, 0.5)

    def test_remove_edge(self, graph_store, make_node):
        a, b = make_node('a'), make_node('b')
        graph_store.create_edge(OWNER, a, b, EdgeKind.KNOWS, 0.5)

        assert graph_store.remove_edge(OWNER, a, b) is True
        assert graph_store.remove_edge(OWNER, a, b) is False


class TestStrengthenEdge:

    def test_strengthen_and_decay_others(self, graph_store, make_node):
        """A -> B goes from 0.5 to 0.55 and every other out-edge of A decays by 1%."""
        a = make_node('A', confidence=0.9)
        b, c, d = make_node('B'), make_node('C'), make_node('D')
        graph_store.create_edge(OWNER, a, b, EdgeKind.VISITED, 0.5)
        graph_store.create_edge(OWNER, a, c, EdgeKind.RELATED_TO, 0.8)
        graph_store.create_edge(OWNER, a, d, EdgeKind.KNOWS, 1.0)

        graph_store.strengthen_edge(OWNER, a, b, 0.05)
        node = graph_store.get_node(OWNER, a)

        assert node.find_edge(b).weight == pytest.approx(0.55)
        assert node.find_edge(c).weight == pytest.approx(0.792)
        assert node.find_edge(d).weight == pytest.approx(0.99)

    def test_default_increment_and_clamp(self, graph_store, make_node):
        a, b = make_node('a'), make_node('b')
        graph_store.create_edge(OWNER, a, b, EdgeKind.VISITED, 0.98)

        assert graph_store.strengthen_edge(OWNER, a, b).weight == 1.0

    def test_missing_edge_raises(self, graph_store, make_node):
        a, b = make_node('a'), make_node('b')
        with pytest.raises(NotFoundError, match='No edge'):
            graph_store.strengthen_edge(OWNER, a, b)

    def test_weights_stay_in_range(self, graph_store, make_node):
        a, b, c = make_node('a'), make_node('b'), make_node('c')
        graph_store.create_edge(OWNER, a, b, EdgeKind.VISITED, 0.9)
        graph_store.create_edge(OWNER, a, c, EdgeKind.VISITED, 0.01)
        for _ in range(50):
            graph_store.strengthen_edge(OWNER, a, b, 1.0)

        assert all(0.0 <= edge.weight <= 1.0 for edge in graph_store.get_node(OWNER, a).edges)


class TestMergeNodes:

    def test_merge_removes_source_and_redirects_edges(self, graph_store, make_node):
        source, target = make_node('py'), make_node('python')
        x, y, z = make_node('x'), make_node('y'), make_node('z')
        graph_store.create_edge(OWNER, source, x, EdgeKind.RELATED_TO, 0.4)
        graph_store.create_edge(OWNER, source, y, EdgeKind.RELATED_TO, 0.9)
        graph_store.create_edge(OWNER, target, y, EdgeKind.SUPPORTS, 0.3)
        graph_store.create_edge(OWNER, z, source, EdgeKind.MENTIONED, 0.6)

        merged = graph_store.merge_nodes(OWNER, source, target, 'Python language', 0.95)

        with pytest.raises(NotFoundError):
            graph_store.get_node(OWNER, source)
        assert merged.content == 'Python language'
        assert merged.confidence == 0.95
        assert merged.properties['merged_from'] == [source]

        targets = [edge.target_node_id for edge in merged.edges]
        assert sorted(targets) == sorted([x, y])
        # Target's own edge wins the tie on y
        assert merged.find_edge(y).kind == EdgeKind.SUPPORTS
        assert merged.find_edge(y).weight == 0.3

        z_edges = graph_store.get_node(OWNER, z).edges
        assert [(e.target_node_id, e.weight) for e in z_edges] == [(target, 0.6)]

    def test_merge_drops_edges_between_the_pair(self, graph_store, make_node):
        source, target = make_node('a'), make_node('b')
        graph_store.create_edge(OWNER, source, target, EdgeKind.SIMILAR_TO, 0.9, bidirectional=True)

        merged = graph_store.merge_nodes(OWNER, source, target, 'merged', 0.8)
        assert merged.edges == []

    def test_redirect_keeps_higher_weight(self, graph_store, make_node):
        source, target, other = make_node('a'), make_node('b'), make_node('c')
        graph_store.create_edge(OWNER, other, target, EdgeKind.KNOWS, 0.2)
        graph_store.create_edge(OWNER, other, source, EdgeKind.KNOWS, 0.7)

        graph_store.merge_nodes(OWNER, source, target, 'merged', 0.8)
        edges = graph_store.get_node(OWNER, other).edges

        assert len(edges) == 1
        assert edges[0].target_node_id == target
        assert edges[0].weight == 0.7

    def test_merge_missing_source(self, graph_store, make_node):
        target = make_node('b')
        with pytest.raises(NotFoundError):
            graph_store.merge_nodes(OWNER, 'missing', target, 'x', 0.5)

    def test_merge_into_itself(self, graph_store, make_node):
        a = make_node('a')
        with pytest.raises(ValidationError, match='itself'):
            graph_store.merge_nodes(OWNER, a, a, 'x', 0.5)


class TestDeleteNode:

    def test_cascades_incoming_edges(self, graph_store, make_node):
        a, b, c = make_node('a'), make_node('b'), make_node('c')
        graph_store.create_edge(OWNER, a, c, EdgeKind.KNOWS, 0.5)
        graph_store.create_edge(OWNER, b, c, EdgeKind.KNOWS, 0.5)
        graph_store.create_edge(OWNER, a, b, EdgeKind.KNOWS, 0.5)

        removed = graph_store.delete_node(OWNER, c)

        assert removed == 2
        assert [e.target_node_id for e in graph_store.get_node(OWNER, a).edges] == [b]
        assert graph_store.get_node(OWNER, b).edges == []
        with pytest.raises(NotFoundError):
            graph_store.get_node(OWNER, c)

    def test_foreign_delete_rejected(self, graph_store, make_node):
        foreign = make_node('x', owner_id=OTHER_OWNER)
        with pytest.raises(AuthorizationError):
            graph_store.delete_node(OWNER, foreign)

    def test_clear_graph_requires_confirmation(self, graph_store, make_node):
        make_node('a')
        with pytest.raises(ValidationError, match='confirmed'):
            graph_store.clear_graph(OWNER)

        assert graph_store.clear_graph(OWNER, confirm=True) == 1
        assert graph_store.node_count(OWNER) == 0


class TestEventExtraction:

    def test_creates_content_entity_and_topic_nodes(self, graph_store):
        event = {
            'url': 'https://example.com/rust',
            'title': 'Rust ownership explained',
            'entities': [
                {'text': 'Mozilla', 'type': 'organization', 'confidence': 0.9},
                {'text': 'Graydon Hoare', 'type': 'person', 'confidence': 0.8},
                {'text': 'WebAssembly', 'type': 'unknown-kind'},
            ],
            'topics': ['programming', 'memory safety'],
        }
        created = graph_store.create_nodes_from_event(OWNER, event)
        nodes = [graph_store.get_node(OWNER, node_id) for node_id in created]

        assert [n.type for n in nodes] == [
            NodeType.CONTENT, NodeType.ORGANIZATION, NodeType.CONTACT, NodeType.ENTITY, NodeType.TOPIC, NodeType.TOPIC
        ]
        content = nodes[0]
        assert content.confidence == 0.8
        assert content.properties['sentiment'] == 0.0
        assert len(content.edges) == 5
        assert nodes[3].confidence == 0.5

    def test_topics_are_deduplicated(self, graph_store):
        graph_store.create_nodes_from_event(OWNER, {'title': 'first', 'topics': ['ai']})
        created = graph_store.create_nodes_from_event(OWNER, {'title': 'second', 'topics': ['ai']})

        assert len(created) == 1
        assert len(graph_store.list_nodes(OWNER, NodeType.TOPIC)) == 1

    def test_iso_timestamp_is_parsed(self, graph_store):
        created = graph_store.create_nodes_from_event(OWNER, {'title': 't', 'timestamp': '2025-06-01T12:00:00'})

        assert graph_store.get_node(OWNER, created[0]).properties['timestamp'] == NOW

    def test_numeric_and_datetime_timestamps(self, graph_store):
        numeric = graph_store.create_nodes_from_event(OWNER, {'title': 'a', 'timestamp': NOW.timestamp()})
        native = graph_store.create_nodes_from_event(OWNER, {'title': 'b', 'timestamp': NOW})

        assert graph_store.get_node(OWNER, numeric[0]).properties['timestamp'] == NOW
        assert graph_store.get_node(OWNER, native[0]).properties['timestamp'] == NOW

    def test_unreadable_timestamp_falls_back_to_now(self, graph_store):
        created = graph_store.create_nodes_from_event(OWNER, {'title': 't', 'timestamp': 'last tuesday'})
        timestamp = graph_store.get_node(OWNER, created[0]).properties['timestamp']

        assert isinstance(timestamp, datetime)
        assert timestamp > NOW

    def test_entity_without_text_is_skipped(self, graph_store):
        created = graph_store.create_nodes_from_event(OWNER, {
            'title': 't',
            'entities': [{'text': None, 'type': 'person'}, {'type': 'person'}, {'text': 'Ada', 'type': 'person'}],
        })

        assert [graph_store.get_node(OWNER, node_id).label for node_id in created] == ['t', 'Ada']


class TestStatistics:

    def test_counts_and_density(self, graph_store, make_node):
        a, b = make_node('a'), make_node('b', node_type=NodeType.SKILL)
        graph_store.create_edge(OWNER, a, b, EdgeKind.KNOWS, 0.4)
        stats = graph_store.statistics(OWNER)

        assert stats['total_nodes'] == 2
        assert stats['total_edges'] == 1
        assert stats['density'] == pytest.approx(0.5)
        assert stats['average_edge_weight'] == pytest.approx(0.4)
        assert stats['node_type_distribution'] == {'topic': 1, 'skill': 1}
        assert stats['recent_nodes_24h'] == 2

    def test_empty_graph(self, graph_store):
        assert graph_store.statistics(OWNER)['density'] == 0.0

"""
Tests for the semantic memory service facade.
"""

import pytest

from semantic_memory.exceptions import ValidationError
from semantic_memory.models.core import ContentType, EdgeKind, Modality, ModalityVector, NodeType
from semantic_memory.utils.vector_math import l2_norm

from .conftest import NOW, OWNER


@pytest.fixture
def stored(memory_service):
    store = memory_service.embeddings
    return {
        'python': store.store(OWNER, [1.0, 0.0, 0.0], 'custom-model', 'h1', domain='dev', tags=['code'], language='en'),
        'rust': store.store(OWNER, [0.9, 0.1, 0.0], 'custom-model', 'h2', domain='dev', tags=['systems'],
                            language='de'),
        'private': store.store(OWNER, [1.0, 0.05, 0.0], 'custom-model', 'h3', namespace='health'),
        'image': store.store(OWNER, [0.95, 0.0, 0.1], 'custom-model', 'h4', content_type=ContentType.IMAGE),
    }


class TestSearch:

    def test_namespace_allow_list(self, memory_service, stored):
        results = memory_service.search(OWNER, [1.0, 0.0, 0.0], namespaces=['default'], now=NOW)
        ids = {r.record.id for r in results}

        assert stored['private'] not in ids
        assert stored['python'] in ids

    def test_filters(self, memory_service, stored):
        query = [1.0, 0.0, 0.0]

        by_type = memory_service.search(OWNER, query, content_types=[ContentType.IMAGE], now=NOW)
        assert [r.record.id for r in by_type] == [stored['image']]

        by_tag = memory_service.search(OWNER, query, tags=['systems', 'none'], now=NOW)
        assert [r.record.id for r in by_tag] == [stored['rust']]

        by_language = memory_service.search(OWNER, query, language='en', now=NOW)
        assert [r.record.id for r in by_language] == [stored['python']]

        excluded = memory_service.search(OWNER, query, domains=['dev'], exclude_ids=[stored['python']], now=NOW)
        assert [r.record.id for r in excluded] == [stored['rust']]

    def test_diversify_keeps_most_relevant_first(self, memory_service, stored):
        plain = memory_service.search(OWNER, [1.0, 0.0, 0.0], now=NOW)
        diverse = memory_service.search(OWNER, [1.0, 0.0, 0.0], diversify=True, now=NOW)

        assert diverse[0].record.id == plain[0].record.id
        assert {r.record.id for r in diverse} == {r.record.id for r in plain}

    def test_cluster_search(self, memory_service, stored):
        results = memory_service.cluster_search(OWNER, [[1.0, 0.0, 0.0], [0.9, 0.1, 0.0]], namespaces=['default'],
                                                now=NOW)
        assert results[0].record.id in (stored['python'], stored['rust'])

    def test_find_related_stays_in_namespace(self, memory_service, stored):
        related = memory_service.find_related(OWNER, stored['python'], now=NOW)
        ids = [r.record.id for r in related]

        assert stored['python'] not in ids
        assert stored['private'] not in ids
        assert stored['rust'] in ids


class TestFuseAndStore:

    def test_multimodal_record(self, memory_service):
        record_id = memory_service.fuse_and_store(OWNER, [
            ModalityVector([0.01] * 1536, Modality.TEXT, 0.4),
            ModalityVector([0.02] * 512, Modality.IMAGE, 0.3),
        ], content_hash='page-1', source_ref='event-9')
        record = memory_service.embeddings.get(OWNER, record_id)

        assert record.dimension == 2048
        assert record.content_type == ContentType.MULTIMODAL
        assert record.model_id == 'multimodal-weighted_concat'
        assert record.confidence == pytest.approx(0.935)
        assert l2_norm(record.vector) == pytest.approx(1.0)

    def test_single_modality_keeps_its_type(self, memory_service):
        record_id = memory_service.fuse_and_store(OWNER, [ModalityVector([3.0, 4.0], Modality.AUDIO)], 'clip-1')
        assert memory_service.embeddings.get(OWNER, record_id).content_type == ContentType.AUDIO

    def test_caller_content_type_wins(self, memory_service):
        record_id = memory_service.fuse_and_store(OWNER, [
            ModalityVector([0.1, 0.2], Modality.IMAGE),
            ModalityVector([0.3, 0.4], Modality.AUDIO),
        ], 'clip-2', content_type=ContentType.VIDEO, namespace='media')
        record = memory_service.embeddings.get(OWNER, record_id)

        assert record.content_type == ContentType.VIDEO
        assert record.namespace == 'media'

    def test_fusing_same_content_again_updates_record(self, memory_service):
        inputs = [ModalityVector([3.0, 4.0], Modality.TEXT)]
        first = memory_service.fuse_and_store(OWNER, inputs, 'note-1')
        second = memory_service.fuse_and_store(OWNER, inputs, 'note-1')

        assert second == first
        assert memory_service.embeddings.get(OWNER, first).access_count == 1

    def test_empty_input(self, memory_service):
        with pytest.raises(ValidationError):
            memory_service.fuse_and_store(OWNER, [], 'nothing')


class TestGraphContext:

    def test_related_and_suggestions(self, memory_service):
        graph = memory_service.graph
        me = graph.create_node(OWNER, NodeType.USER, 'me')
        python = graph.create_node(OWNER, NodeType.SKILL, 'python')
        numpy = graph.create_node(OWNER, NodeType.SKILL, 'numpy')
        graph.create_edge(OWNER, me, python, EdgeKind.INTERESTED_IN, 0.8)
        graph.create_edge(OWNER, python, numpy, EdgeKind.RELATED_TO, 0.6)

        context = memory_service.graph_context(OWNER, python)

        assert context['node'].id == python
        assert [entry.node.id for entry in context['related']] == [numpy]
        assert context['suggestions'] == []

    def test_ingest_event(self, memory_service):
        created = memory_service.ingest_event(OWNER, {'title': 'Intro to graphs', 'topics': ['graphs']})

        assert len(created) == 2
        context = memory_service.graph_context(OWNER, created[0])
        assert [entry.node.label for entry in context['related']] == ['graphs']

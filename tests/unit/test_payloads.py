"""Unit tests for kind-specific payload validation."""

import pytest

from analysis_jobs.errors import InvalidJobError
from analysis_jobs.models import JobKind
from analysis_jobs.payloads import (
    ClarityCheckPayload,
    DetectEntitiesPayload,
    EmbeddingGenerationPayload,
    dump_payload,
    parse_kind,
    parse_payload,
)


def test_parse_kind():
    assert parse_kind("coherence_lint") == JobKind.COHERENCE_LINT
    assert parse_kind(JobKind.DIGEST_DOCUMENT) == JobKind.DIGEST_DOCUMENT

    with pytest.raises(InvalidJobError, match="Unknown job kind"):
        parse_kind("summarize")


def test_document_payload_defaults():
    payload = parse_payload("detect_entities", None)

    assert isinstance(payload, DetectEntitiesPayload)
    assert payload.kind == "detect_entities"
    assert payload.source is None


def test_document_payload_keeps_extra_fields():
    payload = parse_payload(JobKind.CLARITY_CHECK, {"source": "import", "section": 3})

    assert isinstance(payload, ClarityCheckPayload)
    assert payload.source == "import"
    assert dump_payload(payload) == {"kind": "clarity_check", "source": "import", "section": 3}


def test_embedding_payload():
    payload = parse_payload(
        "embedding_generation", {"target_type": "memory", "target_id": "m1"}
    )

    assert isinstance(payload, EmbeddingGenerationPayload)
    assert payload.target_type == "memory"
    assert payload.target_id == "m1"


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"target_type": "chapter", "target_id": "x"},
        {"target_type": "entity", "target_id": ""},
        {"target_type": "entity"},
    ],
)
def test_embedding_payload_rejects_bad_targets(data):
    with pytest.raises(InvalidJobError):
        parse_payload("embedding_generation", data)


def test_payload_kind_must_match_job_kind():
    with pytest.raises(InvalidJobError, match="does not match"):
        parse_payload("clarity_check", {"kind": "policy_check"})


def test_payload_must_be_an_object():
    with pytest.raises(InvalidJobError, match="must be an object"):
        parse_payload("clarity_check", "document_update")


def test_payload_model_is_accepted():
    original = ClarityCheckPayload(source="document_create")

    payload = parse_payload("clarity_check", original)

    assert payload == original


def test_dump_payload_drops_unset_optionals():
    payload = parse_payload("digest_document", {})
    assert dump_payload(payload) == {"kind": "digest_document"}

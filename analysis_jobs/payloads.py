"""Kind-specific job payloads.

Payloads are a discriminated union keyed by ``kind``. Document analysis kinds
accept an optional ``source`` plus any extra fields the edit handler wants to
hand to its executor; embedding jobs must name the target they reindex.
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from analysis_jobs.errors import InvalidJobError
from analysis_jobs.models import JobKind


class DocumentAnalysisPayload(BaseModel):
    """Common shape of the per-document analysis payloads."""

    model_config = ConfigDict(extra="allow")

    source: Optional[str] = None


class DetectEntitiesPayload(DocumentAnalysisPayload):
    kind: Literal["detect_entities"] = "detect_entities"


class CoherenceLintPayload(DocumentAnalysisPayload):
    kind: Literal["coherence_lint"] = "coherence_lint"


class ClarityCheckPayload(DocumentAnalysisPayload):
    kind: Literal["clarity_check"] = "clarity_check"


class PolicyCheckPayload(DocumentAnalysisPayload):
    kind: Literal["policy_check"] = "policy_check"


class DigestDocumentPayload(DocumentAnalysisPayload):
    kind: Literal["digest_document"] = "digest_document"


EmbeddingTargetType = Literal["document", "entity", "memory", "memory_delete"]


class EmbeddingGenerationPayload(BaseModel):
    """Reindex request for one document, entity or memory."""

    kind: Literal["embedding_generation"] = "embedding_generation"
    target_type: EmbeddingTargetType
    target_id: str = Field(min_length=1)
    source: Optional[str] = None


JobPayload = Annotated[
    Union[
        DetectEntitiesPayload,
        CoherenceLintPayload,
        ClarityCheckPayload,
        PolicyCheckPayload,
        DigestDocumentPayload,
        EmbeddingGenerationPayload,
    ],
    Field(discriminator="kind"),
]

_payload_adapter = TypeAdapter(JobPayload)


def parse_kind(kind: Any) -> JobKind:
    """Coerce a kind value, raising InvalidJobError for unknown kinds."""
    try:
        return JobKind(kind)
    except ValueError as e:
        raise InvalidJobError(f"Unknown job kind: {kind!r}") from e


def parse_payload(kind: Any, data: Any) -> JobPayload:
    """
    Validate raw payload data against the model registered for ``kind``.

    Args:
        kind: Job kind (enum member or its string value)
        data: Dict, payload model or None

    Returns:
        The typed payload model

    Raises:
        InvalidJobError: If the kind is unknown or the payload does not match it
    """
    job_kind = parse_kind(kind)

    if data is None:
        data = {}
    elif isinstance(data, BaseModel):
        data = data.model_dump()

    if not isinstance(data, dict):
        raise InvalidJobError(
            f"Payload for kind {job_kind.value} must be an object, got {type(data).__name__}"
        )

    body = dict(data)
    declared = body.get("kind", job_kind.value)
    if declared != job_kind.value:
        raise InvalidJobError(
            f"Payload kind {declared!r} does not match job kind {job_kind.value!r}"
        )
    body["kind"] = job_kind.value

    try:
        return _payload_adapter.validate_python(body)
    except ValidationError as e:
        raise InvalidJobError(f"Invalid payload for kind {job_kind.value}: {e}") from e


def dump_payload(payload: BaseModel) -> Dict[str, Any]:
    """Serialize a payload model for storage."""
    return payload.model_dump(mode="json", exclude_none=True)

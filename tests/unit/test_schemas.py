"""Tests for Pydantic schemas."""

import pytest
from pydantic import ValidationError

from suggestion_engine.config.defaults import default_profile
from suggestion_engine.models.domain import FactorKind, SuggestionState
from suggestion_engine.models.schemas import (
    CycleRequest,
    FeedbackRequest,
    SuggestionRecord,
    ThresholdSchema,
    WeightOverrideRequest,
    WeightProfileResponse,
)


def test_feedback_request_requires_actor():
    with pytest.raises(ValidationError):
        FeedbackRequest(action="ACCEPT", actor="")


def test_feedback_request_rejects_unknown_action():
    with pytest.raises(ValidationError):
        FeedbackRequest(action="MAYBE", actor="dispatcher-1")


def test_cycle_request_accepts_camel_case():
    req = CycleRequest.model_validate({"tenantId": "acme", "subjectIds": ["asset-1"]})
    assert req.tenant_id == "acme"
    assert req.subject_ids == ["asset-1"]
    assert req.to_scope().key == "acme/*/*/*"


def test_suggestion_record_serializes_camel_case(suggestion_factory):
    suggestion = suggestion_factory()
    suggestion.state = SuggestionState.ACCEPTED
    suggestion.decided_by = "dispatcher-1"
    data = SuggestionRecord.from_domain(suggestion).model_dump(by_alias=True)

    assert data["type"] == "reposition"
    assert data["scope"]["tenantId"] == "acme-rentals"
    assert data["subject"]["equipmentIds"] == ["asset-1"]
    assert data["factors"][0] == {"kind": FactorKind.DEMAND.value, "contribution": 28.8}
    assert data["state"] == "ACCEPTED"
    assert data["decidedBy"] == "dispatcher-1"


def test_threshold_schema_bounds():
    with pytest.raises(ValidationError):
        ThresholdSchema(activation_threshold=0.0, min_actionable_score=70.0)
    with pytest.raises(ValidationError):
        ThresholdSchema(activation_threshold=10.0, min_actionable_score=50.0)


def test_weight_override_requires_non_negative_revision():
    with pytest.raises(ValidationError):
        WeightOverrideRequest(tenant_id="acme", expected_revision=-1, actor="ops")


def test_weight_profile_response_from_domain(settings):
    profile = default_profile("acme/*/*/*", settings)
    data = WeightProfileResponse.from_domain(profile).model_dump(by_alias=True)
    assert data["revision"] == 0
    assert data["weights"]["reposition"]["demand"] == 40.0
    assert data["thresholds"]["swap_unit"]["minActionableScore"] == 70.0
    assert data["weightBound"] == 100.0

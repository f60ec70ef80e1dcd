"""Pydantic models for the rule-authoring data that crosses the engine boundary.

Every model serializes with camelCase aliases so that
``model_dump(by_alias=True)`` yields the JSON shape the authoring front-end
consumes.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenCamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


# ---------------------------------------------------------------------------
# Schema-derived hints
# ---------------------------------------------------------------------------

class SpecHint(_FrozenCamelModel):
    """An advisory "required field" hint mined from a StructureDefinition."""

    path: str = Field(..., min_length=1)
    reason: str
    severity: str = "warning"
    source: str = "HL7"
    is_conditional: bool = False
    condition: str | None = None
    applies_to_each: bool = False

    @model_validator(mode="after")
    def _check_conditionality(self) -> SpecHint:
        if (self.condition is not None) != self.is_conditional:
            raise ValueError("condition must be present exactly when is_conditional is set")
        if self.applies_to_each and not self.is_conditional:
            raise ValueError("applies_to_each requires is_conditional")
        return self


class SpecHintCatalog(_FrozenCamelModel):
    """Hints for one FHIR version, keyed by resource type."""

    version: str
    hints: Mapping[str, tuple[SpecHint, ...]] = Field(default_factory=dict)

    def for_resource(self, resource_type: str) -> tuple[SpecHint, ...]:
        return tuple(self.hints.get(resource_type, ()))

    @property
    def hint_count(self) -> int:
        return sum(len(v) for v in self.hints.values())


class SpecHintIssue(_CamelModel):
    """An advisory issue raised by the spec-hint checker for one resource."""

    resource_type: str
    resource_id: str | None = None
    path: str
    reason: str = ""
    severity: str = "warning"
    is_conditional: bool = False
    condition: str | None = None
    applies_to_each: bool = False
    json_pointer: str | None = None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class ClassificationCategory(str, Enum):
    UNCONDITIONAL_REQUIRED = "UnconditionalRequired"
    CONDITIONAL = "Conditional"
    NESTED_OPTIONAL = "NestedOptional"
    ALREADY_HANDLED = "AlreadyHandled"
    ADVISORY = "Advisory"


class ClassificationResult(_FrozenCamelModel):
    source: Literal["STRUCTURE", "SPEC_HINT"]
    severity: Literal["error", "warning"]
    reason: str
    category: ClassificationCategory


# ---------------------------------------------------------------------------
# Existing rules (read-only input)
# ---------------------------------------------------------------------------

class Rule(_CamelModel):
    id: str | None = None
    type: str
    resource_type: str
    path: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)


class RuleSet(_CamelModel):
    version: str | None = None
    rules: list[Rule] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

class SemanticType(str, Enum):
    TERMINOLOGY_BOUND_FIELD = "TerminologyBoundField"
    REFERENCE_FIELD = "ReferenceField"
    STATUS_OR_LIFECYCLE_FIELD = "StatusOrLifecycleField"
    IDENTIFIER_FIELD = "IdentifierField"
    FREE_TEXT_FIELD = "FreeTextField"
    CODED_ANSWER_FIELD = "CodedAnswerField"
    UNKNOWN = "Unknown"


class SemanticSubType(str, Enum):
    NONE = "None"
    IDENTIFIER_NAMESPACE = "IdentifierNamespace"
    IDENTIFIER_VALUE = "IdentifierValue"
    INSTANCE_CONTACT_DATA = "InstanceContactData"
    HUMAN_READABLE_LABEL = "HumanReadableLabel"
    DERIVED_TEXT = "DerivedText"
    FREE_NARRATIVE = "FreeNarrative"
    CODED_CONCEPT_DISPLAY = "CodedConceptDisplay"
    REFERENCE_DISPLAY = "ReferenceDisplay"


class ObservationType(str, Enum):
    CONSTANT_VALUE = "ConstantValue"
    SMALL_VALUE_SET = "SmallValueSet"
    ALWAYS_PRESENT = "AlwaysPresent"
    PATTERN_DETECTED = "PatternDetected"
    REFERENCE_TARGET_CONSISTENT = "ReferenceTargetConsistent"
    ARRAY_LENGTH_CONSISTENT = "ArrayLengthConsistent"
    INSTANCE_DATA = "InstanceData"
    NO_PATTERN = "NoPattern"


class BetterRuleCandidate(str, Enum):
    NONE = "None"
    REGEX = "Regex"
    VALUE_SET_BINDING = "ValueSetBinding"
    REFERENCE_EXISTS = "ReferenceExists"
    ARRAY_LENGTH = "ArrayLength"
    NON_EMPTY_STRING = "NonEmptyString"
    FIXED_VALUE_IG_DEFINED = "FixedValueIGDefined"
    TERMINOLOGY_BINDING = "TerminologyBinding"


class FixedValueParams(_FrozenCamelModel):
    rule_type: Literal["FixedValue"] = "FixedValue"
    value: str


class AllowedValuesParams(_FrozenCamelModel):
    rule_type: Literal["AllowedValues"] = "AllowedValues"
    values: tuple[str, ...]


class CodeSystemParams(_FrozenCamelModel):
    rule_type: Literal["CodeSystem"] = "CodeSystem"
    system: str


class RequiredParams(_FrozenCamelModel):
    rule_type: Literal["Required"] = "Required"


class ReferenceExistsParams(_FrozenCamelModel):
    rule_type: Literal["ReferenceExists"] = "ReferenceExists"
    target_resource_type: str
    scope: str = "Bundle"


RuleParams = Annotated[
    Union[
        FixedValueParams,
        AllowedValuesParams,
        CodeSystemParams,
        RequiredParams,
        ReferenceExistsParams,
    ],
    Field(discriminator="rule_type"),
]


class SuggestionEvidence(_CamelModel):
    resource_count: int = 0
    example_values: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)


class SystemRuleSuggestion(_CamelModel):
    """A deterministic, explainable rule suggestion. Never enforced by itself."""

    suggestion_id: str = Field(default_factory=lambda: str(uuid4()))
    semantic_type: SemanticType = SemanticType.UNKNOWN
    semantic_sub_type: SemanticSubType = SemanticSubType.NONE
    observation_type: ObservationType = ObservationType.NO_PATTERN
    better_rule_candidate: BetterRuleCandidate | None = None
    rule_type: str | None = None
    path: str
    resource_type: str
    params: RuleParams | None = None
    confidence: Literal["high", "medium", "low"] = "medium"
    reasoning: str = ""
    sample_evidence: SuggestionEvidence = Field(default_factory=SuggestionEvidence)
    source: str = "SYSTEM"

    @model_validator(mode="after")
    def _check_params_match_rule_type(self) -> SystemRuleSuggestion:
        params_type = self.params.rule_type if self.params is not None else None
        if params_type != self.rule_type:
            raise ValueError(
                f"params for {params_type!r} do not match rule_type {self.rule_type!r}"
            )
        return self

    @property
    def is_actionable(self) -> bool:
        return self.rule_type is not None

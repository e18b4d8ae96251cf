"""
Compliance scoring engine.

Pure functions over three parsed documents:

- the template sections (weighted checklist items),
- the submitted responses (item id -> value),
- the scoring rules (weights, thresholds and the red-flag policy).

Nothing here touches the database. The audit routes load the JSON blobs,
call `calculate_overall_score` / `what_if_analysis` and persist the result.
"""

from __future__ import annotations

import enum
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel


class ScoringInputError(ValueError):
    """Raised when a template, rules document or response set cannot be parsed."""


class ResponseType(str, enum.Enum):
    YES_NO = "YES_NO"
    NUMERIC = "NUMERIC"
    TEXT = "TEXT"
    DROPDOWN = "DROPDOWN"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"


class Criticality(str, enum.Enum):
    CRITICAL = "CRITICAL"
    MAJOR = "MAJOR"
    MINOR = "MINOR"


class ComplianceCategory(str, enum.Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    NEEDS_IMPROVEMENT = "NEEDS_IMPROVEMENT"
    NON_COMPLIANT = "NON_COMPLIANT"


PRIORITY_BY_CRITICALITY = {
    Criticality.CRITICAL: 1,
    Criticality.MAJOR: 2,
    Criticality.MINOR: 3,
}

# Half-width of the "optimal" band around a numeric target, as a share of the
# half-width of the acceptable range.
OPTIMAL_BAND = 0.1


# ---------------------------------------------------------------------------
# INPUT DOCUMENTS
# ---------------------------------------------------------------------------


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class TargetRange(_Document):
    min: float
    max: float


class ChecklistItem(_Document):
    id: str
    question: str
    response_type: ResponseType
    criticality: Criticality = Criticality.MINOR
    weight: Optional[float] = None
    target_value: Optional[Any] = None
    target_range: Optional[TargetRange] = None
    unit: Optional[str] = None
    required: bool = True


class Section(_Document):
    id: str
    name: str
    items: List[ChecklistItem] = Field(default_factory=list)
    minimum_threshold: Optional[float] = None


class ScoringRules(_Document):
    critical_weight: float = 10
    major_weight: float = 5
    minor_weight: float = 2
    passing_threshold: float = 75
    excellent_threshold: float = 90
    good_threshold: float = 75
    needs_improvement_threshold: float = 60
    # A critical red flag fails the audit regardless of the numeric score.
    auto_fail_on_critical: bool = True
    # Criticalities whose non-compliant answers are reported as red flags.
    red_flag_criticalities: List[Criticality] = Field(
        default_factory=lambda: [Criticality.CRITICAL, Criticality.MAJOR, Criticality.MINOR]
    )

    def weight_for(self, criticality: Criticality) -> float:
        return {
            Criticality.CRITICAL: self.critical_weight,
            Criticality.MAJOR: self.major_weight,
            Criticality.MINOR: self.minor_weight,
        }[criticality]


# ---------------------------------------------------------------------------
# RESULTS
# ---------------------------------------------------------------------------


class ItemScore(BaseModel):
    points: float
    max_points: float
    compliant: bool
    answered: bool


class SectionScore(BaseModel):
    section_id: str
    section_name: str
    percentage: float
    total_points: float
    achieved_points: float
    item_count: int
    answered_items: int
    compliant_items: int
    passed: bool


class RedFlag(BaseModel):
    item_id: str
    section_id: str
    question: str
    criticality: Criticality
    issue: str
    recommendation: str
    priority: int


class ScoringResult(BaseModel):
    overall_percentage: float
    category: ComplianceCategory
    passed: bool
    auto_failed: bool
    total_points: float
    achieved_points: float
    section_scores: List[SectionScore]
    red_flags: List[RedFlag]
    critical_failures: int
    major_issues: int
    minor_issues: int


class WhatIfResult(BaseModel):
    current: ScoringResult
    projected: ScoringResult
    improvement: float
    items_changed: List[str]


# ---------------------------------------------------------------------------
# PARSING
# ---------------------------------------------------------------------------


def parse_sections(raw: Any) -> List[Section]:
    if isinstance(raw, Mapping) and "sections" in raw:
        raw = raw["sections"]
    if not isinstance(raw, list):
        raise ScoringInputError("Template sections must be a list")
    try:
        sections = [Section.model_validate(section) for section in raw]
    except ValidationError as exc:
        raise ScoringInputError(f"Invalid template sections: {exc.errors()[0]['msg']}") from exc

    seen = set()
    for section in sections:
        for item in section.items:
            if item.id in seen:
                raise ScoringInputError(f"Duplicate checklist item id {item.id!r}")
            seen.add(item.id)
    return sections


def parse_rules(raw: Any) -> ScoringRules:
    if raw is None:
        return ScoringRules()
    try:
        return ScoringRules.model_validate(raw)
    except ValidationError as exc:
        raise ScoringInputError(f"Invalid scoring rules: {exc.errors()[0]['msg']}") from exc


def normalize_responses(raw: Any) -> Dict[str, Any]:
    """
    Accept `{item_id: value}` or `[{"item_id": ..., "value": ...}, ...]`.

    Duplicate item ids in the list form are rejected so the result does not
    depend on the order of the submitted responses.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return {str(key): value for key, value in raw.items()}
    if not isinstance(raw, list):
        raise ScoringInputError("Responses must be a mapping or a list")

    responses: Dict[str, Any] = {}
    for entry in raw:
        if not isinstance(entry, Mapping):
            raise ScoringInputError("Each response must be an object")
        item_id = entry.get("item_id", entry.get("itemId"))
        if item_id is None:
            raise ScoringInputError("Each response needs an item_id")
        item_id = str(item_id)
        if item_id in responses:
            raise ScoringInputError(f"Duplicate response for item {item_id!r}")
        responses[item_id] = entry.get("value")
    return responses


# ---------------------------------------------------------------------------
# SCORING
# ---------------------------------------------------------------------------


def _max_points(item: ChecklistItem, rules: ScoringRules) -> float:
    return item.weight if item.weight else rules.weight_for(item.criticality)


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _is_answered(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def _score_numeric(item: ChecklistItem, value: Any, max_points: float) -> Tuple[float, bool]:
    number = _as_float(value)
    if number is None:
        return 0.0, False

    if item.target_range is not None:
        low, high = item.target_range.min, item.target_range.max
        target = _as_float(item.target_value)
        if target is None:
            target = (low + high) / 2
        band = (high - low) / 2 * OPTIMAL_BAND
        if target - band <= number <= target + band:
            return max_points, True
        if low <= number <= high:
            return max_points * 0.5, False
        return 0.0, False

    target = _as_float(item.target_value)
    if target is None:
        return max_points, True
    if abs(number - target) <= abs(target) * OPTIMAL_BAND:
        return max_points, True
    return 0.0, False


def _matches_choice(value: Any, target: Any) -> bool:
    if isinstance(value, (list, tuple)) and isinstance(target, (list, tuple)):
        return sorted(map(str, value)) == sorted(map(str, target))
    return value == target


def calculate_item_score(item: ChecklistItem, value: Any, rules: ScoringRules) -> ItemScore:
    max_points = _max_points(item, rules)
    if not _is_answered(value):
        return ItemScore(points=0.0, max_points=max_points, compliant=False, answered=False)

    points, compliant = 0.0, False
    if item.response_type == ResponseType.YES_NO:
        if value is True or (isinstance(value, str) and value.strip().upper() == "YES"):
            points, compliant = max_points, True
    elif item.response_type == ResponseType.NUMERIC:
        points, compliant = _score_numeric(item, value, max_points)
    elif item.response_type in (ResponseType.DROPDOWN, ResponseType.MULTIPLE_CHOICE):
        if _matches_choice(value, item.target_value):
            points, compliant = max_points, True
    elif item.response_type == ResponseType.TEXT:
        if isinstance(value, str) and value.strip():
            points, compliant = max_points, True

    return ItemScore(points=points, max_points=max_points, compliant=compliant, answered=True)


def calculate_section_score(
    section: Section,
    responses: Mapping[str, Any],
    rules: ScoringRules,
) -> SectionScore:
    total = achieved = 0.0
    answered = compliant = 0
    for item in section.items:
        result = calculate_item_score(item, responses.get(item.id), rules)
        if not result.answered and not item.required:
            continue
        # A missing required answer still counts towards the total.
        total += result.max_points
        achieved += result.points
        answered += int(result.answered)
        compliant += int(result.compliant)

    percentage = round(achieved / total * 100, 2) if total > 0 else 0.0
    threshold = section.minimum_threshold
    if threshold is None:
        threshold = rules.passing_threshold
    # Nothing counted means nothing to fail.
    passed = total == 0 or percentage >= threshold
    return SectionScore(
        section_id=section.id,
        section_name=section.name,
        percentage=percentage,
        total_points=total,
        achieved_points=achieved,
        item_count=len(section.items),
        answered_items=answered,
        compliant_items=compliant,
        passed=passed,
    )


def _issue_description(item: ChecklistItem, value: Any) -> str:
    if item.response_type == ResponseType.YES_NO:
        return f"Failed compliance check: {item.question}"
    if item.response_type == ResponseType.NUMERIC:
        unit = f" {item.unit}" if item.unit else ""
        return f"Value {value}{unit} is outside the acceptable range"
    return f"Non-compliant response for: {item.question}"


def _recommendation(item: ChecklistItem) -> str:
    question = item.question.lower()
    if "doser" in question and "calibration" in question:
        return "Re-calibrate doser within 7 days and upload new calibration certificate"
    if "premix" in question and "storage" in question:
        return "Install temperature monitoring and ventilation. Verify storage conditions daily."
    if "qc" in question or "quality control" in question:
        return "Implement daily QC log and maintain for minimum 12 months"
    if "record" in question or "documentation" in question:
        return "Establish documentation procedures and train staff on record keeping requirements"
    return f"Review and address non-compliance for: {item.question}"


def detect_red_flags(
    sections: Iterable[Section],
    responses: Mapping[str, Any],
    rules: ScoringRules,
) -> List[RedFlag]:
    """Answered, non-compliant items whose criticality the rules flag."""
    flagged_levels = set(rules.red_flag_criticalities)
    flags: List[RedFlag] = []
    for section in sections:
        for item in section.items:
            if item.criticality not in flagged_levels:
                continue
            value = responses.get(item.id)
            result = calculate_item_score(item, value, rules)
            if not result.answered or result.compliant:
                continue
            flags.append(
                RedFlag(
                    item_id=item.id,
                    section_id=section.id,
                    question=item.question,
                    criticality=item.criticality,
                    issue=_issue_description(item, value),
                    recommendation=_recommendation(item),
                    priority=PRIORITY_BY_CRITICALITY[item.criticality],
                )
            )
    # Stable sort keeps template order within a priority.
    return sorted(flags, key=lambda flag: flag.priority)


def _category(percentage: float, rules: ScoringRules) -> ComplianceCategory:
    if percentage >= rules.excellent_threshold:
        return ComplianceCategory.EXCELLENT
    if percentage >= rules.good_threshold:
        return ComplianceCategory.GOOD
    if percentage >= rules.needs_improvement_threshold:
        return ComplianceCategory.NEEDS_IMPROVEMENT
    return ComplianceCategory.NON_COMPLIANT


def calculate_overall_score(
    sections: List[Section],
    responses: Mapping[str, Any],
    rules: ScoringRules,
) -> ScoringResult:
    section_scores = [calculate_section_score(section, responses, rules) for section in sections]
    total = sum(score.total_points for score in section_scores)
    achieved = sum(score.achieved_points for score in section_scores)
    percentage = round(achieved / total * 100, 2) if total > 0 else 0.0

    red_flags = detect_red_flags(sections, responses, rules)
    counts = {level: 0 for level in Criticality}
    for flag in red_flags:
        counts[flag.criticality] += 1

    auto_failed = rules.auto_fail_on_critical and counts[Criticality.CRITICAL] > 0
    category = ComplianceCategory.NON_COMPLIANT if auto_failed else _category(percentage, rules)
    passed = (
        not auto_failed
        and percentage >= rules.passing_threshold
        and all(score.passed for score in section_scores)
    )

    return ScoringResult(
        overall_percentage=percentage,
        category=category,
        passed=passed,
        auto_failed=auto_failed,
        total_points=total,
        achieved_points=achieved,
        section_scores=section_scores,
        red_flags=red_flags,
        critical_failures=counts[Criticality.CRITICAL],
        major_issues=counts[Criticality.MAJOR],
        minor_issues=counts[Criticality.MINOR],
    )


def what_if_analysis(
    sections: List[Section],
    responses: Mapping[str, Any],
    overrides: Mapping[str, Any],
    rules: ScoringRules,
) -> WhatIfResult:
    """
    Re-score with hypothetical answers merged over a copy of the responses.

    Overrides may also answer items that have no response yet. The caller's
    mapping is left untouched.
    """
    current = calculate_overall_score(sections, responses, rules)
    merged = dict(responses)
    merged.update(overrides)
    projected = calculate_overall_score(sections, merged, rules)
    return WhatIfResult(
        current=current,
        projected=projected,
        improvement=round(projected.overall_percentage - current.overall_percentage, 2),
        items_changed=sorted(overrides.keys()),
    )


def score_documents(
    sections_doc: Any,
    responses_doc: Any,
    rules_doc: Any,
) -> Tuple[List[Section], Dict[str, Any], ScoringRules, ScoringResult]:
    """Parse the stored JSON documents and score them in one call."""
    sections = parse_sections(sections_doc)
    responses = normalize_responses(responses_doc)
    rules = parse_rules(rules_doc)
    return sections, responses, rules, calculate_overall_score(sections, responses, rules)

from __future__ import annotations

import pytest

from fortifymis.apps.compliance import scoring
from fortifymis.apps.compliance.scoring import ComplianceCategory, Criticality


SECTIONS = [
    {
        "id": "premix",
        "name": "Premix handling",
        "items": [
            {
                "id": "storage",
                "question": "Is premix storage dry and ventilated?",
                "responseType": "YES_NO",
                "criticality": "CRITICAL",
            },
            {
                "id": "iron",
                "question": "Iron content of fortified flour",
                "responseType": "NUMERIC",
                "criticality": "MAJOR",
                "targetValue": 50,
                "targetRange": {"min": 40, "max": 60},
                "unit": "mg/kg",
            },
            {
                "id": "remarks",
                "question": "Supervisor remarks",
                "responseType": "TEXT",
                "criticality": "MINOR",
                "required": False,
            },
        ],
    }
]


def _score(responses, rules=None):
    sections = scoring.parse_sections(SECTIONS)
    return scoring.calculate_overall_score(sections, responses, scoring.parse_rules(rules))


def test_fully_compliant_audit_is_excellent():
    result = _score({"storage": "YES", "iron": 50.5, "remarks": "All good"})

    assert result.overall_percentage == 100.0
    assert result.category == ComplianceCategory.EXCELLENT
    assert result.passed is True
    assert result.red_flags == []
    assert result.total_points == 17


def test_numeric_inside_range_but_off_target_earns_half_points():
    result = _score({"storage": True, "iron": 45})

    # remarks is optional and unanswered, so it drops out of the total.
    assert result.total_points == 15
    assert result.achieved_points == 12.5
    assert result.overall_percentage == 83.33
    assert result.category == ComplianceCategory.GOOD
    assert result.major_issues == 1
    assert result.red_flags[0].item_id == "iron"
    assert result.red_flags[0].issue == "Value 45 mg/kg is outside the acceptable range"


def test_critical_failure_auto_fails_regardless_of_score():
    result = _score({"storage": "NO", "iron": 50})

    assert result.auto_failed is True
    assert result.category == ComplianceCategory.NON_COMPLIANT
    assert result.passed is False
    assert result.critical_failures == 1
    assert result.red_flags[0].priority == 1
    assert result.red_flags[0].recommendation == (
        "Install temperature monitoring and ventilation. Verify storage conditions daily."
    )


def test_auto_fail_can_be_disabled_by_rules():
    result = _score({"storage": "NO", "iron": 50}, rules={"autoFailOnCritical": False})

    assert result.auto_failed is False
    assert result.overall_percentage == 33.33
    assert result.category == ComplianceCategory.NON_COMPLIANT


def test_unanswered_required_item_counts_against_total():
    result = _score({"iron": 50})

    assert result.total_points == 15
    assert result.achieved_points == 5
    # Unanswered items are not red flags.
    assert result.critical_failures == 0


def test_what_if_projects_without_touching_responses():
    sections = scoring.parse_sections(SECTIONS)
    rules = scoring.parse_rules(None)
    responses = {"storage": "NO", "iron": 45}

    outcome = scoring.what_if_analysis(sections, responses, {"storage": "YES"}, rules)

    assert responses == {"storage": "NO", "iron": 45}
    assert outcome.current.auto_failed is True
    assert outcome.projected.overall_percentage == 83.33
    assert outcome.improvement == round(83.33 - outcome.current.overall_percentage, 2)
    assert outcome.items_changed == ["storage"]


def test_normalize_responses_accepts_list_form_and_rejects_duplicates():
    assert scoring.normalize_responses([{"itemId": "a", "value": 1}, {"item_id": "b", "value": "YES"}]) == {
        "a": 1,
        "b": "YES",
    }
    with pytest.raises(scoring.ScoringInputError):
        scoring.normalize_responses([{"item_id": "a", "value": 1}, {"item_id": "a", "value": 2}])


def test_parse_sections_rejects_duplicate_item_ids():
    duplicated = [
        {"id": "s1", "name": "One", "items": [{"id": "x", "question": "Q", "responseType": "TEXT"}]},
        {"id": "s2", "name": "Two", "items": [{"id": "x", "question": "Q", "responseType": "TEXT"}]},
    ]
    with pytest.raises(scoring.ScoringInputError):
        scoring.parse_sections(duplicated)


def test_section_threshold_overrides_passing_threshold():
    sections = scoring.parse_sections(
        [
            {
                "id": "docs",
                "name": "Documentation",
                "minimumThreshold": 95,
                "items": [
                    {"id": "log", "question": "QC log kept?", "responseType": "YES_NO", "criticality": "MAJOR"},
                    {"id": "sop", "question": "SOP posted?", "responseType": "YES_NO", "criticality": "MINOR"},
                ],
            }
        ]
    )
    rules = scoring.parse_rules({"redFlagCriticalities": ["CRITICAL", "MAJOR"]})

    result = scoring.calculate_overall_score(sections, {"log": "YES", "sop": "NO"}, rules)

    assert result.overall_percentage == 71.43
    assert result.section_scores[0].passed is False
    assert result.passed is False
    # MINOR failures are not flagged under these rules.
    assert result.red_flags == []
    assert result.minor_issues == 0
    assert Criticality.MINOR not in rules.red_flag_criticalities


def test_score_does_not_depend_on_response_order():
    sections = scoring.parse_sections(SECTIONS)
    rules = scoring.parse_rules(None)
    listed = [
        {"item_id": "storage", "value": "NO"},
        {"item_id": "iron", "value": 45},
        {"item_id": "remarks", "value": "Needs follow-up"},
    ]

    forward = scoring.calculate_overall_score(sections, scoring.normalize_responses(listed), rules)
    backward = scoring.calculate_overall_score(sections, scoring.normalize_responses(listed[::-1]), rules)

    assert forward == backward
    assert [flag.item_id for flag in forward.red_flags] == ["storage", "iron"]


def test_what_if_without_overrides_reproduces_the_score():
    sections = scoring.parse_sections(SECTIONS)
    rules = scoring.parse_rules(None)
    responses = {"storage": "YES", "iron": 45}

    outcome = scoring.what_if_analysis(sections, responses, {}, rules)

    assert outcome.projected == outcome.current
    assert outcome.current == scoring.calculate_overall_score(sections, responses, rules)
    assert outcome.improvement == 0
    assert outcome.items_changed == []


def test_section_with_nothing_to_count_does_not_fail_the_audit():
    sections = scoring.parse_sections(
        [
            {
                "id": "core",
                "name": "Core checks",
                "items": [
                    {
                        "id": "doser",
                        "question": "Is the doser running?",
                        "responseType": "YES_NO",
                        "criticality": "CRITICAL",
                    }
                ],
            },
            {
                "id": "extra",
                "name": "Extra notes",
                "items": [
                    {
                        "id": "notes",
                        "question": "Any other observations?",
                        "responseType": "TEXT",
                        "criticality": "MINOR",
                        "required": False,
                    }
                ],
            },
            {"id": "empty", "name": "Not yet written", "items": []},
        ]
    )

    result = scoring.calculate_overall_score(sections, {"doser": "YES"}, scoring.parse_rules(None))

    assert result.overall_percentage == 100.0
    assert result.category == ComplianceCategory.EXCELLENT
    assert [score.passed for score in result.section_scores] == [True, True, True]
    assert result.section_scores[1].total_points == 0
    assert result.passed is True

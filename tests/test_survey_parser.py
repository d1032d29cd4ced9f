import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from parsers.survey_parser import (
    NO_SUMMARY_WARNING,
    NO_TASKS_WARNING,
    SurveyParser,
    clean_lead,
    detect_condition_rating,
    detect_timeframe,
    parse_survey_text,
)

SURVEY_TEXT = """2.0 OVERALL SUMMARY OF THE PROPERTY
The property is in reasonable condition for its age.
We would recommend that the damaged roof tiles are replaced in the short term to prevent water ingress.

The electrical installation appears dated. We advise that a qualified electrician carries out an EICR as soon as possible.

3.0 GENERAL DESCRIPTION
The property is a two storey terraced house.

4.0 RISKS TO OCCUPANTS
Smoke alarms - no mains powered smoke alarms are fitted
5.0 OUTSIDE
"""


def test_summary_and_risk_tasks():
    result = parse_survey_text(SURVEY_TEXT)

    assert result.success
    assert result.warnings == []
    roof, electrics, smoke = result.records

    assert roof.title.startswith("the damaged roof tiles are replaced")
    assert roof.category == "Roof"
    assert roof.recommended_contractor == "Roofing contractor"
    assert (roof.timeframe, roof.priority) == ("Short term", "short")
    assert "ingress" in roof.impact
    assert roof.page_reference == "Summary"

    assert electrics.category == "Electrics"
    assert (electrics.timeframe, electrics.priority) == ("Immediate", "urgent")

    assert smoke.description == "Address risk - Smoke alarms"
    assert smoke.impact == "no mains powered smoke alarms are fitted"
    assert smoke.category == "Fire safety"
    assert smoke.condition_rating == 3
    assert smoke.confidence == 0.6

    assert result.metadata["byPriority"] == {"urgent": 2, "short": 1, "medium": 0, "long": 0}


def test_task_serialisation_includes_title():
    result = parse_survey_text(SURVEY_TEXT)
    data = result.records[0].to_dict()
    assert data["title"] == data["description"]
    assert data["pageReference"] == "Summary"


def test_missing_summary_is_success_with_warnings():
    result = SurveyParser().parse_text("Just some text without any headings at all.")

    assert result.success
    assert result.records == []
    assert NO_SUMMARY_WARNING in result.warnings
    assert NO_TASKS_WARNING in result.warnings


def test_duplicate_tasks_are_removed():
    parser = SurveyParser()
    task = parser.build_task("We recommend the gutters are cleared and realigned in the short term.", "Summary")
    copy = parser.build_task("We recommend the gutters are cleared and realigned in the short term.", "Summary")
    assert len(parser.deduplicate([task, copy])) == 1


def test_short_paragraphs_do_not_become_tasks():
    assert SurveyParser().build_task("Repair gutter.", "Summary") is None


def test_timeframe_and_condition_rules():
    assert detect_timeframe("Monitor the crack") == ("Monitor", "medium")
    assert detect_timeframe("Replace within 5 years") == ("Medium term", "medium")
    assert detect_timeframe("Nothing stated") == ("Short term", "short")
    assert detect_condition_rating("Condition rating 3 defect") == 3
    assert detect_condition_rating("needs repair") == 2
    assert detect_condition_rating("routine maintenance") == 1
    assert detect_condition_rating("no signal") is None


def test_clean_lead():
    assert clean_lead("We would recommend that the flue is inspected") == "the flue is inspected"
    assert clean_lead("You should replace the lock") == "replace the lock"

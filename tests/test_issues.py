"""Tests for issue detection across a registry."""

from flakescope.history.identity import RunIdentity
from flakescope.history.outcome import OutcomeCode
from flakescope.history.registry import HistoryRegistry
from flakescope.history.template import EventTemplate
from flakescope.issues import IssueDetector

OK = OutcomeCode.OK
FAIL = OutcomeCode.FAILURE

NEW_FAILURE = EventTemplate(
    before_event=["OK", "OK"],
    event_and_after=["FAILURE", "FAILURE"],
)
FIXED = EventTemplate(
    before_event=["FAILURE", "FAILURE"],
    event_and_after=["OK", "OK"],
)


def fill(registry, name, codes):
    record = registry.get_or_create(name)
    for build, code in enumerate(codes, start=1):
        record.record_test_outcome(RunIdentity(build, 7), code)
    return record


def test_templates_named_from_mapping_keys():
    detector = IssueDetector({"new_failure": NEW_FAILURE, "fixed": FIXED})

    assert [t.name for t in detector.templates] == ["new_failure", "fixed"]


def test_detect_all_reports_each_match():
    registry = HistoryRegistry()
    fill(registry, "b.Broken", [OK, OK, FAIL, FAIL])
    fill(registry, "a.Healthy", [OK] * 6)
    fill(registry, "c.Recovered", [FAIL, FAIL, OK, OK])

    issues = IssueDetector(
        {"new_failure": NEW_FAILURE, "fixed": FIXED}
    ).detect_all(registry)

    assert [(i.entity, i.template) for i in issues] == [
        ("b.Broken", "new_failure"),
        ("c.Recovered", "fixed"),
    ]
    assert issues[0].identity == RunIdentity(3, 7)
    assert str(issues[1]) == "fixed in c.Recovered at build 3"


def test_detect_in_reports_every_matching_template():
    registry = HistoryRegistry()
    record = fill(registry, "t", [OK, OK, FAIL, FAIL, OK, OK])

    issues = IssueDetector([
        NEW_FAILURE.model_copy(update={"name": "new"}),
        FIXED.model_copy(update={"name": "fixed"}),
    ]).detect_in(record)

    assert [(i.template, i.container_id) for i in issues] == [
        ("new", 3),
        ("fixed", 5),
    ]


def test_empty_registry_has_no_issues():
    assert IssueDetector([NEW_FAILURE]).detect_all(HistoryRegistry()) == []

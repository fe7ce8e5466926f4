"""Tests for template detection over run history windows."""

from flakescope.history.identity import RunIdentity
from flakescope.history.matcher import detect
from flakescope.history.outcome import OutcomeCode, TemplateCode
from flakescope.history.record import RunRecord
from flakescope.history.template import EventTemplate

OK = OutcomeCode.OK
FAIL = OutcomeCode.FAILURE
MUTED = OutcomeCode.MUTED_FAILURE
CRIT = OutcomeCode.CRITICAL_FAILURE
ANY = TemplateCode.OK_OR_FAILURE


def template(before, after, first=False, name="t"):
    return EventTemplate(
        name=name,
        before_event=before,
        event_and_after=after,
        should_be_first=first,
    )


def test_first_run_template_matches_untrimmed_history(make_record):
    record = make_record([FAIL, FAIL, OK], start_build=1)

    found = detect(record, template([], [FAIL, ANY], first=True))

    assert found == RunIdentity(1, 1)


def test_first_run_template_rejects_trimmed_history():
    """Codes still match positionally, but the first run was evicted."""
    record = RunRecord("test.Trimmed", capacity=3)
    record.record_test_outcome(RunIdentity(0, 1), OK)
    for build, code in [(1, FAIL), (2, FAIL), (3, OK)]:
        record.record_test_outcome(RunIdentity(build, 1), code)

    assert record.latest_results() == [FAIL, FAIL, OK]
    assert detect(record, template([], [FAIL, ANY], first=True)) is None


def test_first_run_template_only_tests_position_zero(make_record):
    record = make_record([OK, FAIL, FAIL])

    assert detect(record, template([], [FAIL, FAIL], first=True)) is None


def test_most_recent_match_wins(make_record):
    """[OK, FAIL, OK, FAIL, FAIL] with OK|FAIL anchors at index 3."""
    record = make_record([OK, FAIL, OK, FAIL, FAIL], start_build=10)

    found = detect(record, template([OK], [FAIL]))

    assert found == RunIdentity(13, 1)


def test_anchor_offset_is_length_of_before_event(make_record):
    record = make_record([OK, OK, FAIL, FAIL, FAIL], start_build=0)

    found = detect(record, template([OK, OK], [FAIL, FAIL, FAIL]))

    assert found == RunIdentity(2, 1)


def test_insufficient_history_is_not_found(make_record):
    record = make_record([FAIL, FAIL])

    assert detect(record, template([OK], [FAIL, FAIL])) is None


def test_empty_record_is_not_found():
    assert detect(RunRecord("test.Empty"), template([], [FAIL])) is None


def test_no_match_is_not_found(make_record):
    record = make_record([OK] * 10)

    assert detect(record, template([OK], [FAIL])) is None


def test_wildcard_matches_every_stored_code(make_record):
    record = make_record([OK, FAIL, MUTED, CRIT, FAIL], start_build=0)

    found = detect(record, template([ANY, ANY, ANY, ANY], [FAIL]))

    assert found == RunIdentity(4, 1)


def test_muted_failure_does_not_match_failure(make_record):
    record = make_record([OK, MUTED, MUTED])

    assert detect(record, template([OK], [FAIL, FAIL])) is None
    assert detect(record, template([OK], [MUTED, MUTED])) is not None


def test_critical_failure_pattern_on_builds():
    record = RunRecord("Suite")
    for build in range(1, 6):
        record.record_build_outcome(RunIdentity.for_build(build), True)
    for build in range(6, 10):
        record.mark_critical_failure(build)

    found = detect(
        record,
        template([OK] * 5, [CRIT] * 4, name="new_critical_failure"),
    )

    assert found == RunIdentity.for_build(6)


def test_pattern_spanning_whole_window(make_record):
    record = make_record([OK, FAIL], start_build=0)

    assert detect(record, template([OK], [FAIL])) == RunIdentity(1, 1)


def test_record_delegates_detection(make_record):
    record = make_record([OK, FAIL], start_build=0)

    assert record.detect_template(template([OK], [FAIL])) == RunIdentity(1, 1)

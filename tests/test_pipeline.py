import pytest
from conftest import FakeClassifier, make_session

from license_analyzer.pipeline import (
    AllClassificationsFailed,
    run_concurrency_analysis,
    run_entitlement_analysis,
)
from license_analyzer.services.dispatcher import NormalizationDispatcher


def test_entitlement_report(installation_rows, fake_classifier):
    messages = []
    report = run_entitlement_analysis(
        installation_rows,
        NormalizationDispatcher(fake_classifier, concurrency=2),
        status=messages.append,
    )

    assert not report.errors and not report.cancelled
    assert {g.software_name for g in report.raw_groups} == {
        "Docker Desktop 4.3.1",
        "Docker Desktop 4.2",
        "Visual Studio 2019",
    }
    summary = [(g.software_name, g.username, g.machine_count) for g in report.groups]
    assert summary == [("Visual Studio 2019", "alice", 2), ("Docker Desktop", "bob", 1)]
    assert [g.software_name for g in report.anomalies] == ["Visual Studio 2019"]
    assert len(messages) == 4
    assert "(100.0%) 4/4:" in messages[-1]


def test_failed_rows_are_reported_not_grouped(installation_rows):
    classifier = FakeClassifier(fail_on=lambda name: name.startswith("Docker"))
    messages = []
    report = run_entitlement_analysis(installation_rows, NormalizationDispatcher(classifier), status=messages.append)

    assert [g.software_name for g in report.groups] == ["Visual Studio 2019"]
    assert sorted(err.raw_software_name for err in report.errors) == ["Docker Desktop 4.2", "Docker Desktop 4.3.1"]
    assert "Encountered 2 errors during processing" in messages


def test_all_failed_raises(installation_rows):
    classifier = FakeClassifier(fail_on=lambda name: True)
    with pytest.raises(AllClassificationsFailed) as excinfo:
        run_entitlement_analysis(installation_rows, NormalizationDispatcher(classifier))
    assert len(excinfo.value.errors) == 4
    assert "all 4 rows failed" in str(excinfo.value)


def test_concurrency_report():
    sessions = [
        make_session("MATLAB", "2024-03-01 09:00", "2024-03-01 11:00"),
        make_session("MATLAB", "2024-03-01 10:00", "2024-03-01 12:00"),
        make_session("MATLAB", "2024-03-02 09:00", "2024-03-02 09:30"),
        make_session("MATLAB", None, "2024-03-02 09:30"),
    ]
    messages = []
    report = run_concurrency_analysis(sessions, status=messages.append)

    assert report.session_count == 3
    assert report.dropped == 1
    assert [(p.date.day, p.peak_users) for p in report.daily_peaks] == [(1, 2), (2, 1)]
    assert [(p.software_name, p.peak_users) for p in report.software_peaks] == [("MATLAB", 2)]
    assert messages[0] == "Skipping 1 sessions without a readable login time"
    assert messages[-1] == "Analysis complete!"

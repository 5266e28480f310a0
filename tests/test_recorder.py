from __future__ import annotations

import itertools
import random
import threading
from datetime import datetime, timezone

import pytest

from event_scoring.errors import (
    DuplicateEvaluation,
    IncompleteCriteria,
    InvalidScore,
    UnknownReference,
)
from event_scoring.notifications import Severity
from event_scoring.recorder import EvaluationRecorder, restrictions_by_judge
from tests.conftest import SCORES_760, SCORES_820, scores


def test_submit_computes_rounded_mean(recorder, judge, contestant) -> None:
    evaluation = recorder.submit(judge.id, contestant.id, SCORES_760)

    assert evaluation is not None
    assert evaluation.total_score == 7.6
    assert evaluation.category == "color"
    assert evaluation.judge_name == "Judge One"
    assert evaluation.contestant_name == "Ana Ruiz"
    assert evaluation.criteria_scores == {k: float(v) for k, v in SCORES_760.items()}


def test_total_score_rounds_half_up(recorder, judge, contestant) -> None:
    # 0.125 is exact in binary; round() would give 0.12
    evaluation = recorder.admit(judge.id, contestant.id, scores(0.125))
    assert evaluation.total_score == 0.13


def test_second_submission_same_category_is_duplicate(recorder, store, judge, contestant, notifier) -> None:
    recorder.submit(judge.id, contestant.id, SCORES_760)

    with pytest.raises(DuplicateEvaluation) as excinfo:
        recorder.admit(judge.id, contestant.id, SCORES_820)

    assert excinfo.value.judge_name == "Judge One"
    assert excinfo.value.contestant_name == "Ana Ruiz"
    assert excinfo.value.category == "Color"
    assert len(store.evaluations) == 1

    notifier.drain()
    assert recorder.submit(judge.id, contestant.id, SCORES_820) is None
    severity, message = notifier.drain()[-1]
    assert severity == Severity.ERROR
    assert "already evaluated Ana Ruiz" in message


def test_unknown_references_are_rejected(recorder, judge, contestant) -> None:
    with pytest.raises(UnknownReference):
        recorder.admit("missing", contestant.id, SCORES_760)
    with pytest.raises(UnknownReference):
        recorder.admit(judge.id, "missing", SCORES_760)


def test_unknown_reference_wins_over_bad_scores(recorder, contestant) -> None:
    with pytest.raises(UnknownReference):
        recorder.admit("missing", contestant.id, {})


def test_duplicate_wins_over_incomplete_criteria(recorder, judge, contestant) -> None:
    recorder.admit(judge.id, contestant.id, SCORES_760)
    with pytest.raises(DuplicateEvaluation):
        recorder.admit(judge.id, contestant.id, {"technique": 0})


@pytest.mark.parametrize("criterion", sorted(SCORES_760))
def test_missing_criterion_is_incomplete(recorder, store, judge, contestant, criterion) -> None:
    partial = {k: v for k, v in SCORES_760.items() if k != criterion}
    with pytest.raises(IncompleteCriteria) as excinfo:
        recorder.admit(judge.id, contestant.id, partial)
    assert criterion in excinfo.value.message
    assert store.evaluations == []


def test_non_numeric_criterion_is_incomplete(recorder, judge, contestant) -> None:
    bad = dict(SCORES_760, color="eight")
    with pytest.raises(IncompleteCriteria):
        recorder.admit(judge.id, contestant.id, bad)
    with pytest.raises(IncompleteCriteria):
        recorder.admit(judge.id, contestant.id, dict(SCORES_760, color=None))


def test_missing_criterion_reported_before_zero_score(recorder, judge, contestant) -> None:
    partial = {"technique": 0, "creativity": 5}
    with pytest.raises(IncompleteCriteria):
        recorder.admit(judge.id, contestant.id, partial)


@pytest.mark.parametrize("value", [0, -1, -0.1, 10.1])
def test_out_of_range_scores_are_invalid(recorder, store, judge, contestant, value) -> None:
    with pytest.raises(InvalidScore):
        recorder.admit(judge.id, contestant.id, dict(SCORES_760, difficulty=value))
    assert store.evaluations == []


def test_extra_criteria_are_ignored(recorder, judge, contestant) -> None:
    evaluation = recorder.admit(judge.id, contestant.id, dict(SCORES_760, lighting=3))
    assert "lighting" not in evaluation.criteria_scores


def test_submit_notifies_success_and_persists(recorder, judge, contestant, notifier, persistence) -> None:
    notifier.drain()
    before = persistence.persist_count

    recorder.submit(judge.id, contestant.id, SCORES_760)

    assert notifier.drain() == [(Severity.SUCCESS, "Evaluation saved")]
    assert persistence.persist_count == before + 1
    assert len(persistence.load().evaluations) == 1


def test_same_judge_may_evaluate_other_contestants(recorder, judge, contestant, other_contestant) -> None:
    assert recorder.submit(judge.id, contestant.id, SCORES_760) is not None
    assert recorder.submit(judge.id, other_contestant.id, SCORES_760) is not None


def test_already_evaluated(recorder, judge, second_judge, contestant) -> None:
    assert not recorder.already_evaluated(judge.id, contestant.id)
    recorder.submit(judge.id, contestant.id, SCORES_760)
    assert recorder.already_evaluated(judge.id, contestant.id)
    assert not recorder.already_evaluated(second_judge.id, contestant.id)
    assert not recorder.already_evaluated(judge.id, "missing")


def test_random_submissions_never_admit_duplicates(store, recorder) -> None:
    judges = [store.register_judge(f"Judge {i}", f"j{i}@example.com", 2) for i in range(4)]
    contestants = [
        store.register_contestant(f"Artist {i}", "color" if i % 2 else "lettering", f"a{i}@example.com", "600000000")
        for i in range(5)
    ]
    rng = random.Random(7)
    for _ in range(200):
        judge = rng.choice(judges)
        contestant = rng.choice(contestants)
        value = rng.choice([0, 0.5, 3.3, 7.0, 10.0])
        recorder.submit(judge.id, contestant.id, scores(value))

    triples = [(e.judge_id, e.contestant_id, e.category) for e in store.evaluations]
    assert len(triples) == len(set(triples))
    assert all(all(v > 0 for v in e.criteria_scores.values()) for e in store.evaluations)
    assert len(store.evaluations) <= len(list(itertools.product(judges, contestants)))


def test_restrictions_grouped_by_judge(recorder, judge, second_judge, contestant, other_contestant) -> None:
    recorder.submit(judge.id, contestant.id, SCORES_760)
    recorder.submit(judge.id, other_contestant.id, SCORES_820)
    recorder.submit(second_judge.id, contestant.id, SCORES_820)

    assert restrictions_by_judge(recorder.store.evaluations) == {
        "Judge One": [("Ana Ruiz", "color"), ("Bruno Diaz", "blackwork")],
        "Judge Two": [("Ana Ruiz", "color")],
    }


def test_judge_deleted_during_admission_leaves_no_orphans(store, notifier, judge, contestant) -> None:
    deleter = threading.Thread(target=store.delete_judge, args=(judge.id,))

    def clock():
        # runs after the checks and before the append
        deleter.start()
        deleter.join(timeout=0.2)
        return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    evaluation = EvaluationRecorder(store, notifier, clock=clock).submit(judge.id, contestant.id, SCORES_760)
    deleter.join(timeout=5)

    assert evaluation is not None
    assert not deleter.is_alive()
    assert store.find_judge(judge.id) is None
    assert [e for e in store.evaluations if e.judge_id == judge.id] == []


def test_concurrent_submissions_admit_one_evaluation(store, recorder, judge, contestant) -> None:
    barrier = threading.Barrier(8)

    def submit():
        barrier.wait()
        recorder.submit(judge.id, contestant.id, SCORES_760)

    threads = [threading.Thread(target=submit) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert len(store.evaluations) == 1

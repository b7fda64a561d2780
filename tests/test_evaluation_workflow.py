import unittest
from unittest.mock import patch

from sqlalchemy import func, select

from hackeval.db.engine import get_sessionmaker, make_engine
from hackeval.errors import ConflictError, ErrorCode, NotFoundError, ValidationError
from hackeval.models import (
    Base,
    Evaluation,
    EvaluationCriterion,
    EvaluationScore,
    Submission,
    Team,
    User,
    UserRole,
)
from hackeval.scoring import ScoreEntry
from hackeval.workflows import (
    list_evaluations_for_evaluator,
    list_evaluations_for_submission,
    submit_evaluation,
)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)
        return True


class EvaluationWorkflowTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)

        with self.Session.begin() as session:
            team = Team(name="Falcons", theme="Healthcare")
            session.add(team)
            session.flush()
            submission = Submission(team_id=team.id, title="Pulse")
            crit_a = EvaluationCriterion(name="Innovation", weight=60)
            crit_b = EvaluationCriterion(name="Execution", weight=40)
            eval_1 = User("Eve One", "eve1@example.com", UserRole.EVALUATOR, password="pw")
            eval_2 = User("Eve Two", "eve2@example.com", UserRole.EVALUATOR, password="pw")
            participant = User("Pat", "pat@example.com", password="pw")
            session.add_all([submission, crit_a, crit_b, eval_1, eval_2, participant])
            session.flush()
            self.submission_id = submission.id
            self.crit_a, self.crit_b = crit_a.id, crit_b.id
            self.eval_1, self.eval_2 = eval_1.id, eval_2.id
            self.participant = participant.id

    def tearDown(self):
        self.engine.dispose()

    def scores(self, a, b):
        return [
            {"criterionId": self.crit_a, "score": a},
            {"criterionId": self.crit_b, "score": b},
        ]

    def count(self, model, *where) -> int:
        with self.Session() as session:
            stmt = select(func.count()).select_from(model)
            if where:
                stmt = stmt.where(*where)
            return session.scalar(stmt)

    def test_two_evaluators_and_a_resubmission(self):
        first = submit_evaluation(self.Session, self.eval_1, self.submission_id, self.scores(80, 70))
        self.assertAlmostEqual(first.total, 76.0)
        self.assertTrue(first.created)

        second = submit_evaluation(self.Session, self.eval_2, self.submission_id, self.scores(90, 90))
        self.assertAlmostEqual(second.total, 90.0)

        again = submit_evaluation(
            self.Session, self.eval_1, self.submission_id, self.scores(100, 100), "Great"
        )
        self.assertAlmostEqual(again.total, 100.0)
        self.assertFalse(again.created)
        self.assertEqual(again.evaluation_id, first.evaluation_id)

        self.assertEqual(self.count(Evaluation), 2)
        for evaluation_id in (first.evaluation_id, second.evaluation_id):
            self.assertEqual(
                self.count(EvaluationScore, EvaluationScore.evaluation_id == evaluation_id), 2
            )
        with self.Session() as session:
            stored = session.get(Evaluation, first.evaluation_id)
            self.assertAlmostEqual(stored.total_score, 100.0)
            self.assertEqual(stored.comments, "Great")
            self.assertEqual([s.score for s in stored.scores], [100.0, 100.0])

    def test_identical_resubmission_is_idempotent(self):
        for _ in range(2):
            submit_evaluation(self.Session, self.eval_1, self.submission_id, self.scores(50, 60))
        self.assertEqual(self.count(Evaluation), 1)
        self.assertEqual(self.count(EvaluationScore), 2)

    def test_resubmission_with_fewer_scores_leaves_no_stale_rows(self):
        submit_evaluation(self.Session, self.eval_1, self.submission_id, self.scores(80, 70))
        result = submit_evaluation(
            self.Session,
            self.eval_1,
            self.submission_id,
            [ScoreEntry(self.crit_a, 80)],
        )
        # only a 60-weight criterion matched, so the total is rescaled
        self.assertAlmostEqual(result.total, 80.0)
        self.assertEqual(self.count(EvaluationScore), 1)

    def test_unknown_criteria_are_ignored(self):
        with self.assertLogs("hackeval.scoring.engine", level="WARNING"):
            result = submit_evaluation(
                self.Session,
                self.eval_1,
                self.submission_id,
                self.scores(80, 70) + [(999, 100)],
            )
        self.assertAlmostEqual(result.total, 76.0)
        self.assertEqual(self.count(EvaluationScore), 2)

    def test_comments_can_be_cleared(self):
        submit_evaluation(self.Session, self.eval_1, self.submission_id, self.scores(1, 2), "first")
        submit_evaluation(self.Session, self.eval_1, self.submission_id, self.scores(1, 2))
        with self.Session() as session:
            self.assertIsNone(session.scalars(select(Evaluation)).one().comments)

    def test_invalid_score_sets(self):
        invalid = [
            [],
            "80,70",
            [{"criterionId": self.crit_a, "score": "80"}],
            [{"criterionId": self.crit_a, "score": 1}, {"criterionId": self.crit_a, "score": 2}],
            [object()],
        ]
        for scores in invalid:
            with self.assertRaises(ValidationError) as ctx:
                submit_evaluation(self.Session, self.eval_1, self.submission_id, scores)
            self.assertEqual(ctx.exception.code, ErrorCode.INVALID_EVALUATION)
        self.assertEqual(self.count(Evaluation), 0)

    def test_unknown_submission(self):
        with self.assertRaises(NotFoundError) as ctx:
            submit_evaluation(self.Session, self.eval_1, 404, self.scores(1, 1))
        self.assertEqual(ctx.exception.code, ErrorCode.SUBMISSION_NOT_FOUND)

    def test_evaluator_must_be_a_live_evaluator_account(self):
        for evaluator_id in (404, self.participant):
            with self.assertRaises(NotFoundError) as ctx:
                submit_evaluation(self.Session, evaluator_id, self.submission_id, self.scores(1, 1))
            self.assertEqual(ctx.exception.code, ErrorCode.EVALUATOR_NOT_FOUND)

        with self.Session.begin() as session:
            session.get(User, self.eval_2).deleted = True
        with self.assertRaises(NotFoundError):
            submit_evaluation(self.Session, self.eval_2, self.submission_id, self.scores(1, 1))
        self.assertEqual(self.count(Evaluation), 0)

    def test_lost_insert_race_is_retried_as_update(self):
        submit_evaluation(self.Session, self.eval_1, self.submission_id, self.scores(10, 10))

        original = Evaluation.get_by_submission_and_evaluator
        calls = []

        def stale_then_real(session, submission_id, evaluator_id, *, lock=False):
            calls.append(lock)
            if len(calls) == 1:
                return None  # row committed by a concurrent request after our lookup
            return original(session, submission_id, evaluator_id, lock=lock)

        with patch.object(
            Evaluation, "get_by_submission_and_evaluator", side_effect=stale_then_real
        ):
            result = submit_evaluation(
                self.Session, self.eval_1, self.submission_id, self.scores(80, 70)
            )

        self.assertEqual(len(calls), 2)
        self.assertFalse(result.created)
        self.assertAlmostEqual(result.total, 76.0)
        self.assertEqual(self.count(Evaluation), 1)
        self.assertEqual(self.count(EvaluationScore), 2)

    def test_race_lost_on_every_attempt_is_a_conflict(self):
        submit_evaluation(self.Session, self.eval_1, self.submission_id, self.scores(10, 10))
        with patch.object(Evaluation, "get_by_submission_and_evaluator", return_value=None):
            with self.assertRaises(ConflictError) as ctx:
                submit_evaluation(
                    self.Session, self.eval_1, self.submission_id, self.scores(80, 70)
                )
        self.assertEqual(ctx.exception.code, ErrorCode.EVALUATION_CONFLICT)
        with self.Session() as session:
            self.assertAlmostEqual(
                session.scalars(select(Evaluation)).one().total_score, 10.0
            )

    def test_event_published_after_commit(self):
        notifier = RecordingNotifier()
        result = submit_evaluation(
            self.Session, self.eval_1, self.submission_id, self.scores(80, 70), notifier=notifier
        )
        self.assertEqual(len(notifier.events), 1)
        event = notifier.events[0]
        self.assertEqual(event.type, "evaluation.submitted")
        self.assertEqual(event.payload["evaluation_id"], result.evaluation_id)
        self.assertAlmostEqual(event.payload["total"], 76.0)

    def test_read_helpers(self):
        submit_evaluation(self.Session, self.eval_1, self.submission_id, self.scores(80, 70))
        submit_evaluation(self.Session, self.eval_2, self.submission_id, self.scores(90, 90))

        with self.Session() as session:
            by_submission = list_evaluations_for_submission(session, self.submission_id)
            self.assertEqual([e.evaluator_id for e in by_submission], [self.eval_1, self.eval_2])
            mine = list_evaluations_for_evaluator(session, self.eval_2)
            self.assertEqual(len(mine), 1)
            data = mine[0].to_json()

        self.assertAlmostEqual(data["total_score"], 90.0)
        self.assertEqual(
            [(s["criterion"], s["weight"], s["score"]) for s in data["scores"]],
            [("Innovation", 60, 90.0), ("Execution", 40, 90.0)],
        )


if __name__ == "__main__":
    unittest.main()

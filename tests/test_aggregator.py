from datetime import date, datetime, timedelta

import pytest

from reviewer_roulette.aggregator import AggregatorService
from reviewer_roulette.database import Database
from reviewer_roulette.metrics_repository import MetricsRepository
from reviewer_roulette.models import MRReview, MRStatus, ReviewerAssignment, ReviewerRole, User
from reviewer_roulette.review_repository import ReviewRepository
from reviewer_roulette.user_repository import UserRepository

DAY = datetime(2024, 1, 15, 12, 0, 0)
START_OF_DAY = datetime(2024, 1, 15)


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.auto_migrate()
    yield database
    database.close()


@pytest.fixture
def review_repo(db):
    return ReviewRepository(db)


@pytest.fixture
def metrics_repo(db):
    return MetricsRepository(db)


def _user(db, gitlab_id, username, team, role="dev"):
    return UserRepository(db).create(
        User(
            gitlab_id=gitlab_id,
            username=username,
            email=f"{username}@example.com",
            role=role,
            team=team,
        )
    )


def _review(review_repo, iid, project_id, team, status, **times):
    return review_repo.create_mr_review(
        MRReview(
            gitlab_mr_iid=iid,
            gitlab_project_id=project_id,
            mr_url=f"https://gitlab.example.com/project/mr/{iid}",
            mr_title=f"Test MR {iid}",
            team=team,
            status=status,
            **times,
        )
    )


def _assign(review_repo, review, user, role, count, length, **times):
    return review_repo.create_assignment(
        ReviewerAssignment(
            mr_review_id=review.id,
            user_id=user.id,
            role=role.value,
            comment_count=count,
            comment_length=length,
            **times,
        )
    )


def test_no_reviews_creates_nothing(review_repo, metrics_repo):
    service = AggregatorService(review_repo, metrics_repo)
    day = datetime(2024, 1, 15)
    service.aggregate_daily(day)
    assert metrics_repo.get_by_date_range(day, day) == []


def test_team_metrics(db, review_repo, metrics_repo):
    alice = _user(db, 1, "alice", "team-frontend")
    bob = _user(db, 2, "bob", "team-frontend")
    review = _review(
        review_repo,
        1,
        100,
        "team-frontend",
        MRStatus.MERGED.value,
        roulette_triggered_at=DAY - timedelta(hours=2),
        first_review_at=DAY - timedelta(hours=1),
        approved_at=DAY - timedelta(minutes=30),
        merged_at=DAY,
    )
    _assign(review_repo, review, alice, ReviewerRole.CODEOWNER, 5, 500)
    _assign(review_repo, review, bob, ReviewerRole.TEAM_MEMBER, 3, 300)

    AggregatorService(review_repo, metrics_repo).aggregate_daily(DAY)

    team = metrics_repo.get_by_date(START_OF_DAY, "team-frontend", None)
    assert team.total_reviews == 1
    assert team.completed_reviews == 1
    assert team.avg_ttfr == 60
    assert team.avg_time_to_approval == 90
    assert team.avg_comment_count == 8.0
    assert team.avg_comment_length == 800.0
    assert team.engagement_score is not None and team.engagement_score > 0.0


def test_user_metrics(db, review_repo, metrics_repo):
    alice = _user(db, 1, "alice", "team-frontend")
    triggered = DAY - timedelta(hours=2)
    review = _review(
        review_repo,
        1,
        100,
        "team-frontend",
        MRStatus.MERGED.value,
        roulette_triggered_at=triggered,
        merged_at=DAY,
    )
    _assign(
        review_repo,
        review,
        alice,
        ReviewerRole.CODEOWNER,
        5,
        500,
        assigned_at=triggered,
        first_comment_at=triggered + timedelta(minutes=30),
        approved_at=triggered + timedelta(hours=1),
    )

    AggregatorService(review_repo, metrics_repo).aggregate_daily(DAY)

    user_metrics = metrics_repo.get_metrics_by_user(alice.id, START_OF_DAY, START_OF_DAY)
    assert len(user_metrics) == 1
    metric = user_metrics[0]
    assert metric.total_reviews == 1
    assert metric.completed_reviews == 1
    assert metric.avg_ttfr == 30
    assert metric.avg_time_to_approval == 60
    assert metric.avg_comment_count == 5.0
    assert metric.avg_comment_length == 500.0
    assert metric.project_id == 100


def test_engagement_scorer_is_used_for_user_metrics(db, review_repo, metrics_repo):
    alice = _user(db, 1, "alice", "team-frontend")
    review = _review(review_repo, 1, 100, "team-frontend", MRStatus.MERGED.value, merged_at=DAY)
    _assign(review_repo, review, alice, ReviewerRole.CODEOWNER, 5, 500)
    calls = []

    def scorer(assignment, scored_review):
        calls.append((assignment.user_id, scored_review.id))
        return 42.5

    AggregatorService(review_repo, metrics_repo, scorer).aggregate_daily(DAY)

    metric = metrics_repo.get_metrics_by_user(alice.id, START_OF_DAY, START_OF_DAY)[0]
    assert metric.engagement_score == 42.5
    assert calls == [(alice.id, review.id)]


def test_multiple_teams(db, review_repo, metrics_repo):
    alice = _user(db, 1, "alice", "team-frontend")
    bob = _user(db, 2, "bob", "team-platform", role="ops")
    review1 = _review(review_repo, 1, 100, "team-frontend", MRStatus.MERGED.value, merged_at=DAY)
    review2 = _review(review_repo, 2, 101, "team-platform", MRStatus.MERGED.value, merged_at=DAY)
    _assign(review_repo, review1, alice, ReviewerRole.CODEOWNER, 5, 500)
    _assign(review_repo, review2, bob, ReviewerRole.CODEOWNER, 3, 300)

    AggregatorService(review_repo, metrics_repo).aggregate_daily(DAY)

    assert metrics_repo.get_by_date(START_OF_DAY, "team-frontend", None).total_reviews == 1
    assert metrics_repo.get_by_date(START_OF_DAY, "team-platform", None).total_reviews == 1


def test_idempotency(db, review_repo, metrics_repo):
    alice = _user(db, 1, "alice", "team-frontend")
    review = _review(review_repo, 1, 100, "team-frontend", MRStatus.MERGED.value, merged_at=DAY)
    _assign(review_repo, review, alice, ReviewerRole.CODEOWNER, 5, 500)
    service = AggregatorService(review_repo, metrics_repo)

    service.aggregate_daily(DAY)
    service.aggregate_daily(DAY)

    team_metrics = metrics_repo.get_metrics_by_team("team-frontend", START_OF_DAY, START_OF_DAY)
    assert sum(1 for m in team_metrics if m.user_id is None) == 1
    assert len(metrics_repo.get_metrics_by_user(alice.id, START_OF_DAY, START_OF_DAY)) == 1


def test_closed_but_not_merged(db, review_repo, metrics_repo):
    alice = _user(db, 1, "alice", "team-frontend")
    review = _review(review_repo, 1, 100, "team-frontend", MRStatus.CLOSED.value, closed_at=DAY)
    _assign(review_repo, review, alice, ReviewerRole.CODEOWNER, 2, 200)

    AggregatorService(review_repo, metrics_repo).aggregate_daily(DAY)

    team = metrics_repo.get_by_date(START_OF_DAY, "team-frontend", None)
    assert team.total_reviews == 1
    assert team.completed_reviews == 0


def test_accepts_plain_date_and_ignores_other_days(db, review_repo, metrics_repo):
    alice = _user(db, 1, "alice", "team-frontend")
    review = _review(review_repo, 1, 100, "team-frontend", MRStatus.MERGED.value, merged_at=DAY)
    _assign(review_repo, review, alice, ReviewerRole.CODEOWNER, 1, 10)
    service = AggregatorService(review_repo, metrics_repo)

    service.aggregate_daily(date(2024, 1, 16))
    assert metrics_repo.get_metrics_by_team("team-frontend", date(2024, 1, 1), date(2024, 1, 31)) == []

    service.aggregate_daily(date(2024, 1, 15))
    stored = metrics_repo.get_metrics_by_team("team-frontend", date(2024, 1, 15), date(2024, 1, 15))
    assert len(stored) == 2
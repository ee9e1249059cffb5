# reviewer-roulette

A library for the bookkeeping side of a merge request reviewer roulette: a SQLAlchemy data
model for users, reviews, reviewer assignments, out-of-office periods and badges;
repositories that store and query them; a daily aggregator that turns completed reviews
into review metrics; translated bot messages; and a Mattermost webhook client.

## Installation

```
pip install .
pip install ".[test]"   # with pytest
```

The only runtime dependency is SQLAlchemy 2.

## Storage

`reviewer_roulette.database.Database` wraps a SQLAlchemy engine. It takes any SQLAlchemy
URL (the default, `sqlite://`, is an in-memory database) and `auto_migrate()` creates the
tables. For SQLite, foreign key checks are switched on. `health()` runs a trivial query and
`close()` disposes of the engine; the database can also be used as a context manager.

```python
from reviewer_roulette.database import Database
from reviewer_roulette.models import User
from reviewer_roulette.user_repository import UserRepository

with Database("sqlite:///:memory:") as db:
    db.auto_migrate()
    users = UserRepository(db)
    users.create(User(gitlab_id=1, username="alice", email="alice@example.com",
                      role="dev", team="team-frontend"))
    print(users.get_by_username("alice").team)   # team-frontend
```

Lookups of a single record that find nothing raise
`reviewer_roulette.database.NotFoundError` (a `LookupError`).

The models live in `reviewer_roulette.models`: `User`, `OOOStatus`, `Badge`, `UserBadge`,
`Configuration`, `MRReview`, `ReviewerAssignment` and `ReviewMetrics`, with the enums
`MRStatus` and `ReviewerRole`. `BadgeCriteria` reads and writes the JSON rule stored on a
badge (`from_json`, `to_json`).

The repositories are:

- `user_repository.UserRepository`: users by id, GitLab id, username, team and role;
  `create_or_update` matches on GitLab id first, then on username.
- `badge_repository.BadgeRepository`: badges, awarding (awarding twice does nothing),
  revoking, holders and counts, recent awards.
- `ooo_repository.OOORepository`: out-of-office periods and whether a user is away now.
- `review_repository.ReviewRepository`: merge request reviews and reviewer assignments,
  active and pending reviews, completed reviews in a period, summary statistics.
- `metrics_repository.MetricsRepository`: daily review metrics per team and per user,
  averages, top reviewers by engagement, daily totals.

## Daily aggregation

```python
from datetime import datetime
from reviewer_roulette.aggregator import AggregatorService

service = AggregatorService(review_repo, metrics_repo, engagement_scorer)
service.aggregate_daily(datetime(2024, 1, 15))
```

The aggregator takes the reviews merged or closed on that day and writes one team-level
record per team and one user-level record per assignment. Times are stored in whole
minutes. Running it again for the same day updates those records rather than adding new
ones. `engagement_scorer` is an optional callable `(assignment, review) -> float` used for
the user-level engagement score; without it that score is left empty.

## Messages

```python
from reviewer_roulette.i18n import Translator

t = Translator("fr")
t.format_active_reviews(3)        # " (3 reviews actives)"
t.from_team_message("team-api")   # "de team-api"
```

English (`en`) and French (`fr`) are bundled; any other language falls back to English.
Messages may hold `{{.Field}}` placeholders, filled from a mapping passed to `get`.
An unknown key is returned as is by `get`, and replaced by the given fallback in
`get_with_fallback`.

## Mattermost

```python
from reviewer_roulette.mattermost import MattermostClient, ReviewerSelection

client = MattermostClient("https://chat.example.com/hooks/placeholder", channel="reviews")
client.send_roulette_result(42, 7, "https://gitlab.example.com/group/project/-/merge_requests/7",
                            [ReviewerSelection(username="alice", role="codeowner")])
```

A disabled client sends nothing and its send methods return `False`. A failed send, or
any reply other than HTTP 200, raises `MattermostError`. `format_daily_reminder` and
`format_roulette_result` build the message texts without sending them.

## What this package does not do

It is a library only. It has no command-line tool, no web server to receive GitLab
webhooks, no GitLab API client, no scheduler that runs the aggregation or the reminders,
and no metrics exporter. Applications wire these pieces together themselves.
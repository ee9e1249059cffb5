from concurrent.futures import ThreadPoolExecutor

import pytest

from reviewer_roulette.i18n import Translator, flatten_map, load_translations, render_template

EXPECTED_KEYS = [
    "roulette.title",
    "roulette.codeowner",
    "roulette.team_member",
    "roulette.external",
    "roulette.active_reviews",
    "roulette.active_reviews_plural",
    "roulette.from_team",
    "warnings.no_team_label",
    "warnings.no_codeowners",
    "warnings.limited_availability",
    "warnings.no_team_members",
    "warnings.no_external_reviewers",
    "errors.selection_failed",
    "errors.invalid_command",
    "errors.webhook_processing",
]


@pytest.fixture
def en():
    return Translator("en")


@pytest.fixture
def fr():
    return Translator("fr")


@pytest.mark.parametrize(
    "lang, expected",
    [("en", "en"), ("fr", "fr"), ("", "en"), ("es", "en"), ("invalid", "en")],
)
def test_new(lang, expected):
    translator = Translator(lang)
    assert translator.lang == expected
    assert translator.get("roulette.title") != "roulette.title"


@pytest.mark.parametrize(
    "key, data, expected",
    [
        ("roulette.title", None, "🎲 Reviewer Roulette Results"),
        ("roulette.from_team", {"Team": "team-frontend"}, "from team-frontend"),
        ("nonexistent.key", None, "nonexistent.key"),
        (
            "errors.selection_failed",
            {"Error": "no reviewers found"},
            "❌ Roulette Error\n\nFailed to select reviewers: no reviewers found",
        ),
        ("roulette.from_team", None, "from {{.Team}}"),
    ],
)
def test_get(en, key, data, expected):
    assert en.get(key, data) == expected


@pytest.mark.parametrize(
    "key, fallback, data, expected",
    [
        ("roulette.title", "Fallback Title", None, "🎲 Reviewer Roulette Results"),
        ("nonexistent.key", "Custom Fallback", None, "Custom Fallback"),
        ("roulette.from_team", "Fallback", {"Team": "team-backend"}, "from team-backend"),
        ("missing.key", "Default Value", {"Foo": "bar"}, "Default Value"),
    ],
)
def test_get_with_fallback(en, key, fallback, data, expected):
    assert en.get_with_fallback(key, fallback, data) == expected


@pytest.mark.parametrize(
    "count, data, expected",
    [
        (1, None, "1 active review"),
        (0, None, "0 active reviews"),
        (2, None, "2 active reviews"),
        (5, None, "5 active reviews"),
        (3, {"Extra": "value"}, "3 active reviews"),
    ],
)
def test_get_plural(en, count, data, expected):
    assert en.get_plural("roulette.active_reviews", count, data) == expected


@pytest.mark.parametrize(
    "count, expected",
    [(1, "1 review active"), (0, "0 reviews actives"), (2, "2 reviews actives"), (5, "5 reviews actives")],
)
def test_get_plural_french(fr, count, expected):
    assert fr.get_plural("roulette.active_reviews", count) == expected


@pytest.mark.parametrize("count, expected", [(0, ""), (1, "1 active review"), (3, "3 active reviews")])
def test_active_reviews_message(en, count, expected):
    assert en.active_reviews_message(count) == expected


@pytest.mark.parametrize("count, expected", [(0, ""), (1, " (1 active review)"), (3, " (3 active reviews)")])
def test_format_active_reviews(en, count, expected):
    assert en.format_active_reviews(count) == expected


@pytest.mark.parametrize("count, expected", [(0, ""), (1, " (1 review active)"), (3, " (3 reviews actives)")])
def test_format_active_reviews_french(fr, count, expected):
    assert fr.format_active_reviews(count) == expected


@pytest.mark.parametrize(
    "team, expected",
    [("team-frontend", "from team-frontend"), ("team-backend-api", "from team-backend-api"), ("", "from ")],
)
def test_from_team_message(en, team, expected):
    assert en.from_team_message(team) == expected


@pytest.mark.parametrize(
    "team, expected",
    [("team-frontend", "de team-frontend"), ("team-backend-api", "de team-backend-api")],
)
def test_from_team_message_french(fr, team, expected):
    assert fr.from_team_message(team) == expected


def test_title_with_newlines(en):
    assert en.title_with_newlines() == "🎲 Reviewer Roulette Results\n\n"


def test_title_with_newlines_french(fr):
    assert fr.title_with_newlines() == "🎲 Résultats de la Roulette des Reviewers\n\n"


@pytest.mark.parametrize("lang", ["en", "fr"])
@pytest.mark.parametrize("key", EXPECTED_KEYS)
def test_all_translations_present(lang, key):
    result = Translator(lang).get(key)
    assert result != key
    assert result != ""


@pytest.mark.parametrize(
    "data, expected",
    [({}, "from <no value>"), ({"Team": 123}, "from 123")],
)
def test_template_error_handling(en, data, expected):
    assert en.get("roulette.from_team", data) == expected


def test_concurrent_access(en):
    def work(_):
        return [
            (
                en.get("roulette.title"),
                en.get_plural("roulette.active_reviews", j % 5),
                en.format_active_reviews(j % 3),
            )
            for j in range(100)
        ]

    with ThreadPoolExecutor(max_workers=10) as pool:
        results = list(pool.map(work, range(10)))
    assert all(result == results[0] for result in results)
    assert results[0][1] == ("🎲 Reviewer Roulette Results", "1 active review", " (1 active review)")


@pytest.mark.parametrize(
    "source, expected",
    [
        ({"key1": "value1", "key2": "value2"}, {"key1": "value1", "key2": "value2"}),
        (
            {"section": {"key1": "value1", "key2": "value2"}},
            {"section.key1": "value1", "section.key2": "value2"},
        ),
        ({"level1": {"level2": {"key": "value"}}}, {"level1.level2.key": "value"}),
        (
            {"string": "text", "number": 42, "nested": {"bool": True}},
            {"string": "text", "number": "42", "nested.bool": "true"},
        ),
    ],
)
def test_flatten_map(source, expected):
    assert flatten_map(source) == expected


def test_flatten_map_prefix():
    assert flatten_map({"title": "foo"}, "roulette") == {"roulette.title": "foo"}


def test_load_translations_and_unknown_language():
    assert load_translations("en")["roulette.from_team"] == "from {{.Team}}"
    with pytest.raises(LookupError):
        load_translations("invalid")


def test_render_template_rejects_malformed_actions():
    with pytest.raises(ValueError):
        render_template("from {{.Team", {"Team": "x"})
    with pytest.raises(ValueError):
        render_template("{{ range .Items }}", {"Items": []})


def test_render_template_nested_field():
    assert render_template("by {{.User.Name}}", {"User": {"Name": "alice"}}) == "by alice"
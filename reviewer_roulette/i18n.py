"""Translated bot messages with simple field templates."""

import re
from typing import Any, Dict, Mapping, Optional

_LOCALES: Dict[str, Dict[str, Any]] = {
    "en": {
        "roulette": {
            "title": "🎲 Reviewer Roulette Results",
            "codeowner": "Code Owner",
            "team_member": "Team Member",
            "external": "External Reviewer",
            "active_reviews": "{{.Count}} active review",
            "active_reviews_plural": "{{.Count}} active reviews",
            "from_team": "from {{.Team}}",
        },
        "warnings": {
            "no_team_label": "⚠️ No team label found on this merge request.",
            "no_codeowners": "⚠️ No code owners found for the changed files.",
            "limited_availability": "⚠️ Limited reviewer availability, fewer reviewers were selected.",
            "no_team_members": "⚠️ No available team members found.",
            "no_external_reviewers": "⚠️ No available external reviewers found.",
        },
        "errors": {
            "selection_failed": "❌ Roulette Error\n\nFailed to select reviewers: {{.Error}}",
            "invalid_command": "❌ Invalid command. Usage: /roulette",
            "webhook_processing": "❌ Failed to process the request: {{.Error}}",
        },
    },
    "fr": {
        "roulette": {
            "title": "🎲 Résultats de la Roulette des Reviewers",
            "codeowner": "Code Owner",
            "team_member": "Membre de l'équipe",
            "external": "Reviewer externe",
            "active_reviews": "{{.Count}} review active",
            "active_reviews_plural": "{{.Count}} reviews actives",
            "from_team": "de {{.Team}}",
        },
        "warnings": {
            "no_team_label": "⚠️ Aucun label d'équipe trouvé sur cette merge request.",
            "no_codeowners": "⚠️ Aucun code owner trouvé pour les fichiers modifiés.",
            "limited_availability": "⚠️ Disponibilité limitée, moins de reviewers ont été sélectionnés.",
            "no_team_members": "⚠️ Aucun membre de l'équipe disponible.",
            "no_external_reviewers": "⚠️ Aucun reviewer externe disponible.",
        },
        "errors": {
            "selection_failed": "❌ Erreur de la Roulette\n\nÉchec de la sélection des reviewers : {{.Error}}",
            "invalid_command": "❌ Commande invalide. Utilisation : /roulette",
            "webhook_processing": "❌ Échec du traitement de la requête : {{.Error}}",
        },
    },
}

_ACTION = re.compile(r"\{\{(.*?)\}\}", re.S)
_FIELD = re.compile(r"\s*((?:\.[A-Za-z_]\w*)+)\s*$")
_NO_VALUE = "<no value>"
_MISSING = object()


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format_scalar(item) for item in value) + "]"
    if value is None:
        return "<nil>"
    return str(value)


def flatten_map(mapping: Mapping[str, Any], prefix: str = "") -> Dict[str, str]:
    """Flatten nested mappings into dot-separated keys with string values."""
    result: Dict[str, str] = {}
    for key, value in mapping.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            result.update(flatten_map(value, full_key))
        else:
            result[full_key] = _format_scalar(value)
    return result


def load_translations(lang: str) -> Dict[str, str]:
    """Return the flattened message catalogue for ``lang``."""
    try:
        catalogue = _LOCALES[lang]
    except KeyError:
        raise LookupError(f"no translations for language {lang!r}") from None
    return flatten_map(catalogue)


def _resolve(data: Any, path: str) -> Any:
    current: Any = data
    for name in path.strip(".").split("."):
        if current is _MISSING or current is None:
            raise ValueError(f"cannot evaluate field {name} of missing value")
        if isinstance(current, Mapping):
            current = current.get(name, _MISSING)
        elif hasattr(current, name):
            current = getattr(current, name)
        else:
            raise ValueError(f"cannot evaluate field {name}")
    return current


def render_template(template: str, data: Any) -> str:
    """Substitute ``{{.Field}}`` actions with values from ``data``.

    Raises ValueError for malformed or unsupported actions.
    """
    parts = []
    position = 0
    for match in _ACTION.finditer(template):
        parts.append(template[position:match.start()])
        field = _FIELD.match(match.group(1))
        if field is None:
            raise ValueError(f"unsupported template action {match.group(0)!r}")
        value = _resolve(data, field.group(1))
        parts.append(_NO_VALUE if value is _MISSING or value is None else _format_scalar(value))
        position = match.end()
    rest = template[position:]
    if "{{" in rest:
        raise ValueError("unclosed template action")
    parts.append(rest)
    return "".join(parts)


class Translator:
    """Looks up and renders messages in one language."""

    def __init__(self, lang: Optional[str] = "en") -> None:
        language = lang or "en"
        try:
            messages = load_translations(language)
        except LookupError:
            if language == "en":
                raise
            messages = load_translations("en")
            language = "en"
        self._messages = messages
        self._lang = language

    @property
    def lang(self) -> str:
        """The language in use."""
        return self._lang

    def get(self, key: str, data: Optional[Mapping[str, Any]] = None) -> str:
        """Return the message for ``key``, or the key itself when missing."""
        message = self._messages.get(key)
        if message is None:
            return key
        if data is None:
            return message
        try:
            return render_template(message, data)
        except ValueError:
            return message

    def get_with_fallback(
        self, key: str, fallback: str, data: Optional[Mapping[str, Any]] = None
    ) -> str:
        """Return the message for ``key``, or ``fallback`` when missing or broken."""
        message = self._messages.get(key)
        if message is None:
            return fallback
        if data is None:
            return message
        try:
            return render_template(message, data)
        except ValueError:
            return fallback

    def get_plural(self, key: str, count: int, data: Optional[Mapping[str, Any]] = None) -> str:
        """Use ``key`` for a count of one and ``key_plural`` otherwise."""
        plural_key = key if count == 1 else f"{key}_plural"
        template_data: Dict[str, Any] = {"Count": count}
        if data:
            template_data.update(data)
        return self.get(plural_key, template_data)

    def active_reviews_message(self, count: int) -> str:
        """Pluralised active-review count, empty for zero."""
        if count == 0:
            return ""
        return self.get_plural("roulette.active_reviews", count)

    def format_active_reviews(self, count: int) -> str:
        """Return `` (N active reviews)`` or an empty string for zero."""
        if count == 0:
            return ""
        return f" ({self.active_reviews_message(count)})"

    def from_team_message(self, team_name: str) -> str:
        """Return the "from <team>" phrase."""
        return self.get("roulette.from_team", {"Team": team_name})

    def title_with_newlines(self) -> str:
        """Return the results title followed by a blank line."""
        return self.get("roulette.title") + "\n\n"
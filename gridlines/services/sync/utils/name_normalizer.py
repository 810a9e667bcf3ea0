"""Team name normalization for matching games across providers.

Handles common variations across APIs:
- Full names: "New York Jets" → "jets"
- Short forms: "NY Jets", "Jets", "NYJ" → "jets"
- Historic names: "Oakland Raiders" → "raiders"
- Punctuation: "L.A. Rams" → "rams"
- Accents and case: "SAN FRANCISCO 49ERS" → "49ers"

The alias table is a versioned JSON artifact shipped with the package
(gridlines/data/team_aliases.json). It is loaded once at import into a
read-only mapping; validate_alias_table() checks it for collisions and is
run by the test suite and scripts/validate_team_aliases.py.
"""
import json
import re
import unicodedata
from importlib import resources
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from gridlines.core.exceptions import AliasTableError

ALIAS_RESOURCE = "team_aliases.json"

_NON_ALNUM = re.compile(r'[^a-z0-9]')
_WORD = re.compile(r"[A-Za-z0-9.'\-]+")

# Longest alias in words ("Washington Football Team") bounds the n-gram scan
_MAX_ALIAS_WORDS = 3


def _normalize_unicode(name: str) -> str:
    """
    Remove accents and diacritics from unicode characters.

    Args:
        name: The name to normalize

    Returns:
        Name with accents removed
    """
    # Normalize to NFD form, then remove combining characters
    normalized = unicodedata.normalize('NFD', name)
    return ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )


def strip_name(name: Optional[str]) -> str:
    """
    Reduce a name to its lookup key: ASCII lowercase alphanumerics only.

    Examples:
        >>> strip_name("L.A. Rams")
        'larams'
        >>> strip_name("  New York   Jets ")
        'newyorkjets'
    """
    if not name:
        return ""
    return _NON_ALNUM.sub('', _normalize_unicode(name).lower())


def load_alias_document(text: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse the alias artifact.

    Args:
        text: Raw JSON; defaults to the packaged team_aliases.json

    Raises:
        AliasTableError: If the document does not have a "teams" object
    """
    if text is None:
        resource = resources.files("gridlines").joinpath("data").joinpath(ALIAS_RESOURCE)
        text = resource.read_text(encoding="utf-8")
    document = json.loads(text)
    if not isinstance(document.get("teams"), dict):
        raise AliasTableError("alias document has no 'teams' object")
    return document


def build_alias_table(document: Dict[str, Any]) -> Dict[str, str]:
    """
    Flatten an alias document into {stripped alias: canonical token}.

    Every canonical token maps to itself. When two teams claim the same
    alias the first one listed wins here; validate_alias_table() reports it.
    """
    table: Dict[str, str] = {}
    for token, team in document["teams"].items():
        table.setdefault(token, token)
        names = [team.get("name", "")] + team.get("aliases", []) + team.get("abbreviations", [])
        for name in names:
            key = strip_name(name)
            if key:
                table.setdefault(key, token)
    return table


def validate_alias_table(document: Dict[str, Any]) -> List[str]:
    """
    Check an alias document for definition defects.

    Reported problems:
    - a canonical token that is not already in stripped form
    - an alias claimed by two different teams
    - an alias of one team equal to another team's canonical token

    Args:
        document: Parsed alias document (see load_alias_document)

    Returns:
        List of problem descriptions (empty if the table is clean)
    """
    problems: List[str] = []
    owners: Dict[str, str] = {}
    teams = document.get("teams", {})

    for token in teams:
        if strip_name(token) != token:
            problems.append(f"token '{token}' is not in stripped form")
        owners[token] = token

    for token, team in teams.items():
        names = [team.get("name", "")] + team.get("aliases", []) + team.get("abbreviations", [])
        for name in names:
            key = strip_name(name)
            if not key:
                problems.append(f"team '{token}' has an empty alias ({name!r})")
                continue
            owner = owners.get(key)
            if owner is None:
                owners[key] = token
            elif owner != token:
                problems.append(f"alias '{name}' ({key}) claimed by both '{owner}' and '{token}'")

    return problems


_DOCUMENT = load_alias_document()
ALIASES: Mapping[str, str] = MappingProxyType(build_alias_table(_DOCUMENT))
_DISPLAY_NAMES: Mapping[str, str] = MappingProxyType(
    {token: team.get("name", token) for token, team in _DOCUMENT["teams"].items()}
)
# Abbreviations ("NO", "WAS") are too short to trust inside free text
_TEXT_ALIASES: Mapping[str, str] = MappingProxyType({
    strip_name(name): token
    for token, team in _DOCUMENT["teams"].items()
    for name in [token, team.get("name", "")] + team.get("aliases", [])
    if strip_name(name)
})


def alias_table_version() -> str:
    """Version string of the loaded alias artifact."""
    return str(_DOCUMENT.get("version", "unknown"))


def normalize_team_name(team_name: Optional[str]) -> str:
    """
    Map any provider's team name to its canonical lowercase token.

    Total and idempotent: unknown names fall back to their stripped form,
    and a canonical token always maps to itself.

    Args:
        team_name: Raw team name from any provider

    Returns:
        Canonical token ('' for empty input)

    Examples:
        >>> normalize_team_name("New York Jets")
        'jets'
        >>> normalize_team_name("NY Jets")
        'jets'
        >>> normalize_team_name("Springfield Atoms")
        'springfieldatoms'
    """
    key = strip_name(team_name)
    return ALIASES.get(key, key)


def is_known_team(team_name: Optional[str]) -> bool:
    """Check whether a name resolves through the alias table rather than the fallback."""
    return strip_name(team_name) in ALIASES


def team_display_name(token: str) -> str:
    """Full team name for a canonical token (the token itself when unknown)."""
    return _DISPLAY_NAMES.get(token, token)


def find_teams_in_text(text: Optional[str]) -> List[Tuple[str, int]]:
    """
    Find team mentions in free text such as a prediction-market title.

    Scans word n-grams (longest first) against team names and aliases;
    bare abbreviations are ignored to avoid hits on words like "no".

    Args:
        text: Free text to scan

    Returns:
        List of (canonical token, word position) in order of appearance,
        each team reported once
    """
    if not text:
        return []

    words = _WORD.findall(_normalize_unicode(text))
    found: List[Tuple[str, int]] = []
    seen = set()
    i = 0
    while i < len(words):
        matched = False
        for size in range(min(_MAX_ALIAS_WORDS, len(words) - i), 0, -1):
            key = strip_name(' '.join(words[i:i + size]))
            token = _TEXT_ALIASES.get(key)
            if token:
                if token not in seen:
                    seen.add(token)
                    found.append((token, i))
                i += size
                matched = True
                break
        if not matched:
            i += 1
    return found

"""Political entities: feed queries, assignment rules and owner scoring.

All matching runs on diacritic-folded, lower-cased text, so keyword lists
below are written without diacritics.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from political_news_digest.nlp import fold
from political_news_digest.types import Article
from political_news_digest.urls import domain_of


PRESIDENCY = "Președinție"
GOVERNMENT = "Guvern"
PARLIAMENT = "Parlament"
COALITION = "Coaliție (Putere)"
OPPOSITION = "Opoziție"
CAMPAIGN = "Campanie București"
LOCAL = "Local (Primării)"

# tie-break order for ownership, also the order of the final report
ENTITY_ORDER: tuple[str, ...] = (
    PRESIDENCY,
    GOVERNMENT,
    PARLIAMENT,
    COALITION,
    OPPOSITION,
    CAMPAIGN,
    LOCAL,
)

QUERIES: dict[str, tuple[str, ...]] = {
    PRESIDENCY: (
        "Nicușor Dan",
        "Administrația Prezidențială",
        "Cotroceni",
    ),
    GOVERNMENT: (
        "Guvernul României",
        "Premierul României",
        "prim-ministru României",
        "ministerul",
        "ministrul",
        "ministra",
    ),
    PARLIAMENT: (
        "Parlamentul României",
        "Camera Deputaților",
        "Senatul României",
    ),
    COALITION: (
        "PSD",
        "Partidul Social Democrat",
        "PNL",
        "Partidul Național Liberal",
        "UDMR",
        "Uniunea Democrată Maghiară din România",
        "USR",
        "Uniunea Salvați România",
        "Dominic Fritz",
        "Bolojan",
    ),
    OPPOSITION: (
        '(AUR OR "Alianța pentru Unirea Românilor" OR "George Simion") -aurora -"de aur" -aurul '
        "-gold -prețul -gram -site:imobiliare.ro -site:storia.ro -site:olx.ro",
        "SOS România",
        "Diana Șoșoacă",
        "Partidul Oamenilor Tineri",
        "Anamaria Gavrilă",
    ),
    CAMPAIGN: (
        "alegeri București",
        "alegeri PMB",
        "Primăria Generală",
        "candidat PMB",
        "campanie electorală București",
        "primar general București",
    ),
    LOCAL: ("primar OR primăria OR consiliu județean OR CJ OR prefect",),
}

_OWNER_PATTERNS: dict[str, re.Pattern[str]] = {
    PRESIDENCY: re.compile(r"\b(?:presedint\w*|cotroceni|nicusor\s+dan)\b"),
    GOVERNMENT: re.compile(r"\b(?:premier\w*|guvern\w*|ministr\w*|minister\w*)\b"),
    PARLIAMENT: re.compile(r"\b(?:parlament\w*|senat\w*|camera\s+deputatilor)\b"),
    COALITION: re.compile(r"\b(?:psd|pnl|udmr|usr|coalit\w*)\b"),
    OPPOSITION: re.compile(r"\b(?:aur|sos\s+romania|george\s+simion|sosoaca)\b"),
    CAMPAIGN: re.compile(r"\b(?:bucuresti\w*|pmb|campani\w*)\b"),
    LOCAL: re.compile(r"\b(?:primar\w*|consiliu(?:l)?\s+judetean|cj|prefect\w*)\b"),
}


def priority_index(name: str, priority: Sequence[str] = ENTITY_ORDER) -> int:
    try:
        return priority.index(name)
    except ValueError:
        return len(priority)


def owner_scores(text: str) -> dict[str, int]:
    t = fold(text)
    return {name: len(pat.findall(t)) for name, pat in _OWNER_PATTERNS.items()}


def score_owner(text: str, priority: Sequence[str] = ENTITY_ORDER) -> str:
    """Entity whose keywords hit most often; ties go to the earlier entity in ``priority``."""

    scores = owner_scores(text)
    best = priority[0]
    best_val = -1
    for name in priority:
        val = scores.get(name, 0)
        if val > best_val:
            best, best_val = name, val
    return best


def resolve_owner(text: str, members: Iterable[str], priority: Sequence[str] = ENTITY_ORDER) -> str:
    """Scored owner if it is among ``members``, else the first member in priority order."""

    present = list(members)
    owner = score_owner(text, priority)
    if owner in present:
        return owner
    for name in priority:
        if name in present:
            return name
    return present[0] if present else owner


# --- feed query matching ---------------------------------------------------

_NEGATIVE_RE = re.compile(r'(?:^|(?<=\s))-(?:"([^"]+)"|(\S+))')
_TERM_RE = re.compile(r'"([^"]+)"|(\S+)')


@dataclass(frozen=True)
class FeedQuery:
    groups: tuple[tuple[str, ...], ...]
    excluded_terms: tuple[str, ...] = ()
    excluded_sites: tuple[str, ...] = ()


def _term_pattern(term: str) -> re.Pattern[str]:
    return re.compile(r"(?<!\w)" + re.escape(term))


def parse_query(raw: str) -> FeedQuery:
    """Search-engine style query: ``A OR "b c"`` groups, ``-term`` and ``-site:x`` exclusions.

    Positive ``site:`` operators and parentheses are ignored.
    """

    excluded_terms: list[str] = []
    excluded_sites: list[str] = []
    for m in _NEGATIVE_RE.finditer(raw):
        term = fold(m.group(1) or m.group(2) or "")
        if term.startswith("site:"):
            excluded_sites.append(term.removeprefix("site:"))
        elif term:
            excluded_terms.append(term)

    text = _NEGATIVE_RE.sub(" ", raw)
    text = re.sub(r"\bsite:\S+", " ", text)
    text = text.replace("(", " ").replace(")", " ")

    groups: list[tuple[str, ...]] = []
    for group in re.split(r"\s+OR\s+", text):
        terms = tuple(
            fold(m.group(1) or m.group(2)) for m in _TERM_RE.finditer(group) if (m.group(1) or m.group(2))
        )
        if terms:
            groups.append(terms)
    return FeedQuery(tuple(groups), tuple(excluded_terms), tuple(excluded_sites))


def matches_query(article: Article, query: FeedQuery) -> bool:
    text = fold(f"{article.title} {article.snippet}")
    domain = domain_of(article.link)
    if any(domain == s or domain.endswith("." + s) for s in query.excluded_sites):
        return False
    if any(_term_pattern(t).search(text) for t in query.excluded_terms):
        return False
    return any(all(_term_pattern(t).search(text) for t in group) for group in query.groups)


def entity_pool(name: str, articles: Sequence[Article], queries: Optional[Sequence[str]] = None) -> list[Article]:
    """Articles matching any of the entity's queries, in fetch order, once each."""

    parsed = [parse_query(q) for q in (queries if queries is not None else QUERIES.get(name, ()))]
    if not parsed:
        return []
    return [a for a in articles if any(matches_query(a, q) for q in parsed)]


# --- assignment policy -----------------------------------------------------

def _words(words: Iterable[str]) -> re.Pattern[str]:
    alts = "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))
    return re.compile(rf"(?<!\w)(?:{alts})(?!\w)")


_RO_SIGNALS = _words(["romania", "romaniei", "romanesc", "romaneasca", "bucuresti"])

_CITY_WORDS = _words([
    "sector 1", "sector 2", "sector 3", "sector 4", "sector 5", "sector 6",
    "bucuresti", "ilfov", "alba iulia", "arad", "pitesti", "bacau", "oradea", "bistrita",
    "botosani", "braila", "brasov", "buzau", "calarasi", "cluj-napoca", "cluj", "constanta",
    "craiova", "drobeta-turnu severin", "focsani", "galati", "giurgiu", "targu jiu",
    "miercurea ciuc", "deva", "sfantu gheorghe", "hunedoara", "iasi", "baia mare",
    "targu mures", "piatra neamt", "ploiesti", "slatina", "satu mare", "sibiu", "suceava",
    "alexandria", "resita", "timisoara", "tulcea", "ramnicu valcea", "vaslui", "targoviste",
    "zalau", "bihor", "dolj", "timis", "prahova", "mehedinti", "salaj", "olt", "medias",
    "turda", "dej", "mangalia", "medgidia", "navodari", "lugoj", "caracal", "campina",
    "sighisoara", "fagaras", "onesti", "barlad", "pascani", "radauti", "falticeni",
])

_ROLE_WORDS = _words([
    "primar", "primarul", "primaria", "primariei", "consiliu local", "consiliul local",
    "hotarare", "hotararea", "proiect", "buget", "bugetul", "consiliu judetean",
    "consiliul judetean", "cj", "prefect", "prefectul", "prefectura",
])

_ELECTION_WORDS = _words([
    "alegeri", "candidat", "candidati", "candidatura", "campanie electorala", "scrutin",
    "vot", "urne", "turul", "sectii de votare", "pmb", "primaria generala", "alegeri locale",
    "alegeri municipale",
])

_CAMPAIGN_PLACE = _words([
    "bucuresti", "capitala", "capitalei", "pmb", "primaria capitalei",
    "primaria municipiului bucuresti", "primaria generala", "primar general",
    "primarul general", "cgmb", "consiliul general al municipiului bucuresti",
])
_CAMPAIGN_CANDIDATES = _words([
    "ciprian ciucu", "ciucu", "daniel baluta", "baluta", "catalin drula", "drula",
    "anca alexandrescu", "stelian bujduveanu", "bujduveanu",
])

_POWER_SIGNALS = _words([
    "psd", "pnl", "udmr", "usr", "mosteanu", "ministrul", "ministru", "ministerul",
    "guvernul", "premier", "premierul", "vicepremier", "secretar de stat", "mapn",
])


def _text_of(article: Article) -> str:
    return fold(f"{article.title} {article.snippet}")


def looks_romanian(article: Article) -> bool:
    text = _text_of(article)
    return domain_of(article.link).endswith(".ro") and bool(
        _RO_SIGNALS.search(text) or _CITY_WORDS.search(text)
    )


def is_capital_campaign(article: Article) -> bool:
    t = _text_of(article)
    return bool(_CAMPAIGN_PLACE.search(t) and _CAMPAIGN_CANDIDATES.search(t))


def is_local_government(article: Article) -> bool:
    head = " ".join(_text_of(article).split()[:200])
    if _ELECTION_WORDS.search(head):
        return False
    return bool(_ROLE_WORDS.search(head) and _CITY_WORDS.search(head))


def mentions_power(article: Article) -> bool:
    return bool(_POWER_SIGNALS.search(_text_of(article)))


def passes_entity_rules(name: str, article: Article) -> bool:
    """Entity-specific gate applied after query matching."""

    if not looks_romanian(article):
        return False
    campaign = is_capital_campaign(article)
    if campaign:
        # the capital race belongs to its own bucket only
        return name == CAMPAIGN
    if name == CAMPAIGN:
        return False
    if name == LOCAL and not is_local_government(article):
        return False
    if name == OPPOSITION and mentions_power(article):
        return False
    return True

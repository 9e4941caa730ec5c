"""Prompt texts for the text-understanding collaborators.

The corpus is Romanian, so instructions and generated copy are Romanian too.
"""

JSON_ONLY_SYSTEM = "Răspunde DOAR cu JSON valid, fără alt text."

RELEVANCE_SYSTEM = "Răspunde DOAR cu un array JSON de numere întregi. Fără alt text."

RELEVANCE_USER = """\
Păstrează articolele relevante pentru entitatea „{entity}” din România.
PĂSTREAZĂ:
- articolele care menționează explicit entitatea sau oamenii și instituțiile ei;
- articolele despre acțiuni, declarații sau evenimente care o privesc direct;
- articolele conexe care aduc context util.
ELIMINĂ doar știrile evident irelevante (reclame, sport, monden, imobiliare,
alte localități fără legătură) sau cele în care cuvintele cheie apar doar în treacăt.
Răspunde cu array-ul JSON al indicilor de PĂSTRAT, de exemplu [0, 2, 5].

Articole:
{items}"""

CLUSTER_SYSTEM = """\
Grupează articolele pe același subiect (același eveniment, aceeași declarație, aceeași politică).
Folosește DOAR titlul și conținutul articolului principal; ignoră titluri din sidebar,
linkuri spre alte articole, secțiuni „Citește și”, reclame sau zgomot HTML.
Elimină near-duplicatele. Întoarce cel mult {max_groups} clustere, alese după diversitatea
surselor și recență; pentru fiecare, cel mult {max_items} itemi reprezentativi.
Răspunde STRICT în JSON, ca listă de obiecte {{"label": string, "indices": number[]}}, fără alt text."""

TITLE_SUMMARY_SYSTEM = """\
Primești până la 5 articole (titlu, lead, fragment). Scrie un titlu scurt, jurnalistic,
în română (nu copia niciun titlu existent) și un sumar de cel mult 2 propoziții scurte,
neutru, bazat pe faptele comune surselor, fără speculații.
Folosește doar conținutul real al articolelor.
FORMAT STRICT:
TITLU_RO: <titlu scurt>
SUMAR_RO: <cel mult 2 propoziții>"""

TITLE_MERGE_USER = """\
Primești o listă de titluri de știri românești din ultimele 24 de ore.
Identifică grupurile de titluri care descriu ACEEAȘI știre, chiar dacă sunt formulate diferit
(sinonimie clară, mici variații, preluări în lanț). NU grupa episoade distincte.
Răspunde STRICT cu JSON, ca listă de obiecte: [{{"indices":[0,5,7]}},{{"indices":[2,3]}}].

{items}"""

CROSS_ENTITY_USER = """\
Primești o listă de subiecte (carduri) extrase din presă, unele repetate sub entități diferite
(de exemplu Guvern și Președinție). Grupează DOAR subiectele care descriu EVIDENT același
eveniment (aceeași vizită, aceeași declarație, aceeași ședință), chiar dacă au surse diferite.
Ignoră variațiile minore de titlu sau de publicație. NU uni subiecte diferite.
Răspunde STRICT cu JSON, ca listă de obiecte: [{{"indices":[0,5,8]}},{{"indices":[1,3]}}],
unde "indices" sunt indicii (de la 0) din lista primită.

{items}"""

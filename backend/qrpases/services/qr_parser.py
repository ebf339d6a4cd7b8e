"""
Décodage du contenu texte des QR codes élèves.

Format exact (4 lignes, lues par position) :
    RUN: <run>
    Nombre: <nom complet>
    Grado: <grade>
    Curso: <lettre de section>

Fonctions pures, sans effet de bord.
"""

from typing import Tuple

from qrpases.exceptions import InvalidIdentity
from qrpases.schemas.attendance import StudentIdentity

PREFIXES = ("RUN: ", "Nombre: ", "Grado: ", "Curso: ")


def normalize_run(value: str) -> str:
    """Forme de comparaison d'un RUN : trim + minuscules."""
    return (value or "").strip().lower()


def _strip_prefix(line: str, prefix: str) -> str:
    # "RUN:" sans valeur doit donner un champ vide, d'où la comparaison sans l'espace final
    line = line.strip()
    label = prefix.rstrip()
    if line.startswith(label):
        line = line[len(label):]
    return line.strip()


def parse_payload(text: str) -> StudentIdentity:
    """
    Décode le texte d'un QR en StudentIdentity.

    Chaque ligne perd son préfixe (s'il est présent) puis est trimée.
    Les lignes manquantes donnent des champs vides.
    Lève InvalidIdentity si le RUN est absent ou vide, ou si la première ligne
    porte une autre étiquette (Nombre:, Grado:, Curso:).
    """
    lines = (text or "").splitlines()
    first = lines[0].strip() if lines else ""
    if first.startswith(tuple(p.rstrip() for p in PREFIXES[1:])):
        raise InvalidIdentity("RUN invalide : le QR ne commence pas par la ligne RUN.")

    values = [
        _strip_prefix(lines[i], prefix) if i < len(lines) else ""
        for i, prefix in enumerate(PREFIXES)
    ]
    display_run, full_name, grade, section = values

    if not display_run:
        raise InvalidIdentity("RUN invalide : le QR ne contient pas de RUN.")

    return StudentIdentity(
        run=normalize_run(display_run),
        display_run=display_run,
        full_name=full_name,
        grade=grade,
        section=section,
    )


def build_payload(identity: StudentIdentity) -> str:
    """Rend le texte à encoder dans le QR d'une identité (inverse de parse_payload)."""
    values = (identity.display_run, identity.full_name, identity.grade, identity.section)
    return "\n".join(f"{prefix}{value}" for prefix, value in zip(PREFIXES, values))


def split_full_name(full_name: str) -> Tuple[str, str, str]:
    """
    Découpe un nom complet en (nombres, apellido_paterno, apellido_materno).

    - 3 mots ou plus : dernier = maternel, avant-dernier = paternel, le reste = prénoms
    - 2 mots : prénom + paternel, pas de maternel
    - 1 mot : prénom seul
    """
    tokens = (full_name or "").split()
    if len(tokens) >= 3:
        return " ".join(tokens[:-2]), tokens[-2], tokens[-1]
    if len(tokens) == 2:
        return tokens[0], tokens[1], ""
    if len(tokens) == 1:
        return tokens[0], "", ""
    return "", "", ""

"""
Normalisation et validation des téléphones chiliens des apoderados.

Stockage : "+56" suivi de 9 chiffres, sans séparateur (ex: +56912345678).
Affichage : "+56 D XXXX XXXX" (ex: +56 9 1234 5678).
"""

import re

COUNTRY_CODE = "56"
LOCAL_LENGTH = 9
VALID_FIRST_DIGITS = "23456789"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str) -> str:
    """
    Convertit une saisie libre au format de stockage +56XXXXXXXXX (chiffres seuls).
    Ne valide pas : un numéro trop court reste invalide après normalisation.
    """
    cleaned = _NON_DIGITS.sub("", raw or "")
    if cleaned.startswith(COUNTRY_CODE):
        return "+" + cleaned
    return "+" + COUNTRY_CODE + cleaned


def is_valid_phone(raw: str) -> bool:
    """
    Valide la forme normalisée : 11 chiffres commençant par 56,
    le premier chiffre local entre 2 et 9.
    """
    digits = _NON_DIGITS.sub("", normalize_phone(raw))
    if len(digits) != len(COUNTRY_CODE) + LOCAL_LENGTH or not digits.startswith(COUNTRY_CODE):
        return False
    return digits[2] in VALID_FIRST_DIGITS


def format_phone(raw: str) -> str:
    """
    Format d'affichage progressif "+56 D XXXX XXXX".

    Accepte une saisie partielle : les chiffres au-delà de 9 sont ignorés,
    un premier chiffre local hors 2-9 est remplacé par un 9 (mobile).
    """
    local = _NON_DIGITS.sub("", raw or "")
    if local.startswith(COUNTRY_CODE):
        local = local[len(COUNTRY_CODE):]
    local = local[:LOCAL_LENGTH]

    if not local:
        return ""
    if local[0] not in VALID_FIRST_DIGITS:
        local = "9" + local[:LOCAL_LENGTH - 1]

    formatted = f"+{COUNTRY_CODE} {local[0]}"
    rest = local[1:]
    if not rest:
        return formatted
    if len(rest) <= 4:
        return f"{formatted} {rest}"
    return f"{formatted} {rest[:4]} {rest[4:8]}"

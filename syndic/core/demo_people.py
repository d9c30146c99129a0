from __future__ import annotations

import re
import unicodedata

DEMO_FIRST_NAMES_MA: tuple[str, ...] = (
    "Omar",
    "Salma",
    "Mehdi",
    "Khadija",
    "Youssef",
    "Fatima Zahra",
    "Hamza",
    "Sara",
    "Amine",
    "Meryem",
    "Anas",
    "Hajar",
    "Reda",
    "Ghita",
    "Ayoub",
    "Zineb",
    "Othmane",
    "Kenza",
    "Ilyas",
    "Loubna",
)

DEMO_LAST_NAMES_MA: tuple[str, ...] = (
    "El Fassi",
    "Berrada",
    "Benjelloun",
    "Lahlou",
    "Kettani",
    "Sqalli",
    "Benkirane",
    "Ouazzani",
    "Cherkaoui",
    "Amrani",
    "Filali",
    "Naciri",
    "Bouzidi",
    "Skalli",
)

GENERIC_NAME_TOKENS_BLOCKLIST: tuple[str, ...] = (
    "DEMO",
    "TEST",
    "RESIDENT EXTRA",
)

_GENERIC_NUMERIC_PATTERN = re.compile(r"\d{2,}")
_EMAIL_UNSAFE = re.compile(r"[^a-z0-9]+")


def is_generic_demo_name(full_name: str) -> bool:
    full_name_upper = (full_name or "").strip().upper()
    for token in GENERIC_NAME_TOKENS_BLOCKLIST:
        if token in full_name_upper:
            return True
    return bool(_GENERIC_NUMERIC_PATTERN.search(full_name_upper))


def _email_slug(value: str) -> str:
    ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return _EMAIL_UNSAFE.sub("", ascii_value.lower())


def generate_demo_names(total: int, offset: int = 0) -> list[str]:
    if total < 0:
        raise ValueError("total must be >= 0")

    generated: list[str] = []
    first_len = len(DEMO_FIRST_NAMES_MA)
    last_len = len(DEMO_LAST_NAMES_MA)

    for idx in range(total):
        full_name = f"{DEMO_FIRST_NAMES_MA[(idx + offset) % first_len]} {DEMO_LAST_NAMES_MA[(idx + offset + 3) % last_len]}"
        if is_generic_demo_name(full_name):
            raise ValueError(f"Generated generic demo name is not allowed: {full_name}")
        generated.append(full_name)
    return generated


def demo_residents(total: int, offset: int = 0, domain: str = "syndic.local") -> list[dict[str, str]]:
    """Demo neighbours for the seeded residence, one per apartment starting at A2."""
    residents: list[dict[str, str]] = []
    for idx, full_name in enumerate(generate_demo_names(total, offset)):
        first, _, last = full_name.partition(" ")
        residents.append(
            {
                "full_name": full_name,
                "email": f"{_email_slug(first)}.{_email_slug(last)}@{domain}",
                "apartment": f"A{idx + offset + 2}",
            }
        )
    return residents

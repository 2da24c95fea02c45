import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """URL-safe slug: "Acme's Cleaning & Co." -> "acme-s-cleaning-co" """
    return _NON_ALNUM.sub("-", (value or "").lower()).strip("-")

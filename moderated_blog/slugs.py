"""
Tag name normalization and slug generation.

Tag slugs are ASCII ``[a-z0-9]`` and at most TAG_SLUG_MAX_LENGTH long. Names
that fold to nothing in ASCII (Japanese, Chinese) are romanized first; if
that also fails the slug is ``tag`` plus a short content hash, so a slug can
always be produced.
"""
import functools
import hashlib
import re
import unicodedata

import pykakasi
from pypinyin import lazy_pinyin

from .conf import blog_settings

SLUG_ALLOWED = re.compile(r"^[a-z0-9]+$")
KANA = re.compile(r"[\u3040-\u30ff\u31f0-\u31ff]")
HAN = re.compile(r"[\u4e00-\u9fff]")
NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")
WHITESPACE = re.compile(r"\s+")


def normalize_tag_name(value):
    """Trim, collapse internal whitespace and cap the length."""
    return WHITESPACE.sub(" ", (value or "").strip())[:blog_settings.TAG_NAME_MAX_LENGTH]


def normalize_user_slug(value):
    """
    Validate a slug typed by a user.

    Returns "" for blank input and None when the slug contains anything but
    lowercase letters and digits.
    """
    normalized = (value or "").strip().lower()
    if not normalized:
        return ""
    if not SLUG_ALLOWED.match(normalized):
        return None
    return normalized[:blog_settings.TAG_SLUG_MAX_LENGTH]


def slugify_ascii(value):
    decomposed = unicodedata.normalize("NFKD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return NON_SLUG_CHARS.sub("", stripped)[:blog_settings.TAG_SLUG_MAX_LENGTH]


def has_cjk(value):
    return bool(KANA.search(value) or HAN.search(value))


@functools.lru_cache(maxsize=1)
def _kakasi():
    return pykakasi.kakasi()


def to_romaji(value):
    return " ".join(item["hepburn"] for item in _kakasi().convert(value))


def to_pinyin(value):
    return " ".join(lazy_pinyin(value))


def romanize(value):
    """
    Romanize CJK text, picking the reading by script.

    Kana means Japanese, so Hepburn goes first; Han-only text is read as
    Mandarin first. The other reading is the second try.
    """
    if KANA.search(value):
        readers = (to_romaji, to_pinyin)
    else:
        readers = (to_pinyin, to_romaji)
    for reader in readers:
        slug = slugify_ascii(reader(value))
        if slug:
            return slug
    return ""


def hash_slug(value):
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return f"tag{digest[:8]}"[:blog_settings.TAG_SLUG_MAX_LENGTH]


def generate_tag_slug(name):
    """Deterministic slug for a tag name. Never empty."""
    direct = slugify_ascii(name)
    if direct:
        return direct

    if has_cjk(name):
        romanized = romanize(name)
        if romanized:
            return romanized

    return hash_slug(name)

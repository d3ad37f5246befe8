"""Rewrites narration so the speech engine reads sumo vocabulary correctly.

Known terms come from a static dictionary (terms, techniques, organizations)
plus a persisted cache of proper-noun readings that grows as new names are
resolved. Replacement is a single left-to-right pass preferring the longest
key at each position, so readings that were already substituted are never
matched again and re-normalizing is a no-op.
"""
import os
import re
import json
import logging
import tempfile
from typing import Awaitable, Callable, Dict, Optional

from .reading_lookup import LookupChain
from .settings import DICTIONARY_PATH, TERM_CACHE_PATH

logger = logging.getLogger(__name__)

CATEGORIES = ("terms", "techniques", "organizations")

ReadingExtractor = Callable[[str], Awaitable[Dict[str, str]]]

# Any kanji the known entries leave in place may belong to a proper noun (大の里, 琴櫻)
_KANJI = re.compile(r"[一-鿿々]")

# (pattern, replacement) applied in order after term substitution
NUMBER_RULES = [
    (re.compile(r"(\d+)勝"), r"\1しょう"),
    (re.compile(r"(\d+)敗"), r"\1はい"),
    (re.compile(r"(\d+)番"), r"\1ばん"),
    (re.compile(r"(?<!\d)([1-9]|[12][0-9]|3[01])日"), r"\1にち"),
    (re.compile(r"(\d+)歳"), r"\1さい"),
    (re.compile(r"(\d+)連勝"), r"\1れんしょう"),
    (re.compile(r"(\d+)連敗"), r"\1れんぱい"),
    (re.compile(r"(\d+)年"), r"\1ねん"),
    (re.compile(r"(?<!\d)([1-9]|1[0-2])月"), r"\1がつ"),
    (re.compile(r"(\d+)時"), r"\1じ"),
    (re.compile(r"(\d+)分"), r"\1ふん"),
    (re.compile(r"(\d+)人"), r"\1にん"),
    (re.compile(r"(\d+)回"), r"\1かい"),
    (re.compile(r"(\d+)場所"), r"\1ばしょ"),
    (re.compile(r"(\d+)位"), r"\1い"),
    # "（21＝安治川）" is the newspaper shorthand for age and stable
    (re.compile(r"（(\d+)＝"), r"（\1さい、"),
]


def normalize_numbers(text: str) -> str:
    for pattern, repl in NUMBER_RULES:
        text = pattern.sub(repl, text)
    return text


def replace_terms(text: str, entries: Dict[str, str]) -> str:
    keys = [k for k, v in entries.items() if k and v]
    if not keys:
        return text
    keys.sort(key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(k) for k in keys))
    return pattern.sub(lambda m: entries[m.group(0)], text)


class TextNormalizer:
    def __init__(
        self,
        dictionary_path: str = DICTIONARY_PATH,
        cache_path: str = TERM_CACHE_PATH,
        extractor: Optional[ReadingExtractor] = None,
        lookup_chain: Optional[LookupChain] = None,
    ):
        self.dictionary = self._load_dictionary(dictionary_path)
        self.cache_path = cache_path
        self.term_cache: Dict[str, str] = self._load_cache()
        self.extractor = extractor
        self.lookup_chain = lookup_chain or LookupChain([])

    @staticmethod
    def _load_dictionary(path: str) -> Dict[str, Dict[str, str]]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load dictionary {path}, starting empty: {e}")
            data = {}
        return {c: dict(data.get(c, {})) for c in CATEGORIES}

    def _load_cache(self) -> Dict[str, str]:
        if not self.cache_path or not os.path.exists(self.cache_path):
            return {}
        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load term cache {self.cache_path}: {e}")
            return {}

    def _save_cache(self) -> None:
        if not self.cache_path:
            return
        # Merge with whatever other runs wrote since we loaded; ours wins on conflict
        merged = self._load_cache()
        merged.update(self.term_cache)
        self.term_cache = merged
        try:
            directory = os.path.dirname(self.cache_path) or "."
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(merged, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.cache_path)
        except OSError as e:
            logger.warning(f"Failed to save term cache {self.cache_path}: {e}")

    def all_entries(self) -> Dict[str, str]:
        entries: Dict[str, str] = {}
        for category in CATEGORIES:
            entries.update(self.dictionary[category])
        entries.update(self.term_cache)
        return entries

    def has_unresolved_terms(self, text: str) -> bool:
        remainder = replace_terms(text, {k: " " for k in self.all_entries()})
        return bool(_KANJI.search(remainder))

    async def resolve_readings(self, text: str) -> Dict[str, str]:
        """Find proper nouns the dictionaries do not cover and resolve their readings.

        The extractor proposes term -> reading pairs; each new term is checked
        against the lookup chain and the proposal is used when no lookup
        answers. Every resolved pair goes into the persisted cache.
        """
        if self.extractor is None or not self.has_unresolved_terms(text):
            return {}
        try:
            proposed = await self.extractor(text)
        except Exception as e:
            logger.warning(f"Reading extraction failed: {e}")
            return {}

        resolved: Dict[str, str] = {}
        added = False
        for term, proposed_reading in proposed.items():
            if term in self.term_cache:
                resolved[term] = self.term_cache[term]
                continue
            official = await self.lookup_chain.resolve(term)
            if official:
                logger.info(f"Added reading {term} -> {official} (official)")
            else:
                logger.info(f"No official reading for {term}, using proposed {proposed_reading}")
            reading = official or proposed_reading
            resolved[term] = reading
            self.term_cache[term] = reading
            added = True
        if added:
            self._save_cache()
        return resolved

    async def normalize(self, text: str) -> str:
        dynamic = await self.resolve_readings(text)
        entries = self.all_entries()
        entries.update(dynamic)
        return normalize_numbers(replace_terms(text, entries))

    async def normalize_with_log(self, text: str) -> str:
        normalized = await self.normalize(text)
        if text != normalized:
            logger.info(f"Text normalized: {text} -> {normalized}")
        return normalized

    def add_entry(self, term: str, reading: str, category: str = "terms") -> None:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown dictionary category: {category}")
        self.dictionary[category][term] = reading

    def add_term(self, term: str, reading: str) -> None:
        self.term_cache[term] = reading
        self._save_cache()

    def get_dictionary_stats(self) -> Dict[str, int]:
        stats = {c: len(self.dictionary[c]) for c in CATEGORIES}
        stats["cached_terms"] = len(self.term_cache)
        stats["total"] = sum(stats.values())
        return stats

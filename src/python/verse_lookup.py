#!/usr/bin/env python3
"""
Verse Lookup Clients

Given a normalized citation ("John 3:16", "Romans 8:38-39", "Psalms 23"),
fetch the literal verse text for display in the citation panel.

Two providers:
1. Bolls.life (default) - free, no API key, many translations
2. ESV API - requires an API key (ESV_API_KEY)

Both clients are synchronous (requests). AsyncVerseLookup adapts either one to
the awaitable lookup contract used by the interaction controller.
"""

import asyncio
import json
import os
import re
import sys
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

import requests

from citation_extractor import normalize_book_name, parse_citation

# ============================================================================
# CONFIGURATION
# ============================================================================

# Bible API configuration - Bolls.life API (free, no API key, many translations)
BIBLE_API_BASE = os.environ.get('BIBLE_API_BASE', 'https://bolls.life')
DEFAULT_TRANSLATION = os.environ.get('BIBLE_TRANSLATION', 'KJV')

# ESV API configuration
ESV_API_BASE = os.environ.get('ESV_API_BASE', 'https://api.esv.org/v3/passage/text/')
ESV_API_KEY = os.environ.get('ESV_API_KEY')

API_RATE_LIMIT_DELAY = 0.5
REQUEST_TIMEOUT = 10

# Optional JSON cache file for fetched verses (in-memory only when unset)
CACHE_FILE: Optional[Path] = Path(os.environ['VERSE_CACHE_FILE']) if os.environ.get('VERSE_CACHE_FILE') else None

# Book name to Bolls.life book ID mapping (standard Protestant Bible order)
BOOK_ID_MAP = {
    'Genesis': 1, 'Exodus': 2, 'Leviticus': 3, 'Numbers': 4, 'Deuteronomy': 5,
    'Joshua': 6, 'Judges': 7, 'Ruth': 8, '1 Samuel': 9, '2 Samuel': 10,
    '1 Kings': 11, '2 Kings': 12, '1 Chronicles': 13, '2 Chronicles': 14,
    'Ezra': 15, 'Nehemiah': 16, 'Esther': 17, 'Job': 18, 'Psalms': 19,
    'Proverbs': 20, 'Ecclesiastes': 21, 'Song of Solomon': 22, 'Isaiah': 23,
    'Jeremiah': 24, 'Lamentations': 25, 'Ezekiel': 26, 'Daniel': 27,
    'Hosea': 28, 'Joel': 29, 'Amos': 30, 'Obadiah': 31, 'Jonah': 32,
    'Micah': 33, 'Nahum': 34, 'Habakkuk': 35, 'Zephaniah': 36, 'Haggai': 37,
    'Zechariah': 38, 'Malachi': 39, 'Matthew': 40, 'Mark': 41, 'Luke': 42,
    'John': 43, 'Acts': 44, 'Romans': 45, '1 Corinthians': 46, '2 Corinthians': 47,
    'Galatians': 48, 'Ephesians': 49, 'Philippians': 50, 'Colossians': 51,
    '1 Thessalonians': 52, '2 Thessalonians': 53, '1 Timothy': 54, '2 Timothy': 55,
    'Titus': 56, 'Philemon': 57, 'Hebrews': 58, 'James': 59, '1 Peter': 60,
    '2 Peter': 61, '1 John': 62, '2 John': 63, '3 John': 64, 'Jude': 65,
    'Revelation': 66
}


# ============================================================================
# ERRORS
# ============================================================================

class VerseLookupError(Exception):
    """A verse could not be fetched (network, HTTP, configuration or parse failure)."""


class VerseNotFoundError(VerseLookupError):
    """The provider answered but had no text for the reference."""


class VerseLookupTimeout(VerseLookupError):
    """The lookup did not resolve in time."""


def _warn(message: str):
    print(f"  ⚠ {message}", file=sys.stderr, flush=True)


# ============================================================================
# BOLLS.LIFE CLIENT
# ============================================================================

class BibleAPIClient:
    """Client for the Bolls.life API with caching and rate limiting.

    API format:
    - Single verse: https://bolls.life/get-verse/{translation}/{book_id}/{chapter}/{verse}/
    - Full chapter: https://bolls.life/get-text/{translation}/{book_id}/{chapter}/
    - Multiple verses: POST to https://bolls.life/get-verses/ with JSON body
    """

    def __init__(self, cache_file: Optional[Path] = CACHE_FILE, translation: str = DEFAULT_TRANSLATION,
                 api_base: str = BIBLE_API_BASE, rate_limit_delay: float = API_RATE_LIMIT_DELAY):
        self.cache_file = cache_file
        self.cache: Dict[str, dict] = self._load_cache()
        self.last_request_time = 0.0
        # Lookups run on worker threads (AsyncVerseLookup)
        self._cache_lock = threading.Lock()
        self._rate_lock = threading.Lock()
        self.translation = translation
        self.api_base = api_base.rstrip('/')
        self.rate_limit_delay = rate_limit_delay

    def _load_cache(self) -> Dict[str, dict]:
        """Load cached verses from file."""
        if self.cache_file and self.cache_file.exists():
            try:
                with open(self.cache_file, 'r', encoding='utf-8') as f:
                    return json.load(f)
            except (json.JSONDecodeError, IOError):
                return {}
        return {}

    def _save_cache(self, snapshot: Dict[str, dict]):
        """Write a snapshot of the cache via a temp file, replacing the old file whole."""
        if not self.cache_file:
            return
        tmp_path = self.cache_file.with_name(self.cache_file.name + '.tmp')
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(snapshot, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.cache_file)
        except (IOError, OSError) as e:
            _warn(f"Could not write verse cache: {e}")

    def clear_cache(self):
        """Clear the in-memory cache (but keep the file for next session)."""
        with self._cache_lock:
            self.cache = {}

    def _rate_limit(self):
        """Ensure we don't exceed API rate limits, across threads sharing this client."""
        with self._rate_lock:
            elapsed = time.time() - self.last_request_time
            if elapsed < self.rate_limit_delay:
                time.sleep(self.rate_limit_delay - elapsed)
            self.last_request_time = time.time()

    def _get_book_id(self, book_name: str) -> Optional[int]:
        canonical = normalize_book_name(book_name)
        return BOOK_ID_MAP.get(canonical) if canonical else None

    def _clean_html(self, text: str) -> str:
        """Remove HTML tags and Strong's numbers from Bolls.life verse text.

        Bolls.life returns verse text like "Wherefore<S>3606</S> he is able<S>1410</S>..."
        """
        text = re.sub(r'<S>\d+</S>', '', text)
        text = re.sub(r'<sup>[^<]*</sup>', '', text)
        text = re.sub(r'<[^>]+>', '', text)
        text = re.sub(r'\s+', ' ', text)
        return text.strip()

    def _fetch_single_verse(self, book_id: int, chapter: int, verse: int) -> Optional[str]:
        self._rate_limit()
        url = f"{self.api_base}/get-verse/{self.translation}/{book_id}/{chapter}/{verse}/"
        try:
            response = requests.get(url, timeout=REQUEST_TIMEOUT)
            if response.status_code == 200:
                data = response.json()
                if data and 'text' in data:
                    return self._clean_html(data['text'])
            else:
                _warn(f"HTTP {response.status_code} for {url}")
        except (requests.RequestException, ValueError) as e:
            _warn(f"Request error for {url}: {e}")
        return None

    def _fetch_chapter(self, book_id: int, chapter: int) -> Optional[str]:
        self._rate_limit()
        url = f"{self.api_base}/get-text/{self.translation}/{book_id}/{chapter}/"
        try:
            response = requests.get(url, timeout=REQUEST_TIMEOUT)
            if response.status_code == 200:
                data = response.json()
                if data and isinstance(data, list):
                    return ' '.join(self._clean_html(v['text']) for v in data if v.get('text'))
            else:
                _warn(f"HTTP {response.status_code} for {url}")
        except (requests.RequestException, ValueError) as e:
            _warn(f"Request error for {url}: {e}")
        return None

    def _fetch_verse_range(self, book_id: int, chapter: int, verses: List[int]) -> Optional[str]:
        self._rate_limit()
        url = f"{self.api_base}/get-verses/"
        payload = [{
            'translation': self.translation,
            'book': book_id,
            'chapter': chapter,
            'verses': verses,
        }]
        try:
            response = requests.post(url, json=payload, timeout=REQUEST_TIMEOUT + 5)
            if response.status_code == 200:
                data = response.json()
                if data and len(data) > 0 and len(data[0]) > 0:
                    return ' '.join(self._clean_html(v['text']) for v in data[0] if v.get('text'))
            else:
                _warn(f"HTTP {response.status_code} for {url}")
        except (requests.RequestException, ValueError) as e:
            _warn(f"Request error for {url}: {e}")
        return None

    def get_verse(self, reference: str) -> Optional[dict]:
        """
        Fetch verse text from API or cache.

        Args:
            reference: Normalized citation, e.g. "John 3:16", "Romans 8:38-39", "Psalms 23"

        Returns:
            Dict with 'text', 'reference' and 'translation', or None if not found
        """
        cache_key = f"{reference}|{self.translation}"
        with self._cache_lock:
            cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        parts = parse_citation(reference)
        if not parts:
            _warn(f"Could not parse reference: {reference}")
            return None

        book_id = self._get_book_id(parts.book)
        if not book_id:
            _warn(f"Unknown book: {parts.book}")
            return None

        chapter = int(parts.chapter)
        if parts.verse_start is None:
            text = self._fetch_chapter(book_id, chapter)
        elif parts.verse_end is None:
            text = self._fetch_single_verse(book_id, chapter, int(parts.verse_start))
        else:
            # Ranges are not required to be ascending
            low, high = sorted((int(parts.verse_start), int(parts.verse_end)))
            text = self._fetch_verse_range(book_id, chapter, list(range(low, high + 1)))

        if not text:
            return None

        result = {'text': text, 'reference': reference, 'translation': self.translation}
        with self._cache_lock:
            self.cache[cache_key] = result
            self._save_cache(dict(self.cache))
        return result

    def lookup_text(self, reference: str) -> str:
        """Like get_verse, but returns the text and raises on failure."""
        result = self.get_verse(reference)
        if not result:
            raise VerseNotFoundError(f"Verse not found: {reference}")
        return result['text']

    def set_translation(self, translation: str):
        """Change the Bible translation being used."""
        self.translation = translation


# ============================================================================
# ESV CLIENT
# ============================================================================

class ESVClient:
    """Client for the ESV passage-text endpoint (token authenticated)."""

    translation = 'ESV'

    def __init__(self, api_key: Optional[str] = None, api_base: str = ESV_API_BASE):
        self.api_key = api_key if api_key is not None else ESV_API_KEY
        self.api_base = api_base

    def lookup_text(self, reference: str) -> str:
        if not self.api_key:
            raise VerseLookupError('ESV API key is not configured')

        params = {
            'q': reference,
            'include-headings': 'false',
            'include-footnotes': 'false',
            'include-verse-numbers': 'true',
            'include-short-copyright': 'false',
            'include-passage-references': 'false',
        }
        try:
            response = requests.get(
                self.api_base,
                params=params,
                headers={'Authorization': f'Token {self.api_key}'},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            _warn(f"ESV request error for {reference}: {e}")
            raise VerseLookupError(f"Failed to load verse: {e}") from e
        except ValueError as e:
            raise VerseLookupError(f"Malformed ESV response for {reference}") from e

        passages = data.get('passages') if isinstance(data, dict) else None
        if not passages or not passages[0].strip():
            raise VerseNotFoundError(f"Verse not found: {reference}")
        return passages[0].strip()

    def get_verse(self, reference: str) -> Optional[dict]:
        try:
            text = self.lookup_text(reference)
        except VerseLookupError:
            return None
        return {'text': text, 'reference': reference, 'translation': self.translation}


def create_client(provider: str = 'bolls', translation: Optional[str] = None):
    """Create a lookup client by provider name ('bolls' or 'esv')."""
    provider = (provider or 'bolls').lower()
    if provider == 'esv':
        return ESVClient()
    if provider == 'bolls':
        return BibleAPIClient(translation=translation or DEFAULT_TRANSLATION)
    raise ValueError(f"Unknown verse provider: {provider}")


# ============================================================================
# ASYNC ADAPTER
# ============================================================================

class AsyncVerseLookup:
    """Runs a synchronous client's lookup_text in a worker thread."""

    def __init__(self, client):
        self.client = client

    async def __call__(self, reference: str) -> str:
        return await asyncio.to_thread(self.client.lookup_text, reference)

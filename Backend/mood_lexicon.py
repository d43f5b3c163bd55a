"""Fixed keyword tables for moods and languages.

Each table is consulted with a fallback mood/language when the key is
unknown: ``chill`` for the lexical and genre-heuristic tables, ``happy`` for
the query-building tables, ``english`` for every language table.
"""

from __future__ import annotations

# Lexical keywords matched against "title artists album".
MOOD_KEYWORDS: dict[str, list[str]] = {
    "happy": ["happy", "joy", "upbeat", "cheerful", "bright", "sunny", "dance", "party"],
    "sad": ["sad", "melancholy", "blue", "lonely", "heartbreak", "tears", "cry", "miss"],
    "chill": ["chill", "relax", "calm", "peaceful", "ambient", "soft", "gentle", "mellow"],
    "angry": ["angry", "rage", "furious", "intense", "heavy", "aggressive", "loud", "power"],
}

# Mood words used to build free-text and random search queries.
SEARCH_KEYWORDS: dict[str, list[str]] = {
    "happy": ["happy", "joy", "upbeat", "cheerful", "party", "dance"],
    "sad": ["sad", "melancholy", "heartbreak", "blue", "lonely"],
    "chill": ["chill", "relax", "calm", "ambient", "lofi"],
    "angry": ["angry", "rage", "heavy", "aggressive", "intense"],
}

# Mood words paired with artist genres in ``<word> genre:<genre>`` queries.
GENRE_QUERY_KEYWORDS: dict[str, list[str]] = {
    "happy": ["happy", "joy", "upbeat", "cheerful", "party"],
    "sad": ["sad", "melancholy", "heartbreak", "blue", "lonely"],
    "chill": ["chill", "relax", "calm", "ambient", "lofi"],
    "angry": ["angry", "rage", "heavy", "aggressive", "intense"],
}

# Genre families: substrings looked for in browse category names.
CATEGORY_HINTS: dict[str, list[str]] = {
    "happy": ["pop", "dance", "party", "workout", "summer"],
    "sad": ["indie", "acoustic", "singer-songwriter", "folk"],
    "chill": ["chill", "ambient", "lounge", "study", "focus"],
    "angry": ["rock", "metal", "punk", "alternative", "grunge"],
}

# Looked for in featured playlist names and descriptions.
FEATURED_KEYWORDS: dict[str, list[str]] = {
    "happy": ["happy", "party", "dance", "upbeat", "summer"],
    "sad": ["sad", "melancholy", "acoustic", "indie"],
    "chill": ["chill", "relax", "ambient", "study", "focus"],
    "angry": ["rock", "metal", "punk", "alternative"],
}

# Secondary heuristic over track text and artist genres.  Exclusion wins.
MOOD_GENRE_SETS: dict[str, dict[str, list[str]]] = {
    "happy": {
        "include": ["happy", "dance", "party", "pop", "dance pop", "bollywood dance",
                    "edm", "house", "funk", "feel good"],
        "exclude": ["sad", "melancholy", "heartbreak", "breakup", "cry", "tears"],
    },
    "sad": {
        "include": ["sad", "melancholy", "romance", "acoustic", "piano",
                    "singer-songwriter", "ballad"],
        "exclude": ["party", "edm", "festival"],
    },
    "chill": {
        "include": ["chill", "relax", "lofi", "ambient", "soft", "acoustic", "indie"],
        "exclude": ["metal", "hardcore", "aggressive"],
    },
    "angry": {
        "include": ["metal", "hard rock", "aggressive", "trap metal", "industrial",
                    "hardcore", "grunge"],
        "exclude": ["lullaby", "ambient", "piano"],
    },
}

# Ready-made genre queries for the random-query fallback.
MOOD_GENRE_QUERIES: dict[str, list[str]] = {
    "happy": ["genre:pop genre:dance", "genre:disco"],
    "sad": ["genre:indie genre:acoustic", "genre:singer-songwriter"],
    "chill": ["genre:ambient genre:chill", "genre:lofi"],
    "angry": ["genre:rock genre:metal", "genre:punk"],
}

# ---------------------------------------------------------------------------
# Languages
# ---------------------------------------------------------------------------

DEFAULT_LANGUAGE = "english"

LANGUAGE_KEYWORDS: dict[str, list[str]] = {
    "hindi": ["hindi", "bollywood", "indian", "desi"],
    "english": ["english", "pop", "rock", "hip hop", "rap"],
    "spanish": ["spanish", "latin", "reggaeton", "flamenco"],
    "korean": ["korean", "k-pop", "korean pop"],
    "japanese": ["japanese", "j-pop", "anime"],
    "french": ["french", "français"],
    "german": ["german", "deutsch"],
    "portuguese": ["portuguese", "brazilian", "samba", "bossa nova"],
}

LANGUAGE_SEARCH_WORDS: dict[str, list[str]] = {
    "hindi": ["hindi", "bollywood"],
    "english": ["pop", "rock"],
    "spanish": ["latin", "spanish"],
    "korean": ["k-pop"],
    "japanese": ["j-pop"],
    "french": ["french"],
    "german": ["german"],
    "portuguese": ["brazilian"],
}

LANGUAGE_RANDOM_WORDS: dict[str, list[str]] = {
    "hindi": ["hindi", "bollywood", "indian"],
    "english": ["pop", "rock", "english"],
    "spanish": ["latin", "spanish", "reggaeton"],
    "korean": ["k-pop", "korean"],
    "japanese": ["j-pop", "japanese", "anime"],
    "french": ["french", "français"],
    "german": ["german", "deutsch"],
    "portuguese": ["brazilian", "portuguese"],
}

LANGUAGE_GENRE_QUERIES: dict[str, list[str]] = {
    "hindi": ["genre:bollywood", "genre:indian"],
    "korean": ["genre:k-pop"],
    "japanese": ["genre:j-pop", "genre:anime"],
}

LANGUAGE_MARKETS: dict[str, str] = {
    "hindi": "IN",
    "english": "US",
    "spanish": "ES",
    "korean": "KR",
    "japanese": "JP",
    "french": "FR",
    "german": "DE",
    "portuguese": "BR",
}

BASE_MARKETS: list[str] = ["US", "GB", "IN", "AU", "CA"]


def lookup(table: dict[str, list[str]], key: str, fallback: str) -> list[str]:
    return table.get(key) or table[fallback]

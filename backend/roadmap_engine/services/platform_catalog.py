"""Static catalog of learning platforms and the default platform lookup."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Tuple
from urllib.parse import quote

from roadmap_engine.services.output_schemas import PlatformRecommendation


@dataclass(frozen=True)
class Platform:
    id: str
    name: str
    description: str
    url: str
    subjects: Tuple[str, ...]
    features: Tuple[str, ...]
    pricing: Literal["free", "freemium", "paid"]
    quality: int
    search_url: Optional[str] = None

    def search_link(self, query: str) -> str:
        if self.search_url:
            return self.search_url.replace("{query}", quote(query))
        return self.url

    def resource_types(self) -> List[str]:
        lowered = " ".join(self.features).lower()
        types: List[str] = []
        if "video" in lowered:
            types.append("video")
        if "practice" in lowered or "interactive" in lowered or "exercise" in lowered:
            types.append("exercise")
        if "article" in lowered or "documentation" in lowered or "notes" in lowered or "tutorial" in lowered:
            types.append("article")
        return types


PLATFORMS: Tuple[Platform, ...] = (
    Platform(
        id="khan_academy",
        name="Khan Academy",
        description="Free lessons with practice exercises and videos",
        url="https://www.khanacademy.org",
        search_url="https://www.khanacademy.org/search?page_search_query={query}",
        subjects=("math", "algebra", "geometry", "calculus", "statistics", "trigonometry", "science", "physics",
                  "chemistry", "biology", "economics", "computing", "history", "grammar"),
        features=("Video lessons", "Practice exercises", "Progress tracking"),
        pricing="free",
        quality=5,
    ),
    Platform(
        id="pauls_math",
        name="Paul's Online Math Notes",
        description="Detailed calculus and algebra notes with worked practice problems",
        url="https://tutorial.math.lamar.edu",
        subjects=("math", "algebra", "calculus", "differential equations"),
        features=("Detailed notes", "Practice problems", "Cheat sheets"),
        pricing="free",
        quality=5,
    ),
    Platform(
        id="wolfram_alpha",
        name="Wolfram Alpha",
        description="Computation engine for checking math and science answers",
        url="https://www.wolframalpha.com",
        search_url="https://www.wolframalpha.com/input?i={query}",
        subjects=("math", "calculus", "algebra", "statistics", "physics", "chemistry"),
        features=("Step-by-step solutions", "Computation engine"),
        pricing="freemium",
        quality=5,
    ),
    Platform(
        id="desmos",
        name="Desmos",
        description="Free graphing calculator for exploring functions",
        url="https://www.desmos.com/calculator",
        subjects=("math", "algebra", "geometry", "calculus"),
        features=("Graphing calculator", "Interactive activities"),
        pricing="free",
        quality=5,
    ),
    Platform(
        id="freecodecamp",
        name="freeCodeCamp",
        description="Interactive coding curriculum with projects",
        url="https://www.freecodecamp.org",
        search_url="https://www.freecodecamp.org/news/search/?query={query}",
        subjects=("coding", "programming", "web development", "javascript", "python", "html", "css", "sql"),
        features=("Interactive coding", "Projects", "Tutorials"),
        pricing="free",
        quality=5,
    ),
    Platform(
        id="mdn",
        name="MDN Web Docs",
        description="Reference documentation for web technologies",
        url="https://developer.mozilla.org",
        search_url="https://developer.mozilla.org/en-US/search?q={query}",
        subjects=("coding", "web development", "javascript", "html", "css"),
        features=("Documentation", "Tutorials"),
        pricing="free",
        quality=5,
    ),
    Platform(
        id="leetcode",
        name="LeetCode",
        description="Coding challenges for algorithms and interviews",
        url="https://leetcode.com",
        search_url="https://leetcode.com/problemset/all/?search={query}",
        subjects=("coding", "algorithms", "data structures", "python", "java"),
        features=("Coding challenges", "Practice problems"),
        pricing="freemium",
        quality=4,
    ),
    Platform(
        id="phet",
        name="PhET Simulations",
        description="Interactive physics and chemistry simulations",
        url="https://phet.colorado.edu",
        search_url="https://phet.colorado.edu/en/simulations/filter?q={query}",
        subjects=("science", "physics", "chemistry", "biology"),
        features=("Interactive simulations", "Lab activities"),
        pricing="free",
        quality=5,
    ),
    Platform(
        id="duolingo",
        name="Duolingo",
        description="Daily language practice in short lessons",
        url="https://www.duolingo.com",
        subjects=("language", "spanish", "french", "german", "japanese", "korean", "chinese", "italian", "portuguese"),
        features=("Speaking practice", "Daily streaks", "Stories"),
        pricing="freemium",
        quality=4,
    ),
    Platform(
        id="quizlet",
        name="Quizlet",
        description="Flashcards and practice tests for memorization",
        url="https://quizlet.com",
        search_url="https://quizlet.com/search?query={query}&type=sets",
        subjects=("test prep", "language", "vocabulary", "biology", "history", "sat", "act"),
        features=("Flashcards", "Practice tests"),
        pricing="freemium",
        quality=4,
    ),
    Platform(
        id="collegeboard",
        name="College Board",
        description="Official SAT and AP practice material",
        url="https://www.collegeboard.org",
        subjects=("test prep", "sat", "ap"),
        features=("Official practice tests", "AP resources"),
        pricing="free",
        quality=5,
    ),
    Platform(
        id="musictheory",
        name="musictheory.net",
        description="Interactive music theory lessons and ear training",
        url="https://www.musictheory.net",
        subjects=("music", "music theory", "piano", "guitar"),
        features=("Interactive lessons", "Exercises"),
        pricing="free",
        quality=5,
    ),
    Platform(
        id="skillshare",
        name="Skillshare",
        description="Project-based creative video classes",
        url="https://www.skillshare.com",
        search_url="https://www.skillshare.com/search?query={query}",
        subjects=("art", "drawing", "illustration", "graphic design", "animation", "photography"),
        features=("Video classes", "Projects"),
        pricing="paid",
        quality=4,
    ),
    Platform(
        id="coursera",
        name="Coursera",
        description="University courses across most subjects",
        url="https://www.coursera.org",
        search_url="https://www.coursera.org/search?query={query}",
        subjects=("all",),
        features=("University courses", "Certificates"),
        pricing="freemium",
        quality=5,
    ),
    Platform(
        id="youtube",
        name="YouTube",
        description="Free video explanations on nearly any topic",
        url="https://www.youtube.com",
        search_url="https://www.youtube.com/results?search_query={query}+tutorial",
        subjects=("all",),
        features=("Free videos", "All topics"),
        pricing="free",
        quality=4,
    ),
)

SUBJECT_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "math": ("algebra", "geometry", "calculus", "trigonometry", "statistics", "pre-algebra", "arithmetic",
             "linear algebra", "differential equations", "pre-calculus", "discrete math"),
    "science": ("physics", "chemistry", "biology", "earth science", "astronomy"),
    "coding": ("programming", "web development", "javascript", "python", "java", "html", "css", "react",
               "sql", "algorithms", "data structures"),
    "language": ("english", "spanish", "french", "german", "japanese", "korean", "chinese", "italian",
                 "portuguese", "grammar", "writing"),
    "test prep": ("sat", "act", "gre", "gmat", "ielts", "toefl"),
    "music": ("piano", "guitar", "music theory", "drums", "violin", "singing"),
    "art": ("drawing", "painting", "illustration", "graphic design", "ui design", "animation"),
}


def _contains_term(text: str, term: str) -> bool:
    return re.search(rf"(?<![a-z]){re.escape(term)}(?![a-z])", text) is not None


def detect_category(text: str) -> Optional[str]:
    """Return the subject category a goal belongs to, or ``None``."""
    normalized = (text or "").lower()
    for category, keywords in SUBJECT_CATEGORIES.items():
        if _contains_term(normalized, category):
            return category
        if any(_contains_term(normalized, keyword) for keyword in keywords):
            return category
    return None


def platforms_for_subject(subject: str, limit: int = 3) -> List[Platform]:
    """Rank catalog platforms by relevance to ``subject``."""
    normalized = (subject or "").lower().strip()
    scored: List[Tuple[int, int, Platform]] = []
    for position, platform in enumerate(PLATFORMS):
        score = 0
        if normalized:
            if normalized in platform.subjects:
                score += 100
            if any(normalized in item or item in normalized for item in platform.subjects if item != "all"):
                score += 50
            if normalized in platform.name.lower():
                score += 30
            if normalized in platform.description.lower():
                score += 20
        if "all" in platform.subjects and score == 0:
            score += 10
        if score == 0:
            continue
        score += platform.quality * 2
        if platform.pricing == "free":
            score += 5
        scored.append((score, -position, platform))
    scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [platform for _, _, platform in scored[:limit]]


def to_recommendation(platform: Platform, query: str) -> PlatformRecommendation:
    return PlatformRecommendation(
        id=platform.id,
        name=platform.name,
        description=platform.description,
        url=platform.url,
        search_url=platform.search_link(query) if platform.search_url else None,
        resource_types=platform.resource_types(),
        search_url_template=platform.search_url,
    )


def lookup_platforms(subject: str, query: str) -> List[PlatformRecommendation]:
    """Default ``PlatformLookup``: the top three catalog platforms for a subject."""
    return [to_recommendation(platform, query) for platform in platforms_for_subject(subject, 3)]

"""Sport catalogue and skill levels used to validate games."""

from __future__ import annotations

SPORTS = [
    "football",
    "basketball",
    "soccer",
    "tennis",
    "volleyball",
    "badminton",
    "table-tennis",
    "cricket",
    "baseball",
    "softball",
    "rugby",
    "hockey",
    "ice-hockey",
    "swimming",
    "running",
    "cycling",
    "golf",
    "sepak-takraw",
    "kabaddi",
    "kho-kho",
    "gilli-danda",
    "carrom",
    "chess",
    "mahjong",
    "go",
    "xiangqi",
    "karate",
    "taekwondo",
    "judo",
    "kung-fu",
    "muay-thai",
    "boxing",
    "wrestling",
    "jiu-jitsu",
    "aikido",
    "capoeira",
    "dancing",
    "zumba",
    "aerobic-dance",
    "hip-hop-dance",
    "salsa",
    "bhangra",
    "bollywood-dance",
    "k-pop-dance",
    "ballroom-dancing",
    "latin-dance",
    "yoga",
    "pilates",
    "meditation",
    "tai-chi",
    "qigong",
    "stretching",
    "calisthenics",
    "gym",
    "weightlifting",
    "crossfit",
    "functional-training",
    "cardio",
    "hiit",
    "bodybuilding",
    "hiking",
    "trekking",
    "rock-climbing",
    "mountaineering",
    "camping",
    "kayaking",
    "canoeing",
    "surfing",
    "skateboarding",
    "rollerblading",
    "archery",
    "shooting",
    "fishing",
    "darts",
    "billiards",
    "snooker",
    "bowling",
    "skating",
    "ice-skating",
    "skiing",
    "snowboarding",
]

# Names that plain title-casing gets wrong.
SPORT_DISPLAY_NAMES = {
    "pingpong": "Table Tennis",
    "k-pop-dance": "K-Pop Dance",
    "crossfit": "CrossFit",
    "hiit": "HIIT",
}

SKILL_LEVELS = ("beginner", "intermediate", "advanced", "all")


def sport_display_name(sport: str) -> str:
    """Return the user-facing name for a sport slug."""
    if sport in SPORT_DISPLAY_NAMES:
        return SPORT_DISPLAY_NAMES[sport]
    if sport in SPORTS:
        return " ".join(part.capitalize() for part in sport.split("-"))
    # Unknown slugs only get their first letter raised.
    return (sport[:1].upper() + sport[1:]).replace("-", " ")


def sports_for_display() -> list[dict[str, str]]:
    entries = [{"value": sport, "label": sport_display_name(sport)} for sport in SPORTS]
    return sorted(entries, key=lambda entry: entry["label"].lower())


def is_valid_sport(sport: str | None) -> bool:
    return bool(sport) and sport in SPORTS

"""
Shakti Score: a display-only trust and completeness metric for workers.

This is the only implementation of the formula. It is a pure function of a
``WorkerProfile`` snapshot and is recomputed on every read; a stored score
is never treated as authoritative.

Each category is capped on its own, and the total is clamped to [0, 100]:

    identity                 25   name, adult age, phone, email, gender, ID number
    skills_experience        30   skills (+bonus for 3+), experience, category, salary
    languages                15   any language, multilingual bonus, English bonus
    location                 10   village, district, state, pincode
    preferences              10   availability, work type, work radius, bio
    additional                5   documents, emergency contact
    verification_performance  5   verified identity, rating, completed jobs
"""

from typing import Dict

from grameenlink.marketplace.scoring.models import WorkerProfile

MAX_SCORE = 100
ADULT_AGE = 18
MIN_BIO_LENGTH = 50

CATEGORY_CAPS: Dict[str, int] = {
    "identity": 25,
    "skills_experience": 30,
    "languages": 15,
    "location": 10,
    "preferences": 10,
    "additional": 5,
    "verification_performance": 5,
}


def _present(value) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


def _identity(p: WorkerProfile) -> int:
    points = 0
    if _present(p.name):
        points += 5
    if p.age is not None and p.age >= ADULT_AGE:
        points += 5
    if _present(p.phone):
        points += 5
    if _present(p.email):
        points += 3
    if _present(p.gender):
        points += 3
    if _present(p.id_number):
        points += 4
    return points


def _skills_experience(p: WorkerProfile) -> int:
    points = 0
    if p.skills:
        points += 10
    if len(p.skills) >= 3:
        points += 3
    if _present(p.experience):
        points += 7
    if _present(p.preferred_category):
        points += 5
    if _present(p.expected_salary):
        points += 5
    return points


def _languages(p: WorkerProfile) -> int:
    points = 0
    if p.languages:
        points += 8
    if len(p.languages) >= 2:
        points += 4
    if any(lang.casefold() == "english" for lang in p.languages):
        points += 3
    return points


def _location(p: WorkerProfile) -> int:
    points = 0
    if _present(p.village):
        points += 3
    if _present(p.district):
        points += 3
    if _present(p.state):
        points += 2
    if _present(p.pincode):
        points += 2
    return points


def _preferences(p: WorkerProfile) -> int:
    points = 0
    if _present(p.availability):
        points += 3
    if _present(p.preferred_work_type):
        points += 3
    if p.work_radius:
        points += 2
    if p.bio and len(p.bio.strip()) > MIN_BIO_LENGTH:
        points += 2
    return points


def _additional(p: WorkerProfile) -> int:
    points = 0
    if p.documents > 0:
        points += 3
    if _present(p.emergency_contact):
        points += 2
    return points


def _verification_performance(p: WorkerProfile) -> int:
    points = 0
    if p.is_verified:
        points += 3
    if p.rating_average > 0:
        points += 2
    if p.completed_jobs > 0:
        points += 2
    return points


_CATEGORIES = {
    "identity": _identity,
    "skills_experience": _skills_experience,
    "languages": _languages,
    "location": _location,
    "preferences": _preferences,
    "additional": _additional,
    "verification_performance": _verification_performance,
}


def score_breakdown(profile: WorkerProfile) -> Dict[str, int]:
    """Points earned per category, each already capped."""
    return {
        name: max(0, min(fn(profile), CATEGORY_CAPS[name])) for name, fn in _CATEGORIES.items()
    }


def compute_score(profile: WorkerProfile) -> int:
    """Compute the Shakti Score for a profile snapshot, in [0, 100]."""
    total = sum(score_breakdown(profile).values())
    return max(0, min(total, MAX_SCORE))


# Fields tracked for the profile completion percentage
_COMPLETION_CHECKS = (
    lambda p: _present(p.name),
    lambda p: p.age is not None and p.age >= ADULT_AGE,
    lambda p: _present(p.phone),
    lambda p: _present(p.email),
    lambda p: _present(p.gender),
    lambda p: _present(p.id_number),
    lambda p: bool(p.skills),
    lambda p: _present(p.experience),
    lambda p: _present(p.preferred_category),
    lambda p: _present(p.expected_salary),
    lambda p: bool(p.languages),
    lambda p: _present(p.village),
    lambda p: _present(p.availability),
    lambda p: _present(p.preferred_work_type),
    lambda p: bool(p.bio) and len(p.bio.strip()) > MIN_BIO_LENGTH,
)


def profile_completion(profile: WorkerProfile) -> int:
    """Percentage of tracked profile fields that are filled in."""
    completed = sum(1 for check in _COMPLETION_CHECKS if check(profile))
    return round(completed * 100 / len(_COMPLETION_CHECKS))

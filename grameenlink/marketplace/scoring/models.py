"""Worker profile snapshot read by the trust score calculator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional


class VerificationStatus(str, Enum):
    """Identity verification state of a worker."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


def _clean_set(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    if not values:
        return frozenset()
    return frozenset(v.strip() for v in values if isinstance(v, str) and v.strip())


@dataclass(frozen=True)
class WorkerProfile:
    """Score-relevant subset of a worker profile.

    Owned by worker identity management; the marketplace core only reads it.
    Collections are normalized to frozensets of non-blank strings.
    """

    # Identity
    name: Optional[str] = None
    age: Optional[int] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    gender: Optional[str] = None
    id_number: Optional[str] = None
    # Skills and experience
    skills: FrozenSet[str] = field(default_factory=frozenset)
    experience: Optional[str] = None
    preferred_category: Optional[str] = None
    expected_salary: Optional[str] = None
    # Languages
    languages: FrozenSet[str] = field(default_factory=frozenset)
    # Location
    village: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    # Work preferences
    availability: Optional[str] = None
    preferred_work_type: Optional[str] = None
    work_radius: Optional[int] = None
    bio: Optional[str] = None
    # Additional information
    documents: int = 0
    emergency_contact: Optional[str] = None
    # Verification and performance
    verification_status: str = VerificationStatus.PENDING.value
    rating_average: float = 0.0
    rating_count: int = 0
    completed_jobs: int = 0

    def __post_init__(self):
        object.__setattr__(self, "skills", _clean_set(self.skills))
        object.__setattr__(self, "languages", _clean_set(self.languages))
        status = self.verification_status
        if isinstance(status, Enum):
            status = status.value
        if status not in {s.value for s in VerificationStatus}:
            raise ValueError(f"Invalid verification status: {status!r}")
        object.__setattr__(self, "verification_status", status)
        if self.rating_average < 0 or self.rating_average > 5:
            raise ValueError("rating_average must be between 0 and 5")
        for name in ("documents", "rating_count", "completed_jobs"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.VERIFIED.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "age": self.age,
            "phone": self.phone,
            "email": self.email,
            "gender": self.gender,
            "id_number": self.id_number,
            "skills": sorted(self.skills),
            "experience": self.experience,
            "preferred_category": self.preferred_category,
            "expected_salary": self.expected_salary,
            "languages": sorted(self.languages),
            "village": self.village,
            "district": self.district,
            "state": self.state,
            "pincode": self.pincode,
            "availability": self.availability,
            "preferred_work_type": self.preferred_work_type,
            "work_radius": self.work_radius,
            "bio": self.bio,
            "documents": self.documents,
            "emergency_contact": self.emergency_contact,
            "verification_status": self.verification_status,
            "rating_average": self.rating_average,
            "rating_count": self.rating_count,
            "completed_jobs": self.completed_jobs,
        }

"""Tests for the Shakti Score calculator."""

from dataclasses import replace

import pytest

from grameenlink.marketplace.scoring import (
    CATEGORY_CAPS,
    MAX_SCORE,
    WorkerProfile,
    compute_score,
    profile_completion,
    score_breakdown,
)

LONG_BIO = "Experienced farm hand, comfortable with tractors, irrigation and harvest work."


@pytest.fixture
def full_profile():
    return WorkerProfile(
        name="Ravi Kumar",
        age=28,
        phone="9876543210",
        email="ravi@example.com",
        gender="male",
        id_number="1234-5678-9012",
        skills={"farming", "driving", "masonry"},
        experience="5 years",
        preferred_category="agriculture",
        expected_salary="500/day",
        languages={"Hindi", "english"},
        village="Rampur",
        district="Sitapur",
        state="Uttar Pradesh",
        pincode="261001",
        availability="full-time",
        preferred_work_type="daily",
        work_radius=10,
        bio=LONG_BIO,
        documents=2,
        emergency_contact="Sita",
        verification_status="verified",
        rating_average=4.2,
        rating_count=8,
        completed_jobs=3,
    )


class TestComputeScore:
    def test_full_profile_scores_max(self, full_profile):
        assert compute_score(full_profile) == MAX_SCORE

    def test_empty_profile_scores_zero(self):
        assert compute_score(WorkerProfile()) == 0

    def test_sparse_profile_is_low_and_positive(self):
        # No skills, no languages, not verified
        profile = WorkerProfile(name="Asha", phone="9000000000", village="Kheri")
        assert compute_score(profile) == 13

    def test_pure(self, full_profile):
        assert compute_score(full_profile) == compute_score(full_profile)

    def test_minor_gets_no_age_points(self):
        assert score_breakdown(WorkerProfile(age=16))["identity"] == 0
        assert score_breakdown(WorkerProfile(age=18))["identity"] == 5

    def test_skill_bonus_needs_three_skills(self):
        assert score_breakdown(WorkerProfile(skills={"a", "b"}))["skills_experience"] == 10
        assert score_breakdown(WorkerProfile(skills={"a", "b", "c"}))["skills_experience"] == 13

    def test_blank_values_do_not_count(self):
        profile = WorkerProfile(name="   ", skills={" ", ""}, languages={""})
        assert compute_score(profile) == 0

    def test_english_bonus_is_case_insensitive(self):
        assert score_breakdown(WorkerProfile(languages={"ENGLISH"}))["languages"] == 11

    def test_short_bio_earns_nothing(self):
        assert score_breakdown(WorkerProfile(bio="Hard worker"))["preferences"] == 0
        assert score_breakdown(WorkerProfile(bio=LONG_BIO))["preferences"] == 2

    def test_verification_category_is_capped(self, full_profile):
        breakdown = score_breakdown(full_profile)
        assert breakdown["verification_performance"] == 5

    def test_breakdown_respects_caps(self, full_profile):
        breakdown = score_breakdown(full_profile)
        assert set(breakdown) == set(CATEGORY_CAPS)
        for name, points in breakdown.items():
            assert 0 <= points <= CATEGORY_CAPS[name]
        assert sum(CATEGORY_CAPS.values()) == MAX_SCORE

    @pytest.mark.parametrize("completed_jobs", [0, 1, 50])
    def test_always_in_range(self, full_profile, completed_jobs):
        score = compute_score(replace(full_profile, completed_jobs=completed_jobs))
        assert 0 <= score <= MAX_SCORE


class TestWorkerProfile:
    def test_invalid_verification_status(self):
        with pytest.raises(ValueError, match="Invalid verification status"):
            WorkerProfile(verification_status="approved")

    def test_negative_counts(self):
        with pytest.raises(ValueError, match="completed_jobs cannot be negative"):
            WorkerProfile(completed_jobs=-1)

    def test_to_dict_sorts_collections(self):
        data = WorkerProfile(skills={"b", "a"}).to_dict()
        assert data["skills"] == ["a", "b"]


class TestProfileCompletion:
    def test_full(self, full_profile):
        assert profile_completion(full_profile) == 100

    def test_empty(self):
        assert profile_completion(WorkerProfile()) == 0

    def test_partial(self):
        # 3 of 15 tracked fields
        profile = WorkerProfile(name="Asha", phone="9000000000", village="Kheri")
        assert profile_completion(profile) == 20

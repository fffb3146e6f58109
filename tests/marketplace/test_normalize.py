"""Tests for boundary normalization of loosely shaped records."""

from decimal import Decimal

import pytest

from grameenlink.marketplace.normalize import (
    normalize_application,
    normalize_job,
    normalize_worker_profile,
)


class TestNormalizeJob:
    def test_legacy_document(self):
        job = normalize_job(
            {
                "_id": "64f0c1",
                "employer": {"_id": "emp-9", "companyName": "Shree Textiles"},
                "title": " Loom operator ",
                "workersNeeded": "3",
                "salary": "550",
                "status": "open",
                "location": "Surat",
                "createdAt": "2024-02-01T10:00:00.000Z",
            }
        )
        assert job.id == "64f0c1"
        assert job.employer_id == "emp-9"
        assert job.title == "Loom operator"
        assert job.workers_needed == 3
        assert job.salary == 550.0
        assert job.status == "active"
        assert job.company_name == "Shree Textiles"
        assert job.location == {"address": "Surat"}
        assert job.created_at.year == 2024

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ({"company": "A"}, "A"),
            ({"companyName": "B"}, "B"),
            ({"company_name": "C", "company": "ignored"}, "C"),
            ({"employer": {"_id": "e", "company": {"name": "D"}}}, "D"),
        ],
    )
    def test_company_aliases(self, raw, expected):
        base = {"id": "j", "employer_id": "e"}
        base.update(raw)
        assert normalize_job(base).company_name == expected

    def test_canonical_shape_passes_through(self):
        data = {"id": "j", "employer_id": "e", "status": "in-progress", "salary": 100}
        assert normalize_job(data).status == "in-progress"

    def test_bad_salary(self):
        with pytest.raises(ValueError, match="Expected a number"):
            normalize_job({"id": "j", "employer_id": "e", "salary": "a lot"})

    def test_salary_keeps_exact_decimal(self):
        job = normalize_job({"id": "j", "employer_id": "e", "wage": 0.1})
        assert job.salary == Decimal("0.1")

    @pytest.mark.parametrize("salary", ["inf", "NaN", float("inf"), {"amount": 5}])
    def test_non_numeric_salary(self, salary):
        with pytest.raises(ValueError):
            normalize_job({"id": "j", "employer_id": "e", "salary": salary})


class TestNormalizeApplication:
    def test_populated_references(self):
        app = normalize_application(
            {
                "_id": "a1",
                "job": {"_id": "j1", "employer": "e1", "title": "Mason"},
                "worker": {"_id": "w1", "name": "Ravi"},
                "status": "selected",
                "isFinalSelection": True,
                "paymentStatus": "pending",
                "paymentAmount": "300",
                "applicationDetails": {"appliedAt": "2024-01-05T09:00:00Z"},
                "statusHistory": [
                    {"status": "pending", "changedAt": "2024-01-05T09:00:00Z"},
                    {"status": "accepted", "changedAt": None},
                ],
            }
        )
        assert app.id == "a1"
        assert app.job_id == "j1"
        assert app.worker_id == "w1"
        assert app.employer_id == "e1"
        assert app.status == "accepted"
        assert app.is_final_selection
        assert app.payment_amount == 300.0
        assert app.applied_at.day == 5
        assert [h.status for h in app.status_history] == ["pending"]

    def test_job_completed_date_alias(self):
        app = normalize_application(
            {
                "id": "a1",
                "jobId": "j1",
                "workerId": "w1",
                "employerId": "e1",
                "status": "completed",
                "jobCompletedDate": "2024-01-07T17:00:00Z",
            }
        )
        assert app.completed_at.day == 7

    def test_missing_reference_is_rejected(self):
        with pytest.raises(ValueError, match="requires job, worker and employer"):
            normalize_application({"id": "a1", "job": "j1", "worker": "w1"})


class TestNormalizeWorkerProfile:
    def test_registration_form_shape(self):
        profile = normalize_worker_profile(
            {
                "name": "Sunita Devi",
                "age": "32",
                "phoneNumber": "9876543210",
                "aadharNumber": "1234-5678-9012",
                "skills": "Tailoring, Embroidery, ",
                "language": ["Hindi", "English"],
                "location": {"village": "Kheri", "district": "Lakhimpur", "state": "UP", "pincode": 262701},
                "rating": {"average": 4.5, "count": 12},
                "documents": [{"type": "aadhar"}, {"type": "photo"}],
                "emergencyContact": {"name": "Ramesh", "phone": "999"},
                "verificationStatus": "Verified",
                "completedJobs": 4,
                "experience": 5,
            }
        )
        assert profile.age == 32
        assert profile.phone == "9876543210"
        assert profile.id_number == "1234-5678-9012"
        assert profile.skills == {"Tailoring", "Embroidery"}
        assert profile.languages == {"Hindi", "English"}
        assert profile.village == "Kheri"
        assert profile.pincode == "262701"
        assert profile.rating_average == 4.5
        assert profile.rating_count == 12
        assert profile.documents == 2
        assert profile.emergency_contact == "Ramesh"
        assert profile.is_verified
        assert profile.experience == "5"

    def test_empty_profile(self):
        profile = normalize_worker_profile({})
        assert profile.skills == frozenset()
        assert profile.rating_average == 0.0
        assert profile.documents == 0

    def test_invalid_rating(self):
        with pytest.raises(ValueError, match="rating_average"):
            normalize_worker_profile({"rating": {"average": 9}})

    def test_non_text_fields_become_text(self):
        profile = normalize_worker_profile(
            {"bio": 12345, "name": 7, "availability": ["weekdays"], "skills": 3}
        )
        assert profile.bio == "12345"
        assert profile.name == "7"
        assert profile.availability == "['weekdays']"
        assert profile.skills == {"3"}

    @pytest.mark.parametrize(
        "raw",
        [
            {"workRadius": "inf"},
            {"age": float("inf")},
            {"age": "nan"},
            {"rating": {"average": 4, "count": "1e400"}},
            {"completedJobs": "many"},
        ],
    )
    def test_non_finite_numbers_rejected(self, raw):
        with pytest.raises(ValueError, match="Expected a"):
            normalize_worker_profile(raw)

"""Shared fixtures: an in-memory local gateway seeded with a small catalogue."""

from __future__ import annotations

import pytest

from medfly.context import EditorialContext, PlatformContext
from medfly.gateway.local import LocalGateway

SEED = {
    "years": [
        {"id": "y1", "year_number": 1, "year_name": "First Year"},
        {"id": "y2", "year_number": 2, "year_name": "Second Year"},
    ],
    "lecturers": [
        {"id": "l1", "name": "Amina Odhiambo", "title": "Dr.", "email": "a.odhiambo@example.edu"},
        {"id": "l2", "name": "Peter Mwangi", "title": "Prof."},
        {"id": "l3", "name": "Grace Wanjiru", "title": "Dr.", "is_active": False},
    ],
    "units": [
        {"id": "u1", "unit_name": "Cardiovascular Physiology", "unit_code": "PHY101", "year_id": "y1", "lecturer_id": "l1"},
        {"id": "u2", "unit_name": "Neuroanatomy", "unit_code": "ANA201", "year_id": "y2", "lecturer_id": "l2"},
    ],
    "tags": [
        {"id": "t1", "tag_name": "cardiology", "color_code": "#DC2626"},
        {"id": "t2", "tag_name": "exam-prep"},
    ],
    "notes": [
        {
            "id": "n1", "title": "Cardiac Cycle", "slug": "cardiac-cycle",
            "content": "<p>Systole and diastole alternate.</p>", "excerpt": "Phases of the heartbeat.",
            "unit_id": "u1", "year_id": "y1", "lecturer_id": "l1", "difficulty_level": "Beginner",
            "is_published": True, "is_featured": True, "view_count": 120,
            "created_at": "2024-01-10T09:00:00+00:00",
        },
        {
            "id": "n2", "title": "Heart Sounds", "slug": "heart-sounds",
            "content": "<p>S1 and S2 mark valve closure.</p>", "excerpt": "Auscultation basics.",
            "unit_id": "u1", "year_id": "y1", "lecturer_id": "l1", "difficulty_level": "Intermediate",
            "is_published": True, "view_count": 45,
            "created_at": "2024-02-01T09:00:00+00:00",
        },
        {
            "id": "n3", "title": "Cranial Nerves", "slug": "cranial-nerves",
            "content": "<p>Twelve pairs from olfactory to hypoglossal.</p>", "excerpt": "Origins and testing.",
            "unit_id": "u2", "year_id": "y2", "lecturer_id": "l2", "difficulty_level": "Advanced",
            "is_published": True, "view_count": 80,
            "created_at": "2024-03-05T09:00:00+00:00",
        },
        {
            "id": "n4", "title": "Beta Blockers", "slug": "beta-blockers",
            "content": "<p>Draft.</p>", "excerpt": "Mechanism and uses.",
            "unit_id": "u2", "year_id": "y2", "difficulty_level": "Intermediate",
            "is_published": False,
            "created_at": "2024-03-20T09:00:00+00:00",
        },
    ],
    "note_tags": [
        {"id": "nt1", "note_id": "n1", "tag_id": "t1"},
        {"id": "nt2", "note_id": "n1", "tag_id": "t2"},
    ],
    "categories": [
        {"id": "c1", "name": "Study Tips", "slug": "study-tips"},
        {"id": "c2", "name": "Announcements", "slug": "announcements"},
    ],
    "posts": [
        {
            "id": "p1", "title": "Welcome to Medfly", "slug": "welcome-to-medfly",
            "content": "<p>Browse notes by year.</p>", "excerpt": "What the platform offers.",
            "category_id": "c2", "published": True, "created_at": "2024-01-01T08:00:00+00:00",
        },
        {
            "id": "p2", "title": "How to Revise Anatomy", "slug": "how-to-revise-anatomy",
            "content": "<p>Draw every structure twice.</p>", "excerpt": "Spaced repetition.",
            "category_id": "c1", "published": True, "created_at": "2024-02-15T08:00:00+00:00",
        },
        {
            "id": "p3", "title": "Exam Timetable", "slug": "exam-timetable",
            "content": "<p>Coming soon.</p>", "excerpt": "Draft timetable.",
            "category_id": "c2", "published": False, "created_at": "2024-03-01T08:00:00+00:00",
        },
    ],
}


@pytest.fixture()
def gateway():
    with LocalGateway(":memory:") as gw:
        yield gw


@pytest.fixture()
def seeded(gateway: LocalGateway) -> LocalGateway:
    gateway.load_seed(SEED)
    return gateway


@pytest.fixture()
def platform(seeded: LocalGateway):
    ctx = PlatformContext(seeded)
    ctx.start()
    yield ctx
    ctx.stop()


@pytest.fixture()
def editorial(seeded: LocalGateway):
    ctx = EditorialContext(seeded)
    ctx.start()
    yield ctx
    ctx.stop()

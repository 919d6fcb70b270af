from datetime import datetime, timezone

import pytest

from catalog import default_catalog
from permissions import ALL_PAGES, PageSet, Role, UserProfile
from records import create_record
from repository import load_demo_repository

PAGE_ID = "prioritization-matrix"
NOW = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)

# Worked example: 1.00 + 1.00 + 0.75 + 0.60 + 0.30 + 0.40 + 0.10 = 4.15
WORKED_EXAMPLE_RATINGS = {
    "safety_compliance": 4,
    "functionality_impact": 5,
    "frequency_of_use": 5,
    "number_of_beneficiaries": 4,
    "cost_efficiency": 3,
    "strategic_importance": 4,
    "disaster_resilience": 2,
}


def uniform_ratings(value: int) -> dict:
    return {c.id: value for c in default_catalog()}


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def form_data():
    return {
        "title": "Library Roof Leak Repair",
        "location": "Main Library, 3rd Floor",
        "campus": "CSU Main Campus",
        "college": "CCIS",
        "category": "Infrastructure",
        "assessment_date": "2024-02-28",
        "assessor": "Campus Facilities Team",
        "criteria_scores": dict(WORKED_EXAMPLE_RATINGS),
        "estimated_cost": 450000,
        "estimated_beneficiaries": 300,
        "urgency": "Within 30 days",
        "description": "Water ingress damaging stacks.",
        "justification": "Books and equipment at risk.",
        "status": "Under Review",
    }


@pytest.fixture
def global_admin():
    return UserProfile(name="PMO Administrator", role=Role.ADMIN, page_scope=ALL_PAGES)


@pytest.fixture
def page_admin():
    return UserProfile(name="Facilities Coordinator", role=Role.STAFF, page_scope=PageSet(frozenset({PAGE_ID})))


@pytest.fixture
def contributor():
    return UserProfile(name="Agricultural Department Head", role=Role.STAFF, page_scope=PageSet(frozenset({"laboratory-csu-main-cc"})))


@pytest.fixture
def editor_on_page():
    return UserProfile(name="Guest Editor", role=Role.EDITOR, page_scope=PageSet(frozenset({PAGE_ID})))


@pytest.fixture
def draft_record(form_data, catalog):
    return create_record(form_data, "Agricultural Department Head", catalog, now=NOW)


@pytest.fixture
def demo_repo(catalog):
    return load_demo_repository(catalog)

"""
Shared pytest fixtures for the Clinic Rota Service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - default_org: Pre-created Organisation entity
    - ctx: RotaContext for the default organisation on a fixed clock
    - site / rooms / staff: a small clinic to schedule against
"""

from datetime import date, datetime, timezone

import pytest

from clinic_ops import create_app
from clinic_ops.context import RotaContext
from clinic_ops.models import db as _db

# Wednesday; its rota week starts Monday 2024-06-03
FIXED_NOW = datetime(2024, 6, 5, 9, 30, tzinfo=timezone.utc)
WEEK_START = date(2024, 6, 3)


def fixed_clock():
    return FIXED_NOW


def _ensure_default_org():
    from clinic_ops.models.organisation import Organisation
    org = Organisation.query.filter_by(slug="test-default").first()
    if not org:
        org = Organisation(name="Test Default", slug="test-default")
        _db.session.add(org)
        _db.session.commit()
    return org.id


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["CLOCK"] = fixed_clock
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        _ensure_default_org()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def default_org():
    from clinic_ops.models.organisation import Organisation
    return Organisation.query.filter_by(slug="test-default").first()


@pytest.fixture()
def manager(default_org):
    """Staff member acting as the rota manager."""
    from clinic_ops.models.organisation import StaffProfile
    m = StaffProfile(organisation_id=default_org.id, email="manager@clinic.test",
                     first_name="Mia", last_name="Manager")
    _db.session.add(m)
    _db.session.commit()
    return m


@pytest.fixture()
def ctx(default_org, manager):
    return RotaContext(organisation_id=default_org.id, actor_id=manager.id, clock=fixed_clock)


@pytest.fixture()
def headers(default_org, manager):
    """Request headers carrying the default organisation and actor."""
    return {"X-Organisation-Id": str(default_org.id), "X-Actor-Id": str(manager.id)}


# ── Clinic fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def site(default_org):
    """Site open Mon-Fri 08:00-12:30 / 13:30-18:00, closed at weekends."""
    from clinic_ops.models.site import Site, SiteOpeningHours
    s = Site(organisation_id=default_org.id, name="Northside Clinic",
             am_capacity_per_room=6, pm_capacity_per_room=5)
    _db.session.add(s)
    _db.session.flush()
    for dow in range(7):
        closed = dow >= 5
        _db.session.add(SiteOpeningHours(
            site_id=s.id, day_of_week=dow, is_closed=closed,
            am_open_time=None if closed else "08:00",
            am_close_time=None if closed else "12:30",
            pm_open_time=None if closed else "13:30",
            pm_close_time=None if closed else "18:00",
        ))
    _db.session.commit()
    return s


@pytest.fixture()
def other_site(default_org):
    from clinic_ops.models.site import Site
    s = Site(organisation_id=default_org.id, name="Southside Clinic")
    _db.session.add(s)
    _db.session.commit()
    return s


@pytest.fixture()
def rooms(site, default_org):
    """Two clinic rooms plus a store room that is not a clinic room."""
    from clinic_ops.models.site import Facility
    made = [
        Facility(organisation_id=default_org.id, site_id=site.id, name="Room 1"),
        Facility(organisation_id=default_org.id, site_id=site.id, name="Room 2"),
        Facility(organisation_id=default_org.id, site_id=site.id, name="Store",
                 facility_type="store_room"),
    ]
    _db.session.add_all(made)
    _db.session.commit()
    return made


@pytest.fixture()
def job_titles(default_org):
    from clinic_ops.models.organisation import JobFamily, JobTitle
    family = JobFamily(organisation_id=default_org.id, name="Clinical")
    _db.session.add(family)
    _db.session.flush()
    titles = {
        "gp": JobTitle(organisation_id=default_org.id, name="GP", job_family_id=family.id),
        "nurse": JobTitle(organisation_id=default_org.id, name="Nurse", job_family_id=family.id),
    }
    _db.session.add_all(titles.values())
    _db.session.commit()
    return titles


@pytest.fixture()
def staff(default_org, site, other_site, job_titles):
    """Home-site GP, home-site nurse and a nurse based at the other site."""
    from clinic_ops.models.organisation import StaffProfile
    members = {
        "gp": StaffProfile(organisation_id=default_org.id, email="gp@clinic.test",
                           first_name="Grace", last_name="Patel",
                           job_title_id=job_titles["gp"].id, primary_site_id=site.id,
                           contracted_hours=37.5),
        "nurse": StaffProfile(organisation_id=default_org.id, email="nurse@clinic.test",
                              first_name="Noah", last_name="Reed",
                              job_title_id=job_titles["nurse"].id, primary_site_id=site.id),
        "visitor": StaffProfile(organisation_id=default_org.id, email="visitor@clinic.test",
                                first_name="Vera", last_name="Stone",
                                job_title_id=job_titles["nurse"].id,
                                primary_site_id=other_site.id),
    }
    _db.session.add_all(members.values())
    _db.session.commit()
    return members


@pytest.fixture()
def week(ctx, site):
    """Draft rota week for WEEK_START at the default site."""
    from clinic_ops.services import rota_service
    return rota_service.fetch_or_create_week(ctx, site.id, WEEK_START)

"""
Shared fixtures: a valid user, broker factories, scripted oracle and stores.
"""

import json

import pytest

from optout_core.models import BrokerDefinition, UserProfile
from optout_core.oracle import ScriptedOracle
from optout_core.stores import BrokerCatalog, EvidenceStore, SessionStore


@pytest.fixture
def user():
    return UserProfile(
        first_name="Jane",
        last_name="Doe",
        email="jane.doe@example.com",
        address="123 Main St",
        city="Springfield",
        state="IL",
        zip="62701",
        phone="(217) 555-0123",
        date_of_birth="1985-04-12",
    )


@pytest.fixture
def make_broker():
    def _make(name="PeopleFinders", **kwargs):
        slug = name.lower().replace(" ", "")
        data = dict(
            name=name,
            url=f"https://www.{slug}.com",
            opt_out_url=f"https://www.{slug}.com/opt-out",
            requires_id_upload=False,
            notes="",
        )
        data.update(kwargs)
        return BrokerDefinition(**data)
    return _make


@pytest.fixture
def broker(make_broker):
    return make_broker()


@pytest.fixture
def oracle():
    return ScriptedOracle()


@pytest.fixture
def evidence_store(tmp_path):
    return EvidenceStore(tmp_path / "screenshots")


@pytest.fixture
def session_store(tmp_path):
    return SessionStore(tmp_path / "removal-session.json")


@pytest.fixture
def catalog_path(tmp_path, make_broker):
    path = tmp_path / "brokers.json"
    brokers = [make_broker("PeopleFinders"), make_broker("Spokeo"), make_broker("Radaris")]
    path.write_text(json.dumps([b.to_dict() for b in brokers], indent=2), encoding="utf-8")
    return path


@pytest.fixture
def catalog(catalog_path):
    return BrokerCatalog(catalog_path)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel

from addonctl.addon.lifecycle import AddonLifecycle
from addonctl.addon.tags import TagBookkeeper
from addonctl.addon.types import AddonTimeouts
from addonctl.db.ops import AddonStateOps
from tests.unit_test.addon.fake_client import FakeAddonClient


@pytest.fixture
def timeouts():
    return AddonTimeouts(
        create=1.0,
        update=1.0,
        delete=1.0,
        propagation=0.5,
        poll_interval=0.01,
        retry_min_wait=0.01,
        retry_max_wait=0.02,
    )


@pytest.fixture
def fake_client():
    return FakeAddonClient()


@pytest.fixture
def lifecycle(fake_client, timeouts):
    return AddonLifecycle(
        client=fake_client,
        timeouts=timeouts,
        tag_bookkeeper=TagBookkeeper(default_tags={"team": "platform"}),
    )


@pytest.fixture
def state_ops():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield AddonStateOps(sessionmaker(bind=engine, class_=Session, expire_on_commit=False))
    engine.dispose()


@pytest.fixture
def seeded_record():
    from addonctl.addon.types import AddonRecord

    return AddonRecord(
        cluster_name="cluster-a",
        addon_name="vpc-cni",
        status="ACTIVE",
        addon_version="v1.2.0",
        addon_arn="arn:aws:eks:us-east-1:123456789012:addon/cluster-a/vpc-cni/abc",
        tags={"team": "platform", "app": "network"},
    )

import pytest

from askline.config import ClientConfig
from askline.service import build_service
from askline.storage import MemoryStorage
from common.events import EventBus

from fakes import FakeTransport, handshake_ok


@pytest.fixture
def config():
    return ClientConfig(base_url="https://ask.example.com").without_jitter()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def service(config, transport, storage, bus):
    svc = build_service(config, transport=transport, storage=storage, bus=bus)
    svc.initialize()
    return svc


@pytest.fixture
def authed_service(service, transport):
    transport.queue(handshake_ok())
    assert service.authenticate() is True
    return service

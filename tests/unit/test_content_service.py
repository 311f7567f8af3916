import pytest

from resilient_cms.content_service import ContentService


def test_uninitialized_service_raises():
    service = ContentService()

    assert repr(service) == "<ContentService initialized=False>"
    with pytest.raises(RuntimeError, match="not initialized"):
        service.fetch_all("stations")


def test_service_delegates_to_provider(make_settings, fake_session, respond):
    service = ContentService(make_settings(), session=fake_session)
    fake_session.queue(
        respond(200, {"count": 1, "next": None, "previous": None, "results": [{"id": 1, "name": "a"}]}),
        respond(200, {"id": 2, "name": "b"}),
    )

    page = service.fetch_all("stations")
    service.fetch_all("stations")
    created = service.create("stations", {"name": "b"})

    assert page.total == 1
    assert created.id == "2"
    assert fake_session.call_count == 2
    assert service.get_stats()["backend"] == "baserow"
    assert repr(service) == "<ContentService initialized=True>"
    service.close()


def test_init_config_replaces_provider(make_settings, fake_session):
    service = ContentService(session=fake_session)
    service.init_config(make_settings("baserow"))
    first = service.provider

    service.init_config(make_settings("sanity"))

    assert service.provider is not first
    assert service.provider.name == "sanity"
    service.close()
    with pytest.raises(RuntimeError):
        service.get_stats()

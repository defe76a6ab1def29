from unittest.mock import AsyncMock

import pytest

from skill_devkit.device import Availability, BaseDevice, DeviceMetadata, OAuthRequest


def _device_class(**metadata) -> type:
    class Device(BaseDevice):
        pass

    Device.metadata = DeviceMetadata(kind="com.example", **metadata)
    return Device


def test_unique_id_for_singleton_device(engine):
    device = _device_class()(engine, {"kind": "com.example"})

    assert device.unique_id == "com.example"


def test_unique_id_includes_form_params(engine):
    device_class = _device_class(params={"url": None, "user": None})
    device = device_class(engine, {"kind": "com.example", "url": "http://a", "user": "bob"})

    assert device.unique_id == "com.example-url:http://a-user:bob"


def test_unique_id_left_to_host_for_authenticated_devices(engine):
    device_class = _device_class(auth={"type": "oauth2"})

    assert device_class(engine, {"kind": "com.example"}).unique_id is None


def test_name_and_description_are_formatted_from_state(engine):
    device_class = _device_class(name="Feed $title", description="Reads ${url}")
    device = device_class(engine, {"kind": "com.example", "title": "News", "url": "http://a"})

    assert device.name == "Feed News"
    assert device.description == "Reads http://a"


def test_has_kind(engine):
    device_class = _device_class(category="data", types=["com.example.base"])
    device = device_class(engine, {"kind": "com.example"})

    assert device.has_kind("com.example")
    assert device.has_kind("com.example.base")
    assert device.has_kind("data-source")
    assert not device.has_kind("online-account")
    assert not device.has_kind("com.other")


@pytest.mark.asyncio
async def test_update_oauth2_token_emits_state_changed(engine):
    device = _device_class()(engine, {"kind": "com.example", "refreshToken": "old"})
    changes = []
    device.add_listener("state-changed", lambda: changes.append(True))

    await device.update_oauth2_token("new-access", None, {})

    assert device.serialize() == {
        "kind": "com.example",
        "accessToken": "new-access",
        "refreshToken": "old",
    }
    assert changes == [True]
    assert await device.check_available() is Availability.UNKNOWN


@pytest.mark.asyncio
async def test_complete_custom_oauth_passes_the_redirect_query(engine):
    device_class = _device_class()
    runner = AsyncMock(return_value="device")
    device_class.run_oauth2 = runner

    result = await device_class.complete_custom_oauth(
        engine, "http://127.0.0.1:3000/callback?code=xyz&state=abc", {"k": "v"}
    )

    assert result == "device"
    runner.assert_awaited_once_with(
        device_class, engine, OAuthRequest(query={"code": "xyz", "state": "abc"}, session={"k": "v"})
    )


@pytest.mark.asyncio
async def test_oauth_entry_points_require_a_runner(engine):
    with pytest.raises(NotImplementedError):
        await _device_class().load_from_custom_oauth(engine)

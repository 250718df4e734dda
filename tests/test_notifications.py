import pytest

from hashview_chat.core.exceptions import TransientDependencyFailure
from hashview_chat.utils import notifications
from hashview_chat.utils.notifications import FcmPush, NoopPush


def test_build_push_without_credentials(monkeypatch):
    monkeypatch.setattr(notifications.settings, "fcm_service_account_file", None)
    assert isinstance(notifications.build_push(), NoopPush)


@pytest.mark.asyncio
async def test_fcm_push_sends_each_token(mocker):
    fcm = mocker.patch.object(notifications, "FCMNotification")
    push = FcmPush("service-account.json", "demo-project")

    sent = await push.send_fcm(["t1", "t2"], "Alice", "hi", {"type": "message"})

    assert sent == 2
    fcm.assert_called_once_with(service_account_file="service-account.json", project_id="demo-project")
    first = fcm.return_value.notify.call_args_list[0]
    assert first.kwargs["fcm_token"] == "t1"
    assert first.kwargs["notification_title"] == "Alice"
    assert first.kwargs["data_payload"] == {"type": "message"}


@pytest.mark.asyncio
async def test_fcm_push_partial_failure_is_tolerated(mocker):
    fcm = mocker.patch.object(notifications, "FCMNotification")
    fcm.return_value.notify.side_effect = [RuntimeError("unregistered"), {"name": "ok"}]

    assert await FcmPush("sa.json").send_fcm(["bad", "good"], "t", "b") == 1


@pytest.mark.asyncio
async def test_fcm_push_total_failure_raises(mocker):
    fcm = mocker.patch.object(notifications, "FCMNotification")
    fcm.return_value.notify.side_effect = RuntimeError("fcm down")

    with pytest.raises(TransientDependencyFailure):
        await FcmPush("sa.json").send_fcm(["t1"], "t", "b")

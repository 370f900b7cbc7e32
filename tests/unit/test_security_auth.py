from __future__ import annotations

import pytest

from council_tasks.common.config import get_settings
from council_tasks.common.errors import ForbiddenError, UnauthorizedError
from council_tasks.common.security import (
    AuthContext,
    acting_as,
    can_edit,
    current_actor,
    require_auth,
    require_can_edit,
    require_cron_auth,
)


@pytest.fixture()
def auth_settings():
    s = get_settings()
    keys = ["auth_mode", "api_keys", "cron_secret", "app_env"]
    snapshot = {k: getattr(s, k) for k in keys}
    try:
        yield s
    finally:
        for k, v in snapshot.items():
            setattr(s, k, v)


def test_api_key_header_and_bearer(auth_settings) -> None:
    auth_settings.auth_mode = "api_key"
    auth_settings.api_keys = "k1, k2:city-a|city-b"

    ctx = require_auth(authorization=None, x_api_key="k1")
    assert ctx.subject == "service"
    assert ctx.city_ids is None

    ctx = require_auth(authorization="Bearer k2", x_api_key=None)
    assert ctx.subject == "editor"
    assert ctx.city_ids == frozenset({"city-a", "city-b"})


def test_bad_or_missing_key(auth_settings) -> None:
    auth_settings.auth_mode = "api_key"
    auth_settings.api_keys = "k1"

    with pytest.raises(UnauthorizedError):
        require_auth(authorization=None, x_api_key="nope")
    with pytest.raises(UnauthorizedError):
        require_auth(authorization=None, x_api_key=None)


def test_auth_none_is_dev_only(auth_settings) -> None:
    auth_settings.auth_mode = "none"
    auth_settings.app_env = "dev"
    assert require_auth(authorization=None, x_api_key=None).auth_type == "none"

    auth_settings.app_env = "prod"
    with pytest.raises(UnauthorizedError):
        require_auth(authorization=None, x_api_key=None)


def test_cron_secret(auth_settings) -> None:
    auth_settings.auth_mode = "api_key"
    auth_settings.api_keys = "k1,k2:city-a"
    auth_settings.cron_secret = "s3cret"

    assert require_cron_auth(authorization="Bearer s3cret", x_api_key=None).subject == "cron"
    assert require_cron_auth(authorization=None, x_api_key="k1").subject == "service"
    with pytest.raises(UnauthorizedError):
        require_cron_auth(authorization=None, x_api_key="k2")
    with pytest.raises(UnauthorizedError):
        require_cron_auth(authorization="Bearer wrong", x_api_key=None)


def test_can_edit_follows_acting_identity() -> None:
    assert current_actor() is None
    assert can_edit("city-a") is False

    editor = AuthContext(subject="editor", auth_type="api_key", city_ids=frozenset({"city-a"}))
    with acting_as(editor):
        assert current_actor() is editor
        assert can_edit("city-a", "m-1") is True
        assert can_edit("city-b", "m-1") is False
        with pytest.raises(ForbiddenError):
            require_can_edit("city-b", "m-1")

    with acting_as(AuthContext(subject="service", auth_type="api_key")):
        require_can_edit("city-b")

    assert current_actor() is None

import pytest

from listening_core.domain.exceptions import ConcurrencyError
from listening_core.engine.cancellation import CancellationController


def test_begin_stop_finish():
    ctl = CancellationController()
    token = ctl.begin()
    assert ctl.busy
    assert not token.cancelled
    ctl.stop()
    assert token.cancelled
    assert not ctl.busy
    # 令牌仍在，直到聚合器 finish
    with pytest.raises(ConcurrencyError):
        ctl.begin()
    ctl.finish(token)
    assert ctl.active_token is None
    assert not ctl.begin().cancelled


def test_stop_is_idempotent():
    ctl = CancellationController()
    ctl.stop()
    token = ctl.begin()
    ctl.stop()
    ctl.stop()
    assert token.cancelled
    assert not ctl.busy


def test_finish_ignores_stale_token():
    ctl = CancellationController()
    old = ctl.begin()
    ctl.finish(old)
    new = ctl.begin()
    ctl.finish(old)
    assert ctl.active_token is new

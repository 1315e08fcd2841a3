from __future__ import annotations

import time

from app.core.clock import epoch_now


def test_epoch_now_is_whole_seconds() -> None:
    before = int(time.time())
    now = epoch_now()
    assert isinstance(now, int)
    assert before <= now <= int(time.time())

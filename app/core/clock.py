from __future__ import annotations

import datetime


def epoch_now() -> int:
    """Current UTC time as integer epoch seconds, the unit every row stores."""
    return int(datetime.datetime.now(datetime.UTC).timestamp())

from __future__ import annotations

import pytest

from tokendist.tests.helpers import Env, make_env


@pytest.fixture
def env() -> Env:
    """3000/7000 holders over a 1000 unit pool, ready to start."""
    return make_env(pool=1_000, balances={"A": 3_000, "B": 7_000})

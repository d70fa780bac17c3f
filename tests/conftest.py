import pytest

from sizefinder import main


@pytest.fixture(autouse=True)
def _reset_rate_limit():
    main._buckets.clear()
    yield
    main._buckets.clear()

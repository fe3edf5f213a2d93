from __future__ import annotations

import pytest

from tastematch.recommendations.data_store import clear_data_store
from tastematch.recommendations.social_graph import clear_social_graph
from tastematch.taste.store import clear_taste_store


@pytest.fixture(autouse=True)
def _clean_stores():
    clear_taste_store()
    clear_data_store()
    clear_social_graph()
    yield
    clear_taste_store()
    clear_data_store()
    clear_social_graph()

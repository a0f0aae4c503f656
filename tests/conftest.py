"""
Shared pytest fixtures for ushin tests.
"""

import pytest

from ushin import Message, Point, Shape, USHINBase


EXAMPLE_POINT_ID = "Example-Point"


@pytest.fixture
def db(tmp_path):
    """An initialized USHINBase on a fresh temporary store."""
    base = USHINBase(path=tmp_path / "store").init()
    yield base
    base.close()


@pytest.fixture
def example_point() -> Point:
    return Point(id=EXAMPLE_POINT_ID, content="Cats bring me joy")


@pytest.fixture
def example_message() -> Message:
    return Message(
        main=EXAMPLE_POINT_ID,
        shapes=[Shape("feelings", [EXAMPLE_POINT_ID])],
    )


@pytest.fixture
def example_point_store(example_point) -> dict[str, Point]:
    return {EXAMPLE_POINT_ID: example_point}



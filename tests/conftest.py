import pytest

import pmxbuilder


@pytest.fixture
def minimal_builder():
    return pmxbuilder.minimal()


@pytest.fixture
def full_builder():
    return pmxbuilder.full()


@pytest.fixture
def full_bytes(full_builder):
    return full_builder.build()


@pytest.fixture
def pmx_file(tmp_path, full_bytes):
    path = tmp_path / "model.pmx"
    path.write_bytes(full_bytes)
    return str(path)

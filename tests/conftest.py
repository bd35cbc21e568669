import pytest

from shared import api
from shared.config import ServerConfig


@pytest.fixture
def config(tmp_path):
    return ServerConfig(data_dir=str(tmp_path / "data"), secret_key="test-secret")


@pytest.fixture
def library(config):
    api.configure(config)
    return api.get_core()


@pytest.fixture
def client(library):
    api.app.config['TESTING'] = True
    with api.app.test_client() as test_client:
        yield test_client

import os

os.environ["PROVIDER_NAME"] = "mock"
os.environ["HARVEST_BATCH_SIZE"] = "1"
os.environ["HARVEST_REQUESTS_PER_MINUTE"] = "60"

import pytest

from harvester.services.storage import CheckpointStore, ResultStore


@pytest.fixture()
def checkpoints(tmp_path):
    return CheckpointStore(tmp_path / "state.json")


@pytest.fixture()
def results(tmp_path):
    return ResultStore(tmp_path / "static" / "prices", tmp_path / "static" / "pricehistory")

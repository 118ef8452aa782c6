# deps/workflow.py
from functools import lru_cache

from app.config import WorkflowConfig, load_workflow_config
from app.providers.base import TransferProvider
from app.providers.factory import get_provider


@lru_cache(maxsize=1)
def get_workflow_config() -> WorkflowConfig:
    return load_workflow_config()


def get_transfer_provider() -> TransferProvider:
    return get_provider()

from .fake_redis import FakeRedis
from .recorder import Recorder, by_task

STORE_URL = "redis://localhost:6379/0"

__all__ = [
    "STORE_URL",
    "FakeRedis",
    "Recorder",
    "by_task",
]

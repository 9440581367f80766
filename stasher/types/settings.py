import os
from typing import Any

import stasher

_TRUE, _FALSE = {"True", "true", "yes", "1"}, {"False", "false", "no", "0"}


def _getenv(name: str, *default: Any) -> Any:
    try:
        v = os.environ[name]
        if v in _TRUE:
            return True
        elif v in _FALSE:
            return False
        else:
            return v
    except KeyError:
        pass
    if default:
        return default[0]
    raise KeyError(name)


# ------------------------------------------------
# ---- Defaults and environment variables ----
# ------------------------------------------------

#: Namespace to watch, empty string watches all namespaces
WATCH_NAMESPACE = str(_getenv("WATCH_NAMESPACE", ""))

#: Seconds between full relists of every watched resource kind
RESYNC_PERIOD_SECONDS = int(_getenv("RESYNC_PERIOD_SECONDS", 300))

#: Number of times a failing key is retried before it is dropped
MAX_NUM_REQUEUES = int(_getenv("MAX_NUM_REQUEUES", 5))

#: Worker loops started for each resource kind
WORKERS_PER_KIND = int(_getenv("WORKERS_PER_KIND", 1))

#: Capacity of the channel between a change feed and its dispatcher
EVENT_CHANNEL_SIZE = int(_getenv("EVENT_CHANNEL_SIZE", 256))

#: First retry delay of the per-key exponential rate limiter
RATE_LIMIT_BASE_DELAY_SECONDS = float(_getenv("RATE_LIMIT_BASE_DELAY_SECONDS", 0.005))

#: Upper bound of the per-key exponential rate limiter
RATE_LIMIT_MAX_DELAY_SECONDS = float(_getenv("RATE_LIMIT_MAX_DELAY_SECONDS", 1000.0))

#: Image repository of the backup sidecar and recovery jobs
SIDECAR_IMAGE = str(_getenv("SIDECAR_IMAGE", "stasher/stasher"))

#: Default image tag, policies may override it with the stasher.io/tag annotation
SIDECAR_IMAGE_TAG = str(_getenv("SIDECAR_IMAGE_TAG", stasher.__version__))

#: Create a service account and role binding for every recovery job
ENABLE_RBAC = bool(_getenv("ENABLE_RBAC", True))

#: Seconds between recovery job completion checks
JOB_POLL_INTERVAL_SECONDS = float(_getenv("JOB_POLL_INTERVAL_SECONDS", 180.0))

#: Give up waiting for a recovery job after this many seconds
JOB_POLL_TIMEOUT_SECONDS = float(_getenv("JOB_POLL_TIMEOUT_SECONDS", 86400.0))

#: Seconds between checks that workload pods picked up (or dropped) the sidecar
SIDECAR_POLL_INTERVAL_SECONDS = float(_getenv("SIDECAR_POLL_INTERVAL_SECONDS", 3.0))

#: Give up waiting for pods to pick up (or drop) the sidecar after this many seconds
SIDECAR_POLL_TIMEOUT_SECONDS = float(_getenv("SIDECAR_POLL_TIMEOUT_SECONDS", 300.0))

#: Seconds to wait before restarting a failed list/watch
WATCH_RETRY_DELAY_SECONDS = float(_getenv("WATCH_RETRY_DELAY_SECONDS", 5.0))


class Settings:
    """Operator settings"""

    watch_namespace: str = WATCH_NAMESPACE
    resync_period_seconds: int = RESYNC_PERIOD_SECONDS
    max_num_requeues: int = MAX_NUM_REQUEUES
    workers_per_kind: int = WORKERS_PER_KIND
    event_channel_size: int = EVENT_CHANNEL_SIZE
    rate_limit_base_delay_seconds: float = RATE_LIMIT_BASE_DELAY_SECONDS
    rate_limit_max_delay_seconds: float = RATE_LIMIT_MAX_DELAY_SECONDS
    sidecar_image: str = SIDECAR_IMAGE
    sidecar_image_tag: str = SIDECAR_IMAGE_TAG
    enable_rbac: bool = ENABLE_RBAC
    job_poll_interval_seconds: float = JOB_POLL_INTERVAL_SECONDS
    job_poll_timeout_seconds: float = JOB_POLL_TIMEOUT_SECONDS
    sidecar_poll_interval_seconds: float = SIDECAR_POLL_INTERVAL_SECONDS
    sidecar_poll_timeout_seconds: float = SIDECAR_POLL_TIMEOUT_SECONDS
    watch_retry_delay_seconds: float = WATCH_RETRY_DELAY_SECONDS

    def __init__(self, **overrides: Any):
        for key, value in overrides.items():
            if not hasattr(Settings, key):
                raise TypeError(f"Unknown setting: {key}")
            if value is not None:
                setattr(self, key, value)

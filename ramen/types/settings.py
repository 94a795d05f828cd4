import os
import yaml
import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

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

#: Default number of VolumeReplicationGroups reconciled concurrently
DEFAULT_MAX_CONCURRENT_RECONCILES = 2

#: Number of VolumeReplicationGroups reconciled concurrently
MAX_CONCURRENT_RECONCILES = _getenv(
    "MAX_CONCURRENT_RECONCILES", DEFAULT_MAX_CONCURRENT_RECONCILES
)

#: Fixed delay in seconds before re-running a VRG that is still converging
REQUEUE_DELAY_SECONDS = float(_getenv("REQUEUE_DELAY_SECONDS", 1.0))

#: First backoff delay in seconds after a failed reconcile
FAILURE_BASE_DELAY_SECONDS = float(_getenv("FAILURE_BASE_DELAY_SECONDS", 0.005))

#: Upper bound in seconds of the failure backoff
FAILURE_MAX_DELAY_SECONDS = float(_getenv("FAILURE_MAX_DELAY_SECONDS", 300.0))

#: Window in seconds during which identical events for an object are posted once
EVENT_DEDUP_WINDOW_SECONDS = float(_getenv("EVENT_DEDUP_WINDOW_SECONDS", 300.0))

#: Path to a YAML file listing the S3 profiles used for PV cluster data
S3_PROFILES_FILE = _getenv("S3_PROFILES_FILE", None)

#: Port of the Prometheus metrics endpoint
METRICS_PORT = int(_getenv("METRICS_PORT", 8000))

#: API coordinates of the VolumeReplicationGroup custom resource
VRG_GROUP = _getenv("VRG_GROUP", "ramendr.openshift.io")
VRG_VERSION = _getenv("VRG_VERSION", "v1alpha1")


def parse_max_concurrent_reconciles(value: Any) -> int:
    """Parse the worker pool size, falling back to the default on bad input."""
    try:
        workers = int(value)
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid MAX_CONCURRENT_RECONCILES value `{value}`, "
            f"using default {DEFAULT_MAX_CONCURRENT_RECONCILES}"
        )
        return DEFAULT_MAX_CONCURRENT_RECONCILES
    if workers < 1:
        logger.warning(
            f"MAX_CONCURRENT_RECONCILES must be positive (got {workers}), "
            f"using default {DEFAULT_MAX_CONCURRENT_RECONCILES}"
        )
        return DEFAULT_MAX_CONCURRENT_RECONCILES
    return workers


def load_s3_profiles(path: str) -> List[Dict[str, Any]]:
    """Load S3 profiles from a YAML file.

    The file holds a list of mappings, each with at least `name` and `bucket`,
    and optionally `endpoint` and `region`.
    """
    if not path:
        return []
    with open(path) as f:
        profiles = yaml.safe_load(f) or []
    if not isinstance(profiles, list):
        raise ValueError(f"S3 profiles file `{path}` must contain a list")
    for profile in profiles:
        if not profile.get("name") or not profile.get("bucket"):
            raise ValueError(
                f"S3 profile {profile} in `{path}` requires `name` and `bucket`"
            )
    return profiles


class Settings:
    """Operator settings"""

    max_concurrent_reconciles: int
    requeue_delay_seconds: float = REQUEUE_DELAY_SECONDS
    failure_base_delay_seconds: float = FAILURE_BASE_DELAY_SECONDS
    failure_max_delay_seconds: float = FAILURE_MAX_DELAY_SECONDS
    event_dedup_window_seconds: float = EVENT_DEDUP_WINDOW_SECONDS
    s3_profiles: List[Dict[str, Any]]
    vrg_group: str = VRG_GROUP
    vrg_version: str = VRG_VERSION

    def __init__(
        self,
        *args,
        max_concurrent_reconciles: int = None,
        requeue_delay_seconds: float = None,
        failure_base_delay_seconds: float = None,
        failure_max_delay_seconds: float = None,
        event_dedup_window_seconds: float = None,
        s3_profiles: List[Dict[str, Any]] = None,
        vrg_group: str = None,
        vrg_version: str = None,
        **kwargs,
    ):
        self.max_concurrent_reconciles = parse_max_concurrent_reconciles(
            max_concurrent_reconciles
            if max_concurrent_reconciles is not None
            else MAX_CONCURRENT_RECONCILES
        )

        if requeue_delay_seconds is not None:
            self.requeue_delay_seconds = requeue_delay_seconds

        if failure_base_delay_seconds is not None:
            self.failure_base_delay_seconds = failure_base_delay_seconds

        if failure_max_delay_seconds is not None:
            self.failure_max_delay_seconds = failure_max_delay_seconds

        if event_dedup_window_seconds is not None:
            self.event_dedup_window_seconds = event_dedup_window_seconds

        if s3_profiles is not None:
            self.s3_profiles = s3_profiles
        else:
            self.s3_profiles = load_s3_profiles(S3_PROFILES_FILE)

        if vrg_group is not None:
            self.vrg_group = vrg_group

        if vrg_version is not None:
            self.vrg_version = vrg_version

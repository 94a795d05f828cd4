import kopf
import logging
import ramen.handlers.vrg as vrg  # noqa: F401
import ramen.handlers.pvc as pvc  # noqa: F401
import ramen.handlers.probes as probes  # noqa: F401
from ramen.types.settings import Settings
from ramen.resources import KubernetesStore
from ramen.backends import ClusterDataStore, VolRepBackend, VolSyncBackend
from ramen.reconciler.vrg import VolumeReplicationGroupReconciler
from ramen.sensors import init_metrics_server, SensorDelegate, PrometheusMonitor
from ramen.utils.events import EventReporter
from ramen.workqueue import WorkQueue
from kubernetes_asyncio import config
from kubernetes_asyncio.client.api_client import ApiClient


@kopf.on.startup()
async def setup(
    settings: kopf.OperatorSettings, memo: kopf.Memo, logger: logging.Logger, **kwargs
):
    # In-cluster config first, then local kubeconfig for development
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        logger.info("In-cluster config not found, trying local kubeconfig")
        try:
            await config.load_kube_config()
            logger.info("Loaded local Kubernetes configuration")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    conf = memo.conf = Settings()

    # One ApiClient shared by every store call
    memo.api_client = ApiClient()
    store = memo.store = KubernetesStore(
        memo.api_client, conf.vrg_group, conf.vrg_version
    )
    logger.info("Shared Kubernetes API client initialized")

    sensor_delegate = SensorDelegate()
    sensor_delegate.add(PrometheusMonitor())
    memo.sensor = sensor_delegate
    logger.info("Sensor infrastructure initialized with PrometheusMonitor")

    try:
        init_metrics_server()
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")
        logger.warning("Continuing without metrics server")

    if not conf.s3_profiles:
        logger.warning(
            "No S3 profiles configured. PV cluster data will not be protected."
        )

    events = EventReporter(conf.event_dedup_window_seconds)
    cluster_data = ClusterDataStore(store, conf.s3_profiles)
    reconciler = VolumeReplicationGroupReconciler(
        store,
        VolRepBackend(store, events, cluster_data),
        VolSyncBackend(store, events, cluster_data),
        cluster_data,
        events,
        conf,
        sensor=sensor_delegate,
    )
    memo.queue = WorkQueue(
        reconciler.reconcile,
        conf.max_concurrent_reconciles,
        failure_base_delay=conf.failure_base_delay_seconds,
        failure_max_delay=conf.failure_max_delay_seconds,
        sensor=sensor_delegate,
    )
    memo.queue.start()

    # Handlers only enqueue, the work queue bounds concurrent reconciles
    settings.batching.worker_limit = conf.max_concurrent_reconciles

    # Post only warnings and errors from handler logs as Kubernetes events
    settings.posting.enabled = True
    settings.posting.level = logging.WARNING


@kopf.on.cleanup()
async def cleanup(memo: kopf.Memo, logger: logging.Logger, **kwargs):
    """Cleanup handler for operator shutdown."""
    logger.info("Shutting down operator...")

    queue = getattr(memo, "queue", None)
    if queue is not None:
        await queue.stop(timeout=10)

    api_client = getattr(memo, "api_client", None)
    if api_client is not None:
        try:
            await api_client.close()
            logger.info("Shared Kubernetes API client closed")
        except Exception as e:
            logger.error(f"Error closing shared API client: {e}")

    logger.info("Operator shutdown complete")


__all__ = [
    "vrg",
    "pvc",
    "probes",
]

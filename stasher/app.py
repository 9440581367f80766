import kopf
import logging
from stasher.controller.controller import Controller
from stasher.types.settings import Settings
from stasher.sensors import init_metrics_server, SensorDelegate, PrometheusMonitor
from stasher.utils.helpers import now
from kubernetes_asyncio import config
from kubernetes_asyncio.client.api_client import ApiClient


@kopf.on.startup()
async def setup(
    settings: kopf.OperatorSettings, memo: kopf.Memo, logger: logging.Logger, **kwargs
):
    # Load Kubernetes config - try in-cluster first (for production), then local kubeconfig (for dev)
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

    memo.conf = Settings()

    # One API client shared by every feed, reconciler and watcher
    memo.api_client = ApiClient()
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

    if not memo.conf.enable_rbac:
        logger.warning("RBAC is disabled, recovery jobs run as the default service account.")

    # Events are posted by the controller itself; only warnings from kopf's own logs
    settings.posting.enabled = True
    settings.posting.level = logging.WARNING

    memo.controller = Controller(memo.api_client, memo.conf, sensor=sensor_delegate)
    memo.controller.start()


@kopf.on.cleanup()
async def cleanup(memo: kopf.Memo, logger: logging.Logger, **kwargs):
    """Cleanup handler for operator shutdown."""
    logger.info("Shutting down operator...")

    controller = getattr(memo, "controller", None)
    if controller is not None:
        await controller.stop()
        if controller.dropped:
            logger.warning(f"{controller.dropped} key(s) were dropped after exhausting retries")

    api_client = getattr(memo, "api_client", None)
    if api_client is not None:
        await api_client.close()
        logger.info("Shared API client closed")

    logger.info("Operator shutdown complete")


# Liveness probe
@kopf.on.probe(id="now")
def get_current_timestamp(**kwargs):
    return now()


@kopf.on.probe(id="queues")
def get_queue_depths(memo: kopf.Memo, **kwargs):
    controller = getattr(memo, "controller", None)
    if controller is None:
        return {}
    return controller.queue_depths()

"""Base sensor classes for operator monitoring.

This module defines the base OperatorSensor class that provides lifecycle hooks
for monitoring the reconciliation engine. All hooks are no-ops by default,
allowing subclasses to override only the events they care about.

The hook pattern:
- Hooks come in pairs: on_X_start() and on_X_complete()
- Start hooks return an optional state dict for tracking multi-phase operations
- Complete hooks receive the state dict from their corresponding start hook
- All hooks are optional - sensors only implement what they need
"""

from typing import Dict, Optional, Any
import logging

logger = logging.getLogger(__name__)


class OperatorSensor:
    """Base sensor class for stasher operator monitoring.

    Hooks cover three areas:
    1. Change feed (events received and whether they were queued)
    2. Work queue and reconciliation (queued, dequeued, retried, dropped, run)
    3. Kubernetes API side effects (Job creation, workload updates)

    Example:
        class LoggingSensor(OperatorSensor):
            def on_reconcile_start(self, kind, key, trigger_source):
                return {'start_time': time.monotonic()}

            def on_reconcile_complete(self, kind, key, state, success, error=None):
                duration = time.monotonic() - state['start_time']
                logger.info(f"Reconciled {kind} {key} in {duration}s")
    """

    # =============================================================================
    # Change Feed Hooks
    # =============================================================================

    def on_feed_event(self, kind: str, event_type: str, enqueued: bool) -> None:
        """Called after the dispatcher handled one change notification.

        Args:
            kind: Resource kind (BackupPolicy, RecoveryRequest)
            event_type: Added, Updated or Deleted
            enqueued: Whether the key was handed to the work queue
        """
        pass

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self, kind: str, key: str, trigger_source: str
    ) -> Optional[Dict[str, Any]]:
        """Called when a worker starts reconciling a key.

        Returns:
            Optional state dict passed to on_reconcile_complete
        """
        pass

    def on_reconcile_complete(
        self,
        kind: str,
        key: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a worker finished reconciling a key."""
        pass

    def on_reconcile_queued(self, kind: str, key: str, queue_depth: int) -> None:
        """Called when a key enters the work queue."""
        pass

    def on_reconcile_dequeued(self, kind: str, key: str, wait_time: float) -> None:
        """Called when a worker takes a key, with the time it spent queued."""
        pass

    def on_reconcile_retry(self, kind: str, key: str, attempt: int) -> None:
        """Called when a failed key is re-added through the rate limiter."""
        pass

    def on_reconcile_dropped(self, kind: str, key: str, error: Exception) -> None:
        """Called once when a key exhausted its retries."""
        pass

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self, resource_type: str, name: str, namespace: str, operation: str
    ) -> Optional[Dict[str, Any]]:
        """Called before a side-effecting API call.

        Args:
            resource_type: Kubernetes kind (Job, Deployment, StatefulSet, ...)
            name: Object name
            namespace: Object namespace
            operation: create, replace or delete

        Returns:
            Optional state dict passed to on_resource_sync_complete
        """
        pass

    def on_resource_sync_complete(
        self,
        resource_type: str,
        name: str,
        namespace: str,
        operation: str,
        state: Optional[Dict[str, Any]],
        success: bool,
    ) -> None:
        """Called after a side-effecting API call."""
        pass

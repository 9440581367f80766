import json
from typing import Dict, List, Union

import kubernetes_asyncio

_ALREADY_EXISTS = "alreadyexists"
_NOT_FOUND = "notfound"


class StasherError(Exception):
    """Base class for operator errors."""


class InvalidResourceError(StasherError):
    """A BackupPolicy or RecoveryRequest spec failed validation.

    Not transient: the object stays invalid until an operator edits it.
    """

    def __init__(self, kind: str, key: str, messages: Union[Dict, List, str]):
        self.kind = kind
        self.key = key
        self.messages = messages
        super().__init__(f"invalid {kind} {key}: {format_messages(messages)}")


class UnknownWorkloadKindError(InvalidResourceError):
    """Workload reference names a kind the operator cannot mutate."""

    def __init__(self, key: str, workload_kind: str):
        self.workload_kind = workload_kind
        super().__init__(
            "workload", key, f'unrecognized workload "Kind" {workload_kind}'
        )


class PolicyNotFoundError(StasherError):
    """A RecoveryRequest references a BackupPolicy that is not in the cache."""

    def __init__(self, namespace: str, name: str):
        self.namespace = namespace
        self.name = name
        super().__init__(f"BackupPolicy {namespace}/{name} not found")


class PollTimeoutError(StasherError):
    """A bounded poll ran out of time before its condition held."""


class ReconcileError(StasherError):
    """One or more side effects of a reconcile failed."""

    def __init__(self, key: str, errors: List[Exception]):
        self.key = key
        self.errors = errors
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"{len(errors)} error(s) reconciling {key}: {details}")


def format_messages(messages: Union[Dict, List, str]) -> str:
    """Flatten marshmallow error messages into one line."""
    if isinstance(messages, dict):
        parts = []
        for field, value in messages.items():
            parts.append(f"{field}: {format_messages(value)}")
        return ", ".join(parts)
    if isinstance(messages, (list, tuple)):
        return ", ".join(format_messages(m) for m in messages)
    return str(messages)


def _reason(ex: kubernetes_asyncio.client.ApiException) -> str:
    try:
        err = json.loads(ex.body) if ex.body else {}
    except (TypeError, ValueError):
        return ""
    if not isinstance(err, dict):
        return ""
    return str(err.get("reason", "")).lower()


def already_exists_error(ex: Exception) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409 and _reason(ex) in (_ALREADY_EXISTS, "")


def not_found_error(ex: Exception) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 404 or _reason(ex) == _NOT_FOUND


def gone_error(ex: Exception) -> bool:
    """The requested resourceVersion is too old to watch from."""
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 410

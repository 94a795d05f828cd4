import json
import kubernetes_asyncio

_ALREADY_EXISTS = "alreadyexists"
_NOT_FOUND = "notfound"
_CONFLICT = "conflict"


class StoreError(Exception):
    """A request against the authoritative store failed."""
    pass


class NotFoundError(StoreError):
    """Resource not found"""
    pass


class AlreadyExistsError(StoreError):
    """Resource already exists"""
    pass


class ConflictError(StoreError):
    """Optimistic concurrency conflict on update."""
    pass


class SelectorError(ValueError):
    """A label selector cannot be evaluated."""
    pass


class ValidationError(Exception):
    """The VolumeReplicationGroup spec is invalid and cannot be reconciled."""
    pass


class ClassificationError(Exception):
    """PVCs could not be split between replication backends."""
    pass


class ClusterDataError(Exception):
    """PV cluster data could not be uploaded, restored or deleted."""
    pass


def _reason(ex: kubernetes_asyncio.client.ApiException) -> str:
    try:
        err = json.loads(ex.body)
    except (TypeError, ValueError):
        return ""
    if not isinstance(err, dict):
        return ""
    return (err.get("reason") or "").lower()


def already_exists_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409 and _reason(ex) == _ALREADY_EXISTS


def not_found_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 404 or _reason(ex) == _NOT_FOUND


def conflict_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409 and _reason(ex) in (_CONFLICT, "")


def convert_api_exception(ex: kubernetes_asyncio.client.ApiException) -> StoreError:
    """
    Convert kubernetes ApiException to a store error.

    The returned exception carries a serializable message and is chained to
    the original by the caller (`raise convert_api_exception(ex) from ex`).
    """
    error_msg = f"Kubernetes API error ({ex.status}): {ex.reason}"
    try:
        if ex.body:
            body = json.loads(ex.body)
            if "message" in body:
                error_msg = f"{error_msg} - {body['message']}"
    except (json.JSONDecodeError, AttributeError, TypeError):
        pass

    if not_found_error(ex):
        return NotFoundError(error_msg)
    if already_exists_error(ex):
        return AlreadyExistsError(error_msg)
    if conflict_error(ex):
        return ConflictError(error_msg)
    return StoreError(error_msg)

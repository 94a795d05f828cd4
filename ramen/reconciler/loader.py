import copy
from typing import Optional
from marshmallow import ValidationError as SchemaValidationError
from ramen.resources.base import BaseStore
from ramen.resources.vrg import VolumeReplicationGroup
from ramen.types.models import PRIMARY, SECONDARY
from ramen.types.schemas import VolumeReplicationGroupSpecSchema
from ramen.utils.errors import NotFoundError, ValidationError


async def load_vrg(
    store: BaseStore, namespace: str, name: str
) -> Optional[VolumeReplicationGroup]:
    """Read the VolumeReplicationGroup from the API server.

    Returns None when it no longer exists. Any other store error propagates.
    A spec that does not load is kept on the instance as `spec_error` and
    reported by `validate_vrg_spec`, so the failure still reaches the status.
    """
    try:
        body = await store.get_vrg(namespace, name)
    except NotFoundError:
        return None
    try:
        return VolumeReplicationGroup.from_body(body)
    except SchemaValidationError as e:
        vrg = VolumeReplicationGroup(
            copy.deepcopy(body), VolumeReplicationGroupSpecSchema().load({})
        )
        vrg.spec_error = f"malformed spec: {e.messages}"
        return vrg


def validate_vrg_spec(vrg: VolumeReplicationGroup) -> None:
    if vrg.spec_error:
        raise ValidationError(vrg.spec_error)


def validate_vrg_state(vrg: VolumeReplicationGroup) -> None:
    if vrg.replication_state not in (PRIMARY, SECONDARY):
        raise ValidationError(
            f"invalid or unknown replication state detected "
            f"(deleted {vrg.is_deleting}, desired replicationState "
            f"{vrg.replication_state})"
        )


def validate_vrg_mode(vrg: VolumeReplicationGroup) -> None:
    if not vrg.spec.async_enabled and not vrg.spec.sync_enabled:
        raise ValidationError(
            "neither of sync or async mode is enabled "
            f"(deleted {vrg.is_deleting})"
        )

from __future__ import annotations

from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.deps import operation_context, require_admin
from app.schemas.identity import (
    CredentialsPayload,
    IdentityCreateRequest,
    IdentityDeleteResponse,
    IdentityResponse,
    IdentityUpdateRequest,
    TraitsUpdateRequest,
    VerifiableAddressPayload,
    VerifiableAddressView,
)
from services import identity as identity_service
from services.context import OperationContext
from services.errors import NotFound
from services.identity import (
    Credentials,
    Identity,
    ManagerOptions,
    VerifiableAddress,
    new_verifiable_email_address,
)

router = APIRouter(prefix="/api", tags=["identities"])

_ADMIN_OPTIONS = ManagerOptions(expose_validation_errors=True)


def _to_identity_response(identity: Identity) -> IdentityResponse:
    return IdentityResponse(
        id=identity.id,
        traits=identity.traits,
        traits_schema_id=identity.traits_schema_id,
        addresses=[_to_address_view(address) for address in identity.addresses or []],
        created_at=identity.created_at,
        updated_at=identity.updated_at,
    )


def _to_address_view(address: VerifiableAddress) -> VerifiableAddressView:
    return VerifiableAddressView(
        id=address.id,
        value=address.value,
        via=address.via,
        verified=address.verified,
        verified_at=address.verified_at,
        expires_at=address.expires_at,
    )


def _to_credentials(payload: dict[str, CredentialsPayload]) -> dict[str, Credentials | None]:
    return {
        kind: Credentials(
            type=kind, identifiers=list(item.identifiers), config=dict(item.config)
        )
        for kind, item in payload.items()
    }


def _merge_addresses(
    identity: Identity, payload: list[VerifiableAddressPayload]
) -> list[VerifiableAddress]:
    """Keep known addresses by value and create new ones for the rest."""
    known = {address.value: address for address in identity.addresses or []}
    lifespan = timedelta(
        seconds=identity_service.get_identity_settings().verification_link_lifespan_seconds
    )
    merged: list[VerifiableAddress] = []
    for item in payload:
        value = item.value.strip().lower()
        existing = known.get(value)
        if existing is not None:
            merged.append(existing)
            continue
        address = new_verifiable_email_address(value, identity.id, lifespan)
        address.via = item.via
        merged.append(address)
    return merged


@router.post(
    "/admin/identities",
    response_model=IdentityResponse,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def create_identity(
    request: IdentityCreateRequest,
    ctx: OperationContext = Depends(operation_context),
) -> IdentityResponse:
    manager = identity_service.get_identity_manager()
    identity = Identity(
        traits=request.traits,
        traits_schema_id=request.traits_schema_id,
        credentials=_to_credentials(request.credentials),
    )
    identity.addresses = _merge_addresses(identity, request.addresses)
    manager.create(ctx, identity, _ADMIN_OPTIONS)
    return _to_identity_response(identity)


@router.get(
    "/admin/identities",
    response_model=list[IdentityResponse],
    dependencies=[Depends(require_admin)],
)
def list_identities(
    page: int = Query(0, ge=0),
    per_page: int = Query(100, ge=1, le=500, alias="perPage"),
    ctx: OperationContext = Depends(operation_context),
) -> list[IdentityResponse]:
    pool = identity_service.get_identity_manager().pool
    return [
        _to_identity_response(identity)
        for identity in pool.list_identities(ctx, page=page, per_page=per_page)
    ]


@router.get(
    "/admin/identities/{identity_id}",
    response_model=IdentityResponse,
    dependencies=[Depends(require_admin)],
)
def get_identity(
    identity_id: UUID,
    ctx: OperationContext = Depends(operation_context),
) -> IdentityResponse:
    pool = identity_service.get_identity_manager().pool
    return _to_identity_response(pool.get_identity(ctx, identity_id))


@router.put(
    "/admin/identities/{identity_id}",
    response_model=IdentityResponse,
    dependencies=[Depends(require_admin)],
)
def update_identity(
    identity_id: UUID,
    request: IdentityUpdateRequest,
    ctx: OperationContext = Depends(operation_context),
) -> IdentityResponse:
    manager = identity_service.get_identity_manager()
    identity = manager.pool.get_identity_confidential(ctx, identity_id)
    identity.traits = request.traits
    if request.traits_schema_id is not None:
        identity.traits_schema_id = request.traits_schema_id
    if request.credentials is not None:
        identity.credentials = _to_credentials(request.credentials)
    if request.addresses is not None:
        identity.addresses = _merge_addresses(identity, request.addresses)
    manager.update(ctx, identity, _ADMIN_OPTIONS)
    return _to_identity_response(identity)


@router.delete(
    "/admin/identities/{identity_id}",
    response_model=IdentityDeleteResponse,
    dependencies=[Depends(require_admin)],
)
def delete_identity(
    identity_id: UUID,
    ctx: OperationContext = Depends(operation_context),
) -> IdentityDeleteResponse:
    identity_service.get_identity_manager().pool.delete_identity(ctx, identity_id)
    return IdentityDeleteResponse()


@router.post(
    "/admin/identities/{identity_id}/addresses/{address_id}/refresh",
    response_model=VerifiableAddressView,
    dependencies=[Depends(require_admin)],
)
def refresh_address(
    identity_id: UUID,
    address_id: UUID,
    ctx: OperationContext = Depends(operation_context),
) -> VerifiableAddressView:
    manager = identity_service.get_identity_manager()
    identity = manager.pool.get_identity_confidential(ctx, identity_id)
    address = next(
        (item for item in identity.addresses or [] if item.id == address_id), None
    )
    if address is None:
        raise NotFound(f"verifiable address {address_id} not found")
    manager.refresh_verify_address(ctx, address)
    return _to_address_view(address)


@router.put("/identities/{identity_id}/traits", response_model=IdentityResponse)
def update_traits(
    identity_id: UUID,
    request: TraitsUpdateRequest,
    ctx: OperationContext = Depends(operation_context),
) -> IdentityResponse:
    manager = identity_service.get_identity_manager()
    identity = manager.update_traits(ctx, identity_id, request.traits)
    return _to_identity_response(identity)

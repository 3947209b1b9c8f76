from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Optional
from uuid import UUID

from services.context import OperationContext
from services.errors import BadRequest, ProtectedFieldModified, ValidationFailed
from services.structured_log import log_event

from .code import new_verify_code
from .credentials import credentials_equal
from .models import Identity, Traits, VerifiableAddress, addresses_equal
from .pool import IdentityPool, get_identity_pool
from .settings import get_identity_settings
from .validation import TraitValidator, get_trait_validator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManagerOptions:
    # surface field level schema errors instead of a generic bad request
    expose_validation_errors: bool = False
    # skip the credentials/addresses guard in update_traits; trusted callers only
    allow_write_protected_traits: bool = False


_DEFAULT_OPTIONS = ManagerOptions()


class IdentityManager:
    """Creates and updates identities on top of an identity pool.

    ``update_traits`` is the unprivileged path: it refuses to persist an
    identity whose credentials or verifiable addresses differ from what was
    read from the pool, unless ``allow_write_protected_traits`` is set.
    """

    def __init__(
        self,
        pool: IdentityPool,
        validator: TraitValidator,
        *,
        verification_link_lifespan: timedelta,
    ) -> None:
        if verification_link_lifespan <= timedelta(0):
            raise ValueError("verification_link_lifespan must be positive")
        self.pool = pool
        self.validator = validator
        self.verification_link_lifespan = verification_link_lifespan

    def create(
        self,
        ctx: OperationContext,
        identity: Identity,
        options: Optional[ManagerOptions] = None,
    ) -> None:
        opts = options or _DEFAULT_OPTIONS
        ctx.raise_if_done()
        self._validate(ctx, identity, opts)
        ctx.raise_if_done()
        self.pool.create_identity(ctx, identity)
        log_event(logger, event="identity_created", identity_id=str(identity.id))

    def update(
        self,
        ctx: OperationContext,
        identity: Identity,
        options: Optional[ManagerOptions] = None,
    ) -> None:
        opts = options or _DEFAULT_OPTIONS
        ctx.raise_if_done()
        self._validate(ctx, identity, opts)
        ctx.raise_if_done()
        self.pool.update_identity(ctx, identity)
        log_event(logger, event="identity_updated", identity_id=str(identity.id))

    def update_traits(
        self,
        ctx: OperationContext,
        identity_id: UUID,
        traits: Traits,
        options: Optional[ManagerOptions] = None,
    ) -> Identity:
        opts = options or _DEFAULT_OPTIONS
        ctx.raise_if_done()
        identity = self.pool.get_identity_confidential(ctx, identity_id)
        # original is used to check whether protected fields were modified
        original = identity.snapshot()
        identity.traits = traits
        self._validate(ctx, identity, opts)

        if not opts.allow_write_protected_traits:
            if not credentials_equal(
                identity.credentials, original.credentials
            ) or not addresses_equal(original.addresses, identity.addresses):
                identity.restore(original)
                log_event(
                    logger,
                    event="identity_protected_field_modified",
                    level=logging.WARNING,
                    identity_id=str(identity_id),
                )
                raise ProtectedFieldModified()

        ctx.raise_if_done()
        self.pool.update_identity(ctx, identity)
        log_event(logger, event="identity_traits_updated", identity_id=str(identity_id))
        return identity

    def refresh_verify_address(
        self, ctx: OperationContext, address: VerifiableAddress
    ) -> None:
        ctx.raise_if_done()
        address.code = new_verify_code()
        address.expires_at = datetime.now(timezone.utc) + self.verification_link_lifespan
        self.pool.update_verifiable_address(ctx, address)
        log_event(
            logger,
            event="identity_address_code_refreshed",
            identity_id=str(address.identity_id),
            address_id=str(address.id),
        )

    def _validate(
        self, ctx: OperationContext, identity: Identity, options: ManagerOptions
    ) -> None:
        ctx.raise_if_done()
        try:
            self.validator.validate(identity)
        except ValidationFailed as exc:
            if options.expose_validation_errors:
                raise
            raise BadRequest(exc.reason) from exc


def get_identity_manager() -> IdentityManager:
    settings = get_identity_settings()
    return IdentityManager(
        get_identity_pool(),
        get_trait_validator(),
        verification_link_lifespan=timedelta(
            seconds=settings.verification_link_lifespan_seconds
        ),
    )

from .code import new_verify_code
from .credentials import (
    CREDENTIALS_TYPE_CODE,
    CREDENTIALS_TYPE_OIDC,
    CREDENTIALS_TYPE_PASSWORD,
    Credentials,
    CredentialsType,
    credentials_equal,
)
from .manager import IdentityManager, ManagerOptions, get_identity_manager
from .models import (
    Identity,
    Traits,
    VerifiableAddress,
    addresses_equal,
    new_verifiable_email_address,
)
from .pool import IdentityPool, RedisIdentityPool, get_identity_pool
from .settings import IdentitySettings, get_identity_settings
from .validation import SchemaTraitValidator, TraitValidator, get_trait_validator

__all__ = [
    "CREDENTIALS_TYPE_CODE",
    "CREDENTIALS_TYPE_OIDC",
    "CREDENTIALS_TYPE_PASSWORD",
    "Credentials",
    "CredentialsType",
    "Identity",
    "IdentityManager",
    "IdentityPool",
    "IdentitySettings",
    "ManagerOptions",
    "RedisIdentityPool",
    "SchemaTraitValidator",
    "TraitValidator",
    "Traits",
    "VerifiableAddress",
    "addresses_equal",
    "credentials_equal",
    "get_identity_manager",
    "get_identity_pool",
    "get_identity_settings",
    "get_trait_validator",
    "new_verifiable_email_address",
    "new_verify_code",
]

"""tokenkeeper - Azure Active Directory / ADFS 向け OAuth2 トークン取得ライブラリ"""

__version__ = "0.1.0"

from tokenkeeper.authentication_context import AuthenticationContext  # noqa: E402
from tokenkeeper.authority import Authority  # noqa: E402
from tokenkeeper.cache import CacheEntry, MemoryCache, TokenCache  # noqa: E402
from tokenkeeper.config import ConfigManager, TokenKeeperSettings  # noqa: E402
from tokenkeeper.credentials import (  # noqa: E402
    ClientAssertion,
    ClientAssertionCertificate,
    ClientCredential,
    UserAssertion,
    UserCredential,
    UserIdentifier,
)
from tokenkeeper.credentials.identity import decode_claims_unverified  # noqa: E402
from tokenkeeper.errors import (  # noqa: E402
    ArgumentException,
    AuthorityValidationException,
    CacheSerializationException,
    ConfigurationException,
    ErrorCode,
    TokenKeeperError,
    TokenKeeperException,
    TransportException,
)
from tokenkeeper.token_response import (  # noqa: E402
    ErrorResponse,
    SuccessResponse,
    TokenResponse,
    is_error,
    parse,
)

__all__ = [
    "__version__",
    "ArgumentException",
    "AuthenticationContext",
    "Authority",
    "AuthorityValidationException",
    "CacheEntry",
    "CacheSerializationException",
    "ClientAssertion",
    "ClientAssertionCertificate",
    "ClientCredential",
    "ConfigManager",
    "ConfigurationException",
    "ErrorCode",
    "ErrorResponse",
    "MemoryCache",
    "SuccessResponse",
    "TokenCache",
    "TokenKeeperError",
    "TokenKeeperException",
    "TokenKeeperSettings",
    "TokenResponse",
    "TransportException",
    "UserAssertion",
    "UserCredential",
    "UserIdentifier",
    "decode_claims_unverified",
    "is_error",
    "parse",
]

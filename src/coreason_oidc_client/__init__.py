# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc_client

"""
Response validation core of an OpenID Connect relying party: state correlation, code exchange,
id_token validation with signing key rotation recovery, and user info claim reconciliation.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .client import OidcClient
from .config import OidcClientSettings
from .exceptions import (
    ConfigurationError,
    CoreasonOidcError,
    NetworkError,
    ProtocolError,
    ServerError,
)
from .metadata_service import MetadataService
from .models import Claims, OidcMetadata, SigninResponse, SigninState, SignoutResponse, SignoutState
from .validator import ResponseValidator

__all__ = [
    "Claims",
    "ConfigurationError",
    "CoreasonOidcError",
    "MetadataService",
    "NetworkError",
    "OidcClient",
    "OidcClientSettings",
    "OidcMetadata",
    "ProtocolError",
    "ResponseValidator",
    "ServerError",
    "SigninResponse",
    "SigninState",
    "SignoutResponse",
    "SignoutState",
]

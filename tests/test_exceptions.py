# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc_client

import pytest

from coreason_oidc_client.exceptions import (
    AccessTokenHashError,
    ConfigurationError,
    CoreasonOidcError,
    InvalidAudienceError,
    InvalidTokenError,
    MissingMetadataPropertyError,
    NetworkError,
    OversizedResponseError,
    ProtocolError,
    ServerError,
    SignatureVerificationError,
    StateMismatchError,
    TokenExpiredError,
)


@pytest.mark.parametrize(
    ("error", "parent"),
    [
        (MissingMetadataPropertyError, ConfigurationError),
        (OversizedResponseError, NetworkError),
        (StateMismatchError, ProtocolError),
        (AccessTokenHashError, ProtocolError),
        (TokenExpiredError, InvalidTokenError),
        (InvalidAudienceError, InvalidTokenError),
        (SignatureVerificationError, InvalidTokenError),
        (InvalidTokenError, ProtocolError),
        (ServerError, CoreasonOidcError),
        (ProtocolError, CoreasonOidcError),
        (NetworkError, CoreasonOidcError),
        (ConfigurationError, CoreasonOidcError),
    ],
)
def test_hierarchy(error: type[Exception], parent: type[Exception]) -> None:
    assert issubclass(error, parent)


def test_state_attached() -> None:
    error = StateMismatchError("boom")
    assert error.state is None
    error.state = {"app": 1}
    with pytest.raises(ProtocolError) as exc_info:
        raise error
    assert exc_info.value.state == {"app": 1}
    assert str(exc_info.value) == "boom"


def test_checks_are_named() -> None:
    assert StateMismatchError.check == "state"
    assert TokenExpiredError.check == "exp"
    assert ServerError.check == "server"
    assert CoreasonOidcError.check == "unknown"


def test_server_error_message_falls_back_to_code() -> None:
    error = ServerError("invalid_request", state="data", session_state="ss")
    assert str(error) == "invalid_request"
    assert error.error_description is None
    assert error.state == "data"
    assert error.session_state == "ss"

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
ResponseValidator component for validating sign-in and sign-out responses.
"""

import hmac
import time
from collections.abc import Callable
from typing import Any, Protocol

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from coreason_oidc_client.claims import filter_protocol_claims, merge_claims
from coreason_oidc_client.config import OidcClientSettings
from coreason_oidc_client.exceptions import (
    AccessTokenHashError,
    CoreasonOidcError,
    InvalidNonceError,
    InvalidStateError,
    MalformedTokenError,
    MissingCodeError,
    MissingIdTokenError,
    MissingNonceError,
    MissingSubjectError,
    ServerError,
    SigningKeyNotFoundError,
    StateMismatchError,
    SubjectMismatchError,
    UnexpectedCodeError,
    UnexpectedIdTokenError,
    UnsupportedAlgorithmError,
)
from coreason_oidc_client.jose import (
    SigningAlgorithm,
    base64url_encode,
    hash_string,
    parse_jwt,
    validate_jwt,
    validate_jwt_attributes,
)
from coreason_oidc_client.metadata_service import MetadataService
from coreason_oidc_client.models import (
    Claims,
    SigninResponse,
    SigninState,
    SigningKey,
    SignoutResponse,
    SignoutState,
    TokenResponse,
)
from coreason_oidc_client.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)

# Token request parameters set by the validator itself; extra parameters cannot override them
_TOKEN_REQUEST_PARAMS = frozenset(
    {"grant_type", "client_id", "client_secret", "code", "redirect_uri", "code_verifier"}
)

# Token response members folded into the sign-in response, first non-empty value wins
_TOKEN_RESPONSE_FIELDS = (
    "error",
    "error_description",
    "error_uri",
    "id_token",
    "session_state",
    "access_token",
    "refresh_token",
    "token_type",
    "scope",
    "expires_in",
)

_AT_HASH_BITS = (256, 384, 512)


class TokenExchanger(Protocol):
    """Protocol for the token endpoint client."""

    async def exchange_code(
        self,
        *,
        client_id: str,
        code: str,
        redirect_uri: str,
        code_verifier: str,
        client_secret: str | None = None,
        **extra: Any,
    ) -> TokenResponse:
        """Exchanges an authorization code. In-band errors are returned in the response."""
        ...


class UserInfoProvider(Protocol):
    """Protocol for the user info endpoint client."""

    async def get_claims(self, access_token: str) -> dict[str, Any]:
        """Returns the claims of the user the access token was issued to."""
        ...


class ResponseValidator:
    """
    Validates authorization and end-session responses against their stored request state.

    Attributes:
        settings (OidcClientSettings): The client settings.
        metadata_service (MetadataService): Source of the issuer and signing keys.
        token_client (TokenExchanger): The token endpoint client.
        user_info_service (UserInfoProvider): The user info endpoint client.
    """

    def __init__(
        self,
        settings: OidcClientSettings,
        metadata_service: MetadataService,
        token_client: TokenExchanger,
        user_info_service: UserInfoProvider,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the ResponseValidator.

        Args:
            settings: The client settings.
            metadata_service: The MetadataService for issuer and signing keys.
            token_client: Client for the authorization code exchange.
            user_info_service: Client for the user info endpoint.
            clock: Source of the current epoch time. Defaults to `time.time`.
        """
        self.settings = settings
        self.metadata_service = metadata_service
        self.token_client = token_client
        self.user_info_service = user_info_service
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    async def validate_signin_response(self, state: SigninState, response: SigninResponse) -> SigninResponse:
        """
        Validates an authorization response and returns it enriched with tokens and profile.

        Emits an OpenTelemetry span `validate_signin_response`.

        Args:
            state: The stored state of the authorization request.
            response: The parsed authorization response.

        Returns:
            SigninResponse: A new response whose `state` is the application data of the request
            state and whose `profile` holds the validated claims, when an id_token was issued.

        Raises:
            StateMismatchError: If the response does not answer the given request.
            ServerError: If the provider returned an error.
            ProtocolError: If any other check fails. Carries the request state data.
            NetworkError: If a provider request fails. Carries the request state data.
        """
        with tracer.start_as_current_span("validate_signin_response") as span:
            try:
                response = self._correlate(state, response)
                try:
                    response = self._process_signin_params(state, response)
                    logger.debug("Sign-in state processed")
                    response = await self._validate_tokens(state, response)
                    logger.debug("Sign-in tokens validated")
                    response = await self._process_claims(state, response)
                    logger.debug("Sign-in claims processed")
                except CoreasonOidcError as e:
                    e.state = state.data
                    raise
            except CoreasonOidcError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            if response.profile is not None and response.profile.sub:
                user_hash = anonymize(str(response.profile.sub), self.settings.pii_salt.get_secret_value())
                logger.info(f"Sign-in response validated for user {user_hash}")
                span.set_attribute("enduser.id", user_hash)
            else:
                logger.info("Sign-in response validated")
            span.set_status(Status(StatusCode.OK))
            return response

    async def validate_signout_response(self, state: SignoutState, response: SignoutResponse) -> SignoutResponse:
        """
        Validates an end-session response.

        Args:
            state: The stored state of the end-session request.
            response: The parsed end-session response.

        Returns:
            SignoutResponse: A new response whose `state` is the application data of the request state.

        Raises:
            StateMismatchError: If the response does not answer the given request.
            ServerError: If the provider returned an error.
        """
        with tracer.start_as_current_span("validate_signout_response") as span:
            try:
                response = self._correlate(state, response)
                if response.error:
                    logger.warning(f"Sign-out response was error: {response.error}")
                    raise ServerError(
                        response.error,
                        response.error_description,
                        response.error_uri,
                        state=state.data,
                    )
            except CoreasonOidcError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            span.set_status(Status(StatusCode.OK))
            return response

    def _correlate(self, state: SigninState | SignoutState, response: Any) -> Any:
        if response.state != state.id:
            logger.error("State does not match")
            raise StateMismatchError("State does not match")

        # From here on the caller gets its application data back, on success and on failure
        logger.debug("State validated")
        return response.model_copy(update={"state": state.data})

    def _process_signin_params(self, state: SigninState, response: SigninResponse) -> SigninResponse:
        if not state.client_id:
            raise InvalidStateError("No client_id on state")

        if not state.authority:
            raise InvalidStateError("No authority on state")

        if self.settings.authority and self.settings.authority != state.authority:
            logger.error("Authority mismatch on settings vs. sign-in state")
            raise InvalidStateError("authority mismatch on settings vs. signin state")

        if self.settings.client_id != state.client_id:
            logger.error("client_id mismatch on settings vs. sign-in state")
            raise InvalidStateError("client_id mismatch on settings vs. signin state")

        if response.error:
            logger.warning(f"Sign-in response was error: {response.error}")
            raise ServerError(
                response.error,
                response.error_description,
                response.error_uri,
                state=state.data,
                session_state=response.session_state,
            )

        if state.nonce and not response.id_token:
            raise MissingIdTokenError("No id_token in response")

        if not state.nonce and response.id_token:
            raise UnexpectedIdTokenError("Unexpected id_token in response")

        if state.code_verifier and not response.code:
            raise MissingCodeError("No code in response")

        if not state.code_verifier and response.code:
            raise UnexpectedCodeError("Unexpected code in response")

        if not response.scope:
            # No scope in the response means all requested scopes were granted
            response = response.model_copy(update={"scope": state.scope})

        return response

    async def _validate_tokens(self, state: SigninState, response: SigninResponse) -> SigninResponse:
        if response.code:
            logger.debug("Validating code")
            return await self._process_code(state, response)

        if response.id_token:
            logger.debug("Validating id_token")
            response = await self._validate_id_token(state, response, response.id_token)
            if response.access_token:
                logger.debug("Validating access_token against id_token")
                self._validate_access_token(response, response.access_token)
            return response

        logger.debug("No code to process or id_token to validate")
        return response

    async def _process_code(self, state: SigninState, response: SigninResponse) -> SigninResponse:
        extra = {k: v for k, v in (state.extra_token_params or {}).items() if k not in _TOKEN_REQUEST_PARAMS}
        client_secret = self.settings.client_secret.get_secret_value() if self.settings.client_secret else None

        token_response = await self.token_client.exchange_code(
            client_id=state.client_id,
            client_secret=client_secret,
            code=response.code,  # type: ignore[arg-type]
            redirect_uri=state.redirect_uri,
            code_verifier=state.code_verifier or "",
            **extra,
        )

        update: dict[str, Any] = {}
        for name in _TOKEN_RESPONSE_FIELDS:
            value = getattr(token_response, name)
            if value:
                update[name] = value
        if "expires_in" in update:
            update["received_at"] = self._now()
        response = response.model_copy(update=update)

        if response.error:
            logger.warning(f"Token response was error: {response.error}")
            raise ServerError(
                response.error,
                response.error_description,
                response.error_uri,
                state=state.data,
                session_state=response.session_state,
            )

        if response.id_token:
            logger.debug("Token response successful, processing id_token")
            return await self._validate_id_token_attributes(state, response, response.id_token)

        logger.debug("Token response successful, returning response")
        return response

    async def _validate_id_token_attributes(
        self, state: SigninState, response: SigninResponse, id_token: str
    ) -> SigninResponse:
        # The token came straight from the token endpoint, so only the attributes are checked
        issuer = await self.metadata_service.get_issuer()
        clock_skew = self.settings.clock_skew_in_seconds
        logger.debug(f"Validating id_token attributes with clock skew of {clock_skew}s")

        payload = validate_jwt_attributes(id_token, issuer, state.client_id, clock_skew, self._now())

        if state.nonce and state.nonce != payload.get("nonce"):
            raise InvalidNonceError("Invalid nonce in id_token")

        if not payload.get("sub"):
            raise MissingSubjectError("No sub present in id_token")

        return response.model_copy(update={"profile": Claims(payload)})

    async def _validate_id_token(self, state: SigninState, response: SigninResponse, id_token: str) -> SigninResponse:
        if not state.nonce:
            raise MissingNonceError("No nonce on state")

        jwt = parse_jwt(id_token)
        if jwt is None:
            logger.error("Failed to parse id_token")
            raise MalformedTokenError("Failed to parse id_token")

        if state.nonce != jwt.payload.get("nonce"):
            raise InvalidNonceError("Invalid nonce in id_token")

        issuer = await self.metadata_service.get_issuer()
        key = await self._get_signing_key_with_single_retry(jwt.header)
        if key is None:
            logger.error("No key matching kid or alg found in signing keys")
            raise SigningKeyNotFoundError("No key matching kid or alg found in signing keys")

        clock_skew = self.settings.clock_skew_in_seconds
        logger.debug(f"Validating id_token with clock skew of {clock_skew}s")
        payload = validate_jwt(id_token, key.as_jwk(), issuer, state.client_id, clock_skew, self._now())

        if not payload.get("sub"):
            raise MissingSubjectError("No sub present in id_token")

        return response.model_copy(update={"profile": Claims(payload)})

    async def _get_signing_key(self, header: dict[str, Any]) -> SigningKey | None:
        keys = await self.metadata_service.get_signing_keys()

        kid = header.get("kid")
        if kid:
            matches = [key for key in keys if key.kid == kid]
            return matches[0] if len(matches) == 1 else None

        algorithm = SigningAlgorithm.parse(header.get("alg"))
        key_type = algorithm.key_type if algorithm else None
        if key_type is None:
            logger.debug(f"alg not supported for key selection: {header.get('alg')}")
            return None

        # kid is only mandatory when the key set holds several keys of the algorithm's type
        matches = [key for key in keys if key.kty == key_type]
        if len(matches) != 1:
            logger.warning(f"No kid in id_token and {len(matches)} keys of type {key_type} in key set")
            return None
        return matches[0]

    async def _get_signing_key_with_single_retry(self, header: dict[str, Any]) -> SigningKey | None:
        key = await self._get_signing_key(header)
        if key is not None:
            return key

        # The provider may have rotated its keys since the key set was cached
        logger.info("No signing key matches the id_token, refreshing signing keys and retrying...")
        trace.get_current_span().add_event("refreshing_signing_keys")
        self.metadata_service.reset_signing_keys()
        return await self._get_signing_key(header)

    def _validate_access_token(self, response: SigninResponse, access_token: str) -> None:
        if response.profile is None:
            raise AccessTokenHashError("No profile loaded from id_token")

        at_hash = response.profile.at_hash
        if not at_hash:
            raise AccessTokenHashError("No at_hash in id_token")

        jwt = parse_jwt(response.id_token or "")
        if jwt is None:
            raise MalformedTokenError("Failed to parse id_token")

        alg = jwt.header.get("alg")
        algorithm = SigningAlgorithm.parse(alg) if isinstance(alg, str) and len(alg) == 5 else None
        if algorithm is None or algorithm.hash_bits not in _AT_HASH_BITS:
            logger.error(f"Unsupported alg for at_hash: {alg}")
            raise UnsupportedAlgorithmError(f"Unsupported alg: {alg}")

        digest = hash_string(access_token, algorithm.hash_name)
        left_half = base64url_encode(digest[: len(digest) // 2])
        if not hmac.compare_digest(left_half.encode("utf-8"), str(at_hash).encode("utf-8")):
            logger.error("Failed to validate at_hash")
            raise AccessTokenHashError("Failed to validate at_hash")

        logger.debug("at_hash validated")

    async def _process_claims(self, state: SigninState, response: SigninResponse) -> SigninResponse:
        if not response.is_openid_connect or response.profile is None:
            logger.debug("Response is not OIDC, not processing claims")
            return response

        profile = response.profile.to_dict()
        if self.settings.filter_protocol_claims:
            profile = filter_protocol_claims(profile)

        if not state.skip_user_info and self.settings.load_user_info and response.access_token:
            logger.debug("Loading user info")
            claims = await self.user_info_service.get_claims(response.access_token)

            if claims.get("sub") != profile.get("sub"):
                logger.error("sub from user info endpoint does not match sub in id_token")
                raise SubjectMismatchError("sub from user info endpoint does not match sub in id_token")

            profile = merge_claims(profile, claims, deep=self.settings.merge_claims)
        else:
            logger.debug("Not loading user info")

        return response.model_copy(update={"profile": Claims(profile)})

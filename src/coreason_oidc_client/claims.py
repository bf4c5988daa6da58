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
Claim set reconciliation between the id_token and the user info endpoint.
"""

from collections.abc import Mapping
from typing import Any

# Claims that only serve token validation and carry nothing about the user
PROTOCOL_CLAIMS = frozenset({"nonce", "at_hash", "iat", "nbf", "exp", "aud", "iss", "c_hash"})


def filter_protocol_claims(claims: Mapping[str, Any]) -> dict[str, Any]:
    """Returns a copy of the claims without the protocol claims."""
    return {name: value for name, value in claims.items() if name not in PROTOCOL_CLAIMS}


def merge_claims(first: Mapping[str, Any], second: Mapping[str, Any], deep: bool = False) -> dict[str, Any]:
    """
    Merges the second claim set into a copy of the first.

    Values of the second set are taken element by element (a scalar counts as one element).
    A new name is copied over. A list-valued claim gains the elements it does not contain yet,
    compared by value. A differing scalar becomes a two-element list, unless both values are
    objects and `deep` is set, in which case they are merged recursively.

    Args:
        first: The base claims, typically from the id_token.
        second: The claims to merge in, typically from the user info endpoint.
        deep: Recursively merge object-valued claims.

    Returns:
        dict[str, Any]: The merged claims. Neither input is modified.
    """
    result = dict(first)

    for name, values in second.items():
        if not isinstance(values, list):
            values = [values]

        for value in values:
            if name not in result:
                result[name] = value
                continue

            existing = result[name]
            if isinstance(existing, list):
                if value not in existing:
                    result[name] = [*existing, value]
            elif existing != value:
                if deep and isinstance(existing, Mapping) and isinstance(value, Mapping):
                    result[name] = merge_claims(existing, value, deep=True)
                else:
                    result[name] = [existing, value]

    return result

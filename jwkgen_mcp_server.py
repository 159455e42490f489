#!/usr/bin/env python3
# Copyright 2026 Jason M. Lovell
# SPDX-License-Identifier: Apache-2.0
"""
An MCP server exposing the JWK generator as tools.
Keys are returned to the caller only; nothing is written to disk.
"""

import json

from mcp.server.fastmcp import FastMCP

import jwkgen

# Initialize FastMCP server
mcp = FastMCP("JWK Generator")


@mcp.resource("jwkgen://key-types")
def get_key_types() -> str:
    """
    Returns the supported key types, their required parameter and the known curves.
    """
    return json.dumps(jwkgen.key_types_summary(), indent=2, sort_keys=True)


@mcp.tool()
def generate_jwk(
    kty: str,
    size: str | None = None,
    crv: str | None = None,
    use: str | None = None,
    alg: str | None = None,
    kid: str | None = None,
    no_kid: bool = False,
    thumbprint_kid: bool = False,
    keyset: bool = False,
) -> str:
    """
    Generate a private JSON Web Key. Set 'keyset' to wrap it in a JWK Set.
    """
    request = jwkgen.KeyRequest(
        kty=kty,
        size=size,
        use=use,
        alg=alg,
        kid=kid,
        crv=crv,
        no_kid=no_kid,
        thumbprint_kid=thumbprint_kid,
    )
    try:
        jwk = jwkgen.generate_jwk(request)
    except jwkgen.JWKGenError as e:
        return f"Error: {e!s}"
    return jwkgen.render_key(jwk, keyset=keyset)


@mcp.tool()
def public_key(jwk_json: str) -> str:
    """
    Derive the public JWK of a private JWK.
    """
    try:
        pub = jwkgen.public_jwk(json.loads(jwk_json))
    except (ValueError, AttributeError) as e:
        return f"Error: {e!s}"
    if pub is None:
        return "No public key."
    return jwkgen.dump_json(pub)


@mcp.tool()
def thumbprint(jwk_json: str) -> str:
    """
    Compute the RFC 7638 SHA-256 thumbprint of a JWK.
    """
    try:
        return jwkgen.jwk_thumbprint(json.loads(jwk_json))
    except (ValueError, AttributeError) as e:
        return f"Error: {e!s}"


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()

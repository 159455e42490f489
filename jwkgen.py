#!/usr/bin/env python3
# Copyright 2026 Jason M. Lovell
# SPDX-License-Identifier: Apache-2.0
"""
jwkgen.py: command line generator for JSON Web Keys (JWK) and JWK Sets.

This script provides:
- RSA, EC, oct and OKP key generation with use/alg/kid metadata
- Key ID assignment (explicit, suppressed, usage-prefixed UUID or RFC 7638 thumbprint)
- Public key projection for asymmetric keys
- JWK Set output, optionally appended to an existing keyset file

Notes:
- Key material always comes from the 'cryptography' library; this module only attaches metadata.
- Keyset files are read, extended and rewritten. Writers are not locked against each other,
  so two invocations targeting the same file race and the last one wins.
"""

from __future__ import annotations

import argparse
import base64
import contextlib
import enum
import hashlib
import json
import math
import os
import secrets
import sys
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

try:
    from jsonschema import Draft202012Validator
except ImportError as e:
    raise SystemExit(
        "Missing dependency 'jsonschema'. Install with: python3 -m pip install -e ."
    ) from e

try:
    import jcs
except ImportError as e:
    raise SystemExit(
        "Missing dependency 'jcs'. Install with: python3 -m pip install -e ."
    ) from e

try:
    from cryptography.exceptions import UnsupportedAlgorithm
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa, x448, x25519
except ImportError as e:
    raise SystemExit(
        "Missing dependency 'cryptography'. Install with: python3 -m pip install -e ."
    ) from e


# ---------------------------
# Errors
# ---------------------------

class JWKGenError(Exception):
    """Base class for every failure the generator reports to its caller."""


class UsageError(JWKGenError):
    """A command line parameter is missing or invalid."""


class KeyGenerationError(JWKGenError):
    """The cryptographic primitive refused to generate the requested key."""


class KeySetError(JWKGenError):
    """An existing keyset file could not be parsed as a JWK Set."""


# ---------------------------
# Utilities
# ---------------------------

def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def int_to_b64url(value: int, length: Optional[int] = None) -> str:
    """
    Big-endian base64url encoding of an unsigned integer.
    Without a length the minimal number of octets is used (RFC 7518 §6.3).
    """
    if length is None:
        length = max(1, (value.bit_length() + 7) // 8)
    return b64url_encode(value.to_bytes(length, "big"))


def jcs_canonicalize(obj: Any) -> str:
    """
    RFC 8785 (JCS) canonicalization via the 'jcs' library.
    """
    canonical = jcs.canonicalize(obj)
    if isinstance(canonical, bytes):
        return canonical.decode("utf-8")
    return canonical


def dump_json(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True, allow_nan=False) + "\n"


def write_text_atomic(path: Path, text: str) -> None:
    """
    Replace 'path' with 'text' in one rename, so readers never see a partial file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", text=True)
    tmp_path = Path(tmp_name)
    try:
        with open(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    finally:
        with contextlib.suppress(OSError):
            tmp_path.unlink(missing_ok=True)


# ---------------------------
# Key type registry
# ---------------------------

class KeyType(str, enum.Enum):
    RSA = "RSA"
    EC = "EC"
    OCT = "oct"
    OKP = "OKP"

    @classmethod
    def parse(cls, value: str) -> "KeyType":
        for member in cls:
            if member.value == value:
                return member
        raise UsageError(f"Unknown key type: {value}")


class KeyUse(str, enum.Enum):
    SIGNATURE = "sig"
    ENCRYPTION = "enc"

    @classmethod
    def parse(cls, value: str) -> "KeyUse":
        for member in cls:
            if member.value == value:
                return member
        raise UsageError(f"Invalid key usage, must be 'sig' or 'enc', got {value}")


class Curve(str, enum.Enum):
    P_256 = "P-256"
    P_384 = "P-384"
    P_521 = "P-521"
    SECP256K1 = "secp256k1"
    ED25519 = "Ed25519"
    ED448 = "Ed448"
    X25519 = "X25519"
    X448 = "X448"

    @classmethod
    def parse(cls, value: str) -> "Curve":
        for member in cls:
            if member.value == value:
                return member
        raise UsageError(f"Unknown curve: {value}")


EC_CURVES = (Curve.P_256, Curve.P_384, Curve.P_521, Curve.SECP256K1)
OKP_CURVES = (Curve.ED25519, Curve.ED448, Curve.X25519, Curve.X448)


@dataclass(frozen=True)
class KeyTypeParameters:
    """
    Parameter set of one key type: the required parameter ('size' or 'crv')
    and whether an algorithm may be attached to the generated key.
    """

    required: str
    accepts_alg: bool
    private_members: tuple
    thumbprint_members: tuple


# OKP keys take no 'alg': the generator never attaches one to them.
KEY_TYPES: Dict[KeyType, KeyTypeParameters] = {
    KeyType.RSA: KeyTypeParameters(
        required="size",
        accepts_alg=True,
        private_members=("d", "p", "q", "dp", "dq", "qi", "oth"),
        thumbprint_members=("e", "kty", "n"),
    ),
    KeyType.EC: KeyTypeParameters(
        required="crv",
        accepts_alg=True,
        private_members=("d",),
        thumbprint_members=("crv", "kty", "x", "y"),
    ),
    KeyType.OCT: KeyTypeParameters(
        required="size",
        accepts_alg=True,
        private_members=("k",),
        thumbprint_members=("k", "kty"),
    ),
    KeyType.OKP: KeyTypeParameters(
        required="crv",
        accepts_alg=False,
        private_members=("d",),
        thumbprint_members=("crv", "kty", "x"),
    ),
}


# ---------------------------
# Key generation primitives
# ---------------------------

class KeyGenerator(Protocol):
    """
    One method per key family. Each returns the key material members of a
    private JWK (including 'kty', and 'crv' where applicable) and raises
    KeyGenerationError when the request cannot be satisfied.
    """

    def rsa(self, size: int) -> Dict[str, Any]: ...

    def ec(self, curve: Curve) -> Dict[str, Any]: ...

    def oct(self, size: int) -> Dict[str, Any]: ...

    def okp(self, curve: Curve) -> Dict[str, Any]: ...


_EC_CURVE_CLASSES = {
    Curve.P_256: ec.SECP256R1,
    Curve.P_384: ec.SECP384R1,
    Curve.P_521: ec.SECP521R1,
    Curve.SECP256K1: ec.SECP256K1,
}

_OKP_KEY_CLASSES = {
    Curve.ED25519: ed25519.Ed25519PrivateKey,
    Curve.ED448: ed448.Ed448PrivateKey,
    Curve.X25519: x25519.X25519PrivateKey,
    Curve.X448: x448.X448PrivateKey,
}

RSA_PUBLIC_EXPONENT = 65537


class CryptographyKeyGenerator:
    """KeyGenerator backed by the 'cryptography' package."""

    def rsa(self, size: int) -> Dict[str, Any]:
        try:
            priv = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=size)
        except (ValueError, UnsupportedAlgorithm) as e:
            raise KeyGenerationError(f"Could not generate RSA key of {size} bits: {e}") from e
        numbers = priv.private_numbers()
        pub = numbers.public_numbers
        return {
            "kty": KeyType.RSA.value,
            "n": int_to_b64url(pub.n),
            "e": int_to_b64url(pub.e),
            "d": int_to_b64url(numbers.d),
            "p": int_to_b64url(numbers.p),
            "q": int_to_b64url(numbers.q),
            "dp": int_to_b64url(numbers.dmp1),
            "dq": int_to_b64url(numbers.dmq1),
            "qi": int_to_b64url(numbers.iqmp),
        }

    def ec(self, curve: Curve) -> Dict[str, Any]:
        curve_cls = _EC_CURVE_CLASSES.get(curve)
        if curve_cls is None:
            raise KeyGenerationError(f"Curve {curve.value} is not an EC curve")
        try:
            priv = ec.generate_private_key(curve_cls())
        except (ValueError, UnsupportedAlgorithm) as e:
            raise KeyGenerationError(f"Could not generate EC key on {curve.value}: {e}") from e
        numbers = priv.private_numbers()
        size = (priv.curve.key_size + 7) // 8
        return {
            "kty": KeyType.EC.value,
            "crv": curve.value,
            "x": int_to_b64url(numbers.public_numbers.x, size),
            "y": int_to_b64url(numbers.public_numbers.y, size),
            "d": int_to_b64url(numbers.private_value, size),
        }

    def oct(self, size: int) -> Dict[str, Any]:
        return {"kty": KeyType.OCT.value, "k": b64url_encode(secrets.token_bytes(size // 8))}

    def okp(self, curve: Curve) -> Dict[str, Any]:
        key_cls = _OKP_KEY_CLASSES.get(curve)
        if key_cls is None:
            raise KeyGenerationError(f"Curve {curve.value} is not an OKP curve")
        try:
            priv = key_cls.generate()
        except UnsupportedAlgorithm as e:
            raise KeyGenerationError(f"Could not generate OKP key on {curve.value}: {e}") from e
        priv_bytes = priv.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        pub_bytes = priv.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return {
            "kty": KeyType.OKP.value,
            "crv": curve.value,
            "x": b64url_encode(pub_bytes),
            "d": b64url_encode(priv_bytes),
        }


# ---------------------------
# Key makers
# ---------------------------

def _attach_metadata(
    material: Dict[str, Any],
    use: Optional[KeyUse],
    alg: Optional[str],
    kid: Optional[str],
) -> Dict[str, Any]:
    jwk = dict(material)
    if use is not None:
        jwk["use"] = use.value
    if alg:
        jwk["alg"] = alg
    if kid:
        jwk["kid"] = kid
    return jwk


def make_rsa_key(
    generator: KeyGenerator,
    size: int,
    use: Optional[KeyUse] = None,
    alg: Optional[str] = None,
    kid: Optional[str] = None,
) -> Dict[str, Any]:
    return _attach_metadata(generator.rsa(size), use, alg, kid)


def make_ec_key(
    generator: KeyGenerator,
    curve: Curve,
    use: Optional[KeyUse] = None,
    alg: Optional[str] = None,
    kid: Optional[str] = None,
) -> Dict[str, Any]:
    return _attach_metadata(generator.ec(curve), use, alg, kid)


def make_oct_key(
    generator: KeyGenerator,
    size: int,
    use: Optional[KeyUse] = None,
    alg: Optional[str] = None,
    kid: Optional[str] = None,
) -> Dict[str, Any]:
    return _attach_metadata(generator.oct(size), use, alg, kid)


def make_okp_key(
    generator: KeyGenerator,
    curve: Curve,
    use: Optional[KeyUse] = None,
    kid: Optional[str] = None,
) -> Dict[str, Any]:
    return _attach_metadata(generator.okp(curve), use, None, kid)


# ---------------------------
# Key IDs and projections
# ---------------------------

def generate_kid(use: Optional[KeyUse]) -> str:
    """
    Random key id, prefixed with the usage value ("sig"/"enc") when one is set.
    """
    prefix = "" if use is None else use.value
    return prefix + str(uuid.uuid4())


def choose_kid(kid: Optional[str], use: Optional[KeyUse], *, generate: bool = True) -> Optional[str]:
    if kid:
        return kid
    if not generate:
        return None
    return generate_kid(use)


def key_type_of(jwk: Dict[str, Any]) -> KeyType:
    kty = jwk.get("kty")
    if not isinstance(kty, str):
        raise ValueError("JWK must include a string 'kty'")
    try:
        return KeyType.parse(kty)
    except UsageError as e:
        raise ValueError(str(e)) from e


def jwk_thumbprint(jwk: Dict[str, Any]) -> str:
    """
    RFC 7638 JWK thumbprint (SHA-256, base64url) over the required members of the key type.
    """
    params = KEY_TYPES[key_type_of(jwk)]
    members = {}
    for name in params.thumbprint_members:
        if name not in jwk:
            raise ValueError(f"JWK missing required member for thumbprint: {name}")
        members[name] = jwk[name]
    digest = hashlib.sha256(jcs_canonicalize(members).encode("utf-8")).digest()
    return b64url_encode(digest)


def public_jwk(jwk: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Public projection of a JWK, or None for symmetric (oct) keys.
    """
    key_type = key_type_of(jwk)
    if key_type is KeyType.OCT:
        return None
    private = KEY_TYPES[key_type].private_members
    return {k: v for k, v in jwk.items() if k not in private}


# ---------------------------
# Dispatcher
# ---------------------------

@dataclass(frozen=True)
class KeyRequest:
    """Raw, unvalidated parameters of one generation request."""

    kty: Optional[str]
    size: Optional[str] = None
    use: Optional[str] = None
    alg: Optional[str] = None
    kid: Optional[str] = None
    crv: Optional[str] = None
    no_kid: bool = False
    thumbprint_kid: bool = False


def parse_key_size(value: Optional[str], key_type: KeyType) -> int:
    if not value:
        raise UsageError(f"Key size (in bits) is required for key type {key_type.value}")
    try:
        size = int(value, 0)
    except ValueError as e:
        raise UsageError(f"Invalid key size: {value}") from e
    if size <= 0:
        raise UsageError(f"Key size (in bits) must be a positive integer, got {size}")
    if size % 8 != 0:
        raise UsageError(f"Key size (in bits) must be divisible by 8, got {size}")
    return size


def parse_curve(value: Optional[str], key_type: KeyType) -> Curve:
    if not value:
        raise UsageError(f"Curve is required for key type {key_type.value}")
    return Curve.parse(value)


def generate_jwk(request: KeyRequest, generator: Optional[KeyGenerator] = None) -> Dict[str, Any]:
    """
    Validate 'request', generate exactly one key and return it as a private JWK dict.
    Raises UsageError before any generation when a parameter is invalid,
    KeyGenerationError when the primitive fails.
    """
    if generator is None:
        generator = CryptographyKeyGenerator()

    if not request.kty:
        raise UsageError("Key type must be supplied.")
    key_type = KeyType.parse(request.kty)

    use = KeyUse.parse(request.use) if request.use is not None else None

    assign_thumbprint = request.thumbprint_kid and not request.kid and not request.no_kid
    kid = choose_kid(request.kid, use, generate=not (request.no_kid or assign_thumbprint))

    alg = request.alg or None

    if key_type is KeyType.RSA:
        jwk = make_rsa_key(generator, parse_key_size(request.size, key_type), use, alg, kid)
    elif key_type is KeyType.OCT:
        jwk = make_oct_key(generator, parse_key_size(request.size, key_type), use, alg, kid)
    elif key_type is KeyType.EC:
        jwk = make_ec_key(generator, parse_curve(request.crv, key_type), use, alg, kid)
    elif key_type is KeyType.OKP:
        jwk = make_okp_key(generator, parse_curve(request.crv, key_type), use, kid)
    else:
        raise UsageError(f"Unknown key type: {key_type.value}")

    if jwk.get("kty") != key_type.value:
        raise KeyGenerationError(f"Generator returned a '{jwk.get('kty')}' key for key type {key_type.value}")

    if assign_thumbprint:
        jwk["kid"] = jwk_thumbprint(jwk)
    return jwk


# ---------------------------
# Output composition
# ---------------------------

KEYSET_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["keys"],
    "properties": {
        "keys": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["kty"],
                "properties": {"kty": {"type": "string"}},
            },
        },
    },
}


def wrap_keyset(*jwks: Dict[str, Any]) -> Dict[str, Any]:
    return {"keys": list(jwks)}


def _reject_json_constant(name: str) -> float:
    raise ValueError(f"non-standard JSON constant {name}")


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if math.isinf(value):
        raise ValueError(f"number out of range: {text}")
    return value


def load_keyset(path: Path) -> List[Dict[str, Any]]:
    """
    Keys of the JWK Set stored at 'path', in file order. A missing file is an empty set.
    """
    if not path.exists():
        return []
    try:
        doc = json.loads(
            path.read_text(encoding="utf-8"),
            parse_constant=_reject_json_constant,
            parse_float=_parse_finite_float,
        )
    except (ValueError, RecursionError) as e:
        raise KeySetError(f"Could not parse existing KeySet {path}: {e}") from e

    validator = Draft202012Validator(KEYSET_SCHEMA)
    errors = sorted(validator.iter_errors(doc), key=lambda err: list(err.path))
    if errors:
        where = ".".join(str(p) for p in errors[0].path) or "<root>"
        raise KeySetError(f"Could not parse existing KeySet {path}: {where}: {errors[0].message}")
    return list(doc["keys"])


def merge_into_keyset(existing: List[Dict[str, Any]], jwk: Dict[str, Any]) -> Dict[str, Any]:
    return wrap_keyset(*existing, jwk)


def render_key(jwk: Dict[str, Any], *, keyset: bool) -> str:
    if keyset:
        return dump_json(wrap_keyset(jwk))
    return dump_json(jwk)


def print_key(jwk: Dict[str, Any], *, keyset: bool, public: bool, out=None) -> None:
    out = out if out is not None else sys.stdout
    print("Full key:", file=out)
    out.write(render_key(jwk, keyset=keyset))

    if public:
        print(file=out)
        pub = public_jwk(jwk)
        if pub is not None:
            print("Public key:", file=out)
            out.write(render_key(pub, keyset=keyset))
        else:
            print("No public key.", file=out)


def write_key_to_file(jwk: Dict[str, Any], path: Path, *, keyset: bool) -> None:
    """
    With 'keyset', append 'jwk' to the set already stored at 'path'; otherwise
    overwrite 'path' with the bare key. The file is untouched if the existing set is malformed.
    """
    if keyset:
        text = dump_json(merge_into_keyset(load_keyset(path), jwk))
    else:
        text = dump_json(jwk)
    write_text_atomic(path, text)


def key_types_summary() -> Dict[str, Any]:
    """
    Supported key types with their required parameter, and the curves of each family.
    """
    return {
        "keyTypes": {
            t.value: {"required": params.required, "acceptsAlg": params.accepts_alg}
            for t, params in KEY_TYPES.items()
        },
        "curves": {
            KeyType.EC.value: [c.value for c in EC_CURVES],
            KeyType.OKP.value: [c.value for c in OKP_CURVES],
        },
    }


def describe_key(jwk: Dict[str, Any]) -> str:
    return f"kty={jwk['kty']} kid={jwk.get('kid') or '-'} thumbprint={jwk_thumbprint(jwk)}"


# ---------------------------
# Commands
# ---------------------------

def cmd_generate(args: argparse.Namespace, generator: Optional[KeyGenerator] = None) -> int:
    request = KeyRequest(
        kty=args.kty,
        size=args.size,
        use=args.use,
        alg=args.alg,
        kid=args.kid,
        crv=args.crv,
        no_kid=args.no_kid,
        thumbprint_kid=args.thumbprint_kid,
    )
    jwk = generate_jwk(request, generator)

    if args.alg and not KEY_TYPES[KeyType.parse(args.kty)].accepts_alg:
        print(f"[WARN] algorithm '{args.alg}' is not attached to {args.kty} keys", file=sys.stderr)
    if args.verbose:
        print(f"[INFO] generated {describe_key(jwk)}", file=sys.stderr)

    if args.output is None:
        print_key(jwk, keyset=args.keyset, public=args.public)
    else:
        write_key_to_file(jwk, Path(args.output), keyset=args.keyset)
        print(args.output)
    return 0


def build_parser() -> argparse.ArgumentParser:
    kty_values = ", ".join(t.value for t in KeyType)
    ec_values = ", ".join(c.value for c in EC_CURVES)
    okp_values = ", ".join(c.value for c in OKP_CURVES)

    p = argparse.ArgumentParser(prog="jwkgen", description="Generate a JSON Web Key (JWK)")
    p.add_argument("-t", dest="kty", metavar="keyType", help=f"Key Type, one of: {kty_values}")
    p.add_argument(
        "-s",
        dest="size",
        metavar="size",
        help="Key Size in bits, required for RSA and oct key types. Must be an integer divisible by 8",
    )
    p.add_argument("-u", dest="use", metavar="use", help="Usage, one of: enc, sig (optional)")
    p.add_argument("-a", dest="alg", metavar="alg", help="Algorithm (optional)")
    p.add_argument("-i", dest="kid", metavar="kid", help="Key ID (optional), one will be generated if not defined")
    p.add_argument("-I", dest="no_kid", action="store_true", help="Don't generate a Key ID if none defined")
    p.add_argument(
        "-T",
        dest="thumbprint_kid",
        action="store_true",
        help="Use the RFC 7638 SHA-256 thumbprint as Key ID if none defined",
    )
    p.add_argument("-p", dest="public", action="store_true", help="Display public key separately")
    p.add_argument(
        "-c",
        dest="crv",
        metavar="curve",
        help=f"Key Curve, required for EC or OKP key types. Must be one of {ec_values} or for OKP {okp_values}",
    )
    p.add_argument("-S", dest="keyset", action="store_true", help="Wrap the generated key in a KeySet")
    p.add_argument(
        "-o",
        dest="output",
        metavar="file",
        help="Write output to file (will append to existing KeySet if -S is used), No Display of Key Material",
    )
    p.add_argument("-v", dest="verbose", action="store_true", help="Print key summary and thumbprint to stderr")
    return p


def usage_error(parser: argparse.ArgumentParser, message: str) -> int:
    print(message, file=sys.stderr)
    parser.print_help(sys.stderr)
    return 1


def main(argv: Optional[list[str]] = None, generator: Optional[KeyGenerator] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return int(cmd_generate(args, generator))
    except JWKGenError as e:
        return usage_error(parser, str(e))
    except OSError as e:
        return usage_error(parser, f"Could not read or write KeySet: {e}")


if __name__ == "__main__":
    raise SystemExit(main())

import base64
import json

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, padding, rsa, x25519

import jwkgen
from jwkgen import CryptographyKeyGenerator, Curve, KeyGenerationError, KeyRequest


def b64url_decode(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("ascii"))


def _int(member: str) -> int:
    return int.from_bytes(b64url_decode(member), "big")


@pytest.fixture(scope="module")
def rsa_jwk():
    return jwkgen.generate_jwk(KeyRequest(kty="RSA", size="2048", use="sig", alg="RS256"))


def test_b64url_roundtrip():
    raw = b"\x00\xffhello"
    assert b64url_decode(jwkgen.b64url_encode(raw)) == raw


def test_int_to_b64url():
    assert jwkgen.int_to_b64url(65537) == "AQAB"
    assert jwkgen.int_to_b64url(0) == "AA"
    assert jwkgen.int_to_b64url(1, 4) == "AAAAAQ"


def test_rsa_key_material_is_consistent(rsa_jwk):
    assert rsa_jwk["kty"] == "RSA"
    assert rsa_jwk["use"] == "sig" and rsa_jwk["alg"] == "RS256"
    assert rsa_jwk["kid"].startswith("sig")
    n = _int(rsa_jwk["n"])
    assert n.bit_length() == 2048
    assert _int(rsa_jwk["p"]) * _int(rsa_jwk["q"]) == n
    assert rsa_jwk["e"] == "AQAB"


def test_rsa_public_projection_verifies_signature(rsa_jwk):
    pub = jwkgen.public_jwk(rsa_jwk)
    assert "d" not in pub

    private_numbers = rsa.RSAPrivateNumbers(
        p=_int(rsa_jwk["p"]),
        q=_int(rsa_jwk["q"]),
        d=_int(rsa_jwk["d"]),
        dmp1=_int(rsa_jwk["dp"]),
        dmq1=_int(rsa_jwk["dq"]),
        iqmp=_int(rsa_jwk["qi"]),
        public_numbers=rsa.RSAPublicNumbers(_int(pub["e"]), _int(pub["n"])),
    )
    priv = private_numbers.private_key()
    sig = priv.sign(b"payload", padding.PKCS1v15(), hashes.SHA256())
    public_key = rsa.RSAPublicNumbers(_int(pub["e"]), _int(pub["n"])).public_key()
    public_key.verify(sig, b"payload", padding.PKCS1v15(), hashes.SHA256())


def test_rsa_round_trip(rsa_jwk):
    assert json.loads(jwkgen.dump_json(rsa_jwk)) == rsa_jwk


@pytest.mark.parametrize(
    "crv,curve,size",
    [
        ("P-256", ec.SECP256R1(), 32),
        ("P-384", ec.SECP384R1(), 48),
        ("P-521", ec.SECP521R1(), 66),
        ("secp256k1", ec.SECP256K1(), 32),
    ],
)
def test_ec_keys_load(crv, curve, size):
    jwk = jwkgen.generate_jwk(KeyRequest(kty="EC", crv=crv, alg="ES256", no_kid=True))
    assert jwk["kty"] == "EC" and jwk["crv"] == crv
    assert "kid" not in jwk
    for member in ("x", "y", "d"):
        assert len(b64url_decode(jwk[member])) == size
    pub = ec.EllipticCurvePublicNumbers(_int(jwk["x"]), _int(jwk["y"]), curve)
    priv = ec.EllipticCurvePrivateNumbers(_int(jwk["d"]), pub).private_key()
    sig = priv.sign(b"payload", ec.ECDSA(hashes.SHA256()))
    pub.public_key().verify(sig, b"payload", ec.ECDSA(hashes.SHA256()))


def test_ed25519_key_signs():
    jwk = jwkgen.generate_jwk(KeyRequest(kty="OKP", crv="Ed25519", use="sig"))
    priv = ed25519.Ed25519PrivateKey.from_private_bytes(b64url_decode(jwk["d"]))
    pub = ed25519.Ed25519PublicKey.from_public_bytes(b64url_decode(jwkgen.public_jwk(jwk)["x"]))
    pub.verify(priv.sign(b"payload"), b"payload")


def test_ed448_and_x25519_sizes():
    ed = jwkgen.generate_jwk(KeyRequest(kty="OKP", crv="Ed448"))
    assert len(b64url_decode(ed["x"])) == 57
    ed448.Ed448PublicKey.from_public_bytes(b64url_decode(ed["x"]))

    xk = jwkgen.generate_jwk(KeyRequest(kty="OKP", crv="X25519", use="enc"))
    assert xk["kid"].startswith("enc")
    x25519.X25519PublicKey.from_public_bytes(b64url_decode(xk["x"]))


def test_x448_key():
    jwk = jwkgen.generate_jwk(KeyRequest(kty="OKP", crv="X448"))
    assert len(b64url_decode(jwk["d"])) == 56


@pytest.mark.parametrize("size", [8, 128, 256, 512])
def test_oct_key_length(size):
    jwk = jwkgen.generate_jwk(KeyRequest(kty="oct", size=str(size), alg="HS256"))
    assert len(b64url_decode(jwk["k"])) == size // 8
    assert jwkgen.public_jwk(jwk) is None


def test_oct_keys_are_random():
    gen = CryptographyKeyGenerator()
    assert gen.oct(256)["k"] != gen.oct(256)["k"]


def test_rsa_below_library_minimum_fails():
    with pytest.raises(KeyGenerationError, match="RSA key of 512 bits"):
        jwkgen.generate_jwk(KeyRequest(kty="RSA", size="512"))


def test_cross_family_curves_fail():
    gen = CryptographyKeyGenerator()
    with pytest.raises(KeyGenerationError, match="not an EC curve"):
        gen.ec(Curve.X25519)
    with pytest.raises(KeyGenerationError, match="not an OKP curve"):
        gen.okp(Curve.P_384)


def test_thumbprint_kid_matches_material():
    jwk = jwkgen.generate_jwk(KeyRequest(kty="OKP", crv="Ed25519", thumbprint_kid=True))
    assert jwk["kid"] == jwkgen.jwk_thumbprint(jwkgen.public_jwk(jwk))
    assert len(b64url_decode(jwk["kid"])) == 32

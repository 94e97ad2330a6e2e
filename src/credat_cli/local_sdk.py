"""
Local identity SDK backed by cryptography and PyJWT.

Provides:
1. did:web identities with raw key material and a DID Core document
2. Delegation credentials as compact JWS tokens with a VC-shaped payload
3. Verification that reports every failure as a result issue
4. Challenge / presentation handshake primitives
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from datetime import timedelta
from typing import Any, Optional, Sequence
from urllib.parse import quote

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from . import codec
from .models import (
    AgentIdentity,
    Algorithm,
    Delegation,
    DelegationClaims,
    DelegationConstraints,
    KeyPair,
)
from .sdk import (
    Challenge,
    Identity,
    Presentation,
    VerificationIssue,
    VerificationResult,
)
from .timestamps import format_iso8601, parse_iso8601, utc_now

logger = logging.getLogger(__name__)

DID_CONTEXT = ["https://www.w3.org/ns/did/v1", "https://w3id.org/security/suites/jws-2020/v1"]
VC_CONTEXT = ["https://www.w3.org/ns/credentials/v2"]
DELEGATION_TYPE = "AgentDelegationCredential"
PRESENTATION_TYPE = "DelegationPresentation"
TOKEN_TYP = "vc+jwt"
CHALLENGE_TTL = timedelta(minutes=5)

_EC_CURVES = {
    Algorithm.ES256: (ec.SECP256R1, "P-256"),
    Algorithm.ES256K: (ec.SECP256K1, "secp256k1"),
}


# ── Key material ──────────────────────────────────────────────────


def generate_key_pair(algorithm: Algorithm) -> KeyPair:
    """Generate raw key bytes: 32-byte private scalar/seed, SEC1 or raw public key."""
    if algorithm == Algorithm.EDDSA:
        private_key = ed25519.Ed25519PrivateKey.generate()
        return KeyPair(
            algorithm=algorithm,
            public_key=private_key.public_key().public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            ),
            private_key=private_key.private_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PrivateFormat.Raw,
                encryption_algorithm=serialization.NoEncryption(),
            ),
        )

    curve, _ = _EC_CURVES[algorithm]
    private_key = ec.generate_private_key(curve())
    return KeyPair(
        algorithm=algorithm,
        public_key=private_key.public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint,
        ),
        private_key=private_key.private_numbers().private_value.to_bytes(32, byteorder="big"),
    )


def _load_private_key(key_pair: KeyPair):
    if key_pair.algorithm == Algorithm.EDDSA:
        return ed25519.Ed25519PrivateKey.from_private_bytes(key_pair.private_key)
    curve, _ = _EC_CURVES[key_pair.algorithm]
    return ec.derive_private_key(int.from_bytes(key_pair.private_key, byteorder="big"), curve())


def _load_public_key(algorithm: Algorithm, public_key: bytes):
    if algorithm == Algorithm.EDDSA:
        return ed25519.Ed25519PublicKey.from_public_bytes(public_key)
    curve, _ = _EC_CURVES[algorithm]
    return ec.EllipticCurvePublicKey.from_encoded_point(curve(), public_key)


def public_key_jwk(algorithm: Algorithm, public_key: bytes) -> dict:
    """Convert raw public key bytes to a JWK dict."""
    if algorithm == Algorithm.EDDSA:
        return {"kty": "OKP", "crv": "Ed25519", "x": codec.encode(public_key)}

    _, crv = _EC_CURVES[algorithm]
    numbers = _load_public_key(algorithm, public_key).public_numbers()
    return {
        "kty": "EC",
        "crv": crv,
        "x": codec.encode(numbers.x.to_bytes(32, byteorder="big")),
        "y": codec.encode(numbers.y.to_bytes(32, byteorder="big")),
    }


# ── DIDs ──────────────────────────────────────────────────────────


def did_web(domain: str, path: Optional[str] = None) -> str:
    """Build a did:web identifier; ports are percent-encoded, path segments colon-joined."""
    did = f"did:web:{quote(domain, safe='')}"
    if path:
        segments = [quote(s, safe="") for s in path.strip("/").split("/") if s]
        if segments:
            did += ":" + ":".join(segments)
    return did


def build_did_document(did: str, key_pair: KeyPair) -> dict:
    key_id = f"{did}#key-1"
    return {
        "@context": list(DID_CONTEXT),
        "id": did,
        "verificationMethod": [
            {
                "id": key_id,
                "type": "JsonWebKey2020",
                "controller": did,
                "publicKeyJwk": public_key_jwk(key_pair.algorithm, key_pair.public_key),
            }
        ],
        "authentication": [key_id],
        "assertionMethod": [key_id],
    }


def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class LocalIdentitySDK:
    """In-process implementation of the IdentitySDK interface."""

    def __init__(self, leeway_seconds: int = 0):
        self._leeway = leeway_seconds

    def create_identity(
        self, domain: str, path: Optional[str], algorithm: Algorithm
    ) -> Identity:
        key_pair = generate_key_pair(algorithm)
        did = did_web(domain, path)
        logger.debug("Generated %s identity %s", algorithm.value, did)
        return Identity(did=did, key_pair=key_pair, did_document=build_did_document(did, key_pair))

    def issue_delegation(
        self,
        agent_did: str,
        owner_did: str,
        owner_key_pair: KeyPair,
        scopes: Sequence[str],
        constraints: Optional[DelegationConstraints] = None,
        valid_until: Optional[str] = None,
    ) -> Delegation:
        now = utc_now()
        valid_from = format_iso8601(now)
        if constraints is not None and constraints.is_empty():
            constraints = None

        subject: dict[str, Any] = {"id": agent_did, "scopes": list(scopes)}
        if constraints is not None:
            subject["constraints"] = constraints.to_dict()

        credential: dict[str, Any] = {
            "@context": list(VC_CONTEXT),
            "type": ["VerifiableCredential", DELEGATION_TYPE],
            "issuer": owner_did,
            "validFrom": valid_from,
            "credentialSubject": subject,
        }
        payload: dict[str, Any] = {
            "iss": owner_did,
            "sub": agent_did,
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "jti": f"urn:uuid:{uuid.uuid4()}",
            "vc": credential,
        }
        if valid_until is not None:
            expiry = parse_iso8601(valid_until)
            if expiry is None:
                raise ValueError(f"Invalid validUntil: {valid_until}")
            credential["validUntil"] = valid_until
            payload["exp"] = int(expiry.timestamp())

        token = jwt.encode(
            payload,
            _load_private_key(owner_key_pair),
            algorithm=owner_key_pair.algorithm.value,
            headers={"typ": TOKEN_TYP, "kid": f"{owner_did}#key-1"},
        )
        claims = DelegationClaims(
            agent=agent_did,
            owner=owner_did,
            scopes=list(scopes),
            constraints=constraints,
            valid_from=valid_from,
            valid_until=valid_until,
        )
        return Delegation(token=token, claims=claims)

    def verify_delegation(
        self,
        token: str,
        owner_public_key: bytes,
        algorithm: Optional[Algorithm] = None,
    ) -> VerificationResult:
        try:
            header = jwt.get_unverified_header(token)
            unverified = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as exc:
            return VerificationResult(
                valid=False, errors=[VerificationIssue(f"Malformed token: {exc}")]
            )

        result = _result_from_payload(unverified)
        errors = result.errors

        header_alg = header.get("alg")
        if algorithm is not None and header_alg != algorithm.value:
            errors.append(VerificationIssue(
                f"Unexpected algorithm {header_alg!r}, expected {algorithm.value!r}"
            ))
            return result
        try:
            alg = Algorithm(header_alg)
        except ValueError:
            errors.append(VerificationIssue(f"Unsupported algorithm: {header_alg!r}"))
            return result

        try:
            public_key = _load_public_key(alg, owner_public_key)
        except ValueError as exc:
            errors.append(VerificationIssue(f"Invalid owner public key: {exc}"))
            return result

        try:
            jwt.decode(
                token,
                public_key,
                algorithms=[alg.value],
                leeway=self._leeway,
                options={"require": ["iss", "sub", "vc"]},
            )
        except jwt.ExpiredSignatureError:
            errors.append(VerificationIssue("Delegation has expired"))
        except jwt.ImmatureSignatureError:
            errors.append(VerificationIssue("Delegation is not yet valid"))
        except jwt.InvalidSignatureError:
            errors.append(VerificationIssue("Invalid signature"))
        except jwt.InvalidTokenError as exc:
            errors.append(VerificationIssue(f"Invalid token: {exc}"))

        errors.extend(_credential_shape_issues(unverified))
        result.valid = not errors
        return result

    # ── handshake ─────────────────────────────────────────────────

    def create_challenge(self, from_did: str) -> Challenge:
        return Challenge(
            nonce=secrets.token_urlsafe(32),
            from_did=from_did,
            created_at=format_iso8601(utc_now()),
        )

    def present_credentials(
        self, challenge: Challenge, delegation_token: str, agent: AgentIdentity
    ) -> Presentation:
        now = int(utc_now().timestamp())
        proof = jwt.encode(
            {
                "iss": agent.did,
                "aud": challenge.from_did,
                "nonce": challenge.nonce,
                "delegation_hash": _token_hash(delegation_token),
                "iat": now,
            },
            _load_private_key(agent.key_pair),
            algorithm=agent.key_pair.algorithm.value,
            headers={"kid": f"{agent.did}#key-1"},
        )
        return Presentation(
            type=PRESENTATION_TYPE,
            delegation=delegation_token,
            agent=agent.did,
            nonce=challenge.nonce,
            proof=proof,
        )

    def verify_presentation(
        self,
        presentation: Presentation,
        challenge: Challenge,
        owner_public_key: bytes,
        agent_public_key: bytes,
    ) -> VerificationResult:
        result = self.verify_delegation(presentation.delegation, owner_public_key)
        errors = result.errors

        if presentation.nonce != challenge.nonce:
            errors.append(VerificationIssue("Challenge nonce mismatch"))
        issued = parse_iso8601(challenge.created_at)
        if issued is None or utc_now() - issued > CHALLENGE_TTL:
            errors.append(VerificationIssue("Challenge has expired"))
        if result.agent is not None and result.agent != presentation.agent:
            errors.append(VerificationIssue("Presenting agent is not the delegation subject"))

        errors.extend(self._proof_issues(presentation, challenge, agent_public_key))
        result.valid = not errors
        return result

    def _proof_issues(
        self, presentation: Presentation, challenge: Challenge, agent_public_key: bytes
    ) -> list[VerificationIssue]:
        try:
            alg = Algorithm(jwt.get_unverified_header(presentation.proof).get("alg"))
            public_key = _load_public_key(alg, agent_public_key)
            proof = jwt.decode(
                presentation.proof,
                public_key,
                algorithms=[alg.value],
                audience=challenge.from_did,
                leeway=self._leeway,
            )
        except (jwt.InvalidTokenError, ValueError) as exc:
            return [VerificationIssue(f"Invalid presentation proof: {exc}")]

        issues = []
        if proof.get("nonce") != challenge.nonce:
            issues.append(VerificationIssue("Proof does not answer this challenge"))
        if proof.get("iss") != presentation.agent:
            issues.append(VerificationIssue("Proof was not signed by the presenting agent"))
        if proof.get("delegation_hash") != _token_hash(presentation.delegation):
            issues.append(VerificationIssue("Proof is bound to a different delegation"))
        return issues


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def _constraints_from_claim(raw: Any) -> tuple[Optional[DelegationConstraints], list[str]]:
    """Read constraints from untrusted token claims, skipping malformed fields."""
    if raw is None:
        return None, []
    if not isinstance(raw, dict):
        return None, ["Credential constraints are not an object"]

    problems = []
    constraints = DelegationConstraints()
    max_value = raw.get("maxTransactionValue")
    if max_value is not None:
        if _is_number(max_value):
            constraints.max_transaction_value = max_value
        else:
            problems.append("Constraint maxTransactionValue is not a number")
    domains = raw.get("allowedDomains")
    if domains is not None:
        if _is_str_list(domains):
            constraints.allowed_domains = list(domains)
        else:
            problems.append("Constraint allowedDomains is not a list of strings")
    rate_limit = raw.get("rateLimit")
    if rate_limit is not None:
        if _is_number(rate_limit):
            constraints.rate_limit = rate_limit
        else:
            problems.append("Constraint rateLimit is not a number")
    return (None if constraints.is_empty() else constraints), problems


def _result_from_payload(payload: dict) -> VerificationResult:
    vc = _as_dict(payload.get("vc"))
    subject = _as_dict(vc.get("credentialSubject"))
    scopes = subject.get("scopes")
    constraints, _ = _constraints_from_claim(subject.get("constraints"))
    return VerificationResult(
        valid=False,
        agent=_as_str(payload.get("sub")),
        owner=_as_str(payload.get("iss")),
        scopes=list(scopes) if _is_str_list(scopes) else None,
        constraints=constraints,
        valid_from=_as_str(vc.get("validFrom")),
        valid_until=_as_str(vc.get("validUntil")),
    )


def _credential_shape_issues(payload: dict) -> list[VerificationIssue]:
    vc = payload.get("vc")
    if not isinstance(vc, dict):
        return [VerificationIssue("Token does not carry a credential")]

    issues = []
    types = vc.get("type")
    if isinstance(types, str):
        types = [types]
    if not isinstance(types, list) or DELEGATION_TYPE not in types:
        issues.append(VerificationIssue(f"Credential is not an {DELEGATION_TYPE}"))
    if vc.get("issuer") != payload.get("iss"):
        issues.append(VerificationIssue("Credential issuer does not match token issuer"))
    for key in ("validFrom", "validUntil"):
        if key in vc and not isinstance(vc[key], str):
            issues.append(VerificationIssue(f"Credential {key} is not a string"))

    subject = vc.get("credentialSubject")
    if not isinstance(subject, dict):
        issues.append(VerificationIssue("Credential subject is not an object"))
        return issues
    if subject.get("id") != payload.get("sub"):
        issues.append(VerificationIssue("Credential subject does not match token subject"))
    if not _is_str_list(subject.get("scopes")):
        issues.append(VerificationIssue("Credential carries no scopes"))
    _, problems = _constraints_from_claim(subject.get("constraints"))
    issues.extend(VerificationIssue(problem) for problem in problems)
    return issues

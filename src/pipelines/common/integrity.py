"""Subresource-Integrity style digests for downloaded payloads.

A digest reads ``<algorithm>-<base64 hash>`` (for instance what
``openssl dgst -sha384 -binary | openssl base64 -A`` prints, prefixed with
``sha384-``). Several digests may be listed, separated by whitespace; only
the ones using the strongest algorithm present are considered, and the
payload passes when any of them matches.
"""

from __future__ import annotations

import base64
import binascii
import hashlib

# Ordered weakest to strongest.
SUPPORTED_ALGORITHMS: tuple[str, ...] = ("sha256", "sha384", "sha512")


class IntegrityError(ValueError):
    def __init__(self, *, expected: str, actual: str, uri: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        self.uri = uri
        target = f" for {uri}" if uri else ""
        super().__init__(f"Integrity check failed{target}: expected {expected}, computed {actual}.")


def parse_integrity(value: str) -> list[tuple[str, str]]:
    entries: list[tuple[str, str]] = []
    for token in value.split():
        algorithm, separator, encoded = token.partition("-")
        algorithm = algorithm.lower()
        if not separator or not encoded:
            raise ValueError(f"Malformed integrity digest: '{token}'.")
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported integrity algorithm '{algorithm}'.")
        try:
            base64.b64decode(encoded, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"Integrity digest is not valid base64: '{token}'.") from exc
        entries.append((algorithm, encoded))
    return entries


def compute_integrity(payload: bytes, algorithm: str = "sha384") -> str:
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported integrity algorithm '{algorithm}'.")
    digest = hashlib.new(algorithm, payload).digest()
    return f"{algorithm}-{base64.b64encode(digest).decode('ascii')}"


def verify_integrity(payload: bytes, integrity: str | None, *, uri: str | None = None) -> str | None:
    """Check ``payload`` against ``integrity`` and return the matched digest.

    An empty or missing ``integrity`` disables the check and returns None.
    Raises IntegrityError when no listed digest matches.
    """
    if not integrity or not integrity.strip():
        return None

    entries = parse_integrity(integrity)
    strongest = max(SUPPORTED_ALGORITHMS.index(algorithm) for algorithm, _ in entries)
    algorithm = SUPPORTED_ALGORITHMS[strongest]
    candidates = [f"{algorithm}-{encoded}" for alg, encoded in entries if alg == algorithm]

    actual = compute_integrity(payload, algorithm)
    if actual in candidates:
        return actual
    raise IntegrityError(expected=" ".join(candidates), actual=actual, uri=uri)

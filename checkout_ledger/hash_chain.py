"""
Append-only hash chain of checkout blocks.

Every block binds its position, creation time, payload and the hash of its
predecessor into its own SHA-256 hash, so changing any committed block breaks
the chain from that point on.

    hash = sha256(str(position) + created_at + payload_json + prev_hash)

The chain is the only writer of its block list. `append` reads the tail,
builds the candidate and commits it inside one critical section, so two
concurrent writers can never both extend the same tail.
"""

import hashlib
import json
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, computed_field

log = structlog.get_logger()

GENESIS_PREV_HASH = ""

# HTML-sensitive characters are written as \u escapes, json.dumps leaves them raw
_HTML_SAFE = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class MalformedPayloadError(ValueError):
    """Payload can't be turned into a deterministic byte string."""


class RejectionReason(str, Enum):
    """Why a candidate block was refused by the chain."""

    LINKAGE_MISMATCH = "linkage_mismatch"  # prev_hash != tail.hash
    HASH_MISMATCH = "hash_mismatch"  # stored hash != recomputed hash
    POSITION_GAP = "position_gap"  # position != tail.position + 1


def canonical_payload(payload: Any) -> bytes:
    """Serialize a payload to compact JSON bytes.

    Keys keep their given order (pydantic models dump in field declaration
    order), no whitespace, non-ASCII stays raw UTF-8.
    """
    try:
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")
        if not isinstance(payload, Mapping):
            raise MalformedPayloadError(
                f"payload must be a mapping, got {type(payload).__name__}"
            )

        # json.dumps would silently coerce these
        if any(not isinstance(k, str) for k in payload):
            raise MalformedPayloadError("payload keys must be strings")

        text = json.dumps(
            dict(payload),
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
        for raw, escaped in _HTML_SAFE.items():
            text = text.replace(raw, escaped)
        # lone surrogates survive json.dumps but not UTF-8
        return text.encode("utf-8")
    except MalformedPayloadError:
        raise
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(str(e)) from e


def derive_hash(position: int, created_at: str, payload_bytes: bytes, prev_hash: str) -> str:
    data = str(position).encode() + created_at.encode() + payload_bytes + prev_hash.encode()
    return hashlib.sha256(data).hexdigest()


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class Block(BaseModel):
    """One ledger entry. Frozen: once built, fields never change.

    The payload is held as its canonical JSON text. `payload` decodes a fresh
    dict on every access, so callers can't reach into a committed block.
    """

    model_config = ConfigDict(frozen=True)

    position: int = Field(ge=0)
    payload_json: str = Field(exclude=True)
    created_at: str
    hash: str
    prev_hash: str = GENESIS_PREV_HASH

    @computed_field
    @property
    def payload(self) -> Dict[str, Any]:
        return json.loads(self.payload_json)

    def compute_hash(self) -> str:
        return derive_hash(
            self.position,
            self.created_at,
            self.payload_json.encode("utf-8"),
            self.prev_hash,
        )

    def validate_hash(self, expected: str) -> bool:
        """Recompute the hash from the current fields and compare.

        Pure check, the block is left untouched.
        """
        return self.compute_hash() == expected

    @property
    def is_genesis(self) -> bool:
        return self.position == 0 and self.prev_hash == GENESIS_PREV_HASH


def create_block(prev: Optional[Block], payload: Any, created_at: Optional[str] = None) -> Block:
    """Build a block linked to `prev`.

    `prev=None` builds the genesis block (position 0, empty prev_hash).
    Raises MalformedPayloadError before anything is built if the payload
    can't be serialized.
    """
    payload_bytes = canonical_payload(payload)
    position = prev.position + 1 if prev is not None else 0
    prev_hash = prev.hash if prev is not None else GENESIS_PREV_HASH
    created_at = created_at if created_at is not None else utc_timestamp()

    return Block(
        position=position,
        payload_json=payload_bytes.decode("utf-8"),
        created_at=created_at,
        hash=derive_hash(position, created_at, payload_bytes, prev_hash),
        prev_hash=prev_hash,
    )


def validate_block(candidate: Block, tail: Block) -> Optional[RejectionReason]:
    """Return the first failed check for `candidate` following `tail`, or None."""
    if candidate.prev_hash != tail.hash:
        return RejectionReason.LINKAGE_MISMATCH
    if not candidate.validate_hash(candidate.hash):
        return RejectionReason.HASH_MISMATCH
    if candidate.position != tail.position + 1:
        return RejectionReason.POSITION_GAP
    return None


class AppendResult(BaseModel):
    """Outcome of an append: either committed, or rejected with a reason."""

    committed: bool
    length: int
    block: Optional[Block] = None
    reason: Optional[RejectionReason] = None


class Violation(BaseModel):
    position: int
    reason: RejectionReason


class VerificationReport(BaseModel):
    valid: bool
    length: int
    violation: Optional[Violation] = None


class BlockChain:
    """
    In-memory ledger of blocks. Starts with a genesis block and only grows.

    All reads and writes go through one lock, so readers see either the
    chain before an append or after it, never a half-added block.
    """

    def __init__(self, genesis_payload: Any = None, clock: Optional[Callable[[], str]] = None):
        self.clock = clock or utc_timestamp
        self._lock = threading.RLock()
        if genesis_payload is None:
            genesis_payload = {"is_genesis": True}
        genesis = create_block(None, genesis_payload, created_at=self.clock())
        self._blocks: List[Block] = [genesis]
        log.info("chain_bootstrapped", genesis_hash=genesis.hash)

    def __len__(self):
        with self._lock:
            return len(self._blocks)

    def tail(self) -> Block:
        with self._lock:
            return self._blocks[-1]

    def latest_hash(self) -> str:
        return self.tail().hash

    def blocks(self) -> List[Block]:
        with self._lock:
            return list(self._blocks)

    def slice(self, since=0, limit=None) -> List[Block]:
        with self._lock:
            end = None if limit is None else since + limit
            return self._blocks[since:end]

    def get_block(self, position: int) -> Optional[Block]:
        with self._lock:
            if 0 <= position < len(self._blocks):
                return self._blocks[position]
            return None

    def append(self, payload: Any) -> AppendResult:
        """Build a block for `payload` on top of the tail and commit it if valid."""
        with self._lock:
            tail = self._blocks[-1]
            candidate = create_block(tail, payload, created_at=self.clock())
            return self._commit(candidate, tail)

    def submit(self, candidate: Block) -> AppendResult:
        """Commit a block that was built elsewhere, if it extends the current tail."""
        with self._lock:
            return self._commit(candidate, self._blocks[-1])

    def _commit(self, candidate: Block, tail: Block) -> AppendResult:
        reason = validate_block(candidate, tail)
        if reason is not None:
            log.warning(
                "block_rejected",
                reason=reason.value,
                position=candidate.position,
                tail_position=tail.position,
            )
            return AppendResult(committed=False, length=len(self._blocks), reason=reason)

        self._blocks.append(candidate)
        log.info("block_committed", position=candidate.position, hash=candidate.hash[:12])
        return AppendResult(committed=True, length=len(self._blocks), block=candidate)

    def verify(self) -> VerificationReport:
        """Walk the chain from genesis and report the first broken block."""
        blocks = self.blocks()

        for i, block in enumerate(blocks):
            if i == 0:
                reason = self._check_genesis(block)
            else:
                reason = validate_block(block, blocks[i - 1])

            if reason is not None:
                log.warning("chain_verification_failed", position=i, reason=reason.value)
                return VerificationReport(
                    valid=False,
                    length=len(blocks),
                    violation=Violation(position=i, reason=reason),
                )

        return VerificationReport(valid=True, length=len(blocks))

    @staticmethod
    def _check_genesis(block: Block) -> Optional[RejectionReason]:
        if block.prev_hash != GENESIS_PREV_HASH:
            return RejectionReason.LINKAGE_MISMATCH
        if not block.validate_hash(block.hash):
            return RejectionReason.HASH_MISMATCH
        if block.position != 0:
            return RejectionReason.POSITION_GAP
        return None

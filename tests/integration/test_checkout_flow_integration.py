import hashlib
import json

from fastapi.testclient import TestClient

from checkout_ledger.config import Config
from checkout_ledger.main import build_chain
from checkout_ledger.services.ledger import LedgerService


def _rehash(block):
    payload = json.dumps(block["payload"], separators=(",", ":"), ensure_ascii=False)
    data = f"{block['position']}{block['created_at']}{payload}{block['prev_hash']}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def test_checkouts_form_a_chain_a_client_can_recheck(monkeypatch):
    monkeypatch.setenv("LEDGER_NAME", "integration")
    service = LedgerService(Config(), build_chain())
    client = TestClient(service.app)

    checkouts = [
        {"book_id": "B1", "user": "alice", "checkout_date": "2024-01-01"},
        {"book_id": "B2", "user": "bob", "checkout_date": "2024-01-02"},
        {"book_id": "B1", "user": "carol", "checkout_date": "2024-01-09"},
    ]
    for checkout in checkouts:
        assert client.post("/", json=checkout).status_code == 200

    body = client.get("/").json()
    blocks = body["blocks"]
    assert body["length"] == 4
    assert blocks[0]["payload"] == {
        "book_id": "",
        "user": "",
        "checkout_date": "",
        "is_genesis": True,
    }

    # recompute every hash from the wire representation alone
    for i, block in enumerate(blocks):
        assert block["position"] == i
        assert _rehash(block) == block["hash"]
        if i > 0:
            assert block["prev_hash"] == blocks[i - 1]["hash"]

    assert [b["payload"]["user"] for b in blocks[1:]] == ["alice", "bob", "carol"]
    assert client.get("/verify").json()["valid"] is True

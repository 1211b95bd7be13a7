from pydantic import BaseModel


class BookCheckout(BaseModel):
    """A book checkout event, the payload of every ledger block.

    Field order matters: it is the key order of the serialized payload that
    goes into the block hash.
    """

    book_id: str = ""
    user: str = ""
    checkout_date: str = ""
    is_genesis: bool = False  # only set on the chain's first block


class Book(BaseModel):
    """Catalog record. `id` is minted by the service from isbn + publish_date."""

    id: str = ""
    title: str = ""
    author: str = ""
    publish_date: str = ""
    isbn: str = ""


class LedgerStatus(BaseModel):
    """Status info returned by /health endpoint."""

    ledger: str
    length: int
    latest_hash: str
    valid: bool
    uptime_seconds: float

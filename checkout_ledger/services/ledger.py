import structlog
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..config import Config
from ..models import Book, BookCheckout, LedgerStatus
from ..catalog import register_book
from ..hash_chain import BlockChain, MalformedPayloadError

log = structlog.get_logger()


def _api_error(status_code: int, code: str, message: str, details=None) -> HTTPException:
    payload = {"code": code, "message": message}
    if details is not None:
        payload["details"] = details
    return HTTPException(status_code=status_code, detail=payload)


class LedgerService:
    """HTTP API for recording book checkouts on the chain and reading it back."""

    def __init__(self, config: Config, chain: BlockChain):
        self.config = config
        self.chain = chain
        self.start_time = datetime.utcnow()
        self.app = self._build_app()

    def _build_app(self):
        app = FastAPI(title=f"Checkout Ledger {self.config.ledger_name}")

        @app.exception_handler(HTTPException)
        async def http_exception_handler(request: Request, exc: HTTPException):
            if (
                isinstance(exc.detail, dict)
                and "code" in exc.detail
                and "message" in exc.detail
            ):
                payload = dict(exc.detail)
            else:
                payload = {"code": "HTTP_ERROR", "message": str(exc.detail)}
            return JSONResponse(status_code=exc.status_code, content=payload)

        @app.exception_handler(RequestValidationError)
        async def validation_exception_handler(request: Request, exc: RequestValidationError):
            log.info("request_rejected", path=str(request.url.path), errors=len(exc.errors()))
            return JSONResponse(
                status_code=400,
                content={
                    "code": "INVALID_PAYLOAD",
                    "message": "Request body could not be parsed",
                    "details": [e.get("msg") for e in exc.errors()],
                },
            )

        @app.exception_handler(Exception)
        async def unhandled_exception_handler(request: Request, exc: Exception):
            log.error("ledger_unhandled_exception", error=str(exc), path=str(request.url.path))
            return JSONResponse(
                status_code=500,
                content={
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": "Unexpected ledger error",
                },
            )

        @app.get("/")
        async def get_chain(since: int = 0, limit: Optional[int] = None):
            """Committed blocks in chain order, the whole chain unless limit is given.

            An explicit limit is capped at max_page_size.
            """
            if since < 0:
                raise _api_error(400, "INVALID_SINCE", "since must be >= 0")
            if limit is not None:
                if limit < 0:
                    raise _api_error(400, "INVALID_LIMIT", "limit must be >= 0")
                limit = min(limit, self.config.max_page_size)

            blocks = self.chain.slice(since, limit)
            return {
                "blocks": [b.model_dump() for b in blocks],
                "length": len(self.chain),
                "latest_hash": self.chain.latest_hash(),
            }

        @app.post("/")
        async def write_block(checkout: BookCheckout):
            """Append a checkout to the chain and report whether it was committed."""
            if checkout.is_genesis:
                raise _api_error(
                    400, "GENESIS_NOT_ALLOWED", "is_genesis is reserved for the first block"
                )

            try:
                result = self.chain.append(checkout)
            except MalformedPayloadError as e:
                raise _api_error(400, "MALFORMED_PAYLOAD", "Payload cannot be serialized", str(e))

            if not result.committed:
                raise _api_error(
                    409,
                    result.reason.value.upper(),
                    "Block rejected, ledger unchanged",
                    {"length": result.length},
                )

            log.info(
                "checkout_recorded",
                book_id=checkout.book_id,
                user=checkout.user,
                position=result.block.position,
            )
            return {
                "status": "committed",
                "block": result.block.model_dump(),
                "length": result.length,
            }

        @app.get("/blocks/{position}")
        async def get_block(position: int):
            block = self.chain.get_block(position)
            if block is None:
                raise _api_error(404, "BLOCK_NOT_FOUND", f"No block at position {position}")
            return block.model_dump()

        @app.get("/verify")
        async def verify_chain():
            return self.chain.verify().model_dump(mode="json")

        @app.post("/new")
        async def new_book(book: Book):
            """Register a catalog record; its id is derived from isbn + publish_date."""
            book = register_book(book)
            log.info("book_registered", book_id=book.id, isbn=book.isbn)
            return {"book": book.model_dump()}

        @app.get("/health")
        async def health():
            uptime = (datetime.utcnow() - self.start_time).total_seconds()
            return LedgerStatus(
                ledger=self.config.ledger_name,
                length=len(self.chain),
                latest_hash=self.chain.latest_hash(),
                valid=self.chain.verify().valid,
                uptime_seconds=uptime,
            ).model_dump()

        return app

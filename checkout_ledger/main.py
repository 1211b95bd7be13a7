"""
Ledger entry point. Builds the chain and serves the HTTP API.
"""
import asyncio
import logging
import signal
import structlog
import uvicorn

from checkout_ledger.config import config
from checkout_ledger.hash_chain import BlockChain
from checkout_ledger.models import BookCheckout
from checkout_ledger.services import LedgerService

logging.basicConfig(format="%(message)s", level=getattr(logging, config.log_level, logging.INFO))

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

log = structlog.get_logger()


def build_chain():
    return BlockChain(genesis_payload=BookCheckout(is_genesis=True))


def log_chain(chain):
    for block in chain.blocks():
        log.info(
            "block_loaded",
            position=block.position,
            prev_hash=block.prev_hash,
            hash=block.hash,
            payload=block.payload,
        )


async def main():
    chain = build_chain()
    service = LedgerService(config, chain)
    log_chain(chain)

    shutdown = asyncio.Event()

    loop = asyncio.get_event_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    server = uvicorn.Server(uvicorn.Config(
        service.app, host=config.http_host, port=config.http_port, log_level="warning"
    ))

    log.info("ledger_starting", ledger=config.ledger_name,
             host=config.http_host, http=config.http_port)

    async def wait_shutdown():
        await shutdown.wait()
        raise asyncio.CancelledError()

    try:
        await asyncio.gather(server.serve(), wait_shutdown())
    except asyncio.CancelledError:
        pass
    finally:
        log.info("ledger_stopped", ledger=config.ledger_name, length=len(chain))


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()

import asyncio
import signal
import sys
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Optional
import traceback

from pydantic import ValidationError as SettingsValidationError

from .auth import ApiSigner
from .config import LoggingSettings, Settings, get_settings
from .connection import ConnectionManager
from .custody import CustodyClient
from .events import EventSink, FileEventSink
from .exceptions import CustodySwapError, InitializationError
from .instructions import SwapInstructionBuilder
from .models import SwapRequest
from .orchestrator import BatchOrchestrator
from .packager import DualSignaturePackager
from .pipeline import SwapPipeline
from .relay import JitoRelayClient, RelayForwarder
from .signers import load_local_signer
from .transaction import TransactionAssembler


class ShutdownHooks:
    """Cleanup callbacks run once, newest first, whatever ended the run."""

    def __init__(self):
        self._hooks: list[tuple[str, Callable]] = []
        self._done = False

    def register(self, name: str, callback: Callable) -> None:
        self._hooks.append((name, callback))

    async def run(self) -> None:
        if self._done:
            return
        self._done = True

        for name, callback in reversed(self._hooks):
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    await result
                logging.debug(f"Shutdown hook '{name}' done")
            except Exception as e:
                logging.error(f"Shutdown hook '{name}' failed: {e}")


FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-24s | %(message)s"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
ERROR_LOG_NAME = "error.log"

# Third-party loggers that are noisy at INFO.
QUIET_LOGGERS = ("aiohttp", "asyncio", "httpx", "httpcore", "solana")


def _rotating_handler(path: Path, level: int, max_bytes: int, backups: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.setLevel(level)
    return handler


def configure_logging(cfg: LoggingSettings) -> logging.Logger:
    """
    Route application logs to a rotating file, an error-only file and stdout.

    The run log (one line per pipeline event) is separate; see FileEventSink.
    """
    log_dir = Path(cfg.directory)
    log_dir.mkdir(parents=True, exist_ok=True)
    max_bytes = cfg.max_size_mb * 1024 * 1024

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, cfg.level.value))
    root_logger.handlers.clear()

    root_logger.addHandler(
        _rotating_handler(log_dir / cfg.file_name, logging.DEBUG, max_bytes, cfg.backup_count)
    )
    root_logger.addHandler(
        _rotating_handler(log_dir / ERROR_LOG_NAME, logging.ERROR, max_bytes, cfg.backup_count)
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    console_handler.setLevel(logging.INFO)
    root_logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("custody_swap")


def build_pipeline(
    settings: Settings,
    connections: ConnectionManager,
    events: EventSink,
) -> SwapPipeline:
    local_signer = load_local_signer(
        settings.swap.local_signer_key.get_secret_value() if settings.swap.local_signer_key else None
    )

    custody = CustodyClient(
        connections,
        ApiSigner.from_file(settings.custody.private_key_path),
        settings.custody.api_token.get_secret_value(),
        base_url=settings.custody.base_url,
        create_path=settings.custody.create_path,
        transactions_path=settings.custody.transactions_path,
        events=events,
    )
    assembler = TransactionAssembler(connections)
    packager = DualSignaturePackager(
        settings.custody.vault_id,
        chain=settings.custody.chain,
        local_signers=[local_signer] if local_signer else None,
    )
    forwarder = RelayForwarder(
        JitoRelayClient(connections, settings.relay.url),
        custody,
        assembler,
        packager,
        tip_lamports=settings.relay.tip_lamports,
    )

    return SwapPipeline(
        builder=SwapInstructionBuilder(
            connections,
            settings.swap.quote_url,
            slippage_bps=settings.swap.slippage_bps,
        ),
        assembler=assembler,
        packager=packager,
        custody=custody,
        forwarder=forwarder,
        events=events,
    )


def request_factory(settings: Settings) -> Callable[[], SwapRequest]:
    def make_request() -> SwapRequest:
        return SwapRequest(
            pool_address=settings.swap.pool_address,
            input_mint=settings.swap.input_mint,
            input_amount=settings.swap.amount,
            fee_payer=settings.custody.vault_address,
            broadcast_mode=settings.swap.broadcast_mode,
        )
    return make_request


async def main() -> int:
    exit_code = 0
    shutdown = ShutdownHooks()
    logger = logging.getLogger("custody_swap")
    run_task: Optional[asyncio.Task] = None

    try:
        settings = get_settings()

        logger = configure_logging(settings.logging)

        logger.info("=" * 60)
        logger.info("CUSTODY SWAP RUNNER STARTING")
        logger.info("=" * 60)
        logger.info(f"Version: {settings.app_version}")
        logger.info(f"Python: {sys.version}")
        logger.info(f"RPC URL: {settings.solana.url[:50]}...")
        logger.info(f"Vault: {settings.custody.vault_address}")
        logger.info(f"Pool: {settings.swap.pool_address}")
        logger.info(f"Amount: {settings.swap.amount}")
        logger.info(f"Broadcast mode: {settings.swap.broadcast_mode.value}")
        logger.info("=" * 60)
        logger.debug(f"Settings: {settings.mask_secrets()}")

        events = FileEventSink(settings.logging.run_log_path)
        await events.reset()

        connections = ConnectionManager(settings.solana, settings.http)
        shutdown.register("connections", connections.close)
        await connections.open()

        if not await connections.health_check():
            logger.warning("Ledger health check failed; continuing, swaps may fail")

        pipeline = build_pipeline(settings, connections, events)
        orchestrator = BatchOrchestrator(
            pipeline.execute,
            request_factory(settings),
            iterations=settings.batch.iterations,
            batch_size=settings.batch.batch_size,
            delay_seconds=settings.batch.delay_seconds,
            events=events,
        )

        loop = asyncio.get_running_loop()
        run_task = asyncio.create_task(orchestrator.run())

        def signal_handler(sig):
            logger.info(f"Received signal {sig.name}")
            run_task.cancel()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
            except NotImplementedError:
                pass

        await run_task

        logger.info("Swap run completed")
        logger.info(f"Check {settings.logging.run_log_path} for detailed timing data and statistics")

    except asyncio.CancelledError:
        logger.info("Run cancelled")
        exit_code = 130
    except SettingsValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        exit_code = 1
    except InitializationError as e:
        logger.error(f"Startup failed: {e}")
        exit_code = 1
    except CustodySwapError as e:
        logger.error(f"Fatal error: {e}")
        logger.error(traceback.format_exc())
        exit_code = 1
    finally:
        await shutdown.run()
        logger.info("Shutdown complete")

    return exit_code


def run() -> None:
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\nShutdown requested...")
        sys.exit(0)


if __name__ == "__main__":
    run()

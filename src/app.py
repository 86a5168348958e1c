"""Application entry point for the mintscope watcher."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

import aiohttp
from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters.openai_reconstructor import OpenAIReconstructor
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_bot_forwarder import TelegramBotForwarder
from adapters.telegram_forwarder import TelegramChatForwarder
from adapters.telegram_mapper import build_incoming, source_key_from_message
from adapters.token_providers import BirdeyeProvider, JupiterQuoteProvider, JupiterRegistryProvider
from client import authorize, build_client
from core.extractor import PatternExtractor
from core.history import AddressHistory
from core.models import IncomingMessage
from core.ports import ForwarderPort, VerificationProvider
from core.processor import MessageProcessor, ProcessingReport
from core.reconstruction import ReconstructionEngine
from core.registry import AddressRegistry
from core.verification import VerificationCoordinator
from core.window import WindowStore

NAME = "MINTSCOPE"
FONT = "tarty-1"

SAMPLE_MESSAGE = "CA: 4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"
# Outer bound for any single provider HTTP call; the race applies its own,
# tighter per-provider timeouts on top.
HTTP_TIMEOUT_SECONDS = 15


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = {os.getenv(name) for name in redact_cfg.get("patterns", [])}
    return sorted((value for value in values if value), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    formatter = _RedactingFormatter(
        _redaction_values(config),
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/mintscope.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path,
                maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
                backupCount=int(file_cfg.get("backup_count", 5)),
                encoding="utf-8",
            )
        )

    if not handlers:
        return
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers)


def _open_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


def _build_providers(session: aiohttp.ClientSession) -> list[VerificationProvider]:
    cfg = settings.VERIFICATION
    providers: list[VerificationProvider] = []
    if cfg.jupiter_quote.enabled:
        providers.append(JupiterQuoteProvider(session, cfg.jupiter_quote.timeout_seconds))
    if cfg.birdeye.enabled:
        providers.append(
            BirdeyeProvider(session, cfg.birdeye.timeout_seconds, api_key=os.getenv("BIRDEYE_API_KEY"))
        )
    if cfg.jupiter_registry.enabled:
        providers.append(
            JupiterRegistryProvider(
                session,
                cfg.jupiter_registry.timeout_seconds,
                cache_seconds=cfg.registry_cache_seconds,
            )
        )
    return providers


def _build_processor(
    session: aiohttp.ClientSession,
    storage: SQLiteStorage,
    forwarder: Optional[ForwarderPort],
) -> MessageProcessor:
    logger = logging.getLogger(__name__)
    load_dotenv()

    reconstructor = None
    api_key = os.getenv("OPENAI_API_KEY")
    if settings.RECONSTRUCTION.enabled and api_key:
        reconstructor = OpenAIReconstructor(api_key=api_key)
    elif settings.RECONSTRUCTION.enabled:
        logger.warning("OPENAI_API_KEY is not set; AI reconstruction is disabled")

    extractor = PatternExtractor(settings.RECONSTRUCTION.suffix_markers)
    window = WindowStore(settings.WINDOW)
    providers = _build_providers(session)
    logger.info("%s verification providers enabled", len(providers))

    return MessageProcessor(
        extractor=extractor,
        window=window,
        engine=ReconstructionEngine(extractor, window, settings.RECONSTRUCTION, reconstructor),
        coordinator=VerificationCoordinator(providers),
        registry=AddressRegistry(),
        forwarder=forwarder,
        history=AddressHistory(storage),
        forwarding=settings.FORWARDING,
    )


def _build_forwarder(client) -> ForwarderPort:
    # Select the forwarding adapter based on configuration to keep the core
    # processor independent from delivery details.
    if settings.FORWARDING_METHOD == "bot":
        bot_token = os.getenv("BOT_API")
        if not bot_token:
            raise RuntimeError("BOT_API is required when forwarding.method=bot")
        if not settings.BOT_CHAT_ID:
            raise RuntimeError("forwarding.bot_chat_id is required for bot forwarding")
        return TelegramBotForwarder(bot_token=bot_token, chat_id=str(settings.BOT_CHAT_ID))
    if settings.FORWARDING_METHOD == "telegram":
        return TelegramChatForwarder(client, settings.FORWARDING_TARGET)
    raise RuntimeError("forwarding.method must be 'telegram' or 'bot'")


async def _serve(client, storage: SQLiteStorage) -> None:
    logger = logging.getLogger(__name__)

    await client.connect()
    await authorize(client)
    forwarder = _build_forwarder(client)
    logger.info("Selected forwarding method - %s", settings.FORWARDING_METHOD)

    timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        processor = _build_processor(session, storage, forwarder)

        # Single handler keeps Telethon integration minimal and defers all
        # detection work to the core processor.
        @client.on(events.NewMessage(incoming=True))
        async def handler(event) -> None:
            try:
                if source_key_from_message(event.message) not in settings.SOURCES:
                    return
                sender = await event.get_sender()
                incoming = build_incoming(event.message, settings.SOURCE_ALIASES, sender)
                report = await processor.handle(incoming)
                if report.dispatched:
                    logger.info("Dispatched %s", ", ".join(report.dispatched))
            except Exception:
                logger.exception("Error while processing message")

        logger.info("Client connected. Listening for incoming messages...")
        try:
            await client.run_until_disconnected()
        finally:
            await processor.drain()


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)
    logger.info("Starting mintscope")

    storage = _open_storage()
    history = AddressHistory(storage)
    logger.info(
        "%s sources tracked, auto-forward %s",
        len(settings.SOURCES),
        "on" if history.auto_forward(default=settings.FORWARDING.auto_forward) else "off",
    )

    client = build_client()
    client.loop.run_until_complete(_serve(client, storage))


class _ConsoleForwarder:
    """Forwarder used by `inject`: prints instead of delivering."""

    async def forward(self, address: str) -> None:
        print(f"forward -> {address}")


def _print_report(report: ProcessingReport) -> None:
    if report.skipped:
        print(f"skipped: {report.skipped}")
        return
    if not report.outcomes:
        print("no candidates found")
    for outcome in report.outcomes:
        result = outcome.result
        status = f"verified ({result.name} on {result.platform})" if result.verified else f"unverified ({result.reason})"
        print(f"{outcome.address} [{outcome.provenance.value}] {status}")
    if report.ai_attempts:
        print(f"AI attempts: {report.ai_attempts}")


def _inject(text: str) -> None:
    _configure_logging()
    storage = _open_storage()

    async def _run_inject() -> ProcessingReport:
        timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            processor = _build_processor(session, storage, _ConsoleForwarder())
            report = await processor.handle(IncomingMessage(text=text, channel_context="inject"))
            await processor.drain()
            return report

    _print_report(asyncio.run(_run_inject()))


def _auto_forward(state: Optional[str]) -> None:
    history = AddressHistory(_open_storage())
    if state in {"on", "off"}:
        history.set_auto_forward(state == "on")
    enabled = history.auto_forward(default=settings.FORWARDING.auto_forward)
    print(f"auto-forward: {'on' if enabled else 'off'}")


def _history() -> None:
    _print_banner()
    from frontend.history import HistoryApp

    HistoryApp(AddressHistory(_open_storage())).run()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="mintscope")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the watcher")
    subparsers.add_parser("history", help="Browse detected addresses")
    inject = subparsers.add_parser("inject", help="Push one test message through the pipeline")
    inject.add_argument("text", nargs="?", default=SAMPLE_MESSAGE)
    auto_forward = subparsers.add_parser("auto-forward", help="Show or toggle auto-forwarding")
    auto_forward.add_argument("state", nargs="?", choices=["on", "off"])

    args = parser.parse_args(argv)
    if args.command == "history":
        _history()
        return
    if args.command == "inject":
        _inject(args.text)
        return
    if args.command == "auto-forward":
        _auto_forward(args.state)
        return
    _run()


if __name__ == "__main__":
    main()

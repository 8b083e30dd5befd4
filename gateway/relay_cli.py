#!/usr/bin/env python3
"""
Transcript relay command line.

Commands:
    run       Watch transcripts and print chat events as JSON lines on stdout
    resolve   Show the session id and session key for one transcript file
    register  Add or update a session store entry (local development)

Logs go to stderr so stdout stays machine readable.

Usage:
    transcript-relay run --config ~/.transcript-relay/config.yaml
    transcript-relay run --once
    transcript-relay resolve ~/.transcript-relay/transcripts/a.jsonl
    transcript-relay register key-alpha sess-42 --store ~/.transcript-relay/sessions.json

Exit codes:
    0: Success
    1: Lookup failed (resolve) or store unreadable
    2: Configuration error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from functools import partial
from pathlib import Path

import psutil

from gateway.broadcast import ClientConnection, ClientHub
from gateway.config import ConfigError, RelayConfig, load_config
from gateway.session_store import (
    SessionStoreError,
    load_combined_session_store,
    register_session,
    resolve_session_key,
)
from gateway.transcript_bridge import TranscriptChatBridge
from gateway.transcript_events import TranscriptUpdateHub
from gateway.transcript_header import read_session_id_from_transcript
from gateway.transcript_watcher import PollingTranscriptWatcher

logger = logging.getLogger(__name__)

# Seconds to wait for the watcher thread on shutdown
WATCHER_JOIN_TIMEOUT = 5.0


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _log_process_stats(bridge: TranscriptChatBridge) -> None:
    """Log relay memory next to cache sizes (caches only shrink on lookup)."""
    process = psutil.Process(os.getpid())
    mem_info = process.memory_info()
    logger.info(
        "Relay stats: rss_mb=%.1f uptime_s=%.0f %s",
        mem_info.rss / (1024 * 1024),
        time.time() - process.create_time(),
        " ".join(f"{k}={v}" for k, v in bridge.stats().items()),
    )


def _print_message(client: ClientConnection, timeout: float | None) -> bool:
    message = client.get(timeout=timeout)
    if message is None:
        return False
    print(message.model_dump_json(), flush=True)
    return True


def build_bridge(config: RelayConfig, clients: ClientHub) -> TranscriptChatBridge:
    load_store = partial(
        load_combined_session_store,
        config.session_stores,
        config.store_lock_timeout_seconds,
    )
    return TranscriptChatBridge(
        clients.broadcast,
        load_store,
        cache_ttl_seconds=config.cache_ttl_seconds,
        cache_max_entries=config.cache_max_entries,
        header_read_bytes=config.header_read_bytes,
    )


def cmd_run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    _configure_logging(config.log_level)
    if config.transcripts_dir is None:
        raise ConfigError(
            "transcripts_dir is not configured.\n"
            "Set it in the config file or export TRANSCRIPT_RELAY_TRANSCRIPTS."
        )
    if not config.session_stores:
        logger.warning("No session stores configured; every transcript will be ignored")

    updates = TranscriptUpdateHub()
    clients = ClientHub(config.client_queue_size)
    stdout_client = clients.connect("stdout")
    bridge = build_bridge(config, clients)
    detach = bridge.attach(updates.subscribe)

    def emit_and_flush(session_file: str) -> None:
        # One poll can emit more events than the client queue holds
        updates.emit(session_file)
        while _print_message(stdout_client, timeout=0):
            pass

    watcher = PollingTranscriptWatcher(
        config.transcripts_dir,
        emit_and_flush if args.once else updates.emit,
        pattern=config.transcript_glob,
        interval=config.poll_interval_seconds,
    )

    try:
        if args.once:
            watcher.poll()
            return 0

        watcher.start()
        last_stats = time.monotonic()
        while True:
            _print_message(stdout_client, timeout=0.5)
            if time.monotonic() - last_stats >= config.stats_interval_seconds:
                _log_process_stats(bridge)
                last_stats = time.monotonic()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 0
    finally:
        watcher.stop(WATCHER_JOIN_TIMEOUT)
        detach()
        clients.disconnect(stdout_client)
        _log_process_stats(bridge)


def cmd_resolve(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    _configure_logging(config.log_level)

    session_file = str(args.file)
    session_id = read_session_id_from_transcript(session_file, config.header_read_bytes)
    result = {"file": session_file, "sessionId": session_id, "sessionKey": None}
    if session_id:
        store = load_combined_session_store(
            config.session_stores, config.store_lock_timeout_seconds
        )
        result["sessionKey"] = resolve_session_key(store, session_id)

    print(json.dumps(result))
    return 0 if result["sessionKey"] else 1


def cmd_register(args: argparse.Namespace) -> int:
    store_path = args.store
    if store_path is None:
        config = load_config(args.config)
        _configure_logging(config.log_level)
        if not config.session_stores:
            raise ConfigError("No session store configured; pass --store")
        store_path = config.session_stores[0]
    else:
        _configure_logging("INFO")

    entry = register_session(
        store_path.expanduser(),
        args.key,
        args.session_id,
        updated_at=time.time() * 1000,
    )
    logger.info("Registered %s -> %s in %s", args.key, entry.session_id, store_path)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="transcript-relay",
        description="Relay session transcript updates as chat events",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Watch transcripts and print chat events")
    run.add_argument("--config", type=Path, default=None, help="Config file (YAML)")
    run.add_argument(
        "--once", action="store_true", help="Poll once, print events, and exit"
    )
    run.set_defaults(func=cmd_run)

    resolve = sub.add_parser("resolve", help="Resolve one transcript to its session key")
    resolve.add_argument("file", type=Path, help="Transcript file")
    resolve.add_argument("--config", type=Path, default=None, help="Config file (YAML)")
    resolve.set_defaults(func=cmd_resolve)

    register = sub.add_parser("register", help="Add or update a session store entry")
    register.add_argument("key", help="Session key")
    register.add_argument("session_id", help="Session identifier")
    register.add_argument("--store", type=Path, default=None, help="Store file to write")
    register.add_argument("--config", type=Path, default=None, help="Config file (YAML)")
    register.set_defaults(func=cmd_register)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except SessionStoreError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

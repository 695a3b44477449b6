#!/usr/bin/env python3
"""
SessionMesh demo: two requests contending for one session

Usage:
    python -m sessionmesh

    # Against Redis
    SESSIONMESH_BACKEND=redis SESSIONMESH_REDIS_HOST=localhost python -m sessionmesh
"""

from __future__ import annotations

import asyncio
import sys
from uuid import uuid4

from sessionmesh.core.config import SessionMeshConfig
from sessionmesh.observability.events import (
    CompositeEventSink,
    EventSink,
    LoggingEventSink,
    MetricsEventSink,
)
from sessionmesh.observability.logging import LogLevel, setup_logging
from sessionmesh.session import (
    Acquired,
    Locked,
    NotFound,
    SessionData,
    SessionLockCoordinator,
)
from sessionmesh.storage import connect_store, create_store


async def demo_two_callers() -> None:
    """
    Caller A creates a session and takes its lock; caller B is turned away
    until A writes back and releases, then B gets the next token.
    """
    print("\n" + "=" * 60)
    print("SessionMesh - Lock Coordination Demo")
    print("=" * 60 + "\n")

    config_result = SessionMeshConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}")
        sys.exit(1)

    config = config_result.unwrap()

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}")
        sys.exit(1)

    print("✓ Configuration loaded and validated")
    print(f"  Application: {config.coordinator.application_name}")
    print(f"  Backend: {config.storage.backend.name}")

    setup_logging(
        LogLevel.parse(config.observability.log_level),
        json_output=config.observability.log_json,
    )

    store = create_store(config.storage)
    connected = await connect_store(store)
    if connected.is_err():
        print(f"Store error: {connected.error}")
        sys.exit(1)

    print("✓ Store connected")

    metrics_sink = MetricsEventSink()
    sinks: list[EventSink] = [metrics_sink]
    if config.observability.trace_events:
        sinks.append(LoggingEventSink())

    coordinator = SessionLockCoordinator(
        store,
        config.coordinator,
        events=CompositeEventSink(*sinks),
    )

    session_id = uuid4().hex
    timeout = config.coordinator.timeout_minutes

    print("\n--- Demo Operations ---\n")

    # 1. A stores a brand new session
    status = await coordinator.set_and_release(
        session_id, 0, SessionData(b"cart=1", timeout), is_new_session=True
    )
    print(f"1. A creates session {session_id[:8]}...: {status.name}")

    # 2. A takes the lock
    outcome_a = await coordinator.acquire_exclusive(session_id)
    if not isinstance(outcome_a, Acquired):
        print(f"   Unexpected outcome: {outcome_a}")
        sys.exit(1)
    print(f"2. A acquires: token={outcome_a.lock_token} payload={outcome_a.payload!r}")

    # 3. B is turned away
    outcome_b = await coordinator.acquire_exclusive(session_id)
    if isinstance(outcome_b, Locked):
        print(f"3. B finds it locked: token={outcome_b.lock_token} age={outcome_b.lock_age}")
    else:
        print(f"3. B unexpected outcome: {outcome_b}")

    # 4. A writes back and releases
    status = await coordinator.set_and_release(
        session_id,
        outcome_a.lock_token,
        SessionData(b"cart=2", timeout),
        is_new_session=False,
    )
    print(f"4. A writes and releases: {status.name}")

    # 5. B retries
    outcome_b = await coordinator.acquire_exclusive(session_id)
    if isinstance(outcome_b, Acquired):
        print(f"5. B acquires: token={outcome_b.lock_token} payload={outcome_b.payload!r}")

        # 6. A's old token is now useless
        status = await coordinator.release(session_id, outcome_a.lock_token)
        print(f"6. A releases with stale token: {status.name}")

        status = await coordinator.remove_item(session_id, outcome_b.lock_token)
        print(f"7. B removes the session: {status.name}")
    elif isinstance(outcome_b, NotFound):
        print("5. Session vanished")

    print("\n8. Coordinator metrics:")
    for operation, calls in sorted(coordinator.metrics.calls.items()):
        print(
            f"   {operation}: {calls} call(s), "
            f"avg {coordinator.metrics.avg_latency_ms(operation):.3f} ms"
        )
    for labels, count in metrics_sink.collect():
        print(f"   {labels['operation']}[{labels['status']}] = {count}")

    close = getattr(store, "close", None)
    if close is not None:
        await close()

    print("\n✓ Demo complete")
    print("=" * 60 + "\n")


async def main() -> None:
    """Main entry point."""
    try:
        await demo_two_callers()
    except KeyboardInterrupt:
        print("\nInterrupted")
    except Exception as e:
        print(f"Error: {e}")
        raise


def run() -> None:
    """Synchronous entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()

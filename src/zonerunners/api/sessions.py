"""
Session manager for Zone Runners games with SQLite persistence.

Each session wraps one ProgressionEngine. Sessions can be stepped
manually or run on a real-time clock: a background daemon thread that
ticks every ``tick_interval`` seconds and autosaves every
``save_interval`` seconds of game time. Every engine access goes
through the session lock so the engine only ever has one writer.

On startup only save metadata is loaded; full state is deserialized
lazily on first access.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from zonerunners.core.config import GameConfig
from zonerunners.core.engine import ProgressionEngine, TickReport
from zonerunners.core.relics import RelicType

logger = logging.getLogger(__name__)


@dataclass
class GameSession:
    """One game: an engine plus its lifecycle bookkeeping."""

    id: str
    name: str
    config: GameConfig
    engine: ProgressionEngine
    status: str = "created"  # created | running | stopped | error
    last_saved_clock: float = 0.0
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)


class SessionManager:
    """Manages multiple game sessions with optional SQLite persistence.

    Parameters
    ----------
    db_path : str | None
        Path to the SQLite database file. ``None`` disables persistence
        (pure in-memory mode). Default ``"data/zonerunners.db"``.
    """

    def __init__(self, db_path: str | None = "data/zonerunners.db"):
        self.sessions: dict[str, GameSession] = {}

        # Metadata for sessions persisted but not yet loaded into memory
        self._session_index: dict[str, dict[str, Any]] = {}

        # Real-time clocks: session id -> stop event
        self._clocks: dict[str, threading.Event] = {}
        self._threads: dict[str, threading.Thread] = {}

        self._store = None
        if db_path is not None:
            from zonerunners.api.persistence import SaveStore
            self._store = SaveStore(db_path)
            self._load_index()

    def _load_index(self) -> None:
        """Populate _session_index from the database (metadata only)."""
        if self._store is None or not self._store.available:
            return
        for row in self._store.list_games():
            sid = row["id"]
            if sid not in self.sessions:
                self._session_index[sid] = row

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _persist_session(self, session: GameSession) -> None:
        """Save a session to the database (best-effort)."""
        if self._store is None or not self._store.available:
            return
        try:
            self._store.save_game(
                game_id=session.id,
                name=session.name,
                status=session.status,
                state=session.engine.state,
                config=session.config,
            )
            session.last_saved_clock = session.engine.state.clock
            self._session_index.pop(session.id, None)
        except Exception:
            logger.warning("Failed to persist session %s", session.id, exc_info=True)

    def _load_session_from_db(self, session_id: str) -> GameSession | None:
        """Fully load a session from the database into memory."""
        if self._store is None or not self._store.available:
            return None
        try:
            from zonerunners.api.persistence import restore_state
            record = self._store.load_game(session_id)
            if record is None:
                return None

            config = GameConfig.from_json(record["config_json"])
            state = restore_state(record["state_blob"], config)

            # Reseed deterministically: seed + ticks already played
            tick = state.tick if state is not None else 0
            seed = config.random_seed
            rng = np.random.default_rng(seed + tick if seed is not None else None)
            engine = ProgressionEngine(config, state=state, rng=rng)

            status = record["status"]
            if status == "running":
                # Clocks do not survive a restart
                status = "stopped"
            return GameSession(
                id=record["id"],
                name=record["name"],
                config=config,
                engine=engine,
                status=status,
                last_saved_clock=engine.state.clock,
            )
        except Exception:
            logger.warning("Failed to load session %s from database", session_id, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_session(
        self,
        config: GameConfig | None = None,
        name: str | None = None,
    ) -> GameSession:
        """Create a new game session."""
        if config is None:
            config = GameConfig()

        session = GameSession(
            id=uuid.uuid4().hex[:8],
            name=name or config.game_name,
            config=config,
            engine=ProgressionEngine(config),
        )
        self.sessions[session.id] = session
        self._persist_session(session)
        logger.info("Created session %s (%s)", session.id, session.name)
        return session

    def get_session(self, session_id: str) -> GameSession:
        """Get a session by ID. Lazy-loads from DB if needed.

        Raises KeyError if not found in memory or database.
        """
        if session_id in self.sessions:
            return self.sessions[session_id]

        if session_id in self._session_index or (
            self._store is not None and self._store.has_game(session_id)
        ):
            session = self._load_session_from_db(session_id)
            if session is not None:
                self.sessions[session_id] = session
                self._session_index.pop(session_id, None)
                return session

        raise KeyError(f"Session '{session_id}' not found")

    def step(self, session_id: str, n: int = 1, dt: float | None = None) -> list[TickReport]:
        """Advance a session by N ticks. No-op while its clock is running."""
        session = self.get_session(session_id)
        if self.is_running(session_id):
            return []

        with session.lock:
            reports = [session.engine.tick(dt) for _ in range(n)]
            self._persist_session(session)
        return reports

    # ---- Commands ----

    def send_runner(self, session_id: str, runner_id: str) -> bool:
        session = self.get_session(session_id)
        with session.lock:
            sent = session.engine.send_runner(runner_id)
            if sent:
                self._persist_session(session)
        return sent

    def send_all_runners(self, session_id: str) -> int:
        session = self.get_session(session_id)
        with session.lock:
            count = session.engine.send_all_runners()
            if count:
                self._persist_session(session)
        return count

    def upgrade_relic(self, session_id: str, runner_id: str, relic: RelicType | str) -> bool:
        session = self.get_session(session_id)
        with session.lock:
            upgraded = session.engine.upgrade_relic_manually(runner_id, relic)
            if upgraded:
                self._persist_session(session)
        return upgraded

    # ---- Real-time clock ----

    def start_clock(self, session_id: str) -> GameSession:
        """Start ticking a session in a background thread."""
        session = self.get_session(session_id)
        if self.is_running(session_id):
            return session  # Already running, no-op

        stop = threading.Event()
        self._clocks[session_id] = stop
        session.status = "running"

        def _worker():
            interval = session.config.tick_interval
            try:
                while not stop.wait(interval):
                    with session.lock:
                        session.engine.tick()
                        due = (
                            session.engine.state.clock - session.last_saved_clock
                            >= session.config.save_interval
                        )
                        if due:
                            self._persist_session(session)
            except Exception:
                logger.exception("Clock failed for session %s", session_id)
                session.status = "error"
            finally:
                if self._clocks.get(session_id) is stop:
                    self._clocks.pop(session_id, None)
                if self._threads.get(session_id) is threading.current_thread():
                    self._threads.pop(session_id, None)

        t = threading.Thread(target=_worker, daemon=True, name=f"clock-{session_id}")
        self._threads[session_id] = t
        t.start()
        logger.info("Started clock for session %s", session_id)
        return session

    def stop_clock(self, session_id: str) -> GameSession:
        """Stop a session's clock and save."""
        session = self.get_session(session_id)
        stop = self._clocks.pop(session_id, None)
        thread = self._threads.pop(session_id, None)
        if stop is not None:
            stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(1.0, session.config.tick_interval * 2))
        if session.status == "running":
            session.status = "stopped"
        with session.lock:
            self._persist_session(session)
        return session

    def is_running(self, session_id: str) -> bool:
        """Check if a session's clock is ticking."""
        return session_id in self._clocks

    # ---- Lifecycle ----

    def reset_session(self, session_id: str) -> GameSession:
        """Discard all progress and start the game over."""
        if self.is_running(session_id):
            raise ValueError(f"Session '{session_id}' is currently running")
        session = self.get_session(session_id)
        with session.lock:
            session.engine.reset_progress()
            session.status = "created"
            self._persist_session(session)
        return session

    def delete_session(self, session_id: str) -> None:
        """Delete a session from memory and database."""
        in_memory = session_id in self.sessions
        in_index = session_id in self._session_index
        in_db = self._store is not None and self._store.has_game(session_id)
        if not (in_memory or in_index or in_db):
            raise KeyError(f"Session '{session_id}' not found")

        if self.is_running(session_id):
            self.stop_clock(session_id)
        self.sessions.pop(session_id, None)
        self._session_index.pop(session_id, None)
        if self._store is not None:
            self._store.delete_game(session_id)

    def list_sessions(self) -> list[dict[str, Any]]:
        """List all sessions as summary dicts (in-memory + persisted)."""
        seen: set[str] = set()
        result: list[dict[str, Any]] = []

        for s in self.sessions.values():
            seen.add(s.id)
            result.append(session_summary(s))

        for sid, meta in self._session_index.items():
            if sid not in seen:
                seen.add(sid)
                result.append({
                    "id": meta["id"],
                    "name": meta["name"],
                    "status": meta["status"],
                    "tick": meta["tick"],
                    "clock": meta["clock"],
                    "squad_level": meta["squad_level"],
                    "runner_count": meta["runner_count"],
                })

        return result

    def close(self) -> None:
        """Stop every clock and close the persistence store."""
        for sid in list(self._clocks):
            self.stop_clock(sid)
        if self._store is not None:
            self._store.close()


def session_summary(session: GameSession) -> dict[str, Any]:
    state = session.engine.state
    return {
        "id": session.id,
        "name": session.name,
        "status": session.status,
        "tick": state.tick,
        "clock": state.clock,
        "squad_level": state.squad_level,
        "runner_count": len(state.players),
    }

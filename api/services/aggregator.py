import asyncio
import logging
import time
from typing import Callable, List, Optional, Set

from lib.error_handler import ErrorHandler
from .scheduler import Deadline, DeadlineScheduler
from .sessions import (
    ConversationTurn,
    Role,
    Session,
    SessionStore,
    format_transcript,
)

logger = logging.getLogger(__name__)

# Summarizer failures tolerated per session before compaction stops trying
MAX_SUMMARY_ATTEMPTS = 3


class SessionAggregator:
    """
    Buffers per-user turns and finalizes each session once it goes quiet.

    A session is finalized exactly once per activity window: the transcript is
    handed to the lead extractor and, when the extracted record names a task,
    to the lead store. The session closes whatever the outcome.
    """

    def __init__(
        self,
        extractor,
        lead_store,
        summarizer=None,
        inactivity_window_ms: int = 60_000,
        max_live_turns: int = 10,
        deadline_check_interval_ms: int = 1_000,
        clock: Callable[[], float] = time.monotonic
    ):
        self.extractor = extractor
        self.lead_store = lead_store
        self.summarizer = summarizer
        self.inactivity_window = inactivity_window_ms / 1000
        self.max_live_turns = max_live_turns
        self.check_interval = deadline_check_interval_ms / 1000
        self.store = SessionStore()
        self.scheduler = DeadlineScheduler(clock=clock)
        self._poller: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        logger.info(
            f"Session aggregator initialized: window={self.inactivity_window}s, "
            f"max_live_turns={max_live_turns}"
        )

    def record_turn(self, user_id: str, turn: ConversationTurn) -> Session:
        """Append a turn and push the user's finalize deadline out by one window."""
        session = self.store.append(user_id, turn)
        session.pending_timer = self.scheduler.schedule(user_id, self.inactivity_window)
        logger.info(
            f"Recorded {turn.role.value} turn for {user_id} "
            f"(session {session.session_id}, {len(session.turns)} turns)"
        )
        return session

    def record_reply(self, session: Session, turn: ConversationTurn) -> bool:
        """Add an assistant turn to the session that produced it."""
        appended = self.store.append_to(session, turn)
        if not appended:
            logger.info(f"Session {session.session_id} is no longer active, reply not recorded")
        return appended

    def reply_context(self, session: Session) -> List[ConversationTurn]:
        """Turns handed to the reply generator, bounded even when the log was not compacted."""
        turns = list(session.turns)
        if len(turns) <= self.max_live_turns + 1:
            return turns
        head = turns[:1] if turns[0].role == Role.SYSTEM else []
        return head + turns[-self.max_live_turns:]

    async def compact(self, user_id: str) -> bool:
        """Fold the oldest turns into a summary turn once the log exceeds the cap."""
        session = self.store.get(user_id)
        if session is None or not session.is_active or session.compacting:
            return False
        if self.summarizer is None or len(session.turns) <= self.max_live_turns:
            return False
        if session.summary_failures >= MAX_SUMMARY_ATTEMPTS:
            return False

        old_turns = session.turns[:-self.max_live_turns]
        session.compacting = True
        try:
            summary = await self.summarizer(old_turns)
        except Exception as e:
            logger.error(f"Summarization failed for {user_id}: {str(e)}")
            summary = None
        finally:
            session.compacting = False

        if not summary:
            session.summary_failures += 1
            logger.warning(
                f"No summary for {user_id} (attempt {session.summary_failures}/{MAX_SUMMARY_ATTEMPTS}), "
                f"keeping {len(session.turns)} turns"
            )
            return False

        replaced = self.store.replace_prefix(
            session,
            old_turns,
            ConversationTurn(role=Role.SYSTEM, content=summary)
        )
        if replaced:
            session.summary_failures = 0
            logger.info(f"Compacted {len(old_turns)} turns for {user_id} into a summary")
        return replaced

    async def on_finalize_deadline(self, user_id: str, deadline: Optional[Deadline] = None) -> bool:
        """Finalize the user's session if it is still active. Returns True if it ran."""
        session = self.store.begin_finalize(user_id, deadline)
        if session is None:
            logger.info(f"No session waiting on this deadline for {user_id}, finalize skipped")
            return False
        if self.scheduler.pending(user_id) is session.pending_timer:
            self.scheduler.cancel(user_id)

        snapshot = list(session.turns)
        transcript = format_transcript(snapshot)
        logger.info(f"Inactivity detected for {user_id}, finalizing session {session.session_id} ({len(snapshot)} turns)")

        try:
            await self._extract_and_persist(user_id, transcript)
        finally:
            self.store.close(session)
        return True

    async def _extract_and_persist(self, user_id: str, transcript: str) -> None:
        try:
            record = await self.extractor.extract(transcript, user_id)
        except Exception as e:
            ErrorHandler.handle_extraction_error(e, user_id)
            return

        if record is None:
            logger.warning(f"Lead extraction returned nothing for {user_id}")
            return
        if not record.has_task:
            logger.info(f"Task missing for {user_id}, skipping lead save")
            return

        try:
            saved = await self.lead_store.save_lead(record)
        except Exception as e:
            ErrorHandler.handle_persistence_error(e, user_id)
            return

        if saved:
            logger.info(f"Lead saved for {user_id}")
        else:
            logger.error(f"Lead store rejected record for {user_id}")

    async def sweep(self) -> int:
        """Finalize every session whose deadline has passed."""
        due = self.scheduler.pop_due()
        if not due:
            return 0
        results = await asyncio.gather(
            *(self.on_finalize_deadline(deadline.key, deadline) for deadline in due)
        )
        return sum(1 for finalized in results if finalized)

    def start(self) -> None:
        if self._poller is None or self._poller.done():
            self._poller = asyncio.create_task(self._poll())
            logger.info("Deadline poller started")

    async def stop(self) -> None:
        if self._poller is not None:
            self._poller.cancel()
            try:
                await self._poller
            except asyncio.CancelledError:
                pass
            self._poller = None
            logger.info("Deadline poller stopped")
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._poll_delay())
            for deadline in self.scheduler.pop_due():
                self._spawn(self.on_finalize_deadline(deadline.key, deadline))

    def _poll_delay(self) -> float:
        # Wake early when the next deadline is closer than the check interval
        next_at = self.scheduler.next_deadline()
        if next_at is None:
            return self.check_interval
        return min(self.check_interval, max(0.0, next_at - self.scheduler.clock()))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

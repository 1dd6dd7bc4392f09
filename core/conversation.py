"""
Conversation pipeline - one turn from user text to committed state.
Handles:
- Crisis fast track (bypasses every modifier, mutates nothing)
- Perception (rule based or model based, with a timeout)
- Emotion / intimacy / personality updates on a candidate state
- Compilation: compass, tone valve, expression profile, generation params
- Prompt assembly and the completion call (one reduced retry)
- Commit under the per-agent lock, persistence, reflection scheduling
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ai import CompletionService, collect_stream
from biorhythm import BioRhythm
from config.loader import Settings
from core import compass, patterns
from core.compass import ReactionResult, SocialStance, ToneLevel, ToneValve
from core.expression import ExpressionProfile, SAFETY, TERMINATING, compile_profile
from core.feedback import behavior_of, evolution_args, infer_feedback
from core.generation import GenerationParams, GenerationPolicy
from core.loops import DecayScheduler, ReflectionScheduler
from core.perception import PerceptionRecord
from core.prompt import (
    PromptFields,
    PromptSnapshot,
    assemble,
    build_messages,
    tail_reminder,
)
from core.reflection import ConversationTurn, analyze_turns
from core.state import AgentState, validate
from emotion import EmotionEngine
from intimacy import IntimacyEngine
from memory_sqlite import StateStore
from personality.engine import PersonalityEngine
from personality.memory_short import ShortTermMemory
from personality.persona import persona_header
from personality.traits import PersonalityTraits
from triggers import detect_crisis, perceive
from utils.errors import (
    CompletionError,
    PersistenceError,
    StateInvariantError,
    log_error,
)
from utils.helpers import clamp, local_now
from utils.logging import log, log_ai, log_to_file, log_user

__all__ = ["AgentSession", "Companion", "TurnResult"]

Classifier = Callable[[str, Sequence[Mapping[str, str]]], PerceptionRecord]
CrisisDetector = Callable[[str], bool]


def _rule_classifier(text: str, context: Sequence[Mapping[str, str]]) -> PerceptionRecord:
    return perceive(text)


@dataclass
class TurnResult:
    success: bool
    reply: str = ""
    crisis: bool = False
    meltdown: bool = False
    cancelled: bool = False
    stance: SocialStance = SocialStance.NEUTRAL
    tone: ToneLevel = ToneLevel.NORMAL
    profile: Optional[ExpressionProfile] = None
    params: Optional[GenerationParams] = None
    perception: Optional[PerceptionRecord] = None
    snapshot: Optional[PromptSnapshot] = None
    error: Optional[str] = None
    persisted: bool = True


@dataclass
class AgentSession:
    """Everything mutable about one agent. Only touched under `lock`."""

    agent_id: str
    state: AgentState
    memory: ShortTermMemory
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    pending_turns: List[ConversationTurn] = field(default_factory=list)
    last_profile: Optional[ExpressionProfile] = None
    last_reply_length: Optional[int] = None
    last_user_ts: Optional[float] = None
    last_snapshot: Optional[PromptSnapshot] = None
    meltdown_count: int = 0
    dirty: bool = False
    turn_task: Optional[asyncio.Task] = None

    @property
    def version(self) -> int:
        return self.state.version


class Companion:
    """Owns the engines, the store and one AgentSession per agent id."""

    def __init__(
        self,
        settings: Settings,
        client: CompletionService,
        store: Optional[StateStore] = None,
        *,
        classifier: Classifier = _rule_classifier,
        crisis_detector: CrisisDetector = detect_crisis,
        clock: Optional[Callable[[], datetime]] = None,
        streaming: bool = False,
    ):
        self.settings = settings
        self.client = client
        self.store = store
        self.classifier = classifier
        self.crisis_detector = crisis_detector
        self.clock = clock or (lambda: local_now(settings.timezone))
        self.streaming = streaming

        self.emotion = EmotionEngine(settings.emotion)
        self.intimacy = IntimacyEngine(settings.intimacy)
        self.personality = PersonalityEngine(settings.personality)
        self.biorhythm = BioRhythm(settings.biorhythm)
        self.tone_valve = ToneValve(settings.compass)
        self.policy = GenerationPolicy(
            settings.generation,
            intimacy_low=settings.intimacy.low_threshold,
            intimacy_high=settings.intimacy.high_threshold,
        )
        self.reflections = ReflectionScheduler(settings.reflection.quiet_period_s, self.reflect)
        self.decay_timers = DecayScheduler(settings.reflection.decay_tick_s, self.decay_agent)

        self._sessions: Dict[str, AgentSession] = {}

    # -------------------------
    # Sessions
    # -------------------------

    def _now(self) -> float:
        return self.clock().timestamp()

    def session(self, agent_id: str) -> AgentSession:
        """Return the live session, restoring it from the store or creating a fresh agent."""
        existing = self._sessions.get(agent_id)
        if existing is not None:
            return existing

        state: Optional[AgentState] = None
        history: List[Dict[str, str]] = []
        if self.store is not None:
            try:
                state = self.store.load(agent_id)
                history = self.store.recent_messages(agent_id, limit=self.settings.generation.history_length_close)
            except PersistenceError as e:
                log_error(f"[Store] Could not restore {agent_id}; starting fresh", e)
                state = None

        if state is None:
            state = AgentState.initial(self.settings.initial_state, self._now())
            log(f"[Turn] New agent {agent_id}")
        else:
            log(f"[Turn] Restored agent {agent_id} (version {state.version})")

        memory = ShortTermMemory(max_messages=self.settings.generation.history_length_close)
        memory.hydrate_from_history(history)
        session = AgentSession(agent_id=agent_id, state=state, memory=memory)
        self._sessions[agent_id] = session
        return session

    def sessions(self) -> List[AgentSession]:
        return list(self._sessions.values())

    # -------------------------
    # Turn entry points
    # -------------------------

    async def submit(self, agent_id: str, text: str) -> TurnResult:
        """Run a turn, cancelling any turn still in flight for the same agent."""
        session = self.session(agent_id)
        previous = session.turn_task
        if previous is not None and not previous.done():
            log(f"[Turn] New message from {agent_id}; cancelling the in-flight reply")
            previous.cancel()

        task = asyncio.create_task(self.handle_turn(agent_id, text), name=f"turn-{agent_id}")
        session.turn_task = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and session.turn_task is not task:
                # Superseded by a newer message; the caller itself is still alive
                return TurnResult(success=False, cancelled=True, error="superseded")
            raise
        finally:
            if session.turn_task is task:
                session.turn_task = None

    async def handle_turn(self, agent_id: str, text: str) -> TurnResult:
        session = self.session(agent_id)
        text = (text or "").strip()
        if not text:
            return TurnResult(success=False, error="empty message")

        log_user(agent_id, text)
        self.reflections.cancel(agent_id)
        self.decay_timers.cancel(agent_id)

        try:
            async with session.lock:
                result = await self._run_turn(session, text)
        finally:
            self.decay_timers.reset(agent_id)

        if result.success and self.settings.reflection.enabled:
            self.reflections.reset(agent_id)
        return result

    # -------------------------
    # The pipeline
    # -------------------------

    async def _run_turn(self, session: AgentSession, text: str) -> TurnResult:
        cfg = self.settings
        local = self.clock()
        now = local.timestamp()
        prev = session.state

        # --- Crisis fast track ---
        if await self._detect_crisis(text):
            return self._crisis_turn(session, text, now)

        history = session.memory.recent(self.policy.history_length(prev.intimacy.intimacy))
        perception = await self._perceive(text, history)
        if perception.is_crisis:
            return self._crisis_turn(session, text, now, perception)

        # --- Candidate state ---
        candidate = self._updated_state(session, perception, len(text), now)

        # --- Compile ---
        laziness = self.biorhythm.laziness(local)
        if self.personality.should_clear_fatigue(candidate.emotion.valence, crisis=False):
            laziness = 0.0

        intimacy_value = candidate.intimacy.intimacy
        effective = self.personality.effective_traits(candidate.traits, intimacy_value, laziness)
        meltdown = self.emotion.is_meltdown(candidate.emotion)
        reaction = compass.react(
            effective,
            intimacy_value,
            candidate.emotion.resentment,
            candidate.emotion.arousal,
            perception.offensiveness,
        )
        tone = self.tone_valve.level(candidate.emotion.resentment, laziness, perception.offensiveness)
        profile = compile_profile(
            effective,
            intimacy_value,
            candidate.emotion.resentment,
            meltdown=meltdown,
            tone=tone,
        )
        params = self.policy.params(candidate.emotion.valence, candidate.emotion.arousal, intimacy_value)

        blocks = assemble(
            self._prompt_fields(session, candidate, effective, local, laziness, reaction, tone, profile)
        )
        system_prompt = blocks.system_prompt()
        messages = build_messages(
            system_prompt,
            history,
            text,
            reminder=tail_reminder(profile, ToneValve.constraints(tone)),
        )
        snapshot = PromptSnapshot.capture(blocks, messages, params, now)
        session.last_snapshot = snapshot
        if cfg.generation.prompt_log:
            log_to_file(cfg.generation.prompt_log, f"[{session.agent_id}] {snapshot.to_json()}")

        result = TurnResult(
            success=True,
            meltdown=meltdown,
            stance=reaction.stance,
            tone=tone,
            profile=profile,
            params=params,
            perception=perception,
            snapshot=snapshot,
        )

        # --- Reply ---
        if meltdown:
            reply = self.emotion.meltdown_response(session.meltdown_count)
            session.meltdown_count += 1
            log(f"[Emotion] Meltdown for {session.agent_id}; skipping generation")
        else:
            try:
                reply = await self._generate(system_prompt, messages, params)
            except CompletionError as e:
                log_error(f"[LLM] Reply for {session.agent_id} failed after retry", e)
                result.success = False
                result.error = str(e)
                return result
            found = patterns.check(reply)
            if not found.clean:
                log(f"[Patterns] {session.agent_id}: {', '.join(found.violations)} (severity {found.max_severity:.1f})")
                reply = patterns.sanitize(reply)

        # --- Commit ---
        result.reply = reply
        result.persisted = self._commit(session, candidate, text, reply, perception, profile, now)
        log_ai(session.agent_id, reply)
        self._log_mood_state(session)
        return result

    def _updated_state(
        self,
        session: AgentSession,
        perception: PerceptionRecord,
        user_length: int,
        now: float,
    ) -> AgentState:
        """Apply one perception to a copy of the state; the live state is untouched."""
        prev = session.state

        elapsed = now - prev.emotion.last_updated
        dv, da, dr = self.emotion.stimulus_from_perception(perception, prev.intimacy.intimacy)
        emotion = self.emotion.update(prev.emotion, dv, da, dr, elapsed, perception.social_events, now=now)

        intimacy = self.intimacy.regress(prev.intimacy, now)
        if perception.offensiveness >= self.settings.emotion.hostile_offensiveness:
            intimacy = self.intimacy.penalize(intimacy, perception.severity, now)
            log(f"[Intimacy] {session.agent_id} hostile (severity {perception.severity:.2f}); cooling started")
        else:
            hours = max(0.0, (now - prev.intimacy.last_interaction) / 3600.0)
            quality = self.intimacy.quality_from(perception, emotion.valence)
            intimacy = self.intimacy.grow(intimacy, quality, emotion.valence, hours, now)

        personality = prev.personality
        delay = now - (session.last_user_ts if session.last_user_ts is not None else prev.intimacy.last_interaction)
        signal = infer_feedback(perception, user_length, session.last_reply_length, delay)
        args = evolution_args(signal, behavior_of(session.last_profile, perception.underlying_need))
        if args is not None:
            direction, magnitude, activation = args
            since_shift = now - personality.last_shift
            traits = self.personality.evolve(
                personality.traits,
                direction,
                magnitude,
                activation,
                intimacy.intimacy,
                since_shift,
            )
            last_shift = now if self.personality.shift_readiness(since_shift) > 0 else personality.last_shift
            personality = replace(personality, traits=traits, last_shift=last_shift)

        return AgentState(emotion=emotion, personality=personality, intimacy=intimacy, version=prev.version + 1)

    def _prompt_fields(
        self,
        session: AgentSession,
        state: AgentState,
        effective: PersonalityTraits,
        local: datetime,
        laziness: float,
        reaction: ReactionResult,
        tone: ToneLevel,
        profile: ExpressionProfile,
    ) -> PromptFields:
        persona = self.settings.persona
        style = self.intimacy.style_hints(state.intimacy)
        relation = self.intimacy.relation_state(state.intimacy.intimacy, terminating=profile is TERMINATING)
        return PromptFields(
            persona_header=persona_header(persona.name, persona.description, self.personality.describe(effective)),
            mood_description=self.emotion.description(state.emotion),
            relation_state=relation.value,
            intimacy=state.intimacy.intimacy,
            local_time=local.strftime("%A %H:%M"),
            phase=self.biorhythm.phase(local),
            laziness=laziness,
            reaction=reaction,
            tone=tone,
            tone_constraints=ToneValve.constraints(tone),
            profile=profile,
            memory_notes=self._memory_notes(session.agent_id),
            proactivity=style.proactivity,
            implication_ratio=style.implication_ratio,
        )

    def _memory_notes(self, agent_id: str) -> tuple:
        if self.store is None:
            return ()
        try:
            return tuple(n.text for n in self.store.notes(agent_id, limit=5))
        except PersistenceError as e:
            log_error(f"[Store] Could not read notes for {agent_id}", e)
            return ()

    def _crisis_turn(
        self,
        session: AgentSession,
        text: str,
        now: float,
        perception: Optional[PerceptionRecord] = None,
    ) -> TurnResult:
        """Fixed safety reply; no modifier applies and the agent state is not touched."""
        reply = self.settings.safety.crisis_response
        log(f"[Turn] Crisis override for {session.agent_id}")
        session.memory.add("user", text)
        session.memory.add("assistant", reply)
        persisted = True
        if self.store is not None:
            try:
                self.store.record_message(session.agent_id, "user", text)
                self.store.record_message(session.agent_id, "assistant", reply)
            except PersistenceError as e:
                log_error(f"[Store] Could not record crisis turn for {session.agent_id}", e)
                persisted = False
        log_ai(session.agent_id, reply)
        return TurnResult(
            success=True,
            reply=reply,
            crisis=True,
            profile=SAFETY,
            perception=perception,
            persisted=persisted,
        )

    def _commit(
        self,
        session: AgentSession,
        candidate: AgentState,
        text: str,
        reply: str,
        perception: PerceptionRecord,
        profile: ExpressionProfile,
        now: float,
    ) -> bool:
        """Swap in the candidate state and persist. Returns False if the store failed."""
        try:
            session.state = validate(candidate, session.state)
        except StateInvariantError as e:
            log_error(f"[Turn] Rejected state update for {session.agent_id}", e)

        session.memory.add("user", text)
        session.memory.add("assistant", reply)
        session.pending_turns.append(
            ConversationTurn(user_message=text, ai_response=reply, user_valence=perception.surface_valence)
        )
        session.last_profile = profile
        session.last_reply_length = len(reply)
        session.last_user_ts = now
        return self._save(session, messages=(("user", text), ("assistant", reply)))

    def _save(self, session: AgentSession, messages: Sequence[tuple] = ()) -> bool:
        if self.store is None:
            return True
        try:
            for role, content in messages:
                self.store.record_message(session.agent_id, role, content)
            self.store.save(session.agent_id, session.state)
        except PersistenceError as e:
            log_error(f"[Store] Save failed for {session.agent_id}; keeping state in memory", e)
            session.dirty = True
            return False
        session.dirty = False
        return True

    # -------------------------
    # Blocking helpers (worker threads)
    # -------------------------

    async def _detect_crisis(self, text: str) -> bool:
        try:
            return bool(
                await asyncio.wait_for(
                    asyncio.to_thread(self.crisis_detector, text),
                    timeout=self.settings.reflection.crisis_timeout_s,
                )
            )
        except asyncio.TimeoutError:
            log("[Turn] Crisis detector timed out; treating as crisis")
            return True
        except Exception as e:
            log_error("[Turn] Crisis detector failed; treating as crisis", e)
            return True

    async def _perceive(self, text: str, history: Sequence[Mapping[str, str]]) -> PerceptionRecord:
        try:
            record = await asyncio.wait_for(
                asyncio.to_thread(self.classifier, text, history),
                timeout=self.settings.reflection.perception_timeout_s,
            )
        except asyncio.TimeoutError:
            log("[Perception] Classifier timed out; using default record")
            return PerceptionRecord.default()
        except Exception as e:
            log_error("[Perception] Classifier failed; using default record", e)
            return PerceptionRecord.default()
        if not isinstance(record, PerceptionRecord):
            return PerceptionRecord.from_mapping(record)
        return record

    async def _complete(self, system_prompt: str, messages: List[Dict[str, str]], params: GenerationParams) -> str:
        cancel = threading.Event()
        try:
            if self.streaming:
                return await asyncio.to_thread(
                    collect_stream,
                    self.client,
                    system_prompt,
                    messages,
                    params.temperature,
                    params.max_tokens,
                    cancel,
                    params.top_p,
                )
            return await asyncio.to_thread(
                self.client.complete,
                system_prompt,
                messages,
                params.temperature,
                params.max_tokens,
                params.top_p,
            )
        except asyncio.CancelledError:
            # Stop the worker; whatever it streamed so far is dropped
            cancel.set()
            raise

    async def _generate(self, system_prompt: str, messages: List[Dict[str, str]], params: GenerationParams) -> str:
        try:
            return await self._complete(system_prompt, messages, params)
        except CompletionError as e:
            log(f"[LLM] Completion failed ({e}); retrying with reduced params")
        return await self._complete(system_prompt, messages, params.reduced())

    # -------------------------
    # Genesis / reset
    # -------------------------

    async def lock_genesis(self, agent_id: str, traits: Optional[PersonalityTraits] = None) -> AgentState:
        """Lock the starting traits. Raises GenesisLockedError on a second call."""
        session = self.session(agent_id)
        async with session.lock:
            profile = self.personality.lock_genesis(session.state.personality, traits, now=self._now())
            session.state = validate(replace(session.state, personality=profile).bumped(), session.state)
            self._save(session)
            return session.state

    async def edit_traits(self, agent_id: str, values: Mapping[str, float]) -> AgentState:
        """Direct trait assignment before genesis. Raises GenesisLockedError afterwards."""
        session = self.session(agent_id)
        async with session.lock:
            profile = self.personality.edit_traits(session.state.personality, dict(values))
            session.state = validate(replace(session.state, personality=profile).bumped(), session.state)
            self._save(session)
            return session.state

    async def factory_reset(self, agent_id: str) -> AgentState:
        """Wipe state, history and notes; the agent starts over (genesis unlocked)."""
        session = self.session(agent_id)
        self.reflections.cancel(agent_id)
        self.decay_timers.cancel(agent_id)
        async with session.lock:
            if self.store is not None:
                self.store.factory_reset(agent_id)
            session.state = AgentState.initial(self.settings.initial_state, self._now())
            session.memory.clear()
            session.pending_turns.clear()
            session.last_profile = None
            session.last_reply_length = None
            session.last_user_ts = None
            session.last_snapshot = None
            session.meltdown_count = 0
            session.dirty = False
            log(f"[Turn] Factory reset for {agent_id}")
            return session.state

    # -------------------------
    # Background work
    # -------------------------

    async def reflect(self, agent_id: str) -> bool:
        """Summarize pending turns and commit notes plus a small intimacy delta.

        The analysis runs outside the lock; the commit only happens if no turn
        landed in the meantime (same state version). Returns True on commit.
        """
        session = self._sessions.get(agent_id)
        if session is None:
            return False

        async with session.lock:
            turns = list(session.pending_turns)
            version = session.state.version
        if not turns:
            return False

        result = await asyncio.to_thread(analyze_turns, self.client, turns)

        async with session.lock:
            if session.state.version != version:
                log(f"[Reflect] {agent_id} moved on (v{version} -> v{session.state.version}); dropping result")
                if session.pending_turns and self.settings.reflection.enabled:
                    self.reflections.reset(agent_id)
                return False
            del session.pending_turns[: len(turns)]
            if not result.has_updates:
                return False

            if result.intimacy_delta:
                current = session.state.intimacy
                intimacy = replace(current, intimacy=clamp(current.intimacy + result.intimacy_delta, 0.0, 1.0))
                try:
                    session.state = validate(replace(session.state, intimacy=intimacy).bumped(), session.state)
                except StateInvariantError as e:
                    log_error(f"[Reflect] Rejected intimacy delta for {agent_id}", e)

            if self.store is not None:
                notes = list(result.memories)
                if result.milestone:
                    notes.append(f"Milestone: {result.milestone}")
                try:
                    for note in notes:
                        self.store.add_note(agent_id, note)
                    self.store.prune(agent_id, keep_notes=self.settings.reflection.max_notes)
                except PersistenceError as e:
                    log_error(f"[Reflect] Could not store notes for {agent_id}", e)
            self._save(session)

        log(
            f"[Reflect] {agent_id}: {len(result.memories)} note(s), "
            f"intimacy {result.intimacy_delta:+.3f}"
        )
        return True

    async def decay_agent(self, agent_id: str) -> bool:
        """Time passes for one agent: emotion decay and intimacy regression.

        The version only moves when something actually changed. Returns True
        when a new state was committed.
        """
        session = self._sessions.get(agent_id)
        if session is None:
            return False

        async with session.lock:
            now = self._now()
            prev = session.state
            emotion = self.emotion.decay(prev.emotion, now - prev.emotion.last_updated, now=now)
            intimacy = self.intimacy.regress(prev.intimacy, now)
            if emotion == prev.emotion and intimacy == prev.intimacy:
                return False
            try:
                session.state = validate(
                    replace(prev, emotion=emotion, intimacy=intimacy).bumped(),
                    prev,
                )
            except StateInvariantError as e:
                log_error(f"[Decay] Rejected decay for {agent_id}", e)
                return False
            self._save(session)
            return True

    async def close(self) -> None:
        turns = [s.turn_task for s in self.sessions() if s.turn_task is not None and not s.turn_task.done()]
        for task in turns:
            task.cancel()
        await asyncio.gather(*turns, return_exceptions=True)
        # Cancelled turns re-arm their decay timers on the way out
        await self.reflections.cancel_all()
        await self.decay_timers.cancel_all()
        if self.store is not None:
            for session in self.sessions():
                if session.dirty:
                    self._save(session)
            self.store.close()

    # -------------------------
    # Logging
    # -------------------------

    def _log_mood_state(self, session: AgentSession) -> None:
        s = session.state
        log(
            f"MOOD {self.emotion.label(s.emotion)} "
            f"(V={s.emotion.valence:+.2f}, A={s.emotion.arousal:.2f}, R={s.emotion.resentment:.2f}, "
            f"I={s.intimacy.intimacy:.3f}, v{s.version})"
        )

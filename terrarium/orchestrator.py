"""
Orchestrator — the creature's composition root.

Owns every piece of mutable creature state (traits, energy, level, XP, memory,
conversation, action history, lineage) and drives it from one synchronous
``tick(dt)`` on the control loop. Each tick:

  1. delivers a finished inference result, if any, back into the strategy,
  2. advances the heartbeat (metabolism happens on every SENSE entry),
  3. lets the strategy fire a reflex,
  4. starts an inference call when the strategy asks and the slot is free,
  5. reconciles energy-state changes and produces renderer parameters.

The only suspension point is the inference call, which lives in an
InferenceSlot task. Nothing in here awaits the engine on the tick path, and no
failure raised by a strategy, listener or engine escapes ``tick``.
"""

from __future__ import annotations

import random
import time
from collections import deque
from typing import Any, Callable, Optional

import structlog

from terrarium.actions import Action, actions_for_level
from terrarium.api.engine import InferenceEngine
from terrarium.config import TerrariumConfig
from terrarium.energy import EnergyLedger, EnergyState
from terrarium.events import (
    CreatureActionEvent,
    CreatureRebornEvent,
    EnergyStateChangedEvent,
    EventBus,
    InferenceStatusEvent,
    LevelUpEvent,
    TerrariumEvent,
)
from terrarium.heartbeat import HeartbeatClock, HeartbeatPhase
from terrarium.inference import InferenceSlot
from terrarium.intelligence import MAX_LEVEL, check_level_up, get_profile
from terrarium.memory import ConversationHistory, EpisodicMemory, MemoryType
from terrarium.memory.episodic import classify_emotion
from terrarium.persistence import CreatureRecord, StateStore, format_age
from terrarium.repair import ActionRepairPipeline
from terrarium.strategies import (
    BehaviorStrategy,
    InferenceContext,
    UnknownStrategyError,
    create_strategy,
)
from terrarium.traits import TraitVector
from terrarium.visuals import VisualParams, VisualState

logger = structlog.get_logger(__name__)


class EngineStatus:
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    SWITCHING = "switching"


class Orchestrator:
    """Ties traits, energy, heartbeat, strategy, memory and inference together."""

    def __init__(
        self,
        engine: InferenceEngine,
        config: Optional[TerrariumConfig] = None,
        store: Optional[StateStore] = None,
        event_bus: Optional[EventBus] = None,
        strategy: Optional[str] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self._config = config or TerrariumConfig()
        self._engine = engine
        self._store = store
        self._bus = event_bus
        self._rng = rng or random.Random()
        self._clock = clock
        self._wall_clock = wall_clock

        self._repair = ActionRepairPipeline(self._rng)
        self._slot = InferenceSlot(timeout=self._config.inference.call_budget_seconds)
        self.engine_status = EngineStatus.IDLE
        self._switching = False
        self.observed = False

        record = store.load() if store is not None else None
        if record is None:
            record = self._new_record(strategy=strategy or self._config.behavior.strategy)
        elif strategy:
            record.strategy = strategy
        self._adopt(record)

        # Metrics
        self.actions_executed = 0
        self.actions_skipped = 0
        self.inference_results = 0
        self.strategy_errors = 0

    # -------------------------------------------------------------------------
    # Record lifecycle
    # -------------------------------------------------------------------------

    def _new_record(
        self,
        strategy: str,
        generation: int = 1,
        parent_traits: Optional[dict[str, float]] = None,
    ) -> CreatureRecord:
        now = self._wall_clock()
        return CreatureRecord(
            traits=TraitVector.generate(self._rng).to_dict(),
            energy=self._config.energy.initial_energy,
            created_at=now,
            last_saved_at=now,
            generation=generation,
            parent_traits=parent_traits,
            strategy=strategy,
        )

    def _adopt(self, record: CreatureRecord) -> None:
        """Replace all creature state with ``record``."""
        self.creature_id = record.creature_id
        self.name = record.name
        self.traits = TraitVector.from_dict(record.traits)
        self.energy = EnergyLedger(record.energy)
        self.level = max(0, min(record.level, MAX_LEVEL))
        self.xp = record.xp
        self.generation = record.generation
        self.parent_traits = record.parent_traits
        self.created_at = record.created_at
        self.total_age = record.total_age
        self.memory = EpisodicMemory.from_list(record.memories, clock=self._wall_clock)
        self.conversation = ConversationHistory.from_list(record.conversation)
        self.action_history: deque[dict[str, Any]] = deque(
            record.action_history, maxlen=self._config.behavior.action_history_size
        )
        self._pending_user_message: Optional[str] = None

        hb = self._config.heartbeat
        self.heartbeat = HeartbeatClock(
            traits=self.traits,
            level=self.level,
            reflex_cooldown=hb.reflex_cooldown,
            pulse_decay=hb.pulse_decay,
            rng=self._rng,
            clock=self._clock,
        )
        self.heartbeat.on_phase_change(self._on_phase_change)
        self.visuals = VisualState(self.traits)
        self._energy_state = self.energy.state
        try:
            self.strategy = self._build_strategy(record.strategy)
        except UnknownStrategyError:
            logger.warning("orchestrator.unknown_strategy", strategy=record.strategy)
            self.strategy = self._build_strategy(self._config.behavior.strategy)

    def _build_strategy(self, name: str) -> BehaviorStrategy:
        strategy = create_strategy(name, repair=self._repair, rng=self._rng, clock=self._clock)
        strategy.init(self.traits, self.level, self.energy)
        return strategy

    def snapshot(self) -> CreatureRecord:
        return CreatureRecord(
            creature_id=self.creature_id,
            name=self.name,
            traits=self.traits.to_dict(),
            level=self.level,
            xp=self.xp,
            energy=self.energy.energy,
            created_at=self.created_at,
            total_age=self.total_age,
            generation=self.generation,
            parent_traits=self.parent_traits,
            action_history=list(self.action_history),
            memories=self.memory.to_list(),
            conversation=self.conversation.to_list(),
            strategy=self.strategy.name,
        )

    def save(self) -> None:
        if self._store is not None:
            self._store.save(self.snapshot())

    # -------------------------------------------------------------------------
    # Engine lifecycle
    # -------------------------------------------------------------------------

    async def load_engine(self, model_id: Optional[str] = None) -> bool:
        """Initialise the engine, retrying once after clearing its cache."""
        self._set_engine_status(EngineStatus.LOADING, model_id or "")
        model_id = model_id or self._config.inference.model

        for attempt in (1, 2):
            try:
                await self._engine.init(model_id, self._on_engine_progress)
            except Exception as exc:
                logger.warning(
                    "orchestrator.engine_init_failed",
                    attempt=attempt,
                    error_type=type(exc).__name__,
                    error=str(exc)[:200],
                )
                if attempt == 1:
                    self._engine.clear_cache()
                    continue
                self._set_engine_status(EngineStatus.ERROR, str(exc)[:200])
                return False
            break

        self._set_engine_status(EngineStatus.READY, model_id)
        return True

    async def switch_engine(self, engine: InferenceEngine, model_id: Optional[str] = None) -> bool:
        """Drain the in-flight call, tear down the old engine, bring up the new one."""
        self._switching = True
        self._set_engine_status(EngineStatus.SWITCHING)
        try:
            await self._slot.drain()
            old, self._engine = self._engine, engine
            try:
                await old.destroy()
            except Exception:
                logger.warning("orchestrator.engine_destroy_failed", exc_info=True)
            return await self.load_engine(model_id)
        finally:
            self._switching = False

    async def shutdown(self) -> None:
        """Abandon any in-flight call and release the engine. Saving is the caller's job."""
        self._slot.cancel()
        await self._engine.destroy()

    def _on_engine_progress(self, progress: float, text: str) -> None:
        logger.debug("orchestrator.engine_progress", progress=round(progress, 2), text=text)

    def _set_engine_status(self, status: str, detail: str = "") -> None:
        self.engine_status = status
        logger.info("orchestrator.engine_status", status=status, detail=detail)
        self._emit(InferenceStatusEvent(status=status, detail=detail))

    # -------------------------------------------------------------------------
    # The tick
    # -------------------------------------------------------------------------

    def tick(self, dt: float) -> VisualParams:
        self.total_age += dt

        raw = None if self._switching else self._slot.collect()
        if raw is not None:
            if self.energy.is_dormant:
                logger.debug("orchestrator.result_dropped_dormant")
            else:
                self._handle_inference_result(raw)

        if not self.energy.is_dormant:
            self.heartbeat.update(dt)
            self._reconcile_energy_state()

        if not self.energy.is_dormant:
            action = self._strategy_call("tick", dt)
            if action is not None:
                self._execute(action, source="reflex")

            if self._can_infer() and self._strategy_call("needs_inference"):
                self._start_inference()

        self._reconcile_energy_state()
        return self.visuals.update(dt, pulse=self.heartbeat.pulse, dimming=self.energy.dimming)

    def _strategy_call(self, method: str, *args: Any) -> Any:
        try:
            return getattr(self.strategy, method)(*args)
        except Exception:
            self.strategy_errors += 1
            logger.error(
                "orchestrator.strategy_error",
                strategy=self.strategy.name,
                method=method,
                exc_info=True,
            )
            return None

    def _on_phase_change(self, phase: HeartbeatPhase) -> None:
        if phase is HeartbeatPhase.SENSE:
            self.energy.metabolize(self.traits, self.level)
            if self.observed:
                self.energy.presence_bonus()
        self._strategy_call("on_heartbeat_phase", phase)

    # -------------------------------------------------------------------------
    # Inference
    # -------------------------------------------------------------------------

    def _context(self) -> InferenceContext:
        user_message = self._pending_user_message
        return InferenceContext(
            energy=self.energy.energy,
            traits=self.traits,
            user_message=user_message,
            memory_context=self.memory.build_memory_prompt(user_message, self.level),
            conversation_messages=self.conversation.build_conversation_messages(self.level),
        )

    def _start_inference(self) -> bool:
        messages = self._strategy_call("build_inference_prompt", self._context())
        if not messages:
            return False
        grammar = self._strategy_call("inference_grammar")
        options = get_profile(self.level).inference_options
        started = self._slot.submit(self._engine, messages, grammar, options)
        if started:
            self._pending_user_message = None
            logger.debug("orchestrator.inference_started", strategy=self.strategy.name)
        return started

    def _handle_inference_result(self, raw: str) -> None:
        self.inference_results += 1
        action = self._strategy_call("on_inference_result", raw)

        self.xp += 1
        new_level = check_level_up(self.xp, self.level)
        if new_level != self.level:
            self._apply_level(new_level)

        self.heartbeat.think_complete()

        if isinstance(action, Action):
            self.conversation.record_response(action.thought, action.name)
            self._execute(action, source="inference")

    def force_think(self) -> bool:
        """Start an inference call right now if the slot and engine allow."""
        if self.energy.is_dormant or not self._can_infer():
            return False
        return self._start_inference()

    def _can_infer(self) -> bool:
        return not self._switching and not self._slot.busy and self._engine.is_ready()

    @property
    def inference_busy(self) -> bool:
        return self._slot.busy

    async def wait_for_inference(self) -> None:
        """Wait until the in-flight call finishes; the next tick delivers it."""
        await self._slot.wait()

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def _execute(self, action: Action, source: str) -> bool:
        if action.name not in actions_for_level(self.level):
            action.name = self._repair.resolve_name(action.name, self.level)

        if not self.energy.spend_action(action.cost, self.traits):
            self.actions_skipped += 1
            logger.debug("orchestrator.action_unaffordable", action=action.name, source=source)
            return False

        self.actions_executed += 1
        entry = action.to_dict()
        entry["source"] = source
        entry["timestamp"] = self._wall_clock()
        self.action_history.append(entry)
        self.visuals.on_action(action)

        if source == "inference" or action.thought:
            content = f"{action.name}: {action.thought}" if action.thought else action.name
            self.memory.add_memory(MemoryType.ACTION, content, classify_emotion(action.thought))

        self._emit(CreatureActionEvent(
            action=action.name,
            intensity=action.intensity,
            source=source,
            thought=action.thought,
            direction=action.direction,
            color=action.color,
        ))
        return True

    # -------------------------------------------------------------------------
    # Energy and level
    # -------------------------------------------------------------------------

    def _reconcile_energy_state(self) -> None:
        state = self.energy.state
        if state is self._energy_state:
            return
        previous, self._energy_state = self._energy_state, state
        logger.info(
            "orchestrator.energy_state_changed",
            previous=previous.value,
            current=state.value,
            energy=round(self.energy.energy, 2),
        )
        if state is EnergyState.DORMANT:
            self.memory.add_memory(MemoryType.DORMANCY, "everything went dark and still")
        self._strategy_call("on_energy_state_change", state)
        self._emit(EnergyStateChangedEvent(
            previous=previous.value,
            current=state.value,
            energy=self.energy.energy,
        ))

    def _apply_level(self, level: int, manual: bool = False) -> None:
        level = max(0, min(level, MAX_LEVEL))
        self.level = level
        self.heartbeat.set_level(level)
        self.strategy.set_level(level)
        profile = get_profile(level)
        if not manual:
            self.memory.add_memory(MemoryType.LEVEL_UP, f"I grew into {profile.name}")
        logger.info("orchestrator.level_changed", level=level, name=profile.name, manual=manual)
        self._emit(LevelUpEvent(level=level, name=profile.name, xp=self.xp, manual=manual))

    # -------------------------------------------------------------------------
    # UI input
    # -------------------------------------------------------------------------

    def send_message(self, text: str) -> bool:
        text = (text or "").strip()
        if not text:
            return False
        if self.energy.wake():
            self.memory.add_memory(MemoryType.OBSERVATION, "a voice woke me")
            self._reconcile_energy_state()
        self._pending_user_message = text
        self.conversation.record_user_message(text)
        self.memory.add_memory(
            MemoryType.USER_INTERACTION,
            f"the observer said: {text}",
            classify_emotion(text),
        )
        self._strategy_call("on_user_message", text)
        self.heartbeat.trigger_reflex()
        return True

    def set_level(self, level: int) -> None:
        """Manual override; resets XP."""
        self.xp = 0
        self._apply_level(level, manual=True)

    def feed(self, amount: float) -> None:
        self.energy.wake()
        self.energy.feed(amount)
        self._reconcile_energy_state()

    def wake(self) -> bool:
        woke = self.energy.wake()
        self._reconcile_energy_state()
        return woke

    def set_energy(self, value: float) -> None:
        self.energy.energy = value
        self._reconcile_energy_state()

    def set_observed(self, observed: bool) -> None:
        self.observed = bool(observed)

    def set_strategy(self, name: str) -> None:
        self.strategy = self._build_strategy(name)
        logger.info("orchestrator.strategy_changed", strategy=name)

    def rebirth(self) -> None:
        """Start a new creature descended from this one."""
        self._slot.cancel()
        record = self._new_record(
            strategy=self.strategy.name,
            generation=self.generation + 1,
            parent_traits=self.traits.to_dict(),
        )
        self._adopt(record)
        logger.info("orchestrator.reborn", generation=self.generation)
        self._emit(CreatureRebornEvent(
            generation=self.generation,
            parent_traits=self.parent_traits or {},
        ))
        self.save()

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def _emit(self, event: TerrariumEvent) -> None:
        if self._bus is not None:
            self._bus.emit(event)

    @property
    def status(self) -> dict[str, Any]:
        profile = get_profile(self.level)
        return {
            "creature_id": self.creature_id,
            "generation": self.generation,
            "age": format_age(self.total_age),
            "level": self.level,
            "level_name": profile.name,
            "xp": self.xp,
            "energy": round(self.energy.energy, 2),
            "energy_state": self.energy.state.value,
            "strategy": self.strategy.name,
            "engine_status": self.engine_status,
            "heartbeat": self.heartbeat.to_dict(),
            "memory_size": self.memory.size,
            "conversation_exchanges": len(self.conversation),
            "actions_executed": self.actions_executed,
            "actions_skipped": self.actions_skipped,
            "inference_results": self.inference_results,
            "inference": self._slot.stats,
        }

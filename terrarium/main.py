"""
Terrarium — headless runner.

Runs one creature in the terminal for a while: the control loop ticks at the
configured rate, actions and thoughts are printed as they happen, and the
creature is saved on the way out so the next run picks up where this one left
off (minus whatever energy it burned while switched off).

    python -m terrarium.main --strategy layered --duration 300 -m "hello"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from typing import Optional

import structlog
from rich.console import Console
from rich.markup import escape as markup_escape
from rich.table import Table

from terrarium.api.engine import InferenceEngine
from terrarium.api.scripted import ScriptedInferenceEngine
from terrarium.config import TerrariumConfig
from terrarium.events import (
    CreatureActionEvent,
    CreatureRebornEvent,
    EnergyStateChangedEvent,
    EventBus,
    InferenceStatusEvent,
    LevelUpEvent,
)
from terrarium.orchestrator import Orchestrator
from terrarium.persistence import AutoSaver, JsonStateStore
from terrarium.strategies import STRATEGIES

_SENSITIVE_KEYS = ("content", "user_message", "thought", "text", "raw")
_MAX_DISPLAY_LEN = 60


def _truncate_sensitive_fields(logger, method_name, event_dict):
    """Keep observer text and generated thoughts short in log output."""
    for key in _SENSITIVE_KEYS:
        val = event_dict.get(key)
        if isinstance(val, str) and len(val) > _MAX_DISPLAY_LEN:
            event_dict[key] = val[:_MAX_DISPLAY_LEN] + "... [truncated]"
    return event_dict


_logging_configured = False


def configure_logging(level: str = "WARNING") -> None:
    """Configure structlog over stdlib logging. Later calls are no-ops."""
    global _logging_configured  # noqa: PLW0603
    if _logging_configured:
        return
    _logging_configured = True

    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.WARNING))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            _truncate_sensitive_fields,
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


logger = structlog.get_logger(__name__)
console = Console()


def build_engine(config: TerrariumConfig) -> InferenceEngine:
    if config.inference.backend == "anthropic":
        # Imported lazily so the scripted backend runs without network setup.
        from terrarium.api.anthropic_engine import AnthropicInferenceEngine

        return AnthropicInferenceEngine(config.inference)
    return ScriptedInferenceEngine.from_config(config.inference)


class TerrariumSession:
    """One headless run of the creature."""

    def __init__(
        self,
        config: TerrariumConfig,
        duration: float,
        messages: Optional[list[str]] = None,
        fresh: bool = False,
        observed: bool = True,
        strategy: Optional[str] = None,
    ):
        self._config = config
        self._strategy = strategy
        self._duration = duration
        self._messages = list(messages or [])
        self._fresh = fresh
        self._observed = observed
        self._bus = EventBus()

    # -------------------------------------------------------------------------
    # Event printing
    # -------------------------------------------------------------------------

    def _print_action(self, event: CreatureActionEvent) -> None:
        line = f"[cyan]{event.action}[/cyan] [dim]{event.intensity:.2f} ({event.source})[/dim]"
        if event.thought:
            line += f'  [italic]"{markup_escape(event.thought)}"[/italic]'
        console.print(line)

    def _print_level(self, event: LevelUpEvent) -> None:
        console.print(f"[bold magenta][EVOLUTION: {event.name} — level {event.level}][/bold magenta]")

    def _print_energy(self, event: EnergyStateChangedEvent) -> None:
        console.print(f"[yellow]energy {event.previous} → {event.current} ({event.energy:.1f})[/yellow]")

    def _print_status(self, event: InferenceStatusEvent) -> None:
        style = "red" if event.status == "error" else "dim"
        detail = f": {markup_escape(event.detail)}" if event.detail else ""
        console.print(f"[{style}]engine {event.status}{detail}[/{style}]")

    def _print_reborn(self, event: CreatureRebornEvent) -> None:
        console.print(f"[bold green]a new creature is born (generation {event.generation})[/bold green]")

    def _subscribe(self) -> None:
        self._bus.subscribe("creature.action", self._print_action)
        self._bus.subscribe("level.up", self._print_level)
        self._bus.subscribe("energy.state.changed", self._print_energy)
        self._bus.subscribe("inference.status", self._print_status)
        self._bus.subscribe("creature.reborn", self._print_reborn)

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        persistence = self._config.persistence
        store = JsonStateStore(
            persistence.state_file,
            offline_decay_per_second=self._config.energy.offline_decay_per_second,
        )
        if self._fresh:
            store.clear()

        self._subscribe()
        await self._bus.start()
        orchestrator = Orchestrator(
            engine=build_engine(self._config),
            config=self._config,
            store=store,
            event_bus=self._bus,
            strategy=self._strategy,
        )
        orchestrator.set_observed(self._observed)
        saver = AutoSaver(store, orchestrator.snapshot, interval=persistence.autosave_interval)

        console.print(
            f"[bold]creature[/bold] gen {orchestrator.generation} · "
            f"strategy {orchestrator.strategy.name} · energy {orchestrator.energy.energy:.1f}"
        )
        await orchestrator.load_engine()
        saver.start()
        logger.info("session.started", duration=self._duration, strategy=orchestrator.strategy.name)

        for message in self._messages:
            console.print(f"[green]> {markup_escape(message)}[/green]")
            orchestrator.send_message(message)

        interval = 1.0 / self._config.behavior.tick_rate
        started = last = time.monotonic()
        try:
            while time.monotonic() - started < self._duration:
                await asyncio.sleep(interval)
                now = time.monotonic()
                orchestrator.tick(now - last)
                last = now
        finally:
            await orchestrator.shutdown()
            await saver.stop()
            await self._bus.stop()
            self._print_summary(orchestrator)

    def _print_summary(self, orchestrator: Orchestrator) -> None:
        status = orchestrator.status
        table = Table(title="Creature", show_header=False)
        for key in (
            "generation", "age", "level_name", "xp", "energy", "energy_state",
            "strategy", "engine_status", "memory_size",
            "actions_executed", "actions_skipped", "inference_results",
        ):
            table.add_row(key, str(status[key]))
        console.print(table)


def main() -> None:
    """Entry point for the terrarium command."""
    parser = argparse.ArgumentParser(description="Terrarium — a headless synthetic creature")
    parser.add_argument(
        "--strategy",
        choices=sorted(STRATEGIES),
        default=None,
        help="Behavior strategy (overrides TERRARIUM_STRATEGY)",
    )
    parser.add_argument(
        "--backend",
        choices=["anthropic", "scripted"],
        default=None,
        help="Inference backend (overrides TERRARIUM_BACKEND)",
    )
    parser.add_argument("--duration", type=float, default=120.0, help="Seconds to run")
    parser.add_argument(
        "-m", "--message",
        action="append",
        default=[],
        help="Say something to the creature at start-up (repeatable)",
    )
    parser.add_argument("--fresh", action="store_true", help="Discard any saved creature")
    parser.add_argument("--unobserved", action="store_true", help="No presence bonus")
    args = parser.parse_args()

    config = TerrariumConfig()
    configure_logging(config.behavior.log_level)
    if args.backend:
        config.inference.backend = args.backend

    session = TerrariumSession(
        config,
        duration=args.duration,
        messages=args.message,
        fresh=args.fresh,
        observed=not args.unobserved,
        strategy=args.strategy,
    )
    try:
        asyncio.run(session.run())
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted. Exiting.[/dim]")


if __name__ == "__main__":
    main()

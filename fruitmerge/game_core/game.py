"""
Core Game
=========

Authoritative per-session simulation.

State lives in an explicit ``SessionState`` record. ``Simulation`` holds the
frozen rules (physics, merging, scoring, termination) and exposes step
functions that operate on a state passed in together with the clock value,
so a test can build any state, feed it one input and inspect the outcome.
``GameEngine`` binds one state to a clock for the session host.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import random
import time

from fruitmerge.errors import SessionOver, TooFast
from fruitmerge.game_core.config_loader import GameConfig, get_config
from fruitmerge.game_core.fruit_catalog import FruitCatalog, get_catalog
from fruitmerge.game_core.merge_system import MergeEvent, MergeSystem, new_uid
from fruitmerge.game_core.physics_world import FruitBody, PhysicsWorld
from fruitmerge.game_core.rng import SpawnQueue
from fruitmerge.game_core.rules import GameRules, REASON_MANUAL
from fruitmerge.game_core.scoring import BASELINE_MULTIPLIER, ScoreTracker
from fruitmerge.game_core.state_snapshot import GameSnapshot, SnapshotBuilder


@dataclass(frozen=True)
class DropInput:
    """
    One accepted drop, as recorded in the input log.

    Attributes:
        x: Normalized horizontal position in [0, 1].
        timestamp: Client timestamp in seconds (engine clock if the client
            sent none).
        tier: Tier assigned by the spawn queue.
        received_at: Engine clock when the drop was accepted.
    """
    x: float
    timestamp: float
    tier: Optional[int] = None
    received_at: Optional[float] = None


@dataclass
class SessionState:
    """Complete mutable state of one play session."""
    seed: int
    started_at: float
    duration: float
    spawn_queue: SpawnQueue
    loadout: Dict[int, str] = field(default_factory=dict)
    fruits: List[FruitBody] = field(default_factory=list)
    score: int = 0
    merge_count: int = 0
    multiplier: int = BASELINE_MULTIPLIER
    last_merge_at: Optional[float] = None
    overflow_since: Optional[float] = None
    last_drop_at: Optional[float] = None
    terminal: bool = False
    terminal_reason: str = ""
    ended_at: Optional[float] = None
    inputs: List[DropInput] = field(default_factory=list)


@dataclass(frozen=True)
class StepResult:
    """Result of one accepted drop (spawn + sub-iterations)."""
    snapshot: GameSnapshot
    merges: Tuple[MergeEvent, ...]
    terminated: bool
    termination_reason: str
    delta_score: int
    dropped_tier: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.snapshot.to_dict(),
            "merge_events": [m.to_dict() for m in self.merges],
        }


class Simulation:
    """
    Rule set shared by every session of a deployment.

    Orchestrates:
    - Spawn position and throttle rules
    - Physics sub-iterations
    - Merge detection and resolution
    - Multiplier scoring
    - Overflow and session clock termination
    - Snapshots
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        catalog: Optional[FruitCatalog] = None
    ):
        """
        Initialize the rule set.

        Args:
            config: Game configuration. Uses default if None.
            catalog: Fruit catalog. Uses the shared catalog if None.
        """
        if config is None:
            config = get_config()
        if catalog is None:
            catalog = get_catalog(config)

        self._config = config
        self._catalog = catalog
        self._physics = PhysicsWorld(config)
        self._scorer = ScoreTracker(config, catalog)
        self._merger = MergeSystem(self._physics, self._scorer, config, catalog)
        self._rules = GameRules(self._physics, config)
        self._snapshot_builder = SnapshotBuilder(catalog, self._rules, self._scorer)

    @property
    def config(self) -> GameConfig:
        return self._config

    @property
    def catalog(self) -> FruitCatalog:
        return self._catalog

    @property
    def physics(self) -> PhysicsWorld:
        return self._physics

    @property
    def merger(self) -> MergeSystem:
        return self._merger

    @property
    def rules(self) -> GameRules:
        return self._rules

    def new_state(
        self,
        seed: int,
        started_at: float,
        loadout: Optional[Mapping[int, str]] = None
    ) -> SessionState:
        """Fresh Active state for a session starting at ``started_at``."""
        return SessionState(
            seed=seed,
            started_at=started_at,
            duration=self._config.rules.session_duration,
            spawn_queue=SpawnQueue(self._config, seed),
            loadout=dict(loadout or {})
        )

    def make_fruit(
        self,
        state: SessionState,
        tier: int,
        x: float,
        y: float,
        now: float,
        velocity: Tuple[float, float] = (0.0, 0.0)
    ) -> FruitBody:
        """Create a fruit of ``tier`` (with the loadout skin) and add it to the world."""
        fruit = FruitBody(
            uid=new_uid(),
            tier=tier,
            x=x,
            y=y,
            vx=velocity[0],
            vy=velocity[1],
            radius=self._catalog.radius(tier),
            created_at=now,
            skin_id=state.loadout.get(tier)
        )
        state.fruits.append(fruit)
        return fruit

    def terminate(self, state: SessionState, reason: str, now: float) -> None:
        """Move the state to Terminal. No-op when already terminal."""
        if state.terminal:
            return
        state.terminal = True
        state.terminal_reason = reason
        state.ended_at = now

    def apply_clock(self, state: SessionState, now: float) -> None:
        """
        Apply time-driven transitions: multiplier decay, confirmed overflow
        and session expiry.
        """
        if state.terminal:
            return
        state.multiplier = self._scorer.current_multiplier(
            state.multiplier, state.last_merge_at, now
        )
        result = self._rules.termination.check_termination(state, now)
        if result.terminated:
            self.terminate(state, result.reason, now)

    def step_world(self, state: SessionState, now: float) -> List[MergeEvent]:
        """
        Run the configured number of sub-iterations.

        Each sub-iteration integrates, resolves walls, scans pairs for
        collisions and merges, then updates the overflow timer.

        Returns:
            Merge events in the order they happened.
        """
        termination = self._rules.termination
        events: List[MergeEvent] = []

        for _ in range(self._config.physics.substeps):
            self._physics.step_bodies(state.fruits)
            events.extend(self._merger.resolve(state, now))
            termination.update_overflow_timer(state, now)
            if termination.overflow_confirmed(state, now):
                break

        return events

    def submit_drop(
        self,
        state: SessionState,
        x: float,
        now: float,
        client_timestamp: Optional[float] = None
    ) -> StepResult:
        """
        Validate and apply one drop.

        Args:
            state: Session state to mutate.
            x: Normalized drop position in [0, 1].
            now: Engine clock.
            client_timestamp: Client-reported time of the drop, in seconds.

        Returns:
            StepResult with the new snapshot and merge events.

        Raises:
            InvalidInput: Malformed or out-of-range position.
            SessionOver: The session is terminal.
            TooFast: Minimum drop interval not yet elapsed.
        """
        x = self._rules.spawn.validate_x(x)
        if client_timestamp is not None:
            client_timestamp = self._rules.validate_timestamp(client_timestamp)

        self.apply_clock(state, now)
        if state.terminal:
            raise SessionOver(state.terminal_reason)

        wait = self._rules.throttle_wait(state, now)
        if wait > 0.0:
            raise TooFast(wait)

        score_before = state.score
        queue = state.spawn_queue
        fruit_tier = self._catalog[queue.next_tier]

        spawn_x = self._rules.spawn.input_to_spawn_x(x, fruit_tier)
        self.make_fruit(state, fruit_tier.id, spawn_x, self._rules.spawn.spawn_y, now)
        queue.advance()
        state.last_drop_at = now

        timestamp = now if client_timestamp is None else client_timestamp
        state.inputs.append(DropInput(
            x=x,
            timestamp=timestamp,
            tier=fruit_tier.id,
            received_at=now
        ))

        merges = self.step_world(state, now)

        result = self._rules.termination.check_termination(state, now)
        if result.terminated:
            self.terminate(state, result.reason, now)

        return StepResult(
            snapshot=self.snapshot(state, now),
            merges=tuple(merges),
            terminated=state.terminal,
            termination_reason=state.terminal_reason,
            delta_score=state.score - score_before,
            dropped_tier=fruit_tier.id
        )

    def snapshot(self, state: SessionState, now: float) -> GameSnapshot:
        """Read-only snapshot of ``state`` at ``now``."""
        return self._snapshot_builder.build(state, now)


def generate_seed() -> int:
    """Fresh 32-bit session seed from the OS entropy pool."""
    return random.SystemRandom().randrange(2 ** 32)


class GameEngine:
    """
    One session's authoritative simulation bound to a clock.

    Not thread-safe by itself; the session host serializes calls per
    session.
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        seed: Optional[int] = None,
        loadout: Optional[Mapping[int, str]] = None,
        clock: Optional[Callable[[], float]] = None,
        simulation: Optional[Simulation] = None
    ):
        """
        Initialize a session.

        Args:
            config: Game configuration. Uses default if None.
            seed: Spawn queue seed. Drawn from the OS if None.
            loadout: Tier -> cosmetic skin id, passed through untouched.
            clock: Seconds clock. Defaults to ``time.time``.
            simulation: Shared rule set. Built from config if None.
        """
        if simulation is None:
            simulation = Simulation(config)
        if seed is None:
            seed = generate_seed()

        self._sim = simulation
        self._clock = clock if clock is not None else time.time
        self._state = simulation.new_state(seed, self._clock(), loadout)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def simulation(self) -> Simulation:
        return self._sim

    @property
    def seed(self) -> int:
        return self._state.seed

    @property
    def score(self) -> int:
        return self._state.score

    @property
    def started_at(self) -> float:
        return self._state.started_at

    @property
    def is_over(self) -> bool:
        return self._state.terminal

    @property
    def termination_reason(self) -> str:
        return self._state.terminal_reason

    def submit_input(self, x: float, client_timestamp: Optional[float] = None) -> StepResult:
        """Apply one drop at the current clock time."""
        return self._sim.submit_drop(self._state, x, self._clock(), client_timestamp)

    def get_snapshot(self) -> GameSnapshot:
        """Snapshot as seen now."""
        return self._sim.snapshot(self._state, self._clock())

    def get_input_log(self) -> Tuple[DropInput, ...]:
        """Accepted drops in arrival order."""
        return tuple(self._state.inputs)

    def refresh(self) -> None:
        """Apply clock-driven transitions (expiry, confirmed overflow)."""
        self._sim.apply_clock(self._state, self._clock())

    def terminate(self, reason: str = REASON_MANUAL) -> None:
        """Force the session to Terminal."""
        self._sim.terminate(self._state, reason, self._clock())

    def purge(self) -> None:
        """Drop all fruits once the session has ended."""
        if self._state.terminal:
            self._state.fruits.clear()

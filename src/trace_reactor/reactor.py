# reactor.py
# Trace-driven model-based testing engine.
#
# The Reactor is the kernel. Handlers are passive; this class owns all
# control flow, dispatch, invariant bookkeeping and failure reporting. It
# never reads trace payload beyond the dispatch tag.
#
# Control flow:
#   trace[0] → init → boolean invariants → state-invariant baselines
#   → per-state tag extraction → dispatch (step | sequence)
#   → boolean invariants → state invariants vs. baseline → report
#
# All diagnostic output is delegated to the observer. No formatting here.

import copy
import json
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from trace_reactor.models import (
    Checkpoint,
    FailureInfo,
    InvariantKind,
    Phase,
    PhaseEvent,
    RunReport,
    RunStatus,
)
from trace_reactor.state import State, as_state, extract_tag

M = TypeVar("M")

Observer = Callable[[PhaseEvent], None]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ReactorError(Exception):
    """
    Base class for every engine failure. Always fatal to the run.

    The runner stamps the trace position onto the error as it propagates;
    fields set closer to the failure are never overwritten.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.index: int | None = None
        self.tag: str | None = None
        self.phase: Phase | None = None

    def locate(self, index: int, tag: str, phase: Phase) -> None:
        if self.index is None:
            self.index = index
        if self.tag is None:
            self.tag = tag
        if self.phase is None:
            self.phase = phase

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        phase = self.phase.value if self.phase else "?"
        return f"{self.message} [index={self.index} tag={self.tag!r} phase={phase}]"


class RegistrationError(ReactorError):
    """Raised when a tag is registered twice or a sequence names an unknown tag."""


class EmptyTraceError(ReactorError):
    """Raised before any handler runs when the trace has no states."""

    def __init__(self) -> None:
        super().__init__("Trace is empty. Nothing to replay.")


class TagExtractionError(ReactorError):
    """Raised when the tag path does not resolve to a scalar in a state."""

    def __init__(self, index: int, path: str) -> None:
        super().__init__(f"No dispatch tag at path {path!r} in state {index}.")
        self.path = path
        self.index = index


class UnregisteredTagError(ReactorError):
    """Raised when a dispatch target is absent from the registry."""

    def __init__(self, tag: str) -> None:
        super().__init__(f"tag: {tag} is not registered.")
        self.unregistered = tag


class CyclicSequenceError(ReactorError):
    """Raised when sequence expansion re-enters a tag already being expanded."""

    def __init__(self, chain: Sequence[str]) -> None:
        super().__init__(f"Sequence expansion does not terminate: {' -> '.join(chain)}.")
        self.chain = list(chain)


class StepFailure(ReactorError):
    """
    Wraps an exception raised by a user handler. The cause is chained.

    `handler_tag` names the handler that raised: a step tag (possibly a
    sub-tag of a sequence), an invariant name, or the init function.
    `tag` is the trace-level tag, stamped by the runner.
    """

    def __init__(
        self,
        handler_tag: str,
        cause: BaseException,
        phase: Phase,
        index: int | None = None,
        tag: str | None = None,
    ) -> None:
        super().__init__(f"{phase.value} handler for {handler_tag!r} raised {type(cause).__name__}: {cause}")
        self.cause = cause
        self.handler_tag = handler_tag
        self.phase = phase
        self.index = index
        self.tag = tag


class InvariantViolation(ReactorError):
    """Raised when a boolean invariant is falsy or a state invariant drifts from its baseline."""

    def __init__(
        self,
        kind: InvariantKind,
        index: int,
        tag: str,
        name: str,
        baseline: Any = None,
        current: Any = None,
    ) -> None:
        if kind is InvariantKind.BOOLEAN:
            message = f"Boolean invariant {name!r} does not hold (returned {current!r})."
            phase = Phase.INVARIANT
        else:
            message = (
                f"State invariant {name!r} diverged from its baseline.\n"
                f"  baseline: {_render(baseline)}\n"
                f"  current:  {_render(current)}"
            )
            phase = Phase.INVARIANT_STATE
        super().__init__(message)
        self.kind = kind
        self.index = index
        self.tag = tag
        self.phase = phase
        self.name = name
        self.baseline = baseline
        self.current = current


class TraceFormatError(ReactorError):
    """Raised when a trace document cannot be read or does not match the schema."""


# ---------------------------------------------------------------------------
# Registry entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StepEntry:
    handler: Callable[..., Any]
    with_tag: bool = False


@dataclass(frozen=True)
class SequenceEntry:
    tags: tuple[str, ...]


@dataclass(frozen=True)
class Invariant:
    name: str
    func: Callable[[Any, State], Any]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _render(value: Any) -> str:
    """Serialize an invariant value for diagnostics. Never raises."""
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(value)


def _invoke(
    func: Callable[..., Any],
    args: tuple,
    *,
    handler_tag: str,
    phase: Phase,
    index: int | None = None,
    tag: str | None = None,
) -> Any:
    """Call a user handler. Engine errors pass through; anything else becomes a StepFailure."""
    try:
        return func(*args)
    except ReactorError:
        raise
    except Exception as exc:
        raise StepFailure(handler_tag, exc, phase, index, tag) from exc


def _failure_info(exc: ReactorError) -> FailureInfo:
    kind = getattr(exc, "kind", None)
    return FailureInfo(
        error=type(exc).__name__,
        message=str(exc),
        index=exc.index,
        tag=exc.tag,
        phase=exc.phase,
        handler=getattr(exc, "handler_tag", None),
        kind=kind,
        invariant=getattr(exc, "name", None),
        baseline=getattr(exc, "baseline", None),
        current=getattr(exc, "current", None),
    )


def _callable_name(func: Callable[..., Any]) -> str:
    return getattr(func, "__name__", None) or repr(func)


# ---------------------------------------------------------------------------
# Reactor
# ---------------------------------------------------------------------------


class Reactor(Generic[M]):
    """
    Replays a trace against a model, checking invariants after every step.

    Example:
        reactor = Reactor("tag", init_bank)
        reactor.register("deposit", deposit)
        reactor.register("transfer", transfer)
        reactor.register_sequence("deposit_then_transfer", ["deposit", "transfer"])
        reactor.register_invariant(positive_balance)
        reactor.register_invariant_state(total_supply)
        reactor.test(states)
    """

    def __init__(
        self,
        tag_path: str,
        init: Callable[[State], M],
        *,
        observer: Observer | None = None,
        dispatch_initial: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not callable(init):
            raise TypeError("init must be callable.")
        self._tag_path = tag_path
        self._init = init
        self._observer = observer
        self._dispatch_initial = dispatch_initial
        self._clock = clock
        self._entries: dict[str, StepEntry | SequenceEntry] = {}
        self._invariants: list[Invariant] = []
        self._state_invariants: list[Invariant] = []

    @classmethod
    def with_factory(cls, tag_path: str, factory: Callable[[], M], **kwargs: Any) -> "Reactor[M]":
        """
        Build the model from a zero-argument factory instead of the first state.

        The first state's tag is dispatched as well, since nothing else
        consumes it.
        """
        kwargs.setdefault("dispatch_initial", True)
        return cls(tag_path, lambda _state: factory(), **kwargs)

    @property
    def tag_path(self) -> str:
        return self._tag_path

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _claim(self, tag: str, replace: bool) -> None:
        if not isinstance(tag, str):
            raise TypeError(f"Tags must be strings, got {type(tag).__name__}.")
        if tag in self._entries and not replace:
            raise RegistrationError(f"tag: {tag} is already registered. Pass replace=True to overwrite.")

    def register(
        self,
        tag: str,
        handler: Callable[..., Any],
        *,
        with_tag: bool = False,
        replace: bool = False,
    ) -> None:
        """
        Register a step handler for `tag`.

        The handler is called as handler(model, state), or
        handler(model, state, tag) when `with_tag` is set.
        """
        if not callable(handler):
            raise TypeError(f"Handler for {tag!r} is not callable.")
        self._claim(tag, replace)
        self._entries[tag] = StepEntry(handler, with_tag)

    def register_sequence(self, tag: str, tags: Iterable[str], *, replace: bool = False) -> None:
        """
        Register `tag` as shorthand for running `tags` in order.

        Every sub-tag must already be registered. Checked here, not at
        dispatch time.
        """
        tags = tuple(tags)
        self._claim(tag, replace)
        missing = [t for t in tags if t not in self._entries]
        if missing:
            raise RegistrationError(
                f"Sequence {tag!r} references unregistered tag(s): {', '.join(map(repr, missing))}."
            )
        chain = self._find_cycle(tag, tags)
        if chain:
            raise CyclicSequenceError(chain)
        self._entries[tag] = SequenceEntry(tags)

    def _find_cycle(self, tag: str, tags: tuple[str, ...]) -> list[str] | None:
        """Path from `tag` back to itself through the registry, if the new entry would create one."""
        stack: list[tuple[str, list[str]]] = [(t, [tag, t]) for t in reversed(tags)]
        seen: set[str] = set()
        while stack:
            current, path = stack.pop()
            if current == tag:
                return path
            if current in seen:
                continue
            seen.add(current)
            entry = self._entries.get(current)
            if isinstance(entry, SequenceEntry):
                stack.extend((t, path + [t]) for t in reversed(entry.tags))
        return None

    def register_invariant(self, func: Callable[[M, State], bool], *, name: str | None = None) -> None:
        """Register a predicate that must hold at the initial state and after every step."""
        if not callable(func):
            raise TypeError("Invariant must be callable.")
        self._invariants.append(Invariant(name or _callable_name(func), func))

    def register_invariant_state(self, func: Callable[[M, State], Any], *, name: str | None = None) -> None:
        """Register a derived value that must equal its initial-state value for the whole run."""
        if not callable(func):
            raise TypeError("State invariant must be callable.")
        self._state_invariants.append(Invariant(name or _callable_name(func), func))

    # Decorator forms

    def step(self, tag: str, *, with_tag: bool = False, replace: bool = False) -> Callable:
        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.register(tag, func, with_tag=with_tag, replace=replace)
            return func

        return decorator

    def invariant(self, func: Callable | None = None, *, name: str | None = None) -> Callable:
        def decorator(f: Callable) -> Callable:
            self.register_invariant(f, name=name)
            return f

        return decorator(func) if func is not None else decorator

    def invariant_state(self, func: Callable | None = None, *, name: str | None = None) -> Callable:
        def decorator(f: Callable) -> Callable:
            self.register_invariant_state(f, name=name)
            return f

        return decorator(func) if func is not None else decorator

    def registered_tags(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, tag: object) -> bool:
        return tag in self._entries

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def execute(self, model: M, tag: str, state: State, *, _chain: tuple[str, ...] = ()) -> None:
        """
        Apply the transition named by `tag` to `model`.

        Sequences expand recursively in declared order and stop at the first
        failure. Raises UnregisteredTagError for unknown tags and
        CyclicSequenceError when expansion re-enters a tag on its own chain.
        """
        entry = self._entries.get(tag)
        if entry is None:
            raise UnregisteredTagError(tag)

        if isinstance(entry, StepEntry):
            args = (model, state, tag) if entry.with_tag else (model, state)
            _invoke(entry.handler, args, handler_tag=tag, phase=Phase.STEP)
            return

        if tag in _chain:
            raise CyclicSequenceError([*_chain, tag])
        for sub_tag in entry.tags:
            self.execute(model, sub_tag, state, _chain=(*_chain, tag))

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def _check_invariants(
        self,
        model: M,
        state: State,
        index: int,
        tag: str,
        baselines: list[Any] | None,
        started: float,
        report: RunReport,
    ) -> list[Any]:
        """
        Evaluate every invariant at one checkpoint.

        With `baselines` None this is the initial checkpoint: state invariant
        values are recorded and returned as the baselines for the run.
        """
        checkpoint = Checkpoint(index=index, tag=tag)
        report.checkpoints.append(checkpoint)

        for inv in self._invariants:
            self._emit(started, index, tag, Phase.INVARIANT, inv.name)
            held = _invoke(inv.func, (model, state), handler_tag=inv.name, phase=Phase.INVARIANT, index=index, tag=tag)
            checkpoint.booleans.append(bool(held))
            if not held:
                raise InvariantViolation(InvariantKind.BOOLEAN, index, tag, inv.name, current=held)

        seeding = baselines is None
        recorded: list[Any] = [] if seeding else baselines
        for position, inv in enumerate(self._state_invariants):
            self._emit(started, index, tag, Phase.INVARIANT_STATE, inv.name)
            value = _invoke(
                inv.func, (model, state), handler_tag=inv.name, phase=Phase.INVARIANT_STATE, index=index, tag=tag
            )
            # Copies keep later model mutation out of the recorded values.
            checkpoint.state_values.append(copy.deepcopy(value))
            if seeding:
                recorded.append(copy.deepcopy(value))
            elif value != recorded[position]:
                raise InvariantViolation(
                    InvariantKind.STATE,
                    index,
                    tag,
                    inv.name,
                    baseline=recorded[position],
                    current=copy.deepcopy(value),
                )
        return recorded

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    def _emit(self, started: float, index: int, tag: str, phase: Phase, detail: str = "") -> None:
        if self._observer is None:
            return
        self._observer(
            PhaseEvent(index=index, tag=tag, phase=phase, elapsed=self._clock() - started, detail=detail)
        )

    def _tag_of(self, state: State, index: int) -> str:
        tag = extract_tag(state, self._tag_path)
        if tag is None:
            raise TagExtractionError(index, self._tag_path)
        return tag

    def _replay(self, trace: Iterable[State | Mapping[str, Any]], report: RunReport) -> None:
        raw = list(trace)
        report.states = len(raw)
        started = self._clock()
        index, tag, phase = 0, "", Phase.INIT

        try:
            states: list[State] = []
            for index, element in enumerate(raw):
                try:
                    states.append(as_state(element))
                except TypeError as exc:
                    raise TraceFormatError(f"State {index} is not a mapping ({type(element).__name__}).") from exc
            index = 0

            if not states:
                raise EmptyTraceError()

            # ── Initializing ─────────────────────────────────────────────
            first = states[0]
            tag = extract_tag(first, self._tag_path) or ""
            self._emit(started, index, tag, Phase.INIT)
            model = _invoke(
                self._init, (first,), handler_tag=_callable_name(self._init), phase=Phase.INIT, index=index, tag=tag
            )

            if self._dispatch_initial:
                phase = Phase.STEP
                tag = self._tag_of(first, index)
                self._emit(started, index, tag, Phase.STEP)
                self.execute(model, tag, first)

            baselines = self._check_invariants(model, first, index, tag, None, started, report)

            # ── Running(i) → InvariantChecking(i) ───────────────────────
            for index in range(1, len(states)):
                state = states[index]
                phase, tag = Phase.STEP, ""
                tag = self._tag_of(state, index)
                self._emit(started, index, tag, Phase.STEP)
                self.execute(model, tag, state)
                report.steps_executed += 1
                self._check_invariants(model, state, index, tag, baselines, started, report)

        except ReactorError as exc:
            exc.locate(index, tag, phase)
            report.elapsed = self._clock() - started
            self._emit(started, index, tag, Phase.FAILED, str(exc))
            raise

        report.elapsed = self._clock() - started
        self._emit(started, index, tag, Phase.COMPLETED)

    def test(self, trace: Iterable[State | Mapping[str, Any]]) -> RunReport:
        """
        Replay `trace` and raise the first ReactorError.

        Intended for use inside test functions: a failing run fails the test
        with full positional context in the message.
        """
        report = RunReport()
        self._replay(trace, report)
        return report

    def run(self, trace: Iterable[State | Mapping[str, Any]]) -> RunReport:
        """
        Replay `trace` and return a RunReport in all cases.

        Engine failures are recorded on the report instead of raised.
        """
        report = RunReport()
        try:
            self._replay(trace, report)
        except ReactorError as exc:
            report.status = RunStatus.FAILED
            report.failure = _failure_info(exc)
        return report

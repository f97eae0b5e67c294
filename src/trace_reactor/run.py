# run.py
# Entry point. Config and wiring only. No logic lives here.
#
# Replays traces against the reference bank model. Point MBT_TRACE_PATH at a
# trace document to replay it instead of the built-in traces.

from trace_reactor import display
from trace_reactor.bank import build_reactor
from trace_reactor.config import ReactorConfig
from trace_reactor.trace import load_trace

TRACES = {
    # Conserving: transfers and a paired withdraw/deposit keep supply at 150.
    "conserving": [
        {"tag": "init", "balances": {"A": 100, "B": 50}},
        {"tag": "transfer", "from": "A", "to": "B", "amount": 20},
        {"tag": "transfer", "from": "B", "to": "A", "amount": 70},
        {"tag": "withdraw_then_deposit", "account": "A", "amount": 10},
    ],
    # Diverging: mint raises total supply at index 2; the run halts there.
    "diverging": [
        {"tag": "init", "balances": {"A": 100, "B": 50}},
        {"tag": "transfer", "from": "A", "to": "B", "amount": 20},
        {"tag": "mint", "account": "B", "amount": 20},
        {"tag": "transfer", "from": "B", "to": "A", "amount": 5},
    ],
    # Unregistered: "burn" has no handler.
    "unregistered": [
        {"tag": "init", "balances": {"A": 100}},
        {"tag": "burn", "account": "A", "amount": 1},
    ],
}


def main() -> None:
    config = ReactorConfig.from_env()
    observer = display.ConsoleObserver(quiet=config.quiet)
    reactor = build_reactor(config.tag_path, observer=observer)

    if config.trace_path:
        traces = {
            config.trace_path: load_trace(config.trace_path, key=config.trace_key, decode_itf=config.decode_itf)
        }
    else:
        traces = TRACES

    for name, trace in traces.items():
        display.run_started(f"{reactor.tag_path} ({name})", len(trace))
        report = reactor.run(trace)
        display.run_report(report)


if __name__ == "__main__":
    main()

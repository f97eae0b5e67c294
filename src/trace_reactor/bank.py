# bank.py
# Reference model: a toy bank replayed from a trace.
#
# Used by run.py and the tests. Each function matches one of the reactor's
# collaborator contracts; build_reactor() wires them together.

from trace_reactor.reactor import Observer, Reactor
from trace_reactor.state import State


class InsufficientFunds(Exception):
    """Raised when a withdrawal or transfer exceeds the source balance."""


class UnknownAccount(Exception):
    """Raised when a state names an account the bank does not hold."""


class Bank:
    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self.balances: dict[str, int] = dict(balances or {})

    def _account(self, name: str) -> int:
        if name not in self.balances:
            raise UnknownAccount(name)
        return self.balances[name]

    def deposit(self, account: str, amount: int) -> None:
        self.balances[account] = self._account(account) + amount

    def withdraw(self, account: str, amount: int) -> None:
        balance = self._account(account)
        if balance < amount:
            raise InsufficientFunds(f"{account} holds {balance}, cannot withdraw {amount}")
        self.balances[account] = balance - amount

    def transfer(self, source: str, target: str, amount: int) -> None:
        self._account(target)
        self.withdraw(source, amount)
        self.deposit(target, amount)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def init_bank(state: State) -> Bank:
    return Bank(state.get("balances", {}))


def deposit(bank: Bank, state: State) -> None:
    bank.deposit(state["account"], state["amount"])


def withdraw(bank: Bank, state: State) -> None:
    bank.withdraw(state["account"], state["amount"])


def transfer(bank: Bank, state: State) -> None:
    bank.transfer(state["from"], state["to"], state["amount"])


def mint(bank: Bank, state: State) -> None:
    """Deposit without a matching withdrawal. Breaks supply conservation."""
    bank.deposit(state["account"], state["amount"])


def positive_balances(bank: Bank, _state: State) -> bool:
    return all(balance >= 0 for balance in bank.balances.values())


def total_supply(bank: Bank, _state: State) -> dict[str, int]:
    return {"total_supply": sum(bank.balances.values())}


def build_reactor(tag_path: str = "tag", observer: Observer | None = None) -> Reactor[Bank]:
    """Reactor with the bank handlers and both invariants registered."""
    reactor: Reactor[Bank] = Reactor(tag_path, init_bank, observer=observer)
    reactor.register("deposit", deposit)
    reactor.register("withdraw", withdraw)
    reactor.register("transfer", transfer)
    reactor.register("mint", mint)
    reactor.register_sequence("withdraw_then_deposit", ["withdraw", "deposit"])
    reactor.register_invariant(positive_balances)
    reactor.register_invariant_state(total_supply)
    return reactor

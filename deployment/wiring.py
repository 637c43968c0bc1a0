from typing import NamedTuple

import click

from deployment.constants import (
    FUNDING_METHOD,
    STRATEGY_BALANCE_VIEW,
    STRATEGY_FUNDING_AMOUNT,
    TOKEN_BALANCE_VIEW,
)
from deployment.params import Transactor
from deployment.registry import DeployedContract


class BalanceReport(NamedTuple):
    """The strategy balance as seen by the strategy itself (public) and by the token (private)."""

    public: int
    private: int

    @property
    def consistent(self) -> bool:
        return self.public == self.private


def read_strategy_balances(
    transactor: Transactor, token: DeployedContract, strategy: DeployedContract
) -> BalanceReport:
    public = transactor.call(strategy, STRATEGY_BALANCE_VIEW)
    print("Public Strategy balance:", public)
    private = transactor.call(token, TOKEN_BALANCE_VIEW, strategy.address)
    print("Private Strategy balance:", private)
    return BalanceReport(public=public, private=private)


def fund_strategy(
    transactor: Transactor,
    token: DeployedContract,
    strategy: DeployedContract,
    amount: int = STRATEGY_FUNDING_AMOUNT,
) -> BalanceReport:
    """
    Mints amount tokens to the strategy from the deployer, then reads the strategy
    balance through both views. Neither view is treated as authoritative; a
    divergence is reported as a warning.
    """
    transactor.transact(token, FUNDING_METHOD, strategy.address, amount)
    print("Transferred", amount, "to", strategy.name)

    report = read_strategy_balances(transactor, token=token, strategy=strategy)
    if not report.consistent:
        click.secho(
            f"WARNING: {strategy.name} balance views disagree - "
            f"{strategy.name}.{STRATEGY_BALANCE_VIEW}() returned {report.public}, "
            f"{token.name}.{TOKEN_BALANCE_VIEW}({strategy.address}) returned {report.private}.",
            fg="yellow",
            err=True,
        )
    return report

"""
Balance checks gating on-chain IBC setup.
"""

import asyncio
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

import structlog

from .chain import ChainClient
from .errors import InsufficientFunds, InvalidGasPrice
from .models import ChainConfig, Coin

logger = structlog.get_logger()

# Gas units budgeted for creating clients, a connection and a channel.
IBC_SETUP_GAS = 2_256_000

_GAS_PRICE_RE = re.compile(r"^(\d+(?:\.\d+)?)([a-zA-Z][a-zA-Z0-9/:._-]{2,127})$")


@dataclass(frozen=True)
class GasPrice:
    """Gas price split into a decimal amount and a denom."""

    amount: Decimal
    denom: str

    @classmethod
    def parse(cls, value: str) -> "GasPrice":
        """
        Parse a gas price string such as ``0.025uatom``.

        Uses Decimal so that ``0.025 * 2256000`` is exactly 56400.
        """
        match = _GAS_PRICE_RE.match(value.strip()) if value else None
        if match is None:
            raise InvalidGasPrice(value)
        try:
            amount = Decimal(match.group(1))
        except InvalidOperation as e:
            raise InvalidGasPrice(value) from e
        return cls(amount=amount, denom=match.group(2))


def format_amount(amount: Decimal) -> str:
    """Render an amount without exponent notation or trailing zeros."""
    if amount == amount.to_integral_value():
        return str(int(amount))
    return format(amount.normalize(), "f")


class BalanceGuard:
    """Checks that a chain account can pay for IBC setup."""

    def __init__(
        self,
        client: ChainClient,
        ibc_setup_gas: int = IBC_SETUP_GAS,
        request_timeout: Optional[float] = None,
    ):
        self.client = client
        self.ibc_setup_gas = ibc_setup_gas
        self.request_timeout = request_timeout

    def required_amount(self, chain: ChainConfig) -> tuple[Decimal, str]:
        """Minimum balance and its denom for ``chain``."""
        gas_price = GasPrice.parse(chain.gas_price)
        return gas_price.amount * self.ibc_setup_gas, gas_price.denom

    def insufficient_balance_error(self, chain: ChainConfig) -> InsufficientFunds:
        required, denom = self.required_amount(chain)
        return InsufficientFunds(chain.chain_id, format_amount(required), denom)

    async def get_balance(self, chain: ChainConfig, mnemonic: Optional[str] = None) -> list[Coin]:
        """Query all balances of the relayer account on ``chain``."""
        return await asyncio.wait_for(
            self.client.query_balance(chain, mnemonic),
            timeout=self.request_timeout,
        )

    async def check_sufficient_balance(
        self, chain: ChainConfig, mnemonic: Optional[str] = None
    ) -> bool:
        """
        True iff the account holds at least the setup minimum in the gas denom.

        A missing balance entry for the gas denom counts as insufficient.
        """
        required, denom = self.required_amount(chain)
        coins = await self.get_balance(chain, mnemonic)

        balance = next((coin for coin in coins if coin.denom == denom), None)
        sufficient = balance is not None and Decimal(balance.amount) >= required

        logger.debug(
            "balance_checked",
            chain_id=chain.chain_id,
            denom=denom,
            balance=balance.amount if balance else None,
            required=format_amount(required),
            sufficient=sufficient,
        )
        return sufficient

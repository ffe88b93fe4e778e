"""
health.py - Valuation and health-factor arithmetic

Pure functions with every input explicit: no ledger, no oracle, no hidden
state. The engine loads balances and prices once and passes them in.

Key Formulas (all integer, floor division):
    usd_value          = price_usd * amount // PRECISION
    token_amount       = usd_amount * PRECISION // price_usd
    adjusted           = collateral_value * threshold // precision
    health_factor      = adjusted * PRECISION // total_minted
    bonus              = token_amount * bonus // precision

price_usd is always the 18-decimal price produced by OracleAdapter.
"""

from __future__ import annotations
from typing import Iterable, Mapping, Tuple

from .core import (
    DEFAULT_RISK_PARAMETERS, MAX_HEALTH_FACTOR, PRECISION,
    RiskParameters, Seizure,
)


def usd_value(price_usd: int, amount: int) -> int:
    """USD value (18-decimal) of amount units priced at price_usd."""
    return price_usd * amount // PRECISION


def token_amount_from_usd(price_usd: int, usd_amount: int) -> int:
    """
    Quantity of an asset worth usd_amount at price_usd.

    Raises:
        ZeroDivisionError: If price_usd is zero. Prices are not screened.
    """
    return usd_amount * PRECISION // price_usd


def calculate_collateral_value(
    balances: Mapping[str, int],
    prices_usd: Mapping[str, int],
) -> int:
    """
    Total USD value of a set of balances.

    Assets with a zero balance are skipped without needing a price.
    """
    total = 0
    for asset, amount in balances.items():
        if amount == 0:
            continue
        total += usd_value(prices_usd[asset], amount)
    return total


def calculate_health_factor(
    total_minted: int,
    collateral_value_usd: int,
    params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> int:
    """
    Fixed-point solvency ratio of a position.

    Returns MAX_HEALTH_FACTOR when nothing is minted. Otherwise the collateral
    value is haircut by the liquidation threshold and divided by the debt.

    Example:
        calculate_health_factor(1000 * 10**18, 2000 * 10**18) == 10**18
    """
    if total_minted == 0:
        return MAX_HEALTH_FACTOR
    adjusted = collateral_value_usd * params.liquidation_threshold // params.liquidation_precision
    return adjusted * PRECISION // total_minted


def is_healthy(health_factor: int, params: RiskParameters = DEFAULT_RISK_PARAMETERS) -> bool:
    return health_factor >= params.min_health_factor


def liquidation_seizure(token_amount: int, params: RiskParameters = DEFAULT_RISK_PARAMETERS) -> Seizure:
    """
    Split of a liquidation payout.

    Returns:
        (token_amount, bonus, total_seized)
    """
    bonus = token_amount * params.liquidation_bonus // params.liquidation_precision
    return token_amount, bonus, token_amount + bonus


def max_mintable(
    collateral_value_usd: int,
    total_minted: int,
    params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> int:
    """
    Additional stable units a position can mint while staying at the minimum.

    Returns 0 when the position is already at or past the limit.
    """
    adjusted = collateral_value_usd * params.liquidation_threshold // params.liquidation_precision
    ceiling = adjusted * PRECISION // params.min_health_factor
    return max(ceiling - total_minted, 0)


def accounts_below(
    health_factors: Iterable[Tuple[str, int]],
    params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> Tuple[str, ...]:
    """Accounts whose health factor is under the minimum, in input order."""
    return tuple(user for user, hf in health_factors if not is_healthy(hf, params))

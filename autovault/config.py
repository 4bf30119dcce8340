"""Vault configuration.

Fee parameters can be given explicitly or read from the environment:

- `VAULT_PERFORMANCE_FEE`: basis points (default: 200)
- `VAULT_CALL_FEE`: basis points (default: 25)
- `VAULT_WITHDRAW_FEE`: basis points (default: 10)
- `VAULT_WITHDRAW_FEE_PERIOD_HOURS`: hours (default: 72)
"""

import datetime
import logging
import os
from dataclasses import dataclass

from autovault.fee import (
    DEFAULT_CALL_FEE,
    DEFAULT_PERFORMANCE_FEE,
    DEFAULT_WITHDRAW_FEE,
    DEFAULT_WITHDRAW_FEE_PERIOD,
    FeeSchedule,
)


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class VaultConfig:
    """Initial parameters of a vault.

    :param performance_fee: Performance fee in basis points
    :param call_fee: Harvest call fee in basis points
    :param withdraw_fee: Early withdraw fee in basis points
    :param withdraw_fee_period: How long after a deposit the withdraw fee applies
    """

    performance_fee: int = DEFAULT_PERFORMANCE_FEE
    call_fee: int = DEFAULT_CALL_FEE
    withdraw_fee: int = DEFAULT_WITHDRAW_FEE
    withdraw_fee_period: datetime.timedelta = DEFAULT_WITHDRAW_FEE_PERIOD

    def __post_init__(self):
        # Ceiling checks
        self.get_fee_schedule()

    def get_fee_schedule(self) -> FeeSchedule:
        return FeeSchedule(
            performance_fee=self.performance_fee,
            call_fee=self.call_fee,
            withdraw_fee=self.withdraw_fee,
            withdraw_fee_period=self.withdraw_fee_period,
        )


def create_vault_config_from_env() -> VaultConfig:
    """Create VaultConfig from environment variables.

    :return: Configured VaultConfig instance

    :raise ValueError: Environment variable is not a number
    """

    def get_int(key: str, default: int) -> int:
        value = os.environ.get(key)
        return int(value) if value else default

    def get_hours(key: str, default: datetime.timedelta) -> datetime.timedelta:
        value = os.environ.get(key)
        return datetime.timedelta(hours=float(value)) if value else default

    config = VaultConfig(
        performance_fee=get_int("VAULT_PERFORMANCE_FEE", DEFAULT_PERFORMANCE_FEE),
        call_fee=get_int("VAULT_CALL_FEE", DEFAULT_CALL_FEE),
        withdraw_fee=get_int("VAULT_WITHDRAW_FEE", DEFAULT_WITHDRAW_FEE),
        withdraw_fee_period=get_hours("VAULT_WITHDRAW_FEE_PERIOD_HOURS", DEFAULT_WITHDRAW_FEE_PERIOD),
    )
    logger.info("Vault config from environment: %s", config)
    return config

"""Risk-based position sizer.

Converts capital and risk tolerance into a base position size:
- max loss = balance * risk%
- position = max loss / loss%, capped at 95% of balance
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import BotSettings, DEFAULT_LIMITS, RiskLimits
from ..errors import require_finite, require_non_negative, require_positive


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SizingResult:
    """Result of position size calculation.

    Attributes:
        max_loss_amount: Largest loss the trade may incur (USD)
        position_size: Notional position size (USD)
        margin_used: Margin required at the given leverage
        initial_amount: Part of the position placed as the first order
        remaining_amount: Part reserved for DCA orders
    """
    max_loss_amount: float
    position_size: float
    margin_used: float
    initial_amount: float
    remaining_amount: float


class SizingEngine:
    """Calculates position size from balance, risk and loss tolerance."""

    def __init__(self, limits: RiskLimits = DEFAULT_LIMITS):
        self.limits = limits

    def size(
        self,
        balance: float,
        risk_pct: float,
        loss_pct: float,
        leverage: float,
        entry_price: float,
        initial_pct: float,
    ) -> SizingResult:
        """Calculate position size.

        Args:
            balance: Available balance in USD
            risk_pct: Share of balance that may be lost (percent)
            loss_pct: Expected adverse move to the stop (percent)
            leverage: Leverage multiplier
            entry_price: Planned entry price
            initial_pct: Share of the position placed as the first order (percent)

        Returns:
            SizingResult

        Raises:
            InvalidParameterError: If loss_pct or leverage is not positive, or any input is not finite
        """
        balance = require_non_negative("balance", balance)
        risk_pct = require_non_negative("risk_pct", risk_pct)
        loss_pct = require_positive("loss_pct", loss_pct)
        leverage = require_positive("leverage", leverage)
        require_finite("entry_price", entry_price)
        initial_pct = require_non_negative("initial_pct", initial_pct)

        max_loss_amount = balance * risk_pct / 100
        uncapped = max_loss_amount / (loss_pct / 100)
        cap = balance * self.limits.max_allocation_pct / 100
        position_size = min(uncapped, cap)
        if uncapped > cap:
            logger.debug(
                f"Position size {uncapped:.2f} capped at {self.limits.max_allocation_pct}% "
                f"of balance ({cap:.2f})"
            )

        initial_amount = position_size * initial_pct / 100

        return SizingResult(
            max_loss_amount=max_loss_amount,
            position_size=position_size,
            margin_used=position_size / leverage,
            initial_amount=initial_amount,
            remaining_amount=position_size - initial_amount,
        )

    def size_from_settings(
        self,
        settings: BotSettings,
        balance: float,
        entry_price: float,
        loss_pct: Optional[float] = None,
    ) -> SizingResult:
        """Size a trade using risk, leverage and initial order share from settings.

        loss_pct defaults to the configured stop-loss percentage.
        """
        return self.size(
            balance=balance,
            risk_pct=settings.risk_percentage,
            loss_pct=loss_pct if loss_pct is not None else settings.stop_loss_percentage,
            leverage=settings.leverage,
            entry_price=entry_price,
            initial_pct=settings.initial_order_percentage,
        )

    def validate(self, size: float, balance: float, max_pct: Optional[float] = None) -> bool:
        """Check that 0 < size <= balance * max_pct / 100."""
        max_pct = max_pct if max_pct is not None else self.limits.max_allocation_pct
        return 0 < size <= balance * max_pct / 100

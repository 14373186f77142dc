# tradesim/core/order_simulator.py
"""
Deterministic execution pricing with spread, slippage and commission.
"""

import logging
from ..models.config import SlippageModel
from ..models.signals import SignalAction


logger = logging.getLogger(__name__)

SPREAD_FRACTION = 0.0001
BUY_IMPACT_MULTIPLIER = 1.2
SELL_IMPACT_MULTIPLIER = 0.8


class OrderSimulator:
    """
    Simulates fills against bar closes.

    Features:
    - Half-spread crossing in the direction of the order
    - Fixed, percentage and asymmetric market-impact slippage
    - Flat plus proportional commission

    No randomness is involved, so identical inputs give identical fills.
    """

    def __init__(
        self,
        slippage_model: SlippageModel = SlippageModel.PERCENTAGE,
        slippage_value: float = 0.0,
        commission: float = 0.0,
        commission_bps: float = 0.0
    ):
        """
        Initialize order simulator.

        Args:
            slippage_model: Slippage model
            slippage_value: Absolute amount for FIXED, fraction of price otherwise
            commission: Flat commission per trade
            commission_bps: Proportional commission in basis points
        """
        self.slippage_model = slippage_model
        self.slippage_value = slippage_value
        self.commission = commission
        self.commission_bps = commission_bps

        logger.debug(
            f"Order simulator initialized: model={slippage_model.value}, slippage={slippage_value}, "
            f"commission={commission}, fee_bps={commission_bps}"
        )

    def calculate_slippage(self, price: float, action: SignalAction) -> float:
        """
        Slippage per unit for the configured model.

        Args:
            price: Reference price
            action: BUY or SELL

        Returns:
            Non-negative slippage amount
        """
        if self.slippage_model == SlippageModel.FIXED:
            return self.slippage_value

        if self.slippage_model == SlippageModel.PERCENTAGE:
            return price * self.slippage_value

        if self.slippage_model == SlippageModel.MARKET_IMPACT:
            multiplier = BUY_IMPACT_MULTIPLIER if action == SignalAction.BUY else SELL_IMPACT_MULTIPLIER
            return price * self.slippage_value * multiplier

        return 0.0

    def calculate_execution_price(self, close: float, action: SignalAction) -> float:
        """
        Execution price for an order against a bar close.

        Args:
            close: Bar close
            action: BUY or SELL

        Returns:
            Price after crossing half the spread and paying slippage
        """
        half_spread = close * SPREAD_FRACTION / 2
        if action == SignalAction.BUY:
            base_price = close + half_spread
            return base_price + self.calculate_slippage(base_price, action)

        base_price = close - half_spread
        return max(0.0, base_price - self.calculate_slippage(base_price, action))

    def calculate_commission(self, quantity: float, price: float) -> float:
        """
        Calculate commission for trade.

        Args:
            quantity: Trade quantity
            price: Trade price

        Returns:
            Commission amount
        """
        trade_value = quantity * price

        # Percentage fee
        commission = trade_value * (self.commission_bps / 10000.0)

        # Fixed fee per trade
        commission += self.commission

        return commission

"""Core data models for the tradeguard risk and position engine.

Inputs are frozen snapshots. Engines never mutate them; every update returns
a new object built with dataclasses.replace.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from .errors import InvalidTransitionError


class Side(Enum):
    """Order or position side."""
    BUY = "buy"
    SELL = "sell"

    @property
    def direction(self) -> "Direction":
        return Direction.LONG if self is Side.BUY else Direction.SHORT

    @property
    def opposite(self) -> "Side":
        return Side.SELL if self is Side.BUY else Side.BUY


class Direction(Enum):
    """Trade direction used by exit level calculations."""
    LONG = "long"
    SHORT = "short"

    @property
    def side(self) -> Side:
        return Side.BUY if self is Direction.LONG else Side.SELL

    @property
    def sign(self) -> int:
        """+1 for long, -1 for short."""
        return 1 if self is Direction.LONG else -1


class MarketType(Enum):
    SPOT = "spot"
    FUTURES = "futures"


class Exchange(Enum):
    BINANCE = "binance"
    OKX = "okx"


class OrderKind(Enum):
    """Role of an order inside a position."""
    ENTRY = "entry"
    DCA = "dca"
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"

    @property
    def is_entry(self) -> bool:
        return self in (OrderKind.ENTRY, OrderKind.DCA)


class OrderStatus(Enum):
    """Exchange order status.

    NEW -> PENDING -> PARTIALLY_FILLED -> {FILLED | CANCELED | REJECTED | EXPIRED}.
    Terminal states are absorbing.
    """
    NEW = "NEW"
    PENDING = "PENDING"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_ORDER_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_ORDER_STATUSES

    def can_transition(self, target: "OrderStatus") -> bool:
        """Check whether an order may move from this status to target."""
        if target is self:
            return True
        return target in _ORDER_TRANSITIONS[self]


_TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.FILLED,
    OrderStatus.CANCELED,
    OrderStatus.REJECTED,
    OrderStatus.EXPIRED,
})

ACTIVE_ORDER_STATUSES = frozenset({
    OrderStatus.NEW,
    OrderStatus.PENDING,
    OrderStatus.PARTIALLY_FILLED,
})

FILLED_ORDER_STATUSES = frozenset({OrderStatus.FILLED})

_ORDER_TRANSITIONS = {
    OrderStatus.NEW: frozenset({
        OrderStatus.PENDING,
        OrderStatus.PARTIALLY_FILLED,
        OrderStatus.FILLED,
        OrderStatus.CANCELED,
        OrderStatus.REJECTED,
        OrderStatus.EXPIRED,
    }),
    OrderStatus.PENDING: frozenset({
        OrderStatus.PARTIALLY_FILLED,
        OrderStatus.FILLED,
        OrderStatus.CANCELED,
        OrderStatus.REJECTED,
        OrderStatus.EXPIRED,
    }),
    OrderStatus.PARTIALLY_FILLED: frozenset({
        OrderStatus.FILLED,
        OrderStatus.CANCELED,
        OrderStatus.EXPIRED,
    }),
    OrderStatus.FILLED: frozenset(),
    OrderStatus.CANCELED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
}


class PositionStatus(Enum):
    """Position lifecycle: open -> closing -> closed, failed is a terminal error."""
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PositionStatus.CLOSED, PositionStatus.FAILED)

    def can_transition(self, target: "PositionStatus") -> bool:
        if target is self:
            return True
        return target in _POSITION_TRANSITIONS[self]


_POSITION_TRANSITIONS = {
    PositionStatus.OPEN: frozenset({
        PositionStatus.CLOSING,
        PositionStatus.CLOSED,
        PositionStatus.FAILED,
    }),
    PositionStatus.CLOSING: frozenset({
        PositionStatus.CLOSED,
        PositionStatus.FAILED,
    }),
    PositionStatus.CLOSED: frozenset(),
    PositionStatus.FAILED: frozenset(),
}


class TradeStatus(Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class RiskFlag(Enum):
    """Reasons a risk evaluation flagged or denied a trade."""
    KILL_SWITCH_ACTIVE = "KILL_SWITCH_ACTIVE"
    DAILY_LOSS_LIMIT_HIT = "DAILY_LOSS_LIMIT_HIT"
    MAX_DRAWDOWN_EXCEEDED = "MAX_DRAWDOWN_EXCEEDED"
    EXPOSURE_PER_SYMBOL_EXCEEDED = "EXPOSURE_PER_SYMBOL_EXCEEDED"
    TOTAL_EXPOSURE_EXCEEDED = "TOTAL_EXPOSURE_EXCEEDED"
    MAX_TRADES_REACHED = "MAX_TRADES_REACHED"
    VOLATILITY_TOO_HIGH = "VOLATILITY_TOO_HIGH"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    POSITION_SIZE_TOO_LARGE = "POSITION_SIZE_TOO_LARGE"


class RiskLevel(Enum):
    """Ordered risk bands, LOW < MEDIUM < HIGH < CRITICAL."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    def escalate(self, other: "RiskLevel") -> "RiskLevel":
        """Return the worse of the two bands."""
        return other if other.rank > self.rank else self


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class VolatilityLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


class SizingMode(Enum):
    FIXED = "fixed"
    RISK_BASED = "risk_based"
    VOLATILITY_ADJUSTED = "volatility_adjusted"


class StopLossMethod(Enum):
    """Reference price for per-level DCA stop-loss."""
    INITIAL_ENTRY = "initial_entry"
    AVERAGE_POSITION = "average_position"


class StreakType(Enum):
    WINNING = "WINNING"
    LOSING = "LOSING"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class Signal:
    """A trade candidate."""
    symbol: str
    side: Side
    entry_price: float
    confidence: float = 0.0

    @property
    def direction(self) -> Direction:
        return self.side.direction


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Point-in-time account state.

    Attributes:
        total_balance: Wallet balance in USD
        usd_balance: Free balance available for new orders
        equity: Balance plus unrealized PnL
        active_trades_count: Number of open trades
        total_exposure: Capital committed to open positions (USD)
        daily_pnl: Realized + unrealized PnL for the current day
        current_drawdown: Current drawdown in percent
        max_drawdown: Worst drawdown seen, in percent
        peak_equity: Highest equity seen
        alerts: Alerts carried by the last risk snapshot
    """
    total_balance: float
    usd_balance: float
    equity: float
    active_trades_count: int = 0
    total_exposure: float = 0.0
    daily_pnl: float = 0.0
    current_drawdown: float = 0.0
    max_drawdown: float = 0.0
    peak_equity: float = 0.0
    alerts: tuple[str, ...] = ()

    @classmethod
    def neutral(cls, capital: float, active_trades_count: int = 0) -> "PortfolioSnapshot":
        """Snapshot used when the caller has no account state yet."""
        return cls(
            total_balance=capital,
            usd_balance=capital,
            equity=capital,
            active_trades_count=active_trades_count,
            peak_equity=capital,
        )


@dataclass(frozen=True)
class Indicators:
    """Volatility view of the market for a symbol."""
    atr: float
    volatility: float
    volatility_level: VolatilityLevel
    atr_percent: float = 0.0
    atr_avg: float = 0.0


@dataclass(frozen=True)
class Trade:
    """A trade record as supplied by the persistence layer."""
    id: str
    symbol: str
    side: Side
    entry_price: float
    quantity: float
    total_invested: float
    status: TradeStatus = TradeStatus.ACTIVE
    market_type: MarketType = MarketType.SPOT
    leverage: Optional[float] = None
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    fees: Optional[float] = None
    commission: Optional[float] = None
    dca_level: Optional[int] = None
    max_dca_level: Optional[int] = None
    user_id: str = ""
    exchange: Exchange = Exchange.BINANCE

    @property
    def is_active(self) -> bool:
        return self.status is TradeStatus.ACTIVE


@dataclass(frozen=True)
class Fill:
    """A closed slice of a position used for realized PnL."""
    entry_price: float
    exit_price: float
    quantity: float
    fees: float = 0.0
    leverage: float = 1.0


@dataclass(frozen=True)
class OrderRef:
    """Reference to an exchange order belonging to a position."""
    id: str
    symbol: str
    side: Side
    kind: OrderKind
    status: OrderStatus
    price: float
    quantity: float
    filled_quantity: float = 0.0
    avg_price: float = 0.0
    commission: float = 0.0
    exchange_order_id: Optional[str] = None
    created_at: Optional[datetime] = None
    filled_at: Optional[datetime] = None

    @property
    def remaining_quantity(self) -> float:
        return max(0.0, self.quantity - self.filled_quantity)

    @property
    def fill_price(self) -> float:
        """Average fill price, falling back to the order price."""
        return self.avg_price if self.avg_price > 0 else self.price

    def with_status(self, status: OrderStatus, **changes) -> "OrderRef":
        """Return a copy moved to status.

        Raises:
            InvalidTransitionError: If the move leaves a terminal state or skips backwards.
        """
        if not self.status.can_transition(status):
            raise InvalidTransitionError(
                f"Order {self.id}: cannot move from {self.status.value} to {status.value}"
            )
        return replace(self, status=status, **changes)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "side": self.side.value,
            "kind": self.kind.value,
            "status": self.status.value,
            "price": self.price,
            "quantity": self.quantity,
            "filled_quantity": self.filled_quantity,
            "avg_price": self.avg_price,
            "commission": self.commission,
            "exchange_order_id": self.exchange_order_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "filled_at": self.filled_at.isoformat() if self.filled_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderRef":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            symbol=data["symbol"],
            side=Side(data["side"]),
            kind=OrderKind(data["kind"]),
            status=OrderStatus(data["status"]),
            price=data["price"],
            quantity=data["quantity"],
            filled_quantity=data.get("filled_quantity", 0.0),
            avg_price=data.get("avg_price", 0.0),
            commission=data.get("commission", 0.0),
            exchange_order_id=data.get("exchange_order_id"),
            created_at=(
                datetime.fromisoformat(data["created_at"]) if data.get("created_at") else None
            ),
            filled_at=(
                datetime.fromisoformat(data["filled_at"]) if data.get("filled_at") else None
            ),
        )


@dataclass(frozen=True)
class TrailingStop:
    """Trailing stop configuration and current level."""
    enabled: bool
    activation_price: float
    distance_pct: float
    current_stop_price: float


@dataclass(frozen=True)
class TakeProfitLevel:
    """One rung of a partial take-profit ladder."""
    price: float
    percentage: float  # share of the position to close
    executed: bool = False


@dataclass(frozen=True)
class BreakEven:
    enabled: bool
    trigger_price: float
    activated: bool = False


@dataclass(frozen=True)
class RiskState:
    """Exit configuration attached to a position."""
    stop_loss_price: float
    take_profit_price: Optional[float] = None
    trailing: Optional[TrailingStop] = None
    partial_tp: tuple[TakeProfitLevel, ...] = ()
    break_even: Optional[BreakEven] = None


@dataclass(frozen=True)
class Position:
    """A trading position made of entry, DCA, take-profit and stop-loss orders."""
    id: str
    symbol: str
    side: Side
    risk_state: RiskState
    user_id: str = ""
    exchange: Exchange = Exchange.BINANCE
    market_type: MarketType = MarketType.SPOT
    status: PositionStatus = PositionStatus.OPEN
    entry_orders: tuple[OrderRef, ...] = ()
    dca_orders: tuple[OrderRef, ...] = ()
    tp_orders: tuple[OrderRef, ...] = ()
    sl_orders: tuple[OrderRef, ...] = ()
    avg_entry_price: float = 0.0
    position_qty: float = 0.0
    leverage: float = 1.0
    realized_pnl_usd: float = 0.0
    unrealized_pnl_usd: float = 0.0
    strategy_id: str = "main"
    signal_id: Optional[str] = None
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def all_orders(self) -> tuple[OrderRef, ...]:
        return self.entry_orders + self.dca_orders + self.tp_orders + self.sl_orders

    @property
    def direction(self) -> Direction:
        return self.side.direction

    @property
    def is_active(self) -> bool:
        return self.status in (PositionStatus.OPEN, PositionStatus.CLOSING)


@dataclass(frozen=True)
class RiskEvaluationResult:
    """Outcome of a risk evaluation. Denials are values, not exceptions."""
    allowed: bool
    risk_level: RiskLevel
    reason: Optional[str] = None
    adjusted_capital: Optional[float] = None
    flags: tuple[RiskFlag, ...] = field(default_factory=tuple)

"""
Request/response models.

Request models reject unknown fields, so owner columns such as `user_id`
can never be supplied by the client; ownership always comes from the
authenticated session.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DAY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

RiskTolerance = Literal["conservative", "moderate", "aggressive"]
ExecutionMode = Literal["manual", "semi-automatic", "automatic"]
OrderType = Literal["market", "limit", "stop"]
OrderSide = Literal["buy", "sell"]
OrderStatus = Literal["pending", "filled", "partial", "canceled", "rejected"]
SpreadType = Literal["straddle", "strangle", "calendar", "iron_condor", "butterfly", "vertical"]
OptionType = Literal["call", "put"]
TradeType = Literal["buy", "sell", "roll", "hedge"]
AlertType = Literal["stop_loss", "take_profit", "risk_limit", "setup", "news"]
AlertSeverity = Literal["info", "warning", "critical"]
SignalType = Literal["buy", "sell", "hold"]
BacktestStatus = Literal["running", "completed", "failed"]
BacktestTradeType = Literal["STOCK", "OPTION", "SPREAD", "STRADDLE", "STRANGLE", "CALENDAR"]
BacktestSide = Literal["BUY", "SELL"]
ExitReason = Literal["PROFIT_TARGET", "STOP_LOSS", "TIME_STOP", "SIGNAL_EXIT"]


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Auth / users ---------------------------------------------------------------


class RegisterRequest(RequestModel):
    name: str = Field(min_length=1, max_length=120)
    email: str
    password: str
    invite_code: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not _EMAIL_RE.match(v):
            raise ValueError("invalid email address")
        return v


class LoginRequest(RequestModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.strip().lower()


class PasswordChangeRequest(RequestModel):
    current_password: str
    new_password: str


class UserOut(ORMModel):
    id: str
    name: str
    email: str
    is_admin: bool
    portfolio_balance: float
    risk_tolerance: str
    execution_mode: str
    created_at: datetime
    updated_at: datetime


class AuthSessionOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserOut


class UserUpdateRequest(RequestModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    risk_tolerance: Optional[RiskTolerance] = None
    execution_mode: Optional[ExecutionMode] = None
    portfolio_balance: Optional[float] = Field(default=None, ge=0)


class AdminUserUpdateRequest(RequestModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    is_admin: Optional[bool] = None
    risk_tolerance: Optional[RiskTolerance] = None
    execution_mode: Optional[ExecutionMode] = None


class AdminPasswordRequest(RequestModel):
    new_password: str


# --- Invite codes ---------------------------------------------------------------


class InviteCodeRequest(RequestModel):
    code: Optional[str] = None


class InviteCodeCreate(RequestModel):
    code: Optional[str] = Field(default=None, min_length=4, max_length=64)
    max_uses: int = Field(default=1, ge=1)
    expires_at: Optional[datetime] = None
    is_active: bool = True


class InviteCodeUpdate(RequestModel):
    is_active: Optional[bool] = None
    max_uses: Optional[int] = Field(default=None, ge=1)
    expires_at: Optional[datetime] = None


class InviteCodeOut(ORMModel):
    id: int
    code: str
    is_active: bool
    max_uses: int
    current_uses: int
    used_by_user_id: Optional[str]
    expires_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


# --- Assets ---------------------------------------------------------------------


class AssetTypeCreate(RequestModel):
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None


class AssetTypeUpdate(RequestModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = None


class AssetTypeOut(ORMModel):
    id: int
    name: str
    description: Optional[str]
    created_at: datetime
    updated_at: datetime


class AssetCreate(RequestModel):
    symbol: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=255)
    asset_type_id: Optional[int] = None
    current_price: Optional[float] = Field(default=None, ge=0)
    market_cap: Optional[float] = None
    volume: Optional[float] = None
    pe_ratio: Optional[float] = None
    dividend_yield: Optional[float] = None
    beta: Optional[float] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True


class AssetUpdate(RequestModel):
    symbol: Optional[str] = Field(default=None, min_length=1, max_length=32)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    asset_type_id: Optional[int] = None
    current_price: Optional[float] = Field(default=None, ge=0)
    market_cap: Optional[float] = None
    volume: Optional[float] = None
    pe_ratio: Optional[float] = None
    dividend_yield: Optional[float] = None
    beta: Optional[float] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class AssetOut(ORMModel):
    id: int
    symbol: str
    name: str
    asset_type_id: Optional[int]
    current_price: Optional[float]
    market_cap: Optional[float]
    volume: Optional[float]
    pe_ratio: Optional[float]
    dividend_yield: Optional[float]
    beta: Optional[float]
    sector: Optional[str]
    industry: Optional[str]
    description: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime


# --- Strategies / positions / trades ------------------------------------------------


class StrategyCreate(RequestModel):
    name: str = Field(min_length=1, max_length=255)
    strategy_type: Optional[str] = None
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class StrategyUpdate(RequestModel):
    name: Optional[str] = Field(default=None, max_length=255)
    strategy_type: Optional[str] = None
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    performance: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class StrategyOut(ORMModel):
    id: int
    user_id: str
    name: str
    strategy_type: Optional[str]
    description: Optional[str]
    parameters: Dict[str, Any]
    performance: Dict[str, Any]
    is_active: bool
    created_at: datetime
    updated_at: datetime


class _Greeks(RequestModel):
    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None
    vega: Optional[float] = None
    iv: Optional[float] = Field(default=None, ge=0)


class PositionCreate(_Greeks):
    position_type: str = Field(min_length=1, max_length=32)
    quantity: int = Field(gt=0)
    entry_price: float = Field(gt=0)
    current_price: Optional[float] = Field(default=None, gt=0)
    asset_id: Optional[int] = None
    strategy_id: Optional[int] = None
    strike_price: Optional[float] = Field(default=None, gt=0)
    expiration_date: Optional[datetime] = None
    stop_loss: Optional[float] = Field(default=None, gt=0)
    take_profit: Optional[float] = Field(default=None, gt=0)


class PositionUpdate(_Greeks):
    quantity: Optional[int] = Field(default=None, gt=0)
    current_price: Optional[float] = Field(default=None, gt=0)
    stop_loss: Optional[float] = Field(default=None, gt=0)
    take_profit: Optional[float] = Field(default=None, gt=0)


class PositionClose(RequestModel):
    exit_price: Optional[float] = Field(default=None, gt=0)


class PositionOut(ORMModel):
    id: int
    user_id: str
    strategy_id: Optional[int]
    asset_id: Optional[int]
    position_type: str
    quantity: int
    entry_price: float
    current_price: Optional[float]
    strike_price: Optional[float]
    expiration_date: Optional[datetime]
    delta: Optional[float]
    gamma: Optional[float]
    theta: Optional[float]
    vega: Optional[float]
    iv: Optional[float]
    unrealized_pnl: float
    stop_loss: Optional[float]
    take_profit: Optional[float]
    status: str
    opened_at: datetime
    closed_at: Optional[datetime]
    updated_at: datetime


class TradeCreate(RequestModel):
    trade_type: TradeType
    quantity: int = Field(gt=0)
    price: float = Field(gt=0)
    commission: float = Field(default=0.0, ge=0)
    pnl: Optional[float] = None
    position_id: Optional[int] = None
    asset_id: Optional[int] = None
    executed_at: Optional[datetime] = None


class TradeOut(ORMModel):
    id: int
    user_id: str
    position_id: Optional[int]
    asset_id: Optional[int]
    trade_type: str
    quantity: int
    price: float
    commission: float
    pnl: Optional[float]
    executed_at: datetime
    created_at: datetime


# --- Paper trading ------------------------------------------------------------------


class PaperAccountCreate(RequestModel):
    cash_balance: float = Field(gt=0)
    initial_balance: float = Field(gt=0)


class PaperAccountUpdate(RequestModel):
    cash_balance: Optional[float] = Field(default=None, gt=0)
    total_equity: Optional[float] = Field(default=None, gt=0)
    total_pnl: Optional[float] = None
    is_active: Optional[bool] = None


class PaperAccountInitialize(RequestModel):
    initial_balance: Optional[float] = None


class PaperAccountOut(ORMModel):
    id: int
    user_id: str
    cash_balance: float
    initial_balance: float
    total_equity: float
    total_pnl: float
    is_active: bool
    created_at: datetime
    updated_at: datetime


class PaperOrderCreate(RequestModel):
    paper_account_id: int
    asset_id: int
    order_type: OrderType
    side: OrderSide
    quantity: int = Field(gt=0)
    limit_price: Optional[float] = Field(default=None, gt=0)
    stop_price: Optional[float] = Field(default=None, gt=0)


class PaperOrderUpdate(RequestModel):
    status: Optional[OrderStatus] = None
    filled_quantity: Optional[int] = None
    filled_price: Optional[float] = Field(default=None, gt=0)
    limit_price: Optional[float] = Field(default=None, gt=0)
    stop_price: Optional[float] = Field(default=None, gt=0)


class PaperOrderOut(ORMModel):
    id: int
    paper_account_id: int
    asset_id: int
    order_type: str
    side: str
    quantity: int
    limit_price: Optional[float]
    stop_price: Optional[float]
    status: str
    filled_quantity: int
    filled_price: Optional[float]
    filled_at: Optional[datetime]
    reject_reason: Optional[str]
    created_at: datetime
    updated_at: datetime


class ExecuteOrderRequest(RequestModel):
    paper_account_id: int
    asset_id: int
    order_type: OrderType
    side: OrderSide
    quantity: int = Field(gt=0)
    market_price: float = Field(gt=0)
    limit_price: Optional[float] = Field(default=None, gt=0)
    stop_price: Optional[float] = Field(default=None, gt=0)


class ComplexOrderLeg(RequestModel):
    asset_id: int
    side: OrderSide
    quantity: int = Field(gt=0)
    option_type: OptionType = "call"
    strike_price: Optional[float] = Field(default=None, gt=0)
    expiration_date: Optional[date] = None


class ComplexOrderRequest(RequestModel):
    paper_account_id: int
    spread_type: SpreadType
    underlying_symbol: str = Field(min_length=1, max_length=32)
    market_price: Optional[float] = Field(default=None, gt=0)
    legs: List[ComplexOrderLeg] = Field(min_length=1)


class PaperPositionCreate(RequestModel):
    paper_account_id: int
    asset_id: int
    quantity: int
    average_cost: float = Field(gt=0)
    current_price: Optional[float] = Field(default=None, gt=0)


class PaperPositionUpdate(RequestModel):
    quantity: Optional[int] = None
    average_cost: Optional[float] = Field(default=None, gt=0)
    current_price: Optional[float] = Field(default=None, gt=0)


class PaperPositionOut(ORMModel):
    id: int
    paper_account_id: int
    asset_id: int
    quantity: int
    average_cost: float
    current_price: Optional[float]
    unrealized_pnl: float
    realized_pnl: float
    multiplier: int
    last_updated: datetime


# --- Backtests ----------------------------------------------------------------------


class BacktestCreate(RequestModel):
    name: str = Field(min_length=1, max_length=255)
    strategy_id: int
    start_date: datetime
    end_date: datetime
    initial_capital: float = Field(gt=0)
    configuration: Dict[str, Any] = Field(default_factory=dict)
    status: BacktestStatus = "running"


class BacktestUpdate(RequestModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    status: Optional[BacktestStatus] = None
    final_capital: Optional[float] = None
    total_return: Optional[float] = None
    total_return_percent: Optional[float] = None
    sharpe_ratio: Optional[float] = None
    sortino_ratio: Optional[float] = None
    max_drawdown: Optional[float] = None
    win_rate: Optional[float] = None
    profit_factor: Optional[float] = None
    total_trades: Optional[int] = Field(default=None, ge=0)
    winning_trades: Optional[int] = Field(default=None, ge=0)
    losing_trades: Optional[int] = Field(default=None, ge=0)
    error_message: Optional[str] = None


class BacktestOut(ORMModel):
    id: int
    user_id: str
    strategy_id: int
    name: str
    start_date: datetime
    end_date: datetime
    initial_capital: float
    final_capital: Optional[float]
    total_return: Optional[float]
    total_return_percent: Optional[float]
    sharpe_ratio: Optional[float]
    sortino_ratio: Optional[float]
    max_drawdown: Optional[float]
    win_rate: Optional[float]
    profit_factor: Optional[float]
    total_trades: int
    winning_trades: int
    losing_trades: int
    configuration: Dict[str, Any]
    status: str
    error_message: Optional[str]
    created_at: datetime
    completed_at: Optional[datetime]


class BacktestTradeIn(RequestModel):
    symbol: str = Field(min_length=1, max_length=32)
    trade_type: BacktestTradeType
    side: BacktestSide
    quantity: int = Field(gt=0)
    entry_price: float = Field(gt=0)
    exit_price: Optional[float] = Field(default=None, gt=0)
    entry_time: datetime
    exit_time: Optional[datetime] = None
    pnl: Optional[float] = None
    pnl_percent: Optional[float] = None
    commission: float = Field(default=0.0, ge=0)
    slippage: float = Field(default=0.0, ge=0)
    exit_reason: Optional[ExitReason] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)


class BacktestTradeOut(ORMModel):
    id: int
    backtest_id: int
    symbol: str
    trade_type: str
    side: str
    quantity: int
    entry_price: float
    exit_price: Optional[float]
    entry_time: datetime
    exit_time: Optional[datetime]
    pnl: Optional[float]
    pnl_percent: Optional[float]
    commission: float
    slippage: float
    exit_reason: Optional[str]
    duration_minutes: Optional[int]


class DailyMetricIn(RequestModel):
    date: str = Field(pattern=_DAY_PATTERN)
    equity: float
    cash: float
    daily_return: float = 0.0
    drawdown: float = 0.0


class DailyMetricOut(ORMModel):
    id: int
    backtest_id: int
    date: str
    equity: float
    cash: float
    daily_return: float
    drawdown: float


# --- Alerts / risk / brokers / signals / watchlist ----------------------------------


class AlertCreate(RequestModel):
    alert_type: AlertType
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    severity: AlertSeverity = "info"
    position_id: Optional[int] = None


class AlertOut(ORMModel):
    id: int
    user_id: str
    position_id: Optional[int]
    alert_type: str
    title: str
    message: str
    severity: str
    is_read: bool
    is_dismissed: bool
    triggered_at: datetime


class RiskMetricCreate(RequestModel):
    portfolio_value: float = 0.0
    total_exposure: float = 0.0
    net_delta: float = 0.0
    net_gamma: float = 0.0
    net_theta: float = 0.0
    net_vega: float = 0.0
    portfolio_heat: float = 0.0
    daily_pnl: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: Optional[float] = None
    sortino_ratio: Optional[float] = None
    win_rate: Optional[float] = Field(default=None, ge=0, le=100)
    var_95: Optional[float] = None


class RiskMetricOut(ORMModel):
    id: int
    user_id: str
    portfolio_value: float
    total_exposure: float
    net_delta: float
    net_gamma: float
    net_theta: float
    net_vega: float
    portfolio_heat: float
    daily_pnl: float
    max_drawdown: float
    sharpe_ratio: Optional[float]
    sortino_ratio: Optional[float]
    win_rate: Optional[float]
    var_95: Optional[float]
    calculated_at: datetime


class BrokerConnectionCreate(RequestModel):
    broker_name: str = Field(min_length=1, max_length=64)
    api_key: str = Field(min_length=1, max_length=255)
    api_secret: str = Field(min_length=1, max_length=255)
    is_paper: bool = True
    is_active: bool = True


class BrokerConnectionUpdate(RequestModel):
    broker_name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    api_key: Optional[str] = Field(default=None, min_length=1, max_length=255)
    api_secret: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_paper: Optional[bool] = None
    is_active: Optional[bool] = None


class BrokerConnectionOut(BaseModel):
    id: int
    broker_name: str
    api_key_masked: str
    is_paper: bool
    is_active: bool
    last_sync_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class MarketSignalCreate(RequestModel):
    symbol: str = Field(min_length=1, max_length=32)
    signal_type: SignalType
    strength: float
    confidence: float
    reasoning: Optional[str] = None
    source: Optional[str] = None
    expires_at: Optional[datetime] = None


class MarketSignalUpdate(RequestModel):
    signal_type: Optional[SignalType] = None
    strength: Optional[float] = None
    confidence: Optional[float] = None
    reasoning: Optional[str] = None
    source: Optional[str] = None
    expires_at: Optional[datetime] = None


class MarketSignalOut(ORMModel):
    id: int
    symbol: str
    signal_type: str
    strength: float
    confidence: float
    reasoning: Optional[str]
    source: Optional[str]
    created_at: datetime
    expires_at: Optional[datetime]


class WatchlistAdd(RequestModel):
    asset_id: int
    notes: Optional[str] = None


class WatchlistItemOut(BaseModel):
    id: int
    asset_id: int
    symbol: str
    name: str
    current_price: Optional[float]
    notes: Optional[str]
    added_at: datetime


class QuoteOut(BaseModel):
    symbol: str
    bid_price: float
    ask_price: float
    mid_price: float
    bid_size: Optional[float] = None
    ask_size: Optional[float] = None
    timestamp: Optional[datetime] = None


class AssetSearchResultOut(BaseModel):
    symbol: str
    name: str
    exchange: Optional[str] = None
    asset_class: Optional[str] = None
    tradable: bool
    marginable: bool
    shortable: bool

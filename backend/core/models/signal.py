"""Trading signal models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Side(str, Enum):
    """Signal side."""

    BUY = "buy"
    SELL = "sell"


class SignalReason(str, Enum):
    """Rule family that produced a signal."""

    SMA_CROSS = "sma_cross"
    EMA_CROSS = "ema_cross"
    RSI_OVERSOLD = "rsi_oversold"
    RSI_OVERBOUGHT = "rsi_overbought"
    BOLL_LOWER = "boll_lower"
    BOLL_UPPER = "boll_upper"


class Signal(BaseModel):
    """Edge-triggered buy/sell event for one bar."""

    model_config = ConfigDict(frozen=True)

    side: Side
    reason: SignalReason
    time: int
    price: float

    def to_wire(self) -> dict:
        return self.model_dump(mode="json")

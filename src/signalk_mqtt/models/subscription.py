"""Signal K subscription request."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from signalk_mqtt._constants import SELF_CONTEXT


class Subscription(BaseModel):
    """Which paths to receive and how often.

    ``to_message`` renders the Signal K stream subscribe message::

        {"context": "vessels.self", "subscribe": [{"path": "*", "period": 60000}]}
    """

    model_config = ConfigDict(frozen=True)

    context: str = SELF_CONTEXT
    path: str = "*"
    period_ms: int = Field(default=60_000, gt=0)

    def to_message(self) -> dict[str, Any]:
        return {
            "context": self.context,
            "subscribe": [{"path": self.path, "period": self.period_ms}],
        }

"""
Builder for the group route request submitted by this client.

The request routes three existing orders to broker BMTB in one operation,
using the broker's VWAP strategy for all of them.
"""

from typing import List, Optional, Tuple

from loguru import logger

from ..transport.base import Request, Service
from .models import (
    FIELD_IGNORED,
    FIELD_USED,
    GroupRouteRequest,
    RouteRefIdPair,
    StrategyFieldData,
    StrategyFieldIndicator,
    StrategyParams,
)


GROUP_ROUTE_OPERATION = "GroupRouteEx"


class StrategyFieldsBuilder:
    """
    Ordered builder for broker strategy fields.

    Fields must be added in the order the broker declares them; the builder
    keeps insertion order and never sorts. Skipped fields still occupy their
    position.

    Examples:
        >>> params = (
        ...     StrategyFieldsBuilder("VWAP")
        ...     .add("09:30:00")     # StartTime
        ...     .add("10:30:00")     # EndTime
        ...     .skip()              # Max%Volume
        ...     .build()
        ... )
        >>> params.pairs()
        [(0, '09:30:00'), (0, '10:30:00'), (1, '')]
    """

    def __init__(self, strategy_name: str):
        if not strategy_name:
            raise ValueError("strategy_name must be non-empty string")
        self.strategy_name = strategy_name
        self._pairs: List[Tuple[int, str]] = []

    def add(self, value: str) -> "StrategyFieldsBuilder":
        """Append a field whose value the broker should use."""
        self._pairs.append((FIELD_USED, str(value)))
        return self

    def skip(self) -> "StrategyFieldsBuilder":
        """Append a placeholder for a field the broker should ignore."""
        self._pairs.append((FIELD_IGNORED, ""))
        return self

    def append(self, indicator: int, value: str = "") -> "StrategyFieldsBuilder":
        """
        Append a raw (indicator, value) pair.

        Raises:
            ValueError: If indicator is not 0 or 1
        """
        if indicator not in (FIELD_USED, FIELD_IGNORED):
            raise ValueError(f"indicator must be 0 or 1, got {indicator!r}")
        self._pairs.append((indicator, str(value)))
        return self

    def __len__(self) -> int:
        return len(self._pairs)

    def build(self) -> StrategyParams:
        return StrategyParams(
            name=self.strategy_name,
            field_indicators=[
                StrategyFieldIndicator(indicator=indicator) for indicator, _ in self._pairs
            ],
            field_values=[StrategyFieldData(data=value) for _, value in self._pairs],
        )


def default_group_route(
    sequences: Optional[List[int]] = None,
    broker: str = "BMTB",
) -> GroupRouteRequest:
    """
    Return the fixed group route payload.

    Hand instruction, order type, ticker and TIF are required by the service
    but taken from the original orders when the routes are created.
    """
    strategy = (
        StrategyFieldsBuilder("VWAP")
        .add("09:30:00")    # StartTime
        .add("10:30:00")    # EndTime
        .skip()             # Max%Volume
        .skip()             # %AMSession
        .skip()             # OPG
        .skip()             # MOC
        .skip()             # CompletePX
        .skip()             # TriggerPX
        .skip()             # DarkComplete
        .skip()             # DarkCompPX
        .skip()             # RefIndex
        .skip()             # Discretion
        .build()
    )

    return GroupRouteRequest(
        sequences=sequences or [3734835, 3734836, 3734837],
        amount_percent=100,
        broker=broker,
        hand_instruction="ANY",
        order_type="MKT",
        ticker="IBM US Equity",
        tif="DAY",
        route_ref_id_pairs=[
            RouteRefIdPair(route_ref_id="MyRouteRef1", sequence=3663920),
            RouteRefIdPair(route_ref_id="MyRouteRef2", sequence=3663921),
            RouteRefIdPair(route_ref_id="MyRouteRef3", sequence=3663922),
        ],
        strategy_params=strategy,
    )


def build_group_route_request(service: Service) -> Request:
    """Create the GroupRouteEx request on an opened service."""
    payload = default_group_route()
    logger.debug(
        f"Building {GROUP_ROUTE_OPERATION} for {len(payload.sequences)} order(s) "
        f"to {payload.broker} on {service.name}"
    )
    return service.create_request(GROUP_ROUTE_OPERATION, payload.to_payload())

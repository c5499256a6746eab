"""
Group route request and response models with validation.

This module defines the EMSX entities exchanged by the group route scenario:
- GroupRouteRequest: One routing instruction applied to several orders
- StrategyParams: Broker strategy with positional (indicator, value) fields
- GroupRouteResult: Per-order outcome of a group route
- ErrorInfo: Request-level error reported by the service

Field names serialize to the EMSX element names (EMSX_SEQUENCE, EMSX_BROKER,
...) so model_dump(by_alias=True) yields the request payload directly.
"""

from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field, model_validator

from ..exceptions import InvalidConversionError
from .events import Message


FIELD_USED = 0
FIELD_IGNORED = 1


class RouteRefIdPair(BaseModel):
    """
    Caller supplied reference id for the route created from one order.

    Examples:
        >>> pair = RouteRefIdPair(route_ref_id="MyRouteRef1", sequence=3663920)
        >>> pair.model_dump(by_alias=True)
        {'EMSX_ROUTE_REF_ID': 'MyRouteRef1', 'EMSX_SEQUENCE': 3663920}
    """

    model_config = {"frozen": True, "populate_by_name": True}

    route_ref_id: str = Field(
        alias="EMSX_ROUTE_REF_ID",
        min_length=1,
        description="Reference id attached to the new route"
    )
    sequence: int = Field(
        alias="EMSX_SEQUENCE",
        gt=0,
        description="Order sequence number the reference applies to"
    )


class StrategyFieldIndicator(BaseModel):
    model_config = {"frozen": True, "populate_by_name": True}

    indicator: Literal[0, 1] = Field(alias="EMSX_FIELD_INDICATOR")


class StrategyFieldData(BaseModel):
    model_config = {"frozen": True, "populate_by_name": True}

    data: str = Field(default="", alias="EMSX_FIELD_DATA")


class StrategyParams(BaseModel):
    """
    Broker strategy shared by every order in the group route.

    Strategy fields are positional: the broker defines the order (see the
    GetBrokerStrategyInfo request) and each position carries a pair of
    entries, one in field_indicators and one in field_values. Indicator 0 means the
    value is used; indicator 1 means the position is skipped and its value is
    a placeholder that must still be present.

    Attributes:
        name: Strategy name (e.g. 'VWAP')
        field_indicators: Indicator per position, in broker order
        field_values: Value per position, in broker order
    """

    model_config = {"frozen": True, "populate_by_name": True}

    name: str = Field(
        alias="EMSX_STRATEGY_NAME",
        min_length=1,
        description="Broker strategy name"
    )
    field_indicators: List[StrategyFieldIndicator] = Field(
        default_factory=list,
        alias="EMSX_STRATEGY_FIELD_INDICATORS",
    )
    field_values: List[StrategyFieldData] = Field(
        default_factory=list,
        alias="EMSX_STRATEGY_FIELDS",
    )

    @model_validator(mode="after")
    def validate_alignment(self) -> "StrategyParams":
        """Indicators and values are parallel arrays and must line up."""
        if len(self.field_indicators) != len(self.field_values):
            raise ValueError(
                f"Strategy '{self.name}' has {len(self.field_indicators)} indicators "
                f"but {len(self.field_values)} field values. Both lists must be appended together."
            )
        return self

    def pairs(self) -> List[tuple]:
        """Return (indicator, value) for every position, in order."""
        return [
            (indicator.indicator, data.data)
            for indicator, data in zip(self.field_indicators, self.field_values)
        ]

    def used_fields(self) -> List[tuple]:
        """Return (position, value) for positions whose indicator is 0."""
        return [
            (position, value)
            for position, (indicator, value) in enumerate(self.pairs())
            if indicator == FIELD_USED
        ]


class GroupRouteRequest(BaseModel):
    """
    Immutable GroupRouteEx request payload.

    The mandatory fields are EMSX_SEQUENCE, EMSX_AMOUNT_PERCENT and
    EMSX_BROKER. Hand instruction, order type, ticker and TIF must be present
    as well but the service takes their values from the original orders.
    Optional fields left as None are not sent.

    Examples:
        >>> request = GroupRouteRequest(
        ...     sequences=[3734835, 3734836],
        ...     amount_percent=100,
        ...     broker="BMTB",
        ...     hand_instruction="ANY",
        ...     order_type="MKT",
        ...     ticker="IBM US Equity",
        ...     tif="DAY",
        ... )
        >>> request.to_payload()["EMSX_SEQUENCE"]
        [3734835, 3734836]
    """

    model_config = {"frozen": True, "populate_by_name": True}

    sequences: List[int] = Field(
        alias="EMSX_SEQUENCE",
        min_length=1,
        description="Sequence numbers of the orders to route"
    )
    amount_percent: int = Field(
        alias="EMSX_AMOUNT_PERCENT",
        gt=0,
        le=100,
        description="Percentage of each order's amount to route"
    )
    broker: str = Field(alias="EMSX_BROKER", min_length=1)
    hand_instruction: str = Field(alias="EMSX_HAND_INSTRUCTION", min_length=1)
    order_type: str = Field(alias="EMSX_ORDER_TYPE", min_length=1)
    ticker: str = Field(alias="EMSX_TICKER", min_length=1)
    tif: str = Field(alias="EMSX_TIF", min_length=1)

    account: Optional[str] = Field(default=None, alias="EMSX_ACCOUNT")
    bookname: Optional[str] = Field(default=None, alias="EMSX_BOOKNAME")
    cfd_flag: Optional[str] = Field(default=None, alias="EMSX_CFD_FLAG")
    clearing_account: Optional[str] = Field(default=None, alias="EMSX_CLEARING_ACCOUNT")
    clearing_firm: Optional[str] = Field(default=None, alias="EMSX_CLEARING_FIRM")
    exec_instructions: Optional[str] = Field(default=None, alias="EMSX_EXEC_INSTRUCTIONS")
    get_warnings: Optional[str] = Field(default=None, alias="EMSX_GET_WARNINGS")
    gtd_date: Optional[str] = Field(default=None, alias="EMSX_GTD_DATE")
    limit_price: Optional[float] = Field(default=None, alias="EMSX_LIMIT_PRICE", gt=0)
    locate_broker: Optional[str] = Field(default=None, alias="EMSX_LOCATE_BROKER")
    locate_id: Optional[str] = Field(default=None, alias="EMSX_LOCATE_ID")
    locate_req: Optional[str] = Field(default=None, alias="EMSX_LOCATE_REQ")
    notes: Optional[str] = Field(default=None, alias="EMSX_NOTES")
    odd_lot: Optional[str] = Field(default=None, alias="EMSX_ODD_LOT")
    p_a: Optional[str] = Field(default=None, alias="EMSX_P_A")
    release_time: Optional[int] = Field(default=None, alias="EMSX_RELEASE_TIME")
    request_seq: Optional[int] = Field(default=None, alias="EMSX_REQUEST_SEQ")
    stop_price: Optional[float] = Field(default=None, alias="EMSX_STOP_PRICE", gt=0)
    trader_uuid: Optional[int] = Field(default=None, alias="EMSX_TRADER_UUID")

    route_ref_id_pairs: List[RouteRefIdPair] = Field(
        default_factory=list,
        alias="EMSX_ROUTE_REF_ID_PAIRS",
    )
    strategy_params: Optional[StrategyParams] = Field(
        default=None,
        alias="EMSX_STRATEGY_PARAMS",
    )

    @model_validator(mode="after")
    def validate_sequences(self) -> "GroupRouteRequest":
        """Sequence numbers must be positive and listed once."""
        if any(sequence <= 0 for sequence in self.sequences):
            raise ValueError(f"Order sequence numbers must be positive: {self.sequences}")
        if len(set(self.sequences)) != len(self.sequences):
            raise ValueError(f"Duplicate order sequence numbers: {self.sequences}")
        return self

    def to_payload(self) -> Dict[str, Any]:
        """Element tree in declaration order, unset optional fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)


class SuccessRoute(BaseModel):
    model_config = {"frozen": True, "populate_by_name": True}

    sequence: int = Field(alias="EMSX_SEQUENCE")
    route_id: int = Field(alias="EMSX_ROUTE_ID")


class FailedRoute(BaseModel):
    model_config = {"frozen": True, "populate_by_name": True}

    sequence: int = Field(alias="EMSX_SEQUENCE")
    error_code: int = Field(alias="ERROR_CODE")
    error_message: str = Field(alias="ERROR_MESSAGE")


def _entries(message: Message, name: str) -> List[Message]:
    """
    Read an optional list of nested entries as messages.

    An absent list is treated as zero entries.
    """
    if not message.has_element(name):
        return []

    values = message.get_element(name)
    if not isinstance(values, (list, tuple)):
        raise InvalidConversionError(
            f"Element '{name}' of {message.message_type} is not a list"
        )

    entries = []
    for value in values:
        if not isinstance(value, Mapping):
            raise InvalidConversionError(
                f"Entry of '{name}' in {message.message_type} is not an element: {value!r}"
            )
        entries.append(Message(name, value))
    return entries


class GroupRouteResult(BaseModel):
    """
    Outcome of a GroupRouteEx request.

    Attributes:
        success_routes: Orders that were routed, with their new route ids
        failed_routes: Orders the broker or the service rejected
        message: Free text status reported with the result
    """

    model_config = {"frozen": True, "populate_by_name": True}

    success_routes: List[SuccessRoute] = Field(
        default_factory=list,
        alias="EMSX_SUCCESS_ROUTES",
    )
    failed_routes: List[FailedRoute] = Field(
        default_factory=list,
        alias="EMSX_FAILED_ROUTES",
    )
    message: str = Field(default="", alias="MESSAGE")

    @classmethod
    def from_message(cls, message: Message) -> "GroupRouteResult":
        """
        Extract the result from a GroupRouteEx response message.

        Raises:
            ElementNotFoundError: If an entry lacks a required element or the
                message has no MESSAGE element
            InvalidConversionError: If an element has the wrong type
        """
        success_routes = [
            SuccessRoute(
                sequence=entry.get_element_as_int("EMSX_SEQUENCE"),
                route_id=entry.get_element_as_int("EMSX_ROUTE_ID"),
            )
            for entry in _entries(message, "EMSX_SUCCESS_ROUTES")
        ]
        failed_routes = [
            FailedRoute(
                sequence=entry.get_element_as_int("EMSX_SEQUENCE"),
                error_code=entry.get_element_as_int("ERROR_CODE"),
                error_message=entry.get_element_as_string("ERROR_MESSAGE"),
            )
            for entry in _entries(message, "EMSX_FAILED_ROUTES")
        ]
        return cls(
            success_routes=success_routes,
            failed_routes=failed_routes,
            message=message.get_element_as_string("MESSAGE"),
        )


class ErrorInfo(BaseModel):
    """Request-level error returned instead of a result."""

    model_config = {"frozen": True, "populate_by_name": True}

    error_code: int = Field(alias="ERROR_CODE")
    error_message: str = Field(alias="ERROR_MESSAGE")

    @classmethod
    def from_message(cls, message: Message) -> "ErrorInfo":
        return cls(
            error_code=message.get_element_as_int("ERROR_CODE"),
            error_message=message.get_element_as_string("ERROR_MESSAGE"),
        )

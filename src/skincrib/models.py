"""
Pydantic models for Skincrib merchant socket payloads and internal state.
"""

from typing import Optional, List, Literal, Any, Dict, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


ListingType = Literal["deposit", "withdraw"]


def _coerce_identifier(v):
    """Wire identifiers arrive as strings or numbers; store them as strings."""
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, bool):
        raise ValueError("Identifier must be a string or number")
    if isinstance(v, (int, float)):
        return str(int(v)) if float(v).is_integer() else str(v)
    raise ValueError(f"Identifier must be a string or number, got {type(v).__name__}")


class Listing(BaseModel):
    """A single item offered for trade on the marketplace.

    Extra fields sent by the server (item name, image, wear...) are kept
    as-is so consumers get the full payload back.
    """
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = Field(None, description="Listing identifier")
    assetid: Optional[str] = Field(None, description="Steam asset identifier")
    price: int = Field(..., description="Price in cents")
    status: Optional[str] = Field(None, description="Lifecycle status reported by the server")
    type: Optional[ListingType] = Field(None, description="deposit (selling) or withdraw (purchased)")
    steamid: Optional[str] = Field(None, description="Owning account SteamID64")

    @field_validator('id', 'assetid', 'steamid', mode='before')
    @classmethod
    def coerce_identifiers(cls, v):
        return _coerce_identifier(v)

    @field_validator('price')
    @classmethod
    def validate_price(cls, v):
        """Prices are non-negative integer cents."""
        if v < 0:
            raise ValueError(f"Price must be non-negative, got {v}")
        return v

    @model_validator(mode='after')
    def require_identity(self):
        if not self.id and not self.assetid:
            raise ValueError("Listing must carry an 'id' or an 'assetid'")
        return self

    @property
    def key(self) -> str:
        """Identity key: id, or assetid for older protocol variants."""
        return self.id or self.assetid

    @property
    def price_dollars(self) -> float:
        return self.price / 100.0

    def matches(self, key: str) -> bool:
        return key is not None and key in (self.id, self.assetid)

    def to_payload(self) -> Dict[str, Any]:
        """Dump back to the wire shape, including extra fields."""
        return self.model_dump(exclude_none=True)


class ListingRemoval(BaseModel):
    """Payload of a listing-removed push."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    assetid: Optional[str] = None

    @field_validator('id', 'assetid', mode='before')
    @classmethod
    def coerce_identifiers(cls, v):
        return _coerce_identifier(v)

    @model_validator(mode='after')
    def require_identity(self):
        if not self.id and not self.assetid:
            raise ValueError("Removal must carry an 'id' or an 'assetid'")
        return self

    @property
    def key(self) -> str:
        return self.id or self.assetid


class ListingUpdate(BaseModel):
    """Payload of a status push. Only the identity is guaranteed; a status
    change may omit the price and other listing fields."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    assetid: Optional[str] = None
    price: Optional[int] = Field(None, description="Price in cents, when resent")
    status: Optional[str] = None
    type: Optional[ListingType] = None
    steamid: Optional[str] = None

    @field_validator('id', 'assetid', 'steamid', mode='before')
    @classmethod
    def coerce_identifiers(cls, v):
        return _coerce_identifier(v)

    @field_validator('price')
    @classmethod
    def validate_price(cls, v):
        if v is not None and v < 0:
            raise ValueError(f"Price must be non-negative, got {v}")
        return v

    @model_validator(mode='after')
    def require_identity(self):
        if not self.id and not self.assetid:
            raise ValueError("Status update must carry an 'id' or an 'assetid'")
        return self

    @property
    def key(self) -> str:
        return self.id or self.assetid

    def changes(self) -> Dict[str, Any]:
        """Fields carried by the push, extras included."""
        return self.model_dump(exclude_none=True)


class ListingItem(BaseModel):
    """An inventory item submitted to create_listings()."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    assetid: str = Field(..., description="Steam asset identifier")
    price: int = Field(..., description="Asking price in cents")
    percent_increase: float = Field(..., alias="percentIncrease", description="Markup over the base price, in percent")

    @field_validator('assetid', mode='before')
    @classmethod
    def coerce_assetid(cls, v):
        v = _coerce_identifier(v)
        if not v:
            raise ValueError("assetid must not be empty")
        return v

    @field_validator('price')
    @classmethod
    def validate_positive_price(cls, v):
        if v <= 0:
            raise ValueError(f"Price must be positive, got {v}")
        return v

    @field_validator('percent_increase')
    @classmethod
    def validate_percent_increase(cls, v):
        if v < 0:
            raise ValueError(f"percentIncrease must be non-negative, got {v}")
        return v

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ResponseEnvelope(BaseModel):
    """Acknowledgement body returned by the server for a request."""
    model_config = ConfigDict(extra="allow")

    data: Any = Field(None, description="Result payload")
    message: Optional[str] = Field(None, description="Human-readable status text")


class ClientListings(BaseModel):
    """Active deposits and withdraws of one account."""
    deposits: List[Listing] = Field(default_factory=list)
    withdraws: List[Listing] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Union[Dict[str, Any], List[Any], None]) -> 'ClientListings':
        """
        Build from either a {deposits, withdraws} mapping or a flat list
        of listings partitioned by their 'type' field.
        """
        if data is None:
            return cls()
        if isinstance(data, dict):
            return cls.model_validate({
                "deposits": data.get("deposits") or [],
                "withdraws": data.get("withdraws") or [],
            })

        listings = [Listing.model_validate(x) for x in data]
        return cls(
            deposits=[x for x in listings if x.type == "deposit"],
            withdraws=[x for x in listings if x.type == "withdraw"],
        )


class MarketStats(BaseModel):
    """Aggregates over the active listing set, in cents."""
    max_price: int = Field(default=0, description="Highest active listing price")
    total_value: int = Field(default=0, description="Sum of active listing prices")

    @property
    def max_price_dollars(self) -> float:
        return self.max_price / 100.0

    @property
    def total_value_dollars(self) -> float:
        return self.total_value / 100.0


class ConnectionStatus(BaseModel):
    """Socket connection and session status."""
    connected: bool = Field(..., description="Whether the socket is connected")
    authenticated: bool = Field(default=False, description="Whether authenticate() has succeeded")
    error_message: Optional[str] = Field(None, description="Last transport error if any")

"""
Product models populated by mapper stages.
A fresh Product is built for every item and discarded once it is written.
"""

from typing import Any, ClassVar, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    field_validator,
)

ScalarValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]

_scalar_adapter = TypeAdapter(ScalarValue)


def _coerce_identifier(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
    return value


class Variation(BaseModel):
    """Child sub-record of a product (size/colour combination and the like)."""
    model_config = ConfigDict(validate_assignment=True)

    reference: Optional[str] = None
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=0)

    @field_validator("reference", "name", mode="before")
    @classmethod
    def _check_identifier(cls, value: Any) -> Any:
        if value is None:
            return value
        return _coerce_identifier(value)

    def set_reference(self, reference: Union[str, int]) -> "Variation":
        self.reference = reference
        return self

    def set_name(self, name: str) -> "Variation":
        self.name = name
        return self

    def set_price(self, price: float) -> "Variation":
        self.price = price
        return self

    def set_quantity(self, quantity: int) -> "Variation":
        self.quantity = quantity
        return self


class Product(BaseModel):
    """
    One exported record.

    Setters validate their value on assignment and return the product,
    so mappers can populate it fluently:

        product.set_reference(1).set_name("Product 1").set_price(5.99).set_quantity(3)

    Required fields are only checked for presence when the product is
    about to be written.
    """
    model_config = ConfigDict(validate_assignment=True)

    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("reference", "name", "price", "quantity")

    reference: Optional[str] = None
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=0)
    attributes: dict[StrictStr, ScalarValue] = Field(default_factory=dict)
    variations: list[Variation] = Field(default_factory=list)

    @field_validator("reference", "name", mode="before")
    @classmethod
    def _check_identifier(cls, value: Any) -> Any:
        if value is None:
            return value
        return _coerce_identifier(value)

    def set_reference(self, reference: Union[str, int]) -> "Product":
        self.reference = reference
        return self

    def set_name(self, name: str) -> "Product":
        self.name = name
        return self

    def set_price(self, price: float) -> "Product":
        self.price = price
        return self

    def set_quantity(self, quantity: int) -> "Product":
        self.quantity = quantity
        return self

    def set_attribute(self, key: str, value: Any) -> "Product":
        """Set an attribute; writing an existing key replaces its value."""
        if not isinstance(key, str) or not key.strip():
            raise ValueError(f"Attribute key must be a non-empty string, got {key!r}")
        self.attributes[key] = _scalar_adapter.validate_python(value)
        return self

    def create_variation(self) -> Variation:
        """Create, append and return a new variation owned by this product."""
        variation = Variation()
        self.variations.append(variation)
        return variation

    def missing_fields(self) -> list[str]:
        """Names of required fields that are still unset, in declaration order."""
        missing = [name for name in self.REQUIRED_FIELDS if getattr(self, name) is None]
        for idx, variation in enumerate(self.variations):
            for name in ("reference", "price", "quantity"):
                if getattr(variation, name) is None:
                    missing.append(f"variations[{idx}].{name}")
        return missing

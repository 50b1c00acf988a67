from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    category: Optional[str] = None
    price: float = Field(gt=0)
    discount_percentage: float = Field(default=0.0, ge=0, le=100, alias="discountPercentage")
    stock: int = Field(default=0, ge=0)


class ProductUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(default=None, gt=0)
    discount_percentage: Optional[float] = Field(default=None, ge=0, le=100, alias="discountPercentage")


class StockUpdate(BaseModel):
    stock: int = Field(ge=0)

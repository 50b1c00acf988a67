from pydantic import BaseModel, ConfigDict, Field


class CartItemAdd(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(min_length=1, max_length=64, alias="userId")
    product_id: str = Field(min_length=1, max_length=64, alias="productId")
    quantity: int = Field(default=1, ge=1)

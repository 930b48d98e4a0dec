"""Request bodies (camelCase names as sent by the widget)."""

from typing import List, Optional, Union

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict, Field

from tryon.clients.repository import ClientRecord, ClientRepository
from tryon.providers.base import GenerationRequest


class GeneratePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: Optional[str] = Field(None, alias="apiKey")
    user_image: Optional[str] = Field(None, alias="userImage")
    garments: Optional[List[str]] = None
    user_image_url: Optional[str] = Field(None, alias="userImageUrl")
    garment_urls: Optional[List[str]] = Field(None, alias="garmentUrls")
    request_id: Optional[str] = Field(None, alias="_requestId")
    fe_click_ts: Optional[int] = Field(None, alias="_feClickTs")

    def to_generation_request(self, max_garments: int) -> GenerationRequest:
        """Pick URL or base64 inputs and enforce garment bounds (400 on failure)."""
        use_urls = bool(self.user_image_url)
        user_input = self.user_image_url if use_urls else self.user_image
        garment_inputs = (self.garment_urls if use_urls else self.garments) or []

        if not user_input:
            raise HTTPException(status_code=400, detail="Missing userImage or userImageUrl")
        garment_inputs = [g for g in garment_inputs if g]
        if not garment_inputs:
            raise HTTPException(status_code=400, detail="At least one garment is required")
        if len(garment_inputs) > max_garments:
            raise HTTPException(
                status_code=400, detail=f"Maximum {max_garments} garments allowed"
            )
        return GenerationRequest(user_image=user_input, garments=garment_inputs)


class UploadPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: Optional[str] = Field(None, alias="apiKey")
    image: Optional[str] = None


class ClientCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class IngestEvent(BaseModel):
    type: Optional[str] = None
    timestamp: Optional[Union[str, int]] = None
    model: str = "unknown"


class LoginPayload(BaseModel):
    password: str = ""


async def authenticate(clients: ClientRepository, api_key: Optional[str]) -> ClientRecord:
    if not api_key:
        raise HTTPException(status_code=400, detail="Missing apiKey")
    client = await clients.validate_api_key(api_key)
    if client is None:
        raise HTTPException(status_code=401, detail="Invalid or inactive API key")
    return client

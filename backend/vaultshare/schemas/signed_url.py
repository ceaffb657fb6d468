from pydantic import BaseModel, Field


class SignedUrlRequestItem(BaseModel):
    storage_path: str = Field(..., alias="storagePath", min_length=1)
    is_video: bool = Field(False, alias="isVideo")
    expires_in: int = Field(..., alias="expiresIn", ge=1)

    class Config:
        populate_by_name = True

class SignedUrlBatchRequest(BaseModel):
    requests: list[SignedUrlRequestItem]

class SignedUrlItem(BaseModel):
    storage_path: str = Field(..., alias="storagePath")
    signed_url: str = Field(..., alias="signedUrl")
    expires_in: int = Field(..., alias="expiresIn")
    is_video: bool = Field(False, alias="isVideo")

    class Config:
        populate_by_name = True

class SignedUrlBatchResponse(BaseModel):
    signed_urls: list[SignedUrlItem] = Field(..., alias="signedUrls")
    total_requested: int = Field(..., alias="totalRequested")
    total_success: int = Field(..., alias="totalSuccess")

    class Config:
        populate_by_name = True

class SignedUrlSingleResponse(BaseModel):
    signed_url: str = Field(..., alias="signedUrl")
    expires_in: int = Field(..., alias="expiresIn")

    class Config:
        populate_by_name = True

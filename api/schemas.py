from pydantic import BaseModel


class UploadAccepted(BaseModel):
    status: str = "accepted"
    filename: str
    size: int


class StatusResponse(BaseModel):
    ready: bool = False
    chunks_available: int = 0

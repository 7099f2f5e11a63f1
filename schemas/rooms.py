from pydantic import BaseModel


class HistoryRecord(BaseModel):
    username: str
    body: str
    timestamp_millis: int

class RoomSummary(BaseModel):
    room_id: str
    online_users_count: int

class RoomDetailsResponse(BaseModel):
    room_id: str
    online_users_count: int
    online_users: list[str]

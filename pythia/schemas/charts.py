from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any


class ChartInputs(BaseModel):
    """Caller-supplied inputs; stored verbatim so a chart can be recomputed."""

    model_config = ConfigDict(frozen=True)

    year: int
    month: int
    day: int
    time: str  # local wall clock, HH:MM or HH:MM:SS
    location: str  # free-text place


class BodyPosition(BaseModel):
    longitude: float
    latitude: float
    speed: float
    sign: str
    sign_degree: float
    house: Optional[int] = None


class HouseSet(BaseModel):
    system: str
    ascendant: float
    mc: float
    cusps: List[float] = Field(min_length=12, max_length=12)


class Aspect(BaseModel):
    planet1: str
    planet2: str
    aspect: str
    orb: float
    color: Optional[str] = None


class ChartMeta(BaseModel):
    date: str  # "YYYY-MM-DD HH:MM:SS UTC"
    location: str
    latitude: float
    longitude: float
    timezone: Optional[str] = None
    house_system: Optional[str] = None
    engine_version: Optional[str] = None
    inputs: Optional[ChartInputs] = None
    reconstructed: bool = False


class ChartDocument(BaseModel):
    meta: ChartMeta
    positions: Dict[str, BodyPosition]
    houses: Optional[HouseSet] = None
    aspects: List[Aspect] = []


class ChartCreateRequest(ChartInputs):
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "user_id": "u_123",
                "label": "Greenwich noon",
                "year": 2000,
                "month": 1,
                "day": 1,
                "time": "12:00",
                "location": "Greenwich, UK",
                "house_system": "P",
            }
        },
    )

    user_id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    house_system: str = "P"

    def chart_inputs(self) -> ChartInputs:
        return ChartInputs(year=self.year, month=self.month, day=self.day, time=self.time, location=self.location)


class ComputeRequest(ChartInputs):
    model_config = ConfigDict(frozen=True)

    house_system: str = "P"
    include_houses: bool = True

    def chart_inputs(self) -> ChartInputs:
        return ChartInputs(year=self.year, month=self.month, day=self.day, time=self.time, location=self.location)


class CreatedChart(ChartDocument):
    event_id: int


class StoredEvent(BaseModel):
    event_id: int
    user_id: str
    label: str
    event_data: Dict[str, Any]
    created_at: str
    updated_at: Optional[str] = None


class CrossAspect(BaseModel):
    moving: str
    fixed: str
    aspect: str
    orb: float
    applying: bool


class TransitsResponse(BaseModel):
    event_id: int
    at: str
    positions: Dict[str, BodyPosition]
    aspects: List[CrossAspect]

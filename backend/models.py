"""Bantay Backend: Pydantic Models"""

from datetime import date, datetime
from typing import Literal, NamedTuple, Optional, Union
from pydantic import BaseModel, Field

from config import DEFAULT_COUNTRY

RiskLevel = Literal["Low", "Medium", "High"]
ForecastMethod = Literal["learned", "statistical"]
ImportMode = Literal["append", "replace"]


class AreaKey(NamedTuple):
    """(barangay, municipality, province, country) identifying a location."""
    barangay: str
    municipality: str
    province: str
    country: str = DEFAULT_COUNTRY


class Incident(BaseModel):
    type: str
    barangay: str
    municipality: str
    province: str
    country: str = DEFAULT_COUNTRY
    # Raw value as imported; resolved to a calendar month by timeseries.parse_incident_date
    confinementDate: Union[datetime, date, str, None] = None
    confinementTime: Optional[str] = None
    status: str = "ONGOING"
    gender: Optional[str] = None
    age: Optional[int] = None
    civilStatus: Optional[str] = None
    caseId: Optional[str] = None
    caseNumber: Optional[str] = None

    @property
    def area(self) -> AreaKey:
        return AreaKey(self.barangay, self.municipality, self.province, self.country)


class Barangay(BaseModel):
    name: str
    municipality: str
    province: str
    country: str = DEFAULT_COUNTRY
    population: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ForecastPoint(BaseModel):
    month: str  # YYYY-MM
    predicted: float = Field(ge=0)
    lower: float = Field(ge=0)
    upper: float = Field(ge=0)
    confidence: float = Field(ge=0, le=1)
    method: ForecastMethod


class RiskFactors(BaseModel):
    historicalTrend: float = 0.0
    seasonalPattern: float = 0.0
    populationDensity: float = 0.0
    recentActivity: float = 0.0


class RiskAssessment(BaseModel):
    riskLevel: RiskLevel
    probability: float = Field(ge=0, le=1)
    factors: RiskFactors


class Prediction(BaseModel):
    id: str = ""
    barangay: str
    municipality: str
    province: str
    country: str = DEFAULT_COUNTRY
    crimeType: str
    forecast: list[ForecastPoint]
    riskLevel: RiskLevel
    probability: float = Field(ge=0, le=1)
    confidence: float = Field(ge=0, le=1)
    factors: RiskFactors
    createdAt: Optional[datetime] = None


class Recommendation(BaseModel):
    id: str = ""
    barangay: str
    municipality: str
    province: str
    country: str = DEFAULT_COUNTRY
    crimeType: Optional[str] = None
    category: Literal["patrol", "community", "investigation", "prevention", "infrastructure"]
    priority: Literal["Low", "Medium", "High", "Critical"]
    title: str
    description: str
    rationale: str
    expectedImpact: str
    implementationCost: Literal["Low", "Medium", "High"]
    timeframe: Literal["Immediate", "Short-term", "Medium-term", "Long-term"]
    successMetrics: list[str] = []
    riskFactors: list[str] = []
    confidence: float = Field(ge=0, le=1)
    status: Literal["pending", "approved", "implemented", "rejected"] = "pending"
    assignedTo: Optional[str] = None
    notes: Optional[str] = None
    createdAt: Optional[datetime] = None


class RecommendationUpdate(BaseModel):
    status: Optional[Literal["pending", "approved", "implemented", "rejected"]] = None
    notes: Optional[str] = None
    assignedTo: Optional[str] = None


class ImportHistory(BaseModel):
    id: Optional[str] = None
    type: Literal["crime_data", "population_data"]
    filename: str = ""
    mode: ImportMode = "append"
    totalRows: int = 0
    importedCount: int = 0
    skippedCount: int = 0
    duplicatesSkipped: int = 0
    retrained: bool = False
    createdAt: Optional[datetime] = None


# ─────────────────────────── Responses ──────────────────────────

class ForecastResponse(BaseModel):
    barangay: str
    municipality: str
    province: str
    crimeType: str
    forecast: list[ForecastPoint]
    generatedAt: str


class RiskResponse(BaseModel):
    barangay: str
    municipality: str
    province: str
    crimeType: str
    riskLevel: RiskLevel
    probability: float
    factors: RiskFactors
    assessedAt: str


class RegenerationReport(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    learnedCount: int = 0
    failedKeys: list[str] = []


class TrainingReport(BaseModel):
    trained: bool
    rawSamples: int = 0
    validSamples: int = 0
    iterations: int = 0
    error: Optional[float] = None
    reason: str = ""


class ImportRequest(BaseModel):
    rows: list[dict]
    filename: str = ""
    mode: ImportMode = "append"
    retrain: bool = False

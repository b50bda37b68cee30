"""
models.py
----------
Plain data classes shared by the ingest and query services.

InspectionRecord is one raw row from the NYC Open Data API (every field is
string-typed there, even score and coordinates). Restaurant is the
consolidated record that gets stored and queried, and Violation is one
entry of its violation history.
"""

from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Columns requested from the API with $select, in this order
INSPECTION_COLUMNS = (
    "camis", "dba", "boro", "building", "street", "zipcode", "phone",
    "cuisine_description", "inspection_date", "action", "violation_code",
    "violation_description", "critical_flag", "score", "grade", "grade_date",
    "record_date", "inspection_type", "latitude", "longitude",
)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as written by to_dict() or the snapshot file."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class InspectionRecord:
    camis: str
    dba: str
    boro: Optional[str] = None
    building: Optional[str] = None
    street: Optional[str] = None
    zipcode: Optional[str] = None
    phone: Optional[str] = None
    cuisine_description: Optional[str] = None
    inspection_date: Optional[str] = None
    action: Optional[str] = None
    violation_code: Optional[str] = None
    violation_description: Optional[str] = None
    critical_flag: Optional[str] = None
    score: Optional[str] = None
    grade: Optional[str] = None
    grade_date: Optional[str] = None
    record_date: Optional[str] = None
    inspection_type: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None

    @classmethod
    def from_json(cls, row: Dict[str, Any]) -> "InspectionRecord":
        """Build a record from one API row, ignoring columns we don't use."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in row.items():
            if key in known and value is not None:
                values[key] = str(value)
        return cls(**values)


@dataclass
class Violation:
    id: str
    description: str
    code: Optional[str] = None
    critical_flag: Optional[str] = None  # "Critical" or "Not Critical"
    inspection_date: Optional[datetime] = None

    @property
    def is_critical(self) -> bool:
        return (self.critical_flag or "").lower() == "critical"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["inspection_date"] = _isoformat(self.inspection_date)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Violation":
        return cls(
            id=data.get("id") or "",
            description=data["description"],
            code=data.get("code"),
            critical_flag=data.get("critical_flag"),
            inspection_date=parse_iso_datetime(data.get("inspection_date")),
        )


@dataclass
class Restaurant:
    id: str
    name: str
    grade: str
    food_type: str
    address: str
    borough: str
    zip_code: str
    latitude: float
    longitude: float
    last_updated: datetime = field(default_factory=datetime.now)
    phone: Optional[str] = None
    cuisine: Optional[str] = None
    inspection_date: Optional[datetime] = None
    score: int = 0
    violations: List[Violation] = field(default_factory=list)

    @property
    def display_address(self) -> str:
        return f"{self.address}, {self.borough}, NY {self.zip_code}"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dictionary with ISO-8601 dates."""
        return {
            "id": self.id,
            "name": self.name,
            "grade": self.grade,
            "food_type": self.food_type,
            "address": self.address,
            "borough": self.borough,
            "zip_code": self.zip_code,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "last_updated": _isoformat(self.last_updated),
            "phone": self.phone,
            "cuisine": self.cuisine,
            "inspection_date": _isoformat(self.inspection_date),
            "score": self.score,
            "violations": [v.to_dict() for v in self.violations],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Restaurant":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            grade=data.get("grade") or "N/A",
            food_type=data.get("food_type") or "Unknown",
            address=data.get("address") or "Address not available",
            borough=data.get("borough") or "Unknown",
            zip_code=data.get("zip_code") or "",
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            last_updated=parse_iso_datetime(data.get("last_updated")) or datetime.now(),
            phone=data.get("phone"),
            cuisine=data.get("cuisine"),
            inspection_date=parse_iso_datetime(data.get("inspection_date")),
            score=int(data.get("score") or 0),
            violations=[Violation.from_dict(v) for v in data.get("violations") or []],
        )

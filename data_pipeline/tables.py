from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Column:
    """A destination table column; list order is the table's ordinal layout"""
    name: str
    type: str
    default: Optional[str] = None

    def to_properties(self) -> Dict[str, str]:
        props = {'Name': self.name, 'Type': self.type}
        if self.default is not None:
            props['Default'] = self.default
        return props


# NYC taxi trip layout; COPY INTO matches these by name, case-insensitively
TAXI_COLUMNS: List[Column] = [
    Column("VENDOR_ID", "NUMBER"),
    Column("PICKUP_DATETIME", "TIMESTAMP"),
    Column("DROPOFF_DATETIME", "TIMESTAMP"),
    Column("PASSENGER_COUNT", "NUMBER"),
    Column("TRIP_DISTANCE", "FLOAT"),
    Column("PICKUP_LOCATION_ID", "NUMBER"),
    Column("DROPOFF_LOCATION_ID", "NUMBER"),
    Column("FARE_AMOUNT", "FLOAT"),
    Column("TIP_AMOUNT", "FLOAT"),
    Column("TOTAL_AMOUNT", "FLOAT"),
    Column("LOADED_AT", "TIMESTAMP", default="CURRENT_TIMESTAMP()"),
]

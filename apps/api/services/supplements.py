"""
Supplement catalogue and log lookup.

Every supplement is a member of `models.Supplement`; its value is the key used
in the daily summary. Logs live in the single `supplement_logs` table, one row
per user/date/supplement.
"""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Union
from uuid import UUID

from core.database import StorageClient
from models import Supplement, SupplementLog
from services.repositories import SqlRepository


@dataclass(frozen=True)
class SupplementDefinition:
    supplement: Supplement
    label: str
    unit: str
    default_goal: float
    step: float = 1

    @property
    def key(self) -> str:
        return self.supplement.value


SUPPLEMENT_DEFINITIONS: List[SupplementDefinition] = [
    SupplementDefinition(Supplement.CREATINE, "Creatine", "g", 5),
    SupplementDefinition(Supplement.FISH_OIL, "Fish Oil", "mg", 2000),
    SupplementDefinition(Supplement.D3, "Vitamin D3", "IU", 5000),
    SupplementDefinition(Supplement.K2, "Vitamin K2", "mcg", 100),
    SupplementDefinition(Supplement.VITAMIN_C, "Vitamin C", "mg", 1000),
    SupplementDefinition(Supplement.VITAMIN_A, "Vitamin A", "IU", 5000),
    SupplementDefinition(Supplement.VITAMIN_E, "Vitamin E", "IU", 400),
    SupplementDefinition(Supplement.VITAMIN_B12, "Vitamin B12", "mcg", 1000),
    SupplementDefinition(Supplement.VITAMIN_B_COMPLEX, "B Complex", "mg", 100),
    SupplementDefinition(Supplement.FOLATE, "Folate", "mcg", 400),
    SupplementDefinition(Supplement.BIOTIN, "Biotin", "mcg", 5000),
    SupplementDefinition(Supplement.ZINC, "Zinc", "mg", 15),
    SupplementDefinition(Supplement.MAGNESIUM, "Magnesium", "mg", 400),
    SupplementDefinition(Supplement.MELATONIN, "Melatonin", "mg", 3, step=0.5),
    SupplementDefinition(Supplement.CAFFEINE, "Caffeine", "mg", 200),
]

SUPPLEMENT_KEYS: List[str] = [d.key for d in SUPPLEMENT_DEFINITIONS]


def get_supplement_log(
    storage: StorageClient,
    key: Union[str, Supplement],
    day: date,
    user_id: UUID,
) -> Optional[float]:
    """Amount logged for one supplement on one day, or None when nothing was logged."""
    row = SqlRepository(storage, SupplementLog).get(
        {"user_id": user_id, "date": day, "supplement": Supplement(key)}
    )
    return row.amount if row is not None else None

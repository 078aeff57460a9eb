from pydantic import BaseModel, Field
from typing import Dict


class LocalizationStringSet(BaseModel):
    language_code: str = Field(..., min_length=2, max_length=10)
    string_key: str = Field(..., min_length=1, max_length=200)
    value: str


class LocalizationStringsOut(BaseModel):
    language_code: str
    strings: Dict[str, str]

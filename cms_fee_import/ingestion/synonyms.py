"""
Versioned header-synonym configuration.

Which column labels map to which canonical field, and how each dataset's
header row is recognized, is data, not code. It lives in
``contracts/header_synonyms_<version>.json`` and is validated here on load.
"""

import json
from functools import lru_cache
from importlib.resources import files
from typing import Dict, List, Literal, Sequence

from pydantic import BaseModel, Field, model_validator

CONTRACTS_PACKAGE = "cms_fee_import.ingestion.contracts"
DEFAULT_VERSION = "v1"


class DetectionRule(BaseModel):
    """How a header row is recognized among the leading rows."""

    mode: Literal["anchor", "cooccurrence"]
    anchor_tokens: List[str] = Field(default_factory=list)
    topic_tokens: List[str] = Field(default_factory=list)
    min_matches: int = 2

    @model_validator(mode="after")
    def _check_tokens(self):
        if self.mode == "anchor" and not self.anchor_tokens:
            raise ValueError("anchor detection needs anchor_tokens")
        if self.mode == "cooccurrence" and len(self.topic_tokens) < self.min_matches:
            raise ValueError("cooccurrence detection needs at least min_matches topic_tokens")
        return self

    def is_header(self, normalized_cells: Sequence[str]) -> bool:
        """
        Anchor mode: any cell equals an anchor token.

        Co-occurrence mode: at least ``min_matches`` distinct topic tokens
        appear as substrings, each cell contributing at most one token.
        """
        if self.mode == "anchor":
            anchors = set(self.anchor_tokens)
            return any(cell in anchors for cell in normalized_cells if cell)

        found = set()
        for cell in normalized_cells:
            if not cell:
                continue
            for token in self.topic_tokens:
                if token not in found and token in cell:
                    found.add(token)
                    break
        return len(found) >= self.min_matches


class FieldRule(BaseModel):
    """Match rules for one canonical field against a normalized header."""

    name: str
    exact: List[str] = Field(default_factory=list)
    contains: List[List[str]] = Field(default_factory=list)
    excludes: List[str] = Field(default_factory=list)

    def matches(self, header: str) -> bool:
        if not header or any(token in header for token in self.excludes):
            return False
        if header in self.exact:
            return True
        return any(all(token in header for token in group) for group in self.contains)


class DatasetSynonyms(BaseModel):
    detection: DetectionRule
    anchor_field: str
    required_fields: List[str]
    fields: List[FieldRule]

    @model_validator(mode="after")
    def _check_fields(self):
        names = {f.name for f in self.fields}
        unknown = [f for f in [self.anchor_field, *self.required_fields] if f not in names]
        if unknown:
            raise ValueError(f"fields referenced but not defined: {unknown}")
        return self


class SynonymCatalog(BaseModel):
    version: str
    description: str = ""
    datasets: Dict[str, DatasetSynonyms]

    def for_dataset(self, key: str) -> DatasetSynonyms:
        try:
            return self.datasets[key]
        except KeyError:
            raise KeyError(f"No header synonyms for dataset '{key}' in {self.version}") from None


@lru_cache(maxsize=None)
def load_synonyms(version: str = DEFAULT_VERSION) -> SynonymCatalog:
    """Load and validate the packaged synonym contract (cached per version)."""
    path = files(CONTRACTS_PACKAGE).joinpath(f"header_synonyms_{version}.json")
    with path.open("r", encoding="utf-8") as f:
        return SynonymCatalog.model_validate(json.load(f))

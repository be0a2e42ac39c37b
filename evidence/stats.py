"""
Per-Drug Descriptive Statistics

Counts only: seriousness, age bins, sex, outcomes, countries and report
years over every record of one drug in one version. No rates, no
inference. A stats file written at ingestion time is used as is when the
snapshot carries one.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Sequence, Tuple

from .contracts.records import (
    AdverseEventRecord, AGE_GROUP_LABELS, OUTCOME_CATEGORIES,
    SERIOUS_CODE, NON_SERIOUS_CODE, age_group_for,
)
from .domain.serialization import digest_of

TOP_COUNTRIES = 10


@dataclass(frozen=True)
class DrugStats:
    drug: str
    version: str
    total_reports: int
    seriousness: Tuple[Tuple[str, int], ...]
    age_distribution: Tuple[Tuple[str, int], ...]
    sex_distribution: Tuple[Tuple[str, int], ...]
    outcome_distribution: Tuple[Tuple[str, int], ...]
    country_distribution: Tuple[Tuple[str, int], ...]
    reports_by_year: Tuple[Tuple[str, int], ...]
    stats_hash: str = field(default="", compare=False)

    def body(self) -> dict:
        return {
            "drug": self.drug,
            "version": self.version,
            "total_reports": self.total_reports,
            "seriousness": dict(self.seriousness),
            "age_distribution": dict(self.age_distribution),
            "sex_distribution": dict(self.sex_distribution),
            "outcome_distribution": dict(self.outcome_distribution),
            "country_distribution": dict(self.country_distribution),
            "reports_by_year": dict(self.reports_by_year),
        }

    def to_dict(self) -> dict:
        data = self.body()
        data["stats_hash"] = self.stats_hash
        return data


def _top_with_other(counts: Dict[str, int], limit: int) -> Tuple[Tuple[str, int], ...]:
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    top = ranked[:limit]
    other = sum(count for _, count in ranked[limit:])
    if other > 0:
        top.append(("Other", other))
    return tuple(top)


def build_drug_stats(drug: str, version: str, records: Sequence[AdverseEventRecord]) -> DrugStats:
    seriousness = {"serious": 0, "non_serious": 0, "unknown": 0}
    ages = {label: 0 for label in AGE_GROUP_LABELS}
    ages["Unknown"] = 0
    sexes = {"Male": 0, "Female": 0, "Unknown": 0}
    outcomes = {category: 0 for category in OUTCOME_CATEGORIES}
    countries: Dict[str, int] = {}
    years: Dict[str, int] = {}

    for record in records:
        if record.serious_code == SERIOUS_CODE:
            seriousness["serious"] += 1
        elif record.serious_code == NON_SERIOUS_CODE:
            seriousness["non_serious"] += 1
        else:
            seriousness["unknown"] += 1

        group = age_group_for(record.age_years)
        ages[group.label if group else "Unknown"] += 1

        sexes[record.sex] += 1

        # A report without any outcome code counts once as Unknown.
        with_outcome = [r for r in record.reactions if r.outcome_code is not None]
        for reaction in with_outcome:
            outcomes[reaction.outcome] += 1
        if not with_outcome:
            outcomes["Unknown"] += 1

        country = record.country or "Unknown"
        countries[country] = countries.get(country, 0) + 1

        if record.receive_date and len(record.receive_date) >= 4 and record.receive_date[:4].isdigit():
            year = record.receive_date[:4]
            years[year] = years.get(year, 0) + 1

    stats = DrugStats(
        drug=drug,
        version=version,
        total_reports=len(records),
        seriousness=tuple(seriousness.items()),
        age_distribution=tuple(ages.items()),
        sex_distribution=tuple(sexes.items()),
        outcome_distribution=tuple(outcomes.items()),
        country_distribution=_top_with_other(countries, TOP_COUNTRIES),
        reports_by_year=tuple(sorted(years.items())),
    )
    return replace(stats, stats_hash=digest_of(stats.body()))


def _counts(data, key: str) -> Tuple[Tuple[str, int], ...]:
    section = data.get(key)
    if not isinstance(section, dict):
        return ()
    return tuple((str(label), int(count)) for label, count in section.items())


def stats_from_document(drug: str, version: str, document: dict) -> Optional[DrugStats]:
    """
    Read a stats file written at ingestion time. The counts are taken as
    stored, labels included; None when the document is not usable.
    """
    data = document.get("stats", document) if isinstance(document, dict) else None
    if not isinstance(data, dict) or "total_reports" not in data:
        return None
    try:
        stats = DrugStats(
            drug=drug,
            version=version,
            total_reports=int(data["total_reports"]),
            seriousness=_counts(data, "seriousness"),
            age_distribution=_counts(data, "age_distribution"),
            sex_distribution=_counts(data, "sex_distribution"),
            outcome_distribution=_counts(data, "outcome_distribution"),
            country_distribution=_counts(data, "country_distribution"),
            reports_by_year=_counts(data, "reports_by_year"),
        )
    except (TypeError, ValueError):
        return None
    return replace(stats, stats_hash=digest_of(stats.body()))

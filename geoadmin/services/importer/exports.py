"""
Import Debug Exports

Optional side outputs written while importing, enabled by IMPORT_EXPORT_DIR:

- adm{level}_{ISO3}_fields.json   attribute schema of a level (levels 0..3):
                                   feature count plus the first sample value of
                                   every attribute name
- adm{level}_{ISO3}.csv           Des,PaisId,ShapeId,Geometry rows (levels 2..3),
                                   appended run after run; header only on a new file

Export problems are logged and swallowed: they never change the outcome of an
import step.

Author: GeoAdmin Project
License: AGPL-3.0
"""

import json
import logging
import os
from typing import Dict, List, Optional, Sequence

import pandas as pd
from shapely.geometry import mapping

from geoadmin.services.arcgis.feature_client import Feature

logger = logging.getLogger(__name__)

FIELD_DUMP_LEVELS = range(0, 4)
CSV_EXPORT_LEVELS = (2, 3)
CSV_COLUMNS = ["Des", "PaisId", "ShapeId", "Geometry"]


def field_samples(features: Sequence[Feature]) -> Dict[str, Optional[str]]:
    """First value seen for every attribute name (case-insensitive), sorted by name."""
    samples: Dict[str, Optional[str]] = {}
    seen = set()
    for feature in features:
        for name, value in feature.attributes.items():
            if name.lower() in seen:
                continue
            seen.add(name.lower())
            samples[name] = None if value is None else str(value)
    return {name: samples[name] for name in sorted(samples, key=str.lower)}


class ImportExporter:
    """
    Writes debug exports under `export_dir`; a None directory disables every export.
    """

    def __init__(self, export_dir: Optional[str]):
        self.export_dir = export_dir
        self._csv_rows: Dict[str, List[Dict[str, str]]] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.export_dir)

    def dump_fields(self, iso3: str, level: int, features: Sequence[Feature]) -> Optional[str]:
        if not self.enabled or level not in FIELD_DUMP_LEVELS:
            return None
        path = os.path.join(self.export_dir, f"adm{level}_{iso3}_fields.json")
        try:
            os.makedirs(self.export_dir, exist_ok=True)
            dump = {
                "iso3": iso3,
                "level": level,
                "count": len(features),
                "fields": field_samples(features),
            }
            with open(path, "w", encoding="utf-8") as f:
                json.dump(dump, f, indent=2, ensure_ascii=False)
            return path
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Field dump failed for {iso3} level {level}: {e}")
            return None

    def add_row(self, iso3: str, level: int, feature: Feature, code: str, name: str, geometry) -> None:
        """Queue one CSV row for `level`; flushed by write_csv."""
        if not self.enabled or level not in CSV_EXPORT_LEVELS:
            return
        shape_id = feature.get("GlobalID") or feature.get("OBJECTID") or code
        self._csv_rows.setdefault(self._csv_name(iso3, level), []).append({
            "Des": name,
            "PaisId": iso3,
            "ShapeId": shape_id,
            "Geometry": json.dumps(mapping(geometry)) if geometry is not None else "",
        })

    def write_csv(self, iso3: str, level: int) -> Optional[str]:
        rows = self._csv_rows.pop(self._csv_name(iso3, level), None)
        if not self.enabled or not rows:
            return None
        path = os.path.join(self.export_dir, self._csv_name(iso3, level))
        try:
            os.makedirs(self.export_dir, exist_ok=True)
            write_header = not os.path.exists(path)
            df = pd.DataFrame(rows, columns=CSV_COLUMNS)
            df.to_csv(path, mode="a", header=write_header, index=False, encoding="utf-8")
            logger.info(f"Exported {len(df)} rows to {path}")
            return path
        except (OSError, ValueError) as e:
            logger.warning(f"CSV export failed for {iso3} level {level}: {e}")
            return None

    def discard(self, iso3: str, level: int) -> None:
        self._csv_rows.pop(self._csv_name(iso3, level), None)

    @staticmethod
    def _csv_name(iso3: str, level: int) -> str:
        return f"adm{level}_{iso3}.csv"

from __future__ import annotations

from app.zoning_engine.contamination_risk import compute_contamination_risk
from app.zoning_engine.density import compute_assemblage_density, round_dwelling_units
from app.zoning_engine.far_resolver import resolve_controlling_far, resolve_lot_zoning
from app.zoning_engine.zoning_consistency import compute_zoning_consistency

__all__ = [
    "compute_assemblage_density",
    "compute_contamination_risk",
    "compute_zoning_consistency",
    "resolve_controlling_far",
    "resolve_lot_zoning",
    "round_dwelling_units",
]

"""Numeric core: grid preprocessing and per-cell trend regression."""

from sstrend.analysis.preprocess import kelvin_to_celsius, mask_missing, preprocess
from sstrend.analysis.regression import fit_ar1_gls

__all__ = ["fit_ar1_gls", "kelvin_to_celsius", "mask_missing", "preprocess"]

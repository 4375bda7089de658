"""
Layer-stack transforms for resin (vat photopolymerization) printing.

Rewrites the per-layer exposure images of a print job to compensate for
cross-layer light bleed and resin shrinkage, and synthesizes calibration
patterns for measuring light-engine uniformity.
"""

__version__ = "0.1.0"

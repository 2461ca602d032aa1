"""Landmark data association for SLAM.

This package contains the data-association engine:
- association: individual/joint compatibility, KD-tree gating,
  nearest-neighbour and JCBB search, result aggregation
"""

__version__ = "0.1.0"

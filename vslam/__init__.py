"""Geometry and tracking building blocks for feature-based visual SLAM.

Pose solvers (EPnP, RANSAC PnP, Sim3), settings and image input helpers,
local map selection, a motion model, viewer control flags and trajectory export.
"""

__version__ = "0.1.0"
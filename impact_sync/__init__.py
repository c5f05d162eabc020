"""
Impact-Synchronized Swing Biomechanics.

Captures a swing clip around an operator-triggered impact instant and
analyzes it: frame extraction, pose keypoints, kinematic sequence
(load/fire phases, segmental angular velocities), optional bat tracking
and empirical bias correction.

Modules are imported on-demand to avoid loading heavy dependencies.
"""

__version__ = "0.1.0"
__author__ = "Your Name"

"""
Frame Marker
============

A trainable multilayer-perceptron classifier that marks video frames from
patch luminance features.

Architecture:
    1. Feature Extraction – frame history → 8×8×4 luminance patches + bias node
    2. MLP Engine         – sigmoid MLP trained online by back-propagation
    3. Persistence        – positional text model format ("nn" files)
    4. Frame Marking      – per-patch scores → per-frame marked decision
    5. Snapshots          – read-only torch copies for batched inference
"""

__version__ = "1.0.0"

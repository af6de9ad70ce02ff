"""Accelerometer motion classification: windowed features, a small Keras classifier and a live inference loop."""

__version__ = "0.1.0"

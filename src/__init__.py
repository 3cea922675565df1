"""Calendar gap detection and micro-workout notification engine"""

__version__ = "0.1.0"

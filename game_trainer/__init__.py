"""Experience capture, Q-learning training and phased orchestration for game AI."""

__version__ = "0.1.0"

"""Project Risk Engine - risk and success scoring for crowdfunded projects."""

__version__ = "0.1.0"

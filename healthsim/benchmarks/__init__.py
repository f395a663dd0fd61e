"""
Benchmarking harness for the HealthDataSharing contract.

This package drives a population of simulated patients, experts, institutes and
family members against a deployed contract in increasing batch sizes, and
reports throughput, confirmation latency and the distribution of rejections.
"""

from .main import main

__all__ = ["main"]

"""packflow - multi-agent task orchestration core for marketing operations"""

__version__ = "0.1.0"

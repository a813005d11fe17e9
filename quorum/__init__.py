"""
Quorum - Multi-agent consensus validation.

Cross-checks facts extracted from a source document by several
independent LLM agents so that no single agent's hallucination is
accepted as truth. Provides the fact comparator, discrepancy detector,
citation validator, agent error policy and a result cache.
"""

__version__ = "0.1.0"

"""Anonymous, double-vote-proof reactions with homomorphic tallies."""

__version__ = "0.1.0"
